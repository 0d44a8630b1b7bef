import uuid

import numba
import numpy as np
import pytest
from osgeo import gdal
from rich.console import Console

from hydroroute._util.progress import ProgressTracker
from hydroroute._util.raster import (
    Grid,
    check_dimensions,
    grid_lengths,
    open_dataset,
    read_grid,
    write_grid,
)
from hydroroute._util.timer import ResourceStats, format_duration, resource_stats, timer
from hydroroute._util.workers import resolve_num_workers


class RecordingCallback:
    def __init__(self):
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)


@pytest.fixture(name="grid")
def fixture_grid():
    data = np.arange(12, dtype=np.float64).reshape(3, 4)
    return Grid(data, nodata=-1.0, cell_size_x=2.0, cell_size_y=5.0)


def test_grid_out_of_bounds_reads_nodata(grid):
    assert grid.get(0, 0) == 0.0
    assert grid.get(2, 3) == 11.0
    assert grid.get(-1, 0) == -1.0
    assert grid.get(0, 4) == -1.0
    assert grid.get(3, 0) == -1.0


def test_grid_set(grid):
    grid.set(1, 2, 42.0)
    assert grid.get(1, 2) == 42.0
    assert grid.data[1, 2] == 42.0


def test_grid_dimensions(grid):
    assert grid.dimensions() == (3, 4)
    assert grid.shape == (3, 4)
    assert grid.cell_size() == (2.0, 5.0)
    assert grid.geotransform == (0.0, 2.0, 0.0, 0.0, 0.0, -5.0)


def test_grid_with_data(grid):
    other = grid.with_data(np.zeros((3, 4), dtype=np.int8), nodata=-2)
    assert other.nodata == -2.0
    assert other.cell_size() == grid.cell_size()
    with pytest.raises(ValueError):
        grid.with_data(np.zeros((4, 3)))


def test_grid_requires_2d():
    with pytest.raises(ValueError):
        Grid(np.zeros(5))


def test_check_dimensions():
    check_dimensions(np.zeros((2, 3)), np.ones((2, 3)))
    with pytest.raises(ValueError, match="2x3 != 3x2"):
        check_dimensions(np.zeros((2, 3)), np.zeros((3, 2)), "DEM and mask")


def test_grid_lengths():
    lengths = grid_lengths(3.0, 4.0)
    np.testing.assert_array_equal(lengths, [5.0, 3.0, 5.0, 4.0, 5.0, 3.0, 5.0, 4.0])


def test_open_missing_dataset():
    with pytest.raises(ValueError, match="Could not open raster file"):
        open_dataset(f"/vsimem/missing_{uuid.uuid4()}.tif")


def test_read_write_grid(grid):
    path = f"/vsimem/grid_{uuid.uuid4()}.tif"
    write_grid(path, grid, metadata={"CREATED_BY": "test"}, chunk_size=2)
    result = read_grid(path, chunk_size=2)
    np.testing.assert_array_equal(result.data, grid.data)
    assert result.nodata == -1.0
    assert result.cell_size() == (2.0, 5.0)
    assert result.data.dtype == np.float64
    gdal.Unlink(path)


def test_read_grid_without_nodata():
    path = f"/vsimem/grid_{uuid.uuid4()}.tif"
    dataset = gdal.GetDriverByName("GTiff").Create(path, 3, 2, 1, gdal.GDT_Float32)
    dataset.GetRasterBand(1).WriteArray(np.ones((2, 3)))
    dataset = None
    assert np.isnan(read_grid(path).nodata)
    gdal.Unlink(path)


def test_read_grid_reports_chunks(grid):
    path = f"/vsimem/grid_{uuid.uuid4()}.tif"
    write_grid(path, grid)
    callback = RecordingCallback()
    tracker = ProgressTracker(callback, "Read", total_steps=1)
    tracker.update(step_name="Read DEM")
    read_grid(path, chunk_size=1, tracker=tracker)
    messages = [call["message"] for call in callback.calls if call.get("message")]
    assert messages == ["Chunk 1/3", "Chunk 2/3", "Chunk 3/3"]
    gdal.Unlink(path)


def test_progress_tracker_steps():
    callback = RecordingCallback()
    tracker = ProgressTracker(callback, "Phase", total_steps=2)
    tracker.update(step_name="First")
    tracker.update(step_name="Second")
    assert callback.calls[0] == {"phase": "Phase"}
    assert [call["step_number"] for call in callback.calls[1:]] == [1, 2]
    assert all(call["total_steps"] == 2 for call in callback.calls[1:])


def test_progress_tracker_reports_each_percentage_once():
    callback = RecordingCallback()
    tracker = ProgressTracker(callback, "Phase")
    tracker.update(step_name="Step")
    callback.calls.clear()
    for i in range(1, 1001):
        tracker.step_tracker(i, 1000, f"Chunk {i}/1000")
    progress = [call["progress"] for call in callback.calls]
    assert len(progress) == 101
    assert progress == sorted(progress)
    assert progress[-1] == 1.0


def test_progress_tracker_without_callback():
    tracker = ProgressTracker(None, "Phase", total_steps=1)
    tracker.update(step_name="Step")
    tracker.step_tracker(1, 1, "Chunk 1/1")


def test_resolve_num_workers():
    assert resolve_num_workers() == numba.get_num_threads()
    assert resolve_num_workers(3) == 3
    with pytest.raises(ValueError):
        resolve_num_workers(0)


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0.4, "0 seconds"),
        (1, "1 second"),
        (61, "1 minute and 1 second"),
        (3600, "1 hour"),
        (7322, "2 hours, 2 minutes and 2 seconds"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def render(panel):
    capture = Console(width=400)
    with capture.capture() as output:
        capture.print(panel)
    return output.get()


def test_summary_panel_lists_steps_outputs_and_warnings(tmp_path):
    written = tmp_path / "fdr.tif"
    written.write_bytes(b"\0" * 2048)
    stats = ResourceStats()
    stats.add_stats("Flow direction", 75.0)
    stats.add_output_file("Flow Direction", written)
    stats.add_output_file("Flow Accumulation", tmp_path / "accum.tif")
    stats.add_warning("Interior pits were found")

    text = render(stats.get_summary_panel(success=True))
    assert "Operation completed successfully" in text
    assert "Interior pits were found" in text
    assert "1 minute and 15 seconds" in text
    assert "2.0 KB" in text
    assert "missing" in text

    stats.reset()
    text = render(stats.get_summary_panel(success=False))
    assert "Operation failed" in text
    assert "Flow direction" not in text


def test_timer_records_duration_when_block_raises():
    resource_stats.reset()
    with pytest.raises(RuntimeError):
        with timer("Failing step", silent=True):
            raise RuntimeError("boom")
    assert resource_stats.stats["Failing step"] >= 0.0
    resource_stats.reset()
