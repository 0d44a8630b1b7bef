import heapq

import numpy as np
from numba import njit  # type: ignore[attr-defined]
from osgeo import gdal

from hydroroute._util.constants import NEIGHBOR_OFFSETS
from hydroroute._util.progress import ProgressCallback, ProgressTracker
from hydroroute._util.raster import (
    check_dimensions,
    is_nodata,
    nodata_mask,
    read_grid,
    write_grid,
)
from hydroroute.codes import Background


@njit
def resolve_cell(
    dem: np.ndarray,
    nodata_value: float,
    filled: np.ndarray,
    resolved: np.ndarray,
    queue: np.ndarray,
    tail: int,
    heap: list,
    row: int,
    col: int,
) -> int:
    """
    Resolve a cell that touches the raster frame or an edge connected nodata
    region.

    A data cell is its own outlet: it keeps its elevation and enters the
    priority queue. A nodata cell is appended to the FIFO queue so the
    region grows through connected nodata.

    Returns:
        int: The new tail of the FIFO queue.
    """
    if resolved[row, col]:
        return tail
    resolved[row, col] = True
    cols = dem.shape[1]
    z = dem[row, col]
    if is_nodata(z, nodata_value):
        filled[row, col] = nodata_value
        queue[tail] = row * cols + col
        return tail + 1
    filled[row, col] = z
    heapq.heappush(heap, (float(z), row * cols + col))
    return tail


@njit
def priority_flood_fill(dem: np.ndarray, nodata_value: float) -> np.ndarray:
    """
    Fill all depressions in a DEM with a boundary seeded priority flood.

    1. The raster is surrounded by a virtual nodata frame. Starting at the
       border, nodata regions connected to the frame are grown with a FIFO
       queue and every data cell touching the frame or such a region is
       seeded into a min-heap at its own elevation.
    2. The lowest cell is repeatedly popped from the heap. Each unresolved
       data neighbor is raised to at least the popped elevation and pushed.
       Unresolved nodata neighbors (interior holes) are marked nodata but
       never flood further, so holes are not filled.

    Every cell is resolved once, so filled values never change after they
    are first set.

    Args:
        dem (np.ndarray): Digital Elevation Model.
        nodata_value (float): Value from dem representing no data.

    Returns:
        np.ndarray: float64 filled DEM, nodata where dem is nodata.
    """
    rows, cols = dem.shape
    filled = np.empty((rows, cols), dtype=np.float64)
    resolved = np.zeros((rows, cols), dtype=np.bool_)
    queue = np.empty(rows * cols, dtype=np.int64)
    head = 0
    tail = 0
    # seed so numba can type the heap
    heap = [(0.0, 0)]
    heap.pop()

    if rows == 0 or cols == 0:
        return filled

    for col in range(cols):
        tail = resolve_cell(
            dem, nodata_value, filled, resolved, queue, tail, heap, 0, col
        )
        tail = resolve_cell(
            dem, nodata_value, filled, resolved, queue, tail, heap, rows - 1, col
        )
    for row in range(rows):
        tail = resolve_cell(
            dem, nodata_value, filled, resolved, queue, tail, heap, row, 0
        )
        tail = resolve_cell(
            dem, nodata_value, filled, resolved, queue, tail, heap, row, cols - 1
        )

    while head < tail:
        row = queue[head] // cols
        col = queue[head] % cols
        head += 1
        for i in range(8):
            row_n = row + NEIGHBOR_OFFSETS[i, 0]
            col_n = col + NEIGHBOR_OFFSETS[i, 1]
            if row_n < 0 or col_n < 0 or row_n >= rows or col_n >= cols:
                continue
            tail = resolve_cell(
                dem, nodata_value, filled, resolved, queue, tail, heap, row_n, col_n
            )

    while len(heap) > 0:
        z_out, index = heapq.heappop(heap)
        row = index // cols
        col = index % cols
        for i in range(8):
            row_n = row + NEIGHBOR_OFFSETS[i, 0]
            col_n = col + NEIGHBOR_OFFSETS[i, 1]
            if row_n < 0 or col_n < 0 or row_n >= rows or col_n >= cols:
                continue
            if resolved[row_n, col_n]:
                continue
            resolved[row_n, col_n] = True
            z_n = dem[row_n, col_n]
            if is_nodata(z_n, nodata_value):
                filled[row_n, col_n] = nodata_value
                continue
            # in a depression, raise to the spill elevation
            if z_n < z_out:
                z_n = z_out
            filled[row_n, col_n] = z_n
            heapq.heappush(heap, (float(z_n), row_n * cols + col_n))

    # cells cut off from the border by interior nodata are left as they are
    for row in range(rows):
        for col in range(cols):
            if not resolved[row, col]:
                if is_nodata(dem[row, col], nodata_value):
                    filled[row, col] = nodata_value
                else:
                    filled[row, col] = dem[row, col]

    return filled


def depth_in_sink_for_grid(
    dem: np.ndarray,
    nodata_value: float,
    background: Background = Background.NODATA,
    filled: np.ndarray | None = None,
) -> np.ndarray:
    """
    Depth of each cell below the spill elevation of its depression.

    Args:
        dem (np.ndarray): Digital Elevation Model.
        nodata_value (float): Value from dem representing no data.
        background (Background): Value for cells outside any sink, either
            the nodata value or 0.
        filled (np.ndarray | None): A filled surface to difference against.
            Computed with priority_flood_fill when not given.

    Returns:
        np.ndarray: float64 depth (filled - dem) where positive, background
        where zero, nodata where dem is nodata.
    """
    if filled is None:
        filled = priority_flood_fill(dem, nodata_value)
    else:
        check_dimensions(dem, filled, "DEM and filled DEM")

    if background is Background.ZERO:
        background_value = 0.0
    elif background is Background.NODATA:
        background_value = nodata_value
    else:
        raise ValueError(f"Unknown background value policy: {background}")

    depth = np.where(filled > dem, filled - dem, background_value)
    depth[nodata_mask(dem, nodata_value)] = nodata_value
    return depth


def _fill_depressions(
    input_path: str,
    output_path: str,
    progress_callback: ProgressCallback | None = None,
) -> None:
    """
    Fill depressions in a DEM file with a priority flood.

    Parameters
    ----------
    input_path : str
        Path to the input DEM file (GDAL supported raster format).
    output_path : str
        Path to the output filled DEM (GeoTIFF).
    progress_callback : ProgressCallback | None, optional
        Optional callback for progress reporting, by default None (silent).
    """
    tracker = ProgressTracker(progress_callback, "Fill depressions", total_steps=3)

    tracker.update(step_name="Read DEM")
    dem = read_grid(input_path, tracker=tracker)

    tracker.update(step_name="Priority flood")
    filled = priority_flood_fill(dem.data, dem.nodata)

    tracker.update(step_name="Write filled DEM")
    write_grid(
        output_path,
        dem.with_data(filled),
        gdal.GDT_Float32,
        metadata={"CREATED_BY": "fill_depressions", "INPUT_FILE": input_path},
        tracker=tracker,
    )


def _depth_in_sink(
    input_path: str,
    output_path: str,
    background: Background = Background.NODATA,
    progress_callback: ProgressCallback | None = None,
) -> None:
    """
    Measure the depth of each DEM cell within a sink.

    Parameters
    ----------
    input_path : str
        Path to the input DEM file (GDAL supported raster format).
    output_path : str
        Path to the output depth raster (GeoTIFF).
    background : Background, optional
        Value for cells that are not in a sink, by default nodata.
    progress_callback : ProgressCallback | None, optional
        Optional callback for progress reporting, by default None (silent).
    """
    tracker = ProgressTracker(progress_callback, "Depth in sink", total_steps=4)

    tracker.update(step_name="Read DEM")
    dem = read_grid(input_path, tracker=tracker)

    tracker.update(step_name="Priority flood")
    filled = priority_flood_fill(dem.data, dem.nodata)

    tracker.update(step_name="Depth in sink")
    depth = depth_in_sink_for_grid(dem.data, dem.nodata, background, filled)

    tracker.update(step_name="Write depth in sink")
    write_grid(
        output_path,
        dem.with_data(depth),
        gdal.GDT_Float32,
        metadata={"CREATED_BY": "depth_in_sink", "INPUT_FILE": input_path},
        tracker=tracker,
    )
