import numpy as np
from numba import njit  # type: ignore[attr-defined]
from osgeo import gdal

from hydroroute._flow_direction import flow_direction_for_grid
from hydroroute._util.constants import (
    FLOW_DIRECTION_PIT,
    INFLOWING_DIRECTIONS,
    NEIGHBOR_OFFSETS,
)
from hydroroute._util.progress import ProgressCallback, ProgressTracker
from hydroroute._util.raster import (
    check_dimensions,
    grid_lengths,
    is_nodata,
    nodata_mask,
    read_grid,
    write_grid,
)
from hydroroute._util.workers import resolve_num_workers


@njit
def distance_to_stream(
    fdr: np.ndarray,
    dem: np.ndarray,
    nodata_value: float,
    streams: np.ndarray,
    cell_size_x: float,
    cell_size_y: float,
) -> np.ndarray:
    """
    Walk upstream from stream cells, accumulating flow path length.

    Stream cells are 0. Pits that are not on a stream drain nowhere, so they
    and everything upstream of them are nodata, as are cells that flow off
    the raster without meeting a stream.

    Args:
        fdr (np.ndarray): D8 flow direction grid of the DEM.
        dem (np.ndarray): The DEM, used only for its nodata mask.
        nodata_value (float): DEM nodata value, used for the output.
        streams (np.ndarray): Boolean stream mask.
        cell_size_x, cell_size_y (float): Cell size in map units.

    Returns:
        np.ndarray: float64 downslope distance to the nearest stream.
    """
    rows, cols = fdr.shape
    lengths = grid_lengths(cell_size_x, cell_size_y)
    distance = np.empty((rows, cols), dtype=np.float64)
    solved = np.zeros((rows, cols), dtype=np.bool_)
    drains_to_stream = np.zeros((rows, cols), dtype=np.bool_)
    # no cell is pushed twice, so the stack never outgrows the grid
    stack = np.empty(rows * cols, dtype=np.int64)
    top = 0

    for row in range(rows):
        for col in range(cols):
            if is_nodata(dem[row, col], nodata_value):
                distance[row, col] = nodata_value
                solved[row, col] = True
            elif streams[row, col]:
                distance[row, col] = 0.0
                solved[row, col] = True
                drains_to_stream[row, col] = True
                stack[top] = row * cols + col
                top += 1
            elif fdr[row, col] == FLOW_DIRECTION_PIT:
                distance[row, col] = nodata_value
                solved[row, col] = True
                stack[top] = row * cols + col
                top += 1

    while top > 0:
        top -= 1
        row = stack[top] // cols
        col = stack[top] % cols
        for i in range(8):
            row_n = row + NEIGHBOR_OFFSETS[i, 0]
            col_n = col + NEIGHBOR_OFFSETS[i, 1]
            if row_n < 0 or col_n < 0 or row_n >= rows or col_n >= cols:
                continue
            if solved[row_n, col_n] or fdr[row_n, col_n] != INFLOWING_DIRECTIONS[i]:
                continue
            solved[row_n, col_n] = True
            drains_to_stream[row_n, col_n] = drains_to_stream[row, col]
            if drains_to_stream[row, col]:
                distance[row_n, col_n] = distance[row, col] + lengths[i]
            else:
                distance[row_n, col_n] = nodata_value
            stack[top] = row_n * cols + col_n
            top += 1

    for row in range(rows):
        for col in range(cols):
            if not solved[row, col]:
                distance[row, col] = nodata_value

    return distance


def downslope_distance_for_grid(
    dem: np.ndarray,
    nodata_value: float,
    streams: np.ndarray,
    streams_nodata: float,
    cell_size_x: float = 1.0,
    cell_size_y: float = 1.0,
    num_workers: int | None = None,
) -> tuple[np.ndarray, bool]:
    """
    Distance from each cell to the nearest stream along its D8 flow path.

    Args:
        dem (np.ndarray): Hydrologically conditioned DEM.
        nodata_value (float): DEM nodata value.
        streams (np.ndarray): Streams raster; cells > 0 that are not
            streams_nodata are stream cells.
        streams_nodata (float): Streams nodata value.
        cell_size_x, cell_size_y (float): Cell size in map units.
        num_workers (int | None): Number of row workers for flow directions.

    Returns:
        tuple[np.ndarray, bool]: The distance grid and whether interior pits
        were found while resolving flow directions.

    Raises:
        ValueError: If dem and streams differ in shape.
    """
    check_dimensions(dem, streams, "DEM and streams")
    num_workers = resolve_num_workers(num_workers)

    stream_cells = (streams > 0) & ~nodata_mask(streams, streams_nodata)
    fdr, interior_pit_found = flow_direction_for_grid(
        dem, nodata_value, cell_size_x, cell_size_y, num_workers
    )
    distance = distance_to_stream(
        fdr, dem, nodata_value, stream_cells, cell_size_x, cell_size_y
    )
    return distance, bool(interior_pit_found)


def _downslope_distance(
    dem_path: str,
    streams_path: str,
    output_path: str,
    num_workers: int | None = None,
    progress_callback: ProgressCallback | None = None,
) -> bool:
    """
    Calculate the downslope distance to stream raster from DEM and streams files.

    Parameters
    ----------
    dem_path : str
        Path to the input DEM file (GDAL supported raster format).
    streams_path : str
        Path to the streams raster; non-zero cells are streams.
    output_path : str
        Path to the output distance raster (GeoTIFF).
    num_workers : int | None, optional
        Number of row workers, by default one per available thread.
    progress_callback : ProgressCallback | None, optional
        Optional callback for progress reporting, by default None (silent).

    Returns
    -------
    bool
        True if interior pits were found.
    """
    num_workers = resolve_num_workers(num_workers)
    tracker = ProgressTracker(
        progress_callback, "Downslope distance to stream", total_steps=4
    )

    tracker.update(step_name="Read DEM")
    dem = read_grid(dem_path, tracker=tracker)

    tracker.update(step_name="Read streams")
    streams = read_grid(streams_path, tracker=tracker)
    check_dimensions(dem, streams, "DEM and streams")

    tracker.update(step_name="Downslope distance")
    distance, interior_pit_found = downslope_distance_for_grid(
        dem.data,
        dem.nodata,
        streams.data,
        streams.nodata,
        dem.cell_size_x,
        dem.cell_size_y,
        num_workers,
    )

    tracker.update(step_name="Write downslope distance")
    write_grid(
        output_path,
        dem.with_data(distance),
        gdal.GDT_Float32,
        metadata={
            "CREATED_BY": "downslope_distance_to_stream",
            "INPUT_FILE": dem_path,
            "STREAMS_FILE": streams_path,
        },
        tracker=tracker,
    )
    return interior_pit_found
