import numpy as np
from numba import njit, prange  # type: ignore[attr-defined]
from osgeo import gdal

from hydroroute._util.constants import (
    FLOW_DIRECTION_NODATA,
    FLOW_DIRECTION_PIT,
    NEIGHBOR_OFFSETS,
)
from hydroroute._util.progress import ProgressCallback, ProgressTracker
from hydroroute._util.raster import (
    grid_lengths,
    is_nodata,
    read_grid,
    value_at,
    write_grid,
)
from hydroroute._util.workers import resolve_num_workers


@njit
def d8_direction(
    dem: np.ndarray, row: int, col: int, nodata_value: float, lengths: np.ndarray
) -> tuple[int, bool]:
    """
    Resolve the D8 flow direction of a single cell.

    Neighbors are scanned in direction code order and the steepest strictly
    positive slope wins. Only a strictly greater slope replaces the current
    best, so the first direction found wins ties.

    Parameters
    ----------
    dem (np.ndarray) : Digital Elevation Model.
    row, col (int) : Coordinates of the cell.
    nodata_value (float) : Value from dem representing no data.
    lengths (np.ndarray) : Distance to each neighbor, indexed by direction code.

    Returns
    -------
    tuple[int, bool]
        The direction code (FLOW_DIRECTION_PIT if no neighbor is lower,
        FLOW_DIRECTION_NODATA for nodata cells) and whether the cell is an
        interior pit, i.e. a pit none of whose neighbors are nodata.
    """
    z = dem[row, col]
    if is_nodata(z, nodata_value):
        return FLOW_DIRECTION_NODATA, False

    direction = FLOW_DIRECTION_PIT
    max_slope = -np.inf
    neighboring_nodata = False
    for i in range(8):
        z_n = value_at(
            dem, row + NEIGHBOR_OFFSETS[i, 0], col + NEIGHBOR_OFFSETS[i, 1], nodata_value
        )
        if is_nodata(z_n, nodata_value):
            neighboring_nodata = True
            continue
        slope = (z - z_n) / lengths[i]
        if slope > max_slope and slope > 0.0:
            max_slope = slope
            direction = i

    if direction == FLOW_DIRECTION_PIT:
        return FLOW_DIRECTION_PIT, not neighboring_nodata
    return direction, False


@njit(parallel=True)
def flow_direction_for_grid(
    dem: np.ndarray,
    nodata_value: float,
    cell_size_x: float,
    cell_size_y: float,
    num_workers: int,
) -> tuple[np.ndarray, bool]:
    """
    Compute D8 flow directions for a whole DEM.

    Rows are dealt to num_workers workers round-robin. Each worker builds a
    complete row before storing it at its row index, so the result does not
    depend on the number of workers or on scheduling.

    Parameters
    ----------
    dem (np.ndarray) : Digital Elevation Model.
    nodata_value (float) : Value from dem representing no data.
    cell_size_x, cell_size_y (float) : Cell size in map units.
    num_workers (int) : Number of row workers.

    Returns
    -------
    tuple[np.ndarray, bool]
        The int8 flow direction grid and whether any interior pit was found.
    """
    rows, cols = dem.shape
    fdr = np.empty((rows, cols), dtype=np.int8)
    lengths = grid_lengths(cell_size_x, cell_size_y)
    interior_pits = np.zeros(num_workers, dtype=np.bool_)

    for worker in prange(num_workers):
        for row in range(worker, rows, num_workers):
            row_data = np.empty(cols, dtype=np.int8)
            for col in range(cols):
                direction, interior_pit = d8_direction(
                    dem, row, col, nodata_value, lengths
                )
                row_data[col] = direction
                if interior_pit:
                    interior_pits[worker] = True
            fdr[row, :] = row_data

    return fdr, interior_pits.any()


def _flow_direction(
    input_path: str,
    output_path: str,
    num_workers: int | None = None,
    progress_callback: ProgressCallback | None = None,
) -> bool:
    """
    Generate a D8 flow direction raster from a DEM.

    Parameters
    ----------
    input_path : str
        Path to the input DEM file (GDAL supported raster format).
    output_path : str
        Path to the output flow direction raster file (must be GeoTIFF).
    num_workers : int | None, optional
        Number of row workers, by default one per available thread.
    progress_callback : ProgressCallback | None, optional
        Optional callback for progress reporting, by default None (silent).

    Returns
    -------
    bool
        True if interior pits were found, meaning the DEM still contains
        depressions or flats.
    """
    num_workers = resolve_num_workers(num_workers)
    tracker = ProgressTracker(progress_callback, "D8 flow direction", total_steps=3)

    tracker.update(step_name="Read DEM")
    dem = read_grid(input_path, tracker=tracker)

    tracker.update(step_name="Flow directions")
    fdr, interior_pit_found = flow_direction_for_grid(
        dem.data, dem.nodata, dem.cell_size_x, dem.cell_size_y, num_workers
    )

    tracker.update(step_name="Write flow directions")
    write_grid(
        output_path,
        dem.with_data(fdr, FLOW_DIRECTION_NODATA),
        gdal.GDT_Int8,
        metadata={"CREATED_BY": "flow_direction", "INPUT_FILE": input_path},
        tracker=tracker,
    )
    return bool(interior_pit_found)
