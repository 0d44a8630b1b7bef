from dataclasses import dataclass

import numpy as np
from numba import njit, prange  # type: ignore[attr-defined]
from osgeo import gdal

from hydroroute._flow_direction import flow_direction_for_grid
from hydroroute._util.constants import (
    DEFAULT_CLIP_PERCENT,
    FLOW_DIRECTION_NODATA,
    INFLOW_COUNT_NODATA,
    INFLOWING_DIRECTIONS,
    NEIGHBOR_OFFSETS,
)
from hydroroute._util.progress import ProgressCallback, ProgressTracker
from hydroroute._util.raster import (
    check_dimensions,
    is_nodata,
    nodata_mask,
    read_grid,
    value_at,
    write_grid,
)
from hydroroute._util.workers import resolve_num_workers
from hydroroute.codes import OutputType


@dataclass(frozen=True)
class AccumulationOptions:
    """
    Output options for D8 flow accumulation.

    Attributes:
        out_type: Units of the output.
        log_transform: Write the natural log of the converted value.
        clip: Record a display maximum that clips the upper 1% tail.
    """

    out_type: OutputType = OutputType.CELLS
    log_transform: bool = False
    clip: bool = False


@njit(parallel=True)
def inflow_count_kernel(
    dem: np.ndarray, nodata_value: float, fdr: np.ndarray, num_workers: int
) -> np.ndarray:
    """
    Count the neighbors of each cell whose flow direction points into it.

    The full flow direction grid must be available before this runs. Rows are
    dealt to workers round-robin as for the flow direction pass.

    Args:
        dem (np.ndarray): DEM, used only for its nodata mask.
        nodata_value (float): DEM nodata value.
        fdr (np.ndarray): D8 flow direction grid.
        num_workers (int): Number of row workers.

    Returns:
        np.ndarray: int8 inflow counts, INFLOW_COUNT_NODATA for nodata cells.
    """
    rows, cols = dem.shape
    inflowing = np.empty((rows, cols), dtype=np.int8)

    for worker in prange(num_workers):
        for row in range(worker, rows, num_workers):
            row_data = np.empty(cols, dtype=np.int8)
            for col in range(cols):
                if is_nodata(dem[row, col], nodata_value):
                    row_data[col] = INFLOW_COUNT_NODATA
                    continue
                count = 0
                for i in range(8):
                    neighbor_direction = value_at(
                        fdr,
                        row + NEIGHBOR_OFFSETS[i, 0],
                        col + NEIGHBOR_OFFSETS[i, 1],
                        FLOW_DIRECTION_NODATA,
                    )
                    if neighbor_direction == INFLOWING_DIRECTIONS[i]:
                        count += 1
                row_data[col] = count
            inflowing[row, :] = row_data

    return inflowing


@njit
def accumulate_flow_kernel(fdr: np.ndarray, inflowing: np.ndarray) -> np.ndarray:
    """
    Propagate a unit flow weight downstream in topological order.

    Every cell starts with 1.0. Cells without inflowing neighbors seed a
    stack; a popped cell passes its total to its downstream neighbor, which
    is pushed once its last upstream neighbor has been processed. Each cell
    is therefore pushed and popped at most once.

    The flow directions must form a DAG. Cells on a cycle never become ready
    and keep their seed value.

    Args:
        fdr (np.ndarray): D8 flow direction grid.
        inflowing (np.ndarray): Inflow counts from inflow_count_kernel.
            Used as readiness counters and decremented in place.

    Returns:
        np.ndarray: float64 accumulated cell counts.
    """
    rows, cols = fdr.shape
    fac = np.ones((rows, cols), dtype=np.float64)
    stack = np.empty(rows * cols, dtype=np.int64)
    top = 0

    for row in range(rows):
        for col in range(cols):
            if inflowing[row, col] == 0:
                stack[top] = row * cols + col
                top += 1

    while top > 0:
        top -= 1
        row = stack[top] // cols
        col = stack[top] % cols
        inflowing[row, col] -= 1
        direction = fdr[row, col]
        if direction < 0:
            continue
        row_n = row + NEIGHBOR_OFFSETS[direction, 0]
        col_n = col + NEIGHBOR_OFFSETS[direction, 1]
        if row_n < 0 or col_n < 0 or row_n >= rows or col_n >= cols:
            continue
        fac[row_n, col_n] += fac[row, col]
        inflowing[row_n, col_n] -= 1
        if inflowing[row_n, col_n] == 0:
            stack[top] = row_n * cols + col_n
            top += 1

    return fac


def count_inflowing_neighbors(
    dem: np.ndarray,
    nodata_value: float,
    fdr: np.ndarray,
    num_workers: int | None = None,
) -> np.ndarray:
    """
    Inflow count of every cell, see inflow_count_kernel.

    Raises:
        ValueError: If dem and fdr differ in shape.
    """
    check_dimensions(dem, fdr, "DEM and flow direction")
    num_workers = resolve_num_workers(num_workers)
    return inflow_count_kernel(dem, nodata_value, fdr, num_workers)


def accumulate_flow(fdr: np.ndarray, inflowing: np.ndarray) -> np.ndarray:
    """
    Accumulated cell counts, see accumulate_flow_kernel.

    Raises:
        ValueError: If fdr and inflowing differ in shape.
    """
    check_dimensions(fdr, inflowing, "flow direction and inflow count")
    return accumulate_flow_kernel(fdr, inflowing)


def convert_accumulation(
    fac: np.ndarray,
    dem: np.ndarray,
    nodata_value: float,
    cell_size_x: float,
    cell_size_y: float,
    options: AccumulationOptions,
) -> np.ndarray:
    """
    Convert accumulated cell counts to the requested output units.

    The flow width is the same for all 8 directions. A direction dependent
    width would make the output jump along a flow path instead of growing
    steadily downstream.

    Args:
        fac (np.ndarray): Accumulated cell counts from accumulate_flow.
        dem (np.ndarray): DEM, used only for its nodata mask.
        nodata_value (float): DEM nodata value, copied to nodata cells.
        cell_size_x, cell_size_y (float): Cell size in map units.
        options (AccumulationOptions): Output type and log transform.

    Returns:
        np.ndarray: float64 converted accumulation.

    Raises:
        ValueError: If fac and dem differ in shape.
    """
    check_dimensions(fac, dem, "accumulation and DEM")
    if options.out_type is OutputType.CELLS:
        cell_area = 1.0
        flow_width = 1.0
    elif options.out_type is OutputType.CATCHMENT_AREA:
        cell_area = cell_size_x * cell_size_y
        flow_width = 1.0
    else:
        cell_area = cell_size_x * cell_size_y
        flow_width = (cell_size_x + cell_size_y) / 2.0

    output = fac * cell_area / flow_width
    if options.log_transform:
        output = np.log(output)
    output[nodata_mask(dem, nodata_value)] = nodata_value
    return output


def clip_display_max(
    values: np.ndarray, nodata_value: float, percent: float = DEFAULT_CLIP_PERCENT
) -> float:
    """Value above which the top `percent` percent of valid cells lie."""
    valid = values[~nodata_mask(values, nodata_value)]
    if valid.size == 0:
        return nodata_value
    return float(np.percentile(valid, 100.0 - percent))


def d8_flow_accumulation(
    dem: np.ndarray,
    nodata_value: float,
    cell_size_x: float = 1.0,
    cell_size_y: float = 1.0,
    options: AccumulationOptions | None = None,
    num_workers: int | None = None,
    tracker: ProgressTracker | None = None,
) -> tuple[np.ndarray, bool]:
    """
    D8 flow accumulation of a DEM, from flow directions to output units.

    Args:
        dem (np.ndarray): Hydrologically conditioned DEM.
        nodata_value (float): DEM nodata value.
        cell_size_x, cell_size_y (float): Cell size in map units.
        options (AccumulationOptions | None): Output options, cells by default.
        num_workers (int | None): Number of row workers for the parallel passes.
        tracker (ProgressTracker | None): Receives one step per pass.

    Returns:
        tuple[np.ndarray, bool]: The accumulation grid and whether interior
        pits were found while resolving flow directions.
    """
    if options is None:
        options = AccumulationOptions()
    num_workers = resolve_num_workers(num_workers)

    if tracker is not None:
        tracker.update(step_name="Flow directions")
    fdr, interior_pit_found = flow_direction_for_grid(
        dem, nodata_value, cell_size_x, cell_size_y, num_workers
    )

    if tracker is not None:
        tracker.update(step_name="Num. inflowing neighbours")
    inflowing = count_inflowing_neighbors(dem, nodata_value, fdr, num_workers)

    if tracker is not None:
        tracker.update(step_name="Flow accumulation")
    fac = accumulate_flow(fdr, inflowing)

    if tracker is not None:
        tracker.update(step_name="Correcting values")
    output = convert_accumulation(
        fac, dem, nodata_value, cell_size_x, cell_size_y, options
    )
    return output, bool(interior_pit_found)


def _flow_accumulation(
    input_path: str,
    output_path: str,
    options: AccumulationOptions | None = None,
    num_workers: int | None = None,
    progress_callback: ProgressCallback | None = None,
) -> bool:
    """
    Calculate a D8 flow accumulation raster from a DEM file.

    Parameters
    ----------
    input_path : str
        Path to the input DEM file (GDAL supported raster format).
    output_path : str
        Path to the output flow accumulation raster file (GeoTIFF).
    options : AccumulationOptions | None, optional
        Output units, log transform and display clipping.
    num_workers : int | None, optional
        Number of row workers, by default one per available thread.
    progress_callback : ProgressCallback | None, optional
        Optional callback for progress reporting, by default None (silent).

    Returns
    -------
    bool
        True if interior pits were found.
    """
    if options is None:
        options = AccumulationOptions()
    num_workers = resolve_num_workers(num_workers)
    tracker = ProgressTracker(progress_callback, "D8 flow accumulation", total_steps=6)

    tracker.update(step_name="Read DEM")
    dem = read_grid(input_path, tracker=tracker)

    fac, interior_pit_found = d8_flow_accumulation(
        dem.data,
        dem.nodata,
        dem.cell_size_x,
        dem.cell_size_y,
        options,
        num_workers,
        tracker,
    )

    metadata = {
        "CREATED_BY": "d8_flow_accumulation",
        "INPUT_FILE": input_path,
        "OUTPUT_TYPE": options.out_type.value,
    }
    if options.clip:
        metadata["DISPLAY_MAX"] = str(clip_display_max(fac, dem.nodata))

    tracker.update(step_name="Write flow accumulation")
    write_grid(
        output_path,
        dem.with_data(fac),
        gdal.GDT_Float32,
        metadata=metadata,
        tracker=tracker,
    )
    return interior_pit_found

