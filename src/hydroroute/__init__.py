"""
Hydroroute - D8 flow routing and depression analysis for gridded DEMs.

- flow_direction: Compute D8 flow directions
- accumulation: Calculate D8 flow accumulation (cells, catchment area or
  specific contributing area)
- fill: Fill depressions with a priority flood
- depth_in_sink: Measure the depth of each cell within a depression
- downslope_distance: Distance to the nearest stream along the flow path
"""

from hydroroute._downslope_distance import _downslope_distance
from hydroroute._fill_depressions import _depth_in_sink, _fill_depressions
from hydroroute._flow_accumulation import AccumulationOptions, _flow_accumulation
from hydroroute._flow_direction import _flow_direction
from hydroroute._util.progress import ProgressCallback
from hydroroute.codes import Background, FlowDirection, OutputType

__version__ = "0.1.0"


def flow_direction(
    input_path: str,
    output_path: str,
    num_workers: int | None = None,
    progress_callback: ProgressCallback | None = None,
) -> bool:
    """
    Compute D8 flow directions from a DEM.

    Each cell drains to the neighbor with the steepest downhill slope. Cells
    with no lower neighbor are pits (-1) and nodata cells are -2.

    Args:
        input_path: Path to the input DEM raster file (should be hydrologically
            conditioned, e.g., filled or breached).
        output_path: Path for the output flow direction raster file.
        num_workers: Number of parallel row workers. Defaults to the number of
            available threads. The result does not depend on this value.
        progress_callback: Optional callback function for progress reporting.

    Returns:
        True if interior pits were found, i.e. pits surrounded entirely by
        data cells. These indicate depressions or flats remaining in the DEM.
    """
    return _flow_direction(input_path, output_path, num_workers, progress_callback)


def accumulation(
    input_path: str,
    output_path: str,
    out_type: OutputType | str = OutputType.CELLS,
    log_transform: bool = False,
    clip: bool = False,
    num_workers: int | None = None,
    progress_callback: ProgressCallback | None = None,
) -> bool:
    """
    Calculate D8 flow accumulation from a DEM.

    Flow directions are derived from the DEM, then a unit weight per cell is
    routed downstream. The DEM must be free of depressions and flats.

    Args:
        input_path: Path to the input DEM raster file.
        output_path: Path for the output flow accumulation raster file.
        out_type: 'cells' (default), 'catchment area' or
            'specific contributing area'.
        log_transform: If True, write the natural log of the output.
        clip: If True, record a display maximum clipping the upper 1% tail.
        num_workers: Number of parallel row workers. Defaults to the number of
            available threads.
        progress_callback: Optional callback function for progress reporting.

    Returns:
        True if interior pits were found in the DEM.
    """
    options = AccumulationOptions(OutputType.parse(out_type), log_transform, clip)
    return _flow_accumulation(
        input_path, output_path, options, num_workers, progress_callback
    )


def fill(
    input_path: str,
    output_path: str,
    progress_callback: ProgressCallback | None = None,
) -> None:
    """
    Fill depressions in a DEM using a priority flood.

    Nodata regions touching the raster edge act as outlets. Interior nodata
    holes are left unfilled.

    Args:
        input_path: Path to the input DEM raster file.
        output_path: Path for the output filled DEM raster file.
        progress_callback: Optional callback function for progress reporting.
    """
    _fill_depressions(input_path, output_path, progress_callback)


def depth_in_sink(
    input_path: str,
    output_path: str,
    zero_background: bool = False,
    progress_callback: ProgressCallback | None = None,
) -> None:
    """
    Measure the depth of each cell below the spill level of its depression.

    Args:
        input_path: Path to the input DEM raster file.
        output_path: Path for the output depth raster file.
        zero_background: If True, cells outside depressions are 0 instead of
            nodata.
        progress_callback: Optional callback function for progress reporting.
    """
    background = Background.ZERO if zero_background else Background.NODATA
    _depth_in_sink(input_path, output_path, background, progress_callback)


def downslope_distance(
    dem_path: str,
    streams_path: str,
    output_path: str,
    num_workers: int | None = None,
    progress_callback: ProgressCallback | None = None,
) -> bool:
    """
    Calculate the distance from each cell to the nearest stream cell,
    measured along the D8 flow path.

    Args:
        dem_path: Path to the input DEM raster file.
        streams_path: Path to the streams raster. Non-zero cells are streams.
            Must have the same dimensions as the DEM.
        output_path: Path for the output distance raster file.
        num_workers: Number of parallel row workers. Defaults to the number of
            available threads.
        progress_callback: Optional callback function for progress reporting.

    Returns:
        True if interior pits were found in the DEM.
    """
    return _downslope_distance(
        dem_path, streams_path, output_path, num_workers, progress_callback
    )


__all__ = [
    # Core functions
    "flow_direction",
    "accumulation",
    "fill",
    "depth_in_sink",
    "downslope_distance",
    # Options and enums
    "AccumulationOptions",
    "Background",
    "FlowDirection",
    "OutputType",
    # Types
    "ProgressCallback",
]
