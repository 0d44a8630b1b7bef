import math

import numpy as np
from numba import njit  # type: ignore[attr-defined]
from osgeo import gdal

from hydroroute._util.constants import DEFAULT_CHUNK_SIZE, DEFAULT_NODATA
from hydroroute._util.progress import ProgressTracker

gdal.UseExceptions()


@njit
def is_nodata(value: float, nodata_value: float) -> bool:
    """True if value is the nodata sentinel (or NaN)."""
    return value == nodata_value or np.isnan(value)


@njit
def value_at(grid: np.ndarray, row: int, col: int, outside_value):
    """
    Read a cell, returning outside_value for coordinates beyond the grid.

    Lets 8-neighbour scans run without explicit bounds checks. Border cells
    see a virtual frame of outside_value around the raster.
    """
    if row < 0 or col < 0 or row >= grid.shape[0] or col >= grid.shape[1]:
        return outside_value
    return grid[row, col]


@njit
def grid_lengths(cell_size_x: float, cell_size_y: float) -> np.ndarray:
    """Distance to each of the 8 neighbours, indexed by direction code."""
    diagonal = math.sqrt(cell_size_x * cell_size_x + cell_size_y * cell_size_y)
    return np.array(
        [
            diagonal,
            cell_size_x,
            diagonal,
            cell_size_y,
            diagonal,
            cell_size_x,
            diagonal,
            cell_size_y,
        ],
        dtype=np.float64,
    )


def nodata_mask(array: np.ndarray, nodata_value: float) -> np.ndarray:
    """Boolean mask of nodata cells."""
    mask = np.isnan(array)
    if not np.isnan(nodata_value):
        mask |= array == nodata_value
    return mask


class Grid:
    """
    A 2D raster held in memory with its nodata sentinel and georeferencing.

    Reads outside the grid return the nodata value, which is what the
    neighbourhood algorithms expect at the raster edge.

    Attributes:
        data (np.ndarray): The cell values, shape (rows, cols).
        nodata (float): The nodata sentinel.
        cell_size_x (float): Cell width in map units.
        cell_size_y (float): Cell height in map units (always positive).
        geotransform (tuple): GDAL geotransform of the source raster.
        projection (str): WKT projection of the source raster.
    """

    def __init__(
        self,
        data: np.ndarray,
        nodata: float = DEFAULT_NODATA,
        cell_size_x: float = 1.0,
        cell_size_y: float = 1.0,
        geotransform: tuple | None = None,
        projection: str = "",
    ) -> None:
        if data.ndim != 2:
            raise ValueError(f"Grid data must be 2D, got shape {data.shape}")
        self.data = data
        self.nodata = float(nodata)
        self.cell_size_x = float(cell_size_x)
        self.cell_size_y = float(cell_size_y)
        if geotransform is None:
            geotransform = (0.0, self.cell_size_x, 0.0, 0.0, 0.0, -self.cell_size_y)
        self.geotransform = tuple(geotransform)
        self.projection = projection

    def get(self, row: int, col: int) -> float:
        if row < 0 or col < 0 or row >= self.rows or col >= self.cols:
            return self.nodata
        return float(self.data[row, col])

    def set(self, row: int, col: int, value: float) -> None:
        self.data[row, col] = value

    @property
    def shape(self) -> tuple[int, int]:
        return self.rows, self.cols

    @property
    def rows(self) -> int:
        return int(self.data.shape[0])

    @property
    def cols(self) -> int:
        return int(self.data.shape[1])

    def dimensions(self) -> tuple[int, int]:
        return self.rows, self.cols

    def cell_size(self) -> tuple[float, float]:
        return self.cell_size_x, self.cell_size_y

    def with_data(self, data: np.ndarray, nodata: float | None = None) -> "Grid":
        """Wrap data as a grid sharing this grid's georeferencing."""
        if data.shape != self.data.shape:
            raise ValueError(
                f"Output data shape {data.shape} does not match grid shape {self.data.shape}"
            )
        return Grid(
            data,
            self.nodata if nodata is None else nodata,
            self.cell_size_x,
            self.cell_size_y,
            self.geotransform,
            self.projection,
        )


def check_dimensions(first, second, description: str = "input") -> None:
    """
    Raise ValueError if two companion grids differ in rows or columns.

    Accepts Grids or numpy arrays. Called before any processing so no
    partial output is ever produced.
    """
    if tuple(first.shape) != tuple(second.shape):
        raise ValueError(
            f"The {description} rasters must have the same number of rows and columns: "
            f"{first.shape[0]}x{first.shape[1]} != {second.shape[0]}x{second.shape[1]}"
        )


def open_dataset(path: str, access=gdal.GA_ReadOnly) -> gdal.Dataset:
    """Open a GDAL dataset, raising ValueError if it cannot be opened."""
    try:
        dataset = gdal.Open(path, access)
    except RuntimeError as exc:
        raise ValueError(f"Could not open raster file {path}") from exc
    if dataset is None:
        raise ValueError(f"Could not open raster file {path}")
    return dataset


def read_grid(
    path: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    tracker: ProgressTracker | None = None,
) -> Grid:
    """
    Read band 1 of a raster into a float64 Grid.

    The band is read in blocks of chunk_size rows. A band without a nodata
    value is treated as having NaN nodata.

    Parameters
    ----------
    path : str
        Path to a GDAL supported raster.
    chunk_size : int, optional
        Rows read per block, by default DEFAULT_CHUNK_SIZE.
    tracker : ProgressTracker | None, optional
        Receives "Chunk i/n" progress while reading.

    Returns
    -------
    Grid
    """
    dataset = open_dataset(path)
    band = dataset.GetRasterBand(1)
    nodata_value = band.GetNoDataValue()
    if nodata_value is None:
        nodata_value = DEFAULT_NODATA

    rows, cols = dataset.RasterYSize, dataset.RasterXSize
    data = np.empty((rows, cols), dtype=np.float64)
    chunk_size = max(1, chunk_size)
    n_chunks = max(1, math.ceil(rows / chunk_size))
    for i, row_start in enumerate(range(0, rows, chunk_size)):
        n_rows = min(chunk_size, rows - row_start)
        data[row_start : row_start + n_rows, :] = band.ReadAsArray(
            0, row_start, cols, n_rows
        )
        if tracker is not None:
            tracker.step_tracker(i + 1, n_chunks, f"Chunk {i + 1}/{n_chunks}")

    transform = dataset.GetGeoTransform()
    grid = Grid(
        data,
        nodata_value,
        abs(transform[1]),
        abs(transform[5]),
        transform,
        dataset.GetProjection(),
    )
    band = None
    dataset = None
    return grid


def create_dataset(
    output_path: str,
    nodata: float,
    gdal_type: int,
    x_size: int,
    y_size: int,
    geotransform: tuple,
    projection: str,
) -> gdal.Dataset:
    """
    Create a single band GeoTIFF with the given georeferencing.

    Parameters
    ----------
    output_path : str
        Path of the GeoTIFF to create (may be a /vsimem/ path).
    nodata : float
        Nodata value of the band.
    gdal_type : int
        GDAL data type, e.g. gdal.GDT_Float32.
    x_size, y_size : int
        Columns and rows.
    geotransform : tuple
        GDAL geotransform.
    projection : str
        WKT projection.

    Returns
    -------
    gdal.Dataset
    """
    driver = gdal.GetDriverByName("GTiff")
    dataset = driver.Create(
        output_path,
        x_size,
        y_size,
        1,
        gdal_type,
        options=["TILED=YES", "COMPRESS=DEFLATE", "BIGTIFF=IF_SAFER"],
    )
    dataset.SetGeoTransform(geotransform)
    dataset.SetProjection(projection)
    band = dataset.GetRasterBand(1)
    band.SetNoDataValue(nodata)
    band = None
    return dataset


def write_grid(
    output_path: str,
    grid: Grid,
    gdal_type: int = gdal.GDT_Float32,
    metadata: dict[str, str] | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    tracker: ProgressTracker | None = None,
) -> None:
    """
    Write a Grid to a GeoTIFF, block by block.

    Parameters
    ----------
    output_path : str
        Path of the GeoTIFF to create.
    grid : Grid
        The grid to write; its nodata and georeferencing are used.
    gdal_type : int, optional
        GDAL data type of the output band, by default gdal.GDT_Float32.
    metadata : dict[str, str] | None, optional
        Band metadata items, e.g. the tool name and input file.
    chunk_size : int, optional
        Rows written per block.
    tracker : ProgressTracker | None, optional
        Receives "Chunk i/n" progress while writing.
    """
    output_ds = create_dataset(
        output_path,
        grid.nodata,
        gdal_type,
        grid.cols,
        grid.rows,
        grid.geotransform,
        grid.projection,
    )
    output_band = output_ds.GetRasterBand(1)
    if metadata:
        output_band.SetMetadata({key: str(value) for key, value in metadata.items()})

    chunk_size = max(1, chunk_size)
    n_chunks = max(1, math.ceil(grid.rows / chunk_size))
    for i, row_start in enumerate(range(0, grid.rows, chunk_size)):
        output_band.WriteArray(grid.data[row_start : row_start + chunk_size, :], 0, row_start)
        if tracker is not None:
            tracker.step_tracker(i + 1, n_chunks, f"Chunk {i + 1}/{n_chunks}")

    # Explicitly flush cache and close datasets to ensure
    # data is fully written to disk before next step reads it
    output_band.FlushCache()
    output_ds.FlushCache()
    output_band = None
    output_ds = None
