import uuid

import numpy as np
import pytest
from osgeo import gdal

from hydroroute import depth_in_sink, fill
from hydroroute._fill_depressions import depth_in_sink_for_grid, priority_flood_fill
from hydroroute.codes import Background

NODATA = -9999.0


@pytest.fixture(name="pit_dem")
def fixture_pit_dem():
    """A single cell depression inside a ring of nodata."""
    n = NODATA
    return np.array(
        [
            [n, n, n, n, n],
            [n, 5, 6, 7, n],
            [n, 8, 1, 9, n],
            [n, 10, 11, 12, n],
            [n, n, n, n, n],
        ],
        dtype=np.float64,
    )


@pytest.fixture(name="basin_dem")
def fixture_basin_dem():
    """A 3x3 basin at elevation 1 inside a rim at elevation 10."""
    dem = np.full((5, 5), 10.0)
    dem[1:4, 1:4] = 1.0
    return dem


@pytest.fixture(name="random_dem")
def fixture_random_dem():
    rng = np.random.default_rng(3)
    dem = rng.uniform(0.0, 20.0, size=(40, 33))
    dem[0:3, 5:9] = NODATA
    dem[20:23, 15:18] = NODATA
    return dem


def write_dem(dem):
    path = f"/vsimem/dem_{uuid.uuid4()}.tif"
    driver = gdal.GetDriverByName("GTiff")
    dataset = driver.Create(path, dem.shape[1], dem.shape[0], 1, gdal.GDT_Float32)
    dataset.SetGeoTransform((0, 1, 0, 0, 0, -1))
    band = dataset.GetRasterBand(1)
    band.WriteArray(dem)
    band.SetNoDataValue(NODATA)
    dataset = None
    return path


def read_band(path):
    dataset = gdal.Open(path)
    band = dataset.GetRasterBand(1)
    return band.ReadAsArray(), band.GetMetadata()


def test_single_cell_depression(pit_dem):
    filled = priority_flood_fill(pit_dem, NODATA)
    assert filled[2, 2] == 5.0
    depth = depth_in_sink_for_grid(pit_dem, NODATA)
    assert depth[2, 2] == 5.0 - 1.0
    mask = np.ones_like(depth, dtype=bool)
    mask[2, 2] = False
    assert np.all(depth[mask] == NODATA)


def test_zero_background(pit_dem):
    depth = depth_in_sink_for_grid(pit_dem, NODATA, Background.ZERO)
    assert depth[2, 2] == 4.0
    assert depth[1, 1] == 0.0
    # nodata stays nodata whatever the background
    assert depth[0, 0] == NODATA


def test_basin_fills_to_rim(basin_dem):
    filled = priority_flood_fill(basin_dem, NODATA)
    np.testing.assert_array_equal(filled, np.full((5, 5), 10.0))


def test_interior_nodata_is_not_an_outlet(basin_dem):
    basin_dem[2, 2] = NODATA
    filled = priority_flood_fill(basin_dem, NODATA)
    assert filled[2, 2] == NODATA
    assert np.all(filled[1, 1:4] == 10.0)
    assert np.all(filled[3, 1:4] == 10.0)


def test_edge_connected_nodata_is_an_outlet(basin_dem):
    basin_dem[2, 0] = NODATA
    filled = priority_flood_fill(basin_dem, NODATA)
    np.testing.assert_array_equal(filled[1:4, 1:4], np.ones((3, 3)))
    assert filled[2, 0] == NODATA


def test_cells_enclosed_by_nodata_keep_their_elevation():
    dem = np.full((7, 7), 10.0)
    dem[2:5, 2:5] = NODATA
    dem[3, 3] = 1.0
    filled = priority_flood_fill(dem, NODATA)
    assert filled[3, 3] == 1.0
    depth = depth_in_sink_for_grid(dem, NODATA, Background.ZERO, filled)
    assert depth[3, 3] == 0.0


def test_fill_properties(random_dem):
    filled = priority_flood_fill(random_dem, NODATA)
    valid = random_dem != NODATA
    assert np.all(filled[valid] >= random_dem[valid])
    assert np.all(filled[~valid] == NODATA)
    # the border cells are outlets and never raised
    np.testing.assert_array_equal(filled[-1, :], random_dem[-1, :])
    np.testing.assert_array_equal(priority_flood_fill(filled, NODATA), filled)


def test_depth_matches_fill(random_dem):
    filled = priority_flood_fill(random_dem, NODATA)
    depth = depth_in_sink_for_grid(random_dem, NODATA, Background.ZERO)
    valid = random_dem != NODATA
    np.testing.assert_allclose(depth[valid], filled[valid] - random_dem[valid])
    assert np.all(depth[valid] >= 0.0)


def test_all_nodata():
    dem = np.full((4, 6), np.nan)
    filled = priority_flood_fill(dem, np.nan)
    assert np.all(np.isnan(filled))
    depth = depth_in_sink_for_grid(dem, np.nan, Background.ZERO)
    assert np.all(np.isnan(depth))


def test_single_cell():
    filled = priority_flood_fill(np.array([[3.0]]), NODATA)
    np.testing.assert_array_equal(filled, [[3.0]])


def test_filled_shape_mismatch(pit_dem):
    with pytest.raises(ValueError, match="same number of rows and columns"):
        depth_in_sink_for_grid(pit_dem, NODATA, filled=np.zeros((4, 5)))


def test_unknown_background(pit_dem):
    with pytest.raises(ValueError, match="Unknown background"):
        depth_in_sink_for_grid(pit_dem, NODATA, "zero")


def test_fill_file(basin_dem):
    input_path = write_dem(basin_dem)
    output_path = f"/vsimem/filled_{uuid.uuid4()}.tif"
    fill(input_path, output_path)

    filled, metadata = read_band(output_path)
    np.testing.assert_array_equal(filled, np.full((5, 5), 10.0))
    assert metadata["CREATED_BY"] == "fill_depressions"
    assert metadata["INPUT_FILE"] == input_path

    gdal.Unlink(input_path)
    gdal.Unlink(output_path)


@pytest.mark.parametrize(
    "zero_background, background_value", [(False, NODATA), (True, 0.0)]
)
def test_depth_in_sink_file(basin_dem, zero_background, background_value):
    input_path = write_dem(basin_dem)
    output_path = f"/vsimem/depth_{uuid.uuid4()}.tif"
    depth_in_sink(input_path, output_path, zero_background)

    depth, metadata = read_band(output_path)
    np.testing.assert_array_equal(depth[1:4, 1:4], np.full((3, 3), 9.0))
    assert np.all(depth[0, :] == background_value)
    assert metadata["CREATED_BY"] == "depth_in_sink"

    gdal.Unlink(input_path)
    gdal.Unlink(output_path)
