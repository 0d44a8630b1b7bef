import uuid

import numpy as np
import pytest
from osgeo import gdal

from hydroroute import downslope_distance
from hydroroute._downslope_distance import downslope_distance_for_grid

NODATA = -9999.0


@pytest.fixture(name="ramp_dem")
def fixture_ramp_dem():
    """A DEM falling from west to east onto a stream in the last column."""
    return np.array(
        [
            [5.0, 4.0, 3.0, 2.0, 1.0],
            [5.0, 4.0, 3.0, 2.0, 1.0],
            [5.0, 4.0, 3.0, 2.0, 1.0],
        ]
    )


@pytest.fixture(name="ramp_streams")
def fixture_ramp_streams():
    streams = np.zeros((3, 5), dtype=np.float64)
    streams[:, 4] = 1.0
    return streams


def write_raster(array, nodata):
    path = f"/vsimem/raster_{uuid.uuid4()}.tif"
    driver = gdal.GetDriverByName("GTiff")
    dataset = driver.Create(path, array.shape[1], array.shape[0], 1, gdal.GDT_Float32)
    dataset.SetGeoTransform((0, 10, 0, 0, 0, -10))
    band = dataset.GetRasterBand(1)
    band.WriteArray(array)
    band.SetNoDataValue(nodata)
    dataset = None
    return path


def test_distance_along_flow_path(ramp_dem, ramp_streams):
    distance, interior_pit_found = downslope_distance_for_grid(
        ramp_dem, NODATA, ramp_streams, NODATA
    )
    expected = np.repeat([[4.0, 3.0, 2.0, 1.0, 0.0]], 3, axis=0)
    np.testing.assert_array_equal(distance, expected)
    assert not interior_pit_found


def test_distance_uses_cell_size(ramp_dem, ramp_streams):
    distance, _ = downslope_distance_for_grid(
        ramp_dem, NODATA, ramp_streams, NODATA, cell_size_x=2.0, cell_size_y=3.0
    )
    np.testing.assert_array_equal(distance[1], [8.0, 6.0, 4.0, 2.0, 0.0])


def test_diagonal_distance():
    dem = np.array(
        [
            [9.0, 9.0, 9.0],
            [9.0, 5.0, 9.0],
            [9.0, 9.0, 1.0],
        ]
    )
    streams = np.zeros((3, 3))
    streams[2, 2] = 1.0
    distance, _ = downslope_distance_for_grid(dem, NODATA, streams, NODATA)
    assert distance[1, 1] == pytest.approx(np.sqrt(2.0))
    assert distance[0, 0] == pytest.approx(2.0 * np.sqrt(2.0))


def test_pits_off_stream_are_nodata():
    """Cells draining into a pit never reach a stream."""
    dem = np.array(
        [
            [5.0, 4.0, 3.0, 4.0, 5.0],
            [5.0, 4.0, 3.0, 4.0, 5.0],
            [5.0, 4.0, 3.0, 4.0, 5.0],
        ]
    )
    streams = np.zeros((3, 5))
    streams[0, 4] = 1.0
    distance, _ = downslope_distance_for_grid(dem, NODATA, streams, NODATA)
    expected = np.full((3, 5), NODATA)
    expected[0, 4] = 0.0
    np.testing.assert_array_equal(distance, expected)


def test_streams_nodata_is_not_a_stream(ramp_dem, ramp_streams):
    ramp_streams[1, 4] = 255.0
    distance, _ = downslope_distance_for_grid(
        ramp_dem, NODATA, ramp_streams, 255.0
    )
    # the middle row now drains into a pit at the east edge
    assert np.all(distance[1] == NODATA)
    assert distance[0, 0] == 4.0


def test_dem_nodata(ramp_dem, ramp_streams):
    ramp_dem[2, 2] = NODATA
    distance, _ = downslope_distance_for_grid(ramp_dem, NODATA, ramp_streams, NODATA)
    assert distance[2, 2] == NODATA
    # routed around the hole through the north east neighbor
    assert distance[2, 1] == pytest.approx(2.0 + np.sqrt(2.0))


def test_shape_mismatch(ramp_dem):
    with pytest.raises(ValueError, match="same number of rows and columns"):
        downslope_distance_for_grid(ramp_dem, NODATA, np.zeros((3, 4)), NODATA)


def test_downslope_distance_file(ramp_dem, ramp_streams):
    dem_path = write_raster(ramp_dem, NODATA)
    streams_path = write_raster(ramp_streams, 0.0)
    output_path = f"/vsimem/distance_{uuid.uuid4()}.tif"

    downslope_distance(dem_path, streams_path, output_path)

    dataset = gdal.Open(output_path)
    band = dataset.GetRasterBand(1)
    np.testing.assert_array_equal(band.ReadAsArray()[0], [40.0, 30.0, 20.0, 10.0, 0.0])
    assert band.GetMetadataItem("STREAMS_FILE") == streams_path
    dataset = None

    for path in (dem_path, streams_path, output_path):
        gdal.Unlink(path)


def test_downslope_distance_file_shape_mismatch(ramp_dem):
    dem_path = write_raster(ramp_dem, NODATA)
    streams_path = write_raster(np.ones((2, 5)), 0.0)
    output_path = f"/vsimem/distance_{uuid.uuid4()}.tif"

    with pytest.raises(ValueError):
        downslope_distance(dem_path, streams_path, output_path)
    assert gdal.VSIStatL(output_path) is None

    gdal.Unlink(dem_path)
    gdal.Unlink(streams_path)
