# tests/conftest.py

import pytest
import numpy as np
import geopandas as gpd
from shapely.geometry import Point, box
from rasterio.transform import Affine

from canopytools.raster import Raster

CRS = "EPSG:32619"

@pytest.fixture
def single_peak_chm():
    """
    Returns a 3x3 CHM with one peak in the centre:

        1  2  1
        2 10  2
        1  2  1

    Cells are 1 unit wide and the grid covers (0, 0) - (3, 3).
    """
    data = np.array([
        [1, 2, 1],
        [2, 10, 2],
        [1, 2, 1]
    ], dtype="float32")
    return Raster(data, Affine(1, 0, 0, 0, -1, 3), crs=CRS, nodata=-9999.0)

@pytest.fixture
def two_peak_chm():
    """
    Returns a 5x9 CHM with two cone shaped trees (peaks of 10 and 8) separated by a valley.
    """
    rows, cols = np.indices((5, 9))
    left = 10 - 2.0 * np.maximum(abs(rows - 2), abs(cols - 2))
    right = 8 - 2.0 * np.maximum(abs(rows - 2), abs(cols - 6))
    data = np.clip(np.maximum(left, right), 0, None).astype("float32")
    return Raster(data, Affine(1, 0, 0, 0, -1, 5), crs=CRS, nodata=-9999.0)

@pytest.fixture
def mock_raster_factory(tmp_path):
    """
    Factory fixture writing synthetic single or multi band GeoTIFFs.
    """
    def _make(name, data, transform=Affine(1, 0, 0, 0, -1, 10), nodata=None, band_names=None, crs=CRS):
        raster = Raster(np.asarray(data), transform, crs=crs, nodata=nodata, band_names=band_names)
        return raster.save(tmp_path / name)
    return _make

@pytest.fixture
def treetops_gdf():
    """Three treetops with heights, one per quadrant of a 10x10 extent plus one on the grid edge."""
    return gpd.GeoDataFrame(
        {
            "tree_id": [1, 2, 3],
            "height": [12.0, 20.0, 16.0],
            "geometry": [Point(2.5, 7.5), Point(7.5, 7.5), Point(7.5, 2.5)]
        },
        crs=CRS
    )

@pytest.fixture
def stand_polygons():
    """Two adjacent stands sharing the vertical line x = 5."""
    return gpd.GeoDataFrame(
        {
            "stand": ["A", "B"],
            "geometry": [box(0, 0, 5, 10), box(5, 0, 10, 10)]
        },
        crs=CRS
    )
