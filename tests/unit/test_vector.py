# tests/unit/test_vector.py

import pytest
import numpy as np
import geopandas as gpd
from shapely.geometry import Point, box

from canopytools.vector import Vector, load_vector, save_vector, as_vector, resolve_vector

def test_vector_requires_geodataframe():
    with pytest.raises(TypeError):
        Vector({"geometry": [Point(0, 0)]})

def test_coordinates_of_points(treetops_gdf):
    xs, ys = Vector(treetops_gdf).coordinates()
    np.testing.assert_array_equal(xs, [2.5, 7.5, 7.5])
    np.testing.assert_array_equal(ys, [7.5, 7.5, 2.5])

def test_coordinates_of_polygons_use_centroids(stand_polygons):
    xs, ys = Vector(stand_polygons).coordinates()
    np.testing.assert_allclose(xs, [2.5, 7.5])
    np.testing.assert_allclose(ys, [5.0, 5.0])

def test_coordinates_of_empty_layer():
    xs, ys = Vector(gpd.GeoDataFrame(geometry=[], crs="EPSG:32619")).coordinates()
    assert xs.size == 0 and ys.size == 0

def test_save_load_roundtrip(tmp_path, treetops_gdf):
    path = save_vector(Vector(treetops_gdf), tmp_path / "trees.gpkg")
    loaded = load_vector(path)

    assert len(loaded) == 3
    assert loaded.crs == treetops_gdf.crs
    assert loaded.data["height"].tolist() == [12.0, 20.0, 16.0]

def test_as_vector_coercion(tmp_path, treetops_gdf):
    vector = Vector(treetops_gdf)
    assert as_vector(vector) is vector
    assert as_vector(treetops_gdf).data is treetops_gdf

    with pytest.raises(FileNotFoundError):
        as_vector(tmp_path / "missing.gpkg")
    with pytest.raises(TypeError):
        as_vector(42)

def test_resolve_vector_decorator(stand_polygons):
    @resolve_vector
    def n_features(vector):
        return len(vector)

    assert n_features(stand_polygons) == 2

def test_to_crs_requires_crs():
    vector = Vector(gpd.GeoDataFrame(geometry=[box(0, 0, 1, 1)]))
    with pytest.raises(ValueError):
        vector.to_crs("EPSG:4326")
