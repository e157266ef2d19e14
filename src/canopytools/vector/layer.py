# src/canopytools/vector/layer.py

"""
This module defines the core data structure for vector data (treetop points,
crown polygons and polygon zones).
"""

import logging
from typing import Tuple

import numpy as np
import geopandas as gpd

log = logging.getLogger(__name__)

__all__ = [
    "Vector"
]

class Vector:
    """
    Thin wrapper around a GeoDataFrame.

    Treetops are carried as point Vectors (one row per tree, attributes in
    columns); crowns and polygon zones as polygon Vectors.
    """
    def __init__(self, data: gpd.GeoDataFrame):
        if not isinstance(data, gpd.GeoDataFrame):
            raise TypeError(f"Expected GeoDataFrame, got {type(data)}")
        self._data = data

    @property
    def data(self) -> gpd.GeoDataFrame:
        return self._data

    @data.setter
    def data(self, value: gpd.GeoDataFrame):
        if not isinstance(value, gpd.GeoDataFrame):
            raise TypeError(f"Expected GeoDataFrame, got {type(value)}")
        self._data = value

    @property
    def crs(self):
        return self._data.crs

    @property
    def bounds(self):
        return self._data.total_bounds

    @property
    def columns(self):
        return self._data.columns.tolist()

    def to_crs(self, target_crs, inplace: bool = False) -> 'Vector':
        if self.crs is None:
            raise ValueError("Vector has no CRS. Cannot reproject.")

        new_gdf = self._data.to_crs(target_crs)
        if inplace:
            self._data = new_gdf
            return self
        return Vector(new_gdf)

    def coordinates(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Return (xs, ys) for every feature. Non-point geometries are reduced to their centroid.
        """
        geoms = self._data.geometry
        if len(geoms) == 0:
            return np.empty(0, dtype=np.float64), np.empty(0, dtype=np.float64)

        if not (geoms.geom_type == "Point").all():
            log.debug("Reducing non-point geometries to centroids")
            geoms = geoms.centroid
        return geoms.x.to_numpy(dtype=np.float64), geoms.y.to_numpy(dtype=np.float64)

    def copy(self) -> 'Vector':
        return Vector(self._data.copy())

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self):
        return f"<Vector features={len(self._data)} crs={self.crs}>"
