# src/canopytools/zonal/zones.py

"""
This module defines the zones observations are aggregated into: the cells of
a regular grid, or an externally supplied set of polygons.
"""

import logging
from numbers import Real
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import geopandas as gpd
from rasterio.features import rasterize

from canopytools.exceptions import InvalidConfigError
from canopytools.raster.layer import Raster
from canopytools.raster.grid import GridIndex
from canopytools.vector.layer import Vector
from canopytools.vector.io import as_vector

log = logging.getLogger(__name__)

__all__ = [
    "GridZones",
    "PolygonZones",
    "ZoneSpec",
    "resolve_zones"
]

class GridZones:
    """
    Zones formed by the cells of a regular grid.

    Args:
        resolution: Cell size; a scalar for square cells or a (width, height) pair.
        extent: (left, bottom, right, top) covered by the grid. Defaults to the
                bounds of the observations being summarized.
    """

    def __init__(
        self,
        resolution: Union[float, Sequence[float]],
        extent: Optional[Tuple[float, float, float, float]] = None
    ):
        self.resolution = resolution
        self.extent = extent
        self._grid = None
        if extent is not None:
            self._grid = GridIndex(extent, resolution)
        else:
            # Fail fast on a bad resolution even before the extent is known
            GridIndex((0.0, 0.0, 0.0, 0.0), resolution)

    @classmethod
    def from_grid(cls, grid: GridIndex) -> 'GridZones':
        zones = cls((grid.cell_width, grid.cell_height), grid.bounds)
        zones._grid = grid
        return zones

    def build_index(self, observation_bounds: Tuple[float, float, float, float]) -> GridIndex:
        """Return the grid, deriving it from the observations' bounds when no extent was given."""
        if self._grid is not None:
            return self._grid
        return GridIndex(observation_bounds, self.resolution)

    def __repr__(self) -> str:
        return f"<GridZones resolution={self.resolution} extent={self.extent}>"

class PolygonZones:
    """
    Zones formed by an externally supplied set of polygons.

    Output tables keep the polygons' input order.

    Args:
        vector: Polygon Vector, GeoDataFrame or path.
        id_col: Column holding zone identifiers. Defaults to 1..N in input order.
    """

    def __init__(
        self,
        vector: Union[str, Path, Vector, gpd.GeoDataFrame],
        id_col: Optional[str] = None
    ):
        self.vector = as_vector(vector)
        gdf = self.vector.data

        if id_col is not None:
            if id_col not in gdf.columns:
                raise InvalidConfigError(
                    f"Zone id column '{id_col}' not found. Available columns: {gdf.columns.tolist()}"
                )
            zone_ids = gdf[id_col].to_numpy()
            if len(set(zone_ids.tolist())) != len(zone_ids):
                raise InvalidConfigError(f"Zone id column '{id_col}' contains duplicates")
        else:
            zone_ids = np.arange(1, len(gdf) + 1, dtype=np.int64)

        self.id_col = id_col
        self.zone_ids = zone_ids

    def __len__(self) -> int:
        return len(self.vector)

    def assign_points(self, xs: np.ndarray, ys: np.ndarray, crs=None) -> np.ndarray:
        """
        Return, for each point, the positional index of the polygon containing it (-1 if none).

        Points on a shared boundary go to the first matching polygon in input order.
        """
        polygons = self.vector.data
        if crs is not None and polygons.crs is not None and polygons.crs != crs:
            log.info(f"Reprojecting zones from {polygons.crs} to {crs}")
            polygons = polygons.to_crs(crs)

        zone_index = np.full(len(xs), -1, dtype=np.int64)
        if len(xs) == 0 or len(polygons) == 0:
            return zone_index

        points = gpd.GeoDataFrame(
            geometry=gpd.points_from_xy(xs, ys),
            crs=polygons.crs
        )
        zones = gpd.GeoDataFrame(
            {"zone_pos": np.arange(len(polygons), dtype=np.int64)},
            geometry=polygons.geometry.to_numpy(),
            crs=polygons.crs
        )

        joined = gpd.sjoin(points, zones, how="inner", predicate="intersects")
        first = joined.sort_values("zone_pos", kind="stable").groupby(level=0)["zone_pos"].first()
        zone_index[first.index.to_numpy()] = first.to_numpy()
        return zone_index

    def assign_cells(self, raster: Raster) -> np.ndarray:
        """
        Rasterize the polygons onto a raster's grid.

        Returns:
            np.ndarray: 2D int64 array of polygon positional indices, -1 outside every polygon.
                        Where polygons overlap, the first one in input order wins.
        """
        polygons = self.vector.data
        if raster.crs is not None and polygons.crs is not None and polygons.crs != raster.crs:
            log.info(f"Reprojecting zones from {polygons.crs} to {raster.crs}")
            polygons = polygons.to_crs(raster.crs)

        if len(polygons) == 0:
            return np.full((raster.height, raster.width), -1, dtype=np.int64)

        # Later shapes overwrite earlier ones, so burn in reverse order
        shapes = [
            (geom, pos + 1)
            for pos, geom in reversed(list(enumerate(polygons.geometry)))
            if geom is not None and not geom.is_empty
        ]
        burned = rasterize(
            shapes,
            out_shape=(raster.height, raster.width),
            transform=raster.transform,
            fill=0,
            dtype="int32"
        )
        return burned.astype(np.int64) - 1

    def __repr__(self) -> str:
        return f"<PolygonZones zones={len(self)} id_col={self.id_col}>"

ZoneSpec = Union[GridZones, PolygonZones]

def resolve_zones(zones) -> ZoneSpec:
    """
    Coerce the accepted zone definitions into a zone spec.

    Accepts a GridZones/PolygonZones instance, a number or (width, height) pair
    (grid resolution), a Raster (reuse its grid), or polygons as a Vector,
    GeoDataFrame or path.
    """
    if isinstance(zones, (GridZones, PolygonZones)):
        return zones
    if isinstance(zones, Raster):
        return GridZones.from_grid(GridIndex.from_raster(zones))
    if isinstance(zones, (Vector, gpd.GeoDataFrame, str, Path)):
        return PolygonZones(zones)
    if isinstance(zones, Real) and not isinstance(zones, bool):
        return GridZones(zones)
    if isinstance(zones, (tuple, list)) and len(zones) == 2:
        return GridZones(tuple(zones))
    raise InvalidConfigError(f"Cannot interpret {type(zones).__name__} as a zone definition")
