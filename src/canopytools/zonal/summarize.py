# src/canopytools/zonal/summarize.py

"""
This module bins point or raster observations into zones (grid cells or
polygons) and reduces each zone's values through caller-supplied functions.

Typical use is turning a treetop layer into stand level inventory rasters:
tree count, mean height or top height per grid cell or per stand polygon.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
import polars as pl
import geopandas as gpd

from canopytools.exceptions import InvalidConfigError
from canopytools.raster.layer import Raster
from canopytools.raster.grid import GridIndex
from canopytools.vector.layer import Vector
from canopytools.vector.io import resolve_vector
from .functions import SummaryFunction, ZoneWarning, default_functions
from .zones import GridZones, ZoneSpec, resolve_zones

log = logging.getLogger(__name__)

__all__ = [
    "ZonalSummary",
    "summarize"
]

COUNT = "count"
RESERVED_NAMES = (COUNT, "zone_id", "row", "col", "x", "y")

FunctionSpec = Union[None, Callable, SummaryFunction, Mapping[str, Union[Callable, SummaryFunction]]]

@dataclass
class _Observations:
    """Observation coordinates and numeric attributes, in input order."""
    xs: np.ndarray
    ys: np.ndarray
    attributes: Dict[str, np.ndarray]
    crs: object
    bounds: Optional[Tuple[float, float, float, float]]
    raster: Optional[Raster] = None
    rows: Optional[np.ndarray] = None
    cols: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return self.xs.size

@dataclass
class ZonalSummary:
    """
    Result of a zonal summarization.

    Args:
        outputs: Statistic name -> Raster (grid zones) or polars DataFrame with
                 'zone_id', 'count' and the statistic (polygon zones). Always holds 'count'.
        names: Statistic names in request order (excluding 'count').
        grid: The grid used for grid zones, None for polygon zones.
        zone_ids: Polygon zone identifiers in input order, None for grid zones.
        skipped: Number of observations outside every zone.
        warnings: Recoverable per-zone reduction failures.
    """
    outputs: Dict[str, Union[Raster, pl.DataFrame]]
    names: List[str]
    grid: Optional[GridIndex] = None
    zone_ids: Optional[np.ndarray] = None
    skipped: int = 0
    warnings: List[ZoneWarning] = field(default_factory=list)

    def __getitem__(self, name: str) -> Union[Raster, pl.DataFrame]:
        return self.outputs[name]

    def __contains__(self, name: str) -> bool:
        return name in self.outputs

    def keys(self):
        return self.outputs.keys()

    def to_frame(self) -> pl.DataFrame:
        """
        Combine every statistic into one table with one row per zone.

        Grid zones are listed in row-major order with their row, column and
        cell centre; polygon zones in input order with their id.
        """
        if self.grid is not None:
            rows, cols = np.indices(self.grid.shape)
            xs, ys = self.grid.centers_of(rows, cols)
            columns = {
                "row": rows.ravel(),
                "col": cols.ravel(),
                "x": xs.ravel(),
                "y": ys.ravel(),
                COUNT: self.outputs[COUNT].get_band(1).ravel(),
            }
            for name in self.names:
                columns[name] = self.outputs[name].get_band(1).ravel()
            return pl.DataFrame(columns)

        frame = self.outputs[COUNT]
        for name in self.names:
            frame = frame.with_columns(self.outputs[name].get_column(name))
        return frame

@resolve_vector
def _observations_from_vector(vector: Vector, attributes: List[str]) -> _Observations:
    gdf = vector.data
    missing = [a for a in attributes if a not in gdf.columns]
    if missing:
        raise InvalidConfigError(
            f"Attributes {missing} not found in observations. Available columns: {gdf.columns.tolist()}"
        )

    xs, ys = vector.coordinates()
    values = {
        a: pd.to_numeric(gdf[a], errors="coerce").to_numpy(dtype=np.float64)
        for a in attributes
    }
    bounds = None
    if xs.size:
        bounds = (float(xs.min()), float(ys.min()), float(xs.max()), float(ys.max()))
    return _Observations(xs, ys, values, vector.crs, bounds)

def _raster_attribute_names(raster: Raster) -> Dict[str, int]:
    if raster.band_names:
        return dict(raster.band_names)
    if raster.count == 1:
        return {"value": 1}
    return {f"b{i}": i for i in range(1, raster.count + 1)}

def _observations_from_raster(raster: Raster, attributes: List[str]) -> _Observations:
    names = _raster_attribute_names(raster)
    missing = [a for a in attributes if a not in names]
    if missing:
        raise InvalidConfigError(f"Attributes {missing} not found in raster bands {list(names)}")

    bands = {name: raster.read_masked(idx) for name, idx in names.items()}
    valid = np.zeros((raster.height, raster.width), dtype=bool)
    for band in bands.values():
        valid |= ~np.isnan(band)

    rows, cols = np.nonzero(valid)
    grid = GridIndex.from_raster(raster)
    xs, ys = grid.centers_of(rows, cols)
    values = {a: bands[a][rows, cols] for a in attributes}

    return _Observations(xs, ys, values, raster.crs, tuple(raster.bounds), raster, rows, cols)

def _build_functions(functions: Optional[Mapping[str, FunctionSpec]]) -> List[Tuple[str, SummaryFunction]]:
    """
    Normalise {attribute -> {name -> function}} into a list of (attribute, SummaryFunction).

    An attribute mapped to None receives the default statistics; an attribute
    mapped to a single function uses '<attribute>_<function name>' as output name.
    """
    if functions is None:
        return []
    if not isinstance(functions, Mapping):
        raise InvalidConfigError("functions must map attribute names to {name: function} mappings")

    adapters = []
    seen = set()
    for attribute, requested in functions.items():
        if requested is None:
            requested = default_functions(attribute)
        elif isinstance(requested, SummaryFunction):
            requested = {requested.name: requested}
        elif callable(requested):
            requested = {f"{attribute}_{getattr(requested, '__name__', 'stat')}": requested}
        elif not isinstance(requested, Mapping):
            raise InvalidConfigError(f"Invalid function specification for attribute '{attribute}'")

        for name, func in requested.items():
            if name in RESERVED_NAMES:
                raise InvalidConfigError(f"'{name}' is a reserved output name")
            if name in seen:
                raise InvalidConfigError(f"Duplicate output name '{name}'")
            seen.add(name)

            if isinstance(func, SummaryFunction):
                adapter = SummaryFunction(name, func.func, func.nodata)
            else:
                adapter = SummaryFunction(name, func)
            adapters.append((attribute, adapter))
    return adapters

def _assign_zones(obs: _Observations, zones: ZoneSpec) -> Tuple[np.ndarray, int, Optional[GridIndex]]:
    """
    Assign each observation to a zone position (-1 when outside every zone).

    Returns:
        Tuple of (zone positions, number of zones, grid or None).
    """
    if isinstance(zones, GridZones):
        if obs.bounds is None and zones.extent is None:
            raise InvalidConfigError("Grid zones need an explicit extent when there are no observations")
        grid = zones.build_index(obs.bounds)
        rows, cols, inside = grid.cells_of(obs.xs, obs.ys)
        positions = np.where(inside, rows * grid.n_cols + cols, -1)
        return positions, grid.n_cells, grid

    if obs.raster is not None:
        burned = zones.assign_cells(obs.raster)
        positions = burned[obs.rows, obs.cols]
    else:
        positions = zones.assign_points(obs.xs, obs.ys, obs.crs)
    return positions, len(zones), None

def summarize(
    observations: Union[str, Path, Vector, gpd.GeoDataFrame, Raster],
    zones,
    functions: Optional[Mapping[str, FunctionSpec]] = None
    ) -> ZonalSummary:
    """
    Summarizes point or raster observations per zone.

    Steps:
        1. Reads observation coordinates and the requested numeric attributes
           (non-numeric values become NA). Raster cells become observations
           located at their cell centres; cells that are no-data in every band are ignored.
        2. Assigns every observation to a zone: a vectorised grid lookup for grid
           zones, a spatial join for points in polygons, or polygon rasterization
           for raster cells in polygons. Observations outside every zone are
           skipped and counted.
        3. Groups observations by zone (stable, input order preserved) so each
           reduction sees the zone's complete bag of values.
        4. Applies every (attribute, function) pair to every non-empty zone through
           its SummaryFunction adapter. Empty zones report count 0 and each
           function's no-data value.

    Args:
        observations: Points (Vector, GeoDataFrame or path) or a Raster.
        zones: Zone definition; see `resolve_zones` for the accepted forms.
        functions: {attribute: {output name: function}}. None computes only the count.

    Returns:
        ZonalSummary: One output per statistic plus 'count', sharing the zone ordering.

    Raises:
        InvalidConfigError: On invalid zones, functions or attributes.
    """
    zones = resolve_zones(zones)
    adapters = _build_functions(functions)
    attributes = list(dict.fromkeys(attribute for attribute, _ in adapters))

    if isinstance(observations, Raster):
        obs = _observations_from_raster(observations, attributes)
    else:
        obs = _observations_from_vector(observations, attributes)

    positions, n_zones, grid = _assign_zones(obs, zones)

    # We count observations outside every zone once, here, instead of per statistic.
    inside = positions >= 0
    skipped = int(np.count_nonzero(~inside))
    if skipped:
        log.warning(f"Skipped {skipped} of {len(obs)} observations lying outside every zone")

    counts = np.bincount(positions[inside], minlength=n_zones).astype(np.int64)
    # We prefill every statistic with its no-data value so empty zones need no reduction call.
    results = {adapter.name: np.full(n_zones, adapter.nodata, dtype=np.float64) for _, adapter in adapters}

    if grid is not None:
        def zone_label(pos):
            return divmod(int(pos), grid.n_cols)
    else:
        def zone_label(pos):
            return zones.zone_ids[pos]

    warnings = []
    # We sort member indices by zone with a stable sort, so each zone's values keep input order,
    # then split the sorted indices wherever the zone changes. Every split is one zone's complete bag.
    members_all = np.flatnonzero(inside)
    if adapters and members_all.size:
        order = members_all[np.argsort(positions[members_all], kind="stable")]
        sorted_positions = positions[order]
        splits = np.flatnonzero(np.diff(sorted_positions)) + 1

        for members in np.split(order, splits):
            pos = positions[members[0]]
            for attribute, adapter in adapters:
                # We let the adapter strip NaN and trap failures; a failure only blanks this zone and statistic.
                value, message = adapter.evaluate(obs.attributes[attribute][members])
                results[adapter.name][pos] = value
                if message is not None:
                    warning = ZoneWarning(zone_label(pos), adapter.name, message)
                    log.warning(f"Zone {warning.zone_id}: '{adapter.name}' failed ({message}); reporting no data")
                    warnings.append(warning)

    names = [adapter.name for _, adapter in adapters]
    outputs = {}

    # We shape outputs after the zones: one Raster per statistic on the grid, or one polars
    # table per statistic keyed by zone id for polygons.
    if grid is not None:
        outputs[COUNT] = Raster(
            data=counts.reshape(grid.shape).astype(np.int32),
            transform=grid.transform,
            crs=obs.crs,
            band_names={COUNT: 1}
        )
        for _, adapter in adapters:
            outputs[adapter.name] = Raster(
                data=results[adapter.name].reshape(grid.shape),
                transform=grid.transform,
                crs=obs.crs,
                nodata=adapter.nodata,
                band_names={adapter.name: 1}
            )
        zone_ids = None
    else:
        zone_ids = zones.zone_ids
        outputs[COUNT] = pl.DataFrame({"zone_id": zone_ids.tolist(), COUNT: counts})
        for _, adapter in adapters:
            outputs[adapter.name] = pl.DataFrame({
                "zone_id": zone_ids.tolist(),
                COUNT: counts,
                adapter.name: results[adapter.name]
            })

    log.info(
        f"Summarized {len(obs) - skipped} observations into {n_zones} zones "
        f"({len(names)} statistics, {len(warnings)} warnings)"
    )

    return ZonalSummary(
        outputs=outputs,
        names=names,
        grid=grid,
        zone_ids=zone_ids,
        skipped=skipped,
        warnings=warnings
    )
