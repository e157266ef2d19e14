# src/canopytools/chm/delineate_crown.py

"""
This module implements tree crown delineation from canopy height models and
treetop locations, using marker-controlled region growing over a single,
height-ordered frontier shared by all trees.
"""

import heapq
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union
from pathlib import Path

import numpy as np
from numba import jit
import geopandas as gpd
from rasterio.features import shapes
from shapely.geometry import shape
from shapely.ops import unary_union

from canopytools.exceptions import InvalidConfigError, OutOfExtentError
from canopytools.raster.layer import Raster
from canopytools.raster.io import resolve_raster
from canopytools.raster.grid import GridIndex
from canopytools.vector.layer import Vector
from canopytools.vector.io import as_vector

log = logging.getLogger(__name__)

__all__ = [
    "DelineationParams",
    "Region",
    "CrownMap",
    "delineate_crowns"
]

BACKGROUND = 0

NEIGHBORHOODS = {
    "rook": ((-1, 0), (0, -1), (0, 1), (1, 0)),
    "queen": ((-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1)),
}

@dataclass
class DelineationParams:
    """
    Parameters for tree crown delineation.

    Args:
        min_height: Cells lower than this are never added to a crown.
        tolerance: A cell joins a crown only if its height is at most seed_height * (1 + tolerance).
        max_radius: Maximum distance (ground units) between a crown cell and its treetop. None disables it.
        neighborhood: Connectivity used when growing crowns ("queen" = 8 neighbours, "rook" = 4).
        band: 1-based band index of the CHM raster holding heights.
    """
    min_height: float = 0.0
    tolerance: float = 0.0
    max_radius: Optional[float] = None
    neighborhood: str = "queen"
    band: int = 1

    def validate(self):
        if not np.isfinite(self.min_height):
            raise InvalidConfigError(f"min_height must be finite, got {self.min_height}")
        if not (np.isfinite(self.tolerance) and self.tolerance >= 0):
            raise InvalidConfigError(f"tolerance must be a finite value >= 0, got {self.tolerance}")
        if self.max_radius is not None and not self.max_radius >= 0:
            raise InvalidConfigError(f"max_radius must be >= 0, got {self.max_radius}")
        if self.neighborhood not in NEIGHBORHOODS:
            raise InvalidConfigError(
                f"Unknown neighborhood: {self.neighborhood}. Options: {tuple(NEIGHBORHOODS)}"
            )

@dataclass
class Region:
    """
    The set of raster cells owned by one treetop.

    Args:
        tree_id: Identifier of the owning treetop.
        rows: Row indices of the owned cells.
        cols: Column indices of the owned cells.
        height: Height of the seed cell (NaN when the seed fell on no-data or outside the raster).
        cell_area: Ground area of one raster cell.
    """
    tree_id: int
    rows: np.ndarray
    cols: np.ndarray
    height: float = float("nan")
    cell_area: float = 1.0

    @property
    def cell_count(self) -> int:
        return int(self.rows.size)

    @property
    def is_empty(self) -> bool:
        return self.rows.size == 0

    @property
    def area(self) -> float:
        return self.cell_count * self.cell_area

    @property
    def diameter(self) -> float:
        """Diameter of a circle with the same area as the crown."""
        return 2.0 * math.sqrt(self.area / math.pi)

    def cells(self) -> set:
        return set(zip(self.rows.tolist(), self.cols.tolist()))

@dataclass
class CrownMap:
    """
    Result of crown delineation.

    Args:
        labels: Single band int32 Raster; each cell holds its owning tree_id, 0 for background.
        regions: One Region per input treetop, keyed by tree_id.
    """
    labels: Raster
    regions: Dict[int, Region] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.regions)

    def __getitem__(self, tree_id: int) -> Region:
        return self.regions[tree_id]

    def to_polygons(self) -> Vector:
        """
        Convert labelled crowns to polygons.

        A crown whose cells touch only diagonally is dissolved into a MultiPolygon,
        so there is always one feature per non-empty crown.

        Returns:
            Vector: Columns 'tree_id', 'height', 'crown_area', 'crown_diameter', 'geometry'.
        """
        label_band = self.labels.get_band(1)
        parts: Dict[int, list] = {}

        for geometry, value in shapes(label_band, mask=label_band != BACKGROUND, transform=self.labels.transform):
            parts.setdefault(int(value), []).append(shape(geometry))

        regions = [region for tree_id, region in self.regions.items() if tree_id in parts]

        gdf = gpd.GeoDataFrame(
            {
                "tree_id": np.array([r.tree_id for r in regions], dtype=np.int64),
                "height": np.array([r.height for r in regions], dtype=np.float64),
                "crown_area": np.array([r.area for r in regions], dtype=np.float64),
                "crown_diameter": np.array([r.diameter for r in regions], dtype=np.float64),
            },
            geometry=[unary_union(parts[r.tree_id]) for r in regions],
            crs=self.labels.crs
        )
        return Vector(gdf)

def _resolve_seeds(
    treetops: Vector,
    grid: GridIndex
    ) -> Tuple[np.ndarray, ...]:
    """
    Map treetop points onto seed cells.

    Returns:
        Tuple of (tree_ids, xs, ys, rows, cols, inside): rows/cols are -1 where inside is False.
    """
    gdf = treetops.data
    if "tree_id" in gdf.columns:
        try:
            tree_ids = gdf["tree_id"].to_numpy(dtype=np.int64)
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(f"tree_id values must be integers: {e}") from e
    else:
        tree_ids = np.arange(1, len(gdf) + 1, dtype=np.int64)

    if tree_ids.size and tree_ids.min() <= BACKGROUND:
        raise InvalidConfigError("tree_id values must be positive integers")
    if np.unique(tree_ids).size != tree_ids.size:
        raise InvalidConfigError("tree_id values must be unique")
    if tree_ids.size and tree_ids.max() > np.iinfo(np.int32).max:
        raise InvalidConfigError("tree_id values must fit in a 32-bit label raster")

    xs, ys = treetops.coordinates()
    rows, cols, inside = grid.cells_of(xs, ys)
    return tree_ids, xs, ys, rows, cols, inside

@jit(nopython=True, nogil=True, cache=True)
def _expand_frontier(
    heights: np.ndarray,
    labels: np.ndarray,
    seed_ids: np.ndarray,
    seed_rows: np.ndarray,
    seed_cols: np.ndarray,
    ceilings: np.ndarray,
    offsets: np.ndarray,
    min_height: float,
    max_radius_sq: float,
    cell_w: float,
    cell_h: float
    ):
    """
    Grows every crown from a single max-heap shared by all seeds, writing ownership into `labels` in place.

    Heap entries are (-height, tree_id, row, col, seed position). Python tuple ordering makes the
    tallest cell pop first and resolves equal heights by the lower tree_id. The seed position is
    carried along so the popped crown's ceiling and seed cell can be looked up without a dictionary.

    Args:
        heights: 2D float64 heights with NaN for no-data.
        labels: 2D int32 label grid with every seed cell already written.
        seed_ids: tree_id of each growing seed (int64).
        seed_rows: Row of each growing seed (int64).
        seed_cols: Column of each growing seed (int64).
        ceilings: Largest height each seed's crown may accept.
        offsets: (n, 2) int64 row/column neighbour offsets.
        min_height: Cells lower than this are never added.
        max_radius_sq: Squared maximum crown radius in ground units, negative to disable it.
        cell_w: Cell width in ground units.
        cell_h: Cell height in ground units.
    """
    n_rows, n_cols = heights.shape
    n_seeds = seed_ids.shape[0]

    # We seed the heap with the first treetop so numba can infer a homogeneous tuple type,
    # then push the remaining treetops and restore the heap property once.
    heap = [(-heights[seed_rows[0], seed_cols[0]], seed_ids[0], seed_rows[0], seed_cols[0], np.int64(0))]
    for k in range(1, n_seeds):
        heap.append((-heights[seed_rows[k], seed_cols[k]], seed_ids[k], seed_rows[k], seed_cols[k], k))
    heapq.heapify(heap)

    while len(heap) > 0:
        # We always expand the tallest frontier cell across all crowns. Since a cell enters the
        # heap only once, at the moment it is assigned, the loop visits each cell at most once.
        _, tree_id, row, col, k = heapq.heappop(heap)
        ceiling = ceilings[k]

        for j in range(offsets.shape[0]):
            r = row + offsets[j, 0]
            c = col + offsets[j, 1]
            if r < 0 or r >= n_rows or c < 0 or c >= n_cols:
                continue
            # We skip cells already owned: the first crown to reach a cell keeps it.
            if labels[r, c] != 0:
                continue

            # We reject no-data, cells below the height floor and cells taller than this crown's
            # ceiling. A rejected cell stays unassigned so a taller neighbouring crown may still claim it.
            h = heights[r, c]
            if np.isnan(h) or h < min_height or h > ceiling:
                continue

            # We measure the radius between cell centres in ground units, not cells,
            # so crowns stay circular on rectangular pixels.
            if max_radius_sq >= 0.0:
                dy = (r - seed_rows[k]) * cell_h
                dx = (c - seed_cols[k]) * cell_w
                if dx * dx + dy * dy > max_radius_sq:
                    continue

            labels[r, c] = tree_id
            heapq.heappush(heap, (-h, tree_id, r, c, k))

def _grow_regions(
    heights: np.ndarray,
    seeds: list,
    params: DelineationParams,
    cell_w: float,
    cell_h: float
    ) -> np.ndarray:
    """
    Grow every crown from a single priority queue shared by all seeds.

    Steps:
        1. Writes every seed onto the label grid; seeds on no-data cells keep
           their own cell but are not pushed, so they never grow.
        2. Pushes the remaining seeds onto a max-heap keyed by (height, tree_id); the tallest
           cell across all crowns is always expanded first and equal heights are
           resolved by the lower tree_id, so ownership is reproducible.
        3. Pops the highest frontier cell and visits its unassigned neighbours.
           A neighbour joins the popped cell's crown only if it is valid, at least
           `min_height`, no taller than seed_height * (1 + tolerance) and within
           `max_radius` of the seed. Accepted neighbours are pushed with their own height.
        4. Rejected neighbours stay unassigned and may still be claimed later by
           another crown whose rules they satisfy.

    Steps 2 to 4 run in the compiled `_expand_frontier` kernel.

    Args:
        heights: 2D float64 heights with NaN for no-data.
        seeds: List of (tree_id, row, col, seed_height).
        params: Delineation parameters.
        cell_w: Cell width in ground units.
        cell_h: Cell height in ground units.

    Returns:
        np.ndarray: 2D int32 label grid.
    """
    labels = np.zeros(heights.shape, dtype=np.int32)

    # We label every seed cell first, so a seed on no-data still owns its own cell
    # and no crown can grow into another tree's treetop.
    growing = []
    for tree_id, row, col, seed_height in seeds:
        labels[row, col] = tree_id
        if not np.isnan(seed_height):
            growing.append((tree_id, row, col, seed_height))

    if not growing:
        return labels

    seed_ids = np.array([s[0] for s in growing], dtype=np.int64)
    seed_rows = np.array([s[1] for s in growing], dtype=np.int64)
    seed_cols = np.array([s[2] for s in growing], dtype=np.int64)
    ceilings = np.array([s[3] for s in growing], dtype=np.float64) * (1.0 + params.tolerance)
    offsets = np.array(NEIGHBORHOODS[params.neighborhood], dtype=np.int64)
    max_radius_sq = -1.0 if params.max_radius is None else float(params.max_radius) ** 2

    _expand_frontier(
        np.ascontiguousarray(heights, dtype=np.float64),
        labels,
        seed_ids,
        seed_rows,
        seed_cols,
        ceilings,
        offsets,
        float(params.min_height),
        max_radius_sq,
        float(cell_w),
        float(cell_h)
    )
    return labels

@resolve_raster
def delineate_crowns(
    chm_input: Raster,
    treetops: Union[str, Path, Vector, gpd.GeoDataFrame],
    params: DelineationParams = DelineationParams()
    ) -> CrownMap:
    """
    Delineates one non-overlapping crown per treetop on a canopy height model.

    Steps:
        1. Reads the CHM band as float64 with no-data cells set to NaN.
        2. Maps each treetop point onto its seed cell. Treetops outside the raster,
           or sharing a cell with an earlier treetop, keep an empty crown.
        3. Grows all crowns simultaneously from one height-ordered frontier
           (see `_grow_regions`).
        4. Collects the cells of every label into one Region per treetop.

    Args:
        chm_input (Union[str, Path, Raster]): Input canopy height model, either as a file path or a Raster object.
        treetops (Union[str, Path, Vector, GeoDataFrame]): Treetop points, optionally with a 'tree_id' column.
        params (DelineationParams): Delineation parameters.

    Returns:
        CrownMap: Label raster and regions keyed by tree_id.

    Raises:
        InvalidConfigError: On invalid parameters, treetop ids or raster grid.
    """
    params.validate()
    treetops = as_vector(treetops)
    grid = GridIndex.from_raster(chm_input)

    if treetops.crs is not None and chm_input.crs is not None and treetops.crs != chm_input.crs:
        log.info(f"Reprojecting treetops from {treetops.crs} to {chm_input.crs}")
        treetops = treetops.to_crs(chm_input.crs)

    # We read heights as float64 with NaN for no-data and map every treetop onto its cell
    # through the raster's own grid, so seeds and crowns share one cell convention.
    heights = chm_input.read_masked(params.band)
    tree_ids, xs, ys, rows, cols, inside = _resolve_seeds(treetops, grid)

    # We keep the first treetop of every cell. Treetops outside the raster or sharing a cell
    # with an earlier one still get a Region below, but it stays empty.
    seeds = []
    claimed = {}
    for i, tree_id in enumerate(tree_ids.tolist()):
        if not inside[i]:
            err = OutOfExtentError(xs[i], ys[i])
            log.warning(f"Treetop {tree_id}: {err}; its crown will be empty")
            continue
        row, col = int(rows[i]), int(cols[i])
        if (row, col) in claimed:
            log.warning(
                f"Treetop {tree_id} shares cell ({row}, {col}) with treetop {claimed[(row, col)]}; "
                f"its crown will be empty"
            )
            continue
        claimed[(row, col)] = tree_id
        seeds.append((tree_id, row, col, float(heights[row, col])))

    label_grid = _grow_regions(heights, seeds, params, grid.cell_width, grid.cell_height)

    cell_area = grid.cell_width * grid.cell_height
    seed_heights = {tree_id: h for tree_id, _, _, h in seeds}

    # We group cells by label with one stable sort instead of scanning the grid once per tree.
    # Each tree's cells are then a contiguous slice found by binary search, in row-major order.
    flat = label_grid.ravel()
    order = np.argsort(flat, kind="stable")
    sorted_labels = flat[order]
    regions = {}
    for tree_id in tree_ids.tolist():
        start, stop = np.searchsorted(sorted_labels, [tree_id, tree_id + 1])
        cell_rows, cell_cols = np.divmod(order[start:stop], grid.n_cols)
        regions[tree_id] = Region(
            tree_id=tree_id,
            rows=cell_rows,
            cols=cell_cols,
            height=seed_heights.get(tree_id, float("nan")),
            cell_area=cell_area
        )

    labels = Raster(
        data=label_grid,
        transform=chm_input.transform,
        crs=chm_input.crs,
        nodata=BACKGROUND,
        band_names={"tree_id": 1}
    )

    assigned = int(np.count_nonzero(label_grid))
    log.info(f"Delineated {len(seeds)} crowns covering {assigned} cells")
    return CrownMap(labels=labels, regions=regions)
