# tests/helpers.py

import numpy as np

from canopytools.raster.layer import Raster
from canopytools.raster.grid import GridIndex
from canopytools.chm import CrownMap

def assert_grid_match(r1: Raster, r2: Raster):
    """Strictly verify two rasters share the exact same grid."""
    assert r1.crs == r2.crs, \
        f"CRS mismatch: {r1.crs} != {r2.crs}"

    assert r1.shape[1:] == r2.shape[1:], \
        f"Shape mismatch: {r1.shape} != {r2.shape}"

    assert np.allclose(np.array(r1.transform), np.array(r2.transform), atol=1e-9), \
        "Transform mismatch (Pixel alignment error)"

def assert_crowns_partition(crowns: CrownMap):
    """Every labelled cell belongs to exactly one region and regions never share cells."""
    labels = crowns.labels.get_band(1)
    seen = set()
    total = 0
    for tree_id, region in crowns.regions.items():
        cells = region.cells()
        assert not (cells & seen), f"Crown {tree_id} overlaps another crown"
        seen |= cells
        total += region.cell_count
        for r, c in cells:
            assert labels[r, c] == tree_id

    assert total == int(np.count_nonzero(labels)), "Labelled cells missing from regions"

def assert_crowns_connected(crowns: CrownMap, diagonal: bool = True):
    """Every non-empty crown is one connected component containing its seed."""
    for tree_id, region in crowns.regions.items():
        if region.is_empty:
            continue
        cells = region.cells()
        start = next(iter(cells))
        stack, reached = [start], {start}
        while stack:
            r, c = stack.pop()
            for dr in (-1, 0, 1):
                for dc in (-1, 0, 1):
                    if (dr, dc) == (0, 0) or (not diagonal and dr and dc):
                        continue
                    nxt = (r + dr, c + dc)
                    if nxt in cells and nxt not in reached:
                        reached.add(nxt)
                        stack.append(nxt)
        assert reached == cells, f"Crown {tree_id} is not connected"

def assert_seeds_owned(crowns: CrownMap, treetops):
    """Every treetop with a non-empty crown owns its own cell in the label raster."""
    gdf = getattr(treetops, "data", treetops)
    labels = crowns.labels.get_band(1)
    grid = GridIndex.from_raster(crowns.labels)
    rows, cols, inside = grid.cells_of(gdf.geometry.x.to_numpy(), gdf.geometry.y.to_numpy())

    for tree_id, r, c, ok in zip(gdf["tree_id"].tolist(), rows, cols, inside):
        region = crowns[tree_id]
        if not ok or region.is_empty:
            continue
        assert labels[r, c] == tree_id, f"Treetop {tree_id} does not own its cell ({r}, {c})"
        assert (int(r), int(c)) in region.cells()
