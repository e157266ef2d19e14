# tests/integration/test_pipeline.py

import numpy as np
import rasterio

from canopytools import (
    DetectionParams,
    DelineationParams,
    PolygonZones,
    GridZones,
    linear_window,
    detect_treetops,
    delineate_crowns,
    summarize,
    load,
    load_vector,
    save_vector
)
from canopytools.zonal import mean, top_height
from helpers import assert_crowns_partition, assert_crowns_connected, assert_seeds_owned

def test_full_inventory_pipeline(tmp_path, two_peak_chm):
    """
    Simulates a standard user workflow:
    1. Detect treetops on a CHM stored on disk.
    2. Save and reload the treetops, then grow crowns around them.
    3. Summarize CHM heights per crown and treetops per grid cell.
    """
    chm_path = two_peak_chm.save(tmp_path / "chm.tif")

    # --- 1. Detection ---
    treetops = detect_treetops(chm_path, linear_window(0.1, 1.5), DetectionParams(min_height=2))
    assert treetops.data["height"].tolist() == [10.0, 8.0]

    treetops_path = save_vector(treetops, tmp_path / "treetops.gpkg")

    # --- 2. Delineation ---
    crowns = delineate_crowns(chm_path, treetops_path, DelineationParams(min_height=2))
    assert_crowns_partition(crowns)
    assert_crowns_connected(crowns)
    assert_seeds_owned(crowns, treetops)

    labels_path = crowns.labels.save(tmp_path / "crowns.tif")
    with rasterio.open(labels_path) as src:
        assert src.nodata == 0
        np.testing.assert_array_equal(src.read(1), crowns.labels.get_band(1))

    polygons = crowns.to_polygons()
    polygons_path = save_vector(polygons, tmp_path / "crowns.gpkg")

    # --- 3. Zonal summaries ---
    per_crown = summarize(
        load(chm_path),
        PolygonZones(polygons_path, id_col="tree_id"),
        {"value": {"max_height": np.max, "mean_height": mean}}
    )
    table = per_crown.to_frame()
    assert table["zone_id"].to_list() == [1, 2]
    assert table["max_height"].to_list() == [10.0, 8.0]
    assert table["count"].sum() == crowns[1].cell_count + crowns[2].cell_count

    per_cell = summarize(
        load_vector(treetops_path),
        GridZones(4.5, extent=two_peak_chm.bounds),
        {"height": {"top_height": top_height(1)}}
    )
    assert per_cell["count"].get_band(1).sum() == 2
    assert np.nanmax(per_cell["top_height"].get_band(1)) == 10.0

    out = per_cell["top_height"].save(tmp_path / "top_height.tif")
    assert load(out) == per_cell["top_height"]

def test_pipeline_is_reproducible(two_peak_chm):
    runs = []
    for _ in range(2):
        treetops = detect_treetops(two_peak_chm, 1.5)
        crowns = delineate_crowns(two_peak_chm, treetops)
        stats = summarize(crowns.labels, crowns.to_polygons(), {"tree_id": {"n": len}})
        runs.append((treetops.data["tree_id"].tolist(), crowns.labels, stats.to_frame()))

    assert runs[0][0] == runs[1][0]
    assert runs[0][1] == runs[1][1]
    assert runs[0][2].equals(runs[1][2])
