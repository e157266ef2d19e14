# tests/integration/test_cli.py

import pytest
import polars as pl

from canopytools.cli import main
from canopytools.raster import load
from canopytools.vector import load_vector

@pytest.fixture
def chm_path(tmp_path, two_peak_chm):
    return str(two_peak_chm.save(tmp_path / "chm.tif"))

def test_detect_and_delineate(tmp_path, chm_path):
    treetops = str(tmp_path / "treetops.gpkg")
    main(["detect", chm_path, treetops, "--win-radius", "1.5", "--min-height", "2"])

    gdf = load_vector(treetops).data
    assert gdf["tree_id"].tolist() == [1, 2]

    labels = str(tmp_path / "crowns.tif")
    polygons = str(tmp_path / "crowns.gpkg")
    main(["delineate", chm_path, treetops, labels, "--polygons", polygons, "--min-height", "2"])

    assert set(load(labels).get_band(1).ravel().tolist()) == {1, 2}
    assert len(load_vector(polygons)) == 2

def test_summarize_grid(tmp_path, chm_path):
    treetops = str(tmp_path / "treetops.gpkg")
    main(["detect", chm_path, treetops, "--win-radius", "1.5"])

    out_dir = tmp_path / "stands"
    main(["summarize", treetops, str(out_dir), "--grid", "10", "--attribute", "height",
          "--stat", "mean", "--top-height", "1"])

    assert sorted(p.name for p in out_dir.iterdir()) == ["count.tif", "height_mean.tif", "height_top_height.tif"]
    assert load(out_dir / "count.tif").get_band(1).sum() == 2

def test_summarize_raster_in_polygons(tmp_path, chm_path, stand_polygons):
    zones = tmp_path / "stands.gpkg"
    stand_polygons.to_file(zones)

    out_dir = tmp_path / "table"
    main(["summarize", chm_path, str(out_dir), "--zones", str(zones), "--zone-id", "stand",
          "--attribute", "value"])

    table = pl.read_csv(out_dir / "zonal_summary.csv")
    assert table["zone_id"].to_list() == ["A", "B"]
    assert "value_mean" in table.columns

def test_invalid_configuration_exits_with_error(tmp_path, chm_path):
    with pytest.raises(SystemExit) as info:
        main(["summarize", chm_path, str(tmp_path / "out"), "--grid", "-5"])
    assert info.value.code == 1

def test_missing_input_exits_with_error(tmp_path):
    with pytest.raises(SystemExit) as info:
        main(["detect", str(tmp_path / "missing.tif"), str(tmp_path / "out.gpkg")])
    assert info.value.code == 1

def test_summarize_top_height_keeps_default_statistics(tmp_path, chm_path):
    treetops = str(tmp_path / "treetops.gpkg")
    main(["detect", chm_path, treetops, "--win-radius", "1.5"])

    out_dir = tmp_path / "stands"
    main(["summarize", treetops, str(out_dir), "--grid", "10", "--attribute", "height", "--top-height", "1"])

    assert sorted(p.name for p in out_dir.iterdir()) == [
        "count.tif",
        "height_max.tif",
        "height_mean.tif",
        "height_median.tif",
        "height_min.tif",
        "height_sd.tif",
        "height_top_height.tif",
    ]
    assert load(out_dir / "height_top_height.tif").get_band(1)[0, 0] == 10.0
