# src/canopytools/cli.py

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from canopytools.exceptions import CanopyToolsError
from canopytools.raster.io import load
from canopytools.vector.io import load_vector, save_vector
from canopytools.chm import (
    DetectionParams,
    DelineationParams,
    linear_window,
    detect_treetops,
    delineate_crowns
)
from canopytools.zonal import (
    GridZones,
    PolygonZones,
    mean,
    median,
    sd,
    minimum,
    maximum,
    top_height,
    summarize
)

log = logging.getLogger(__name__)

RASTER_SUFFIXES = (".tif", ".tiff", ".vrt", ".img")

STATISTICS = {
    "mean": mean,
    "median": median,
    "sd": sd,
    "min": minimum,
    "max": maximum,
}

def setup_logging(level: int = logging.INFO) -> None:
    """
    Configures the standard logging format and level for the command-line interface.

    Args:
        level (int): The logging threshold level.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

def run_detect(args: argparse.Namespace) -> None:
    """
    Detects treetops on a CHM file and writes them as a point layer.
    """
    if args.win_radius is not None:
        win_fun = args.win_radius
    else:
        win_fun = linear_window(args.win_slope, args.win_intercept)

    params = DetectionParams(
        min_height=args.min_height,
        distance_metric=args.metric,
        smoothing_sigma=args.smooth
    )
    treetops = detect_treetops(args.chm, win_fun, params)
    save_vector(treetops, args.out)

def run_delineate(args: argparse.Namespace) -> None:
    """
    Delineates crowns around existing treetops and writes the label raster,
    plus crown polygons when requested.
    """
    params = DelineationParams(
        min_height=args.min_height,
        tolerance=args.tolerance,
        max_radius=args.max_radius,
        neighborhood=args.neighborhood
    )
    crowns = delineate_crowns(args.chm, args.treetops, params)
    crowns.labels.save(args.out_raster)

    if args.polygons:
        save_vector(crowns.to_polygons(), args.polygons)

def run_summarize(args: argparse.Namespace) -> None:
    """
    Summarizes observations per grid cell (one GeoTIFF per statistic) or per
    polygon (one CSV table).
    """
    path = Path(args.observations)
    if path.suffix.lower() in RASTER_SUFFIXES:
        observations = load(path)
    else:
        observations = load_vector(path)

    if args.grid is not None:
        zones = GridZones(args.grid)
    else:
        zones = PolygonZones(args.zones, id_col=args.zone_id)

    functions = None
    if args.attribute:
        attribute = args.attribute
        # Without --stat every stock statistic is computed, with or without --top-height.
        requested = {f"{attribute}_{stat}": STATISTICS[stat] for stat in (args.stat or STATISTICS)}
        if args.top_height is not None:
            requested[f"{attribute}_top_height"] = top_height(args.top_height)
        functions = {attribute: requested}

    result = summarize(observations, zones, functions)

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    if result.grid is not None:
        for name in result.keys():
            result[name].save(out_dir / f"{name}.tif")
    else:
        table = out_dir / "zonal_summary.csv"
        result.to_frame().write_csv(table)
        log.info(f"Saved zonal table → {table}")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="canopytools",
        description="Individual tree detection, crown delineation and zonal summaries from canopy height models."
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser("detect", help="Detect treetops with a variable window filter.")
    detect.add_argument("chm", help="Canopy height model raster.")
    detect.add_argument("out", help="Output treetop layer (e.g. treetops.gpkg).")
    window = detect.add_mutually_exclusive_group()
    window.add_argument("--win-radius", type=float, default=None, help="Constant window radius (ground units).")
    window.add_argument("--win-slope", type=float, default=0.05, help="Slope of the linear window function.")
    detect.add_argument("--win-intercept", type=float, default=0.6, help="Intercept of the linear window function.")
    detect.add_argument("--min-height", type=float, default=2.0, help="Minimum treetop height.")
    detect.add_argument("--metric", choices=["euclidean", "chebyshev"], default="euclidean",
                        help="Window shape. Defaults to euclidean (circular).")
    detect.add_argument("--smooth", type=float, default=0.0, help="Gaussian smoothing sigma in cells.")
    detect.set_defaults(handler=run_detect)

    delineate = subparsers.add_parser("delineate", help="Grow crowns from treetops.")
    delineate.add_argument("chm", help="Canopy height model raster.")
    delineate.add_argument("treetops", help="Treetop point layer.")
    delineate.add_argument("out_raster", help="Output crown label raster.")
    delineate.add_argument("--polygons", default=None, help="Optional output crown polygon layer.")
    delineate.add_argument("--min-height", type=float, default=2.0, help="Minimum crown cell height.")
    delineate.add_argument("--tolerance", type=float, default=0.0,
                           help="Relative height a crown cell may exceed its treetop by.")
    delineate.add_argument("--max-radius", type=float, default=None, help="Maximum crown radius (ground units).")
    delineate.add_argument("--neighborhood", choices=["queen", "rook"], default="queen",
                           help="Cell connectivity. Defaults to queen (8 neighbours).")
    delineate.set_defaults(handler=run_delineate)

    zonal = subparsers.add_parser("summarize", help="Summarize observations per grid cell or polygon.")
    zonal.add_argument("observations", help="Point layer or raster of observations.")
    zonal.add_argument("out_dir", help="Output directory.")
    zones = zonal.add_mutually_exclusive_group(required=True)
    zones.add_argument("--grid", type=float, default=None, help="Grid resolution (ground units).")
    zones.add_argument("--zones", default=None, help="Polygon zone layer.")
    zonal.add_argument("--zone-id", default=None, help="Zone identifier column of the polygon layer.")
    zonal.add_argument("--attribute", default=None,
                       help="Attribute to summarize. Without it only observation counts are computed.")
    zonal.add_argument("--stat", action="append", choices=sorted(STATISTICS),
                       help="Statistic to compute (repeatable). Defaults to all of them, "
                            "also when --top-height is given.")
    zonal.add_argument("--top-height", type=int, default=None,
                       help="Also compute the mean of the N largest attribute values.")
    zonal.set_defaults(handler=run_summarize)

    return parser

def main(argv: Optional[List[str]] = None) -> None:
    """
    Parses command-line arguments and routes execution to the selected subcommand.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        args.handler(args)
    except (CanopyToolsError, FileNotFoundError) as e:
        log.error(f"{args.command} failed: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
