# src/canopytools/zonal/__init__.py
#
# Copyright (c) The canopytools project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The zonal subpackage aggregates treetops (or any point or raster
observations) into grid cells or polygons and reduces them to stand level
statistics.
"""

# Summary functions
from .functions import (
    ZoneWarning,
    SummaryFunction,
    mean,
    median,
    sd,
    minimum,
    maximum,
    top_height,
    quantile,
    default_functions
)

# Zone definitions
from .zones import (
    GridZones,
    PolygonZones,
    ZoneSpec,
    resolve_zones
)

# Aggregation
from .summarize import (
    ZonalSummary,
    summarize
)

__all__ = [
    # Functions
    "ZoneWarning",
    "SummaryFunction",
    "mean",
    "median",
    "sd",
    "minimum",
    "maximum",
    "top_height",
    "quantile",
    "default_functions",

    # Zones
    "GridZones",
    "PolygonZones",
    "ZoneSpec",
    "resolve_zones",

    # Aggregation
    "ZonalSummary",
    "summarize"
]
