# src/canopytools/__init__.py
#
# Copyright (c) The canopytools project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
canopytools: individual tree detection, crown delineation and zonal
summaries from canopy height models.
"""

__version__ = "0.1.0"

from .exceptions import (
    CanopyToolsError,
    InvalidConfigError,
    OutOfExtentError,
    RasterError,
    RasterIOError,
    RasterValidationError
)

from .raster import (
    Raster,
    GridIndex,
    load,
    save
)

from .vector import (
    Vector,
    load_vector,
    save_vector
)

from .chm import (
    DetectionParams,
    DelineationParams,
    CrownMap,
    Region,
    linear_window,
    detect_treetops,
    delineate_crowns
)

from .zonal import (
    GridZones,
    PolygonZones,
    SummaryFunction,
    ZonalSummary,
    summarize
)

__all__ = [
    "__version__",
    "CanopyToolsError",
    "InvalidConfigError",
    "OutOfExtentError",
    "RasterError",
    "RasterIOError",
    "RasterValidationError",
    "Raster",
    "GridIndex",
    "load",
    "save",
    "Vector",
    "load_vector",
    "save_vector",
    "DetectionParams",
    "DelineationParams",
    "CrownMap",
    "Region",
    "linear_window",
    "detect_treetops",
    "delineate_crowns",
    "GridZones",
    "PolygonZones",
    "SummaryFunction",
    "ZonalSummary",
    "summarize"
]
