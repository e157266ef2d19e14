# src/canopytools/chm/__init__.py
#
# Copyright (c) The canopytools project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The chm subpackage extracts individual trees from canopy height models:
treetop detection with a variable window filter and crown delineation
by marker-controlled region growing.
"""

# Treetop detection
from .detect_treetop import (
    DetectionParams,
    WindowFunction,
    linear_window,
    window_radii,
    detect_treetops
)

# Crown delineation
from .delineate_crown import (
    DelineationParams,
    Region,
    CrownMap,
    delineate_crowns
)

__all__ = [
    # Treetop detection
    "DetectionParams",
    "WindowFunction",
    "linear_window",
    "window_radii",
    "detect_treetops",

    # Crown delineation
    "DelineationParams",
    "Region",
    "CrownMap",
    "delineate_crowns",
]
