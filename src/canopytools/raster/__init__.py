# src/canopytools/raster/__init__.py
#
# Copyright (c) The canopytools project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The raster subpackage provides the in-memory raster container, disk I/O for
canopy height models and the grid index shared by every pipeline stage.
"""
# Core data structure
from .layer import (
    Raster
)

# I/O operations
from .io import (
    MemoryEstimate,
    estimate_memory,
    load,
    save,
    read_info,
    resolve_raster
)

# Grid indexing
from .grid import (
    GridIndex
)

__all__ = [
    # Layer
    "Raster",

    # I/O
    "MemoryEstimate",
    "estimate_memory",
    "load",
    "save",
    "read_info",
    "resolve_raster",

    # Grid
    "GridIndex"
]
