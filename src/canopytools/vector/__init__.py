# src/canopytools/vector/__init__.py
#
# Copyright (c) The canopytools project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The vector subpackage provides the container and I/O used for treetop points,
crown polygons and polygon zones.
"""

from .layer import (
    Vector
)

from .io import (
    load_vector,
    save_vector,
    as_vector,
    resolve_vector
)

__all__ = [
    "Vector",
    "load_vector",
    "save_vector",
    "as_vector",
    "resolve_vector"
]
