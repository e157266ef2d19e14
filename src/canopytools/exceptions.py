# src/canopytools/exceptions.py

"""
This module defines the exception hierarchy shared by every canopytools stage.
"""

__all__ = [
    "CanopyToolsError",
    "InvalidConfigError",
    "OutOfExtentError",
    "RasterError",
    "RasterIOError",
    "RasterValidationError"
]

class CanopyToolsError(Exception):
    """Base class for all canopytools errors."""

class InvalidConfigError(CanopyToolsError, ValueError):
    """
    Raised when a call is configured in a way that cannot produce a result
    (non-positive resolution, malformed window function, negative tolerance...).

    Always fatal to the call: no partial result is returned.
    """

class OutOfExtentError(CanopyToolsError):
    """
    Raised when a coordinate (or cell index) falls outside the area covered by a grid.

    Args:
        x: The offending x coordinate (or column index).
        y: The offending y coordinate (or row index).
        message: Optional override for the error message.
    """
    def __init__(self, x: float, y: float, message: str = None):
        self.x = x
        self.y = y
        super().__init__(message or f"Coordinate ({x}, {y}) lies outside the grid extent")

class RasterError(CanopyToolsError):
    """Base class for raster container errors."""

class RasterIOError(RasterError):
    """Raised when a raster cannot be read from or written to disk."""

class RasterValidationError(RasterError, ValueError):
    """Raised when raster data or georeferencing is malformed."""
