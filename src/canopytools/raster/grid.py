# src/canopytools/raster/grid.py

"""
This module maps continuous (x, y) coordinates onto the integer cells of a
north-up raster grid, and back.

GridIndex is shared by treetop detection (cell centres become treetop points),
crown delineation (treetops become seed cells) and zonal aggregation
(observations are binned into grid zones).
"""

import math
import logging
from typing import Tuple, Union, Sequence

import numpy as np
from rasterio.transform import Affine

from canopytools.exceptions import InvalidConfigError, OutOfExtentError

log = logging.getLogger(__name__)

__all__ = [
    "GridIndex"
]

# Rounding applied to extent/resolution ratios before ceil, so that e.g. 1.1 / 0.1
# (11.000000000000002 in floating point) still yields 11 cells.
_RATIO_DECIMALS = 9

def _parse_resolution(resolution: Union[float, Sequence[float]]) -> Tuple[float, float]:
    if np.isscalar(resolution):
        cell_w = cell_h = resolution
    else:
        if len(resolution) != 2:
            raise InvalidConfigError(f"Resolution must be a scalar or a (width, height) pair, got {resolution}")
        cell_w, cell_h = resolution

    try:
        cell_w, cell_h = float(cell_w), float(cell_h)
    except (TypeError, ValueError) as e:
        raise InvalidConfigError(f"Resolution must be numeric, got {resolution}") from e

    if not (math.isfinite(cell_w) and math.isfinite(cell_h)) or cell_w <= 0 or cell_h <= 0:
        raise InvalidConfigError(f"Resolution must be positive and finite, got {resolution}")
    return cell_w, cell_h

class GridIndex:
    """
    A regular, axis-aligned grid anchored at the top-left corner of an extent.

    The number of cells along each axis is ceil(extent_length / resolution) (at
    least one), so the covered area may reach past the right and bottom edges of
    the requested extent by less than one cell.

    Args:
        extent: (left, bottom, right, top) in ground units.
        resolution: Cell size; a scalar for square cells or a (width, height) pair.

    Raises:
        InvalidConfigError: If the resolution is not positive or the extent is inverted.
    """

    def __init__(
        self,
        extent: Tuple[float, float, float, float],
        resolution: Union[float, Sequence[float]]
    ):
        self.cell_width, self.cell_height = _parse_resolution(resolution)

        left, bottom, right, top = (float(v) for v in extent)
        if not all(math.isfinite(v) for v in (left, bottom, right, top)):
            raise InvalidConfigError(f"Extent must be finite, got {extent}")
        if right < left or top < bottom:
            raise InvalidConfigError(f"Extent is inverted: {extent}")

        self.n_cols = max(1, math.ceil(round((right - left) / self.cell_width, _RATIO_DECIMALS)))
        self.n_rows = max(1, math.ceil(round((top - bottom) / self.cell_height, _RATIO_DECIMALS)))
        self.left = left
        self.top = top

    @classmethod
    def from_transform(cls, transform: Affine, width: int, height: int) -> 'GridIndex':
        """
        Build the grid of an existing north-up raster.

        Raises:
            InvalidConfigError: If the transform is rotated, sheared or south-up.
        """
        if transform.b != 0 or transform.d != 0:
            raise InvalidConfigError(f"Only axis-aligned transforms are supported, got {transform}")
        if transform.a <= 0 or transform.e >= 0:
            raise InvalidConfigError(f"Only north-up transforms are supported, got {transform}")

        cell_w, cell_h = transform.a, -transform.e
        left, top = transform.c, transform.f
        grid = cls((left, top - height * cell_h, left + width * cell_w, top), (cell_w, cell_h))
        # Guard against ceil rounding up when width * cell_w is not exact
        grid.n_cols, grid.n_rows = width, height
        return grid

    @classmethod
    def from_raster(cls, raster) -> 'GridIndex':
        """Build the grid of a canopytools Raster."""
        return cls.from_transform(raster.transform, raster.width, raster.height)

    @property
    def shape(self) -> Tuple[int, int]:
        """Returns (rows, cols)."""
        return self.n_rows, self.n_cols

    @property
    def n_cells(self) -> int:
        return self.n_rows * self.n_cols

    @property
    def right(self) -> float:
        return self.left + self.n_cols * self.cell_width

    @property
    def bottom(self) -> float:
        return self.top - self.n_rows * self.cell_height

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Covered area as (left, bottom, right, top)."""
        return self.left, self.bottom, self.right, self.top

    @property
    def transform(self) -> Affine:
        """Affine transform of the grid, used to label output rasters."""
        return Affine.translation(self.left, self.top) * Affine.scale(self.cell_width, -self.cell_height)

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.bottom <= y <= self.top

    def cell_of(self, x: float, y: float) -> Tuple[int, int]:
        """
        Return the (row, col) of the cell covering a coordinate.

        Points lying exactly on the right or bottom edge of the covered area
        belong to the last column or row.

        Raises:
            OutOfExtentError: If the coordinate lies outside the covered area.
        """
        if not self.contains(x, y):
            raise OutOfExtentError(x, y)

        col = min(int(math.floor((x - self.left) / self.cell_width)), self.n_cols - 1)
        row = min(int(math.floor((self.top - y) / self.cell_height)), self.n_rows - 1)
        return row, col

    def cells_of(self, xs: np.ndarray, ys: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Vectorised cell_of that never raises.

        Returns:
            Tuple of (rows, cols, inside). Rows and cols are -1 where inside is False.
        """
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)

        inside = (xs >= self.left) & (xs <= self.right) & (ys >= self.bottom) & (ys <= self.top)

        with np.errstate(invalid="ignore"):
            cols = np.floor((xs - self.left) / self.cell_width)
            rows = np.floor((self.top - ys) / self.cell_height)

        cols = np.where(inside, np.minimum(cols, self.n_cols - 1), -1).astype(np.int64)
        rows = np.where(inside, np.minimum(rows, self.n_rows - 1), -1).astype(np.int64)
        return rows, cols, inside

    def center_of(self, row: int, col: int) -> Tuple[float, float]:
        """
        Return the (x, y) centre of a cell; the inverse of cell_of.

        Raises:
            OutOfExtentError: If the cell index is outside the grid.
        """
        if not (0 <= row < self.n_rows and 0 <= col < self.n_cols):
            raise OutOfExtentError(col, row, f"Cell ({row}, {col}) outside grid of shape {self.shape}")

        return (
            self.left + (col + 0.5) * self.cell_width,
            self.top - (row + 0.5) * self.cell_height
        )

    def centers_of(self, rows: np.ndarray, cols: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorised center_of; indices are not range-checked."""
        rows = np.asarray(rows, dtype=np.float64)
        cols = np.asarray(cols, dtype=np.float64)
        return self.left + (cols + 0.5) * self.cell_width, self.top - (rows + 0.5) * self.cell_height

    def centers(self) -> Tuple[np.ndarray, np.ndarray]:
        """Cell centres of the full grid as two (rows, cols) arrays."""
        rows, cols = np.indices(self.shape)
        return self.centers_of(rows, cols)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GridIndex):
            return NotImplemented
        return self.shape == other.shape and self.transform == other.transform

    def __repr__(self) -> str:
        return (f"<GridIndex shape={self.shape} res=({self.cell_width}, {self.cell_height}) "
                f"bounds={self.bounds}>")
