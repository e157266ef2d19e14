# src/canopytools/chm/detect_treetop.py

"""
This module implements treetop detection from canopy height models (CHMs)
using a variable window local maximum filter.
"""

import logging
from dataclasses import dataclass
from numbers import Real
from typing import Callable, Optional, Union

import numpy as np
import geopandas as gpd
import scipy.ndimage as ndimage
from numba import jit, prange
from shapely.geometry import Point

from canopytools.exceptions import InvalidConfigError
from canopytools.raster.layer import Raster
from canopytools.raster.io import resolve_raster
from canopytools.raster.grid import GridIndex
from canopytools.vector.layer import Vector

log = logging.getLogger(__name__)

__all__ = [
    "DetectionParams",
    "WindowFunction",
    "linear_window",
    "window_radii",
    "detect_treetops"
]

WindowFunction = Union[Callable, Real]

DISTANCE_METRICS = ("euclidean", "chebyshev")

@dataclass
class DetectionParams:
    """
    Parameters for variable window treetop detection.

    Args:
        min_height (float): Cells lower than this are never treetop candidates (same units as the CHM).
        distance_metric (str): Shape of the search window. Options: "euclidean" (circular), "chebyshev" (square).
        max_window_radius (Optional[float]): Upper bound applied to every window radius (ground units). None disables it.
        smoothing_sigma (float): Sigma (in cells) of a Gaussian filter applied to the surface used for the
                                 maximum test. Set to 0 for no smoothing. Reported heights are never smoothed.
        band (int): 1-based band index of the CHM raster holding heights.
    """
    min_height: float = 0.0
    distance_metric: str = "euclidean"
    max_window_radius: Optional[float] = None
    smoothing_sigma: float = 0.0
    band: int = 1

    def validate(self):
        if not np.isfinite(self.min_height):
            raise InvalidConfigError(f"min_height must be finite, got {self.min_height}")
        if self.distance_metric not in DISTANCE_METRICS:
            raise InvalidConfigError(
                f"Unknown distance metric: {self.distance_metric}. Options: {DISTANCE_METRICS}"
            )
        if self.max_window_radius is not None and not self.max_window_radius >= 0:
            raise InvalidConfigError(f"max_window_radius must be >= 0, got {self.max_window_radius}")
        if not self.smoothing_sigma >= 0:
            raise InvalidConfigError(f"smoothing_sigma must be >= 0, got {self.smoothing_sigma}")

def linear_window(slope: float, intercept: float = 0.0) -> Callable:
    """
    Build the common linear window function: radius = slope * height + intercept.

    Works on scalars and NumPy arrays alike.
    """
    def _window(heights):
        return heights * slope + intercept
    _window.__name__ = f"linear_window({slope}, {intercept})"
    return _window

def window_radii(win_fun: WindowFunction, heights: np.ndarray) -> np.ndarray:
    """
    Evaluate a window function over an array of heights.

    The function is first applied to the whole array at once (fast path for NumPy
    aware functions). If it cannot handle arrays, or does not return one radius
    per height, it is applied element by element instead.

    Args:
        win_fun: Callable mapping a height to a search radius, or a constant radius.
        heights: 1D array of heights.

    Returns:
        np.ndarray: float64 radii, one per height.

    Raises:
        InvalidConfigError: If the window function fails or yields a non-finite or negative radius.
    """
    heights = np.asarray(heights, dtype=np.float64)

    if isinstance(win_fun, Real) and not isinstance(win_fun, bool):
        radii = np.full(heights.shape, float(win_fun))
    elif callable(win_fun):
        radii = None
        try:
            result = np.asarray(win_fun(heights), dtype=np.float64)
            if result.ndim == 0:
                radii = np.full(heights.shape, float(result))
            elif result.shape == heights.shape:
                radii = result
        except Exception as e:
            log.debug(f"Window function is not vectorised ({e}); evaluating it per height")

        if radii is None:
            try:
                radii = np.fromiter(
                    (float(win_fun(float(h))) for h in heights),
                    dtype=np.float64,
                    count=heights.size
                )
            except Exception as e:
                raise InvalidConfigError(f"Window function failed: {e}") from e
    else:
        raise InvalidConfigError(f"Window function must be callable or numeric, got {type(win_fun).__name__}")

    if heights.size and not np.all(np.isfinite(radii)):
        raise InvalidConfigError("Window function returned non-finite radii")
    if heights.size and radii.min() < 0:
        raise InvalidConfigError(f"Window function returned a negative radius ({radii.min()})")

    return radii

@jit(nopython=True, nogil=True, cache=True)
def _is_local_maximum(
    surface: np.ndarray,
    radii: np.ndarray,
    row: int,
    col: int,
    cell_w: float,
    cell_h: float,
    chebyshev: bool
    ) -> bool:
    """
    Decide whether one cell is the maximum of its own window.

    The decision only reads the surface and the radius grid, so cells can be
    evaluated in any order (or concurrently) with identical results.

    Steps:
        1. A zero radius means no neighbours are considered: the cell is accepted.
        2. The window's bounding box is clipped to the raster, so oversized
           windows simply use every available cell.
        3. Every valid neighbour within the radius (circle or square) is compared:
           a taller neighbour rejects the cell; an equally tall neighbour with a
           lower row-major index also rejects it, so a flat top yields one treetop.

    Args:
        surface (np.ndarray): 2D float64 heights, NaN for no-data.
        radii (np.ndarray): 2D float64 window radii in ground units.
        row (int): Row of the evaluated cell.
        col (int): Column of the evaluated cell.
        cell_w (float): Cell width in ground units.
        cell_h (float): Cell height in ground units.
        chebyshev (bool): Square window instead of circular.

    Returns:
        bool: True if the cell is accepted.
    """
    radius = radii[row, col]
    if radius <= 0:
        return True

    rows, cols = surface.shape
    h = surface[row, col]
    own_index = row * cols + col

    # We clip the window's bounding box to the raster, so an oversized window simply
    # compares against every cell that exists.
    reach_r = int(radius / cell_h)
    reach_c = int(radius / cell_w)
    r_min = max(0, row - reach_r)
    r_max = min(rows, row + reach_r + 1)
    c_min = max(0, col - reach_c)
    c_max = min(cols, col + reach_c + 1)
    radius_sq = radius * radius

    for ir in range(r_min, r_max):
        dy = (ir - row) * cell_h
        for ic in range(c_min, c_max):
            if ir == row and ic == col:
                continue
            dx = (ic - col) * cell_w
            if chebyshev:
                if max(abs(dx), abs(dy)) > radius:
                    continue
            elif dx * dx + dy * dy > radius_sq:
                continue

            # We ignore no-data neighbours. A taller neighbour rejects the cell, and so does an
            # equal one earlier in row-major order, which leaves one treetop per flat top.
            other = surface[ir, ic]
            if np.isnan(other):
                continue
            if other > h:
                return False
            if other == h and ir * cols + ic < own_index:
                return False
    return True

@jit(nopython=True, parallel=True, cache=True)
def _local_maxima_mask(
    surface: np.ndarray,
    radii: np.ndarray,
    candidates: np.ndarray,
    cell_w: float,
    cell_h: float,
    chebyshev: bool
    ) -> np.ndarray:
    """
    Evaluate every candidate cell in parallel over raster rows.

    Each worker writes only to its own rows of the output mask.
    """
    rows, cols = surface.shape
    mask = np.zeros((rows, cols), dtype=np.bool_)
    # We parallelise over rows; each decision reads shared immutable inputs only.
    for r in prange(rows):
        for c in range(cols):
            if candidates[r, c]:
                mask[r, c] = _is_local_maximum(surface, radii, r, c, cell_w, cell_h, chebyshev)
    return mask

def _prepare_surface(heights: np.ndarray, sigma: float) -> np.ndarray:
    """Optionally smooth the CHM while keeping no-data cells as NaN."""
    if sigma <= 0:
        return heights

    # We fill no-data with zero so the filter does not spread NaN, then restore the gaps.
    nodata = np.isnan(heights)
    smooth = ndimage.gaussian_filter(np.where(nodata, 0.0, heights), sigma=sigma)
    smooth[nodata] = np.nan
    return smooth

@resolve_raster
def detect_treetops(
    chm_input: Raster,
    win_fun: WindowFunction,
    params: DetectionParams = DetectionParams()
    ) -> Vector:
    """
    Detects treetops as the cells that are the strict maximum of their own,
    height dependent search window.

    Steps:
        1. Reads the CHM band as float64 with no-data cells set to NaN, optionally
           smoothing it for the maximum test.
        2. Selects candidate cells: valid and at least `params.min_height` tall.
        3. Evaluates the window function on the candidate heights to obtain one
           radius (ground units) per candidate, capped by `params.max_window_radius`.
        4. Runs the parallel local maximum test over all candidates.
        5. Promotes accepted cells, in row-major discovery order, to treetop points
           located at their cell centres and numbered 1..N.

    Args:
        chm_input (Union[str, Path, Raster]): Input CHM raster or path to CHM file.
        win_fun (WindowFunction): Function mapping a height to a search radius, or a constant radius.
        params (DetectionParams): Detection parameters.

    Returns:
        Vector: Points with columns 'tree_id', 'height', 'win_radius', 'row', 'col' and 'geometry'.

    Raises:
        InvalidConfigError: On invalid parameters, raster grid or window function.
    """
    params.validate()
    grid = GridIndex.from_raster(chm_input)

    # We keep the raw heights for the height floor, the window size and the reported height.
    # Only the maximum test runs on the (optionally) smoothed surface.
    heights = chm_input.read_masked(params.band)
    surface = _prepare_surface(heights, params.smoothing_sigma)

    with np.errstate(invalid="ignore"):
        candidates = ~np.isnan(heights) & (heights >= params.min_height)

    radii = np.zeros(heights.shape, dtype=np.float64)
    # We evaluate the window function once per candidate, never per neighbour visit.
    radii[candidates] = window_radii(win_fun, heights[candidates])
    if params.max_window_radius is not None:
        np.minimum(radii, params.max_window_radius, out=radii)

    log.debug(
        f"Evaluating {int(candidates.sum())} candidate cells "
        f"(min_height={params.min_height}, metric={params.distance_metric})"
    )

    if candidates.any():
        mask = _local_maxima_mask(
            surface,
            radii,
            candidates,
            grid.cell_width,
            grid.cell_height,
            params.distance_metric == "chebyshev"
        )
    else:
        mask = candidates

    # We number treetops in row-major discovery order, which np.nonzero already guarantees.
    rows, cols = np.nonzero(mask)
    xs, ys = grid.centers_of(rows, cols)

    treetops = gpd.GeoDataFrame(
        {
            "tree_id": np.arange(1, len(rows) + 1, dtype=np.int64),
            "height": heights[rows, cols],
            "win_radius": radii[rows, cols],
            "row": rows.astype(np.int64),
            "col": cols.astype(np.int64),
        },
        geometry=[Point(x, y) for x, y in zip(xs, ys)],
        crs=chm_input.crs
    )

    log.info(f"Detected {len(treetops)} treetops")
    return Vector(treetops)
