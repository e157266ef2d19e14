# src/canopytools/zonal/functions.py

"""
This module wraps caller-supplied reduction functions so that a bad zone can
never abort a whole summarization, and provides the stock reducers used for
forest inventory summaries.
"""

import logging
from dataclasses import dataclass
from numbers import Real
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np

from canopytools.exceptions import InvalidConfigError

log = logging.getLogger(__name__)

__all__ = [
    "ZoneWarning",
    "SummaryFunction",
    "mean",
    "median",
    "sd",
    "minimum",
    "maximum",
    "top_height",
    "quantile",
    "default_functions"
]

@dataclass(frozen=True)
class ZoneWarning:
    """
    A recoverable failure of one summary function on one zone.

    Args:
        zone_id: Identifier of the zone (grid cell index or polygon id).
        name: Output name of the failing function.
        message: What went wrong.
    """
    zone_id: object
    name: str
    message: str

class SummaryFunction:
    """
    Defensive wrapper around a `(sequence of numbers) -> scalar` reduction.

    Before invocation NaN values are stripped from the input; if nothing is
    left, the wrapped function is not called and `nodata` is returned. If the
    function raises or returns something other than a real scalar, the zone
    gets `nodata` and a warning message instead.

    Args:
        name: Output name labelling the function's result layer.
        func: Reduction applied to a 1D float64 array.
        nodata: Value reported for empty zones and failed reductions.
    """

    def __init__(self, name: str, func: Callable, nodata: float = np.nan):
        if not isinstance(name, str) or not name:
            raise InvalidConfigError(f"Summary function name must be a non-empty string, got {name!r}")
        if not callable(func):
            raise InvalidConfigError(f"Summary function '{name}' is not callable")
        self.name = name
        self.func = func
        self.nodata = nodata

    def evaluate(self, values: Sequence[float]) -> Tuple[float, Optional[str]]:
        """
        Apply the wrapped function to one zone's bag of values.

        Returns:
            Tuple of (value, message). Message is None on success or for empty input.
        """
        arr = np.asarray(values, dtype=np.float64).ravel()
        arr = arr[~np.isnan(arr)]
        if arr.size == 0:
            return self.nodata, None

        try:
            result = self.func(arr)
        except Exception as e:
            return self.nodata, f"{type(e).__name__}: {e}"

        if isinstance(result, np.ndarray) and result.ndim == 0:
            result = result.item()
        if isinstance(result, (bool, np.bool_)) or not isinstance(result, (Real, np.number)):
            return self.nodata, f"returned non-numeric result {result!r}"

        return float(result), None

    def __call__(self, values: Sequence[float]) -> float:
        return self.evaluate(values)[0]

    def __repr__(self) -> str:
        return f"<SummaryFunction name={self.name!r} func={getattr(self.func, '__name__', self.func)!r}>"

# Stock reducers. Each receives a non-empty float64 array without NaN.

def mean(values: np.ndarray) -> float:
    return float(np.mean(values))

def median(values: np.ndarray) -> float:
    return float(np.median(values))

def sd(values: np.ndarray) -> float:
    """Sample standard deviation; NaN with fewer than two values."""
    if values.size < 2:
        return float("nan")
    return float(np.std(values, ddof=1))

def minimum(values: np.ndarray) -> float:
    return float(np.min(values))

def maximum(values: np.ndarray) -> float:
    return float(np.max(values))

def top_height(n: int = 100) -> Callable:
    """
    Build a reducer returning the mean of the `n` largest values.

    Zones holding fewer than `n` values fall back to the mean of all of them.
    """
    if int(n) != n or n < 1:
        raise InvalidConfigError(f"top_height needs a positive integer n, got {n}")
    n = int(n)

    def _top_height(values: np.ndarray) -> float:
        if values.size > n:
            values = np.partition(values, values.size - n)[values.size - n:]
        return float(np.mean(values))
    _top_height.__name__ = f"top_height_{n}"
    return _top_height

def quantile(q: float) -> Callable:
    """Build a reducer returning the q-th quantile (0 <= q <= 1)."""
    if not 0 <= q <= 1:
        raise InvalidConfigError(f"quantile needs 0 <= q <= 1, got {q}")

    def _quantile(values: np.ndarray) -> float:
        return float(np.quantile(values, q))
    _quantile.__name__ = f"quantile_{q}"
    return _quantile

def default_functions(attribute: str) -> Dict[str, Callable]:
    """The default statistics computed for an attribute when none are requested."""
    return {
        f"{attribute}_mean": mean,
        f"{attribute}_median": median,
        f"{attribute}_sd": sd,
        f"{attribute}_min": minimum,
        f"{attribute}_max": maximum,
    }
