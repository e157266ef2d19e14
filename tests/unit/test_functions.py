# tests/unit/test_functions.py

import math

import pytest
import numpy as np

from canopytools.zonal import (
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
from canopytools.exceptions import InvalidConfigError

def test_top_height_mean_of_largest():
    assert top_height(3)(np.arange(1, 11, dtype=float)) == 9.0

def test_top_height_falls_back_to_mean():
    assert top_height(3)(np.array([5.0, 7.0])) == 6.0

@pytest.mark.parametrize("n", [0, -2, 1.5])
def test_top_height_invalid_n(n):
    with pytest.raises(InvalidConfigError):
        top_height(n)

def test_stock_reducers():
    values = np.array([4.0, 1.0, 3.0, 2.0])
    assert mean(values) == 2.5
    assert median(values) == 2.5
    assert minimum(values) == 1.0
    assert maximum(values) == 4.0
    assert sd(values) == pytest.approx(np.std(values, ddof=1))
    assert quantile(0.5)(values) == 2.5

def test_sd_needs_two_values():
    assert math.isnan(sd(np.array([3.0])))

def test_quantile_bounds():
    with pytest.raises(InvalidConfigError):
        quantile(1.5)

def test_default_functions_names():
    assert list(default_functions("height")) == [
        "height_mean", "height_median", "height_sd", "height_min", "height_max"
    ]

def test_summary_function_strips_nan():
    fn = SummaryFunction("mean", mean)
    assert fn([1.0, np.nan, 3.0]) == 2.0

def test_summary_function_empty_returns_nodata():
    called = []
    fn = SummaryFunction("mean", lambda v: called.append(v) or 1.0, nodata=-1.0)

    assert fn.evaluate([]) == (-1.0, None)
    assert fn.evaluate([np.nan, np.nan]) == (-1.0, None)
    assert called == []

def test_summary_function_catches_exceptions():
    fn = SummaryFunction("boom", lambda v: 1 / 0)
    value, message = fn.evaluate([1.0])
    assert math.isnan(value)
    assert "ZeroDivisionError" in message

@pytest.mark.parametrize("result", ["abc", None, [1.0, 2.0], True])
def test_summary_function_rejects_non_numeric(result):
    fn = SummaryFunction("bad", lambda v: result, nodata=0.0)
    value, message = fn.evaluate([1.0])
    assert value == 0.0
    assert message is not None

def test_summary_function_accepts_numpy_scalars():
    fn = SummaryFunction("n", lambda v: np.int64(v.size))
    assert fn.evaluate([1.0, 2.0]) == (2.0, None)

    fn = SummaryFunction("s", lambda v: np.sum(v))
    assert fn.evaluate([1.0, 2.0]) == (3.0, None)

def test_summary_function_validation():
    with pytest.raises(InvalidConfigError):
        SummaryFunction("x", 42)
    with pytest.raises(InvalidConfigError):
        SummaryFunction("", mean)
