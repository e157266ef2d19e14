# tests/unit/test_grid.py

import math

import pytest
import numpy as np
from rasterio.transform import Affine

from canopytools.raster import GridIndex, Raster
from canopytools.exceptions import InvalidConfigError, OutOfExtentError

def test_cell_counts_use_ceil():
    grid = GridIndex((0, 0, 10, 10), 3)
    assert grid.shape == (4, 4)
    assert grid.bounds == (0.0, -2.0, 12.0, 10.0)

def test_cell_counts_tolerate_float_noise():
    grid = GridIndex((0, 0, 1.1, 1.1), 0.1)
    assert grid.shape == (11, 11)

def test_degenerate_extent_has_one_cell():
    grid = GridIndex((5, 5, 5, 5), 2)
    assert grid.shape == (1, 1)
    assert grid.cell_of(5, 5) == (0, 0)

def test_rectangular_resolution():
    grid = GridIndex((0, 0, 10, 4), (5, 2))
    assert grid.shape == (2, 2)
    assert grid.transform == Affine(5, 0, 0, 0, -2, 4)

@pytest.mark.parametrize("resolution", [0, -1, float("nan"), float("inf"), (1, 0), (1, 2, 3), "a"])
def test_invalid_resolution(resolution):
    with pytest.raises(InvalidConfigError):
        GridIndex((0, 0, 10, 10), resolution)

def test_inverted_extent():
    with pytest.raises(InvalidConfigError):
        GridIndex((10, 0, 0, 10), 1)

def test_cell_of_top_left_origin():
    grid = GridIndex((0, 0, 10, 10), 5)
    assert grid.cell_of(0, 10) == (0, 0)
    assert grid.cell_of(7.5, 7.5) == (0, 1)
    assert grid.cell_of(2.5, 2.5) == (1, 0)

def test_cell_of_far_edges_clamp_to_last_cell():
    grid = GridIndex((0, 0, 10, 10), 5)
    assert grid.cell_of(10, 0) == (1, 1)
    assert grid.cell_of(10, 10) == (0, 1)

def test_cell_of_outside_raises():
    grid = GridIndex((0, 0, 10, 10), 5)
    with pytest.raises(OutOfExtentError) as info:
        grid.cell_of(11, 5)
    assert info.value.x == 11
    assert info.value.y == 5

def test_center_of_is_inverse_of_cell_of():
    grid = GridIndex((100, 200, 130, 220), (3, 2))
    for row in range(grid.n_rows):
        for col in range(grid.n_cols):
            x, y = grid.center_of(row, col)
            assert grid.cell_of(x, y) == (row, col)

def test_center_of_outside_raises():
    grid = GridIndex((0, 0, 10, 10), 5)
    with pytest.raises(OutOfExtentError):
        grid.center_of(2, 0)

def test_cells_of_matches_cell_of():
    grid = GridIndex((0, 0, 10, 10), 2.5)
    rng = np.random.default_rng(0)
    xs = rng.uniform(-2, 12, 200)
    ys = rng.uniform(-2, 12, 200)

    rows, cols, inside = grid.cells_of(xs, ys)
    for x, y, r, c, ok in zip(xs, ys, rows, cols, inside):
        if ok:
            assert grid.cell_of(x, y) == (r, c)
        else:
            assert (r, c) == (-1, -1)
            assert not grid.contains(x, y)

def test_from_raster_matches_raster_grid(single_peak_chm):
    grid = GridIndex.from_raster(single_peak_chm)
    assert grid.shape == (3, 3)
    assert grid.transform == single_peak_chm.transform
    assert grid.center_of(1, 1) == (1.5, 1.5)

def test_from_transform_rejects_rotation():
    with pytest.raises(InvalidConfigError):
        GridIndex.from_transform(Affine(1, 0.5, 0, 0, -1, 10), 10, 10)

def test_from_transform_rejects_south_up():
    with pytest.raises(InvalidConfigError):
        GridIndex.from_transform(Affine(1, 0, 0, 0, 1, 0), 10, 10)

def test_centers_cover_full_grid():
    grid = GridIndex((0, 0, 4, 2), 1)
    xs, ys = grid.centers()
    assert xs.shape == (2, 4)
    assert xs[0, 0] == 0.5 and ys[0, 0] == 1.5
    assert math.isclose(xs[-1, -1], 3.5) and math.isclose(ys[-1, -1], 0.5)

def test_grid_equality():
    raster = Raster(np.zeros((2, 2)), Affine(5, 0, 0, 0, -5, 10))
    assert GridIndex.from_raster(raster) == GridIndex((0, 0, 10, 10), 5)
    assert GridIndex((0, 0, 10, 10), 5) != GridIndex((0, 0, 10, 10), 2)
