"""Tests for slice strategy planning."""

from __future__ import annotations

import pytest

from tilekit.errors import PlanningError
from tilekit.planner import (
    MAX_DIMENSION,
    SliceDirection,
    SliceStrategy,
    is_oversized,
    plan_slices,
    safe_tile_size,
)
from tilekit.tiler import tile_grid


def test_wide_image_is_cut_vertically() -> None:
    strategy = plan_slices(5000, 3000, 4096)

    assert strategy.direction is SliceDirection.VERTICAL
    assert strategy.tile_width == 3686
    assert strategy.tile_height == 3000
    assert (strategy.cols, strategy.rows, strategy.total_tiles) == (2, 1, 2)
    cells = tile_grid(5000, 3000, strategy)
    assert [cell.width for cell in cells] == [3686, 1314]
    assert [cell.height for cell in cells] == [3000, 3000]


def test_tall_image_is_cut_horizontally() -> None:
    strategy = plan_slices(2000, 9000, 4096)

    assert strategy.direction is SliceDirection.HORIZONTAL
    assert strategy.tile_width == 2000
    assert strategy.tile_height == 3686
    assert (strategy.cols, strategy.rows, strategy.total_tiles) == (1, 3, 3)
    cells = tile_grid(2000, 9000, strategy)
    assert [cell.height for cell in cells] == [3686, 3686, 1628]


def test_huge_square_is_cut_into_grid() -> None:
    strategy = plan_slices(8200, 8200, 4096)

    assert strategy.direction is SliceDirection.BOTH
    assert strategy.tile_width == strategy.tile_height == 3686
    assert (strategy.cols, strategy.rows, strategy.total_tiles) == (3, 3, 9)
    cells = {(cell.row, cell.col): cell for cell in tile_grid(8200, 8200, strategy)}
    assert (cells[(2, 2)].width, cells[(2, 2)].height) == (828, 828)
    assert (cells[(0, 0)].width, cells[(0, 0)].height) == (3686, 3686)
    assert (cells[(0, 2)].width, cells[(0, 2)].height) == (828, 3686)
    assert (cells[(2, 1)].width, cells[(2, 1)].height) == (3686, 828)


def test_image_within_limit_is_not_sliced() -> None:
    strategy = plan_slices(3000, 3000, 4096)

    assert strategy.direction is SliceDirection.NONE
    assert strategy.total_tiles == 1
    assert (strategy.tile_width, strategy.tile_height) == (3000, 3000)
    assert not strategy.needs_slicing


def test_exact_limit_is_not_oversized() -> None:
    assert not is_oversized(MAX_DIMENSION, MAX_DIMENSION)
    assert is_oversized(MAX_DIMENSION + 1, 10)
    assert plan_slices(MAX_DIMENSION, MAX_DIMENSION).direction is SliceDirection.NONE


@pytest.mark.parametrize("max_dimension", [1, 7, 100, 4096])
def test_grid_invariants_hold_across_sizes(max_dimension: int) -> None:
    sizes = [1, 2, max_dimension, max_dimension + 1, 3 * max_dimension + 5]
    for width in sizes:
        for height in sizes:
            strategy = plan_slices(width, height, max_dimension)
            assert strategy.cols * strategy.rows == strategy.total_tiles
            assert (strategy.direction is SliceDirection.NONE) == (strategy.total_tiles == 1)
            assert strategy.tile_width <= max(max_dimension, 1)
            assert strategy.tile_height <= max(max_dimension, 1)
            cells = tile_grid(width, height, strategy)
            assert len(cells) == strategy.total_tiles
            assert sum(cell.width * cell.height for cell in cells) == width * height


def test_safety_margin_keeps_tiles_below_limit() -> None:
    assert safe_tile_size(4096) == 3686
    assert safe_tile_size(1) == 1


@pytest.mark.parametrize(
    ("width", "height", "max_dimension"),
    [(0, 10, 4096), (10, -1, 4096), (10, 10, 0), (True, 10, 4096)],
)
def test_non_positive_dimensions_are_rejected(width: int, height: int, max_dimension: int) -> None:
    with pytest.raises(PlanningError):
        plan_slices(width, height, max_dimension)


def test_strategy_payload_uses_plain_direction_string() -> None:
    strategy = plan_slices(8200, 100, 4096)
    payload = strategy.to_payload()

    assert payload["direction"] == "vertical"
    assert SliceStrategy.from_payload(payload) == strategy
    assert "vertical cut into 3 tiles" in strategy.description
