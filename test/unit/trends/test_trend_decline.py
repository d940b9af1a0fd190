"""Unit tests for decline detection."""

import math

import pytest

from trends.decline import coerce_points, is_declining, trailing_points


@pytest.mark.parametrize("points", [[], [5], [5, 4]])
def test_insufficient_points_never_decline(points) -> None:
    """Fewer than three points cannot form a decline."""
    assert is_declining(points) is False


def test_strict_decrease_is_declining() -> None:
    """Three strictly decreasing points qualify."""
    assert is_declining([10, 8, 6]) is True


def test_tie_breaks_monotonicity() -> None:
    """Equal neighbours do not count as a decline."""
    assert is_declining([10, 8, 8]) is False


def test_increasing_is_not_declining() -> None:
    """Rising scores are not a decline."""
    assert is_declining([6, 8, 10]) is False


def test_only_trailing_triple_is_inspected() -> None:
    """Earlier history does not affect the result."""
    assert is_declining([1, 2, 3, 9, 7, 5]) is True
    assert is_declining([9, 7, 5, 6]) is False
    assert trailing_points([1, 2, 3, 9, 7, 5]) == [9, 7, 5]


def test_coerce_points_drops_unusable_values() -> None:
    """Strings are parsed; None, booleans, junk, and non-finite values are dropped."""
    raw = ["90", 80, None, "abc", True, math.inf, float("nan"), 70.5]

    assert coerce_points(raw) == [90.0, 80.0, 70.5]
    assert coerce_points(None) == []
