"""Decline detection over ordered score sequences."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

DECLINE_WINDOW = 3


def is_declining(points: Sequence[float]) -> bool:
    """Return True when the trailing three points strictly decrease.

    Points are ordered oldest first. Fewer than three points never count as a
    decline and ties break the run.
    """
    if len(points) < DECLINE_WINDOW:
        return False
    a, b, c = points[-DECLINE_WINDOW:]
    return a > b > c


def trailing_points(points: Sequence[float]) -> list[float]:
    """Return the points the detector inspected."""
    return list(points[-DECLINE_WINDOW:])


def coerce_points(values: Iterable[object] | None) -> list[float]:
    """Convert raw request values to floats, dropping anything non-finite."""
    cleaned: list[float] = []
    for value in values or ():
        if isinstance(value, bool):
            continue
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            continue
        if math.isfinite(number):
            cleaned.append(number)
    return cleaned


__all__ = ["DECLINE_WINDOW", "coerce_points", "is_declining", "trailing_points"]
