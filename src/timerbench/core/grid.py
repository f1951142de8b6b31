from __future__ import annotations

import math
from collections.abc import Iterable

# Timer resolutions are requested in 100 ns units.
RESOLUTION_DIGITS = 4
_EPS = 1e-9


def _check_monotonic(values: list[float]) -> None:
    for prev, cur in zip(values, values[1:]):
        if cur <= prev:
            raise ValueError(f"grid must be strictly increasing ({prev} then {cur})")


def linear_grid(start: float, end: float, step: float) -> list[float]:
    """Inclusive grid ``start, start + step, ... <= end``.

    Points are computed by index rather than by repeated addition, so the
    last point is not lost to accumulated floating-point error.
    """

    if start <= 0 or end <= 0 or step <= 0:
        raise ValueError("start, end and step must be positive")
    if end < start:
        raise ValueError(f"end ({end}) must not be below start ({start})")

    count = int(math.floor((end - start) / step + _EPS)) + 1
    values = [round(start + i * step, RESOLUTION_DIGITS) for i in range(count)]
    _check_monotonic(values)
    return values


def explicit_grid(values: Iterable[float]) -> list[float]:
    grid = [round(float(v), RESOLUTION_DIGITS) for v in values]
    if not grid:
        raise ValueError("grid is empty")
    if any(v <= 0 for v in grid):
        raise ValueError("grid values must be positive")
    _check_monotonic(grid)
    return grid
