from __future__ import annotations

from .types import Estimate

DEFAULT_SECONDS_PER_POINT = 6.5

UNKNOWN = Estimate(kind="live", seconds=None)


class ETAEstimator:
    """Two independent remaining-time estimators.

    The static estimate is computed before anything is measured and is always
    flagged low-confidence. The live estimate extrapolates observed
    throughput. They are kept apart: callers display both, labeled.
    """

    def __init__(self, *, assumed_seconds_per_point: float = DEFAULT_SECONDS_PER_POINT) -> None:
        if assumed_seconds_per_point < 0:
            raise ValueError("assumed seconds per point must be non-negative")
        self.assumed_seconds_per_point = assumed_seconds_per_point

    def initial_estimate(
        self, grid_size: int, assumed_seconds_per_point: float | None = None
    ) -> Estimate:
        per_point = (
            self.assumed_seconds_per_point
            if assumed_seconds_per_point is None
            else assumed_seconds_per_point
        )
        return Estimate(kind="static", seconds=grid_size * per_point, low_confidence=True)

    def live_estimate(
        self, elapsed_since_start: float, points_completed: int, points_total: int
    ) -> Estimate:
        if points_completed <= 0:
            return UNKNOWN
        remaining = max(points_total - points_completed, 0)
        return Estimate(
            kind="live",
            seconds=elapsed_since_start / max(points_completed, 1) * remaining,
        )


def preferred(static: Estimate, live: Estimate) -> Estimate:
    """The estimate to show first: live once known, else the static one."""

    return live if live.known else static
