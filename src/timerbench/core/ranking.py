from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from .types import Candidate

# p95, MAD, p99, CI width. All are cost criteria (lower is better).
TOPSIS_WEIGHTS = (0.40, 0.30, 0.20, 0.10)
_TINY = 1e-10


@dataclass(frozen=True)
class TopsisScore:
    setting_ms: float
    index: int
    closeness: float
    rank: int


def _criteria(c: Candidate) -> tuple[float, float, float, float]:
    st = c.statistics
    return (st.p95, st.mad, st.p99, st.ci95_high - st.ci95_low)


def topsis_ranking(
    candidates: Sequence[Candidate],
    weights: tuple[float, float, float, float] = TOPSIS_WEIGHTS,
) -> list[TopsisScore]:
    """Rank candidates by closeness to the ideal solution (TOPSIS).

    Returns scores sorted best first; ``rank`` starts at 1. Ties keep grid
    order.
    """

    if not candidates:
        return []

    n = len(candidates)
    matrix = [_criteria(c) for c in candidates]
    n_criteria = len(weights)

    weighted: list[list[float]] = [[0.0] * n_criteria for _ in range(n)]
    for j in range(n_criteria):
        norm = math.sqrt(math.fsum(row[j] ** 2 for row in matrix))
        for i in range(n):
            # A column of zeros carries no information: spread it evenly.
            normalized = 1.0 / math.sqrt(n) if norm < _TINY else matrix[i][j] / norm
            weighted[i][j] = normalized * weights[j]

    ideal = [min(row[j] for row in weighted) for j in range(n_criteria)]
    anti_ideal = [max(row[j] for row in weighted) for j in range(n_criteria)]

    scored: list[tuple[float, int]] = []
    for i, row in enumerate(weighted):
        d_ideal = math.sqrt(math.fsum((row[j] - ideal[j]) ** 2 for j in range(n_criteria)))
        d_anti = math.sqrt(math.fsum((row[j] - anti_ideal[j]) ** 2 for j in range(n_criteria)))
        denom = d_ideal + d_anti
        cc = 0.5 if denom < _TINY else d_anti / denom
        if not math.isfinite(cc):
            cc = 0.5
        scored.append((cc, i))

    scored.sort(key=lambda t: (-t[0], t[1]))
    return [
        TopsisScore(
            setting_ms=candidates[i].setting_ms,
            index=candidates[i].index,
            closeness=cc,
            rank=rank,
        )
        for rank, (cc, i) in enumerate(scored, start=1)
    ]
