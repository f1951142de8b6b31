from __future__ import annotations

import math
from collections.abc import Sequence

from .errors import EmptySampleSet
from .types import Sample, ScoreWeights, Statistics

DEFAULT_OUTLIER_K = 3.5
_Z_95 = 1.96


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolated percentile of an already sorted sequence.

    ``p`` is in [0, 100]. Matches the "linear" method of numpy.percentile.
    """

    if not sorted_values:
        raise EmptySampleSet("percentile of an empty sequence")
    n = len(sorted_values)
    if n == 1:
        return float(sorted_values[0])
    pos = (n - 1) * (p / 100.0)
    lo = math.floor(pos)
    hi = min(lo + 1, n - 1)
    frac = pos - lo
    return sorted_values[lo] + (sorted_values[hi] - sorted_values[lo]) * frac


def median_absolute_deviation(sorted_values: Sequence[float], median: float) -> float:
    deviations = sorted(abs(x - median) for x in sorted_values)
    return percentile(deviations, 50.0)


class StatisticsEngine:
    """Reduce raw samples to robust statistics and a performance score.

    Outliers are samples farther than ``outlier_k * MAD`` from the median.
    Mean, percentiles, stdev and the confidence interval are computed on the
    retained samples; median and MAD describe the raw set.
    """

    def __init__(
        self,
        *,
        outlier_k: float = DEFAULT_OUTLIER_K,
        weights: ScoreWeights | None = None,
    ) -> None:
        if not outlier_k >= 1.0:
            raise ValueError(f"outlier multiplier must be >= 1.0, got {outlier_k}")
        self.outlier_k = outlier_k
        self.weights = weights or ScoreWeights()

    def score(self, *, mean: float, p95: float, mad: float) -> float:
        w = self.weights
        return w.mean * mean + w.p95 * p95 + w.mad * mad

    def reduce(self, samples: Sequence[Sample]) -> Statistics:
        if len(samples) == 0:
            raise EmptySampleSet("cannot compute statistics from zero samples")

        ordered = sorted(float(s) for s in samples)
        median = percentile(ordered, 50.0)
        mad = median_absolute_deviation(ordered, median)

        threshold = self.outlier_k * mad
        # |x - median| <= k * MAD keeps at least half of the samples for k >= 1.
        retained = [x for x in ordered if abs(x - median) <= threshold]
        outliers_removed = len(ordered) - len(retained)

        n = len(retained)
        mean = math.fsum(retained) / n
        variance = math.fsum((x - mean) ** 2 for x in retained) / n
        stdev = math.sqrt(variance)
        margin = _Z_95 * stdev / math.sqrt(n)

        p95 = percentile(retained, 95.0)
        p99 = percentile(retained, 99.0)

        return Statistics(
            mean=mean,
            median=median,
            p95=p95,
            p99=p99,
            mad=mad,
            stdev=stdev,
            ci95_low=mean - margin,
            ci95_high=mean + margin,
            sample_count=len(ordered),
            outliers_removed=outliers_removed,
            performance_score=self.score(mean=mean, p95=p95, mad=mad),
        )
