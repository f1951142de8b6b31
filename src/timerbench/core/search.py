from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterable, Iterator, Sequence

from timerbench.samplers.base import Sampler

from .errors import MeasurementError, SearchCancelled
from .eta import ETAEstimator
from .stats import StatisticsEngine
from .types import (
    BestCandidate,
    Candidate,
    Estimate,
    EventKind,
    ProgressEvent,
    Sample,
    SearchState,
    SearchSummary,
    SkippedCandidate,
)

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation flag, honoured only between grid points."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SearchCancelled("search cancelled between grid points")


class SearchController:
    """Scan a 1-D grid of timer resolutions, one candidate at a time.

    ``run`` yields a ``run`` event after every sampler run and exactly one
    ``candidate`` (or ``skipped``) event per grid point. Candidate events
    always carry the best candidate seen so far.

    A failed run discards the whole attempt for that point; the point is
    re-measured up to ``max_retries`` more times and then recorded as skipped.
    """

    def __init__(
        self,
        *,
        sampler: Sampler,
        engine: StatisticsEngine,
        estimator: ETAEstimator,
        runs_per_point: int = 3,
        samples_per_run: int = 50,
        max_retries: int = 3,
        token: CancelToken | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if runs_per_point < 1 or samples_per_run < 1:
            raise ValueError("runs per point and samples per run must be >= 1")
        if max_retries < 0:
            raise ValueError("retry budget must be >= 0")

        self.sampler = sampler
        self.engine = engine
        self.estimator = estimator
        self.runs_per_point = runs_per_point
        self.samples_per_run = samples_per_run
        self.max_retries = max_retries
        self.token = token or CancelToken()
        self._clock = clock

        self._state: SearchState | None = None
        self._eta_static = Estimate(kind="static", seconds=None, low_confidence=True)
        self._tick = 0

    @property
    def state(self) -> SearchState:
        if self._state is None:
            raise RuntimeError("search has not started")
        return self._state

    def cancel(self) -> None:
        self.token.cancel()

    def elapsed(self) -> float:
        return self._clock() - self.state.started_at

    def summary(self) -> SearchSummary:
        return SearchSummary.of(self.state, elapsed_s=self.elapsed(), eta_static=self._eta_static)

    def run(self, grid: Iterable[float]) -> Iterator[ProgressEvent]:
        if self._state is not None:
            raise RuntimeError("a SearchController can only run once")

        points = list(grid)
        self._state = SearchState(total=len(points), started_at=self._clock())
        self._eta_static = self.estimator.initial_estimate(len(points))
        return self._iterate(points)

    def _iterate(self, points: Sequence[float]) -> Iterator[ProgressEvent]:
        state = self.state
        try:
            for index, setting in enumerate(points):
                self.token.raise_if_cancelled()
                state.current_index = index
                yield from self._evaluate(index, setting)
        except SearchCancelled:
            state.cancelled = True
            logger.info("Search cancelled after %d of %d points", state.processed, state.total)
        except GeneratorExit:
            state.cancelled = True
            raise

    def _evaluate(self, index: int, setting: float) -> Iterator[ProgressEvent]:
        attempts = 0
        while True:
            attempts += 1
            samples: list[Sample] = []
            try:
                for _ in range(self.runs_per_point):
                    batch = self._measure_once(setting)
                    samples.extend(batch)
                    yield self._event("run", index, setting, math.fsum(batch) / len(batch))
                break
            except MeasurementError as e:
                logger.warning(
                    "Measurement of %.4f ms failed (attempt %d of %d): %s",
                    setting,
                    attempts,
                    self.max_retries + 1,
                    e.reason,
                )
                if attempts > self.max_retries:
                    self.state.skipped.append(
                        SkippedCandidate(
                            setting_ms=setting, index=index, attempts=attempts, reason=e.reason
                        )
                    )
                    yield self._event("skipped", index, setting, None)
                    return

        statistics = self.engine.reduce(samples)
        candidate = Candidate(
            setting_ms=setting, index=index, samples=tuple(samples), statistics=statistics
        )
        state = self.state
        state.candidates.append(candidate)
        if state.best is None or candidate.score < state.best.score:
            state.best = BestCandidate.of(candidate)
            logger.debug("New best %.4f ms (score=%.4f)", setting, candidate.score)

        yield self._event("candidate", index, setting, statistics.mean)

    def _measure_once(self, setting: float) -> list[Sample]:
        batch = [float(s) for s in self.sampler.measure(setting, self.samples_per_run)]
        if not batch:
            raise MeasurementError("sampler returned no samples")
        if not all(math.isfinite(s) for s in batch):
            raise MeasurementError("sampler returned non-finite samples")
        if min(batch) < 0:
            raise MeasurementError("sampler returned negative samples")
        return batch

    def _event(
        self, kind: EventKind, index: int, setting: float, value: float | None
    ) -> ProgressEvent:
        state = self.state
        elapsed = self.elapsed()
        self._tick += 1
        return ProgressEvent(
            kind=kind,
            index=index,
            total=state.total,
            setting_ms=setting,
            current_value_ms=value,
            tick=self._tick,
            elapsed_s=elapsed,
            eta_static=self._eta_static,
            eta_live=self.estimator.live_estimate(elapsed, state.processed, state.total),
            best=state.best,
            completed=len(state.candidates),
            skipped=len(state.skipped),
        )


def exit_code_for(summary: SearchSummary) -> int:
    """0 for completed or cancelled searches, 1 when no point could be measured."""

    if summary.skipped and not summary.candidates and not summary.cancelled:
        return 1
    return 0
