from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Sample = float
EventKind = Literal["run", "candidate", "skipped"]
EstimateKind = Literal["static", "live"]


@dataclass(frozen=True)
class SystemInfo:
    os: str
    arch: str
    python: str
    cpu: str | None
    interactive: bool
    color_system: str | None
    terminal_width: int
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoreWeights:
    """Weights of the performance score. Lower scores are better."""

    mean: float = 0.10
    p95: float = 0.60
    mad: float = 0.30


@dataclass(frozen=True)
class Statistics:
    mean: float
    median: float
    p95: float
    p99: float
    mad: float
    stdev: float
    ci95_low: float
    ci95_high: float
    sample_count: int
    outliers_removed: int
    performance_score: float

    @property
    def retained_count(self) -> int:
        return self.sample_count - self.outliers_removed


@dataclass(frozen=True)
class Candidate:
    setting_ms: float
    index: int
    samples: tuple[Sample, ...]
    statistics: Statistics

    @property
    def score(self) -> float:
        return self.statistics.performance_score


@dataclass(frozen=True)
class SkippedCandidate:
    """A grid point that could not be measured within the retry budget."""

    setting_ms: float
    index: int
    attempts: int
    reason: str


@dataclass(frozen=True)
class BestCandidate:
    setting_ms: float
    index: int
    score: float
    mean: float
    p95: float
    mad: float

    @classmethod
    def of(cls, candidate: Candidate) -> BestCandidate:
        st = candidate.statistics
        return cls(
            setting_ms=candidate.setting_ms,
            index=candidate.index,
            score=st.performance_score,
            mean=st.mean,
            p95=st.p95,
            mad=st.mad,
        )


@dataclass(frozen=True)
class Estimate:
    """A remaining-time estimate. ``seconds is None`` means unknown."""

    kind: EstimateKind
    seconds: float | None
    low_confidence: bool = False

    @property
    def known(self) -> bool:
        return self.seconds is not None


@dataclass
class SearchState:
    total: int
    started_at: float
    current_index: int = -1
    candidates: list[Candidate] = field(default_factory=list)
    skipped: list[SkippedCandidate] = field(default_factory=list)
    best: BestCandidate | None = None
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return len(self.candidates) + len(self.skipped)


@dataclass(frozen=True)
class ProgressEvent:
    kind: EventKind
    index: int
    total: int
    setting_ms: float
    current_value_ms: float | None
    tick: int
    elapsed_s: float
    eta_static: Estimate
    eta_live: Estimate
    best: BestCandidate | None
    completed: int
    skipped: int


@dataclass(frozen=True)
class SearchSummary:
    """Final, read-only view of a finished (or cancelled) search."""

    total: int
    candidates: tuple[Candidate, ...]
    skipped: tuple[SkippedCandidate, ...]
    best: BestCandidate | None
    cancelled: bool
    elapsed_s: float
    eta_static: Estimate

    @classmethod
    def of(cls, state: SearchState, *, elapsed_s: float, eta_static: Estimate) -> SearchSummary:
        return cls(
            total=state.total,
            candidates=tuple(state.candidates),
            skipped=tuple(state.skipped),
            best=state.best,
            cancelled=state.cancelled,
            elapsed_s=elapsed_s,
            eta_static=eta_static,
        )
