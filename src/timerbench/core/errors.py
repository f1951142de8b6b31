from __future__ import annotations


class TimerbenchError(Exception):
    """Base class for timerbench errors."""


class EmptySampleSet(TimerbenchError, ValueError):
    """Statistics were requested for zero samples.

    Samplers guarantee at least one sample per run, so this is a contract
    violation rather than a measurement problem.
    """


class MeasurementError(TimerbenchError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RenderingUnavailable(TimerbenchError):
    """The terminal cannot host a redrawn region."""


class SearchCancelled(TimerbenchError):
    """Cooperative stop requested between grid points."""
