from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from timerbench.core.types import Sample


class Sampler(Protocol):
    """Sampler interface.

    A sampler applies one timer resolution, takes ``samples`` latency
    measurements in milliseconds and returns them in order. It raises
    ``MeasurementError`` when the measurement cannot be taken. The search
    controller owns retries, statistics and best tracking.
    """

    name: str

    def measure(self, setting_ms: float, samples: int) -> Sequence[Sample]: ...
