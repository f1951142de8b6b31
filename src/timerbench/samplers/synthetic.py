from __future__ import annotations

import random

from timerbench.core.types import Sample


class SyntheticSampler:
    """Deterministic, dependency-free latency model.

    Useful to try the tool on machines where timer resolution cannot be
    changed. Latency grows linearly with the distance to ``optimum_ms``, with
    gaussian jitter and occasional scheduler spikes.
    """

    name = "synthetic"

    def __init__(
        self,
        *,
        optimum_ms: float = 0.5,
        base_ms: float = 0.02,
        slope: float = 0.8,
        jitter_ms: float = 0.003,
        spike_rate: float = 0.02,
        spike_ms: float = 0.5,
        seed: int = 0,
    ) -> None:
        self.optimum_ms = optimum_ms
        self.base_ms = base_ms
        self.slope = slope
        self.jitter_ms = jitter_ms
        self.spike_rate = spike_rate
        self.spike_ms = spike_ms
        self._rng = random.Random(seed)

    def measure(self, setting_ms: float, samples: int) -> list[Sample]:
        center = self.base_ms + self.slope * abs(setting_ms - self.optimum_ms)
        out: list[Sample] = []
        for _ in range(samples):
            value = center + self._rng.gauss(0.0, self.jitter_ms)
            if self._rng.random() < self.spike_rate:
                value += self.spike_ms
            out.append(max(value, 0.0))
        return out
