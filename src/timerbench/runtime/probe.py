from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class ProbeConfig:
    resolution_ms: float | None
    samples: int


def _get_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_probe_config() -> ProbeConfig:
    """Read the probe request from environment variables.

    Environment variables:

    - TIMERBENCH_RESOLUTION_MS
    - TIMERBENCH_SAMPLES
    """

    samples = max(_get_int("TIMERBENCH_SAMPLES", 50), 1)

    res_raw = os.environ.get("TIMERBENCH_RESOLUTION_MS")
    resolution_ms: float | None = None
    if res_raw is not None:
        try:
            resolution_ms = float(res_raw)
        except ValueError:
            resolution_ms = None

    return ProbeConfig(resolution_ms=resolution_ms, samples=samples)


def print_samples(samples: Iterable[float], key: str = "delta_ms") -> None:
    """Print samples in a format timerbench can parse.

    Example:
        print_samples([0.031, 0.029])

    Output:
        TIMERBENCH_SAMPLE delta_ms=0.031
        TIMERBENCH_SAMPLE delta_ms=0.029
    """

    for v in samples:
        print(f"TIMERBENCH_SAMPLE {key}={float(v)}")
