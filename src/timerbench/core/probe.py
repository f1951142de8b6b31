from __future__ import annotations

import re
from dataclasses import dataclass

_SAMPLE_RE = re.compile(r"^TIMERBENCH_SAMPLE\s+(?P<key>[A-Za-z0-9_]+)=(?P<val>[-+0-9.eE]+)\s*$")
_RESOLUTION_RE = re.compile(r"Resolution:\s*(?P<val>[-+0-9.eE]+)\s*ms")


@dataclass(frozen=True)
class ProbeOutput:
    samples: list[float]
    reported_resolution_ms: float | None


def parse_probe_output(stdout: str, key: str = "delta_ms") -> ProbeOutput:
    """Parse probe stdout.

    Expected format, one line per sample:
        TIMERBENCH_SAMPLE delta_ms=0.0312

    An optional line such as
        Resolution: 0.5186ms, Sleep(1) slept 1.0310ms (delta: 0.0310)
    reports the resolution the probe actually observed. The first one wins.
    """

    samples: list[float] = []
    reported: float | None = None
    for line in stdout.splitlines():
        stripped = line.strip()
        if reported is None:
            r = _RESOLUTION_RE.search(stripped)
            if r:
                try:
                    reported = float(r.group("val"))
                except ValueError:
                    pass
        m = _SAMPLE_RE.match(stripped)
        if not m or m.group("key") != key:
            continue
        try:
            samples.append(float(m.group("val")))
        except ValueError:
            continue
    return ProbeOutput(samples=samples, reported_resolution_ms=reported)
