"""Reference probe for timerbench's command sampler.

This script measures how much longer than requested a 1 ms sleep takes,
which is what a coarser or finer system timer resolution changes. It runs on
any platform; only the absolute numbers differ.

The goal is to demonstrate how to:
- read the request from timerbench's env vars
- take the requested number of samples
- print TIMERBENCH_SAMPLE lines

Usage:
    timerbench run --sampler command --probe-cmd "python examples/sleep_probe.py"
"""

from __future__ import annotations

import time

from timerbench.runtime import get_probe_config, print_samples

SLEEP_S = 0.001


def main() -> None:
    cfg = get_probe_config()

    deltas: list[float] = []
    for _ in range(cfg.samples):
        t0 = time.perf_counter()
        time.sleep(SLEEP_S)
        slept_ms = (time.perf_counter() - t0) * 1000.0
        deltas.append(max(slept_ms - SLEEP_S * 1000.0, 0.0))

    if cfg.resolution_ms is not None:
        avg = sum(deltas) / len(deltas)
        print(f"Requested: {cfg.resolution_ms:.4f}ms, Sleep(1) overshoot avg {avg:.4f}ms")

    print_samples(deltas)


if __name__ == "__main__":
    main()
