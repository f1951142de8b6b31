from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .base import Sampler
from .command import CommandSampler
from .synthetic import SyntheticSampler


def available_samplers() -> list[str]:
    return ["command", "synthetic"]


def _command(**options: Any) -> Sampler:
    options.pop("seed", None)
    probe_cmd = options.pop("probe_cmd", None)
    if not probe_cmd:
        raise ValueError("The 'command' sampler needs a probe command (--probe-cmd).")
    return CommandSampler(probe_cmd=probe_cmd, **options)


def _synthetic(**options: Any) -> Sampler:
    seed = options.get("seed", 0)
    return SyntheticSampler(seed=seed)


def resolve_sampler(name: str, **options: Any) -> Sampler:
    normalized = name.strip().lower()

    factories: dict[str, Callable[..., Sampler]] = {
        "command": _command,
        "synthetic": _synthetic,
    }

    if normalized not in factories:
        raise ValueError(
            f"Unknown sampler '{name}'. Available: {', '.join(available_samplers())}"
        )

    return factories[normalized](**options)
