from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

from .eta import DEFAULT_SECONDS_PER_POINT
from .grid import explicit_grid, linear_grid
from .stats import DEFAULT_OUTLIER_K
from .types import ScoreWeights

# Keys used by the appsettings.json of the original Windows tool.
_LEGACY_KEYS = {
    "StartValue": "start_ms",
    "IncrementValue": "step_ms",
    "EndValue": "end_ms",
    "SampleValue": "samples_per_run",
}


@dataclass(frozen=True)
class BenchmarkConfig:
    """Everything needed to plan and run one search.

    Either ``values`` (explicit grid) or the ``start_ms``/``end_ms``/``step_ms``
    triple defines the grid; ``values`` wins when both are set.
    """

    start_ms: float = 0.5
    end_ms: float = 0.6
    step_ms: float = 0.002
    values: tuple[float, ...] = ()
    runs_per_point: int = 3
    samples_per_run: int = 50
    max_retries: int = 3
    outlier_k: float = DEFAULT_OUTLIER_K
    weights: ScoreWeights = field(default_factory=ScoreWeights)
    assumed_seconds_per_point: float = DEFAULT_SECONDS_PER_POINT

    def validate(self) -> BenchmarkConfig:
        if self.runs_per_point < 1:
            raise ValueError("runs per point must be >= 1")
        if self.samples_per_run < 1:
            raise ValueError("samples per run must be >= 1")
        if self.max_retries < 0:
            raise ValueError("retry budget must be >= 0")
        if not self.outlier_k >= 1.0:
            raise ValueError("outlier multiplier must be >= 1.0")
        w = self.weights
        if min(w.mean, w.p95, w.mad) < 0:
            raise ValueError("score weights must be non-negative")
        if w.mean + w.p95 + w.mad <= 0:
            raise ValueError("at least one score weight must be positive")
        if self.assumed_seconds_per_point < 0:
            raise ValueError("assumed seconds per point must be non-negative")
        self.grid()
        return self

    def grid(self) -> list[float]:
        if self.values:
            return explicit_grid(self.values)
        return linear_grid(self.start_ms, self.end_ms, self.step_ms)

    def with_overrides(self, **overrides: Any) -> BenchmarkConfig:
        """Return a copy with every non-None override applied."""

        weights = self.weights
        weight_keys = {"w_mean": "mean", "w_p95": "p95", "w_mad": "mad"}
        weight_updates = {
            weight_keys[k]: v for k, v in overrides.items() if k in weight_keys and v is not None
        }
        if weight_updates:
            weights = replace(weights, **weight_updates)

        fields = {
            k: v for k, v in overrides.items() if k not in weight_keys and v is not None
        }
        if "values" in fields:
            fields["values"] = tuple(fields["values"])
        return replace(self, weights=weights, **fields)


def _from_dict(raw: dict[str, Any]) -> BenchmarkConfig:
    data: dict[str, Any] = {}
    for k, v in raw.items():
        data[_LEGACY_KEYS.get(k, k)] = v

    weights_raw = data.pop("weights", None)
    if "values" in data:
        data["values"] = tuple(float(v) for v in data["values"])

    known = set(BenchmarkConfig.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

    cfg = BenchmarkConfig(**data)
    if weights_raw is not None:
        cfg = replace(cfg, weights=ScoreWeights(**weights_raw))
    return cfg


def load_config(path: Path) -> BenchmarkConfig:
    """Load a config file.

    Accepts snake_case keys as well as the ``StartValue``/``IncrementValue``/
    ``EndValue``/``SampleValue`` keys of legacy ``appsettings.json`` files.
    """

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a JSON object")
    try:
        return _from_dict(raw).validate()
    except TypeError as e:
        raise ValueError(f"Invalid config in {path}: {e}") from e


def save_config(config: BenchmarkConfig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = asdict(config)
    payload["values"] = list(config.values)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
