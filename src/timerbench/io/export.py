from __future__ import annotations

import csv
import io
import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Literal

from timerbench.core.ranking import topsis_ranking
from timerbench.core.types import SearchSummary

ExportFormat = Literal["json", "csv", "yaml"]

CSV_COLUMNS = [
    "Resolution_ms",
    "Status",
    "P50_Delta",
    "P95_Delta",
    "P99_Delta",
    "Mean_Delta",
    "StdDev",
    "MAD",
    "Outliers_Removed",
    "CI_Lower",
    "CI_Upper",
    "Score",
    "TOPSIS_Score",
    "Rank",
]


def results_payload(summary: SearchSummary) -> dict[str, Any]:
    """JSON-friendly view of a finished search, in grid order."""

    ranks = {s.index: s for s in topsis_ranking(summary.candidates)}
    points: list[dict[str, Any]] = []
    for c in summary.candidates:
        topsis = ranks[c.index]
        points.append(
            {
                "index": c.index,
                "resolution_ms": c.setting_ms,
                "status": "measured",
                "statistics": asdict(c.statistics),
                "topsis_score": topsis.closeness,
                "rank": topsis.rank,
            }
        )
    for s in summary.skipped:
        points.append(
            {
                "index": s.index,
                "resolution_ms": s.setting_ms,
                "status": "not_measured",
                "attempts": s.attempts,
                "reason": s.reason,
            }
        )
    points.sort(key=lambda p: p["index"])

    return {
        "total": summary.total,
        "cancelled": summary.cancelled,
        "elapsed_s": summary.elapsed_s,
        "static_estimate_s": summary.eta_static.seconds,
        "best": asdict(summary.best) if summary.best else None,
        "points": points,
    }


def _csv_text(payload: dict[str, Any]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for p in payload["points"]:
        if p["status"] != "measured":
            writer.writerow([f"{p['resolution_ms']:.4f}", p["status"]] + [""] * (len(CSV_COLUMNS) - 2))
            continue
        st = p["statistics"]
        writer.writerow(
            [
                f"{p['resolution_ms']:.4f}",
                p["status"],
                f"{st['median']:.4f}",
                f"{st['p95']:.4f}",
                f"{st['p99']:.4f}",
                f"{st['mean']:.4f}",
                f"{st['stdev']:.4f}",
                f"{st['mad']:.4f}",
                st["outliers_removed"],
                f"{st['ci95_low']:.4f}",
                f"{st['ci95_high']:.4f}",
                f"{st['performance_score']:.4f}",
                f"{p['topsis_score']:.4f}",
                p["rank"],
            ]
        )
    return buf.getvalue()


def export_results(payload: dict[str, Any], *, fmt: ExportFormat, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)

    if fmt == "json":
        out_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        return

    if fmt == "csv":
        out_path.write_text(_csv_text(payload), encoding="utf-8")
        return

    if fmt == "yaml":
        try:
            import yaml  # type: ignore
        except Exception as e:
            raise RuntimeError(
                "YAML export requires optional dependency. Install: pip install 'timerbench[yaml]'"
            ) from e
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ValueError(f"Unknown export format: {fmt}")


def load_results(path: Path) -> dict[str, Any]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict) or "points" not in payload:
        raise ValueError(f"{path} is not a timerbench results file")
    return payload


def _timestamp() -> str:
    return time.strftime("%Y-%m-%d_%H-%M-%S")


def ensure_run_dir(base: Path) -> Path:
    run_dir = base / "runs" / _timestamp()
    suffix = 1
    while run_dir.exists():
        suffix += 1
        run_dir = base / "runs" / f"{_timestamp()}_{suffix}"
    run_dir.mkdir(parents=True)
    return run_dir
