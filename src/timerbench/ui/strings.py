"""Display strings.

Pure formatting functions over already computed values. Nothing here reads
state or writes output.
"""

from __future__ import annotations

from timerbench.core.eta import preferred
from timerbench.core.types import BestCandidate, Estimate, ProgressEvent, SkippedCandidate
from timerbench.samplers.command import resolution_units

NONE_YET = "Current best: none yet"
NOT_MEASURED = "not measured"


def format_ms(value: float | None) -> str:
    return "-" if value is None else f"{value:.4f} ms"


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "unknown"
    total = int(round(max(seconds, 0.0)))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}h {m:02d}m {s:02d}s"
    if m:
        return f"{m}m {s:02d}s"
    return f"{s}s"


def format_clock(seconds: float) -> str:
    total = int(max(seconds, 0.0))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def estimate_text(estimate: Estimate) -> str:
    if estimate.kind == "static":
        return f"static estimate {format_duration(estimate.seconds)} (low confidence)"
    return f"live ETA {format_duration(estimate.seconds)}"


def eta_text(static: Estimate, live: Estimate) -> str:
    """Both estimates, live first once it is known."""

    first = preferred(static, live)
    second = static if first is live else live
    return f"{estimate_text(first)} · {estimate_text(second)}"


def best_text(best: BestCandidate | None) -> str:
    if best is None:
        return NONE_YET
    return (
        f"Current best: {best.setting_ms:.4f} ms (score={best.score:.4f}, "
        f"μ={best.mean:.4f} ms, p95={best.p95:.4f} ms, MAD={best.mad:.4f} ms)"
    )


def progress_text(event: ProgressEvent) -> str:
    position = f"{min(event.index + 1, event.total)}/{event.total}"
    parts = [position, f"point {event.setting_ms:.4f} ms"]
    if event.kind == "skipped":
        parts.append(NOT_MEASURED)
    else:
        parts.append(f"Δ {format_ms(event.current_value_ms)}")
    if event.skipped:
        parts.append(f"{event.skipped} skipped")
    parts.append(eta_text(event.eta_static, event.eta_live))
    return "  ".join(parts)


def skipped_text(skipped: SkippedCandidate) -> str:
    return (
        f"{skipped.setting_ms:.4f} ms {NOT_MEASURED} after {skipped.attempts} attempts: "
        f"{skipped.reason}"
    )


def recommendation_text(setting_ms: float) -> str:
    return (
        f"Recommended: SetTimerResolution.exe --resolution {resolution_units(setting_ms)} "
        "--no-console"
    )
