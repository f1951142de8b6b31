from __future__ import annotations

import platform
import sys
from contextlib import suppress
from dataclasses import asdict, dataclass
from typing import Any

from rich.console import Console

from .types import SystemInfo


@dataclass(frozen=True)
class TerminalCapability:
    interactive: bool
    width: int
    color_system: str | None


def detect_terminal(console: Console) -> TerminalCapability:
    """Report whether ``console`` supports cursor addressing.

    Redirected output and dumb terminals only get appended lines.
    """

    interactive = bool(console.is_terminal and not console.is_dumb_terminal)
    return TerminalCapability(
        interactive=interactive,
        width=console.width,
        color_system=console.color_system,
    )


def _cpu_name() -> str | None:
    name = platform.processor()
    if name:
        return name
    with suppress(OSError):
        with open("/proc/cpuinfo", encoding="utf-8") as f:
            for line in f:
                if line.startswith("model name"):
                    return line.split(":", 1)[1].strip()
    return None


def detect_system(console: Console | None = None) -> SystemInfo:
    """Detect host and terminal information.

    Windows exposes timer resolution control; other platforms can still run
    the synthetic sampler or a custom probe.
    """

    console = console or Console()
    term = detect_terminal(console)
    extra: dict[str, Any] = {}

    if platform.system() == "Windows":
        with suppress(Exception):
            extra["windows_build"] = platform.version()

    return SystemInfo(
        os=platform.system(),
        arch=platform.machine(),
        python=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        cpu=_cpu_name(),
        interactive=term.interactive,
        color_system=term.color_system,
        terminal_width=term.width,
        extra=extra,
    )


def system_summary_lines(system: SystemInfo) -> list[str]:
    lines = [
        "System summary",
        "──────────────",
        f"OS: {system.os} ({system.arch})",
        f"Python: {system.python}",
        f"CPU: {system.cpu or 'unknown'}",
        f"Terminal: {'interactive' if system.interactive else 'plain (line mode)'}",
    ]

    # Keep extra compact and stable.
    if system.extra:
        for k in sorted(system.extra.keys()):
            v = system.extra[k]
            lines.append(f"{k}: {v}")

    return lines


def system_summary_dict(system: SystemInfo) -> dict[str, Any]:
    return asdict(system)
