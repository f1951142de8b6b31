"""Terminal reporting for a running search.

The reporter is the only writer of the output console while a search runs.
It reserves a two-line region (progress line and current-best line) and
redraws both lines together, in one write, for every progress event. Nothing
else may print to that console until the reporter is finalized; diagnostics
go to stderr.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Protocol

from rich.console import Console, Group, RenderableType
from rich.errors import LiveError
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from timerbench.core.detect import detect_terminal
from timerbench.core.errors import RenderingUnavailable
from timerbench.core.ranking import topsis_ranking
from timerbench.core.types import Estimate, ProgressEvent, SearchSummary

from . import strings

logger = logging.getLogger(__name__)

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
BAR_WIDTH = 30


class ReporterState(Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class Frame:
    """Everything shown in the reserved region for one event."""

    spinner: str
    elapsed: str
    completed: int
    total: int
    progress: str
    best: str

    def flat(self) -> str:
        return f"[{self.elapsed}] {self.progress} | {self.best}"


def render_frame(event: ProgressEvent) -> Frame:
    return Frame(
        spinner=SPINNER_FRAMES[event.tick % len(SPINNER_FRAMES)],
        elapsed=strings.format_clock(event.elapsed_s),
        completed=event.completed + event.skipped,
        total=event.total,
        progress=strings.progress_text(event),
        best=strings.best_text(event.best),
    )


class Region(Protocol):
    """Output target owning the reserved lines."""

    def open(self) -> None: ...

    def draw(self, frame: Frame) -> None: ...

    def close(self) -> None: ...


class LiveRegion:
    """Cursor-addressed region redrawn in place.

    Auto-refresh is disabled: redraws happen only when ``draw`` is called, so
    no background thread ever touches the terminal.
    """

    def __init__(self, console: Console) -> None:
        self.console = console
        self._live: Live | None = None

    def renderable(self, frame: Frame) -> RenderableType:
        line_a = Table.grid(padding=(0, 1))
        line_a.add_column(no_wrap=True)
        line_a.add_column(no_wrap=True)
        line_a.add_column(no_wrap=True)
        line_a.add_column(no_wrap=True, overflow="ellipsis")
        line_a.add_row(
            Text(frame.spinner, style="green"),
            Text(f"[{frame.elapsed}]"),
            ProgressBar(total=max(frame.total, 1), completed=frame.completed, width=BAR_WIDTH),
            Text(frame.progress),
        )
        line_b = Text(frame.best, style="bold cyan", no_wrap=True, overflow="ellipsis")
        return Group(line_a, line_b)

    def open(self) -> None:
        live = Live(
            console=self.console,
            auto_refresh=False,
            transient=False,
            redirect_stdout=False,
            redirect_stderr=False,
        )
        try:
            live.start(refresh=False)
        except LiveError as e:
            raise RenderingUnavailable(str(e)) from e
        self._live = live

    def draw(self, frame: Frame) -> None:
        if self._live is None:
            raise RenderingUnavailable("live region is not open")
        self._live.update(self.renderable(frame), refresh=True)

    def close(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None


class FlatRegion:
    """Append-only fallback: one line per event, never redrawn."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def open(self) -> None:
        return None

    def draw(self, frame: Frame) -> None:
        self.console.print(Text(frame.flat()), soft_wrap=True)

    def close(self) -> None:
        return None


class TerminalReporter:
    """Render progress events; the single owner of the output console.

    States: IDLE until the first event, RENDERING while events arrive (each
    redraws the same region), FINALIZED once the summary has been printed.
    """

    def __init__(self, console: Console | None = None, *, region: Region | None = None) -> None:
        self.console = console or Console()
        self.state = ReporterState.IDLE
        self.frames_drawn = 0
        self.last_frame: Frame | None = None
        self._region = region

    @property
    def region(self) -> Region | None:
        return self._region

    def announce(self, *, grid_size: int, runs: int, samples: int, estimate: Estimate) -> None:
        """Print the run plan to scrollback before the region is reserved."""

        if self.state is not ReporterState.IDLE:
            raise RuntimeError("announce() must precede the first progress event")
        self.console.print(Text("Timer resolution scan", style="bold"))
        self.console.print("─────────────────────")
        self.console.print(Text(f"Points: {grid_size}  Runs per point: {runs}  Samples per run: {samples}"))
        self.console.print(Text(strings.estimate_text(estimate), style="yellow"))
        self.console.print("")

    def _open(self) -> Region:
        region = self._region
        if region is None:
            if detect_terminal(self.console).interactive:
                region = LiveRegion(self.console)
            else:
                region = FlatRegion(self.console)
        try:
            region.open()
        except RenderingUnavailable as e:
            logger.warning("Live display unavailable (%s); using plain lines", e)
            region = FlatRegion(self.console)
            region.open()
        self._region = region
        self.state = ReporterState.RENDERING
        return region

    def handle(self, event: ProgressEvent) -> None:
        if self.state is ReporterState.FINALIZED:
            raise RuntimeError("reporter already finalized")
        region = self._open() if self.state is ReporterState.IDLE else self._region
        if region is None:
            raise RuntimeError("reporter has no output region")

        frame = render_frame(event)
        try:
            region.draw(frame)
        except RenderingUnavailable as e:
            logger.warning("Live display lost (%s); using plain lines", e)
            self._region = FlatRegion(self.console)
            self._region.draw(frame)

        self.frames_drawn += 1
        self.last_frame = frame

    def release(self) -> None:
        """Give the console back without printing a summary."""

        if self.state is ReporterState.RENDERING and self._region is not None:
            self._region.close()
        self.state = ReporterState.FINALIZED

    def finalize(self, summary: SearchSummary) -> None:
        if self.state is ReporterState.FINALIZED:
            return
        self.release()
        self.console.print("")
        for renderable in summary_renderables(summary):
            self.console.print(renderable)

    def __enter__(self) -> TerminalReporter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def results_table(summary: SearchSummary) -> Table:
    ranks = {s.index: s.rank for s in topsis_ranking(summary.candidates)}
    best_index = summary.best.index if summary.best else None

    table = Table(title="Results", show_lines=False)
    table.add_column("Resolution", justify="right")
    table.add_column("Status")
    table.add_column("Mean", justify="right")
    table.add_column("P95", justify="right")
    table.add_column("MAD", justify="right")
    table.add_column("Outliers", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("TOPSIS", justify="right")

    rows: list[tuple[int, list[Text]]] = []
    for c in summary.candidates:
        st = c.statistics
        marker = " ★" if c.index == best_index else ""
        rows.append(
            (
                c.index,
                [
                    Text(f"{c.setting_ms:.4f} ms{marker}"),
                    Text("measured", style="green"),
                    Text(f"{st.mean:.4f}"),
                    Text(f"{st.p95:.4f}"),
                    Text(f"{st.mad:.4f}"),
                    Text(str(st.outliers_removed)),
                    Text(f"{st.performance_score:.4f}"),
                    Text(f"#{ranks[c.index]}"),
                ],
            )
        )
    for s in summary.skipped:
        dash = Text("-", style="dim")
        rows.append(
            (
                s.index,
                [
                    Text(f"{s.setting_ms:.4f} ms"),
                    Text(strings.NOT_MEASURED, style="yellow"),
                    dash,
                    dash,
                    dash,
                    dash,
                    dash,
                    dash,
                ],
            )
        )

    for _, cells in sorted(rows, key=lambda r: r[0]):
        table.add_row(*cells)
    return table


def summary_renderables(summary: SearchSummary) -> list[RenderableType]:
    out: list[RenderableType] = []
    if summary.candidates or summary.skipped:
        out.append(results_table(summary))

    for s in summary.skipped:
        out.append(Text(strings.skipped_text(s), style="yellow"))

    processed = len(summary.candidates) + len(summary.skipped)
    if summary.cancelled:
        out.append(Text(f"Cancelled after {processed} of {summary.total} points", style="yellow"))

    if summary.best is None:
        out.append(Text("No point could be measured.", style="red"))
    else:
        out.append(Text(strings.best_text(summary.best), style="bold green"))
        out.append(Text(strings.recommendation_text(summary.best.setting_ms)))

    out.append(
        Text(
            f"Elapsed: {strings.format_duration(summary.elapsed_s)} "
            f"({strings.estimate_text(summary.eta_static)})"
        )
    )
    return out
