from __future__ import annotations

import io
from dataclasses import replace

import pytest
from rich.console import Console

from timerbench.core.errors import RenderingUnavailable
from timerbench.core.eta import ETAEstimator
from timerbench.core.search import SearchController
from timerbench.core.stats import StatisticsEngine
from timerbench.core.types import (
    BestCandidate,
    Estimate,
    ProgressEvent,
    SearchSummary,
    SkippedCandidate,
)
from timerbench.samplers.synthetic import SyntheticSampler
from timerbench.ui.reporter import (
    FlatRegion,
    Frame,
    LiveRegion,
    ReporterState,
    TerminalReporter,
    render_frame,
)
from timerbench.ui.strings import NONE_YET


class CapturingRegion:
    def __init__(self) -> None:
        self.frames: list[Frame] = []
        self.opened = 0
        self.closed = 0

    def open(self) -> None:
        self.opened += 1

    def draw(self, frame: Frame) -> None:
        self.frames.append(frame)

    def close(self) -> None:
        self.closed += 1


class UnavailableRegion(CapturingRegion):
    def open(self) -> None:
        raise RenderingUnavailable("no cursor control")


def make_events(n: int) -> list[ProgressEvent]:
    estimator = ETAEstimator()
    static = estimator.initial_estimate(n)
    events = []
    for i in range(n):
        best = BestCandidate(
            setting_ms=0.5 + 0.0001 * (i // 7),
            index=i // 7,
            score=1.0 / (i + 1),
            mean=0.03,
            p95=0.04,
            mad=0.002,
        )
        events.append(
            ProgressEvent(
                kind="candidate",
                index=i,
                total=n,
                setting_ms=0.5 + 0.0001 * i,
                current_value_ms=0.03,
                tick=i + 1,
                elapsed_s=float(i),
                eta_static=static,
                eta_live=estimator.live_estimate(float(i), i + 1, n),
                best=best,
                completed=i + 1,
                skipped=0,
            )
        )
    return events


def make_summary() -> SearchSummary:
    return SearchSummary(
        total=2,
        candidates=(),
        skipped=(SkippedCandidate(setting_ms=0.75, index=1, attempts=4, reason="probe timed out"),),
        best=None,
        cancelled=False,
        elapsed_s=3.0,
        eta_static=Estimate(kind="static", seconds=13.0, low_confidence=True),
    )


def test_best_line_is_drawn_for_every_event() -> None:
    region = CapturingRegion()
    reporter = TerminalReporter(Console(file=io.StringIO()), region=region)

    n = 1000
    for event in make_events(n):
        reporter.handle(event)

    assert reporter.frames_drawn == n
    assert len(region.frames) == n
    for i in (0, 9, 10, 99, 100, 499, 500, 999):
        frame = region.frames[i]
        assert frame.best.startswith("Current best: 0.5")
        assert frame.progress.startswith(f"{i + 1}/{n}")
    assert all(f.best and f.best != NONE_YET for f in region.frames)
    # The region is reserved once and redrawn in place.
    assert region.opened == 1


def test_live_region_redraws_both_lines_on_every_event(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TERM", "xterm-256color")
    out = io.StringIO()
    console = Console(file=out, force_terminal=True, width=160)
    reporter = TerminalReporter(console)

    n = 300
    for event in make_events(n):
        reporter.handle(event)
    assert isinstance(reporter.region, LiveRegion)
    reporter.release()

    text = out.getvalue()
    assert text.count("Current best: ") >= n
    assert text.count(f"/{n}  point") >= n
    # Cursor repositioning (erase line) precedes every redraw.
    assert "\x1b[2K" in text


def test_non_interactive_console_falls_back_to_flat_lines() -> None:
    out = io.StringIO()
    reporter = TerminalReporter(Console(file=out, force_terminal=False, width=400))

    events = make_events(25)
    for event in events:
        reporter.handle(event)
    reporter.release()

    assert isinstance(reporter.region, FlatRegion)
    lines = [line for line in out.getvalue().splitlines() if line]
    assert len(lines) == 25
    assert all("Current best: 0.5" in line for line in lines)
    assert "\x1b[" not in out.getvalue()


def test_unavailable_region_falls_back_to_flat_lines() -> None:
    out = io.StringIO()
    reporter = TerminalReporter(Console(file=out, width=400), region=UnavailableRegion())

    for event in make_events(3):
        reporter.handle(event)

    assert isinstance(reporter.region, FlatRegion)
    assert out.getvalue().count("Current best:") == 3


def test_state_machine() -> None:
    region = CapturingRegion()
    reporter = TerminalReporter(Console(file=io.StringIO(), width=200), region=region)
    assert reporter.state is ReporterState.IDLE

    events = make_events(3)
    reporter.handle(events[0])
    assert reporter.state is ReporterState.RENDERING
    with pytest.raises(RuntimeError):
        reporter.announce(
            grid_size=3, runs=1, samples=1, estimate=events[0].eta_static
        )

    reporter.handle(events[1])
    assert reporter.state is ReporterState.RENDERING
    assert region.opened == 1

    reporter.finalize(make_summary())
    assert reporter.state is ReporterState.FINALIZED
    assert region.closed == 1
    with pytest.raises(RuntimeError):
        reporter.handle(events[2])


def test_summary_reports_skipped_points_distinctly() -> None:
    out = io.StringIO()
    reporter = TerminalReporter(Console(file=out, width=200), region=CapturingRegion())
    reporter.finalize(make_summary())

    text = out.getvalue()
    assert "not measured" in text
    assert "probe timed out" in text
    assert "No point could be measured" in text
    assert "static estimate" in text


def test_frames_from_a_real_search() -> None:
    controller = SearchController(
        sampler=SyntheticSampler(seed=3),
        engine=StatisticsEngine(),
        estimator=ETAEstimator(),
        runs_per_point=1,
        samples_per_run=5,
        max_retries=0,
    )
    region = CapturingRegion()
    out = io.StringIO()
    reporter = TerminalReporter(Console(file=out, width=200), region=region)

    grid = [round(0.45 + 0.001 * i, 4) for i in range(120)]
    with reporter:
        for event in controller.run(grid):
            reporter.handle(event)
        reporter.finalize(controller.summary())

    # One run event and one candidate event per point.
    assert len(region.frames) == 2 * len(grid)
    assert region.frames[0].best == NONE_YET
    assert all(f.best.startswith("Current best: 0.") for f in region.frames[1:])
    summary = controller.summary()
    assert summary.best is not None
    assert 0.48 <= summary.best.setting_ms <= 0.52
    assert "Recommended: SetTimerResolution.exe --resolution" in out.getvalue()


def test_render_frame_shows_live_eta_first_once_known() -> None:
    events = make_events(3)
    frame = render_frame(events[1])
    assert frame.progress.index("live ETA") < frame.progress.index("static estimate")
    assert frame.elapsed == "00:00:01"


def test_render_frame_shows_static_estimate_first_before_any_point() -> None:
    estimator = ETAEstimator()
    event = make_events(3)[0]
    first = replace(event, completed=0, eta_live=estimator.live_estimate(0.5, 0, 3))
    progress = render_frame(first).progress
    assert progress.index("static estimate") < progress.index("live ETA unknown")
