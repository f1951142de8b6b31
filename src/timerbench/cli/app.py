from __future__ import annotations

import json
import logging
import signal
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import FrameType
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from timerbench.core.config import BenchmarkConfig, load_config, save_config
from timerbench.core.detect import detect_system, system_summary_dict, system_summary_lines
from timerbench.core.eta import ETAEstimator
from timerbench.core.search import SearchController, exit_code_for
from timerbench.core.stats import StatisticsEngine
from timerbench.io.export import ensure_run_dir, export_results, load_results, results_payload
from timerbench.samplers.registry import available_samplers, resolve_sampler
from timerbench.ui.reporter import TerminalReporter
from timerbench.ui.strings import estimate_text

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()
# Diagnostics never share the stream that hosts the live region.
err_console = Console(stderr=True)

logger = logging.getLogger("timerbench")


def _timerbench_dir() -> Path:
    return Path.cwd() / ".timerbench"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _build_config(
    *,
    config_path: Optional[Path],
    start: Optional[float],
    end: Optional[float],
    step: Optional[float],
    value: Optional[List[float]],
    runs: Optional[int],
    samples: Optional[int],
    retries: Optional[int],
    outlier_k: Optional[float],
    w_mean: Optional[float],
    w_p95: Optional[float],
    w_mad: Optional[float],
    seconds_per_point: Optional[float],
) -> BenchmarkConfig:
    base = load_config(config_path) if config_path is not None else BenchmarkConfig()
    return base.with_overrides(
        start_ms=start,
        end_ms=end,
        step_ms=step,
        values=value or None,
        runs_per_point=runs,
        samples_per_run=samples,
        max_retries=retries,
        outlier_k=outlier_k,
        w_mean=w_mean,
        w_p95=w_p95,
        w_mad=w_mad,
        assumed_seconds_per_point=seconds_per_point,
    ).validate()


@contextmanager
def _cancel_on_interrupt(controller: SearchController) -> Iterator[None]:
    """First Ctrl+C stops after the current point; the second one aborts."""

    def handler(signum: int, frame: FrameType | None) -> None:
        if controller.token.cancelled:
            raise KeyboardInterrupt
        controller.cancel()
        logger.warning("Stopping after the current point (press Ctrl+C again to abort)")

    try:
        previous = signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not the main thread: no cooperative cancellation available.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


GRID_HELP = "Grid: --start/--end/--step or repeated --value"


@app.command()
def info(json_output: bool = typer.Option(False, "--json", help="Print JSON output")) -> None:
    """Print a compact system summary."""

    system = detect_system(console)
    if json_output:
        console.print_json(json.dumps(system_summary_dict(system)))
        raise typer.Exit(0)

    for line in system_summary_lines(system):
        console.print(line)


@app.command()
def estimate(
    config_path: Optional[Path] = typer.Option(None, "--config", help="JSON config file"),
    start: Optional[float] = typer.Option(None, "--start", help="First resolution (ms)"),
    end: Optional[float] = typer.Option(None, "--end", help="Last resolution (ms)"),
    step: Optional[float] = typer.Option(None, "--step", help="Grid step (ms)"),
    value: Optional[List[float]] = typer.Option(None, "--value", help=GRID_HELP),
    seconds_per_point: Optional[float] = typer.Option(
        None, "--seconds-per-point", help="Assumed seconds per grid point"
    ),
    save_config_path: Optional[Path] = typer.Option(
        None, "--save-config", help="Write the effective config to this JSON file"
    ),
) -> None:
    """Show the grid and the static (pre-run) time estimate."""

    try:
        cfg = _build_config(
            config_path=config_path,
            start=start,
            end=end,
            step=step,
            value=value,
            runs=None,
            samples=None,
            retries=None,
            outlier_k=None,
            w_mean=None,
            w_p95=None,
            w_mad=None,
            seconds_per_point=seconds_per_point,
        )
    except ValueError as e:
        console.print(f"[red]Invalid configuration[/red]: {e}")
        raise typer.Exit(2) from None

    grid = cfg.grid()
    est = ETAEstimator(assumed_seconds_per_point=cfg.assumed_seconds_per_point)
    console.print(f"Points: {len(grid)} ({grid[0]:.4f} .. {grid[-1]:.4f} ms)", highlight=False)
    console.print(Text(estimate_text(est.initial_estimate(len(grid)))))
    console.print("The live ETA shown during the run replaces this figure once a point completes.")

    if save_config_path is not None:
        save_config(cfg, save_config_path)
        console.print(f"Config saved: {save_config_path}", highlight=False)


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(None, "--config", help="JSON config file"),
    start: Optional[float] = typer.Option(None, "--start", help="First resolution (ms)"),
    end: Optional[float] = typer.Option(None, "--end", help="Last resolution (ms)"),
    step: Optional[float] = typer.Option(None, "--step", help="Grid step (ms)"),
    value: Optional[List[float]] = typer.Option(None, "--value", help=GRID_HELP),
    runs: Optional[int] = typer.Option(None, "--runs", help="Runs per grid point"),
    samples: Optional[int] = typer.Option(None, "--samples", help="Samples per run"),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries per failing point"),
    outlier_k: Optional[float] = typer.Option(
        None, "--outlier-k", help="Outlier rejection multiplier of MAD"
    ),
    w_mean: Optional[float] = typer.Option(None, "--w-mean", help="Score weight of the mean"),
    w_p95: Optional[float] = typer.Option(None, "--w-p95", help="Score weight of p95"),
    w_mad: Optional[float] = typer.Option(None, "--w-mad", help="Score weight of MAD"),
    seconds_per_point: Optional[float] = typer.Option(
        None, "--seconds-per-point", help="Assumed seconds per point (static estimate)"
    ),
    sampler: str = typer.Option(
        "command", "--sampler", help=f"Sampler: {', '.join(available_samplers())}"
    ),
    probe_cmd: Optional[str] = typer.Option(None, "--probe-cmd", help="Probe command (quoted)"),
    apply_cmd: Optional[str] = typer.Option(
        None, "--apply-cmd", help="Command holding the resolution; {resolution} is in 100 ns units"
    ),
    settle: float = typer.Option(0.4, "--settle", help="Seconds to wait after applying"),
    timeout: float = typer.Option(30.0, "--timeout", help="Timeout per probe run (seconds)"),
    seed: int = typer.Option(0, "--seed", help="Seed for the synthetic sampler"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
) -> None:
    """Scan timer resolutions and report the one with the lowest score."""

    _configure_logging(verbose)

    try:
        cfg = _build_config(
            config_path=config_path,
            start=start,
            end=end,
            step=step,
            value=value,
            runs=runs,
            samples=samples,
            retries=retries,
            outlier_k=outlier_k,
            w_mean=w_mean,
            w_p95=w_p95,
            w_mad=w_mad,
            seconds_per_point=seconds_per_point,
        )
        smp = resolve_sampler(
            sampler,
            probe_cmd=probe_cmd,
            apply_cmd=apply_cmd,
            settle_s=settle,
            timeout_s=timeout,
            seed=seed,
        )
    except ValueError as e:
        console.print(f"[red]Invalid configuration[/red]: {e}")
        raise typer.Exit(2) from None

    grid = cfg.grid()
    estimator = ETAEstimator(assumed_seconds_per_point=cfg.assumed_seconds_per_point)
    controller = SearchController(
        sampler=smp,
        engine=StatisticsEngine(outlier_k=cfg.outlier_k, weights=cfg.weights),
        estimator=estimator,
        runs_per_point=cfg.runs_per_point,
        samples_per_run=cfg.samples_per_run,
        max_retries=cfg.max_retries,
    )

    reporter = TerminalReporter(console)
    reporter.announce(
        grid_size=len(grid),
        runs=cfg.runs_per_point,
        samples=cfg.samples_per_run,
        estimate=estimator.initial_estimate(len(grid)),
    )

    with _cancel_on_interrupt(controller), reporter:
        for event in controller.run(grid):
            reporter.handle(event)
        summary = controller.summary()
        reporter.finalize(summary)

    tb_dir = _timerbench_dir()
    run_dir = ensure_run_dir(tb_dir)
    payload = results_payload(summary)
    export_results(payload, fmt="json", out_path=run_dir / "results.json")
    export_results(payload, fmt="json", out_path=tb_dir / "results.json")

    console.print("")
    console.print(f"Run directory: {run_dir}")
    raise typer.Exit(exit_code_for(summary))


@app.command()
def export(
    fmt: str = typer.Option("csv", "--format", help="json|csv|yaml"),
    out: str = typer.Option(".timerbench/results.csv", "--out", help="Output path"),
) -> None:
    """Export the last results from .timerbench/results.json to another format."""

    tb_dir = _timerbench_dir()
    res_in = tb_dir / "results.json"
    if not res_in.exists():
        console.print("[red]No results found.[/red] Run `timerbench run ...` first.")
        raise typer.Exit(1)

    fmt_norm = fmt.strip().lower()
    if fmt_norm not in ("json", "csv", "yaml"):
        console.print("[red]Invalid format[/red]. Use: json|csv|yaml")
        raise typer.Exit(2)

    out_path = Path(out)
    try:
        payload = load_results(res_in)
        export_results(payload, fmt=fmt_norm, out_path=out_path)  # type: ignore[arg-type]
    except Exception as e:
        console.print(f"[red]Export failed[/red]: {e}")
        raise typer.Exit(2) from None

    console.print(f"Exported: {out_path}")
