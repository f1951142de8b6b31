from __future__ import annotations

import logging
import shlex
import sys
from pathlib import Path

import pytest

from timerbench.core.errors import MeasurementError
from timerbench.core.eta import ETAEstimator
from timerbench.core.probe import parse_probe_output
from timerbench.core.runner import SubprocessOutcome, SubprocessRunner
from timerbench.core.search import SearchController
from timerbench.core.stats import StatisticsEngine
from timerbench.samplers.command import CommandSampler, resolution_units


def outcome(
    stdout: str = "",
    *,
    exit_code: int | None = 0,
    timed_out: bool = False,
    stderr: str = "",
    launch_error: str | None = None,
) -> SubprocessOutcome:
    return SubprocessOutcome(
        ok=launch_error is None and not timed_out and exit_code == 0,
        exit_code=exit_code,
        timed_out=timed_out,
        stdout=stdout,
        stderr=stderr,
        duration_s=0.01,
        launch_error=launch_error,
    )


class FakeHolder:
    def __init__(self, exit_code: int | None = None) -> None:
        self.exit_code = exit_code
        self.stopped = 0

    def exited(self) -> int | None:
        return self.exit_code

    def stop(self, kill_after_s: float = 2.0) -> tuple[str, str]:
        self.stopped += 1
        return ("", "access denied")


class FakeRunner(SubprocessRunner):
    def __init__(self, result: SubprocessOutcome, holder: FakeHolder | None = None) -> None:
        super().__init__()
        self.result = result
        self.holder = holder or FakeHolder()
        self.runs: list[tuple[str, dict[str, str]]] = []
        self.started: list[str] = []

    def run(self, cmd: str, env: dict[str, str], timeout_s: float, cwd: Path) -> SubprocessOutcome:
        self.runs.append((cmd, env))
        return self.result

    def start(self, cmd: str, env: dict[str, str], cwd: Path) -> FakeHolder:  # type: ignore[override]
        self.started.append(cmd)
        return self.holder


def make_sampler(runner: FakeRunner, **kwargs: object) -> CommandSampler:
    return CommandSampler(
        probe_cmd="probe --fast",
        runner=runner,
        sleep=lambda s: None,
        cwd=Path("."),
        **kwargs,  # type: ignore[arg-type]
    )


PROBE_STDOUT = """\
Resolution: 0.5002ms, Sleep(1) slept 1.0310ms (delta: 0.0310)
TIMERBENCH_SAMPLE delta_ms=0.0310
TIMERBENCH_SAMPLE delta_ms=0.0290
noise line
TIMERBENCH_SAMPLE other=9.0
TIMERBENCH_SAMPLE delta_ms=0.0305
"""


def test_parse_probe_output() -> None:
    parsed = parse_probe_output(PROBE_STDOUT)
    assert parsed.samples == [0.031, 0.029, 0.0305]
    assert parsed.reported_resolution_ms == pytest.approx(0.5002)

    assert parse_probe_output("nothing here").samples == []
    assert parse_probe_output("nothing here").reported_resolution_ms is None


def test_resolution_units() -> None:
    assert resolution_units(0.5) == 5000
    assert resolution_units(0.5002) == 5002


def test_measure_passes_setting_through_environment() -> None:
    runner = FakeRunner(outcome(PROBE_STDOUT))
    samples = make_sampler(runner).measure(0.5, 3)

    assert samples == [0.031, 0.029, 0.0305]
    cmd, env = runner.runs[0]
    assert cmd == "probe --fast"
    assert env["TIMERBENCH_RESOLUTION_MS"] == "0.5000"
    assert env["TIMERBENCH_SAMPLES"] == "3"


def test_apply_command_is_held_only_while_measuring() -> None:
    holder = FakeHolder()
    runner = FakeRunner(outcome(PROBE_STDOUT), holder)
    make_sampler(runner, apply_cmd="SetTimerResolution.exe --resolution {resolution}").measure(0.5, 3)

    assert runner.started == ["SetTimerResolution.exe --resolution 5000"]
    assert holder.stopped == 1


def test_apply_command_that_exits_immediately_is_a_measurement_error() -> None:
    runner = FakeRunner(outcome(PROBE_STDOUT), FakeHolder(exit_code=5))
    sampler = make_sampler(runner, apply_cmd="apply {resolution_ms}")

    with pytest.raises(MeasurementError, match="access denied"):
        sampler.measure(0.5, 3)
    assert runner.runs == []


@pytest.mark.parametrize(
    ("result", "message"),
    [
        (outcome(launch_error="probe: not found"), "cannot start probe"),
        (outcome(exit_code=None, timed_out=True), "timed out"),
        (outcome(exit_code=3, stderr="boom\nlast words"), "code 3 last words"),
        (outcome("hello\n"), "no TIMERBENCH_SAMPLE"),
        (outcome("Resolution: 1.0ms\nTIMERBENCH_SAMPLE delta_ms=0.1\n"), "resolution mismatch"),
    ],
)
def test_probe_failures_become_measurement_errors(result: SubprocessOutcome, message: str) -> None:
    with pytest.raises(MeasurementError, match=message) as info:
        make_sampler(FakeRunner(result)).measure(0.5, 1)
    assert message in info.value.reason


def test_small_resolution_drift_only_warns(caplog: pytest.LogCaptureFixture) -> None:
    runner = FakeRunner(outcome("Resolution: 0.57ms\nTIMERBENCH_SAMPLE delta_ms=0.1\n"))
    with caplog.at_level(logging.WARNING, logger="timerbench.samplers.command"):
        assert make_sampler(runner).measure(0.5, 1) == [0.1]
    assert "Resolution drift" in caplog.text


def test_empty_probe_command_is_rejected() -> None:
    with pytest.raises(ValueError):
        CommandSampler(probe_cmd="  ")


def python_cmd(code: str) -> str:
    return shlex.join([sys.executable, "-c", code])


def test_undecodable_output_skips_points_instead_of_aborting() -> None:
    garbage = python_cmd(
        "import sys; sys.stdout.buffer.write(b'\\xff\\xfe TIMERBENCH_SAMPLE delta_ms=0.1\\n')"
    )
    controller = SearchController(
        sampler=CommandSampler(probe_cmd=garbage),
        engine=StatisticsEngine(),
        estimator=ETAEstimator(),
        runs_per_point=1,
        samples_per_run=1,
        max_retries=0,
    )

    events = list(controller.run([0.5, 0.6]))
    summary = controller.summary()

    assert [e.kind for e in events] == ["skipped", "skipped"]
    assert [s.reason for s in summary.skipped] == ["probe printed no TIMERBENCH_SAMPLE lines"] * 2
    assert not summary.cancelled


def test_undecodable_bytes_do_not_hide_valid_sample_lines() -> None:
    cmd = python_cmd(
        "import sys; sys.stdout.buffer.write(b'\\xff\\xfe\\nTIMERBENCH_SAMPLE delta_ms=0.1\\n')"
    )
    assert CommandSampler(probe_cmd=cmd).measure(0.5, 1) == [0.1]


def test_decode_errors_from_the_runner_become_measurement_errors() -> None:
    class DecodeFailingRunner(FakeRunner):
        def run(self, cmd: str, env: dict[str, str], timeout_s: float, cwd: Path) -> SubprocessOutcome:
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

    with pytest.raises(MeasurementError, match="probe failed"):
        make_sampler(DecodeFailingRunner(outcome())).measure(0.5, 1)


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"probe_cmd": 'python "x'}, "cannot parse probe command"),
        ({"probe_cmd": "probe", "apply_cmd": "holder {res}"}, "apply command may only use"),
        ({"probe_cmd": "probe", "apply_cmd": "holder {0}"}, "apply command may only use"),
        ({"probe_cmd": "probe", "apply_cmd": "holder '{resolution}"}, "cannot parse apply command"),
    ],
)
def test_malformed_commands_are_rejected_up_front(kwargs: dict[str, str], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        CommandSampler(**kwargs)  # type: ignore[arg-type]
