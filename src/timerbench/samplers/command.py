from __future__ import annotations

import logging
import shlex
import time
from collections.abc import Callable
from pathlib import Path

from timerbench.core.errors import MeasurementError
from timerbench.core.probe import parse_probe_output
from timerbench.core.runner import BackgroundProcess, SubprocessRunner
from timerbench.core.types import Sample

logger = logging.getLogger(__name__)

# Reported resolution may drift this far before we warn, and this far before
# the run is rejected.
WARN_TOLERANCE_MS = 0.05
FAIL_TOLERANCE_MS = 0.1


def resolution_units(setting_ms: float) -> int:
    """Timer APIs take resolutions in 100 ns units."""

    return int(round(setting_ms * 10_000))


def _format_apply(template: str, setting_ms: float) -> str:
    """Substitute {resolution} (100 ns units) and {resolution_ms}."""

    try:
        return template.format(
            resolution=resolution_units(setting_ms), resolution_ms=f"{setting_ms:.4f}"
        )
    except (KeyError, IndexError, ValueError) as e:
        raise ValueError(
            f"apply command may only use {{resolution}} and {{resolution_ms}}: {e!r}"
        ) from e


def _check_command(kind: str, cmd: str) -> None:
    try:
        shlex.split(cmd)
    except ValueError as e:
        raise ValueError(f"cannot parse {kind} command: {e}") from e


class CommandSampler:
    """Measure by running an external probe command.

    If ``apply_cmd`` is given it is started before each probe run and stopped
    right after, so the requested resolution is held only while measuring.
    ``{resolution}`` (100 ns units) and ``{resolution_ms}`` are substituted
    into it. The probe receives the setting through the environment:

    - TIMERBENCH_RESOLUTION_MS
    - TIMERBENCH_SAMPLES
    """

    name = "command"

    def __init__(
        self,
        *,
        probe_cmd: str,
        apply_cmd: str | None = None,
        timeout_s: float = 30.0,
        settle_s: float = 0.4,
        cwd: Path | None = None,
        runner: SubprocessRunner | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not probe_cmd.strip():
            raise ValueError("probe command must not be empty")
        _check_command("probe", probe_cmd)
        if apply_cmd:
            _check_command("apply", _format_apply(apply_cmd, 0.5))
        self.probe_cmd = probe_cmd
        self.apply_cmd = apply_cmd
        self.timeout_s = timeout_s
        self.settle_s = settle_s
        self.cwd = cwd or Path.cwd()
        self._runner = runner or SubprocessRunner()
        self._sleep = sleep

    def _start_apply(self, setting_ms: float, env: dict[str, str]) -> BackgroundProcess | None:
        if not self.apply_cmd:
            return None
        cmd = _format_apply(self.apply_cmd, setting_ms)
        try:
            holder = self._runner.start(cmd, env=env, cwd=self.cwd)
        except (OSError, UnicodeError) as e:
            raise MeasurementError(f"cannot start apply command: {e}") from e

        self._sleep(self.settle_s)
        code = holder.exited()
        if code is not None:
            out, err = holder.stop()
            detail = (err or out).strip() or f"exit code {code}"
            raise MeasurementError(f"apply command exited immediately: {detail}")
        return holder

    def measure(self, setting_ms: float, samples: int) -> list[Sample]:
        env = {
            "TIMERBENCH_RESOLUTION_MS": f"{setting_ms:.4f}",
            "TIMERBENCH_SAMPLES": str(samples),
        }

        holder = self._start_apply(setting_ms, env)
        try:
            outcome = self._runner.run(
                cmd=self.probe_cmd, env=env, timeout_s=self.timeout_s, cwd=self.cwd
            )
        except (OSError, UnicodeError) as e:
            raise MeasurementError(f"probe failed: {e}") from e
        finally:
            if holder is not None:
                holder.stop()

        if outcome.launch_error:
            raise MeasurementError(f"cannot start probe: {outcome.launch_error}")
        if outcome.timed_out:
            raise MeasurementError(f"probe timed out after {self.timeout_s:.1f}s")
        if not outcome.ok:
            tail = outcome.stderr.strip().splitlines()[-1:] or [""]
            raise MeasurementError(f"probe exited with code {outcome.exit_code} {tail[0]}".rstrip())

        parsed = parse_probe_output(outcome.stdout)
        if not parsed.samples:
            raise MeasurementError("probe printed no TIMERBENCH_SAMPLE lines")

        reported = parsed.reported_resolution_ms
        if reported is not None:
            diff = abs(reported - setting_ms)
            if diff > FAIL_TOLERANCE_MS:
                raise MeasurementError(
                    f"resolution mismatch: requested {setting_ms:.4f} ms, probe saw {reported:.4f} ms"
                )
            if diff > WARN_TOLERANCE_MS:
                logger.warning(
                    "Resolution drift: requested %.4f ms, probe saw %.4f ms", setting_ms, reported
                )

        if len(parsed.samples) != samples:
            logger.debug("Probe returned %d samples, %d requested", len(parsed.samples), samples)
        return parsed.samples
