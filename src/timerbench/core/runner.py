from __future__ import annotations

import os
import shlex
import signal
import subprocess
import time
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class SubprocessOutcome:
    ok: bool
    exit_code: int | None
    timed_out: bool
    stdout: str
    stderr: str
    duration_s: float
    launch_error: str | None = None


class BackgroundProcess:
    """A long-lived helper process, e.g. one holding a timer resolution."""

    def __init__(self, proc: subprocess.Popen[str], terminate: _Terminator) -> None:
        self._proc = proc
        self._terminate = terminate

    def exited(self) -> int | None:
        """Exit code if the process already ended, else None."""

        return self._proc.poll()

    def stop(self, kill_after_s: float = 2.0) -> tuple[str, str]:
        if self._proc.poll() is not None:
            with suppress(Exception):
                return self._proc.communicate(timeout=kill_after_s)
            return ("", "")
        return self._terminate(self._proc, kill_after_s)


class _Terminator:
    def __call__(self, proc: subprocess.Popen[str], kill_after_s: float) -> tuple[str, str]:
        """Terminate a process, then kill if needed."""

        with suppress(Exception):
            proc.send_signal(signal.SIGTERM)

        try:
            return proc.communicate(timeout=kill_after_s)
        except subprocess.TimeoutExpired:
            with suppress(Exception):
                proc.kill()
            try:
                return proc.communicate(timeout=kill_after_s)
            except Exception:
                return ("", "")


class SubprocessRunner:
    """Run commands with timeouts and robust termination."""

    def __init__(self) -> None:
        self._terminate = _Terminator()

    def _env(self, env: dict[str, str]) -> dict[str, str]:
        merged_env = os.environ.copy()
        merged_env.update(env)
        return merged_env

    def run(self, cmd: str, env: dict[str, str], timeout_s: float, cwd: Path) -> SubprocessOutcome:
        start = time.monotonic()

        # Use shell=False to avoid quoting issues; accept cmd string and split.
        args = shlex.split(cmd)

        try:
            proc = subprocess.Popen(
                args,
                cwd=str(cwd),
                env=self._env(env),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            return SubprocessOutcome(
                ok=False,
                exit_code=None,
                timed_out=False,
                stdout="",
                stderr="",
                duration_s=time.monotonic() - start,
                launch_error=f"{args[0] if args else cmd!r}: {e}",
            )

        timed_out = False
        try:
            stdout, stderr = proc.communicate(timeout=timeout_s)
            exit_code = proc.returncode
        except subprocess.TimeoutExpired:
            timed_out = True
            stdout, stderr = self._terminate(proc, kill_after_s=2.0)
            exit_code = proc.returncode

        return SubprocessOutcome(
            ok=(not timed_out) and (exit_code == 0),
            exit_code=exit_code,
            timed_out=timed_out,
            stdout=stdout,
            stderr=stderr,
            duration_s=time.monotonic() - start,
        )

    def start(self, cmd: str, env: dict[str, str], cwd: Path) -> BackgroundProcess:
        """Start ``cmd`` without waiting for it. Raises OSError if it cannot launch."""

        proc = subprocess.Popen(
            shlex.split(cmd),
            cwd=str(cwd),
            env=self._env(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
        return BackgroundProcess(proc, self._terminate)
