"""Process runner: the only place where external commands are launched."""

from __future__ import annotations

import contextvars
import os
import signal
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping, Sequence

import structlog

from dep_analyzer.exceptions import ProcessError, ProcessErrorKind

log = structlog.get_logger("dep_analyzer.process")

_STDERR_TAIL = 2000

# Seconds to collect output after a timed-out command was killed.
_DRAIN_TIMEOUT = 2.0

# Monotonic timestamp after which no external command may keep running.
_run_deadline: contextvars.ContextVar[float | None] = contextvars.ContextVar(
    "dep_analyzer_run_deadline", default=None
)


@contextmanager
def run_deadline(deadline: float | None) -> Iterator[None]:
    """Apply a run-wide deadline (``time.monotonic()`` based) to every command
    executed in the current context."""
    token = _run_deadline.set(deadline)
    try:
        yield
    finally:
        _run_deadline.reset(token)


def remaining_time() -> float | None:
    """Seconds left until the active run deadline, or None if there is none."""
    deadline = _run_deadline.get()
    if deadline is None:
        return None
    return deadline - time.monotonic()


@dataclass(frozen=True)
class ProcessResult:
    """Captured outcome of one external command."""

    command: tuple[str, ...]
    working_dir: str | None
    env: Mapping[str, str | None]
    exit_code: int
    stdout: str
    stderr: str
    duration: float = 0.0

    @property
    def is_success(self) -> bool:
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.command)

    def require_success(self) -> ProcessResult:
        """Return self, or raise ``ProcessError(NON_ZERO_EXIT)`` for a failed command."""
        if self.is_success:
            return self
        stderr = self.stderr.strip()
        raise ProcessError(
            ProcessErrorKind.NON_ZERO_EXIT,
            self.command,
            f"Running '{self.command_line}' in '{self.working_dir or os.getcwd()}' "
            f"failed with exit code {self.exit_code}: {stderr[-_STDERR_TAIL:]}",
            exit_code=self.exit_code,
            stderr=self.stderr,
        )


class ProcessRunner:
    """Run external commands without a shell, capturing stdout and stderr separately.

    A non-zero exit code is not an error here; callers decide per tool via
    :meth:`ProcessResult.require_success`.
    """

    def __init__(self, default_timeout: float | None = None) -> None:
        self.default_timeout = default_timeout

    def execute(
        self,
        executable: str | Path,
        args: Sequence[str] = (),
        working_dir: str | Path | None = None,
        env: Mapping[str, str | None] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        command = [str(executable), *(str(a) for a in args)]
        cwd = str(working_dir) if working_dir is not None else None
        overrides = dict(env or {})
        effective_timeout = self._effective_timeout(timeout)

        if effective_timeout is not None and effective_timeout <= 0:
            raise ProcessError(
                ProcessErrorKind.TIMEOUT,
                command,
                f"Run deadline expired before '{' '.join(command)}' could be started",
            )

        log.debug("process.start", command=command, cwd=cwd, timeout=effective_timeout)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                command,
                cwd=cwd,
                env=_merge_environment(overrides),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=os.name == "posix",
            )
        except OSError as e:
            raise ProcessError(
                ProcessErrorKind.LAUNCH_FAILURE,
                command,
                f"Failed to launch '{command[0]}': {e}",
            ) from e

        try:
            stdout, stderr = proc.communicate(timeout=effective_timeout)
        except subprocess.TimeoutExpired:
            stderr = _kill_and_drain(proc)
            duration = round(time.monotonic() - start, 3)
            log.warning("process.timeout", command=command, timeout=effective_timeout)
            raise ProcessError(
                ProcessErrorKind.TIMEOUT,
                command,
                f"'{' '.join(command)}' timed out after {duration}s",
                stderr=stderr or "",
            )

        duration = round(time.monotonic() - start, 3)
        log.debug("process.finished", command=command, exit_code=proc.returncode, duration=duration)
        return ProcessResult(
            command=tuple(command),
            working_dir=cwd,
            env=overrides,
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=duration,
        )

    def _effective_timeout(self, timeout: float | None) -> float | None:
        candidates = [t for t in (timeout, self.default_timeout, remaining_time()) if t is not None]
        return min(candidates) if candidates else None


def _merge_environment(overrides: Mapping[str, str | None]) -> dict[str, str]:
    """Overlay *overrides* on the inherited environment; None removes a variable."""
    merged = dict(os.environ)
    for key, value in overrides.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def _kill_and_drain(proc: subprocess.Popen) -> str:
    """Kill *proc* with its whole process group and return what it wrote to stderr.

    Children left behind (``git clone`` spawns ``git-remote-https``) may hold
    the output pipes open, so draining is bounded as well.
    """
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        proc.kill()
    try:
        _, stderr = proc.communicate(timeout=_DRAIN_TIMEOUT)
    except subprocess.TimeoutExpired:
        for stream in (proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()
        proc.wait()
        return ""
    return stderr or ""
