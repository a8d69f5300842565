"""Test doubles for dep_analyzer, for use in unit and integration tests.

Usage::

    from dep_analyzer.testing import FakePackageManager, FakeProcessRunner

    runner = FakeProcessRunner()
    runner.script(("git", "rev-parse", "HEAD"), stdout="abc123\\n")
    runner.script(("svn", "info"), exit_code=1, stderr="E155007: not a working copy")

    manager = FakePackageManager(delay=0.1, reentrant=False)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from dep_analyzer.exceptions import ProcessError, ProcessErrorKind
from dep_analyzer.graph import DependencyGraphBuilder
from dep_analyzer.managers.base import matches_patterns, relative_definition_path, resolve_each
from dep_analyzer.model import Identifier, Package, Project, ProjectAnalyzerResult
from dep_analyzer.process import ProcessResult, ProcessRunner, remaining_time


@dataclass(frozen=True)
class RecordedCall:
    executable: str
    args: tuple[str, ...]
    working_dir: str | None
    env: Mapping[str, str | None]

    @property
    def command(self) -> tuple[str, ...]:
        """Tool base name followed by the arguments, e.g. ``("git", "rev-parse", "HEAD")``."""
        return (_tool_name(self.executable), *self.args)


@dataclass(frozen=True)
class _Response:
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    error: Exception | None = None
    delay: float = 0.0


def _tool_name(executable: str) -> str:
    name = Path(executable).name
    for suffix in (".exe", ".cmd", ".bat"):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return name


class FakeProcessRunner(ProcessRunner):
    """Drop-in :class:`ProcessRunner` that answers from a script.

    Responses are keyed by a command prefix: the tool's base name followed by
    leading arguments. The longest matching prefix wins. Unscripted commands
    fail with ``ProcessError(LAUNCH_FAILURE)`` as if the tool were missing.
    """

    def __init__(self, default_timeout: float | None = None) -> None:
        super().__init__(default_timeout=default_timeout)
        self._script: dict[tuple[str, ...], _Response] = {}
        self._calls: list[RecordedCall] = []
        self._lock = threading.Lock()

    @property
    def calls(self) -> list[RecordedCall]:
        """Commands received, in order."""
        with self._lock:
            return list(self._calls)

    def script(
        self,
        prefix: Sequence[str],
        *,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> FakeProcessRunner:
        self._script[tuple(prefix)] = _Response(exit_code, stdout, stderr, error, delay)
        return self

    def execute(
        self,
        executable: str,
        args: Sequence[str] = (),
        working_dir: str | Path | None = None,
        env: Mapping[str, str | None] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        call = RecordedCall(
            executable=executable,
            args=tuple(args),
            working_dir=str(working_dir) if working_dir is not None else None,
            env=dict(env or {}),
        )
        with self._lock:
            self._calls.append(call)

        response = self._lookup(call.command)
        if response is None:
            raise ProcessError(
                ProcessErrorKind.LAUNCH_FAILURE,
                call.command,
                f"No scripted response for {' '.join(call.command)!r}",
            )

        effective = self._effective_timeout(timeout)
        if effective is not None and (effective <= 0 or response.delay > effective):
            time.sleep(max(effective, 0))
            raise ProcessError(ProcessErrorKind.TIMEOUT, call.command, "Scripted command timed out")
        if response.delay:
            time.sleep(response.delay)
        if response.error is not None:
            raise response.error

        return ProcessResult(
            command=(executable, *call.args),
            working_dir=call.working_dir,
            env=call.env,
            exit_code=response.exit_code,
            stdout=response.stdout,
            stderr=response.stderr,
            duration=response.delay,
        )

    def _lookup(self, command: tuple[str, ...]) -> _Response | None:
        best: tuple[str, ...] | None = None
        for prefix in self._script:
            if command[: len(prefix)] == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        return self._script[best] if best is not None else None


class FakePackageManager:
    """Package manager double that reads a trivial definition format.

    Each non-empty line of a definition file is ``name@version`` and becomes
    a direct dependency in scope ``main``. A line ``!error`` makes the file
    fail with a ``ValueError``; a line ``!crash`` raises ``RuntimeError``,
    which is not contained and aborts the run.

    Parameters
    ----------
    delay:
        Seconds every resolution sleeps, to exercise parallelism and deadlines.
    reentrant:
        If ``False``, resolutions are serialized like a tool with a global lock.
    """

    def __init__(
        self,
        name: str = "Fake",
        patterns: tuple[str, ...] = ("fake.deps",),
        *,
        delay: float = 0.0,
        reentrant: bool = True,
        tool=None,
        on_resolve: Callable[[Path], None] | None = None,
    ) -> None:
        self.name = name
        self.definition_patterns = patterns
        self.reentrant = reentrant
        self.tool = tool
        self.delay = delay
        self.on_resolve = on_resolve
        self.resolved: list[Path] = []
        self.max_concurrency = 0
        self._active = 0
        self._counter_lock = threading.Lock()
        self._lock = None if reentrant else threading.Lock()

    def matches(self, definition_file: Path) -> bool:
        return matches_patterns(self.definition_patterns, definition_file)

    def resolve_dependencies(
        self, root_dir: Path, definition_files: Sequence[Path]
    ) -> dict[Path, ProjectAnalyzerResult]:
        return resolve_each(self.name, root_dir, definition_files, self._resolve_one, lock=self._lock)

    def _resolve_one(self, root_dir: Path, definition_file: Path) -> ProjectAnalyzerResult:
        with self._counter_lock:
            self._active += 1
            self.max_concurrency = max(self.max_concurrency, self._active)
            self.resolved.append(definition_file)
        try:
            if self.on_resolve is not None:
                self.on_resolve(definition_file)
            if self.delay:
                left = remaining_time()
                time.sleep(self.delay if left is None else max(0.0, min(self.delay, left)))
            return self._parse(root_dir, definition_file)
        finally:
            with self._counter_lock:
                self._active -= 1

    def _parse(self, root_dir: Path, definition_file: Path) -> ProjectAnalyzerResult:
        lines = [line.strip() for line in definition_file.read_text().splitlines() if line.strip()]
        if "!crash" in lines:
            raise RuntimeError(f"fake manager crashed on {definition_file}")
        if "!error" in lines:
            raise ValueError(f"broken definition file {definition_file.name}")

        builder = DependencyGraphBuilder()
        builder.add_scope("main")
        for line in lines:
            name, _, version = line.partition("@")
            pkg_id = Identifier(self.name, "", name, version)
            builder.add_package(Package(id=pkg_id, homepage_url=f"https://example.org/{name}"))
            builder.add_scope_dependency("main", pkg_id)

        project = Project(
            id=Identifier(self.name, "", definition_file.parent.name, ""),
            definition_file_path=relative_definition_path(root_dir, definition_file),
        )
        return builder.build(project)


def svn_info_xml(wcroot: Path, root_url: str, revision: str | None = "12") -> str:
    """Output of ``svn info --xml`` for a working copy rooted at *wcroot*."""
    revision_attr = f' revision="{revision}"' if revision is not None else ""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<info>
<entry kind="dir" path="."{revision_attr}>
<url>{root_url}/trunk</url>
<repository>
<root>{root_url}</root>
<uuid>c6f9c8a3-1b2d-0410-8f4e-9f4b1c1f5e7a</uuid>
</repository>
<wc-info>
<wcroot-abspath>{wcroot.as_posix()}</wcroot-abspath>
<schedule>normal</schedule>
<depth>infinity</depth>
</wc-info>
</entry>
</info>
"""
