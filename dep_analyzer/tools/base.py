"""Command line tool contract shared by package managers and VCS clients."""

from __future__ import annotations

import os
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, runtime_checkable

import structlog

from dep_analyzer.exceptions import (
    BootstrapError,
    BootstrapErrorKind,
    VersionError,
    VersionErrorKind,
)
from dep_analyzer.process import ProcessResult, ProcessRunner
from dep_analyzer.tools.version import VersionRequirement, parse_version

log = structlog.get_logger("dep_analyzer.tools")

_default_runner = ProcessRunner()


def default_runner() -> ProcessRunner:
    return _default_runner


class ToolIdentity:
    """Name and location of an executable.

    The absolute path is looked up on first use and then cached; only
    :meth:`rebind` (used after bootstrapping) replaces it.
    """

    def __init__(self, name: str, install_path: str | Path | None = None) -> None:
        self.name = name
        self.install_path = Path(install_path) if install_path else None
        self._resolved: Path | None = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"ToolIdentity(name={self.name!r}, install_path={self.install_path!r})"

    def resolve(self) -> Path | None:
        """Absolute path of the executable, or None if it cannot be found."""
        if self._resolved is not None:
            return self._resolved
        with self._lock:
            if self._resolved is None:
                self._resolved = self._locate()
            return self._resolved

    def rebind(self, path: str | Path) -> None:
        with self._lock:
            self._resolved = Path(path).resolve()

    def _locate(self) -> Path | None:
        if self.install_path is not None:
            candidate = self.install_path
            if candidate.is_dir():
                found = shutil.which(self.name, path=str(candidate))
                return Path(found).resolve() if found else None
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return candidate.resolve()
            return None
        found = shutil.which(self.name)
        return Path(found).resolve() if found else None


@runtime_checkable
class CommandLineTool(Protocol):
    """Interface every external tool integration satisfies."""

    identity: ToolIdentity
    version_arguments: tuple[str, ...]
    version_requirement: VersionRequirement
    supports_bootstrap: bool

    def command_name(self, working_dir: Path | None = None) -> str: ...

    def is_available(self) -> bool: ...

    def run(
        self,
        *args: str,
        working_dir: Path | None = None,
        env: Mapping[str, str | None] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult: ...

    def execute(
        self,
        *args: str,
        working_dir: Path | None = None,
        env: Mapping[str, str | None] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult: ...

    def transform_version(self, output: str) -> str: ...

    def bootstrap(self) -> ToolIdentity: ...


class ExternalTool:
    """Default :class:`CommandLineTool` implementation.

    Concrete tools subclass this and override only what differs, typically
    ``transform_version``, ``command_name`` or ``bootstrap``.
    """

    version_arguments: tuple[str, ...] = ("--version",)
    version_requirement: VersionRequirement = VersionRequirement.any()
    supports_bootstrap: bool = False

    def __init__(
        self,
        name: str,
        install_path: str | Path | None = None,
        runner: ProcessRunner | None = None,
        version_requirement: VersionRequirement | None = None,
    ) -> None:
        self.identity = ToolIdentity(name, install_path)
        self.runner = runner or default_runner()
        if version_requirement is not None:
            self.version_requirement = version_requirement

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.identity.name!r})"

    @property
    def name(self) -> str:
        return self.identity.name

    def command_name(self, working_dir: Path | None = None) -> str:
        return self.identity.name

    def is_available(self) -> bool:
        """Whether the executable can be located, without running it."""
        return self.identity.resolve() is not None

    def executable(self, working_dir: Path | None = None) -> str:
        command = self.command_name(working_dir)
        if command != self.identity.name:
            return command
        resolved = self.identity.resolve()
        return str(resolved) if resolved is not None else command

    def execute(
        self,
        *args: str,
        working_dir: Path | None = None,
        env: Mapping[str, str | None] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        """Run the tool and return the result whatever its exit code."""
        return self.runner.execute(
            self.executable(working_dir),
            args,
            working_dir=working_dir,
            env=env,
            timeout=timeout,
        )

    def run(
        self,
        *args: str,
        working_dir: Path | None = None,
        env: Mapping[str, str | None] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        """Run the tool, raising ``ProcessError`` on a non-zero exit code."""
        return self.execute(*args, working_dir=working_dir, env=env, timeout=timeout).require_success()

    def transform_version(self, output: str) -> str:
        return output

    def bootstrap(self) -> ToolIdentity:
        raise BootstrapError(
            BootstrapErrorKind.NOT_SUPPORTED,
            f"Bootstrapping '{self.identity.name}' is not supported.",
        )


@dataclass(frozen=True)
class VersionCheck:
    """Outcome of checking a tool's version against a requirement."""

    tool: str
    version: str
    requirement: str
    satisfied: bool
    warning: str | None = None


def query_version(tool: CommandLineTool, working_dir: Path | None = None) -> str:
    """Run the tool's version command and return the reported version text.

    Some tools print their version to stderr only, so stderr is the fallback
    when stdout is blank.
    """
    result = tool.run(*tool.version_arguments, working_dir=working_dir)
    for output in (result.stdout, result.stderr):
        version = tool.transform_version(output.strip())
        if version.strip():
            return version.strip()
    return ""


def check_version(
    tool: CommandLineTool,
    requirement: VersionRequirement | None = None,
    ignore_mismatch: bool | None = None,
    working_dir: Path | None = None,
) -> VersionCheck:
    """Check the tool's actual version against *requirement*.

    An unsatisfied requirement raises ``VersionError(REQUIREMENT_UNSATISFIED)``
    unless mismatches are ignored, in which case a warning is logged and
    recorded on the returned :class:`VersionCheck`.
    """
    requirement = requirement or tool.version_requirement
    ignore = requirement.ignore_mismatch if ignore_mismatch is None else ignore_mismatch
    name = tool.identity.name

    actual = parse_version(query_version(tool, working_dir))
    if requirement.is_satisfied_by(actual):
        return VersionCheck(tool=name, version=str(actual), requirement=str(requirement), satisfied=True)

    message = f"Unsupported {name} version {actual} does not fulfill {requirement}."
    if not ignore:
        raise VersionError(VersionErrorKind.REQUIREMENT_UNSATISFIED, message, version=str(actual))

    log.warning(
        "tool.version_mismatch_ignored",
        tool=name,
        version=str(actual),
        requirement=str(requirement),
    )
    return VersionCheck(
        tool=name,
        version=str(actual),
        requirement=str(requirement),
        satisfied=False,
        warning=f"{message} Still continuing because the actual version is ignored.",
    )
