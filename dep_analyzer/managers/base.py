"""Package manager contract and the per-file resolution helper."""

from __future__ import annotations

import fnmatch
import threading
from contextlib import nullcontext
from pathlib import Path
from typing import Callable, Protocol, Sequence, runtime_checkable

import structlog

from dep_analyzer.exceptions import AnalyzerError
from dep_analyzer.model import ProjectAnalyzerResult
from dep_analyzer.tools.base import ExternalTool

log = structlog.get_logger("dep_analyzer.managers")


@runtime_checkable
class PackageManager(Protocol):
    """Interface every package manager provider must satisfy.

    ``resolve_dependencies`` returns exactly one entry per input path, keyed
    by that path; a file that cannot be resolved gets an error entry.
    """

    name: str
    definition_patterns: tuple[str, ...]
    tool: ExternalTool | None
    reentrant: bool

    def matches(self, definition_file: Path) -> bool: ...

    def resolve_dependencies(
        self, root_dir: Path, definition_files: Sequence[Path]
    ) -> dict[Path, ProjectAnalyzerResult]: ...


def matches_patterns(patterns: Sequence[str], definition_file: Path) -> bool:
    """Whether the file name matches one of the glob *patterns*."""
    return any(fnmatch.fnmatchcase(definition_file.name, p) for p in patterns)


def relative_definition_path(root_dir: Path, definition_file: Path) -> str:
    """Definition file path relative to the analysis root, with forward slashes."""
    try:
        return definition_file.resolve().relative_to(root_dir.resolve()).as_posix()
    except ValueError:
        return definition_file.resolve().as_posix()


def resolve_each(
    manager_name: str,
    root_dir: Path,
    definition_files: Sequence[Path],
    resolve_one: Callable[[Path, Path], ProjectAnalyzerResult],
    lock: threading.Lock | None = None,
) -> dict[Path, ProjectAnalyzerResult]:
    """Resolve every file with *resolve_one*, turning failures into error entries.

    Pass *lock* for a tool that must not run concurrently (e.g. because it
    takes a global cache lock); resolutions are then serialized.
    """
    results: dict[Path, ProjectAnalyzerResult] = {}
    for definition_file in definition_files:
        with lock if lock is not None else nullcontext():
            try:
                results[definition_file] = resolve_one(root_dir, definition_file)
            except (AnalyzerError, OSError, ValueError) as e:
                log.warning(
                    "manager.resolve_failed",
                    manager=manager_name,
                    definition_file=str(definition_file),
                    error=str(e),
                )
                results[definition_file] = ProjectAnalyzerResult.failure(
                    f"{manager_name} failed to resolve dependencies for "
                    f"'{relative_definition_path(root_dir, definition_file)}': {e}"
                )
    return results
