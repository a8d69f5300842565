"""Analyzer orchestrator: dispatch definition files to package managers.

Pipeline of one run:
  1. Validate the root
  2. Discover (or take) the definition files and group them by provider
  3. Check (or bootstrap) each provider's tool once
  4. Resolve every file in a bounded worker pool, honoring the run deadline
  5. Attach the working tree's VCS info, share package records, assemble the result
"""

from __future__ import annotations

import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Iterable

import structlog

from dep_analyzer.core.config import AnalyzerConfig
from dep_analyzer.exceptions import (
    AnalysisAbortedError,
    BootstrapError,
    ProcessError,
    VersionError,
)
from dep_analyzer.graph import merge_packages
from dep_analyzer.managers.base import PackageManager, relative_definition_path
from dep_analyzer.managers.registry import PackageManagerRegistry
from dep_analyzer.managers.registry import create_default_registry as create_manager_registry
from dep_analyzer.model import AnalyzerResult, ProjectAnalyzerResult, VcsInfo
from dep_analyzer.process import remaining_time, run_deadline
from dep_analyzer.progress import FileState, ProgressTracker
from dep_analyzer.tools.base import VersionCheck
from dep_analyzer.tools.bootstrap import ensure_tool
from dep_analyzer.vcs.base import WorkingTree
from dep_analyzer.vcs.registry import VcsRegistry
from dep_analyzer.vcs.registry import create_default_registry as create_vcs_registry

log = structlog.get_logger("dep_analyzer.analyzer")

CANCELLED_MESSAGE = "Resolution was cancelled because the run deadline passed."


class _Cancelled:
    """Marker returned by a worker that never started its file."""


class Analyzer:
    """Resolve the dependencies of every definition file below a root.

    Individual file failures end up as error entries in the result; only an
    unusable root (:class:`AnalysisAbortedError`) or a provider bug aborts
    the run.
    """

    def __init__(
        self,
        registry: PackageManagerRegistry | None = None,
        config: AnalyzerConfig | None = None,
        vcs_registry: VcsRegistry | None = None,
    ) -> None:
        self.config = config or AnalyzerConfig()
        self.registry = registry or create_manager_registry(self.config)
        self.vcs_registry = vcs_registry or create_vcs_registry()

    def analyze(
        self,
        root: str | Path,
        definition_files: Iterable[str | Path] | None = None,
        progress: ProgressTracker | None = None,
    ) -> AnalyzerResult:
        root_dir = _check_root(root)
        progress = progress or ProgressTracker()
        deadline = time.monotonic() + self.config.run_timeout if self.config.run_timeout else None

        if definition_files is None:
            files = self.registry.discover(root_dir)
        else:
            files = _normalize(root_dir, definition_files)

        log.info("analyzer.start", root=str(root_dir), files=len(files), workers=self.config.max_workers)

        results: dict[str, ProjectAnalyzerResult] = {}
        keys = {f: relative_definition_path(root_dir, f) for f in files}
        for f in files:
            progress.discover(keys[f], manager=_manager_name(self.registry.match(f)))

        groups, unmatched = self.registry.group(files)
        for f in unmatched:
            message = f"No package manager recognizes '{keys[f]}'."
            results[keys[f]] = ProjectAnalyzerResult.failure(message)
            progress.fail(keys[f], message)

        missing = [f for fs in groups.values() for f in fs if not f.is_file()]
        for f in missing:
            message = f"Definition file '{keys[f]}' does not exist or is not a file."
            results[keys[f]] = ProjectAnalyzerResult.failure(message)
            progress.fail(keys[f], message)

        with run_deadline(deadline):
            checks = self._check_tools(groups)

        work: list[tuple[PackageManager, Path]] = []
        for name, manager_files in groups.items():
            manager = self.registry.get(name)
            failure = checks.get(name)
            for f in manager_files:
                if f in missing:
                    continue
                if isinstance(failure, Exception) and _deadline_passed(deadline):
                    results[keys[f]] = ProjectAnalyzerResult.failure(CANCELLED_MESSAGE)
                    progress.cancel(keys[f], CANCELLED_MESSAGE)
                elif isinstance(failure, Exception):
                    message = f"{name} cannot run: {failure}"
                    results[keys[f]] = ProjectAnalyzerResult.failure(message)
                    progress.fail(keys[f], message)
                else:
                    work.append((manager, f))

        results.update(self._resolve_all(root_dir, work, keys, deadline, progress))

        tree = self.vcs_registry.for_directory(root_dir)
        results = _share_packages(_with_vcs(results, root_dir, tree))

        analyzer_result = AnalyzerResult(root_dir, results)
        log.info(
            "analyzer.finished",
            root=str(root_dir),
            files=len(analyzer_result),
            resolved=progress.count(FileState.RESOLVED),
            failed=progress.count(FileState.FAILED),
            cancelled=progress.count(FileState.CANCELLED),
        )
        return analyzer_result

    def _check_tools(self, groups: dict[str, list[Path]]) -> dict[str, VersionCheck | Exception]:
        """Check every needed tool exactly once, before any file is dispatched."""
        checks: dict[str, VersionCheck | Exception] = {}
        for name in groups:
            manager = self.registry.get(name)
            if manager is None or manager.tool is None:
                continue
            try:
                checks[name] = ensure_tool(
                    manager.tool,
                    ignore_mismatch=True if self.config.ignore_tool_versions else None,
                    allow_bootstrap=self.config.allow_bootstrap,
                )
            except (BootstrapError, VersionError, ProcessError) as e:
                log.warning("analyzer.tool_unusable", manager=name, tool=manager.tool.identity.name, error=str(e))
                checks[name] = e
        return checks

    def _resolve_all(
        self,
        root_dir: Path,
        work: list[tuple[PackageManager, Path]],
        keys: dict[Path, str],
        deadline: float | None,
        progress: ProgressTracker,
    ) -> dict[str, ProjectAnalyzerResult]:
        if not work:
            return {}

        def resolve_one(manager: PackageManager, definition_file: Path) -> ProjectAnalyzerResult | _Cancelled:
            with run_deadline(deadline):
                left = remaining_time()
                if left is not None and left <= 0:
                    return _Cancelled()
                progress.dispatch(keys[definition_file])
                resolved = manager.resolve_dependencies(root_dir, [definition_file])
            result = resolved.get(definition_file)
            if result is None:
                return ProjectAnalyzerResult.failure(
                    f"{manager.name} returned no result for '{keys[definition_file]}'."
                )
            return result

        results: dict[str, ProjectAnalyzerResult] = {}
        with ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="dep-analyzer") as pool:
            futures: list[tuple[Path, Future]] = [(f, pool.submit(resolve_one, m, f)) for m, f in work]
            for definition_file, future in futures:
                key = keys[definition_file]
                # Provider bugs propagate from here and abort the run.
                outcome = future.result()
                if isinstance(outcome, _Cancelled):
                    results[key] = ProjectAnalyzerResult.failure(CANCELLED_MESSAGE)
                    progress.cancel(key, CANCELLED_MESSAGE)
                elif outcome.project is None:
                    results[key] = outcome
                    progress.fail(key, "; ".join(outcome.errors))
                    log.info("analyzer.file_failed", file=key, errors=list(outcome.errors))
                else:
                    results[key] = outcome
                    progress.resolve(key)
        return results


def _check_root(root: str | Path) -> Path:
    root_dir = Path(root).resolve()
    if not root_dir.is_dir():
        raise AnalysisAbortedError(f"Repository root '{root}' does not exist or is not a directory.")
    if not os.access(root_dir, os.R_OK | os.X_OK):
        raise AnalysisAbortedError(f"Repository root '{root}' is not readable.")
    return root_dir


def _deadline_passed(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() >= deadline


def _normalize(root_dir: Path, definition_files: Iterable[str | Path]) -> list[Path]:
    seen: dict[Path, None] = {}
    for f in definition_files:
        path = Path(f)
        if not path.is_absolute():
            path = root_dir / path
        seen.setdefault(path.resolve(), None)
    return list(seen)


def _manager_name(manager: PackageManager | None) -> str:
    return manager.name if manager is not None else ""


def _with_vcs(
    results: dict[str, ProjectAnalyzerResult], root_dir: Path, tree: WorkingTree
) -> dict[str, ProjectAnalyzerResult]:
    if not tree.is_valid:
        return results
    enriched = {}
    for key, result in results.items():
        if result.project is None:
            enriched[key] = result
            continue
        try:
            vcs = tree.vcs_info((root_dir / key).parent)
        except ValueError:
            vcs = VcsInfo()
        enriched[key] = replace(result, project=replace(result.project, vcs_processed=vcs))
    return enriched


def _share_packages(results: dict[str, ProjectAnalyzerResult]) -> dict[str, ProjectAnalyzerResult]:
    """Make every file refer to one record per package identity.

    Files are visited in path order so the kept record does not depend on
    completion order.
    """
    ordered = sorted(results)
    records, conflicts = merge_packages(results[key] for key in ordered)
    for conflict in conflicts:
        log.warning("analyzer.package_conflict", package=conflict.path[0], message=str(conflict))
    shared = {}
    for key in ordered:
        result = results[key]
        if result.packages:
            errors = result.errors + tuple(
                f"Package {p.id} differs from the record kept from another definition file."
                for p in result.packages
                if records[p.id] != p
            )
            result = replace(
                result,
                packages=tuple(records[p.id] for p in result.packages),
                errors=errors,
            )
        shared[key] = result
    return shared
