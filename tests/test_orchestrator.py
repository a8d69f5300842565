"""Tests for the Analyzer orchestrator, with fake package managers, no external tools."""

from __future__ import annotations

import random
import threading
from pathlib import Path

import pytest

from dep_analyzer.core.config import AnalyzerConfig
from dep_analyzer.exceptions import AnalysisAbortedError
from dep_analyzer.managers.registry import PackageManagerRegistry
from dep_analyzer.model import Identifier, Package, Project, ProjectAnalyzerResult
from dep_analyzer.orchestrator import CANCELLED_MESSAGE, Analyzer, _share_packages
from dep_analyzer.progress import FileState, ProgressTracker
from dep_analyzer.testing import FakePackageManager, FakeProcessRunner
from dep_analyzer.tools.base import ExternalTool
from dep_analyzer.tools.version import VersionRequirement
from dep_analyzer.vcs.cvs import Cvs
from dep_analyzer.vcs.registry import VcsRegistry


def _analyzer(*managers, vcs_registry=None, **config) -> Analyzer:
    registry = PackageManagerRegistry()
    for manager in managers or (FakePackageManager(),):
        registry.register(manager)
    return Analyzer(
        registry=registry,
        config=AnalyzerConfig(**config),
        vcs_registry=vcs_registry or VcsRegistry(),
    )


def _monorepo(write_file, count: int = 10, broken: set[int] = frozenset()) -> list[Path]:
    files = []
    for i in range(count):
        content = "!error\n" if i in broken else f"lib{i}@1.{i}\nshared@2.0\n"
        files.append(write_file(f"project{i}/fake.deps", content))
    return files


class TestAnalyze:
    def test_discovers_and_resolves(self, tmp_path, write_file):
        _monorepo(write_file, count=3)
        result = _analyzer().analyze(tmp_path)

        assert sorted(result.results) == [
            "project0/fake.deps",
            "project1/fake.deps",
            "project2/fake.deps",
        ]
        entry = result["project1/fake.deps"]
        assert entry.errors == ()
        assert entry.project.definition_file_path == "project1/fake.deps"
        assert [r.id.name for r in entry.project.scope("main").dependencies] == ["lib1", "shared"]

    def test_partial_failure(self, tmp_path, write_file):
        files = _monorepo(write_file, count=10, broken={4})
        result = _analyzer(max_workers=4).analyze(tmp_path, files)

        assert len(result) == 10
        failed = result["project4/fake.deps"]
        assert failed.project is None
        assert "broken definition file" in failed.errors[0]
        resolved = [k for k, r in result.results.items() if r.project is not None]
        assert len(resolved) == 9
        assert result.has_errors

    def test_result_independent_of_dispatch_order(self, tmp_path, write_file):
        files = _monorepo(write_file, count=12, broken={3, 7})
        baseline = _analyzer(max_workers=1).analyze(tmp_path, files)

        for seed in range(3):
            shuffled = list(files)
            random.Random(seed).shuffle(shuffled)
            result = _analyzer(max_workers=4).analyze(tmp_path, shuffled)
            assert result == baseline
            assert result.to_json() == baseline.to_json()

    def test_idempotent(self, tmp_path, write_file):
        _monorepo(write_file, count=4)
        analyzer = _analyzer()
        assert analyzer.analyze(tmp_path).to_json() == analyzer.analyze(tmp_path).to_json()

    def test_every_requested_file_has_an_entry(self, tmp_path, write_file):
        write_file("a/fake.deps", "x@1")
        write_file("notes.txt", "hello")
        result = _analyzer().analyze(tmp_path, ["a/fake.deps", "notes.txt", "missing/fake.deps"])

        assert set(result.results) == {"a/fake.deps", "notes.txt", "missing/fake.deps"}
        assert "No package manager recognizes 'notes.txt'" in result["notes.txt"].errors[0]
        assert "does not exist" in result["missing/fake.deps"].errors[0]
        assert result["a/fake.deps"].project is not None

    def test_duplicate_inputs_resolved_once(self, tmp_path, write_file):
        f = write_file("a/fake.deps", "x@1")
        manager = FakePackageManager()
        result = _analyzer(manager).analyze(tmp_path, [f, "a/fake.deps", f])
        assert len(result) == 1
        assert len(manager.resolved) == 1

    def test_missing_root_aborts(self, tmp_path):
        with pytest.raises(AnalysisAbortedError):
            _analyzer().analyze(tmp_path / "nope")

    def test_root_that_is_a_file_aborts(self, write_file):
        with pytest.raises(AnalysisAbortedError):
            _analyzer().analyze(write_file("file.txt", ""))

    def test_provider_bug_propagates(self, tmp_path, write_file):
        write_file("a/fake.deps", "!crash\n")
        with pytest.raises(RuntimeError):
            _analyzer().analyze(tmp_path)

    def test_empty_root(self, tmp_path):
        result = _analyzer().analyze(tmp_path)
        assert len(result) == 0
        assert not result.has_errors


class TestPackagesAcrossFiles:
    def test_shared_package_is_one_record(self, tmp_path, write_file):
        _monorepo(write_file, count=3)
        result = _analyzer().analyze(tmp_path)

        shared = [p for r in result.results.values() for p in r.packages if p.id.name == "shared"]
        assert len(shared) == 3
        assert all(p is shared[0] for p in shared)
        assert [p.id.name for p in result.all_packages()].count("shared") == 1

    def test_conflicting_record_is_reported_on_the_file(self):
        pkg_id = Identifier("Fake", "", "shared", "2.0")
        first = Package(id=pkg_id, description="from a")
        second = Package(id=pkg_id, description="from b")
        project = Project(id=Identifier("Fake", "", "p", ""), definition_file_path="x")
        results = {
            "b/fake.deps": ProjectAnalyzerResult(project, packages=(second,)),
            "a/fake.deps": ProjectAnalyzerResult(project, packages=(first,)),
        }

        shared = _share_packages(results)

        assert shared["a/fake.deps"].errors == ()
        assert shared["b/fake.deps"].packages == (first,)
        assert shared["b/fake.deps"].errors == (
            "Package Fake::shared:2.0 differs from the record kept from another definition file.",
        )


class TestConcurrency:
    def test_runs_in_parallel(self, tmp_path, write_file):
        files = _monorepo(write_file, count=6)
        manager = FakePackageManager(delay=0.2)
        _analyzer(manager, max_workers=3).analyze(tmp_path, files)
        assert manager.max_concurrency > 1
        assert manager.max_concurrency <= 3

    def test_non_reentrant_provider_is_serialized(self, tmp_path, write_file):
        files = _monorepo(write_file, count=4)
        manager = FakePackageManager(delay=0.05, reentrant=False)
        result = _analyzer(manager, max_workers=4).analyze(tmp_path, files)
        assert manager.max_concurrency == 1
        assert all(r.project is not None for r in result.results.values())

    def test_deadline_cancels_unstarted_files(self, tmp_path, write_file):
        files = _monorepo(write_file, count=5)
        manager = FakePackageManager(delay=0.5)
        progress = ProgressTracker()

        result = _analyzer(manager, max_workers=1, run_timeout=0.3).analyze(tmp_path, files, progress=progress)

        assert len(result) == 5
        cancelled = [k for k, r in result.results.items() if r.errors == (CANCELLED_MESSAGE,)]
        assert len(cancelled) >= 3
        assert progress.count(FileState.CANCELLED) == len(cancelled)
        assert len(manager.resolved) == 5 - len(cancelled)

    def test_deadline_kills_running_process(self, tmp_path, write_file):
        runner = FakeProcessRunner()
        runner.script(("slowtool", "resolve"), delay=5)

        def slow(definition_file):
            ExternalTool("slowtool", runner=runner).run("resolve")

        write_file("a/fake.deps", "x@1")
        manager = FakePackageManager(on_resolve=slow)

        progress = ProgressTracker()
        result = _analyzer(manager, run_timeout=0.3).analyze(tmp_path, progress=progress)

        assert result["a/fake.deps"].project is None
        assert "timed out" in result["a/fake.deps"].errors[0]
        assert progress.state("a/fake.deps") == FileState.FAILED


class _CountingTool(ExternalTool):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.checks = 0
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        with self._lock:
            self.checks += 1
        return True


class TestToolChecks:
    def test_checked_once_per_run(self, tmp_path, write_file):
        runner = FakeProcessRunner()
        runner.script(("faketool", "--version"), stdout="faketool 1.4.0")
        tool = _CountingTool("faketool", runner=runner)
        files = _monorepo(write_file, count=5)

        _analyzer(FakePackageManager(tool=tool), max_workers=4).analyze(tmp_path, files)

        assert tool.checks == 1
        assert [c.args for c in runner.calls] == [("--version",)]

    def test_check_cut_short_by_deadline_cancels_files(self, tmp_path, write_file):
        runner = FakeProcessRunner()
        runner.script(("faketool", "--version"), stdout="1.0.0", delay=1.0)
        tool = _CountingTool("faketool", runner=runner)
        files = _monorepo(write_file, count=3)
        manager = FakePackageManager(tool=tool)
        progress = ProgressTracker()

        result = _analyzer(manager, run_timeout=0.3).analyze(tmp_path, files, progress=progress)

        assert all(r.errors == (CANCELLED_MESSAGE,) for r in result.results.values())
        assert progress.count(FileState.CANCELLED) == 3
        assert progress.count(FileState.FAILED) == 0
        assert manager.resolved == []

    def test_failed_check_fails_every_file_of_the_provider(self, tmp_path, write_file):
        write_file("a/fake.deps", "x@1")
        write_file("b/other.deps", "y@1")
        tool = ExternalTool("definitely-not-installed-tool-xyz", runner=FakeProcessRunner())
        broken = FakePackageManager(tool=tool)
        healthy = FakePackageManager("Other", ("other.deps",))

        result = _analyzer(broken, healthy).analyze(tmp_path)

        assert result["a/fake.deps"].project is None
        assert "Fake cannot run" in result["a/fake.deps"].errors[0]
        assert broken.resolved == []
        assert result["b/other.deps"].project is not None

    def test_ignored_version_mismatch_still_resolves(self, tmp_path, write_file):
        runner = FakeProcessRunner()
        runner.script(("faketool", "--version"), stdout="0.1.0")
        tool = _CountingTool("faketool", runner=runner, version_requirement=VersionRequirement(">=2.0.0"))
        write_file("a/fake.deps", "x@1")

        strict = _analyzer(FakePackageManager(tool=tool)).analyze(tmp_path)
        lenient = _analyzer(FakePackageManager(tool=tool), ignore_tool_versions=True).analyze(tmp_path)

        assert strict["a/fake.deps"].project is None
        assert lenient["a/fake.deps"].project is not None


class TestVcsEnrichment:
    def test_projects_get_processed_vcs_info(self, tmp_path, write_file):
        for directory in (tmp_path, tmp_path / "sub"):
            (directory / "CVS").mkdir(parents=True)
            (directory / "CVS" / "Root").write_text(":pserver:anon@host:/cvsroot\n")
            (directory / "CVS" / "Tag").write_text("Nv1\n")
        write_file("sub/fake.deps", "x@1")
        vcs = VcsRegistry()
        vcs.register(Cvs())

        result = _analyzer(vcs_registry=vcs).analyze(tmp_path)

        processed = result["sub/fake.deps"].project.vcs_processed
        assert processed.type == "CVS"
        assert processed.url == ":pserver:anon@host:/cvsroot"
        assert processed.revision == "v1"
        assert processed.path == "sub"

    def test_unversioned_root_leaves_vcs_empty(self, tmp_path, write_file):
        write_file("a/fake.deps", "x@1")
        result = _analyzer().analyze(tmp_path)
        assert result["a/fake.deps"].project.vcs_processed.url == ""
