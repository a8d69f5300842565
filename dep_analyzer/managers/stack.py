"""Stack provider for Haskell projects (``stack.yaml``)."""

from __future__ import annotations

import json
import platform
import sys
import threading
from pathlib import Path
from typing import Any, Sequence

import structlog

from dep_analyzer.exceptions import BootstrapError, BootstrapErrorKind
from dep_analyzer.graph import DependencyGraphBuilder
from dep_analyzer.managers.base import matches_patterns, relative_definition_path, resolve_each
from dep_analyzer.model import Identifier, Package, Project, ProjectAnalyzerResult, RemoteArtifact
from dep_analyzer.process import ProcessRunner
from dep_analyzer.tools.base import ExternalTool, ToolIdentity
from dep_analyzer.tools.bootstrap import download_tool_archive
from dep_analyzer.tools.version import VersionRequirement

log = structlog.get_logger("dep_analyzer.managers.stack")

BOOTSTRAP_VERSION = "2.1.3"
_RELEASE_URL = "https://github.com/commercialhaskell/stack/releases/download"
_HACKAGE_URL = "https://hackage.haskell.org/package"

_PROJECT_LOCATION = "project package"

SCOPE_EXTERNAL = "external"
SCOPE_TEST = "test"
SCOPE_BENCH = "bench"


class StackCommand(ExternalTool):
    version_arguments = ("--numeric-version",)
    supports_bootstrap = True

    def __init__(
        self,
        install_path: str | Path | None = None,
        runner: ProcessRunner | None = None,
        bootstrap_dir: Path | None = None,
    ) -> None:
        super().__init__(
            "stack",
            install_path=install_path,
            runner=runner,
            version_requirement=VersionRequirement(">=2.1.1"),
        )
        self.bootstrap_dir = bootstrap_dir

    def bootstrap(self) -> ToolIdentity:
        if self.bootstrap_dir is None:
            raise BootstrapError(BootstrapErrorKind.NOT_SUPPORTED, "No bootstrap directory configured for stack.")

        url, folder = release_archive(BOOTSTRAP_VERSION)
        target = self.bootstrap_dir / "stack" / BOOTSTRAP_VERSION
        if not (target / folder).is_dir():
            download_tool_archive(url, target)
        return ToolIdentity(self.identity.name, target / folder)


def release_archive(version: str, system: str | None = None, machine: str | None = None) -> tuple[str, str]:
    """Download URL and top-level folder name of a stack release archive."""
    system = system or sys.platform
    machine = (machine or platform.machine()).lower()

    if system.startswith("linux"):
        os_name, ext = "linux", "tar.gz"
    elif system == "darwin":
        os_name, ext = "osx", "tar.gz"
    elif system == "win32":
        os_name, ext = "windows", "zip"
    else:
        raise BootstrapError(BootstrapErrorKind.NOT_SUPPORTED, f"No stack release for platform {system!r}.")

    arch = {"amd64": "x86_64", "arm64": "aarch64"}.get(machine, machine)
    folder = f"stack-{version}-{os_name}-{arch}"
    return f"{_RELEASE_URL}/v{version}/{folder}.{ext}", folder


class Stack:
    """Resolves the external, test and benchmark dependencies of a Stack project.

    ``stack`` serializes access to its global package database, so
    resolutions of several files are never run in parallel.
    """

    name = "Stack"
    definition_patterns = ("stack.yaml",)
    reentrant = False

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        bootstrap_dir: Path | None = None,
        install_path: str | Path | None = None,
    ) -> None:
        self.tool = StackCommand(install_path=install_path, runner=runner, bootstrap_dir=bootstrap_dir)
        self._lock = threading.Lock()

    def matches(self, definition_file: Path) -> bool:
        return matches_patterns(self.definition_patterns, definition_file)

    def resolve_dependencies(
        self, root_dir: Path, definition_files: Sequence[Path]
    ) -> dict[Path, ProjectAnalyzerResult]:
        return resolve_each(self.name, root_dir, definition_files, self.resolve_file, lock=self._lock)

    def resolve_file(self, root_dir: Path, definition_file: Path) -> ProjectAnalyzerResult:
        working_dir = definition_file.parent
        builder = DependencyGraphBuilder()

        external = self._list(working_dir)
        external_roots = self._add_listing(builder, SCOPE_EXTERNAL, external)

        for scope, flag in ((SCOPE_TEST, "--test"), (SCOPE_BENCH, "--bench")):
            listing = self._list(working_dir, flag)
            roots = self._add_listing(builder, scope, listing, exclude=external_roots)
            log.debug("stack.scope", scope=scope, roots=len(roots), file=str(definition_file))

        project_entry = _pick_project(external, working_dir.name)
        name = project_entry.get("name") or working_dir.name
        project = Project(
            id=Identifier("Stack", "", str(name), str(project_entry.get("version", ""))),
            definition_file_path=relative_definition_path(root_dir, definition_file),
            declared_licenses=_licenses(project_entry.get("license")),
            homepage_url=f"{_HACKAGE_URL}/{name}" if project_entry else "",
        )
        return builder.build(project)

    def _list(self, working_dir: Path, *flags: str) -> list[dict[str, Any]]:
        result = self.tool.run("ls", "dependencies", "json", *flags, working_dir=working_dir)
        entries = json.loads(result.stdout)
        if not isinstance(entries, list):
            raise ValueError(f"unexpected 'stack ls dependencies' output of type {type(entries).__name__}")
        return [e for e in entries if isinstance(e, dict) and e.get("name")]

    def _add_listing(
        self,
        builder: DependencyGraphBuilder,
        scope: str,
        entries: list[dict[str, Any]],
        exclude: set[str] | frozenset[str] = frozenset(),
    ) -> set[str]:
        """Add the packages of one listing and attach its roots to *scope*.

        Returns the names of the scope's direct dependencies.
        """
        by_name = {str(e["name"]): e for e in entries}
        projects = {n for n, e in by_name.items() if _is_project(e)}
        ids = {n: Identifier("Hackage", "", n, str(e.get("version", ""))) for n, e in by_name.items()}

        for pkg_name, entry in by_name.items():
            if pkg_name in projects:
                continue
            # Boot packages such as "rts" may be referenced without a listing entry.
            children = [ids[d] for d in entry.get("dependencies", []) if d in ids and d not in projects]
            if ids[pkg_name] in builder.packages:
                for child in children:
                    builder.add_dependency(ids[pkg_name], child)
            else:
                builder.add_package(_package(ids[pkg_name], entry), children)

        roots = {
            dep
            for name in projects
            for dep in by_name[name].get("dependencies", [])
            if dep in ids and dep not in projects and dep not in exclude
        }
        builder.add_scope(scope)
        for dep in sorted(roots):
            builder.add_scope_dependency(scope, ids[dep])
        return roots


def _is_project(entry: dict[str, Any]) -> bool:
    location = entry.get("location") or {}
    return isinstance(location, dict) and location.get("type") == _PROJECT_LOCATION


def _pick_project(entries: list[dict[str, Any]], dir_name: str) -> dict[str, Any]:
    projects = sorted((e for e in entries if _is_project(e)), key=lambda e: str(e["name"]))
    for entry in projects:
        if entry["name"] == dir_name:
            return entry
    return projects[0] if projects else {}


def _licenses(value: Any) -> tuple[str, ...]:
    return (str(value),) if value else ()


def _package(pkg_id: Identifier, entry: dict[str, Any]) -> Package:
    location = entry.get("location") or {}
    name, version = pkg_id.name, pkg_id.version
    if isinstance(location, dict) and location.get("type") == "hackage":
        artifacts = (RemoteArtifact(url=f"{_HACKAGE_URL}/{name}-{version}/{name}-{version}.tar.gz"),)
    elif isinstance(location, dict) and location.get("url"):
        artifacts = (RemoteArtifact(url=str(location["url"])),)
    else:
        artifacts = ()
    return Package(
        id=pkg_id,
        declared_licenses=_licenses(entry.get("license")),
        homepage_url=f"{_HACKAGE_URL}/{name}",
        artifacts=artifacts,
    )
