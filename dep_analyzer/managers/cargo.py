"""Cargo provider for Rust crates (``Cargo.toml``)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

from dep_analyzer.graph import DependencyGraphBuilder
from dep_analyzer.managers.base import matches_patterns, relative_definition_path, resolve_each
from dep_analyzer.model import Identifier, Package, Project, ProjectAnalyzerResult, RemoteArtifact, VcsInfo
from dep_analyzer.process import ProcessRunner
from dep_analyzer.tools.base import ExternalTool
from dep_analyzer.tools.version import VersionRequirement

_CRATES_IO_SOURCE = "registry+https://github.com/rust-lang/crates.io-index"
_CRATES_IO_DOWNLOAD = "https://crates.io/api/v1/crates/{name}/{version}/download"

_SCOPE_BY_KIND = {
    None: "dependencies",
    "dev": "dev-dependencies",
    "build": "build-dependencies",
}


class Cargo:
    name = "Cargo"
    definition_patterns = ("Cargo.toml",)
    reentrant = True

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        self.tool = ExternalTool("cargo", runner=runner, version_requirement=VersionRequirement(">=1.40.0"))

    def matches(self, definition_file: Path) -> bool:
        return matches_patterns(self.definition_patterns, definition_file)

    def resolve_dependencies(
        self, root_dir: Path, definition_files: Sequence[Path]
    ) -> dict[Path, ProjectAnalyzerResult]:
        return resolve_each(self.name, root_dir, definition_files, self.resolve_file)

    def resolve_file(self, root_dir: Path, definition_file: Path) -> ProjectAnalyzerResult:
        result = self.tool.run(
            "metadata",
            "--format-version",
            "1",
            "--manifest-path",
            str(definition_file),
            working_dir=definition_file.parent,
        )
        metadata = json.loads(result.stdout)
        if not isinstance(metadata, dict):
            raise ValueError(f"unexpected 'cargo metadata' output of type {type(metadata).__name__}")
        return self._build_result(root_dir, definition_file, metadata)

    def _build_result(
        self, root_dir: Path, definition_file: Path, metadata: dict[str, Any]
    ) -> ProjectAnalyzerResult:
        packages = {p["id"]: p for p in metadata.get("packages", []) if isinstance(p, dict) and "id" in p}
        resolve = metadata.get("resolve") or {}
        nodes = {n["id"]: n for n in resolve.get("nodes", []) if isinstance(n, dict) and "id" in n}

        root_pkg = _find_root(metadata, packages, definition_file)
        if root_pkg is None:
            raise ValueError(f"'cargo metadata' does not describe the package of '{definition_file}'")

        ids = {pkg_id: _identifier(pkg) for pkg_id, pkg in packages.items()}
        builder = DependencyGraphBuilder()
        for pkg_id, pkg in packages.items():
            if pkg_id == root_pkg["id"]:
                continue
            node = nodes.get(pkg_id, {})
            children = [ids[d] for d in _node_dependencies(node) if d in ids]
            builder.add_package(_package(ids[pkg_id], pkg), children)

        for scope in _SCOPE_BY_KIND.values():
            builder.add_scope(scope)
        root_node = nodes.get(root_pkg["id"], {})
        for dep in root_node.get("deps", []):
            dep_id = ids.get(dep.get("pkg"))
            if dep_id is None:
                continue
            kinds = [k.get("kind") for k in dep.get("dep_kinds") or [{"kind": None}]]
            for kind in kinds:
                scope = _SCOPE_BY_KIND.get(kind)
                if scope is not None:
                    builder.add_scope_dependency(scope, dep_id)

        root_id = ids[root_pkg["id"]]
        project = Project(
            id=Identifier("Cargo", "", root_id.name, root_id.version),
            definition_file_path=relative_definition_path(root_dir, definition_file),
            declared_licenses=_licenses(root_pkg),
            homepage_url=str(root_pkg.get("homepage") or ""),
            vcs=_repository(root_pkg.get("repository")),
        )
        return builder.build(project)


def _find_root(metadata: dict[str, Any], packages: dict[str, dict], definition_file: Path) -> dict | None:
    root_id = (metadata.get("resolve") or {}).get("root")
    if root_id in packages:
        return packages[root_id]
    # Virtual workspaces have no resolve root; pick the member owning the manifest.
    manifest = definition_file.resolve()
    for member in metadata.get("workspace_members", []):
        pkg = packages.get(member)
        if pkg and Path(pkg.get("manifest_path", "")).resolve() == manifest:
            return pkg
    return None


def _node_dependencies(node: dict[str, Any]) -> list[str]:
    if "deps" in node:
        return [d["pkg"] for d in node["deps"] if "pkg" in d]
    return list(node.get("dependencies", []))


def _identifier(pkg: dict[str, Any]) -> Identifier:
    return Identifier("Crate", "", str(pkg.get("name", "")), str(pkg.get("version", "")))


def _licenses(pkg: dict[str, Any]) -> tuple[str, ...]:
    license_expr = pkg.get("license")
    if not license_expr:
        return ()
    # Older crates separate alternatives with "/" instead of " OR ".
    parts = str(license_expr).replace("/", " OR ").split(" OR ")
    return tuple(sorted({p.strip() for p in parts if p.strip()}))


def _repository(url: Any) -> VcsInfo:
    if not url:
        return VcsInfo()
    url = str(url)
    vcs_type = "Git" if url.endswith(".git") or "github.com" in url or "gitlab.com" in url else ""
    return VcsInfo(type=vcs_type, url=url)


def _package(pkg_id: Identifier, pkg: dict[str, Any]) -> Package:
    artifacts = ()
    if pkg.get("source") == _CRATES_IO_SOURCE:
        artifacts = (RemoteArtifact(url=_CRATES_IO_DOWNLOAD.format(name=pkg_id.name, version=pkg_id.version)),)
    return Package(
        id=pkg_id,
        declared_licenses=_licenses(pkg),
        description=str(pkg.get("description") or "").strip(),
        homepage_url=str(pkg.get("homepage") or ""),
        source_location=_repository(pkg.get("repository")),
        artifacts=artifacts,
    )
