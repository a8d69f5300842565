"""npm provider, reads the dependency tree reported by ``npm ls``."""

from __future__ import annotations

import base64
import binascii
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from dep_analyzer.graph import DependencyGraphBuilder
from dep_analyzer.managers.base import matches_patterns, relative_definition_path, resolve_each
from dep_analyzer.model import (
    Hash,
    Identifier,
    Package,
    Project,
    ProjectAnalyzerResult,
    RemoteArtifact,
    VcsInfo,
)
from dep_analyzer.process import ProcessRunner
from dep_analyzer.tools.base import ExternalTool
from dep_analyzer.tools.version import VersionRequirement

# npm ls exits with 1 when it reports problems (missing or invalid packages)
# but still prints the full tree.
_ACCEPTED_EXIT_CODES = (0, 1)

_SCOPE_DEPENDENCIES = "dependencies"
_SCOPE_DEV_DEPENDENCIES = "devDependencies"


class NpmCommand(ExternalTool):
    def command_name(self, working_dir: Path | None = None) -> str:
        return "npm.cmd" if sys.platform == "win32" else "npm"


class Npm:
    name = "NPM"
    definition_patterns = ("package.json",)
    reentrant = True

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        self.tool = NpmCommand("npm", runner=runner, version_requirement=VersionRequirement(">=6.0.0"))

    def matches(self, definition_file: Path) -> bool:
        return matches_patterns(self.definition_patterns, definition_file)

    def resolve_dependencies(
        self, root_dir: Path, definition_files: Sequence[Path]
    ) -> dict[Path, ProjectAnalyzerResult]:
        return resolve_each(self.name, root_dir, definition_files, self.resolve_file)

    def resolve_file(self, root_dir: Path, definition_file: Path) -> ProjectAnalyzerResult:
        working_dir = definition_file.parent
        result = self.tool.execute("ls", "--json", "--all", "--long", working_dir=working_dir)
        if result.exit_code not in _ACCEPTED_EXIT_CODES:
            result.require_success()
        try:
            tree = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ValueError(f"'{result.command_line}' did not print a JSON tree: {e}") from e
        if not isinstance(tree, dict):
            raise ValueError(f"unexpected npm ls output of type {type(tree).__name__}")

        return self._build_result(root_dir, definition_file, tree)

    def _build_result(
        self, root_dir: Path, definition_file: Path, tree: dict[str, Any]
    ) -> ProjectAnalyzerResult:
        builder = DependencyGraphBuilder()
        errors: list[str] = [str(p) for p in tree.get("problems", [])]
        dev_names = set((tree.get("devDependencies") or {}).keys())

        builder.add_scope(_SCOPE_DEPENDENCIES)
        builder.add_scope(_SCOPE_DEV_DEPENDENCIES)
        for dep_name, node in (tree.get("dependencies") or {}).items():
            dep_id = self._add_node(builder, dep_name, node)
            if dep_id is None:
                continue
            scope = _SCOPE_DEV_DEPENDENCIES if dep_name in dev_names or node.get("dev") else _SCOPE_DEPENDENCIES
            builder.add_scope_dependency(scope, dep_id)

        namespace, name = _split_name(tree.get("name") or definition_file.parent.name)
        project = Project(
            id=Identifier("NPM", namespace, name, str(tree.get("version", ""))),
            definition_file_path=relative_definition_path(root_dir, definition_file),
            declared_licenses=_licenses(tree.get("license")),
            homepage_url=str(tree.get("homepage") or ""),
            vcs=_repository(tree.get("repository"), tree.get("gitHead")),
        )
        return builder.build(project, errors=errors)

    def _add_node(self, builder: DependencyGraphBuilder, dep_name: str, node: Any) -> Identifier | None:
        if not isinstance(node, dict) or not node.get("version") or node.get("missing"):
            return None

        namespace, name = _split_name(node.get("name") or dep_name)
        pkg_id = Identifier("NPM", namespace, name, str(node["version"]))
        children = []
        for child_name, child in (node.get("dependencies") or {}).items():
            child_id = self._add_node(builder, child_name, child)
            if child_id is not None:
                children.append(child_id)

        # npm repeats deduplicated packages with less detail; the first, full
        # occurrence is the one kept.
        if pkg_id in builder.packages:
            for child_id in children:
                builder.add_dependency(pkg_id, child_id)
        else:
            builder.add_package(_package(pkg_id, node), children)
        return pkg_id


def _split_name(full_name: str) -> tuple[str, str]:
    """``@babel/core`` -> ``("@babel", "core")``; ``lodash`` -> ``("", "lodash")``."""
    if full_name.startswith("@") and "/" in full_name:
        namespace, _, name = full_name.partition("/")
        return namespace, name
    return "", full_name


def _licenses(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,) if value else ()
    if isinstance(value, dict) and value.get("type"):
        return (str(value["type"]),)
    if isinstance(value, list):
        return tuple(sorted({lic for item in value for lic in _licenses(item)}))
    return ()


def _repository(value: Any, revision: Any = None) -> VcsInfo:
    if isinstance(value, str):
        value = {"url": value}
    if not isinstance(value, dict) or not value.get("url"):
        return VcsInfo()
    url = str(value["url"]).removeprefix("git+")
    vcs_type = str(value.get("type") or "")
    return VcsInfo(
        type="Git" if vcs_type.lower() == "git" else vcs_type,
        url=url,
        revision=str(revision or ""),
        path=str(value.get("directory") or ""),
    )


def _integrity_hash(integrity: Any) -> Hash | None:
    """Convert an SRI string such as ``sha512-<base64>`` into a hex digest."""
    if not isinstance(integrity, str) or "-" not in integrity:
        return None
    algorithm, _, encoded = integrity.split()[0].partition("-")
    try:
        digest = base64.b64decode(encoded, validate=True).hex()
    except (binascii.Error, ValueError):
        return None
    return Hash(value=digest, algorithm=algorithm.upper())


def _package(pkg_id: Identifier, node: dict[str, Any]) -> Package:
    artifacts = ()
    if node.get("resolved"):
        artifacts = (RemoteArtifact(url=str(node["resolved"]), hash=_integrity_hash(node.get("integrity"))),)
    return Package(
        id=pkg_id,
        declared_licenses=_licenses(node.get("license")),
        description=str(node.get("description") or ""),
        homepage_url=str(node.get("homepage") or ""),
        source_location=_repository(node.get("repository"), node.get("gitHead")),
        artifacts=artifacts,
    )
