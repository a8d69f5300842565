"""Canonical, ecosystem-agnostic data model produced by the analyzer.

All types are immutable. ``to_dict`` methods emit every field on every run
so that serialized results can be compared byte for byte.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping


@dataclass(frozen=True, order=True)
class Identifier:
    """Coordinates of a project or package: ``type:namespace:name:version``."""

    type: str
    namespace: str
    name: str
    version: str

    def __str__(self) -> str:
        return ":".join((self.type, self.namespace, self.name, self.version))

    @classmethod
    def from_string(cls, value: str) -> Identifier:
        parts = value.split(":", 3)
        if len(parts) != 4:
            raise ValueError(f"identifier must have four ':'-separated parts: {value!r}")
        return cls(*parts)


@dataclass(frozen=True)
class VcsInfo:
    type: str = ""
    url: str = ""
    revision: str = ""
    path: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "url": self.url, "revision": self.revision, "path": self.path}


VcsInfo.EMPTY = VcsInfo()  # type: ignore[attr-defined]


@dataclass(frozen=True)
class Hash:
    value: str
    algorithm: str

    def to_dict(self) -> dict[str, str]:
        return {"value": self.value, "algorithm": self.algorithm}


@dataclass(frozen=True)
class RemoteArtifact:
    url: str
    hash: Hash | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "hash": self.hash.to_dict() if self.hash else None}


@dataclass(frozen=True)
class Package:
    """A resolved external dependency. Two packages with the same ``id`` are the same package."""

    id: Identifier
    declared_licenses: tuple[str, ...] = ()
    description: str = ""
    homepage_url: str = ""
    source_location: VcsInfo = field(default_factory=VcsInfo)
    artifacts: tuple[RemoteArtifact, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "declared_licenses": sorted(self.declared_licenses),
            "description": self.description,
            "homepage_url": self.homepage_url,
            "source_location": self.source_location.to_dict(),
            "artifacts": [a.to_dict() for a in self.artifacts],
        }


@dataclass(frozen=True)
class PackageReference:
    """A node in a scope's dependency tree."""

    id: Identifier
    dependencies: tuple[PackageReference, ...] = ()
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "dependencies": [d.to_dict() for d in self.dependencies],
            "errors": list(self.errors),
        }

    def walk(self) -> Iterable[PackageReference]:
        """This node and all its descendants, depth first."""
        yield self
        for dep in self.dependencies:
            yield from dep.walk()


@dataclass(frozen=True)
class Scope:
    """A named dependency context such as ``test`` or ``devDependencies``."""

    name: str
    dependencies: tuple[PackageReference, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "dependencies": [d.to_dict() for d in self.dependencies]}

    def collect_ids(self) -> set[Identifier]:
        return {ref.id for top in self.dependencies for ref in top.walk()}


@dataclass(frozen=True)
class Project:
    """One resolved definition file."""

    id: Identifier
    definition_file_path: str
    declared_licenses: tuple[str, ...] = ()
    homepage_url: str = ""
    vcs: VcsInfo = field(default_factory=VcsInfo)
    vcs_processed: VcsInfo = field(default_factory=VcsInfo)
    scopes: tuple[Scope, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "definition_file_path": self.definition_file_path,
            "declared_licenses": sorted(self.declared_licenses),
            "homepage_url": self.homepage_url,
            "vcs": self.vcs.to_dict(),
            "vcs_processed": self.vcs_processed.to_dict(),
            "scopes": [s.to_dict() for s in self.scopes],
        }

    def scope(self, name: str) -> Scope | None:
        for s in self.scopes:
            if s.name == name:
                return s
        return None


@dataclass(frozen=True)
class ProjectAnalyzerResult:
    """Outcome for one definition file: project data, or errors, or both."""

    project: Project | None
    packages: tuple[Package, ...] = ()
    errors: tuple[str, ...] = ()

    @classmethod
    def failure(cls, *errors: str) -> ProjectAnalyzerResult:
        return cls(project=None, packages=(), errors=tuple(errors))

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project.to_dict() if self.project else None,
            "packages": [p.to_dict() for p in sorted(self.packages, key=lambda p: p.id)],
            "errors": list(self.errors),
        }


class AnalyzerResult:
    """Results of one analyzer run, keyed by definition-file path relative to the root."""

    def __init__(self, root: Path, results: Mapping[str, ProjectAnalyzerResult]) -> None:
        self.root = root
        self._results = MappingProxyType(dict(sorted(results.items())))

    def __repr__(self) -> str:
        return f"AnalyzerResult(root={str(self.root)!r}, files={len(self._results)})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnalyzerResult):
            return NotImplemented
        return self.root == other.root and dict(self._results) == dict(other._results)

    __hash__ = None  # type: ignore[assignment]

    @property
    def results(self) -> Mapping[str, ProjectAnalyzerResult]:
        return self._results

    @property
    def has_errors(self) -> bool:
        return any(r.errors for r in self._results.values())

    def __getitem__(self, definition_file: str) -> ProjectAnalyzerResult:
        return self._results[definition_file]

    def __contains__(self, definition_file: object) -> bool:
        return definition_file in self._results

    def __len__(self) -> int:
        return len(self._results)

    def all_packages(self) -> tuple[Package, ...]:
        """Every package across all definition files, each identity once."""
        seen: dict[Identifier, Package] = {}
        for result in self._results.values():
            for pkg in result.packages:
                seen.setdefault(pkg.id, pkg)
        return tuple(seen[k] for k in sorted(seen))

    def to_dict(self) -> dict[str, Any]:
        return {path: result.to_dict() for path, result in sorted(self._results.items())}

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True) + "\n"
