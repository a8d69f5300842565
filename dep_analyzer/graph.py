"""Dependency graph assembly: dedupe packages, expand scope trees, detect cycles."""

from __future__ import annotations

from typing import Iterable, Sequence

import structlog

from dep_analyzer.exceptions import GraphError, GraphErrorKind
from dep_analyzer.model import (
    Identifier,
    Package,
    PackageReference,
    Project,
    ProjectAnalyzerResult,
    Scope,
)

log = structlog.get_logger("dep_analyzer.graph")

_CYCLE_PREFIX = "Cycle detected: "


class DependencyGraphBuilder:
    """Collect packages and edges for one definition file and fold them into
    per-scope dependency trees.

    Providers feed flat package records and parent -> child edges in the
    order the native tool reports them; that order is kept in the trees.
    Problems are recorded as :class:`GraphError` in :attr:`issues` instead of
    being raised, so a damaged graph still produces a result.
    """

    def __init__(self) -> None:
        self._packages: dict[Identifier, Package] = {}
        self._edges: dict[Identifier, list[Identifier]] = {}
        self._scopes: dict[str, list[Identifier]] = {}
        self.issues: list[GraphError] = []

    @property
    def packages(self) -> dict[Identifier, Package]:
        return dict(self._packages)

    def add_package(self, package: Package, dependencies: Iterable[Identifier] = ()) -> Package:
        """Register *package* and its direct dependencies.

        Returns the record kept for the package's identity: the first one
        registered wins and a conflicting later record is reported.
        """
        existing = self._packages.get(package.id)
        if existing is None:
            self._packages[package.id] = package
            existing = package
        elif existing != package:
            self._record(
                GraphError(
                    GraphErrorKind.DUPLICATE_IDENTITY_CONFLICT,
                    f"Package {package.id} was reported twice with different metadata; "
                    "keeping the first record.",
                    path=(str(package.id),),
                )
            )
        for dep in dependencies:
            self.add_dependency(package.id, dep)
        return existing

    def add_dependency(self, parent: Identifier, child: Identifier) -> None:
        children = self._edges.setdefault(parent, [])
        if child not in children:
            children.append(child)

    def add_scope_dependency(self, scope: str, package_id: Identifier) -> None:
        roots = self._scopes.setdefault(scope, [])
        if package_id not in roots:
            roots.append(package_id)

    def add_scope(self, scope: str) -> None:
        """Declare a scope even if it ends up with no dependencies."""
        self._scopes.setdefault(scope, [])

    def build_scopes(self) -> tuple[Scope, ...]:
        """Expand every scope into its dependency tree."""
        # Subtrees that were expanded without hitting a cycle do not depend on
        # the path they were reached by and can be shared.
        cache: dict[Identifier, PackageReference] = {}
        scopes = []
        for name, roots in self._scopes.items():
            refs = tuple(self._expand(root, (), cache) for root in roots)
            scopes.append(Scope(name=name, dependencies=refs))
        return tuple(scopes)

    def build(self, project: Project, errors: Sequence[str] = ()) -> ProjectAnalyzerResult:
        """Attach the expanded scopes to *project* and collect the used packages."""
        scopes = self.build_scopes()
        used: set[Identifier] = set()
        for scope in scopes:
            used |= scope.collect_ids()
        packages = tuple(
            sorted((self._packages[i] for i in used if i in self._packages), key=lambda p: p.id)
        )
        all_errors = [*errors, *(str(issue) for issue in self.issues)]
        return ProjectAnalyzerResult(
            project=Project(
                id=project.id,
                definition_file_path=project.definition_file_path,
                declared_licenses=project.declared_licenses,
                homepage_url=project.homepage_url,
                vcs=project.vcs,
                vcs_processed=project.vcs_processed,
                scopes=scopes,
            ),
            packages=packages,
            errors=tuple(all_errors),
        )

    def _expand(
        self,
        package_id: Identifier,
        path: tuple[Identifier, ...],
        cache: dict[Identifier, PackageReference],
    ) -> PackageReference:
        if package_id in path:
            cycle = [*path[path.index(package_id):], package_id]
            message = _CYCLE_PREFIX + " -> ".join(str(i) for i in cycle)
            self._record(GraphError(GraphErrorKind.CYCLE_DETECTED, message, path=[str(i) for i in cycle]))
            return PackageReference(id=package_id, errors=(message,))

        cached = cache.get(package_id)
        if cached is not None:
            return cached

        if package_id not in self._packages:
            return PackageReference(
                id=package_id, errors=(f"Package {package_id} could not be resolved.",)
            )

        current = (*path, package_id)
        children = tuple(self._expand(c, current, cache) for c in self._edges.get(package_id, ()))
        ref = PackageReference(id=package_id, dependencies=children)
        if not _has_cycle(ref):
            cache[package_id] = ref
        return ref

    def _record(self, issue: GraphError) -> None:
        if any(i.kind == issue.kind and i.path == issue.path for i in self.issues):
            return
        log.warning("graph.issue", kind=issue.kind.value, message=str(issue))
        self.issues.append(issue)


def _has_cycle(ref: PackageReference) -> bool:
    return any(e.startswith(_CYCLE_PREFIX) for node in ref.walk() for e in node.errors)


def merge_packages(
    results: Iterable[ProjectAnalyzerResult],
) -> tuple[dict[Identifier, Package], list[GraphError]]:
    """Merge the packages of several definition files into one record per identity."""
    merged: dict[Identifier, Package] = {}
    conflicts: list[GraphError] = []
    for result in results:
        for pkg in result.packages:
            existing = merged.setdefault(pkg.id, pkg)
            if existing != pkg:
                conflicts.append(
                    GraphError(
                        GraphErrorKind.DUPLICATE_IDENTITY_CONFLICT,
                        f"Package {pkg.id} differs between definition files; keeping the first record.",
                        path=(str(pkg.id),),
                    )
                )
    return merged, conflicts
