"""VCS registry: pick the provider for a remote URL or an existing checkout."""

from __future__ import annotations

from pathlib import Path

import structlog

from dep_analyzer.exceptions import ProcessError, VcsError, VcsErrorKind
from dep_analyzer.process import ProcessRunner
from dep_analyzer.vcs.base import VersionControlSystem, WorkingTree
from dep_analyzer.vcs.unversioned import Unversioned

log = structlog.get_logger("dep_analyzer.vcs")


class VcsRegistry:
    """Ordered set of VCS providers. Registration order is the tie-break order."""

    def __init__(self) -> None:
        self._providers: list[VersionControlSystem] = []
        self._fallback = Unversioned()

    def register(self, provider: VersionControlSystem) -> None:
        self._providers.append(provider)
        log.debug("vcs.registered", provider=provider.name)

    def get(self, name: str) -> VersionControlSystem | None:
        wanted = name.lower()
        for provider in self._providers:
            if provider.name.lower() == wanted:
                return provider
        return None

    def list_all(self) -> list[VersionControlSystem]:
        return list(self._providers)

    def for_url(self, url: object) -> VersionControlSystem | None:
        """First provider whose URL shapes match *url*."""
        for provider in self._providers:
            if provider.is_applicable_url(url):
                return provider
        return None

    def for_directory(self, path: str | Path) -> WorkingTree:
        """Describe the checkout that manages *path*.

        Every provider whose marker appears at or above *path* is a candidate;
        the deepest marker wins, ties going to registration order. A candidate
        that turns out not to be a valid working tree is skipped. Without any
        valid candidate an invalid, unversioned tree rooted at *path* is returned.
        """
        candidates: list[tuple[int, int, VersionControlSystem]] = []
        for order, provider in enumerate(self._providers):
            marker_root = provider.find_marker_root(path)
            if marker_root is not None:
                candidates.append((-len(marker_root.parts), order, provider))

        for _, _, provider in sorted(candidates, key=lambda c: (c[0], c[1])):
            try:
                tree = provider.get_working_tree(path)
            except (VcsError, ProcessError) as e:
                log.info("vcs.candidate_rejected", provider=provider.name, path=str(path), error=str(e))
                continue
            if tree.is_valid:
                return tree

        return self._fallback.get_working_tree(path)

    def download(self, url: str, target: str | Path, revision: str | None = None) -> WorkingTree:
        provider = self.for_url(url)
        if provider is None:
            raise VcsError(VcsErrorKind.NO_APPLICABLE_PROVIDER, f"No VCS provider recognizes {url!r}")
        return provider.download(url, Path(target), revision)


def create_default_registry(runner: ProcessRunner | None = None) -> VcsRegistry:
    """Create a registry with Git, Subversion, Mercurial and CVS, in that order."""
    from dep_analyzer.vcs.cvs import Cvs
    from dep_analyzer.vcs.git import Git
    from dep_analyzer.vcs.mercurial import Mercurial
    from dep_analyzer.vcs.subversion import Subversion

    registry = VcsRegistry()
    for provider_cls in (Git, Subversion, Mercurial, Cvs):
        registry.register(provider_cls(runner=runner))
    return registry
