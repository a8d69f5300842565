"""Working tree model and the version control provider contract."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import structlog

from dep_analyzer.exceptions import ProcessError, VcsError, VcsErrorKind
from dep_analyzer.model import VcsInfo
from dep_analyzer.tools.base import ExternalTool

log = structlog.get_logger("dep_analyzer.vcs")


@dataclass(frozen=True)
class WorkingTree:
    """A checkout on disk as described by the VCS managing it."""

    provider: str
    root_path: Path
    remote_url: str
    revision: str
    is_valid: bool

    @property
    def root_path_posix(self) -> str:
        return self.root_path.as_posix()

    def path_to_root(self, path: str | Path) -> str:
        """Path of *path* relative to the root, always with forward slashes.

        Returns ``""`` for the root itself and raises ``ValueError`` for a
        path outside the working tree.
        """
        relative = Path(path).resolve().relative_to(self.root_path)
        posix = relative.as_posix()
        return "" if posix == "." else posix

    def vcs_info(self, path: str | Path | None = None) -> VcsInfo:
        return VcsInfo(
            type=self.provider,
            url=self.remote_url,
            revision=self.revision,
            path=self.path_to_root(path) if path is not None else "",
        )


class VersionControlSystem:
    """Base class for VCS providers.

    Subclasses set ``name``, ``marker`` and ``url_patterns`` and implement
    :meth:`find_root`, :meth:`remote_url`, :meth:`revision` and
    :meth:`download`; :meth:`get_working_tree` composes them.
    """

    name: str = ""
    marker: str = ""
    url_patterns: tuple[re.Pattern[str], ...] = ()

    def __init__(self, tool: ExternalTool | None = None) -> None:
        self.tool = tool

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def is_applicable_url(self, url: object) -> bool:
        """Whether *url* has the shape of a remote managed by this VCS. Never raises."""
        if not isinstance(url, str) or not url.strip():
            return False
        candidate = url.strip()
        return any(p.search(candidate) for p in self.url_patterns)

    def has_marker(self, directory: Path) -> bool:
        return bool(self.marker) and (directory / self.marker).exists()

    def find_marker_root(self, path: str | Path) -> Path | None:
        """Nearest ancestor of *path* (inclusive) carrying this VCS's marker."""
        current = Path(path).resolve()
        if current.is_file():
            current = current.parent
        for directory in (current, *current.parents):
            if self.has_marker(directory):
                return directory
        return None

    def get_working_tree(self, path: str | Path) -> WorkingTree:
        """Describe the checkout containing *path*.

        Raises ``VcsError(NOT_A_VALID_WORKING_TREE)`` if this VCS does not
        manage *path*. An unavailable revision is logged and left empty.
        """
        path = Path(path).resolve()
        root = self.find_root(path)
        remote = self.remote_url(root)
        try:
            revision = self.revision(root)
        except (ProcessError, VcsError) as e:
            log.warning("vcs.revision_unavailable", provider=self.name, path=str(root), error=str(e))
            revision = ""
        return WorkingTree(
            provider=self.name,
            root_path=root,
            remote_url=remote,
            revision=revision,
            is_valid=True,
        )

    def find_root(self, path: Path) -> Path:
        raise NotImplementedError

    def remote_url(self, root: Path) -> str:
        raise NotImplementedError

    def revision(self, root: Path) -> str:
        raise NotImplementedError

    def download(self, url: str, target: Path, revision: str | None = None) -> WorkingTree:
        """Retrieve the source tree at *url* into *target* and describe it."""
        raise VcsError(
            VcsErrorKind.NO_APPLICABLE_PROVIDER,
            f"{self.name or type(self).__name__} cannot download {url}",
        )

    def _not_a_working_tree(self, path: Path, cause: Exception | None = None) -> VcsError:
        detail = f": {cause}" if cause else ""
        return VcsError(
            VcsErrorKind.NOT_A_VALID_WORKING_TREE,
            f"'{path}' is not a valid {self.name} working tree{detail}",
        )
