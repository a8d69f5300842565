"""Fallback provider for directories no VCS manages."""

from __future__ import annotations

from pathlib import Path

from dep_analyzer.vcs.base import VersionControlSystem, WorkingTree


class Unversioned(VersionControlSystem):
    name = ""

    def is_applicable_url(self, url: object) -> bool:
        return False

    def find_marker_root(self, path: str | Path) -> Path | None:
        return None

    def get_working_tree(self, path: str | Path) -> WorkingTree:
        root = Path(path).resolve()
        if root.is_file():
            root = root.parent
        return WorkingTree(provider=self.name, root_path=root, remote_url="", revision="", is_valid=False)
