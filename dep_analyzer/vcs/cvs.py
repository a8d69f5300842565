"""CVS provider.

CVS keeps its bookkeeping in plain files (``CVS/Root``, ``CVS/Repository``,
``CVS/Tag``) inside every checked-out directory, so describing a working
tree needs no server round trip.
"""

from __future__ import annotations

import re
from pathlib import Path

from dep_analyzer.exceptions import VcsError, VcsErrorKind
from dep_analyzer.process import ProcessRunner
from dep_analyzer.tools.base import ExternalTool
from dep_analyzer.tools.version import VersionRequirement
from dep_analyzer.vcs.base import VersionControlSystem, WorkingTree, log

# "Concurrent Versions System (CVS) 1.12.13 (client/server)"
_CVS_VERSION_RE = re.compile(r"\(CVS\)\s+([\d.]+)")


class CvsCommand(ExternalTool):
    def transform_version(self, output: str) -> str:
        m = _CVS_VERSION_RE.search(output)
        return m.group(1) if m else output


class Cvs(VersionControlSystem):
    name = "CVS"
    marker = "CVS"
    url_patterns = (
        re.compile(r"^:(pserver|ext|local|fork|gserver|kserver|server|ssh|extssh):", re.IGNORECASE),
        re.compile(r"^cvs://", re.IGNORECASE),
    )

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        super().__init__(CvsCommand("cvs", runner=runner, version_requirement=VersionRequirement(">=1.11.0")))

    def has_marker(self, directory: Path) -> bool:
        return (directory / "CVS" / "Root").is_file()

    def find_root(self, path: Path) -> Path:
        current = path if path.is_dir() else path.parent
        if not self.has_marker(current):
            raise self._not_a_working_tree(path)
        # The checkout root is the top-most directory still under CVS control.
        while current.parent != current and self.has_marker(current.parent):
            current = current.parent
        return current.resolve()

    def remote_url(self, root: Path) -> str:
        return (root / "CVS" / "Root").read_text(encoding="utf-8").strip()

    def revision(self, root: Path) -> str:
        tag_file = root / "CVS" / "Tag"
        if not tag_file.is_file():
            raise VcsError(VcsErrorKind.REVISION_UNAVAILABLE, f"No sticky tag recorded in '{root}'")
        tag = tag_file.read_text(encoding="utf-8").strip()
        # Entries look like "Trelease_1_0" (branch/tag) or "Nrelease_1_0" (non-branch tag).
        return tag[1:] if tag[:1] in ("T", "N", "D") else tag

    def download(self, url: str, target: Path, revision: str | None = None) -> WorkingTree:
        cvsroot, module = split_cvs_url(url)
        target.parent.mkdir(parents=True, exist_ok=True)
        log.info("vcs.download", provider=self.name, url=url, revision=revision, target=str(target))
        args = ["-z3", "-d", cvsroot, "checkout", "-d", target.name]
        if revision:
            args += ["-r", revision]
        args.append(module)
        self.tool.run(*args, working_dir=target.parent)
        return self.get_working_tree(target)


def split_cvs_url(url: str) -> tuple[str, str]:
    """Split ``:pserver:anon@host:/cvsroot/module`` into ``(cvsroot, module)``."""
    cvsroot, sep, module = url.rstrip("/").rpartition("/")
    if not sep or not module or not cvsroot:
        raise VcsError(VcsErrorKind.NO_APPLICABLE_PROVIDER, f"Cannot derive a CVS module from {url!r}")
    return cvsroot, module
