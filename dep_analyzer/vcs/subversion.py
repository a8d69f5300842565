"""Subversion provider."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from pathlib import Path

from dep_analyzer.exceptions import ProcessError, VcsError, VcsErrorKind
from dep_analyzer.process import ProcessRunner
from dep_analyzer.tools.base import ExternalTool
from dep_analyzer.tools.version import VersionRequirement
from dep_analyzer.vcs.base import VersionControlSystem, WorkingTree, log


class SubversionCommand(ExternalTool):
    # "svn, version 1.14.2 (r1899510)" is followed by a long banner; keep the first line.
    def transform_version(self, output: str) -> str:
        first_line = output.splitlines()[0] if output else ""
        return first_line.removeprefix("svn, version ").strip()


class Subversion(VersionControlSystem):
    name = "Subversion"
    marker = ".svn"
    url_patterns = (
        re.compile(r"^svn(\+[a-z]+)?://", re.IGNORECASE),
        re.compile(r"^https?://svn\.", re.IGNORECASE),
        re.compile(r"^https?://(?!(www\.)?(github\.com|gitlab\.com)/)[^/]+(/.*)?/svn(/|$)", re.IGNORECASE),
    )

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        super().__init__(
            SubversionCommand("svn", runner=runner, version_requirement=VersionRequirement(">=1.7.0"))
        )

    def _info(self, path: Path) -> ET.Element:
        try:
            output = self.tool.run("info", "--xml", str(path)).stdout
        except ProcessError as e:
            raise self._not_a_working_tree(path, e) from e
        try:
            entry = ET.fromstring(output).find("entry")
        except ET.ParseError as e:
            raise self._not_a_working_tree(path, e) from e
        if entry is None:
            raise self._not_a_working_tree(path)
        return entry

    def find_root(self, path: Path) -> Path:
        entry = self._info(path)
        wcroot = entry.findtext("wc-info/wcroot-abspath")
        if not wcroot:
            raise self._not_a_working_tree(path)
        return Path(wcroot).resolve()

    def remote_url(self, root: Path) -> str:
        entry = self._info(root)
        return (entry.findtext("repository/root") or entry.findtext("url") or "").strip()

    def revision(self, root: Path) -> str:
        try:
            entry = self._info(root)
        except VcsError as e:
            raise VcsError(VcsErrorKind.REVISION_UNAVAILABLE, str(e)) from e
        revision = entry.get("revision", "").strip()
        if not revision:
            raise VcsError(VcsErrorKind.REVISION_UNAVAILABLE, f"No revision reported for '{root}'")
        return revision

    def download(self, url: str, target: Path, revision: str | None = None) -> WorkingTree:
        target.parent.mkdir(parents=True, exist_ok=True)
        log.info("vcs.download", provider=self.name, url=url, revision=revision, target=str(target))
        args = ["checkout", "--non-interactive", url, str(target)]
        if revision:
            args[1:1] = ["-r", revision]
        self.tool.run(*args)
        return self.get_working_tree(target)
