"""Mercurial provider."""

from __future__ import annotations

import re
from pathlib import Path

from dep_analyzer.exceptions import ProcessError
from dep_analyzer.process import ProcessRunner
from dep_analyzer.tools.base import ExternalTool
from dep_analyzer.tools.version import VersionRequirement
from dep_analyzer.vcs.base import VersionControlSystem, WorkingTree, log

_HG_VERSION_RE = re.compile(r"\(version ([^)]+)\)")


class MercurialCommand(ExternalTool):
    version_arguments = ("--version", "--quiet")

    # "Mercurial Distributed SCM (version 6.3.2)" -> "6.3.2"
    def transform_version(self, output: str) -> str:
        m = _HG_VERSION_RE.search(output)
        return m.group(1) if m else output


class Mercurial(VersionControlSystem):
    name = "Mercurial"
    marker = ".hg"
    url_patterns = (
        re.compile(r"^hg(\+[a-z]+)?://", re.IGNORECASE),
        re.compile(r"^https?://hg\.", re.IGNORECASE),
        re.compile(r"^https?://(?!(www\.)?(github\.com|gitlab\.com)/)[^/]+(/.*)?/hg(/|$)", re.IGNORECASE),
        re.compile(r"^https?://(www\.)?bitbucket\.org/[^/]+/[^/]+?(?<!\.git)/?$", re.IGNORECASE),
    )

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        super().__init__(
            MercurialCommand("hg", runner=runner, version_requirement=VersionRequirement(">=4.0.0"))
        )

    def find_root(self, path: Path) -> Path:
        cwd = path if path.is_dir() else path.parent
        try:
            result = self.tool.run("root", working_dir=cwd)
        except ProcessError as e:
            raise self._not_a_working_tree(path, e) from e
        return Path(result.stdout.strip()).resolve()

    def remote_url(self, root: Path) -> str:
        result = self.tool.execute("paths", "default", working_dir=root)
        return result.stdout.strip() if result.is_success else ""

    def revision(self, root: Path) -> str:
        return self.tool.run("log", "-r", ".", "--template", "{node}", working_dir=root).stdout.strip()

    def download(self, url: str, target: Path, revision: str | None = None) -> WorkingTree:
        target.parent.mkdir(parents=True, exist_ok=True)
        log.info("vcs.download", provider=self.name, url=url, revision=revision, target=str(target))
        args = ["clone", url, str(target)]
        if revision:
            args[1:1] = ["-r", revision]
        self.tool.run(*args)
        return self.get_working_tree(target)
