"""Git provider."""

from __future__ import annotations

import re
from pathlib import Path

from dep_analyzer.exceptions import ProcessError
from dep_analyzer.process import ProcessRunner
from dep_analyzer.tools.base import ExternalTool
from dep_analyzer.tools.version import VersionRequirement
from dep_analyzer.vcs.base import VersionControlSystem, WorkingTree, log


class GitCommand(ExternalTool):
    # "git version 2.39.2" -> "2.39.2"
    def transform_version(self, output: str) -> str:
        return output.removeprefix("git version ").strip()


class Git(VersionControlSystem):
    name = "Git"
    marker = ".git"
    url_patterns = (
        re.compile(r"^git(\+[a-z]+)?://", re.IGNORECASE),
        re.compile(r"^[\w.-]+@[\w.-]+:(?!/)"),
        re.compile(r"\.git/?$", re.IGNORECASE),
        re.compile(r"^https?://git\.", re.IGNORECASE),
        re.compile(r"^https?://(www\.)?(github\.com|gitlab\.com)/[^/]+/[^/]+", re.IGNORECASE),
    )

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        super().__init__(GitCommand("git", runner=runner, version_requirement=VersionRequirement(">=2.0.0")))

    def find_root(self, path: Path) -> Path:
        cwd = path if path.is_dir() else path.parent
        try:
            result = self.tool.run("rev-parse", "--show-toplevel", working_dir=cwd)
        except ProcessError as e:
            raise self._not_a_working_tree(path, e) from e
        return Path(result.stdout.strip()).resolve()

    def remote_url(self, root: Path) -> str:
        configured = self.tool.execute("config", "--get", "remote.origin.url", working_dir=root)
        if configured.is_success and configured.stdout.strip():
            return configured.stdout.strip()
        remotes = self.tool.run("remote", working_dir=root).stdout.split()
        if not remotes:
            return ""
        return self.tool.run("config", "--get", f"remote.{remotes[0]}.url", working_dir=root).stdout.strip()

    def revision(self, root: Path) -> str:
        return self.tool.run("rev-parse", "HEAD", working_dir=root).stdout.strip()

    def download(self, url: str, target: Path, revision: str | None = None) -> WorkingTree:
        target.parent.mkdir(parents=True, exist_ok=True)
        log.info("vcs.download", provider=self.name, url=url, revision=revision, target=str(target))
        self.tool.run("clone", "--", url, str(target))
        if revision:
            self.tool.run("checkout", revision, working_dir=target)
        return self.get_working_tree(target)
