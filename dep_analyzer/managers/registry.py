"""Package manager registry: map definition files to providers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

import structlog

from dep_analyzer.core.config import AnalyzerConfig
from dep_analyzer.managers.base import PackageManager
from dep_analyzer.process import ProcessRunner

log = structlog.get_logger("dep_analyzer.managers")

# Directories that never hold definition files of the analyzed project itself.
_SKIP_DIRS = {
    ".git",
    ".svn",
    ".hg",
    "CVS",
    "node_modules",
    ".stack-work",
    "target",
    "__pycache__",
    ".tox",
    ".venv",
    "venv",
}


class PackageManagerRegistry:
    """Ordered provider list. Earlier registration means higher priority."""

    def __init__(self) -> None:
        self._managers: list[PackageManager] = []

    def register(self, manager: PackageManager) -> None:
        if self.get(manager.name) is not None:
            raise ValueError(f"package manager {manager.name!r} is already registered")
        self._managers.append(manager)
        log.debug("manager.registered", manager=manager.name, patterns=list(manager.definition_patterns))

    def get(self, name: str) -> PackageManager | None:
        for manager in self._managers:
            if manager.name == name:
                return manager
        return None

    def list_all(self) -> list[PackageManager]:
        return list(self._managers)

    def match(self, definition_file: Path) -> PackageManager | None:
        """The first provider claiming *definition_file*, in priority order."""
        for manager in self._managers:
            if manager.matches(definition_file):
                return manager
        return None

    def group(self, definition_files: Iterable[Path]) -> tuple[dict[str, list[Path]], list[Path]]:
        """Split files by claiming provider.

        Returns ``({manager_name: [files]}, unmatched)``; groups follow
        priority order and files keep their input order.
        """
        claimed: dict[str, list[Path]] = {m.name: [] for m in self._managers}
        unmatched: list[Path] = []
        for definition_file in definition_files:
            manager = self.match(definition_file)
            if manager is None:
                unmatched.append(definition_file)
            else:
                claimed[manager.name].append(definition_file)
        return {name: files for name, files in claimed.items() if files}, unmatched

    def discover(self, root: Path) -> list[Path]:
        """Find every definition file below *root* that some provider claims."""
        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
            for filename in sorted(filenames):
                candidate = Path(dirpath) / filename
                if self.match(candidate) is not None:
                    found.append(candidate.resolve())
        return found


def create_default_registry(
    config: AnalyzerConfig | None = None,
    runner: ProcessRunner | None = None,
) -> PackageManagerRegistry:
    """Create a registry with Stack, npm and Cargo, in that priority order."""
    from dep_analyzer.managers.cargo import Cargo
    from dep_analyzer.managers.npm import Npm
    from dep_analyzer.managers.stack import Stack

    config = config or AnalyzerConfig()
    runner = runner or ProcessRunner(default_timeout=config.process_timeout)

    registry = PackageManagerRegistry()
    registry.register(Stack(runner=runner, bootstrap_dir=config.bootstrap_dir))
    registry.register(Npm(runner=runner))
    registry.register(Cargo(runner=runner))
    return registry
