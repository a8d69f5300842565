"""Version control providers and the working tree model."""

from dep_analyzer.vcs.base import VersionControlSystem, WorkingTree
from dep_analyzer.vcs.registry import VcsRegistry, create_default_registry

__all__ = ["VcsRegistry", "VersionControlSystem", "WorkingTree", "create_default_registry"]
