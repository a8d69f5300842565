"""Package manager providers and their registry."""

from dep_analyzer.managers.base import PackageManager, matches_patterns, resolve_each
from dep_analyzer.managers.registry import PackageManagerRegistry, create_default_registry

__all__ = [
    "PackageManager",
    "PackageManagerRegistry",
    "create_default_registry",
    "matches_patterns",
    "resolve_each",
]
