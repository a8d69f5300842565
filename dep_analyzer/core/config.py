"""Analyzer configuration, read from the environment and overridable per run."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

_ENV_PREFIX = "DEP_ANALYZER_"
_TRUE_VALUES = {"1", "true", "yes", "on"}


def _default_bootstrap_dir() -> Path:
    cache_home = os.environ.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return Path(cache_home) / "dep-analyzer" / "tools"


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(_ENV_PREFIX + key, default))


def _env_float(key: str) -> float | None:
    raw = os.environ.get(_ENV_PREFIX + key)
    if raw is None or not raw.strip():
        return None
    return float(raw)


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(_ENV_PREFIX + key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class AnalyzerConfig:
    """Settings for one analyzer run."""

    max_workers: int = 4
    run_timeout: float | None = None  # seconds for the whole run
    process_timeout: float | None = None  # seconds per external command
    ignore_tool_versions: bool = False
    allow_bootstrap: bool = True
    bootstrap_dir: Path = field(default_factory=_default_bootstrap_dir)

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    @classmethod
    def from_env(cls) -> AnalyzerConfig:
        """Build a config from ``DEP_ANALYZER_*`` environment variables."""
        bootstrap_dir = os.environ.get(_ENV_PREFIX + "BOOTSTRAP_DIR")
        return cls(
            max_workers=_env_int("MAX_WORKERS", 4),
            run_timeout=_env_float("RUN_TIMEOUT"),
            process_timeout=_env_float("PROCESS_TIMEOUT"),
            ignore_tool_versions=_env_bool("IGNORE_TOOL_VERSIONS", False),
            allow_bootstrap=_env_bool("ALLOW_BOOTSTRAP", True),
            bootstrap_dir=Path(bootstrap_dir) if bootstrap_dir else _default_bootstrap_dir(),
        )

    def with_overrides(self, **overrides: object) -> AnalyzerConfig:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
