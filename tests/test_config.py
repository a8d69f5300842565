"""Tests for AnalyzerConfig."""

from __future__ import annotations

from pathlib import Path

import pytest

from dep_analyzer.core.config import AnalyzerConfig


class TestAnalyzerConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("XDG_CACHE_HOME", "/tmp/cache")
        config = AnalyzerConfig()
        assert config.max_workers == 4
        assert config.run_timeout is None
        assert config.process_timeout is None
        assert not config.ignore_tool_versions
        assert config.allow_bootstrap
        assert config.bootstrap_dir == Path("/tmp/cache/dep-analyzer/tools")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DEP_ANALYZER_MAX_WORKERS", "8")
        monkeypatch.setenv("DEP_ANALYZER_RUN_TIMEOUT", "120.5")
        monkeypatch.setenv("DEP_ANALYZER_PROCESS_TIMEOUT", " ")
        monkeypatch.setenv("DEP_ANALYZER_IGNORE_TOOL_VERSIONS", "yes")
        monkeypatch.setenv("DEP_ANALYZER_ALLOW_BOOTSTRAP", "0")
        monkeypatch.setenv("DEP_ANALYZER_BOOTSTRAP_DIR", "/opt/tools")

        config = AnalyzerConfig.from_env()

        assert config.max_workers == 8
        assert config.run_timeout == 120.5
        assert config.process_timeout is None
        assert config.ignore_tool_versions
        assert not config.allow_bootstrap
        assert config.bootstrap_dir == Path("/opt/tools")

    def test_from_env_invalid_number(self, monkeypatch):
        monkeypatch.setenv("DEP_ANALYZER_MAX_WORKERS", "many")
        with pytest.raises(ValueError):
            AnalyzerConfig.from_env()

    def test_workers_must_be_positive(self):
        with pytest.raises(ValueError, match="max_workers"):
            AnalyzerConfig(max_workers=0)

    def test_overrides_skip_none(self):
        base = AnalyzerConfig(max_workers=2, run_timeout=10.0)
        config = base.with_overrides(max_workers=None, run_timeout=3.0, allow_bootstrap=False)
        assert config.max_workers == 2
        assert config.run_timeout == 3.0
        assert not config.allow_bootstrap
        assert base.run_timeout == 10.0

    def test_overrides_validated(self):
        with pytest.raises(ValueError):
            AnalyzerConfig().with_overrides(max_workers=-1)
