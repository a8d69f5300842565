"""Shared pytest fixtures for dep-analyzer tests."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from dep_analyzer.testing import FakeProcessRunner


@pytest.fixture
def fake_runner():
    return FakeProcessRunner()


@pytest.fixture
def make_executable(tmp_path):
    """Create an executable placeholder file; returns its path."""

    def _make(name: str, directory: Path | None = None) -> Path:
        directory = directory or tmp_path / "bin"
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text("#!/bin/sh\nexit 0\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def write_file(tmp_path):
    """Write *content* to a path relative to tmp_path, creating parents."""

    def _write(relative: str, content: str = "") -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return _write


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("DEP_ANALYZER_"):
            monkeypatch.delenv(key)
