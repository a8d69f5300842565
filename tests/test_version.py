"""Tests for tool version parsing and requirements."""

from __future__ import annotations

import pytest
from semantic_version import Version

from dep_analyzer.exceptions import VersionError, VersionErrorKind
from dep_analyzer.tools.version import VersionRequirement, parse_version


class TestParseVersion:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("git version 2.39.2", "2.39.2"),
            ("svn, version 1.14.2 (r1899510)", "1.14.2"),
            ("Version 2.9.3, Git revision 6f6f5b3", "2.9.3"),
            ("cargo 1.75.0 (1d8b05cdd 2023-11-20)", "1.75.0"),
            ("10.2.4", "10.2.4"),
            ("2.1", "2.1.0"),
            ("7", "7.0.0"),
            ("git version 2.43.0.windows.1", "2.43.0"),
            ("  8.19.2\n", "8.19.2"),
            ("v2.3.1", "2.3.1"),
            ("node v18.17.0", "18.17.0"),
            ("go version go1.21.0 linux/amd64", "1.21.0"),
        ],
    )
    def test_tolerant_parsing(self, text, expected):
        assert parse_version(text) == Version(expected)

    @pytest.mark.parametrize("text", ["", "no digits here", "version x.y"])
    def test_unparseable(self, text):
        with pytest.raises(VersionError) as exc_info:
            parse_version(text)
        assert exc_info.value.kind == VersionErrorKind.UNPARSEABLE


class TestVersionRequirement:
    def test_caret_range(self):
        req = VersionRequirement("^2.0.0")
        assert req.is_satisfied_by("2.3.1")
        assert not req.is_satisfied_by("1.9.3")
        assert not req.is_satisfied_by("3.0.0")

    def test_lower_bound(self):
        req = VersionRequirement(">=1.40.0")
        assert req.is_satisfied_by(Version("1.75.0"))
        assert not req.is_satisfied_by(Version("1.39.9"))

    def test_any(self):
        assert VersionRequirement.any().is_satisfied_by("0.0.1")
        assert str(VersionRequirement.any()) == "*"

    def test_invalid_expression_rejected_at_construction(self):
        with pytest.raises(ValueError):
            VersionRequirement("not a range at all")

    def test_equality_ignores_parsed_form(self):
        assert VersionRequirement(">=2.0.0") == VersionRequirement(">=2.0.0")
        assert VersionRequirement(">=2.0.0") != VersionRequirement(">=2.0.0", ignore_mismatch=True)
