"""Tool version parsing and version requirements."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from semantic_version import NpmSpec, Version

from dep_analyzer.exceptions import VersionError, VersionErrorKind

# First "major[.minor[.patch]]" run of digits, e.g. in "git version 2.39.2.windows.1".
# Letters may touch it: "v18.17.0", "go1.21.0".
_VERSION_RE = re.compile(r"(?<![\d.])(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(text: str) -> Version:
    """Parse a tool's version output loosely.

    Leading and trailing noise is ignored, missing minor/patch parts default
    to zero and pre-release or vendor suffixes are dropped:

        "svn, version 1.14.2 (r1899510)"  -> 1.14.2
        "Version 2.9.3, Git revision abc"  -> 2.9.3
        "cargo 1.75.0 (1d8b05cdd 2023-11-20)" -> 1.75.0
    """
    m = _VERSION_RE.search(text or "")
    if not m:
        raise VersionError(
            VersionErrorKind.UNPARSEABLE,
            f"Unable to parse a version from {text!r}",
            version=text or "",
        )
    major, minor, patch = (int(part) if part else 0 for part in m.groups())
    return Version(major=major, minor=minor, patch=patch)


@dataclass(frozen=True)
class VersionRequirement:
    """An npm-style range such as ``^2.0.0`` or ``>=1.40.0``.

    The range is parsed once at construction; an invalid expression raises
    ``ValueError`` immediately.
    """

    expression: str
    ignore_mismatch: bool = False
    _spec: NpmSpec = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_spec", NpmSpec(self.expression))

    @classmethod
    def any(cls) -> VersionRequirement:
        return cls("*")

    def is_satisfied_by(self, version: Version | str) -> bool:
        if isinstance(version, str):
            version = parse_version(version)
        return version in self._spec

    def __str__(self) -> str:
        return self.expression
