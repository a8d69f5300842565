"""Custom exceptions for dep-analyzer."""

from __future__ import annotations

from enum import Enum
from typing import Sequence


class AnalyzerError(Exception):
    """Base exception for all analyzer errors."""


class AnalysisAbortedError(AnalyzerError):
    """Raised when no work can be done at all, e.g. the repository root is unreadable."""


class ProcessErrorKind(Enum):
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    LAUNCH_FAILURE = "launch_failure"


class ProcessError(AnalyzerError):
    """Raised when an external command cannot be run to a successful end."""

    def __init__(
        self,
        kind: ProcessErrorKind,
        command: Sequence[str],
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
    ):
        self.kind = kind
        self.command = tuple(command)
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class VersionErrorKind(Enum):
    UNPARSEABLE = "unparseable"
    REQUIREMENT_UNSATISFIED = "requirement_unsatisfied"


class VersionError(AnalyzerError):
    """Raised when a tool version cannot be parsed or does not satisfy a requirement."""

    def __init__(self, kind: VersionErrorKind, message: str, version: str = ""):
        self.kind = kind
        self.version = version
        super().__init__(message)


class BootstrapErrorKind(Enum):
    NOT_SUPPORTED = "not_supported"
    DOWNLOAD_FAILED = "download_failed"
    VERSION_STILL_MISMATCHED = "version_still_mismatched"


class BootstrapError(AnalyzerError):
    """Raised when a compliant tool version cannot be provided by bootstrapping."""

    def __init__(self, kind: BootstrapErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


class VcsErrorKind(Enum):
    NOT_A_VALID_WORKING_TREE = "not_a_valid_working_tree"
    REVISION_UNAVAILABLE = "revision_unavailable"
    NO_APPLICABLE_PROVIDER = "no_applicable_provider"


class VcsError(AnalyzerError):
    """Raised for version control failures."""

    def __init__(self, kind: VcsErrorKind, message: str):
        self.kind = kind
        super().__init__(message)


class GraphErrorKind(Enum):
    CYCLE_DETECTED = "cycle_detected"
    DUPLICATE_IDENTITY_CONFLICT = "duplicate_identity_conflict"


class GraphError(AnalyzerError):
    """Describes a problem found while assembling a dependency graph.

    The graph builder records these instead of raising them, so a broken
    graph still yields a result.
    """

    def __init__(self, kind: GraphErrorKind, message: str, path: Sequence[str] = ()):
        self.kind = kind
        self.path = tuple(path)
        super().__init__(message)
