"""External tool contract, version requirements and bootstrapping."""

from dep_analyzer.tools.base import (
    CommandLineTool,
    ExternalTool,
    ToolIdentity,
    VersionCheck,
    check_version,
    query_version,
)
from dep_analyzer.tools.bootstrap import download_tool_archive, ensure_tool
from dep_analyzer.tools.version import VersionRequirement, parse_version

__all__ = [
    "CommandLineTool",
    "ExternalTool",
    "ToolIdentity",
    "VersionCheck",
    "VersionRequirement",
    "check_version",
    "download_tool_archive",
    "ensure_tool",
    "parse_version",
    "query_version",
]
