"""dep-analyzer: resolve third-party dependencies across package managers and VCSs."""

from dep_analyzer.core.config import AnalyzerConfig
from dep_analyzer.model import AnalyzerResult, Identifier, Package, Project, ProjectAnalyzerResult
from dep_analyzer.orchestrator import Analyzer

__version__ = "0.1.0"

__all__ = [
    "Analyzer",
    "AnalyzerConfig",
    "AnalyzerResult",
    "Identifier",
    "Package",
    "Project",
    "ProjectAnalyzerResult",
    "__version__",
]
