"""LLM-backed issue analysis.

- CompletionClient: stateless chat completion wrapper (langchain-openai)
- Analyzer: issue → AnalysisResult (Classification + degraded flag)
- SolutionGenerator: classification → RemediationPlan / EditSet
- parsing: tolerant conversion of model output, never raises
"""

from src.issuebot.analysis.analyzer import Analyzer
from src.issuebot.analysis.completion import CompletionClient, CompletionError
from src.issuebot.analysis.models import (
    AnalysisResult,
    Classification,
    Difficulty,
    EditSet,
    EditSetType,
    FileAction,
    FileEdit,
    IssueType,
    LineAction,
    LineEdit,
    Priority,
    RemediationPlan,
    RiskLevel,
    Severity,
    SolutionStep,
)
from src.issuebot.analysis.solution import SolutionGenerator, build_codebase_context

__all__ = [
    "AnalysisResult",
    "Analyzer",
    "Classification",
    "CompletionClient",
    "CompletionError",
    "Difficulty",
    "EditSet",
    "EditSetType",
    "FileAction",
    "FileEdit",
    "IssueType",
    "LineAction",
    "LineEdit",
    "Priority",
    "RemediationPlan",
    "RiskLevel",
    "Severity",
    "SolutionGenerator",
    "SolutionStep",
    "build_codebase_context",
]
