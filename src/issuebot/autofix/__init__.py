"""Automated fixes: safety gate, line edits and the pull request applicator."""

from src.issuebot.autofix.applicator import FixApplicator, FixResult
from src.issuebot.autofix.edits import apply_line_edits
from src.issuebot.autofix.gate import (
    CRITICAL_PATHS,
    GateDecision,
    evaluate,
    is_critical_path,
    is_safe,
)

__all__ = [
    "CRITICAL_PATHS",
    "FixApplicator",
    "FixResult",
    "GateDecision",
    "apply_line_edits",
    "evaluate",
    "is_critical_path",
    "is_safe",
]
