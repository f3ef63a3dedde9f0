"""Analysis data models.

This module defines the structured outputs produced from language-model
completions:
- Classification: issue type, severity, priority, confidence and auto-fixability
- AnalysisResult: a classification tagged with whether it is the fallback
- RemediationPlan: human-readable fix steps with an optional EditSet
- EditSet / FileEdit / LineEdit: machine-applicable file changes

Confidence values are clamped into [0, 1] at construction so downstream
code never sees an out-of-range value, whatever the model returned.
"""

import math
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


def clamp_confidence(value: Any) -> float:
    """Coerce a value into a confidence in [0, 1].

    Non-numeric values and NaN become 0.0.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return max(0.0, min(1.0, number))


class IssueType(str, Enum):
    """Kind of work an issue describes."""

    BUG = "bug"
    FEATURE = "feature"
    DOCUMENTATION = "documentation"
    SECURITY = "security"
    PERFORMANCE = "performance"
    CONFIGURATION = "configuration"
    DEPENDENCY = "dependency"
    TEST = "test"
    REFACTOR = "refactor"
    OTHER = "other"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EditSetType(str, Enum):
    CODE_CHANGE = "code_change"
    CONFIG_CHANGE = "config_change"
    DEPENDENCY_UPDATE = "dependency_update"
    DOCUMENTATION = "documentation"


class FileAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class LineAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"


FALLBACK_CONFIDENCE = 0.3
FALLBACK_DESCRIPTION = "Automatic analysis failed; needs human review"


class Classification(BaseModel):
    """Structured classification of an issue.

    Attributes:
        type: Kind of work the issue describes.
        severity: Impact of the problem.
        priority: How soon it should be addressed.
        confidence: Model confidence, clamped into [0, 1].
        description: Short free-text summary of the analysis.
        suggested_labels: Extra labels proposed by the model, deduplicated.
        auto_fixable: Whether the model believes an automated fix is feasible.
        related_files: Repository paths the model considers relevant.
        dependencies: Package names involved in the issue.
        estimated_time: Free-text effort estimate.
    """

    type: IssueType = Field(..., description="Kind of work the issue describes")

    severity: Severity = Field(..., description="Impact of the problem")

    priority: Priority = Field(..., description="Urgency of the issue")

    confidence: float = Field(
        ...,
        description="Model confidence in the classification (0.0 to 1.0)",
    )

    description: str = Field(..., description="Summary of the analysis")

    suggested_labels: List[str] = Field(
        default_factory=list,
        description="Additional labels proposed for the issue",
    )

    auto_fixable: bool = Field(
        default=False,
        description="Whether an automated fix may be attempted",
    )

    related_files: List[str] = Field(
        default_factory=list,
        description="Repository paths relevant to the issue",
    )

    dependencies: List[str] = Field(
        default_factory=list,
        description="Dependency names involved in the issue",
    )

    estimated_time: Optional[str] = Field(
        default=None,
        description="Free-text effort estimate",
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp(cls, v: Any) -> float:
        return clamp_confidence(v)

    @field_validator("suggested_labels")
    @classmethod
    def dedupe_labels(cls, v: List[str]) -> List[str]:
        seen: List[str] = []
        for label in v:
            label = label.strip()
            if label and label not in seen:
                seen.append(label)
        return seen

    @classmethod
    def fallback(cls) -> "Classification":
        """Deterministic low-confidence classification used when parsing fails."""
        return cls(
            type=IssueType.OTHER,
            severity=Severity.MEDIUM,
            priority=Priority.MEDIUM,
            confidence=FALLBACK_CONFIDENCE,
            description=FALLBACK_DESCRIPTION,
            suggested_labels=["needs-review"],
            auto_fixable=False,
            estimated_time="unknown",
        )


class AnalysisResult(BaseModel):
    """Classification tagged with whether it came from the fallback path."""

    classification: Classification
    degraded: bool = Field(
        default=False,
        description="True when the model output could not be parsed",
    )


class LineEdit(BaseModel):
    """A single line-level change against an existing file."""

    line: int = Field(..., ge=1, description="1-based line number")
    action: LineAction = Field(..., description="add, remove or replace")
    content: str = Field(default="", description="New line content")


class FileEdit(BaseModel):
    """A change to one repository file."""

    path: str = Field(..., min_length=1, description="Repository-relative path")
    action: FileAction = Field(..., description="create, update or delete")
    content: Optional[str] = Field(
        default=None,
        description="Full replacement content",
    )
    line_edits: List[LineEdit] = Field(
        default_factory=list,
        description="Line-level changes applied when no full content is given",
    )


class EditSet(BaseModel):
    """A machine-applicable bundle of file changes proposed as a fix."""

    type: EditSetType = Field(
        default=EditSetType.CODE_CHANGE,
        description="Category of the change",
    )
    description: str = Field(default="", description="What the fix does")
    files: List[FileEdit] = Field(default_factory=list)
    commands: List[str] = Field(
        default_factory=list,
        description="Shell commands a human should run after merging",
    )
    confidence: float = Field(default=0.0)
    risk_level: RiskLevel = Field(default=RiskLevel.MEDIUM)
    test_required: bool = Field(default=True)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp(cls, v: Any) -> float:
        return clamp_confidence(v)


class SolutionStep(BaseModel):
    """One human-readable remediation step."""

    title: str
    description: str = ""
    code: Optional[str] = None
    commands: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)


class RemediationPlan(BaseModel):
    """Structured remediation plan for an issue.

    Attributes:
        summary: One-paragraph overview of the fix.
        steps: Ordered steps a human can follow.
        edit_set: Optional machine-applicable change set.
        resources: Links or references for further reading.
        estimated_time: Free-text effort estimate.
        difficulty: easy, medium or hard.
    """

    summary: str
    steps: List[SolutionStep] = Field(default_factory=list)
    edit_set: Optional[EditSet] = None
    resources: List[str] = Field(default_factory=list)
    estimated_time: str = "unknown"
    difficulty: Difficulty = Difficulty.MEDIUM

    @classmethod
    def fallback(cls) -> "RemediationPlan":
        """Plan returned when the generated solution cannot be parsed."""
        return cls(
            summary="Failed to parse the generated solution",
            steps=[],
            estimated_time="unknown",
            difficulty=Difficulty.HARD,
        )