"""Issue record and processing-status models.

This module defines the persisted state of the issue pipeline:
- ProcessingStatus: Enum of all processing states
- IssueRecord: One record per (repository, issue number)
- ActionLogEntry: Append-only audit entry for an issue
- VALID_TRANSITIONS: Map defining allowed status transitions
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.issuebot.analysis.models import Classification, RemediationPlan


def make_issue_key(repository: str, issue_number: int) -> str:
    """Build the canonical identity string "{owner}/{repo}#{number}"."""
    return f"{repository}#{issue_number}"


class ProcessingStatus(str, Enum):
    """Processing states an issue moves through.

    Status Flow:
        pending → analyzing → analyzed → auto_fixing → fixed → closed
                                                     ↘ manual_required

    Any working state can fall into 'error'. Explicit bot commands may
    re-enter 'analyzing' or 'auto_fixing' from any settled state.
    """

    PENDING = "pending"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    AUTO_FIXING = "auto_fixing"
    FIXED = "fixed"
    MANUAL_REQUIRED = "manual_required"
    CLOSED = "closed"
    ERROR = "error"


class IssueRecord(BaseModel):
    """Persisted state of one issue.

    Attributes:
        repository: Full repository path in format "{owner}/{repo}".
        issue_number: Issue number within the repository.
        title: Issue title at the time of the last analysis.
        body: Issue body at the time of the last analysis.
        classification: Most recent classification.
        solution: Most recent remediation plan, if one was generated.
        status: Current processing status.
        created_at: When the record was first written (UTC).
        updated_at: When the record was last written (UTC).
        processed_at: When an auto-fix attempt last finished (UTC).
        auto_fix_attempted: Whether an auto-fix was ever attempted.
        auto_fix_successful: Outcome of the last auto-fix attempt.
    """

    repository: str = Field(
        ...,
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    issue_number: int = Field(..., gt=0, description="Issue number")

    title: str = Field(default="", description="Issue title")

    body: str = Field(default="", description="Issue body")

    classification: Classification = Field(
        ...,
        description="Most recent classification of the issue",
    )

    solution: Optional[RemediationPlan] = Field(
        default=None,
        description="Most recent remediation plan",
    )

    status: ProcessingStatus = Field(
        default=ProcessingStatus.ANALYZED,
        description="Current processing status",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    processed_at: Optional[datetime] = None

    auto_fix_attempted: bool = False

    auto_fix_successful: Optional[bool] = None

    @property
    def key(self) -> str:
        return make_issue_key(self.repository, self.issue_number)


class ActionLogEntry(BaseModel):
    """Append-only audit entry. Never mutated after it is written."""

    model_config = {"frozen": True}

    issue_key: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


# Valid status transitions map
#
# - Every working state can fall into ERROR
# - ANALYZING and AUTO_FIXING are re-enterable from settled states, which
#   is how explicit commands restart the pipeline
# - CLOSED is reached only from FIXED (merged auto-fix pull request)
VALID_TRANSITIONS: Dict[ProcessingStatus, List[ProcessingStatus]] = {
    ProcessingStatus.PENDING: [
        ProcessingStatus.ANALYZING,
        ProcessingStatus.ERROR,
    ],
    ProcessingStatus.ANALYZING: [
        ProcessingStatus.ANALYZED,
        ProcessingStatus.ERROR,
    ],
    ProcessingStatus.ANALYZED: [
        ProcessingStatus.ANALYZING,
        ProcessingStatus.AUTO_FIXING,
        ProcessingStatus.ERROR,
    ],
    ProcessingStatus.AUTO_FIXING: [
        ProcessingStatus.FIXED,
        ProcessingStatus.MANUAL_REQUIRED,
        ProcessingStatus.ERROR,
    ],
    ProcessingStatus.FIXED: [
        ProcessingStatus.CLOSED,
        ProcessingStatus.ANALYZING,
        ProcessingStatus.AUTO_FIXING,
    ],
    # A human may merge a manually-finished fix branch
    ProcessingStatus.MANUAL_REQUIRED: [
        ProcessingStatus.ANALYZING,
        ProcessingStatus.AUTO_FIXING,
        ProcessingStatus.FIXED,
        ProcessingStatus.ERROR,
    ],
    ProcessingStatus.ERROR: [
        ProcessingStatus.ANALYZING,
        ProcessingStatus.AUTO_FIXING,
    ],
    ProcessingStatus.CLOSED: [
        ProcessingStatus.ANALYZING,
    ],
}


def is_valid_transition(
    from_status: ProcessingStatus,
    to_status: ProcessingStatus,
) -> bool:
    """Check whether moving from one status to another is allowed."""
    return to_status in VALID_TRANSITIONS.get(from_status, [])
