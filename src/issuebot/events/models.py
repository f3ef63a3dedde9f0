"""Pipeline event models for observability.

Events are emitted at key points of issue processing and routed to logs
and Prometheus metrics. They never influence pipeline control flow.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the issue pipeline.

    Details Field Conventions:
        STATUS_TRANSITION: from_status, to_status
        ANALYSIS_COMPLETED: degraded, duration_seconds, type, priority
        AUTO_FIX_RESULT: outcome ("applied", "failed" or "rejected"),
            pr_number, reasons
        RATE_LIMITED: channel ("issues" or "comment")
        ERROR: stage, error_type, error_message
    """

    STATUS_TRANSITION = "status_transition"
    ANALYSIS_COMPLETED = "analysis_completed"
    AUTO_FIX_RESULT = "auto_fix_result"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


class PipelineEvent(BaseModel):
    """Structured event emitted by the issue pipeline.

    Attributes:
        event_type: The category of event.
        issue_id: Canonical identifier in format "{owner}/{repo}#{number}".
        repository: Full repository path in format "{owner}/{repo}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    issue_id: str = Field(
        ...,
        min_length=1,
        description='Canonical issue identifier in format "{owner}/{repo}#{number}"',
    )

    repository: str = Field(
        ...,
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging.

        Example:
            >>> PipelineEvent(
            ...     event_type=EventType.ERROR,
            ...     issue_id="org/repo#123",
            ...     repository="org/repo",
            ... ).to_log_dict()["event_type"]
            'error'
        """
        return {
            "event_type": self.event_type.value,
            "issue_id": self.issue_id,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
