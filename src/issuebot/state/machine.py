"""Processing-status state machine.

The orchestrator is the only writer of status transitions and performs
them exclusively through StatusMachine, which validates each move against
VALID_TRANSITIONS and records it in the issue's action log.
"""

import logging
from typing import Any, Dict, Optional

from src.issuebot.state.models import (
    IssueRecord,
    ProcessingStatus,
    is_valid_transition,
)
from src.issuebot.state.store import IssueStore


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when a status transition is not allowed.

    Attributes:
        from_status: The current status.
        to_status: The attempted target status.
    """

    def __init__(
        self,
        from_status: ProcessingStatus,
        to_status: ProcessingStatus,
        message: Optional[str] = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.message = message or (
            f"Invalid transition from {from_status.value} to {to_status.value}"
        )
        super().__init__(self.message)


class RecordNotFoundError(Exception):
    """Raised when transitioning an issue that has no stored record."""

    def __init__(self, issue_key: str):
        self.issue_key = issue_key
        super().__init__(f"Issue record not found: {issue_key}")


class StatusMachine:
    """Validated status transitions on top of an IssueStore.

    Example:
        >>> machine = StatusMachine(InMemoryIssueStore())
        >>> record = await machine.transition(
        ...     "owner/repo#123",
        ...     ProcessingStatus.AUTO_FIXING,
        ... )
    """

    def __init__(self, store: IssueStore):
        self.store = store

    async def transition(
        self,
        issue_key: str,
        to_status: ProcessingStatus,
        details: Optional[Dict[str, Any]] = None,
    ) -> IssueRecord:
        """Move an issue to a new status.

        A transition to the status the record already has is a no-op and
        is not logged.

        Args:
            issue_key: Canonical issue identifier.
            to_status: Target status.
            details: Extra metadata stored in the action log entry.

        Returns:
            The record with its new status.

        Raises:
            RecordNotFoundError: If no record exists for the issue.
            InvalidTransitionError: If the move is not allowed.
            StoreError: If persistence fails.
        """
        record = await self.store.get(issue_key)
        if record is None:
            raise RecordNotFoundError(issue_key)

        from_status = record.status
        if from_status == to_status:
            return record

        if not is_valid_transition(from_status, to_status):
            logger.warning(
                "Invalid status transition attempted",
                extra={
                    "issue_id": issue_key,
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                },
            )
            raise InvalidTransitionError(from_status, to_status)

        logger.info(
            "Transitioning issue status",
            extra={
                "issue_id": issue_key,
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )

        if not await self.store.update_status(issue_key, to_status):
            raise RecordNotFoundError(issue_key)

        await self.store.append_log(
            issue_key,
            "status_transition",
            {
                "from_status": from_status.value,
                "to_status": to_status.value,
                **(details or {}),
            },
        )
        return record.model_copy(update={"status": to_status})
