"""Issue record persistence boundary.

This module defines the IssueStore protocol consumed by the orchestrator
and an in-memory implementation used for local runs and tests. The
PostgreSQL implementation lives in postgres.py.

Stores are passive: they hold no business logic and never validate status
transitions. Every write is an upsert keyed by issue identity, so the last
writer wins.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from src.issuebot.analysis.models import Priority
from src.issuebot.state.models import (
    ActionLogEntry,
    IssueRecord,
    ProcessingStatus,
    make_issue_key,
)


logger = logging.getLogger(__name__)


# Statuses that still need attention, in list_pending order of precedence
PENDING_STATUSES = (
    ProcessingStatus.PENDING,
    ProcessingStatus.ANALYZING,
    ProcessingStatus.ANALYZED,
)

PRIORITY_ORDER: Dict[Priority, int] = {
    Priority.URGENT: 1,
    Priority.HIGH: 2,
    Priority.MEDIUM: 3,
    Priority.LOW: 4,
}


class StoreError(Exception):
    """Raised when a persistence operation fails.

    Attributes:
        message: Human-readable error message.
        original_error: The underlying driver exception, if any.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


@runtime_checkable
class IssueStore(Protocol):
    """Protocol for issue record persistence."""

    async def upsert(self, record: IssueRecord) -> IssueRecord:
        """Insert or replace the record for its identity.

        The stored created_at of an existing record is preserved;
        updated_at is refreshed.
        """
        ...

    async def get(self, key: str) -> Optional[IssueRecord]:
        ...

    async def get_by_number(
        self, repository: str, issue_number: int
    ) -> Optional[IssueRecord]:
        ...

    async def list_by_repository(
        self,
        repository: str,
        status: Optional[ProcessingStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[IssueRecord]:
        """List records of one repository, newest first."""
        ...

    async def list_pending(self, limit: int = 10) -> List[IssueRecord]:
        """List unfinished records ordered by priority, then oldest first."""
        ...

    async def update_status(self, key: str, status: ProcessingStatus) -> bool:
        """Set the status of an existing record.

        Returns:
            True if a record was updated, False if none exists.
        """
        ...

    async def record_auto_fix_attempt(self, key: str, successful: bool) -> bool:
        ...

    async def append_log(
        self,
        key: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActionLogEntry:
        ...

    async def list_log(self, key: str) -> List[ActionLogEntry]:
        """Return the action log of an issue, oldest first."""
        ...

    async def health_check(self) -> bool:
        ...


def pending_sort_key(record: IssueRecord):
    return (PRIORITY_ORDER.get(record.classification.priority, 5), record.created_at)


class InMemoryIssueStore:
    """Dictionary-backed IssueStore.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._records: Dict[str, IssueRecord] = {}
        self._logs: Dict[str, List[ActionLogEntry]] = {}

    async def upsert(self, record: IssueRecord) -> IssueRecord:
        now = datetime.now(timezone.utc)
        existing = self._records.get(record.key)
        update: Dict[str, Any] = {"updated_at": now}
        if existing is not None:
            update["created_at"] = existing.created_at
        stored = record.model_copy(update=update, deep=True)
        self._records[record.key] = stored
        logger.debug(
            "Upserted issue record",
            extra={"issue_id": record.key, "status": stored.status.value},
        )
        return stored.model_copy(deep=True)

    async def get(self, key: str) -> Optional[IssueRecord]:
        record = self._records.get(key)
        return record.model_copy(deep=True) if record else None

    async def get_by_number(
        self, repository: str, issue_number: int
    ) -> Optional[IssueRecord]:
        return await self.get(make_issue_key(repository, issue_number))

    async def list_by_repository(
        self,
        repository: str,
        status: Optional[ProcessingStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[IssueRecord]:
        records = [
            r for r in self._records.values()
            if r.repository == repository and (status is None or r.status == status)
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in records[offset:offset + limit]]

    async def list_pending(self, limit: int = 10) -> List[IssueRecord]:
        records = [r for r in self._records.values() if r.status in PENDING_STATUSES]
        records.sort(key=pending_sort_key)
        return [r.model_copy(deep=True) for r in records[:limit]]

    async def update_status(self, key: str, status: ProcessingStatus) -> bool:
        record = self._records.get(key)
        if record is None:
            return False
        self._records[key] = record.model_copy(
            update={"status": status, "updated_at": datetime.now(timezone.utc)}
        )
        return True

    async def record_auto_fix_attempt(self, key: str, successful: bool) -> bool:
        record = self._records.get(key)
        if record is None:
            return False
        now = datetime.now(timezone.utc)
        self._records[key] = record.model_copy(
            update={
                "auto_fix_attempted": True,
                "auto_fix_successful": successful,
                "processed_at": now,
                "updated_at": now,
            }
        )
        return True

    async def append_log(
        self,
        key: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActionLogEntry:
        entry = ActionLogEntry(issue_key=key, action=action, details=dict(details or {}))
        self._logs.setdefault(key, []).append(entry)
        return entry

    async def list_log(self, key: str) -> List[ActionLogEntry]:
        return list(self._logs.get(key, []))

    async def health_check(self) -> bool:
        return True
