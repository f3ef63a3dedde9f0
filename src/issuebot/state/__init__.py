"""Issue records, status transitions and persistence.

Statuses:
- pending → analyzing → analyzed → auto_fixing → fixed | manual_required
- fixed → closed when the auto-fix pull request is merged
- error from any working state

Records are persisted in memory or in PostgreSQL; every write is an upsert
keyed by issue identity.
"""

from src.issuebot.state.models import (
    ActionLogEntry,
    IssueRecord,
    ProcessingStatus,
    VALID_TRANSITIONS,
    is_valid_transition,
    make_issue_key,
)
from src.issuebot.state.machine import (
    InvalidTransitionError,
    RecordNotFoundError,
    StatusMachine,
)
from src.issuebot.state.store import (
    InMemoryIssueStore,
    IssueStore,
    StoreError,
)
from src.issuebot.state.postgres import PostgresIssueStore

__all__ = [
    # Models
    "ActionLogEntry",
    "IssueRecord",
    "ProcessingStatus",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "make_issue_key",
    # State machine
    "InvalidTransitionError",
    "RecordNotFoundError",
    "StatusMachine",
    # Stores
    "InMemoryIssueStore",
    "IssueStore",
    "PostgresIssueStore",
    "StoreError",
]
