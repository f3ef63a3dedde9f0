"""PostgreSQL issue store.

This module implements the IssueStore protocol using asyncpg. It provides:
- Connection pooling
- Schema creation at startup (failure here is fatal to the service)
- Upserts keyed by issue identity (last write wins)
- An append-only issue_logs table for the audit trail
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

from src.issuebot.analysis.models import Classification, RemediationPlan
from src.issuebot.state.models import (
    ActionLogEntry,
    IssueRecord,
    ProcessingStatus,
    make_issue_key,
)
from src.issuebot.state.store import PENDING_STATUSES, StoreError


logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS issues (
    issue_key TEXT PRIMARY KEY,
    repository TEXT NOT NULL,
    issue_number INTEGER NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    body TEXT NOT NULL DEFAULT '',
    classification JSONB NOT NULL,
    solution JSONB,
    status TEXT NOT NULL,
    priority TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    processed_at TIMESTAMPTZ,
    auto_fix_attempted BOOLEAN NOT NULL DEFAULT FALSE,
    auto_fix_successful BOOLEAN
);

CREATE INDEX IF NOT EXISTS idx_issues_repository ON issues (repository);
CREATE INDEX IF NOT EXISTS idx_issues_status ON issues (status);

CREATE TABLE IF NOT EXISTS issue_logs (
    id BIGSERIAL PRIMARY KEY,
    issue_key TEXT NOT NULL,
    action TEXT NOT NULL,
    details JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_issue_logs_issue_key ON issue_logs (issue_key);
"""

_PRIORITY_CASE = """
    CASE priority
        WHEN 'urgent' THEN 1
        WHEN 'high' THEN 2
        WHEN 'medium' THEN 3
        ELSE 4
    END
"""


def _row_to_record(row: asyncpg.Record) -> IssueRecord:
    solution = row["solution"]
    return IssueRecord(
        repository=row["repository"],
        issue_number=row["issue_number"],
        title=row["title"],
        body=row["body"],
        classification=Classification.model_validate(json.loads(row["classification"])),
        solution=RemediationPlan.model_validate(json.loads(solution)) if solution else None,
        status=ProcessingStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        processed_at=row["processed_at"],
        auto_fix_attempted=row["auto_fix_attempted"],
        auto_fix_successful=row["auto_fix_successful"],
    )


class PostgresIssueStore:
    """PostgreSQL implementation of the IssueStore protocol.

    Example:
        >>> async with PostgresIssueStore("postgresql://...") as store:
        ...     record = await store.get("owner/repo#123")
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StoreError("Database pool not initialized. Call connect() first.")
        return self._pool

    async def connect(self) -> None:
        """Create the connection pool and make sure the schema exists.

        Raises:
            StoreError: If the database is unreachable or the schema
                cannot be created.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
            logger.info("PostgreSQL issue store ready")
        except Exception as e:
            logger.error(
                "Failed to initialize PostgreSQL issue store",
                extra={"error": str(e)},
            )
            raise StoreError(
                f"Failed to initialize PostgreSQL issue store: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresIssueStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def upsert(self, record: IssueRecord) -> IssueRecord:
        try:
            async with self._transaction() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO issues (
                        issue_key, repository, issue_number, title, body,
                        classification, solution, status, priority,
                        created_at, updated_at, processed_at,
                        auto_fix_attempted, auto_fix_successful
                    ) VALUES (
                        $1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8, $9,
                        $10, NOW(), $11, $12, $13
                    )
                    ON CONFLICT (issue_key) DO UPDATE SET
                        title = EXCLUDED.title,
                        body = EXCLUDED.body,
                        classification = EXCLUDED.classification,
                        solution = EXCLUDED.solution,
                        status = EXCLUDED.status,
                        priority = EXCLUDED.priority,
                        updated_at = NOW(),
                        processed_at = EXCLUDED.processed_at,
                        auto_fix_attempted = EXCLUDED.auto_fix_attempted,
                        auto_fix_successful = EXCLUDED.auto_fix_successful
                    RETURNING *
                    """,
                    record.key,
                    record.repository,
                    record.issue_number,
                    record.title,
                    record.body,
                    record.classification.model_dump_json(),
                    record.solution.model_dump_json() if record.solution else None,
                    record.status.value,
                    record.classification.priority.value,
                    record.created_at,
                    record.processed_at,
                    record.auto_fix_attempted,
                    record.auto_fix_successful,
                )
        except Exception as e:
            logger.error(
                "Failed to upsert issue record",
                extra={"issue_id": record.key, "error": str(e)},
            )
            raise StoreError(f"Failed to upsert issue record: {e}", original_error=e) from e

        logger.debug(
            "Upserted issue record",
            extra={"issue_id": record.key, "status": record.status.value},
        )
        return _row_to_record(row)

    async def get(self, key: str) -> Optional[IssueRecord]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM issues WHERE issue_key = $1",
                    key,
                )
        except Exception as e:
            raise StoreError(f"Failed to get issue record: {e}", original_error=e) from e
        return _row_to_record(row) if row else None

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
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM issues
                    WHERE repository = $1
                      AND ($2::text IS NULL OR status = $2)
                    ORDER BY created_at DESC
                    LIMIT $3 OFFSET $4
                    """,
                    repository,
                    status.value if status else None,
                    limit,
                    offset,
                )
        except Exception as e:
            raise StoreError(f"Failed to list issue records: {e}", original_error=e) from e
        return [_row_to_record(row) for row in rows]

    async def list_pending(self, limit: int = 10) -> List[IssueRecord]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT * FROM issues
                    WHERE status = ANY($1::text[])
                    ORDER BY {_PRIORITY_CASE}, created_at ASC
                    LIMIT $2
                    """,
                    [s.value for s in PENDING_STATUSES],
                    limit,
                )
        except Exception as e:
            raise StoreError(f"Failed to list pending issues: {e}", original_error=e) from e
        return [_row_to_record(row) for row in rows]

    async def update_status(self, key: str, status: ProcessingStatus) -> bool:
        try:
            async with self._transaction() as conn:
                result = await conn.execute(
                    """
                    UPDATE issues SET status = $2, updated_at = NOW()
                    WHERE issue_key = $1
                    """,
                    key,
                    status.value,
                )
        except Exception as e:
            logger.error(
                "Failed to update issue status",
                extra={"issue_id": key, "status": status.value, "error": str(e)},
            )
            raise StoreError(f"Failed to update issue status: {e}", original_error=e) from e
        # asyncpg returns "UPDATE <count>"
        return result.split()[-1] != "0"

    async def record_auto_fix_attempt(self, key: str, successful: bool) -> bool:
        try:
            async with self._transaction() as conn:
                result = await conn.execute(
                    """
                    UPDATE issues
                    SET auto_fix_attempted = TRUE,
                        auto_fix_successful = $2,
                        processed_at = NOW(),
                        updated_at = NOW()
                    WHERE issue_key = $1
                    """,
                    key,
                    successful,
                )
        except Exception as e:
            raise StoreError(
                f"Failed to record auto-fix attempt: {e}", original_error=e
            ) from e
        return result.split()[-1] != "0"

    async def append_log(
        self,
        key: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActionLogEntry:
        entry = ActionLogEntry(issue_key=key, action=action, details=dict(details or {}))
        try:
            async with self._transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO issue_logs (issue_key, action, details, created_at)
                    VALUES ($1, $2, $3::jsonb, $4)
                    """,
                    entry.issue_key,
                    entry.action,
                    json.dumps(entry.details, default=str),
                    entry.timestamp,
                )
        except Exception as e:
            logger.error(
                "Failed to append issue log",
                extra={"issue_id": key, "action": action, "error": str(e)},
            )
            raise StoreError(f"Failed to append issue log: {e}", original_error=e) from e
        return entry

    async def list_log(self, key: str) -> List[ActionLogEntry]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT issue_key, action, details, created_at
                    FROM issue_logs
                    WHERE issue_key = $1
                    ORDER BY created_at ASC, id ASC
                    """,
                    key,
                )
        except Exception as e:
            raise StoreError(f"Failed to list issue log: {e}", original_error=e) from e
        return [
            ActionLogEntry(
                issue_key=row["issue_key"],
                action=row["action"],
                details=json.loads(row["details"]) if row["details"] else {},
                timestamp=row["created_at"],
            )
            for row in rows
        ]

    async def health_check(self) -> bool:
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False
