# src/store/sqlite_store.py — v1
"""SQLite-based state store (STATE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. Status transitions are single
``UPDATE ... WHERE status IN (...)`` statements whose rowcount tells whether
the precondition held; counters use ``col = col + ?``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from a11ybatch.core.models import (
    OPEN_PAGE_STATUSES,
    BatchPage,
    BatchSession,
    BatchStatus,
    PageStatus,
    Violation,
    ViolationRecord,
)
from a11ybatch.store.base_state_store import (
    BATCH_TRANSITION_FIELDS,
    PAGE_TRANSITION_FIELDS,
    SET_ONCE_FIELDS,
    BaseStateStore,
    StateStoreError,
    check_fields,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS batch_sessions (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    org_id TEXT NOT NULL,
    name TEXT,
    sitemap_url TEXT,
    viewport TEXT NOT NULL,
    status TEXT NOT NULL,
    total_pages INTEGER NOT NULL,
    completed_pages INTEGER NOT NULL DEFAULT 0,
    failed_pages INTEGER NOT NULL DEFAULT 0,
    total_violations INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    started_at TEXT,
    paused_at TEXT,
    completed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_batch_owner ON batch_sessions(owner_id, created_at);

CREATE TABLE IF NOT EXISTS batch_pages (
    id TEXT PRIMARY KEY,
    batch_id TEXT NOT NULL REFERENCES batch_sessions(id) ON DELETE CASCADE,
    url TEXT NOT NULL,
    position INTEGER NOT NULL,
    status TEXT NOT NULL,
    scan_reference TEXT,
    violation_count INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,
    UNIQUE (batch_id, url)
);
CREATE INDEX IF NOT EXISTS idx_page_batch_status ON batch_pages(batch_id, status, position);

CREATE TABLE IF NOT EXISTS violations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    batch_id TEXT NOT NULL,
    page_id TEXT NOT NULL REFERENCES batch_pages(id) ON DELETE CASCADE,
    rule_id TEXT NOT NULL,
    impact TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    selector TEXT,
    html TEXT
);
CREATE INDEX IF NOT EXISTS idx_violation_batch ON violations(batch_id);
"""

_BATCH_COLUMNS = (
    "id", "owner_id", "org_id", "name", "sitemap_url", "viewport", "status",
    "total_pages", "completed_pages", "failed_pages", "total_violations",
    "created_at", "started_at", "paused_at", "completed_at",
)
_PAGE_COLUMNS = (
    "id", "batch_id", "url", "position", "status", "scan_reference",
    "violation_count", "error_message", "created_at", "started_at", "completed_at",
)


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


class SqliteStateStore(BaseStateStore):
    """SQLite-backed state store; survives process restarts."""

    def __init__(self, db_path: Path | str) -> None:
        if str(db_path) == ":memory:":
            target = ":memory:"
        else:
            path = Path(db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            target = str(path)
        self._db_path = target
        try:
            self._conn = sqlite3.connect(target)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StateStoreError(f"Cannot open state database {target}: {e}") from e

    def _query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StateStoreError(f"State store query failed: {e}") from e

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one write statement in its own transaction; returns rowcount."""
        try:
            with self._conn:
                return self._conn.execute(sql, params).rowcount
        except sqlite3.Error as e:
            raise StateStoreError(f"State store operation failed: {e}") from e

    async def create_batch(self, batch: BatchSession, pages: list[BatchPage]) -> None:
        batch_row = batch.model_dump()
        try:
            with self._conn:
                self._conn.execute(
                    f"INSERT INTO batch_sessions ({', '.join(_BATCH_COLUMNS)}) "
                    f"VALUES ({_placeholders(len(_BATCH_COLUMNS))})",
                    [_to_db(batch_row[c]) for c in _BATCH_COLUMNS],
                )
                self._conn.executemany(
                    f"INSERT INTO batch_pages ({', '.join(_PAGE_COLUMNS)}) "
                    f"VALUES ({_placeholders(len(_PAGE_COLUMNS))})",
                    [
                        [_to_db(row[c]) for c in _PAGE_COLUMNS]
                        for row in (p.model_dump() for p in pages)
                    ],
                )
        except sqlite3.Error as e:
            raise StateStoreError(f"Failed to create batch {batch.id}: {e}") from e
        logger.debug("Stored batch %s with %d pages", batch.id, len(pages))

    async def get_batch(self, batch_id: str) -> BatchSession | None:
        rows = self._query("SELECT * FROM batch_sessions WHERE id = ?", (batch_id,))
        return BatchSession(**dict(rows[0])) if rows else None

    async def list_batches(
        self, owner_id: str, limit: int = 20, offset: int = 0,
    ) -> tuple[list[BatchSession], int]:
        rows = self._query(
            "SELECT * FROM batch_sessions WHERE owner_id = ? "
            "ORDER BY created_at DESC LIMIT ? OFFSET ?",
            (owner_id, limit, offset),
        )
        total = self._query(
            "SELECT COUNT(*) FROM batch_sessions WHERE owner_id = ?", (owner_id,)
        )[0][0]
        return [BatchSession(**dict(r)) for r in rows], int(total)

    async def get_page(self, page_id: str) -> BatchPage | None:
        rows = self._query("SELECT * FROM batch_pages WHERE id = ?", (page_id,))
        return BatchPage(**dict(rows[0])) if rows else None

    async def list_pages(
        self, batch_id: str, status: PageStatus | None = None,
    ) -> list[BatchPage]:
        if status is None:
            rows = self._query(
                "SELECT * FROM batch_pages WHERE batch_id = ? ORDER BY position",
                (batch_id,),
            )
        else:
            rows = self._query(
                "SELECT * FROM batch_pages WHERE batch_id = ? AND status = ? "
                "ORDER BY position",
                (batch_id, status),
            )
        return [BatchPage(**dict(r)) for r in rows]

    def _transition(
        self,
        table: str,
        entity_id: str,
        from_statuses: Iterable[str],
        to_status: str,
        fields: dict[str, Any],
    ) -> bool:
        allowed = list(from_statuses)
        if not allowed:
            return False
        assignments = ["status = ?"]
        params: list[Any] = [to_status]
        for name, value in fields.items():
            # Column names come from the checked transition field sets.
            if name in SET_ONCE_FIELDS:
                assignments.append(f"{name} = COALESCE({name}, ?)")
            else:
                assignments.append(f"{name} = ?")
            params.append(_to_db(value))
        params.append(entity_id)
        params.extend(allowed)
        rowcount = self._execute(
            f"UPDATE {table} SET {', '.join(assignments)} "
            f"WHERE id = ? AND status IN ({_placeholders(len(allowed))})",
            params,
        )
        return rowcount == 1

    async def transition_batch(
        self,
        batch_id: str,
        from_statuses: Iterable[BatchStatus],
        to_status: BatchStatus,
        **fields: Any,
    ) -> bool:
        check_fields(fields, BATCH_TRANSITION_FIELDS)
        return self._transition("batch_sessions", batch_id, from_statuses, to_status, fields)

    async def transition_page(
        self,
        page_id: str,
        from_statuses: Iterable[PageStatus],
        to_status: PageStatus,
        **fields: Any,
    ) -> bool:
        check_fields(fields, PAGE_TRANSITION_FIELDS)
        return self._transition("batch_pages", page_id, from_statuses, to_status, fields)

    async def skip_open_pages(self, batch_id: str, completed_at: Any) -> int:
        return self._execute(
            "UPDATE batch_pages SET status = 'skipped', "
            "completed_at = COALESCE(completed_at, ?) "
            f"WHERE batch_id = ? AND status IN ({_placeholders(len(OPEN_PAGE_STATUSES))})",
            (_to_db(completed_at), batch_id, *OPEN_PAGE_STATUSES),
        )

    async def increment_counters(
        self,
        batch_id: str,
        completed: int = 0,
        failed: int = 0,
        violations: int = 0,
    ) -> None:
        self._execute(
            "UPDATE batch_sessions SET "
            "completed_pages = completed_pages + ?, "
            "failed_pages = failed_pages + ?, "
            "total_violations = total_violations + ? "
            "WHERE id = ?",
            (completed, failed, violations, batch_id),
        )

    async def save_violations(
        self, batch_id: str, page_id: str, violations: list[Violation],
    ) -> None:
        if not violations:
            return
        try:
            with self._conn:
                self._conn.executemany(
                    "INSERT INTO violations "
                    "(batch_id, page_id, rule_id, impact, description, selector, html) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    [
                        (batch_id, page_id, v.rule_id, v.impact, v.description,
                         v.selector, v.html)
                        for v in violations
                    ],
                )
        except sqlite3.Error as e:
            raise StateStoreError(f"Failed to save violations for page {page_id}: {e}") from e

    async def list_violations(self, batch_id: str) -> list[ViolationRecord]:
        rows = self._query(
            "SELECT batch_id, page_id, rule_id, impact, description, selector, html "
            "FROM violations WHERE batch_id = ? ORDER BY id",
            (batch_id,),
        )
        return [ViolationRecord(**dict(r)) for r in rows]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
