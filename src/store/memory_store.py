# src/store/memory_store.py — v1
"""In-process state store (STATE_BACKEND=memory).

No method awaits between reading and writing an entity, so each call is
atomic with respect to other tasks on the same event loop. State is lost
when the process exits; intended for tests and single-run CLI usage.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
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
    check_fields,
)

logger = logging.getLogger(__name__)


class InMemoryStateStore(BaseStateStore):
    """Dict-backed state store."""

    def __init__(self) -> None:
        self._batches: dict[str, BatchSession] = {}
        self._pages: dict[str, BatchPage] = {}
        self._batch_pages: dict[str, list[str]] = {}
        self._violations: dict[str, list[ViolationRecord]] = {}

    async def create_batch(self, batch: BatchSession, pages: list[BatchPage]) -> None:
        if batch.id in self._batches:
            raise ValueError(f"Batch already exists: {batch.id}")
        self._batches[batch.id] = batch.model_copy(deep=True)
        ordered = sorted(pages, key=lambda p: p.position)
        for page in ordered:
            self._pages[page.id] = page.model_copy(deep=True)
        self._batch_pages[batch.id] = [p.id for p in ordered]
        self._violations[batch.id] = []

    async def get_batch(self, batch_id: str) -> BatchSession | None:
        batch = self._batches.get(batch_id)
        return batch.model_copy() if batch is not None else None

    async def list_batches(
        self, owner_id: str, limit: int = 20, offset: int = 0,
    ) -> tuple[list[BatchSession], int]:
        owned = [b for b in self._batches.values() if b.owner_id == owner_id]
        owned.sort(key=lambda b: b.created_at, reverse=True)
        return [b.model_copy() for b in owned[offset:offset + limit]], len(owned)

    async def get_page(self, page_id: str) -> BatchPage | None:
        page = self._pages.get(page_id)
        return page.model_copy() if page is not None else None

    async def list_pages(
        self, batch_id: str, status: PageStatus | None = None,
    ) -> list[BatchPage]:
        pages = [self._pages[pid] for pid in self._batch_pages.get(batch_id, [])]
        if status is not None:
            pages = [p for p in pages if p.status == status]
        return [p.model_copy() for p in pages]

    async def transition_batch(
        self,
        batch_id: str,
        from_statuses: Iterable[BatchStatus],
        to_status: BatchStatus,
        **fields: Any,
    ) -> bool:
        check_fields(fields, BATCH_TRANSITION_FIELDS)
        batch = self._batches.get(batch_id)
        if batch is None or batch.status not in set(from_statuses):
            return False
        batch.status = to_status
        _apply_fields(batch, fields)
        return True

    async def transition_page(
        self,
        page_id: str,
        from_statuses: Iterable[PageStatus],
        to_status: PageStatus,
        **fields: Any,
    ) -> bool:
        check_fields(fields, PAGE_TRANSITION_FIELDS)
        page = self._pages.get(page_id)
        if page is None or page.status not in set(from_statuses):
            return False
        page.status = to_status
        _apply_fields(page, fields)
        return True

    async def skip_open_pages(self, batch_id: str, completed_at: Any) -> int:
        skipped = 0
        for page_id in self._batch_pages.get(batch_id, []):
            page = self._pages[page_id]
            if page.status in OPEN_PAGE_STATUSES:
                page.status = "skipped"
                _apply_fields(page, {"completed_at": completed_at})
                skipped += 1
        return skipped

    async def increment_counters(
        self,
        batch_id: str,
        completed: int = 0,
        failed: int = 0,
        violations: int = 0,
    ) -> None:
        batch = self._batches.get(batch_id)
        if batch is None:
            logger.warning("increment_counters on unknown batch %s", batch_id)
            return
        batch.completed_pages += completed
        batch.failed_pages += failed
        batch.total_violations += violations

    async def save_violations(
        self, batch_id: str, page_id: str, violations: list[Violation],
    ) -> None:
        records = self._violations.setdefault(batch_id, [])
        for v in violations:
            records.append(
                ViolationRecord(batch_id=batch_id, page_id=page_id, **v.model_dump())
            )

    async def list_violations(self, batch_id: str) -> list[ViolationRecord]:
        return [r.model_copy() for r in self._violations.get(batch_id, [])]


def _apply_fields(entity: BatchSession | BatchPage, fields: dict[str, Any]) -> None:
    for name, value in fields.items():
        if name in SET_ONCE_FIELDS and getattr(entity, name) is not None:
            continue
        setattr(entity, name, value)
