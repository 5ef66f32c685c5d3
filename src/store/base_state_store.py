# src/store/base_state_store.py — v1
"""Abstract state store interface for batch and page entities.

Every status change is a conditional transition: it is applied only if
the entity's current status is one of ``from_statuses`` at write time,
and reports whether it was applied. Counters are only ever changed by
relative increments. Together these let pause/resume/cancel requests and
dashboard readers run concurrently with the processing loop without locks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from a11ybatch.core.models import (
    BatchPage,
    BatchSession,
    BatchStatus,
    PageStatus,
    Violation,
    ViolationRecord,
)

# Timestamps written at most once; later transitions keep the first value.
SET_ONCE_FIELDS: frozenset[str] = frozenset({"started_at", "completed_at"})

BATCH_TRANSITION_FIELDS: frozenset[str] = frozenset(
    {"started_at", "paused_at", "completed_at"}
)
PAGE_TRANSITION_FIELDS: frozenset[str] = frozenset(
    {"started_at", "completed_at", "scan_reference", "violation_count", "error_message"}
)


class StateStoreError(Exception):
    """The state store is unreachable or failed to apply an operation."""


def check_fields(fields: dict[str, Any], allowed: frozenset[str]) -> None:
    """Reject auxiliary transition fields a backend must never write."""
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Fields not allowed in transition: {sorted(unknown)}")


class BaseStateStore(ABC):
    """Unified interface for batch state backends."""

    @abstractmethod
    async def create_batch(self, batch: BatchSession, pages: list[BatchPage]) -> None:
        """Persist a new batch together with all of its pages."""

    @abstractmethod
    async def get_batch(self, batch_id: str) -> BatchSession | None:
        """Read a batch by id."""

    @abstractmethod
    async def list_batches(
        self, owner_id: str, limit: int = 20, offset: int = 0,
    ) -> tuple[list[BatchSession], int]:
        """List an owner's batches, newest first. Returns (page, total)."""

    @abstractmethod
    async def get_page(self, page_id: str) -> BatchPage | None:
        """Read a page by id."""

    @abstractmethod
    async def list_pages(
        self, batch_id: str, status: PageStatus | None = None,
    ) -> list[BatchPage]:
        """List a batch's pages in creation order, optionally filtered by status."""

    @abstractmethod
    async def transition_batch(
        self,
        batch_id: str,
        from_statuses: Iterable[BatchStatus],
        to_status: BatchStatus,
        **fields: Any,
    ) -> bool:
        """Atomically move a batch to ``to_status`` if its status is in ``from_statuses``."""

    @abstractmethod
    async def transition_page(
        self,
        page_id: str,
        from_statuses: Iterable[PageStatus],
        to_status: PageStatus,
        **fields: Any,
    ) -> bool:
        """Atomically move a page to ``to_status`` if its status is in ``from_statuses``."""

    @abstractmethod
    async def skip_open_pages(self, batch_id: str, completed_at: Any) -> int:
        """Mark every pending/running page of a batch as skipped. Returns count."""

    @abstractmethod
    async def increment_counters(
        self,
        batch_id: str,
        completed: int = 0,
        failed: int = 0,
        violations: int = 0,
    ) -> None:
        """Add signed deltas to the batch counters."""

    @abstractmethod
    async def save_violations(
        self, batch_id: str, page_id: str, violations: list[Violation],
    ) -> None:
        """Record violation details found on a page."""

    @abstractmethod
    async def list_violations(self, batch_id: str) -> list[ViolationRecord]:
        """All violation records of a batch."""

    def close(self) -> None:  # noqa: B027
        """Release backend resources."""
