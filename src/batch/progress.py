# src/batch/progress.py — v1
"""Progress calculator: completion percentage and time-remaining estimate.

The estimate uses a fixed seconds-per-page constant (configurable via
SECONDS_PER_PAGE_ESTIMATE), not an observed average.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from a11ybatch.core.models import BatchProgress, BatchSession

if TYPE_CHECKING:
    from a11ybatch.store.base_state_store import BaseStateStore

DEFAULT_SECONDS_PER_PAGE = 30


def progress_from_batch(
    batch: BatchSession, seconds_per_page: int = DEFAULT_SECONDS_PER_PAGE,
) -> BatchProgress:
    """Derive progress from one batch snapshot."""
    remaining = max(batch.total_pages - batch.completed_pages - batch.failed_pages, 0)
    percent = (
        round(100.0 * (batch.total_pages - remaining) / batch.total_pages, 1)
        if batch.total_pages
        else 0.0
    )
    return BatchProgress(
        completed_pages=batch.completed_pages,
        total_pages=batch.total_pages,
        failed_pages=batch.failed_pages,
        total_violations=batch.total_violations,
        estimated_time_remaining=remaining * seconds_per_page,
        percent_complete=percent,
    )


async def calculate_progress(
    store: BaseStateStore,
    batch_id: str,
    seconds_per_page: int = DEFAULT_SECONDS_PER_PAGE,
) -> BatchProgress:
    """Read current counters; zeroed progress if the batch does not exist."""
    batch = await store.get_batch(batch_id)
    if batch is None:
        return BatchProgress()
    return progress_from_batch(batch, seconds_per_page)
