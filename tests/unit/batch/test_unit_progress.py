# tests/unit/batch/test_unit_progress.py — v1
"""Tests for batch/progress.py — completion percentage and ETA."""

from __future__ import annotations

import pytest

from a11ybatch.batch.progress import calculate_progress, progress_from_batch
from a11ybatch.core.models import BatchSession


class TestProgressFromBatch:
    def test_remaining_pages_times_constant(self):
        batch = BatchSession(owner_id="o", total_pages=10, completed_pages=3, failed_pages=2,
                             total_violations=7)
        progress = progress_from_batch(batch, seconds_per_page=30)
        assert progress.estimated_time_remaining == 150
        assert progress.percent_complete == 50.0
        assert progress.total_violations == 7

    def test_finished(self):
        batch = BatchSession(owner_id="o", total_pages=2, completed_pages=1, failed_pages=1)
        progress = progress_from_batch(batch)
        assert progress.estimated_time_remaining == 0
        assert progress.percent_complete == 100.0

    def test_empty_batch(self):
        progress = progress_from_batch(BatchSession(owner_id="o", total_pages=0))
        assert progress.percent_complete == 0.0
        assert progress.estimated_time_remaining == 0


class TestCalculateProgress:
    @pytest.mark.asyncio
    async def test_reads_store(self, store, make_batch):
        batch, _ = await make_batch(["https://e.com/a", "https://e.com/b", "https://e.com/c"])
        await store.increment_counters(batch.id, completed=1, violations=4)
        progress = await calculate_progress(store, batch.id, seconds_per_page=20)
        assert progress.completed_pages == 1
        assert progress.total_pages == 3
        assert progress.estimated_time_remaining == 40

    @pytest.mark.asyncio
    async def test_missing_batch_is_zeroed(self, store):
        progress = await calculate_progress(store, "missing")
        assert progress.total_pages == 0
        assert progress.estimated_time_remaining == 0
