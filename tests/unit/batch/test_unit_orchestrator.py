# tests/unit/batch/test_unit_orchestrator.py — v1
"""Tests for batch/orchestrator.py — processing loop and control operations."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from a11ybatch.batch.orchestrator import BatchOrchestrator, OrchestratorConfig
from a11ybatch.batch.retry import RetryConfig
from a11ybatch.config.settings import Settings
from a11ybatch.store.base_state_store import StateStoreError

URLS = ["https://example.com/1", "https://example.com/2", "https://example.com/3"]


def _types(notifier, batch_id):
    return [e.type for e in notifier.history(batch_id)]


class TestOrchestratorConfig:
    def test_from_settings(self):
        settings = Settings(
            _env_file=None, inter_page_delay_s=2.0, max_attempts=4,
            rate_limit_retry_delay_s=20.0, transient_retry_delay_s=3.0,
            seconds_per_page_estimate=45,
        )
        config = OrchestratorConfig.from_settings(settings)
        assert config.inter_page_delay_s == 2.0
        assert config.retry == RetryConfig(4, 20.0, 3.0)
        assert config.seconds_per_page == 45

    def test_defaults(self):
        config = OrchestratorConfig()
        assert config.inter_page_delay_s == 10.0
        assert config.retry.max_attempts == 3


class TestProcessBatch:
    @pytest.mark.asyncio
    async def test_all_pages_succeed(self, orchestrator, store, scanner, notifier, make_batch, outcomes):
        batch, _ = await make_batch(URLS)
        scanner.script(URLS[0], outcomes.success(count=2, rule_id="image-alt", impact="critical"))
        scanner.script(URLS[1], outcomes.success(count=0))
        scanner.script(URLS[2], outcomes.success(count=1, rule_id="label", impact="minor"))

        status = await orchestrator.process_batch(batch.id)

        assert status == "completed"
        loaded = await store.get_batch(batch.id)
        assert loaded.status == "completed"
        assert (loaded.completed_pages, loaded.failed_pages, loaded.total_violations) == (3, 0, 3)
        assert loaded.started_at is not None and loaded.completed_at is not None
        assert [url for url, _ in scanner.calls] == URLS
        assert _types(notifier, batch.id) == [
            "batch:started",
            "batch:page_started", "batch:page_complete",
            "batch:page_started", "batch:page_complete",
            "batch:page_started", "batch:page_complete",
            "batch:completed",
        ]
        completed = notifier.history(batch.id)[-1]
        assert completed.summary.successful_pages == 3
        assert completed.summary.violations_by_rule == {"image-alt": 2, "label": 1}

    @pytest.mark.asyncio
    async def test_page_failure_does_not_fail_batch(
        self, orchestrator, store, scanner, notifier, make_batch, outcomes,
    ):
        batch, _ = await make_batch(URLS)
        scanner.script(URLS[1], outcomes.failure("ACCESS_DENIED"))

        status = await orchestrator.process_batch(batch.id)

        assert status == "completed"
        loaded = await store.get_batch(batch.id)
        assert (loaded.completed_pages, loaded.failed_pages) == (2, 1)
        assert "batch:page_failed" in _types(notifier, batch.id)

    @pytest.mark.asyncio
    async def test_missing_batch(self, orchestrator):
        assert await orchestrator.process_batch("missing") is None

    @pytest.mark.asyncio
    async def test_terminal_batch_not_reprocessed(self, orchestrator, store, scanner, notifier, make_batch):
        batch, _ = await make_batch(URLS)
        await store.transition_batch(batch.id, ("pending",), "cancelled")
        assert await orchestrator.process_batch(batch.id) == "cancelled"
        assert scanner.calls == []
        assert notifier.history(batch.id) == []

    @pytest.mark.asyncio
    async def test_page_index_continues_after_processed(
        self, orchestrator, store, notifier, make_batch,
    ):
        batch, pages = await make_batch(URLS)
        await store.transition_page(pages[0].id, ("pending",), "completed")
        await store.increment_counters(batch.id, completed=1)

        await orchestrator.process_batch(batch.id)

        indexes = [e.page_index for e in notifier.history(batch.id) if e.type == "batch:page_started"]
        assert indexes == [1, 2]

    @pytest.mark.asyncio
    async def test_inter_page_delay(self, store, scanner, notifier, make_batch):
        batch, _ = await make_batch(URLS)
        orchestrator = BatchOrchestrator(
            store, scanner, notifier, config=OrchestratorConfig(inter_page_delay_s=10.0),
        )
        with patch("a11ybatch.batch.orchestrator.asyncio.sleep", new=AsyncMock()) as sleep:
            await orchestrator.process_batch(batch.id)
        assert [c.args[0] for c in sleep.await_args_list] == [10.0, 10.0]

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, orchestrator, store, make_batch):
        batch, _ = await make_batch(URLS)
        store.list_pages = AsyncMock(side_effect=StateStoreError("db gone"))
        with pytest.raises(StateStoreError):
            await orchestrator.process_batch(batch.id)

    @pytest.mark.asyncio
    async def test_supervised_store_failure_marks_error(self, orchestrator, store, notifier, make_batch):
        batch, _ = await make_batch(URLS)
        original = store.increment_counters
        store.increment_counters = AsyncMock(side_effect=StateStoreError("db gone"))

        await orchestrator.start(batch.id)

        store.increment_counters = original
        loaded = await store.get_batch(batch.id)
        assert loaded.status == "error"
        assert "batch:completed" not in _types(notifier, batch.id)

    @pytest.mark.asyncio
    async def test_batches_run_concurrently(self, store, scanner, notifier, make_batch):
        first, _ = await make_batch(["https://a.example/1", "https://a.example/2"])
        second, _ = await make_batch(["https://b.example/1", "https://b.example/2"])
        orchestrator = BatchOrchestrator(
            store, scanner, notifier, config=OrchestratorConfig(inter_page_delay_s=0.01),
        )
        await asyncio.gather(orchestrator.start(first.id), orchestrator.start(second.id))

        order = [url for url, _ in scanner.calls]
        assert order.index("https://b.example/1") < order.index("https://a.example/2")
        for batch in (first, second):
            assert (await store.get_batch(batch.id)).status == "completed"


class TestPause:
    @pytest.mark.asyncio
    async def test_pause_mid_scan_then_resume(self, orchestrator, store, scanner, notifier, make_batch):
        batch, pages = await make_batch(URLS)
        results = []

        async def pause_during_first(url):
            if url == URLS[0]:
                results.append(await orchestrator.pause(batch.id))

        scanner.on_scan = pause_during_first
        status = await orchestrator.process_batch(batch.id)

        assert status == "paused"
        assert results[0].success is True
        assert results[0].message == "Batch paused successfully"
        paused = await store.get_batch(batch.id)
        assert paused.status == "paused"
        assert paused.paused_at is not None
        assert [p.status for p in await store.list_pages(batch.id)] == [
            "completed", "pending", "pending",
        ]
        started_at = paused.started_at

        resumed = await orchestrator.resume(batch.id)
        assert resumed.success is True
        assert resumed.message == "Batch resumed successfully"
        await orchestrator.supervisor.wait(batch.id)

        final = await store.get_batch(batch.id)
        assert final.status == "completed"
        assert final.started_at == started_at
        assert final.paused_at is None
        assert final.completed_pages == 3
        assert [u for u, _ in scanner.calls] == URLS
        types = _types(notifier, batch.id)
        assert types.count("batch:paused") == 2
        assert "batch:resumed" in types
        indexes = [e.page_index for e in notifier.history(batch.id) if e.type == "batch:page_started"]
        assert indexes == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_pause_requires_running(self, orchestrator, store, make_batch):
        batch, _ = await make_batch(URLS)
        result = await orchestrator.pause(batch.id)
        assert result.code == "invalid_operation"
        assert result.message == "Cannot pause batch with status: pending"
        assert (await store.get_batch(batch.id)).status == "pending"

    @pytest.mark.asyncio
    async def test_pause_missing(self, orchestrator):
        assert (await orchestrator.pause("missing")).code == "not_found"

    @pytest.mark.asyncio
    async def test_resume_requires_paused(self, orchestrator, store, make_batch):
        batch, _ = await make_batch(URLS)
        await store.transition_batch(batch.id, ("pending",), "running")
        result = await orchestrator.resume(batch.id)
        assert result.code == "invalid_operation"
        assert result.message == "Cannot resume batch with status: running"

    @pytest.mark.asyncio
    async def test_lost_race_reported_as_invalid(self, orchestrator, store, make_batch):
        batch, _ = await make_batch(URLS)
        await store.transition_batch(batch.id, ("pending",), "running")
        real_transition = store.transition_batch

        async def cancel_first(batch_id, from_statuses, to_status, **fields):
            await real_transition(batch_id, ("running",), "cancelled")
            return await real_transition(batch_id, from_statuses, to_status, **fields)

        store.transition_batch = cancel_first
        result = await orchestrator.pause(batch.id)
        assert result.code == "invalid_operation"
        assert result.message == "Cannot pause batch with status: cancelled"


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_mid_scan(self, orchestrator, store, scanner, notifier, make_batch):
        batch, _ = await make_batch(URLS)

        async def cancel_during_second(url):
            if url == URLS[1]:
                await orchestrator.cancel(batch.id)

        scanner.on_scan = cancel_during_second
        status = await orchestrator.process_batch(batch.id)

        assert status == "cancelled"
        statuses = [p.status for p in await store.list_pages(batch.id)]
        assert statuses == ["completed", "skipped", "skipped"]
        loaded = await store.get_batch(batch.id)
        assert loaded.status == "cancelled"
        assert (loaded.completed_pages, loaded.failed_pages) == (1, 0)
        assert loaded.completed_at is not None
        assert len(scanner.calls) == 2
        assert "batch:completed" not in _types(notifier, batch.id)

    @pytest.mark.asyncio
    async def test_cancel_pending(self, orchestrator, store, notifier, make_batch):
        batch, _ = await make_batch(URLS)
        result = await orchestrator.cancel(batch.id)
        assert result.success is True
        assert result.message == "Batch cancelled successfully"
        assert all(p.status == "skipped" for p in await store.list_pages(batch.id))
        assert _types(notifier, batch.id) == ["batch:cancelled"]

    @pytest.mark.asyncio
    async def test_cancel_twice(self, orchestrator, store, notifier, make_batch):
        batch, _ = await make_batch(URLS)
        await orchestrator.cancel(batch.id)
        result = await orchestrator.cancel(batch.id)
        assert result.code == "invalid_operation"
        assert result.message == "Cannot cancel batch with status: cancelled"
        assert _types(notifier, batch.id) == ["batch:cancelled"]

    @pytest.mark.asyncio
    async def test_cancel_completed(self, orchestrator, store, make_batch):
        batch, _ = await make_batch(URLS)
        await orchestrator.process_batch(batch.id)
        result = await orchestrator.cancel(batch.id)
        assert result.code == "invalid_operation"
        assert (await store.get_batch(batch.id)).status == "completed"

    @pytest.mark.asyncio
    async def test_cancel_from_error(self, orchestrator, store, make_batch):
        batch, _ = await make_batch(URLS)
        await store.transition_batch(batch.id, ("pending",), "error")
        assert (await orchestrator.cancel(batch.id)).success is True
        assert (await store.get_batch(batch.id)).status == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_paused(self, orchestrator, store, make_batch):
        batch, _ = await make_batch(URLS)
        await store.transition_batch(batch.id, ("pending",), "paused")
        assert (await orchestrator.cancel(batch.id)).success is True

    @pytest.mark.asyncio
    async def test_cancel_missing(self, orchestrator):
        assert (await orchestrator.cancel("missing")).code == "not_found"


class TestProgressBound:
    @pytest.mark.asyncio
    async def test_processed_never_exceeds_total(
        self, orchestrator, store, scanner, notifier, make_batch, outcomes,
    ):
        urls = [f"https://example.com/{i}" for i in range(5)]
        batch, _ = await make_batch(urls)
        scanner.script(urls[0], outcomes.success(count=2))
        scanner.script(urls[1], outcomes.failure("TIMEOUT"), outcomes.success(count=1))
        scanner.script(urls[2], outcomes.failure("PAGE_NOT_FOUND"))
        scanner.script(urls[3], *[outcomes.failure("NETWORK_ERROR")] * 3)
        snapshots = []

        async def observe(url):
            snapshots.append(await store.get_batch(batch.id))

        scanner.on_scan = observe
        queue = notifier.subscribe(batch.id)

        assert await orchestrator.process_batch(batch.id) == "completed"

        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
        progress = [e.progress for e in events if e.type == "batch:page_complete"]
        assert len(progress) == 3
        for p in progress:
            assert p.completed_pages + p.failed_pages <= p.total_pages
        for snapshot in snapshots:
            assert snapshot.processed_pages <= snapshot.total_pages

        final = await store.get_batch(batch.id)
        assert (final.completed_pages, final.failed_pages) == (3, 2)
        assert final.processed_pages == final.total_pages
        completed = events[-1]
        assert completed.type == "batch:completed"
        summary = completed.summary
        assert summary.successful_pages + summary.failed_pages == summary.total_pages
