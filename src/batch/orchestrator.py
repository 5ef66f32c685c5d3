# src/batch/orchestrator.py — v1
"""Batch orchestrator: the sequential processing loop and its control plane.

State machine (batch):
    pending -> running -> {paused <-> running} -> {completed | cancelled | error}

Pages are processed one at a time in creation order. Pause and cancel are
cooperative: the loop re-reads the batch status before every page and
stops there, so an in-flight scan always finishes first. Every status
change goes through the store's conditional transition, which serializes
concurrent control requests without in-process locks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from a11ybatch.batch.models import ControlResult
from a11ybatch.batch.page_processor import PageProcessor
from a11ybatch.batch.progress import DEFAULT_SECONDS_PER_PAGE
from a11ybatch.batch.retry import RetryConfig
from a11ybatch.batch.supervisor import BatchTaskSupervisor
from a11ybatch.core.models import OPEN_PAGE_STATUSES, BatchSession, BatchStatus, utcnow
from a11ybatch.logging.context import set_batch_context
from a11ybatch.notify.base_notifier import safe_publish
from a11ybatch.notify.events import (
    BatchCancelled,
    BatchCompleted,
    BatchPaused,
    BatchResumed,
    BatchStarted,
)
from a11ybatch.report.generator import ReportGenerator
from a11ybatch.store.base_state_store import StateStoreError

if TYPE_CHECKING:
    from a11ybatch.config.settings import Settings
    from a11ybatch.notify.base_notifier import BaseProgressNotifier
    from a11ybatch.scanning.base_scanner import BasePageScanner
    from a11ybatch.store.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

_CANCELLABLE: tuple[BatchStatus, ...] = ("pending", "running", "paused", "error")


@dataclass(frozen=True)
class OrchestratorConfig:
    """Timing knobs for the processing loop."""

    inter_page_delay_s: float = 10.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    seconds_per_page: int = DEFAULT_SECONDS_PER_PAGE

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorConfig:
        return cls(
            inter_page_delay_s=settings.inter_page_delay_s,
            retry=RetryConfig(
                max_attempts=settings.max_attempts,
                rate_limit_delay_s=settings.rate_limit_retry_delay_s,
                transient_delay_s=settings.transient_retry_delay_s,
            ),
            seconds_per_page=settings.seconds_per_page_estimate,
        )


class BatchOrchestrator:
    """Drive batches from creation to a terminal state."""

    def __init__(
        self,
        store: BaseStateStore,
        scanner: BasePageScanner,
        notifier: BaseProgressNotifier | None = None,
        config: OrchestratorConfig | None = None,
        report_generator: ReportGenerator | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._config = config or OrchestratorConfig()
        self._reports = report_generator or ReportGenerator(store)
        self._processor = PageProcessor(
            store,
            scanner,
            notifier,
            retry_config=self._config.retry,
            seconds_per_page=self._config.seconds_per_page,
        )
        self.supervisor = BatchTaskSupervisor(store)

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    # --- processing loop ---

    def start(self, batch_id: str, owner_id: str | None = None) -> asyncio.Task[None]:
        """Run ``process_batch`` as a supervised background task."""
        return self.supervisor.start(batch_id, self.process_batch, owner_id=owner_id)

    async def process_batch(self, batch_id: str) -> BatchStatus | None:
        """Process the batch's pending pages until done, paused or cancelled.

        Safe to re-enter after a pause: only pages still ``pending`` are
        visited. State store failures propagate to the caller.

        Returns:
            The batch status when the loop stopped, or None if the batch
            does not exist.
        """
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            logger.error("Batch %s not found", batch_id)
            return None
        set_batch_context(batch_id, batch.owner_id)

        if not await self._store.transition_batch(
            batch_id, ("pending", "running"), "running", started_at=utcnow(),
        ):
            logger.info("Batch %s is %s, not starting processing", batch_id, batch.status)
            return batch.status

        logger.info("Starting batch %s (%d pages)", batch_id, batch.total_pages)
        await safe_publish(
            self._notifier, batch_id,
            BatchStarted(batch_id=batch_id, total_pages=batch.total_pages),
        )

        # A page left running was interrupted mid-scan by a previous owner.
        pending = [
            p for p in await self._store.list_pages(batch_id)
            if p.status in OPEN_PAGE_STATUSES
        ]
        page_index = batch.processed_pages

        for position, page in enumerate(pending):
            current = await self._require_batch(batch_id)
            if current.status == "cancelled":
                logger.info("Batch %s was cancelled", batch_id)
                await safe_publish(self._notifier, batch_id, BatchCancelled(batch_id=batch_id))
                return "cancelled"
            if current.status == "paused":
                logger.info("Batch %s is paused, stopping processing", batch_id)
                await safe_publish(self._notifier, batch_id, BatchPaused(batch_id=batch_id))
                return "paused"
            if current.status != "running":
                logger.warning("Batch %s left running state (%s), stopping", batch_id, current.status)
                return current.status

            await self._processor.process_page(
                batch_id, page, batch.viewport, page_index, owner_id=batch.owner_id,
            )
            page_index += 1

            is_last = position == len(pending) - 1
            if not is_last and page_index < batch.total_pages:
                await asyncio.sleep(self._config.inter_page_delay_s)

        return await self._finalize(batch_id)

    async def _finalize(self, batch_id: str) -> BatchStatus:
        final = await self._require_batch(batch_id)
        if final.status != "running":
            return final.status
        if not await self._store.transition_batch(
            batch_id, ("running",), "completed", completed_at=utcnow(),
        ):
            # A control request won the race after the last page.
            final = await self._require_batch(batch_id)
            return final.status

        summary = await self._reports.generate_summary(batch_id)
        if summary is not None:
            await safe_publish(
                self._notifier, batch_id, BatchCompleted(batch_id=batch_id, summary=summary),
            )
        logger.info(
            "Batch %s completed: %d succeeded, %d failed, %d violations",
            batch_id, final.completed_pages, final.failed_pages, final.total_violations,
        )
        return "completed"

    async def _require_batch(self, batch_id: str) -> BatchSession:
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            raise StateStoreError(f"Batch {batch_id} disappeared during processing")
        return batch

    # --- control operations ---

    async def pause(self, batch_id: str) -> ControlResult:
        """Pause a running batch; the loop stops before its next page."""
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            return ControlResult.not_found()
        if batch.status != "running":
            return ControlResult.invalid(f"Cannot pause batch with status: {batch.status}")
        if not await self._store.transition_batch(
            batch_id, ("running",), "paused", paused_at=utcnow(),
        ):
            return await self._lost_race(batch_id, "pause")

        await safe_publish(self._notifier, batch_id, BatchPaused(batch_id=batch_id))
        logger.info("Batch %s paused", batch_id)
        return ControlResult.ok("Batch paused successfully")

    async def resume(self, batch_id: str) -> ControlResult:
        """Resume a paused batch and restart processing in the background."""
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            return ControlResult.not_found()
        if batch.status != "paused":
            return ControlResult.invalid(f"Cannot resume batch with status: {batch.status}")
        if not await self._store.transition_batch(
            batch_id, ("paused",), "running", paused_at=None,
        ):
            return await self._lost_race(batch_id, "resume")

        await safe_publish(self._notifier, batch_id, BatchResumed(batch_id=batch_id))
        logger.info("Batch %s resumed", batch_id)
        self.start(batch_id, owner_id=batch.owner_id)
        return ControlResult.ok("Batch resumed successfully")

    async def cancel(self, batch_id: str) -> ControlResult:
        """Cancel a batch and skip every page not yet finished."""
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            return ControlResult.not_found()
        if batch.status not in _CANCELLABLE:
            return ControlResult.invalid(f"Cannot cancel batch with status: {batch.status}")
        now = utcnow()
        if not await self._store.transition_batch(
            batch_id, _CANCELLABLE, "cancelled", completed_at=now,
        ):
            return await self._lost_race(batch_id, "cancel")

        skipped = await self._store.skip_open_pages(batch_id, completed_at=now)
        await safe_publish(self._notifier, batch_id, BatchCancelled(batch_id=batch_id))
        logger.info("Batch %s cancelled, %d pages skipped", batch_id, skipped)
        return ControlResult.ok("Batch cancelled successfully")

    async def _lost_race(self, batch_id: str, action: str) -> ControlResult:
        """The status changed between the read and the conditional write."""
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            return ControlResult.not_found()
        return ControlResult.invalid(f"Cannot {action} batch with status: {batch.status}")
