# src/batch/page_processor.py — v1
"""Page processor: scan one page with retries, record the outcome, notify.

The retry loop is an explicit attempt counter. A scan either succeeds,
fails permanently, or fails retryably; only the last kind loops, and only
while attempts remain. Page-level failures are recorded on the page and
never raised to the batch loop. State store errors do propagate.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from a11ybatch.batch.models import PageOutcome
from a11ybatch.batch.progress import DEFAULT_SECONDS_PER_PAGE, calculate_progress
from a11ybatch.batch.retry import DEFAULT_RETRY_CONFIG, RetryConfig, classify_failure
from a11ybatch.core.models import OPEN_PAGE_STATUSES, BatchPage, Viewport, utcnow
from a11ybatch.logging.context import set_page_context
from a11ybatch.notify.base_notifier import safe_publish
from a11ybatch.notify.events import PageComplete, PageFailed, PageStarted
from a11ybatch.scanning.models import ScanFailure, ScanOutcome, ScanSuccess

if TYPE_CHECKING:
    from a11ybatch.notify.base_notifier import BaseProgressNotifier
    from a11ybatch.scanning.base_scanner import BasePageScanner
    from a11ybatch.store.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"


class PageProcessor:
    """Process single pages of a batch against the scan collaborator."""

    def __init__(
        self,
        store: BaseStateStore,
        scanner: BasePageScanner,
        notifier: BaseProgressNotifier | None = None,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        seconds_per_page: int = DEFAULT_SECONDS_PER_PAGE,
    ) -> None:
        self._store = store
        self._scanner = scanner
        self._notifier = notifier
        self._retry_config = retry_config
        self._seconds_per_page = seconds_per_page

    async def process_page(
        self,
        batch_id: str,
        page: BatchPage,
        viewport: Viewport,
        page_index: int,
        owner_id: str | None = None,
        retry_config: RetryConfig | None = None,
    ) -> PageOutcome:
        """Drive one page from pending to completed or failed.

        Args:
            batch_id: Owning batch.
            page: Page snapshot; its status is re-checked by the store.
            viewport: Device profile passed to the scanner.
            page_index: Zero-based index across the whole batch, for events.
            owner_id: Batch owner, for log context only.
            retry_config: Overrides the processor default for this page.
        """
        config = retry_config or self._retry_config
        if owner_id:
            logger.debug("Page %s scanned on behalf of %s", page.url, owner_id)
        set_page_context(page.url, phase="scan")
        try:
            return await self._process(batch_id, page, viewport, page_index, config)
        finally:
            set_page_context(None)

    async def _process(
        self,
        batch_id: str,
        page: BatchPage,
        viewport: Viewport,
        page_index: int,
        config: RetryConfig,
    ) -> PageOutcome:
        # "running" re-enters a scan interrupted before its outcome was recorded.
        started = await self._store.transition_page(
            page.id, OPEN_PAGE_STATUSES, "running", started_at=utcnow(),
        )
        if not started:
            logger.info("Page %s is no longer open, not scanning it", page.url)
            return PageOutcome(page_id=page.id, url=page.url, status="not_started")

        logger.info("Processing page %d: %s", page_index + 1, page.url)
        await safe_publish(
            self._notifier,
            batch_id,
            PageStarted(batch_id=batch_id, page_url=page.url, page_index=page_index),
        )

        attempts = 0
        last_reason = UNKNOWN_ERROR
        while attempts < config.max_attempts:
            attempts += 1
            outcome = await self._scan(page.url, viewport)
            if isinstance(outcome, ScanSuccess):
                return await self._record_success(batch_id, page, outcome, attempts)

            last_reason = outcome.reason or UNKNOWN_ERROR
            decision = classify_failure(last_reason, config)
            if not decision.retryable or attempts >= config.max_attempts:
                break

            logger.warning(
                "Scan of %s failed (%s), attempt %d/%d, retrying in %.1fs",
                page.url, last_reason, attempts, config.max_attempts, decision.delay_s,
            )
            await asyncio.sleep(decision.delay_s)
            if not await self._still_running(page.id):
                logger.info("Page %s left running state during backoff, not retrying", page.url)
                return PageOutcome(
                    page_id=page.id, url=page.url, status="skipped",
                    attempts=attempts, error=last_reason,
                )

        return await self._record_failure(batch_id, page, last_reason, attempts)

    async def _still_running(self, page_id: str) -> bool:
        current = await self._store.get_page(page_id)
        return current is not None and current.status == "running"

    async def _scan(self, url: str, viewport: Viewport) -> ScanOutcome:
        """Run one scan; exceptions from the scanner become failures."""
        try:
            return await self._scanner.scan(url, viewport)
        except Exception as e:
            logger.debug("Scanner raised for %s", url, exc_info=True)
            return ScanFailure(reason=f"{type(e).__name__}: {e}")

    async def _record_success(
        self, batch_id: str, page: BatchPage, outcome: ScanSuccess, attempts: int,
    ) -> PageOutcome:
        completed = await self._store.transition_page(
            page.id,
            ("running",),
            "completed",
            completed_at=utcnow(),
            scan_reference=outcome.scan_reference,
            violation_count=outcome.violation_count,
        )
        if not completed:
            # Cancelled while the scan was in flight; the page is already skipped.
            logger.info("Discarding scan result for %s: page left running state", page.url)
            return PageOutcome(page_id=page.id, url=page.url, status="skipped", attempts=attempts)

        if outcome.violations:
            await self._store.save_violations(batch_id, page.id, outcome.violations)
        await self._store.increment_counters(
            batch_id, completed=1, violations=outcome.violation_count,
        )
        progress = await calculate_progress(self._store, batch_id, self._seconds_per_page)
        await safe_publish(
            self._notifier,
            batch_id,
            PageComplete(
                batch_id=batch_id,
                page_url=page.url,
                violations=outcome.violation_count,
                progress=progress,
            ),
        )
        logger.info("Page %s completed with %d violations", page.url, outcome.violation_count)
        return PageOutcome(
            page_id=page.id,
            url=page.url,
            status="completed",
            attempts=attempts,
            violation_count=outcome.violation_count,
        )

    async def _record_failure(
        self, batch_id: str, page: BatchPage, reason: str, attempts: int,
    ) -> PageOutcome:
        failed = await self._store.transition_page(
            page.id, ("running",), "failed", completed_at=utcnow(), error_message=reason,
        )
        if not failed:
            logger.info("Not recording failure for %s: page left running state", page.url)
            return PageOutcome(
                page_id=page.id, url=page.url, status="skipped", attempts=attempts, error=reason,
            )

        await self._store.increment_counters(batch_id, failed=1)
        await safe_publish(
            self._notifier,
            batch_id,
            PageFailed(batch_id=batch_id, page_url=page.url, error=reason),
        )
        logger.warning("Page %s failed after %d attempt(s): %s", page.url, attempts, reason)
        return PageOutcome(
            page_id=page.id, url=page.url, status="failed", attempts=attempts, error=reason,
        )
