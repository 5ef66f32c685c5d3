# src/api/facade.py — v2
"""Public API facade: the batch control surface.

Usage:
    from a11ybatch.api.facade import BatchService
    service = BatchService(settings)
    batch = await service.create_batch(urls, viewport="mobile")
    details = await service.get_batch(batch.id)

Every call that addresses an existing batch accepts an optional owner id.
When given, a batch owned by someone else is reported exactly like a
missing one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Literal
from urllib.parse import urlparse

from a11ybatch.api.models import (
    DEFAULT_LIST_LIMIT,
    MAX_LIST_LIMIT,
    BatchDetails,
    BatchListPage,
    BatchPagesView,
    CreateBatchRequest,
)
from a11ybatch.batch.models import ControlResult
from a11ybatch.batch.orchestrator import BatchOrchestrator, OrchestratorConfig
from a11ybatch.batch.progress import calculate_progress
from a11ybatch.config.settings import Settings
from a11ybatch.core.models import BatchPage, BatchSession, BatchStatus
from a11ybatch.notify.notifier_factory import create_notifier
from a11ybatch.report.exporter import export_report_html, export_report_json
from a11ybatch.report.generator import ReportGenerator
from a11ybatch.scanning.scanner_factory import create_page_scanner
from a11ybatch.store.store_factory import create_state_store

if TYPE_CHECKING:
    from a11ybatch.notify.base_notifier import BaseProgressNotifier
    from a11ybatch.report.models import BatchReport
    from a11ybatch.scanning.base_scanner import BasePageScanner
    from a11ybatch.store.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

ReportFormat = Literal["json", "html", "json-download"]
REPORT_FORMATS: tuple[str, ...] = ("json", "html", "json-download")


class BatchValidationError(ValueError):
    """Malformed batch input, rejected before any state is created."""


class BatchService:
    """Create, inspect, control and report on batch scans.

    Collaborators not passed in are built from settings through the
    backend factories. Injected collaborators are not closed by
    :meth:`close`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: BaseStateStore | None = None,
        scanner: BasePageScanner | None = None,
        notifier: BaseProgressNotifier | None = None,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._owns_store = store is None
        self._owns_scanner = scanner is None
        self._owns_notifier = notifier is None
        self.store = store or create_state_store(self._settings)
        self.scanner = scanner or create_page_scanner(self._settings)
        self.notifier = notifier or create_notifier(self._settings)
        self.reports = ReportGenerator(self.store)
        self.orchestrator = BatchOrchestrator(
            self.store,
            self.scanner,
            self.notifier,
            config=config or OrchestratorConfig.from_settings(self._settings),
            report_generator=self.reports,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    # --- creation ---

    async def create_batch(
        self,
        urls: list[str],
        viewport: str = "desktop",
        name: str | None = None,
        sitemap_url: str | None = None,
        owner_id: str | None = None,
        org_id: str | None = None,
        start: bool = True,
    ) -> BatchSession:
        """Persist a new batch with one pending page per URL.

        Args:
            urls: Pages to scan, processed in this order.
            viewport: "mobile" or "desktop".
            name: Optional display name.
            sitemap_url: Sitemap the URLs came from, if any.
            owner_id: Batch owner. Defaults to DEFAULT_OWNER_ID.
            org_id: Organization. Defaults to DEFAULT_ORG_ID.
            start: Schedule processing as a background task.

        Raises:
            BatchValidationError: If the URL list or viewport is invalid.
        """
        request = validate_batch_request(urls, viewport, name, sitemap_url)
        batch = BatchSession(
            owner_id=owner_id or self._settings.default_owner_id,
            org_id=org_id or self._settings.default_org_id,
            name=request.name,
            sitemap_url=request.sitemap_url,
            viewport=request.viewport,
            total_pages=len(request.urls),
        )
        pages = [
            BatchPage(batch_id=batch.id, url=url, position=position)
            for position, url in enumerate(request.urls)
        ]
        await self.store.create_batch(batch, pages)
        logger.info(
            "Created batch %s with %d pages (%s)", batch.id, batch.total_pages, batch.viewport,
        )
        if start:
            self.orchestrator.start(batch.id, owner_id=batch.owner_id)
        return batch

    # --- reads ---

    async def get_batch(self, batch_id: str, owner_id: str | None = None) -> BatchDetails | None:
        """Batch with live progress, or None if missing or not owned."""
        batch = await self._visible_batch(batch_id, owner_id)
        if batch is None:
            return None
        progress = await calculate_progress(
            self.store, batch_id, self.orchestrator.config.seconds_per_page,
        )
        return BatchDetails(batch=batch, progress=progress)

    async def list_batches(
        self, owner_id: str | None = None, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0,
    ) -> BatchListPage:
        """An owner's batches, newest first. ``limit`` is clamped to 1..100."""
        owner = owner_id or self._settings.default_owner_id
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        offset = max(0, offset)
        items, total = await self.store.list_batches(owner, limit=limit, offset=offset)
        return BatchListPage(
            items=items,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(items) < total,
        )

    async def list_pages(
        self, batch_id: str, owner_id: str | None = None, status: str | None = None,
    ) -> BatchPagesView | None:
        batch = await self._visible_batch(batch_id, owner_id)
        if batch is None:
            return None
        pages = await self.store.list_pages(batch_id, status=status)  # type: ignore[arg-type]
        return BatchPagesView(batch_id=batch_id, pages=pages)

    # --- control ---

    async def pause_batch(self, batch_id: str, owner_id: str | None = None) -> ControlResult:
        if await self._visible_batch(batch_id, owner_id) is None:
            return ControlResult.not_found()
        return await self.orchestrator.pause(batch_id)

    async def resume_batch(self, batch_id: str, owner_id: str | None = None) -> ControlResult:
        if await self._visible_batch(batch_id, owner_id) is None:
            return ControlResult.not_found()
        return await self.orchestrator.resume(batch_id)

    async def cancel_batch(self, batch_id: str, owner_id: str | None = None) -> ControlResult:
        if await self._visible_batch(batch_id, owner_id) is None:
            return ControlResult.not_found()
        return await self.orchestrator.cancel(batch_id)

    # --- reports ---

    async def get_report(
        self,
        batch_id: str,
        format: ReportFormat = "json",  # noqa: A002
        owner_id: str | None = None,
    ) -> BatchReport | str | None:
        """Report in structured ("json"), HTML ("html") or JSON text ("json-download") form.

        Returns None if the batch is missing or not owned.

        Raises:
            ValueError: If ``format`` is not supported.
        """
        if format not in REPORT_FORMATS:
            raise ValueError(
                f"Unsupported report format: {format!r}. Use one of {', '.join(REPORT_FORMATS)}"
            )
        if await self._visible_batch(batch_id, owner_id) is None:
            return None
        report = await self.reports.generate_report(batch_id)
        if report is None:
            return None
        if format == "html":
            return export_report_html(
                report, top_recommendations=self._settings.report_top_recommendations_html,
            )
        if format == "json-download":
            return export_report_json(report)
        return report

    # --- foreground execution ---

    async def run_batch(self, batch_id: str) -> BatchStatus | None:
        """Process a batch in the calling task and return its final status.

        A fatal failure marks the batch ``error`` before it propagates, the
        same way a supervised background run ends.
        """
        try:
            return await self.orchestrator.process_batch(batch_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Batch %s failed with a fatal error", batch_id)
            await self.orchestrator.supervisor.mark_error(batch_id)
            raise

    async def wait(self, batch_id: str) -> None:
        """Wait for the batch's background processing task, if any."""
        await self.orchestrator.supervisor.wait(batch_id)

    async def close(self) -> None:
        """Stop background tasks and release owned backends."""
        await self.orchestrator.supervisor.shutdown()
        if self._owns_scanner:
            await self.scanner.aclose()
        if self._owns_notifier:
            await self.notifier.aclose()
        if self._owns_store:
            self.store.close()

    async def _visible_batch(self, batch_id: str, owner_id: str | None) -> BatchSession | None:
        batch = await self.store.get_batch(batch_id)
        if batch is None:
            return None
        if owner_id is not None and batch.owner_id != owner_id:
            logger.debug("Batch %s is not visible to owner %s", batch_id, owner_id)
            return None
        return batch


def validate_batch_request(
    urls: list[str],
    viewport: str = "desktop",
    name: str | None = None,
    sitemap_url: str | None = None,
) -> CreateBatchRequest:
    """Check batch input. No state is touched.

    Raises:
        BatchValidationError: On an empty list, a non-http(s) URL, a
            duplicate URL, or an unknown viewport.
    """
    if not urls:
        raise BatchValidationError("URLs array is required")

    cleaned: list[str] = []
    seen: set[str] = set()
    for raw in urls:
        url = raw.strip() if isinstance(raw, str) else ""
        if not _is_http_url(url):
            raise BatchValidationError(f"Invalid URL: {raw}")
        if url in seen:
            raise BatchValidationError(f"Duplicate URL: {url}")
        seen.add(url)
        cleaned.append(url)

    if viewport not in ("mobile", "desktop"):
        raise BatchValidationError(
            f"Invalid viewport: {viewport}. Must be 'mobile' or 'desktop'"
        )
    if sitemap_url is not None and not _is_http_url(sitemap_url):
        raise BatchValidationError(f"Invalid sitemap URL: {sitemap_url}")

    return CreateBatchRequest(
        urls=cleaned,
        viewport=viewport,  # type: ignore[arg-type]
        name=(name or "").strip() or None,
        sitemap_url=sitemap_url,
    )


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
