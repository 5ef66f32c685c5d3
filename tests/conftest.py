# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides an in-memory state store, a scripted page scanner, an in-memory
notifier and a zero-delay orchestrator config. No network access; every
scan outcome is scripted.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from types import SimpleNamespace

import pytest

from a11ybatch.batch.orchestrator import BatchOrchestrator, OrchestratorConfig
from a11ybatch.batch.retry import RetryConfig
from a11ybatch.core.models import BatchPage, BatchSession, Violation, Viewport
from a11ybatch.notify.memory_notifier import InMemoryNotifier
from a11ybatch.scanning.base_scanner import BasePageScanner
from a11ybatch.scanning.models import ScanFailure, ScanOutcome, ScanSuccess
from a11ybatch.store.memory_store import InMemoryStateStore


class ScriptedScanner(BasePageScanner):
    """Page scanner returning queued outcomes per URL.

    URLs without a script succeed with no violations. An outcome may be an
    exception instance, which is raised instead of returned. ``on_scan``
    runs before each outcome is delivered, while the page is in flight.
    """

    def __init__(self) -> None:
        self._scripts: dict[str, list[ScanOutcome | Exception]] = {}
        self.calls: list[tuple[str, str]] = []
        self.on_scan: Callable[[str], Awaitable[None]] | None = None

    def script(self, url: str, *outcomes: ScanOutcome | Exception) -> None:
        self._scripts.setdefault(url, []).extend(outcomes)

    def calls_for(self, url: str) -> int:
        return sum(1 for called, _ in self.calls if called == url)

    async def scan(self, url: str, viewport: Viewport) -> ScanOutcome:
        self.calls.append((url, viewport))
        if self.on_scan is not None:
            await self.on_scan(url)
        queue = self._scripts.get(url)
        outcome = queue.pop(0) if queue else ScanSuccess(scan_reference=f"scan-{url}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def success(count: int = 0, rule_id: str = "color-contrast", impact: str = "serious",
            reference: str | None = "scan-ref") -> ScanSuccess:
    """Successful outcome carrying ``count`` violations of one rule."""
    return ScanSuccess(
        scan_reference=reference,
        violations=[
            Violation(rule_id=rule_id, impact=impact, description=f"{rule_id} issue")
            for _ in range(count)
        ],
    )


def failure(reason: str) -> ScanFailure:
    return ScanFailure(reason=reason)


# === FIXTURES ===


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def scanner() -> ScriptedScanner:
    return ScriptedScanner()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def fast_config() -> OrchestratorConfig:
    """Orchestrator config without any waiting."""
    return OrchestratorConfig(
        inter_page_delay_s=0.0,
        retry=RetryConfig(max_attempts=3, rate_limit_delay_s=0.0, transient_delay_s=0.0),
        seconds_per_page=30,
    )


@pytest.fixture
def orchestrator(store, scanner, notifier, fast_config) -> BatchOrchestrator:
    return BatchOrchestrator(store, scanner, notifier, config=fast_config)


@pytest.fixture
def make_batch(store):
    """Factory persisting a pending batch with one page per URL."""

    async def _make(
        urls: list[str],
        owner_id: str = "owner-1",
        viewport: Viewport = "desktop",
        name: str | None = None,
        **fields,
    ) -> tuple[BatchSession, list[BatchPage]]:
        batch = BatchSession(
            owner_id=owner_id, viewport=viewport, name=name, total_pages=len(urls), **fields,
        )
        pages = [
            BatchPage(batch_id=batch.id, url=url, position=i) for i, url in enumerate(urls)
        ]
        await store.create_batch(batch, pages)
        return batch, pages

    return _make


@pytest.fixture
def outcomes():
    """Outcome builders: ``outcomes.success(...)`` and ``outcomes.failure(...)``."""
    return SimpleNamespace(success=success, failure=failure)
