# src/logging/context.py — v2
"""Contextual logging support: attach batch_id, page_url and phase to log records.

Each batch runs in its own asyncio task, and tasks copy the current
context on creation, so values set inside one batch never leak into another.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_batch_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "batch_id", default=None
)
_owner_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "owner_id", default=None
)
_page_url: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "page_url", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    batch_id: str | None = None
    owner_id: str | None = None
    page_url: str | None = None
    phase: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        batch_id=_batch_id.get(),
        owner_id=_owner_id.get(),
        page_url=_page_url.get(),
        phase=_phase.get(),
    )


def set_batch_context(batch_id: str, owner_id: str | None = None) -> None:
    """Set batch-level context (called once per batch task)."""
    _batch_id.set(batch_id)
    _owner_id.set(owner_id)


def set_page_context(page_url: str | None, phase: str | None = None) -> None:
    """Set page-level context (called per processed page)."""
    _page_url.set(page_url)
    _phase.set(phase)


def clear_context() -> None:
    """Reset all context variables."""
    _batch_id.set(None)
    _owner_id.set(None)
    _page_url.set(None)
    _phase.set(None)
