# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
BatchSession and BatchPage are the persisted entities, BatchProgress is
derived from batch counters on demand.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

BatchStatus = Literal["pending", "running", "paused", "completed", "cancelled", "error"]
PageStatus = Literal["pending", "running", "completed", "failed", "skipped"]
Viewport = Literal["mobile", "desktop"]
ImpactLevel = Literal["critical", "serious", "moderate", "minor"]

TERMINAL_BATCH_STATUSES: frozenset[str] = frozenset({"completed", "cancelled", "error"})
OPEN_PAGE_STATUSES: tuple[PageStatus, ...] = ("pending", "running")

# Most severe first.
IMPACT_LEVELS: tuple[ImpactLevel, ...] = ("critical", "serious", "moderate", "minor")

DEFAULT_ORG_ID = "00000000-0000-0000-0000-000000000000"


def utcnow() -> datetime:
    """Timezone-aware current time; every persisted timestamp uses it."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# === BATCH ENTITIES ===


class BatchSession(BaseModel):
    """One batch scan run.

    ``total_pages`` is fixed at creation. Counters only move through the
    state store's increment operation.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_id)
    owner_id: str
    org_id: str = DEFAULT_ORG_ID
    name: str | None = None
    sitemap_url: str | None = None
    viewport: Viewport = "desktop"
    status: BatchStatus = "pending"
    total_pages: int = 0
    completed_pages: int = 0
    failed_pages: int = 0
    total_violations: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BATCH_STATUSES

    @property
    def processed_pages(self) -> int:
        """Pages that reached a counted outcome (completed or failed)."""
        return self.completed_pages + self.failed_pages


class BatchPage(BaseModel):
    """One URL within a batch. ``position`` is the creation order."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_id)
    batch_id: str
    url: str
    position: int
    status: PageStatus = "pending"
    scan_reference: str | None = None
    violation_count: int = 0
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class Violation(BaseModel):
    """One accessibility rule failure reported for a page."""

    rule_id: str
    impact: ImpactLevel = "moderate"
    description: str = ""
    selector: str | None = None
    html: str | None = None

    @field_validator("impact", mode="before")
    @classmethod
    def normalize_impact(cls, v: object) -> str:
        """Unknown or missing severities are recorded as moderate."""
        if isinstance(v, str) and v.lower() in IMPACT_LEVELS:
            return v.lower()
        return "moderate"


class ViolationRecord(Violation):
    """A Violation as persisted against a batch page."""

    batch_id: str
    page_id: str


# === DERIVED ===


class BatchProgress(BaseModel):
    """Live progress derived from batch counters (never stored)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    completed_pages: int = 0
    total_pages: int = 0
    failed_pages: int = 0
    total_violations: int = 0
    estimated_time_remaining: int = 0
    percent_complete: float = 0.0
