# src/batch/models.py — v2
"""Batch processing result types: ControlResult, PageOutcome."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

ControlCode = Literal["ok", "not_found", "invalid_operation"]


class ControlResult(BaseModel):
    """Outcome of pause/resume/cancel. Control errors are returned, never raised."""

    success: bool
    code: ControlCode
    message: str

    @classmethod
    def ok(cls, message: str) -> ControlResult:
        return cls(success=True, code="ok", message=message)

    @classmethod
    def not_found(cls) -> ControlResult:
        return cls(success=False, code="not_found", message="Batch not found")

    @classmethod
    def invalid(cls, message: str) -> ControlResult:
        return cls(success=False, code="invalid_operation", message=message)


class PageOutcome(BaseModel):
    """What happened to one page handed to the page processor.

    ``status`` is "not_started" when the page was no longer open before
    processing began, and "skipped" when a cancel overtook an in-flight scan.
    """

    page_id: str
    url: str
    status: Literal["completed", "failed", "skipped", "not_started"]
    attempts: int = 0
    violation_count: int = 0
    error: str | None = None
