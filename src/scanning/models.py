# src/scanning/models.py — v1
"""Page scan outcomes returned by scanner implementations."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, Field, model_validator

from a11ybatch.core.models import Violation


class ScanSuccess(BaseModel):
    """A completed scan. ``violation_count`` defaults to ``len(violations)``."""

    success: Literal[True] = True
    violation_count: int = -1
    scan_reference: str | None = None
    violations: list[Violation] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_violation_count(self) -> ScanSuccess:
        if self.violation_count < 0:
            self.violation_count = len(self.violations)
        return self


class ScanFailure(BaseModel):
    """A failed scan. ``reason`` is classified by the retry policy."""

    success: Literal[False] = False
    reason: str


ScanOutcome = Union[ScanSuccess, ScanFailure]
