# src/report/models.py — v1
"""Report models: BatchReport, Recommendation, BatchSummary.

Serialized with camelCase keys (``model_dump(by_alias=True)``), the shape
dashboards and JSON exports consume.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from a11ybatch.core.models import IMPACT_LEVELS, BatchStatus, ImpactLevel, PageStatus, Viewport


def empty_impact_counts() -> dict[str, int]:
    """All four severity keys, zeroed."""
    return {level: 0 for level in IMPACT_LEVELS}


class ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RuleViolationSummary(ReportModel):
    """Violations of one rule across the batch."""

    rule_id: str
    description: str = ""
    impact: ImpactLevel
    count: int
    affected_pages: int


class PageReportEntry(ReportModel):
    url: str
    status: PageStatus
    violation_count: int = 0
    scan_reference: str | None = None
    error_message: str | None = None


class Recommendation(ReportModel):
    """One remediation item per distinct rule, ranked by ``priority``."""

    priority: int
    rule_id: str
    description: str = ""
    impact: ImpactLevel
    affected_pages: int
    count: int
    suggested_action: str


class ReportSummary(ReportModel):
    total_pages: int
    successful_pages: int
    failed_pages: int
    total_violations: int


class BatchReport(ReportModel):
    """Post-hoc aggregation of one batch; built per request, never stored."""

    batch_id: str
    name: str | None = None
    sitemap_url: str | None = None
    viewport: Viewport
    status: BatchStatus
    created_at: datetime
    completed_at: datetime
    duration: int
    summary: ReportSummary
    violations_by_impact: dict[str, int] = Field(default_factory=empty_impact_counts)
    violations_by_rule: list[RuleViolationSummary] = Field(default_factory=list)
    pages: list[PageReportEntry] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)


class BatchSummary(ReportModel):
    """Compact summary carried by the batch completion event."""

    total_pages: int
    successful_pages: int
    failed_pages: int
    total_violations: int
    violations_by_impact: dict[str, int] = Field(default_factory=empty_impact_counts)
    violations_by_rule: dict[str, int] = Field(default_factory=dict)
    most_common_violations: list[RuleViolationSummary] = Field(default_factory=list)
