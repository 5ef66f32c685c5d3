# src/report/generator.py — v1
"""Report generator: aggregate a batch's pages and violations.

Read-only over the state store; safe to call on a running batch for a
live partial report. Recommendations rank rules by

    priority = severity_weight(impact) * (affected_pages * 10 + count)

so breadth across pages outweighs repetition within one page. Ties are
broken by rule id, which makes the ordering reproducible.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from a11ybatch.core.models import IMPACT_LEVELS, BatchSession, ImpactLevel, utcnow
from a11ybatch.report.models import (
    BatchReport,
    BatchSummary,
    PageReportEntry,
    Recommendation,
    ReportSummary,
    RuleViolationSummary,
    empty_impact_counts,
)

if TYPE_CHECKING:
    from a11ybatch.core.models import BatchPage, ViolationRecord
    from a11ybatch.store.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

IMPACT_WEIGHTS: dict[str, int] = {
    "critical": 4,
    "serious": 3,
    "moderate": 2,
    "minor": 1,
}

SUGGESTED_ACTIONS: dict[str, str] = {
    "color-contrast": (
        "Increase the contrast ratio between text and background colors to meet "
        "WCAG AA standards (4.5:1 for normal text, 3:1 for large text)."
    ),
    "image-alt": (
        "Add descriptive alt text to all images that convey information. "
        'Use empty alt="" for decorative images.'
    ),
    "link-name": (
        "Ensure all links have accessible names through visible text, "
        "aria-label, or aria-labelledby."
    ),
    "button-name": (
        "Add accessible names to buttons using visible text, aria-label, "
        "or aria-labelledby."
    ),
    "label": (
        "Associate form inputs with labels using the for/id attributes or by "
        "nesting inputs within label elements."
    ),
    "html-has-lang": (
        "Add a lang attribute to the <html> element specifying the page "
        'language (e.g., lang="en").'
    ),
    "document-title": "Add a descriptive <title> element to the page head.",
    "heading-order": (
        "Ensure headings follow a logical order (h1, h2, h3) without skipping levels."
    ),
    "list": "Use proper list markup (<ul>, <ol>, <li>) for list content.",
    "listitem": "Ensure list items (<li>) are contained within list elements (<ul> or <ol>).",
    "region": (
        "Wrap page content in landmark regions (main, nav, header, footer) "
        "for better navigation."
    ),
    "bypass": (
        "Add a skip link at the top of the page to allow users to bypass "
        "repetitive content."
    ),
    "meta-viewport": (
        "Ensure the viewport meta tag allows user scaling "
        "(user-scalable=yes, maximum-scale >= 2)."
    ),
    "aria-required-attr": "Add all required ARIA attributes for the specified role.",
    "aria-valid-attr-value": "Ensure ARIA attribute values are valid for their attribute type.",
    "aria-roles": "Use valid ARIA roles that exist in the ARIA specification.",
    "tabindex": (
        'Avoid using tabindex values greater than 0. Use tabindex="0" or '
        'tabindex="-1" only.'
    ),
    "focus-visible": "Ensure interactive elements have visible focus indicators.",
    "landmark-one-main": "Add exactly one main landmark to the page.",
    "page-has-heading-one": "Include at least one h1 heading on each page.",
}

MOST_COMMON_LIMIT = 10


def calculate_priority(impact: str, affected_pages: int, count: int) -> int:
    return IMPACT_WEIGHTS.get(impact, 1) * (affected_pages * 10 + count)


def suggested_action(rule_id: str) -> str:
    """Remedial action for a rule, with a generic fallback for unknown rules."""
    return SUGGESTED_ACTIONS.get(
        rule_id,
        f'Review and fix all instances of the "{rule_id}" violation '
        "according to WCAG guidelines.",
    )


@dataclass
class _RuleAggregate:
    rule_id: str
    description: str = ""
    impact: ImpactLevel = "minor"
    count: int = 0
    pages: set[str] = field(default_factory=set)

    def add(self, record: ViolationRecord) -> None:
        self.count += 1
        self.pages.add(record.page_id)
        if not self.description and record.description:
            self.description = record.description
        # A rule reported with mixed severities is ranked at its most severe.
        if IMPACT_LEVELS.index(record.impact) < IMPACT_LEVELS.index(self.impact):
            self.impact = record.impact

    def summary(self) -> RuleViolationSummary:
        return RuleViolationSummary(
            rule_id=self.rule_id,
            description=self.description,
            impact=self.impact,
            count=self.count,
            affected_pages=len(self.pages),
        )


def aggregate_by_rule(records: list[ViolationRecord]) -> list[RuleViolationSummary]:
    """Group violations by rule, ordered by count descending then rule id."""
    rules: dict[str, _RuleAggregate] = {}
    for record in records:
        rules.setdefault(record.rule_id, _RuleAggregate(rule_id=record.rule_id)).add(record)
    summaries = [agg.summary() for agg in rules.values()]
    summaries.sort(key=lambda s: (-s.count, s.rule_id))
    return summaries


def count_by_impact(records: list[ViolationRecord]) -> dict[str, int]:
    counts = empty_impact_counts()
    counts.update(Counter(r.impact for r in records))
    return counts


def build_recommendations(rules: list[RuleViolationSummary]) -> list[Recommendation]:
    """One recommendation per rule, highest priority first, ties by rule id."""
    recommendations = [
        Recommendation(
            priority=calculate_priority(rule.impact, rule.affected_pages, rule.count),
            rule_id=rule.rule_id,
            description=rule.description,
            impact=rule.impact,
            affected_pages=rule.affected_pages,
            count=rule.count,
            suggested_action=suggested_action(rule.rule_id),
        )
        for rule in rules
    ]
    recommendations.sort(key=lambda r: (-r.priority, r.rule_id))
    return recommendations


class ReportGenerator:
    """Build reports and completion summaries from the state store."""

    def __init__(self, store: BaseStateStore) -> None:
        self._store = store

    async def _completed_violations(
        self, batch_id: str, pages: list[BatchPage],
    ) -> list[ViolationRecord]:
        completed_ids = {p.id for p in pages if p.status == "completed"}
        records = await self._store.list_violations(batch_id)
        return [r for r in records if r.page_id in completed_ids]

    async def generate_report(self, batch_id: str) -> BatchReport | None:
        """Full report for a batch, or None if the batch does not exist."""
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            return None

        pages = await self._store.list_pages(batch_id)
        records = await self._completed_violations(batch_id, pages)
        rules = aggregate_by_rule(records)

        completed_at = batch.completed_at or utcnow()
        duration = max(int((completed_at - batch.created_at).total_seconds()), 0)

        report = BatchReport(
            batch_id=batch.id,
            name=batch.name,
            sitemap_url=batch.sitemap_url,
            viewport=batch.viewport,
            status=batch.status,
            created_at=batch.created_at,
            completed_at=completed_at,
            duration=duration,
            summary=_summary_counts(batch),
            violations_by_impact=count_by_impact(records),
            violations_by_rule=rules,
            pages=[
                PageReportEntry(
                    url=p.url,
                    status=p.status,
                    violation_count=p.violation_count,
                    scan_reference=p.scan_reference,
                    error_message=p.error_message,
                )
                for p in pages
            ],
            recommendations=build_recommendations(rules),
        )
        logger.debug(
            "Report for %s: %d rules, %d pages", batch_id, len(rules), len(pages),
        )
        return report

    async def generate_summary(self, batch_id: str) -> BatchSummary | None:
        """Compact summary published with the completion event."""
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            return None

        pages = await self._store.list_pages(batch_id)
        records = await self._completed_violations(batch_id, pages)
        rules = aggregate_by_rule(records)
        counts = _summary_counts(batch)
        return BatchSummary(
            total_pages=counts.total_pages,
            successful_pages=counts.successful_pages,
            failed_pages=counts.failed_pages,
            total_violations=counts.total_violations,
            violations_by_impact=count_by_impact(records),
            violations_by_rule={r.rule_id: r.count for r in rules},
            most_common_violations=rules[:MOST_COMMON_LIMIT],
        )


def _summary_counts(batch: BatchSession) -> ReportSummary:
    return ReportSummary(
        total_pages=batch.total_pages,
        successful_pages=batch.completed_pages,
        failed_pages=batch.failed_pages,
        total_violations=batch.total_violations,
    )
