# src/report/exporter.py — v1
"""Report export: indented JSON and a self-contained HTML page.

All user-controlled text (URLs, names, rule descriptions, error messages)
is HTML-escaped before it is placed in the page.
"""

from __future__ import annotations

import html
from pathlib import Path

from a11ybatch.report.models import BatchReport

DEFAULT_TOP_RECOMMENDATIONS = 10

_STYLE = """
:root {
  --critical: #dc2626; --serious: #ea580c; --moderate: #ca8a04; --minor: #2563eb;
  --success: #16a34a; --failed: #dc2626; --pending: #6b7280;
  --bg: #f9fafb; --card: #ffffff; --border: #e5e7eb; --text: #111827; --muted: #6b7280;
}
* { box-sizing: border-box; margin: 0; padding: 0; }
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;
       background: var(--bg); color: var(--text); line-height: 1.6; padding: 2rem; }
.container { max-width: 1200px; margin: 0 auto; }
header { margin-bottom: 2rem; }
h1 { font-size: 2rem; margin-bottom: 0.5rem; }
.meta { color: var(--muted); font-size: 0.875rem; }
.card { background: var(--card); border: 1px solid var(--border); border-radius: 0.5rem;
        padding: 1.5rem; margin-bottom: 1.5rem; }
.card h2 { font-size: 1.25rem; margin-bottom: 1rem; padding-bottom: 0.5rem;
           border-bottom: 1px solid var(--border); }
.summary-grid, .impact-grid { display: grid; grid-template-columns: repeat(4, 1fr); gap: 1rem; }
.summary-item, .impact-item { text-align: center; padding: 1rem; border-radius: 0.5rem; }
.value, .count { font-size: 2rem; font-weight: 700; }
.label { color: var(--muted); font-size: 0.875rem; }
.impact-critical { color: var(--critical); } .impact-serious { color: var(--serious); }
.impact-moderate { color: var(--moderate); } .impact-minor { color: var(--minor); }
.recommendation { border-left: 4px solid var(--border); padding: 0.75rem 1rem; margin-bottom: 1rem; }
.priority-high { border-left-color: var(--critical); }
.priority-medium { border-left-color: var(--serious); }
.priority-low { border-left-color: var(--minor); }
.action { margin-top: 0.25rem; }
table { width: 100%; border-collapse: collapse; }
th, td { text-align: left; padding: 0.5rem; border-bottom: 1px solid var(--border); vertical-align: top; }
td.url { word-break: break-all; }
.badge { display: inline-block; padding: 0 0.5rem; border-radius: 9999px; font-size: 0.75rem;
         border: 1px solid currentColor; }
.status-completed { color: var(--success); } .status-failed { color: var(--failed); }
.status-pending, .status-running, .status-skipped { color: var(--pending); }
footer { text-align: center; color: var(--muted); font-size: 0.75rem; margin-top: 2rem; }
"""


def escape_html(text: object) -> str:
    return html.escape("" if text is None else str(text), quote=True)


def format_duration(seconds: int) -> str:
    """Human-readable duration: "45 seconds", "2 min 5 sec", "3 minutes", "1h 20m"."""
    if seconds < 60:
        return f"{seconds} seconds"
    minutes, remaining_seconds = divmod(seconds, 60)
    if minutes < 60:
        if remaining_seconds:
            return f"{minutes} min {remaining_seconds} sec"
        return f"{minutes} minutes"
    hours, remaining_minutes = divmod(minutes, 60)
    return f"{hours}h {remaining_minutes}m"


def priority_band(rank: int) -> str:
    """CSS class for a recommendation by its zero-based rank."""
    if rank < 3:
        return "priority-high"
    if rank < 6:
        return "priority-medium"
    return "priority-low"


def export_report_json(report: BatchReport, indent: int = 2) -> str:
    """Serialize a report as JSON with camelCase keys."""
    return report.model_dump_json(by_alias=True, indent=indent)


def export_report_html(
    report: BatchReport, top_recommendations: int = DEFAULT_TOP_RECOMMENDATIONS,
) -> str:
    """Render a report as a standalone HTML document."""
    title = (
        f"Accessibility Report: {escape_html(report.name)}"
        if report.name
        else "Accessibility Report"
    )
    meta = [
        f"Generated: {report.completed_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        f"Duration: {format_duration(report.duration)}",
        f"Viewport: {escape_html(report.viewport)}",
        f"Status: {escape_html(report.status)}",
    ]
    if report.sitemap_url:
        meta.append(f"Sitemap: {escape_html(report.sitemap_url)}")

    sections = [
        _summary_section(report),
        _impact_section(report),
        _recommendations_section(report, top_recommendations),
        _rules_section(report),
        _pages_section(report),
    ]
    body = "\n".join(s for s in sections if s)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title}</title>
<style>{_STYLE}</style>
</head>
<body>
<div class="container">
<header>
<h1>{title}</h1>
<p class="meta">{" | ".join(meta)}</p>
</header>
{body}
<footer><p>Batch ID: {escape_html(report.batch_id)}</p></footer>
</div>
</body>
</html>
"""


def write_report(
    report: BatchReport,
    output_path: Path,
    fmt: str = "json",
    top_recommendations: int = DEFAULT_TOP_RECOMMENDATIONS,
) -> Path:
    """Write a report to disk as ``json`` or ``html``; returns the path."""
    output_path = Path(output_path).expanduser()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "html":
        content = export_report_html(report, top_recommendations=top_recommendations)
    elif fmt == "json":
        content = export_report_json(report)
    else:
        raise ValueError(f"Unsupported report format: {fmt!r}")
    output_path.write_text(content, encoding="utf-8")
    return output_path


def _summary_section(report: BatchReport) -> str:
    s = report.summary
    items = [
        (s.total_pages, "Total Pages", ""),
        (s.successful_pages, "Successful", "status-completed"),
        (s.failed_pages, "Failed", "status-failed"),
        (s.total_violations, "Total Violations", "impact-critical"),
    ]
    cells = "".join(
        f'<div class="summary-item"><div class="value {css}">{value}</div>'
        f'<div class="label">{label}</div></div>'
        for value, label, css in items
    )
    return f'<section class="card"><h2>Summary</h2><div class="summary-grid">{cells}</div></section>'


def _impact_section(report: BatchReport) -> str:
    cells = "".join(
        f'<div class="impact-item impact-{level}"><div class="count">'
        f'{report.violations_by_impact.get(level, 0)}</div>'
        f'<div class="label">{level.capitalize()}</div></div>'
        for level in ("critical", "serious", "moderate", "minor")
    )
    return (
        '<section class="card"><h2>Violations by Impact</h2>'
        f'<div class="impact-grid">{cells}</div></section>'
    )


def _recommendations_section(report: BatchReport, limit: int) -> str:
    if not report.recommendations:
        return ""
    items = []
    for rank, rec in enumerate(report.recommendations[:limit]):
        items.append(
            f'<div class="recommendation {priority_band(rank)}">'
            f"<h3>{escape_html(rec.rule_id)}</h3>"
            f'<p class="meta"><span class="badge impact-{rec.impact}">{rec.impact}</span> '
            f"{rec.count} occurrences across {rec.affected_pages} pages</p>"
            f'<p class="action">{escape_html(rec.suggested_action)}</p>'
            "</div>"
        )
    return f'<section class="card"><h2>Top Recommendations</h2>{"".join(items)}</section>'


def _rules_section(report: BatchReport) -> str:
    if not report.violations_by_rule:
        return ""
    rows = "".join(
        "<tr>"
        f"<td><strong>{escape_html(rule.rule_id)}</strong><br>"
        f"<small>{escape_html(rule.description)}</small></td>"
        f'<td><span class="badge impact-{rule.impact}">{rule.impact}</span></td>'
        f"<td>{rule.count}</td><td>{rule.affected_pages}</td>"
        "</tr>"
        for rule in report.violations_by_rule
    )
    return (
        '<section class="card"><h2>Violations by Rule</h2><table>'
        "<thead><tr><th>Rule</th><th>Impact</th><th>Count</th><th>Affected Pages</th></tr></thead>"
        f"<tbody>{rows}</tbody></table></section>"
    )


def _pages_section(report: BatchReport) -> str:
    rows = []
    for page in report.pages:
        if page.status == "completed":
            detail = str(page.violation_count)
        elif page.error_message:
            detail = escape_html(page.error_message)
        else:
            detail = "-"
        rows.append(
            "<tr>"
            f'<td class="url">{escape_html(page.url)}</td>'
            f'<td><span class="badge status-{page.status}">{page.status}</span></td>'
            f"<td>{detail}</td>"
            "</tr>"
        )
    return (
        f'<section class="card"><h2>Pages ({len(report.pages)})</h2><table>'
        "<thead><tr><th>URL</th><th>Status</th><th>Violations</th></tr></thead>"
        f'<tbody>{"".join(rows)}</tbody></table></section>'
    )
