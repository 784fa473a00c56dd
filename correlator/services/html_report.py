"""Render the unified HTML security report with Jinja2."""

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from correlator.core.layout import OutputLayout
from correlator.services.reports import ReportContext, build_api_response, overall_risk_level

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
TEMPLATE_NAME = "unified_report.html.j2"

# CSS class per canonical severity.
SEVERITY_CLASSES = {
    "CRITICAL": "sev-critical",
    "HIGH": "sev-high",
    "MEDIUM": "sev-medium",
    "LOW": "sev-low",
    "INFO": "sev-info",
}


@lru_cache
def get_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml", "j2"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_html_report(ctx: ReportContext, layout: OutputLayout) -> str:
    """Render the report; every value coming from tool output is autoescaped."""
    template = get_environment().get_template(TEMPLATE_NAME)
    return template.render(
        timestamp=ctx.scan_timestamp,
        repository=ctx.repository,
        risk_level=overall_risk_level(ctx.groups),
        risk_summary=ctx.risk_summary,
        summary=ctx.report.vulnerability_summary,
        metrics=ctx.report.correlation_metrics,
        metadata=ctx.report.correlation_metadata,
        top_groups=ctx.top_groups(),
        top_limit=ctx.top_findings_limit,
        groups=ctx.groups,
        artifacts=build_api_response(ctx, layout)["artifacts"],
        severity_classes=SEVERITY_CLASSES,
    )


def write_html_report(ctx: ReportContext, layout: OutputLayout) -> Path:
    path = layout.html_report
    path.write_text(render_html_report(ctx, layout), encoding="utf-8")
    return path
