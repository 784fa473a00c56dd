"""
Report generators for a finished correlation run.

Each generator writes one output (or one family of outputs) and is run in
isolation: a failing generator is logged and the rest still run. Only the
core outputs (correlation report JSON and correlation summary text) are
required for the run to succeed.
"""

import csv
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from correlator.core.layout import OutputLayout
from correlator.schemas.correlation import (
    CorrelationGroup,
    CorrelationReport,
    ExtractionResult,
    RiskSummary,
)
from correlator.schemas.findings import SeverityLevel, VulnerabilityFinding
from correlator.schemas.sarif import SarifLog
from correlator.services.correlation import sort_by_priority
from correlator.services.sarif import TOOL_DRIVERS, render_sarif_summary, run_tool_name, write_sarif

logger = logging.getLogger(__name__)

CSV_HEADER = (
    "Timestamp",
    "Tool",
    "Category",
    "Severity",
    "Finding",
    "Package",
    "Installed_Version",
    "Fixed_Version",
    "File",
    "Line",
    "Status",
    "CVSS_Score",
    "CWE_ID",
    "Correlation_Group",
    "Priority_Score",
)

# Findings at or above MEDIUM need action; the rest are informational.
_OPEN_SEVERITIES: frozenset[str] = frozenset({"CRITICAL", "HIGH", "MEDIUM"})


class ReportGenerationError(Exception):
    """Raised when a core output could not be written; the run cannot succeed."""

    def __init__(self, message: str, failed: list[str] | None = None) -> None:
        self.message = message
        self.failed = failed or []
        super().__init__(message)


class ReportContext(BaseModel):
    """Everything the generators need, computed once by the pipeline."""

    report: CorrelationReport
    risk_summary: RiskSummary
    extractions: list[ExtractionResult] = Field(default_factory=list)
    sarif_log: SarifLog = Field(default_factory=SarifLog)
    top_findings_limit: int = Field(default=10, ge=1, le=100)

    @property
    def scan_timestamp(self) -> str:
        return self.report.correlation_metadata.scan_timestamp

    @property
    def repository(self) -> str:
        return self.report.correlation_metadata.docker_repository or "unknown"

    @property
    def groups(self) -> list[CorrelationGroup]:
        return self.report.correlation_groups

    def top_groups(self) -> list[CorrelationGroup]:
        return sort_by_priority(self.groups)[: self.top_findings_limit]


class ReportOutcome(BaseModel):
    """Which generators produced output and which failed."""

    written: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


def overall_risk_level(groups: list[CorrelationGroup]) -> SeverityLevel:
    """CRITICAL/HIGH from high-risk groups, MEDIUM from medium-risk groups, else LOW."""
    high = [g for g in groups if g.risk_level == "high_risk"]
    if any(g.normalized_severity == "CRITICAL" for g in high):
        return "CRITICAL"
    if high:
        return "HIGH"
    if any(g.risk_level == "medium_risk" for g in groups):
        return "MEDIUM"
    return "LOW"


def _write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def _dump_findings(findings: list[VulnerabilityFinding]) -> list[dict[str, Any]]:
    return [f.model_dump(mode="json") for f in findings]


def _group_record(group: CorrelationGroup) -> dict[str, Any]:
    """One representative record for a group, without the member payloads."""
    return {
        "canonical_id": group.canonical_id,
        "group_key": group.group_key,
        "title": group.title,
        "category": group.category,
        "normalized_severity": group.normalized_severity,
        "package_name": group.package_name,
        "installed_version": group.installed_version,
        "fixed_version": group.fixed_version,
        "cvss_score": group.cvss_score,
        "corroborating_tools": list(group.corroborating_tools),
        "member_count": len(group.members),
        "sources": [
            {"source_tool": m.source_tool, "id": m.id, "raw_severity": m.raw_severity}
            for m in group.members
        ],
    }


# Core outputs.


def write_correlation_report(ctx: ReportContext, layout: OutputLayout) -> Path:
    path = layout.correlation_report
    _write_json(path, ctx.report.model_dump(mode="json"))
    return path


def render_correlation_summary(ctx: ReportContext) -> str:
    """Human-readable correlation summary text."""
    meta = ctx.report.correlation_metadata
    summary = ctx.report.vulnerability_summary
    metrics = ctx.report.correlation_metrics
    dist = summary.risk_distribution
    lines = [
        "Vulnerability correlation summary",
        "=================================",
        f"Generated: {meta.scan_timestamp}",
        f"Results directory: {meta.scan_results_dir}",
        f"Repository: {ctx.repository}",
        f"Tools processed: {', '.join(meta.tools_processed) or 'none'}",
        "",
        "Correlation metrics",
        f"  Raw findings: {metrics.total_raw_findings}",
        f"  Correlated vulnerabilities: {metrics.total_groups}",
        f"  Duplicates removed: {metrics.duplicate_findings_removed}",
        f"  Multi-tool correlations: {metrics.multi_tool_groups}",
        f"  Dedup ratio: {metrics.dedup_ratio:.2%}",
        f"  Correlation accuracy: {metrics.correlation_accuracy:.2%}",
        "",
        "Severity breakdown",
    ]
    lines.extend(f"  {sev}: {count}" for sev, count in summary.severity_breakdown.items())
    lines.extend(
        [
            "",
            "Risk distribution",
            f"  High risk: {dist.high_risk}",
            f"  Medium risk: {dist.medium_risk}",
            f"  Low risk: {dist.low_risk}",
            "",
            f"Top {ctx.top_findings_limit} by priority",
        ]
    )
    top = ctx.top_groups()
    if not top:
        lines.append("  No findings.")
    for group in top:
        label = " ".join(filter(None, [group.canonical_id, group.package_name]))
        tools = ", ".join(group.corroborating_tools)
        lines.append(
            f"  [{group.priority_score:.2f}] {group.normalized_severity} {label} ({tools})"
        )
    if meta.skipped_inputs:
        lines.extend(["", "Skipped inputs"])
        lines.extend(f"  {s.path}: {s.reason}" for s in meta.skipped_inputs)
    return "\n".join(lines) + "\n"


def write_correlation_summary(ctx: ReportContext, layout: OutputLayout) -> Path:
    path = layout.correlation_summary
    path.write_text(render_correlation_summary(ctx), encoding="utf-8")
    return path


# Secondary outputs.


def write_risk_summary(ctx: ReportContext, layout: OutputLayout) -> Path:
    path = layout.risk_summary
    _write_json(path, ctx.risk_summary.model_dump(mode="json"))
    return path


def write_intermediate_artifacts(ctx: ReportContext, layout: OutputLayout) -> Path:
    """Per-tool raw and processed files plus the normalized, deduplicated and risk files."""
    raw_by_tool: dict[str, list[dict]] = {}
    findings_by_tool: dict[str, list[VulnerabilityFinding]] = {}
    for extraction in ctx.extractions:
        raw_by_tool.setdefault(extraction.tool, []).extend(extraction.raw_entries)
        findings_by_tool.setdefault(extraction.tool, []).extend(extraction.findings)
    for tool, entries in raw_by_tool.items():
        _write_json(layout.correlation_raw_dir / f"{tool}-vulnerabilities.json", entries)
    for tool, findings in findings_by_tool.items():
        _write_json(layout.correlation_processed_dir / f"{tool}-findings.json", _dump_findings(findings))

    all_findings = [f for extraction in ctx.extractions for f in extraction.findings]
    _write_json(layout.normalized_findings, _dump_findings(all_findings))
    _write_json(layout.deduplicated_findings, [_group_record(g) for g in ctx.groups])
    _write_json(
        layout.risk_assessment,
        [
            {
                "canonical_id": g.canonical_id,
                "title": g.title,
                "normalized_severity": g.normalized_severity,
                "package_name": g.package_name,
                "priority_score": g.priority_score,
                "risk_level": g.risk_level,
                "corroborating_tools": list(g.corroborating_tools),
                "corroborating_tool_count": g.corroborating_tool_count,
            }
            for g in sort_by_priority(ctx.groups)
        ],
    )
    return layout.correlation_dir


def write_sarif_outputs(ctx: ReportContext, layout: OutputLayout) -> Path:
    """Unified SARIF, one processed document per tool, and the SARIF summary text."""
    write_sarif(ctx.sarif_log, layout.unified_sarif)
    for run in ctx.sarif_log.runs:
        per_tool = SarifLog(runs=[run])
        write_sarif(per_tool, layout.sarif_processed_dir / f"{run_tool_name(run)}.sarif")
    layout.sarif_summary.write_text(
        render_sarif_summary(
            ctx.sarif_log, layout.relative(layout.unified_sarif), ctx.scan_timestamp
        ),
        encoding="utf-8",
    )
    return layout.unified_sarif


def _finding_line(group: CorrelationGroup) -> str:
    package = f" in {group.package_name}" if group.package_name else ""
    version = f" {group.installed_version}" if group.installed_version and package else ""
    fix = f" (fix: {group.fixed_version})" if group.fixed_version else ""
    tools = ", ".join(group.corroborating_tools)
    return (
        f"- **{group.canonical_id}**{package}{version}{fix}: {group.title or 'No description'}"
        f" - priority {group.priority_score:.2f}, reported by {tools}"
    )


def render_executive_summary(ctx: ReportContext) -> str:
    """Markdown executive summary: posture, counts, top N groups and next steps."""
    summary = ctx.report.vulnerability_summary
    metrics = ctx.report.correlation_metrics
    dist = summary.risk_distribution
    meta = ctx.report.correlation_metadata
    risk = overall_risk_level(ctx.groups)
    lines = [
        "# Security Executive Summary",
        f"Generated: {ctx.scan_timestamp}",
        f"Repository: {ctx.repository}",
        "Scan Type: Multi-Tool Vulnerability Correlation",
        "",
        "## Security Posture",
        f"- **Risk Level**: {risk}",
        f"- **Escalation Required**: {'YES' if ctx.risk_summary.requires_escalation else 'NO'}"
        f" (threshold {ctx.risk_summary.severity_threshold})",
        f"- **Tools Processed**: {len(meta.tools_processed)} ({', '.join(meta.tools_processed) or 'none'})",
        "",
        "## Findings",
        f"- **Unique Vulnerabilities**: {summary.total_vulnerabilities}",
        f"- **Raw Tool Findings**: {summary.total_raw_findings}",
        f"- **Duplicates Removed**: {metrics.duplicate_findings_removed}",
        f"- **Confirmed by Multiple Tools**: {metrics.multi_tool_groups}",
        "",
        "| Severity | Count |",
        "|---|---|",
    ]
    lines.extend(f"| {sev} | {count} |" for sev, count in summary.severity_breakdown.items())
    lines.extend(
        [
            "",
            "| Risk | Count |",
            "|---|---|",
            f"| High | {dist.high_risk} |",
            f"| Medium | {dist.medium_risk} |",
            f"| Low | {dist.low_risk} |",
            "",
            f"## Top {ctx.top_findings_limit} Priority Findings",
        ]
    )
    top = ctx.top_groups()
    if top:
        lines.extend(_finding_line(g) for g in top)
    else:
        lines.append("No findings were reported by the processed tools.")
    lines.extend(["", "## Next Steps"])
    if dist.high_risk:
        lines.append(f"1. Remediate the {dist.high_risk} high-risk finding(s) immediately.")
    if dist.medium_risk:
        lines.append(f"{2 if dist.high_risk else 1}. Schedule fixes for {dist.medium_risk} medium-risk finding(s).")
    if not dist.high_risk and not dist.medium_risk:
        lines.append("1. No action required; continue scheduled scanning.")
    if meta.skipped_inputs:
        lines.extend(["", "## Skipped Inputs"])
        lines.extend(f"- `{s.path}`: {s.reason}" for s in meta.skipped_inputs)
    return "\n".join(lines) + "\n"


def write_executive_summary(ctx: ReportContext, layout: OutputLayout) -> Path:
    path = layout.executive_summary
    path.write_text(render_executive_summary(ctx), encoding="utf-8")
    return path


def _recommendations(ctx: ReportContext) -> list[dict[str, str]]:
    dist = ctx.report.vulnerability_summary.risk_distribution
    recommendations = []
    if dist.high_risk:
        recommendations.append(
            {
                "priority": "IMMEDIATE",
                "action": f"Remediate {dist.high_risk} high-risk vulnerabilities",
                "timeline": "0-7 days",
            }
        )
    if dist.medium_risk:
        recommendations.append(
            {
                "priority": "SHORT_TERM",
                "action": f"Review {dist.medium_risk} medium-risk findings",
                "timeline": "1-4 weeks",
            }
        )
    if dist.low_risk:
        recommendations.append(
            {
                "priority": "LONG_TERM",
                "action": f"Track {dist.low_risk} low-risk findings",
                "timeline": "1-3 months",
            }
        )
    return recommendations


def build_api_response(ctx: ReportContext, layout: OutputLayout) -> dict[str, Any]:
    """JSON document for dashboards and API consumers."""
    summary = ctx.report.vulnerability_summary
    meta = ctx.report.correlation_metadata
    severities = summary.severity_breakdown
    categories: dict[str, dict[str, Any]] = {}
    for group in ctx.groups:
        entry = categories.setdefault(group.category, {"findings": 0, "tools": []})
        entry["findings"] += 1
        for tool in group.corroborating_tools:
            if tool not in entry["tools"]:
                entry["tools"].append(tool)
    return {
        "status": "success",
        "timestamp": ctx.scan_timestamp,
        "repository": ctx.repository,
        "scan_version": meta.engine_version,
        "summary": {
            "risk_level": overall_risk_level(ctx.groups),
            "requires_escalation": ctx.risk_summary.requires_escalation,
            "total_findings": summary.total_vulnerabilities,
            "total_raw_findings": summary.total_raw_findings,
            "critical_count": severities.get("CRITICAL", 0),
            "high_count": severities.get("HIGH", 0),
            "medium_count": severities.get("MEDIUM", 0),
            "low_count": severities.get("LOW", 0),
            "info_count": severities.get("INFO", 0),
            "tools_executed": len(meta.tools_processed),
            "risk_distribution": summary.risk_distribution.model_dump(),
        },
        "categories": categories,
        "recommendations": _recommendations(ctx),
        "artifacts": {
            "sarif_report": layout.relative(layout.unified_sarif),
            "html_report": layout.relative(layout.html_report),
            "executive_summary": layout.relative(layout.executive_summary),
            "csv_export": layout.relative(layout.findings_csv),
            "correlation_report": layout.relative(layout.correlation_report),
        },
    }


def write_api_response(ctx: ReportContext, layout: OutputLayout) -> Path:
    path = layout.api_response
    _write_json(path, build_api_response(ctx, layout))
    return path


def csv_rows(ctx: ReportContext) -> list[list[str]]:
    """One row per finding, annotated with its correlation group."""
    rows = []
    for group in ctx.groups:
        for f in group.members:
            location = f.location
            rows.append(
                [
                    ctx.scan_timestamp,
                    TOOL_DRIVERS[f.source_tool][0],
                    f.category,
                    f.normalized_severity,
                    f.title or f.id,
                    f.package_name or "",
                    f.installed_version or "",
                    f.fixed_version or "",
                    location.path if location else "",
                    str(location.line) if location and location.line is not None else "",
                    "OPEN" if f.normalized_severity in _OPEN_SEVERITIES else "INFO",
                    f"{f.cvss_score:.1f}" if f.cvss_score is not None else "",
                    f.cwe_id or "",
                    group.canonical_id,
                    f"{group.priority_score:.2f}",
                ]
            )
    return rows


def write_findings_csv(ctx: ReportContext, layout: OutputLayout) -> Path:
    path = layout.findings_csv
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(CSV_HEADER)
        writer.writerows(csv_rows(ctx))
    return path


Generator = Callable[[ReportContext, OutputLayout], Path]


def run_generators(
    ctx: ReportContext,
    layout: OutputLayout,
    generators: list[tuple[str, Generator, bool]],
) -> ReportOutcome:
    """
    Run each (name, generator, is_core) independently.

    A failing generator is logged with its traceback and the rest still run.
    Raises ReportGenerationError afterwards if any core generator failed.
    """
    outcome = ReportOutcome()
    failed_core: list[str] = []
    for name, generator, is_core in generators:
        try:
            path = generator(ctx, layout)
        except Exception as e:
            logger.exception("Report generator %s failed: %s", name, e)
            outcome.failed.append(name)
            if is_core:
                failed_core.append(name)
            continue
        outcome.written.append(name)
        logger.info("Generated %s: %s", name, layout.relative(path))
    if failed_core:
        raise ReportGenerationError(
            f"Core report output(s) could not be written: {', '.join(failed_core)}",
            failed=outcome.failed,
        )
    return outcome

