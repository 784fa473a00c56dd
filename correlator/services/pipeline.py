"""
End-to-end correlation run: discover inputs, extract, correlate, aggregate SARIF, write reports.

Stages pass typed in-memory results to each other; files are only read at the
start (scanner outputs) and written at the end (reports).
"""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from correlator import __version__
from correlator.core.config import Settings
from correlator.core.layout import OutputLayout, ensure_output_dirs
from correlator.schemas.correlation import (
    CorrelationMetadata,
    CorrelationReport,
    ExtractionResult,
    RiskSummary,
    SkippedInput,
    VulnerabilitySummary,
)
from correlator.schemas.findings import SourceTool
from correlator.schemas.sarif import SarifLog, SarifRun
from correlator.services.correlation import (
    category_breakdown,
    compute_metrics,
    correlate,
    requires_escalation,
    risk_distribution,
    severity_breakdown,
)
from correlator.services.discovery import discover_inputs, discover_sarif_inputs
from correlator.services.extractors import ExtractionError, load_tool_output
from correlator.services.html_report import write_html_report
from correlator.services.reports import (
    Generator,
    ReportContext,
    ReportOutcome,
    run_generators,
    write_api_response,
    write_correlation_report,
    write_correlation_summary,
    write_executive_summary,
    write_findings_csv,
    write_intermediate_artifacts,
    write_risk_summary,
    write_sarif_outputs,
)
from correlator.services.sarif import SarifInputError, aggregate_sarif, load_native_sarif

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# (name, generator, is_core) in write order; core outputs first.
REPORT_GENERATORS: list[tuple[str, Generator, bool]] = [
    ("correlation-report", write_correlation_report, True),
    ("correlation-summary", write_correlation_summary, True),
    ("risk-summary", write_risk_summary, False),
    ("intermediate-artifacts", write_intermediate_artifacts, False),
    ("sarif", write_sarif_outputs, False),
    ("executive-summary", write_executive_summary, False),
    ("api-response", write_api_response, False),
    ("csv", write_findings_csv, False),
    ("html", write_html_report, False),
]


class ExtractionStage(BaseModel):
    """Outcome of reading every discovered input."""

    extractions: list[ExtractionResult] = Field(default_factory=list)
    native_sarif_runs: list[SarifRun] = Field(default_factory=list)
    input_files: list[str] = Field(default_factory=list)
    skipped_inputs: list[SkippedInput] = Field(default_factory=list)


class PipelineResult(BaseModel):
    """Everything a run produced, plus the escalation decision for the exit code."""

    report: CorrelationReport
    risk_summary: RiskSummary
    sarif_log: SarifLog
    outcome: ReportOutcome

    @property
    def requires_escalation(self) -> bool:
        return self.risk_summary.requires_escalation


def utc_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)


def extract_all(layout: OutputLayout) -> ExtractionStage:
    """
    Read every tool input under the results directory.

    Never raises for bad inputs: missing tools, malformed JSON and schema
    mismatches are logged and recorded as skipped inputs.
    """
    stage = ExtractionStage()
    for tool, paths in discover_inputs(layout.base_dir).items():
        if not paths:
            logger.warning("No %s output found under %s; treating as zero findings", tool, layout.base_dir)
            stage.skipped_inputs.append(
                SkippedInput(path=f"{tool}-results.json", tool=tool, reason="missing input")
            )
            continue
        for path in paths:
            try:
                result = load_tool_output(path, tool, layout.base_dir)
            except ExtractionError as e:
                logger.warning("Skipping %s input: %s", tool, e.message)
                stage.skipped_inputs.append(
                    SkippedInput(path=layout.relative(path), tool=tool, reason=e.message)
                )
                continue
            logger.info("Extracted %d finding(s) from %s", len(result.findings), result.path)
            stage.extractions.append(result)
            stage.input_files.append(result.path)

    for path in discover_sarif_inputs(layout.base_dir):
        try:
            runs = load_native_sarif(path)
        except SarifInputError as e:
            logger.warning("Skipping SARIF input: %s", e.message)
            stage.skipped_inputs.append(SkippedInput(path=layout.relative(path), reason=e.message))
            continue
        stage.native_sarif_runs.extend(runs)
        stage.input_files.append(layout.relative(path))
    return stage


def _tools_processed(extractions: list[ExtractionResult]) -> list[SourceTool]:
    tools: list[SourceTool] = []
    for extraction in extractions:
        if extraction.tool not in tools:
            tools.append(extraction.tool)
    return tools


def _tool_versions(extractions: list[ExtractionResult]) -> dict[str, str | None]:
    versions: dict[str, str | None] = {}
    for extraction in extractions:
        if not versions.get(extraction.tool):
            versions[extraction.tool] = extraction.tool_version
    return versions


def build_report(
    stage: ExtractionStage,
    settings: Settings,
    scan_timestamp: str,
) -> tuple[CorrelationReport, RiskSummary]:
    """Correlate extracted findings and assemble the report documents."""
    findings = [f for extraction in stage.extractions for f in extraction.findings]
    groups = correlate(findings)
    distribution = risk_distribution(groups)

    metadata = CorrelationMetadata(
        engine_version=__version__,
        scan_timestamp=scan_timestamp,
        scan_results_dir=str(settings.SCAN_RESULTS_DIR),
        docker_repository=settings.DOCKER_REPOSITORY,
        advanced_mode=settings.ADVANCED_MODE,
        tools_processed=_tools_processed(stage.extractions),
        tool_versions=_tool_versions(stage.extractions),
        input_files=stage.input_files,
        skipped_inputs=stage.skipped_inputs,
        total_raw_findings=len(findings),
    )
    report = CorrelationReport(
        correlation_metadata=metadata,
        vulnerability_summary=VulnerabilitySummary(
            total_vulnerabilities=len(groups),
            total_raw_findings=len(findings),
            severity_breakdown=severity_breakdown(groups),
            category_breakdown=category_breakdown(groups),
            risk_distribution=distribution,
        ),
        correlation_metrics=compute_metrics(len(findings), groups),
        correlation_groups=groups,
    )
    risk_summary = RiskSummary(
        generated_at=scan_timestamp,
        risk_distribution=distribution,
        highest_priority_score=max((g.priority_score for g in groups), default=0.0),
        severity_threshold=settings.SEVERITY_THRESHOLD,
        requires_escalation=requires_escalation(groups, settings.SEVERITY_THRESHOLD),
    )
    return report, risk_summary


def run_correlation(
    settings: Settings,
    generators: list[tuple[str, Generator, bool]] | None = None,
    now: datetime | None = None,
) -> PipelineResult:
    """
    Run the full pipeline for settings.SCAN_RESULTS_DIR.

    Raises OutputDirectoryError when output directories cannot be created and
    ReportGenerationError when a core output cannot be written; every other
    failure is logged and absorbed.
    """
    layout = OutputLayout(settings.SCAN_RESULTS_DIR)
    ensure_output_dirs(layout)
    scan_timestamp = utc_timestamp(now)

    stage = extract_all(layout)
    report, risk_summary = build_report(stage, settings, scan_timestamp)
    sarif_log = aggregate_sarif(stage.extractions, stage.native_sarif_runs, scan_timestamp)

    metrics = report.correlation_metrics
    logger.info(
        "Correlated %d raw finding(s) into %d group(s) (%d duplicate(s) removed, %d multi-tool)",
        metrics.total_raw_findings,
        metrics.total_groups,
        metrics.duplicate_findings_removed,
        metrics.multi_tool_groups,
    )

    ctx = ReportContext(
        report=report,
        risk_summary=risk_summary,
        extractions=stage.extractions,
        sarif_log=sarif_log,
        top_findings_limit=settings.TOP_FINDINGS_LIMIT,
    )
    outcome = run_generators(ctx, layout, generators if generators is not None else REPORT_GENERATORS)
    if outcome.failed:
        logger.warning("Report generation finished with failures: %s", ", ".join(outcome.failed))
    return PipelineResult(
        report=report,
        risk_summary=risk_summary,
        sarif_log=sarif_log,
        outcome=outcome,
    )
