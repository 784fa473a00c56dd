"""Pydantic schemas for correlation groups, run metadata, metrics and report documents."""

from typing import Literal

from pydantic import BaseModel, Field

from correlator.schemas.findings import (
    FindingCategory,
    SeverityLevel,
    SourceTool,
    VulnerabilityFinding,
)

RiskLevel = Literal["high_risk", "medium_risk", "low_risk"]


class SkippedInput(BaseModel):
    """An input that contributed no findings, and why."""

    path: str = Field(..., description="Input path relative to the results directory.")
    tool: SourceTool | None = Field(default=None)
    reason: str = Field(..., min_length=1)


class ExtractionResult(BaseModel):
    """Findings extracted from one tool output file."""

    tool: SourceTool
    path: str = Field(..., description="Input path relative to the results directory.")
    findings: list[VulnerabilityFinding] = Field(default_factory=list)
    tool_version: str | None = Field(default=None)
    raw_entries: list[dict] = Field(
        default_factory=list,
        description="Verbatim source entries, one per finding.",
    )


class CorrelationGroup(BaseModel):
    """One or more findings judged to describe the same underlying issue."""

    canonical_id: str = Field(
        ...,
        min_length=1,
        description="CVE identifier when any member carries one, else the first member's id.",
    )
    group_key: str = Field(
        ...,
        description="Grouping key the members share (CVE + package, or package composite, or rule + location).",
    )
    normalized_severity: SeverityLevel = Field(
        ...,
        description="Most severe normalized severity among the members.",
    )
    category: FindingCategory = Field(..., description="Category of the first member.")
    package_name: str | None = Field(default=None)
    installed_version: str | None = Field(default=None)
    fixed_version: str | None = Field(default=None)
    cvss_score: float | None = Field(
        default=None,
        ge=0,
        le=10,
        description="Highest CVSS score among the members.",
    )
    title: str = Field(default="")
    corroborating_tools: list[SourceTool] = Field(
        ...,
        min_length=1,
        description="Distinct tools that reported a member, in discovery order.",
    )
    priority_score: float = Field(..., ge=0)
    risk_level: RiskLevel
    members: list[VulnerabilityFinding] = Field(..., min_length=1)

    @property
    def corroborating_tool_count(self) -> int:
        return len(self.corroborating_tools)


class RiskDistribution(BaseModel):
    """Group counts per risk bucket."""

    high_risk: int = Field(default=0, ge=0)
    medium_risk: int = Field(default=0, ge=0)
    low_risk: int = Field(default=0, ge=0)


class CorrelationMetrics(BaseModel):
    """Deduplication effectiveness for one run."""

    total_raw_findings: int = Field(..., ge=0)
    total_groups: int = Field(..., ge=0)
    duplicate_findings_removed: int = Field(..., ge=0)
    multi_tool_groups: int = Field(..., ge=0)
    dedup_ratio: float = Field(
        ...,
        ge=0,
        le=1,
        description="duplicate_findings_removed / total_raw_findings (0 when there are no findings).",
    )
    correlation_accuracy: float = Field(
        ...,
        ge=0,
        le=1,
        description="1 - duplicate_findings_removed / total_raw_findings (1 when there are no findings).",
    )


class CorrelationMetadata(BaseModel):
    """Provenance of one correlation run."""

    engine_version: str
    scan_timestamp: str = Field(..., description="UTC ISO-8601 timestamp of the run.")
    scan_results_dir: str
    docker_repository: str = Field(default="")
    advanced_mode: bool = Field(default=False)
    tools_processed: list[SourceTool] = Field(default_factory=list)
    tool_versions: dict[str, str | None] = Field(default_factory=dict)
    input_files: list[str] = Field(default_factory=list)
    skipped_inputs: list[SkippedInput] = Field(default_factory=list)
    total_raw_findings: int = Field(..., ge=0)


class VulnerabilitySummary(BaseModel):
    """Counts over the correlated set."""

    total_vulnerabilities: int = Field(..., ge=0, description="Number of correlation groups.")
    total_raw_findings: int = Field(..., ge=0)
    severity_breakdown: dict[SeverityLevel, int]
    category_breakdown: dict[str, int]
    risk_distribution: RiskDistribution


class CorrelationReport(BaseModel):
    """Full machine-readable correlation output."""

    correlation_metadata: CorrelationMetadata
    vulnerability_summary: VulnerabilitySummary
    correlation_metrics: CorrelationMetrics
    correlation_groups: list[CorrelationGroup]


class RiskSummary(BaseModel):
    """Risk bucket counts and the escalation decision."""

    generated_at: str
    risk_distribution: RiskDistribution
    highest_priority_score: float = Field(default=0.0, ge=0)
    severity_threshold: SeverityLevel
    requires_escalation: bool
