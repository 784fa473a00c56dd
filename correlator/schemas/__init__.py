"""Pydantic schemas for findings, correlation output and SARIF documents."""

from correlator.schemas.correlation import (
    CorrelationGroup,
    CorrelationMetadata,
    CorrelationMetrics,
    CorrelationReport,
    ExtractionResult,
    RiskDistribution,
    RiskLevel,
    RiskSummary,
    SkippedInput,
    VulnerabilitySummary,
)
from correlator.schemas.findings import (
    SEVERITY_ORDER,
    SEVERITY_VALUES,
    SOURCE_TOOLS,
    FindingCategory,
    FindingLocation,
    SeverityLevel,
    SourceTool,
    VulnerabilityFinding,
)
from correlator.schemas.sarif import SarifLog, SarifRun

__all__ = [
    "SEVERITY_ORDER",
    "SEVERITY_VALUES",
    "SOURCE_TOOLS",
    "CorrelationGroup",
    "CorrelationMetadata",
    "CorrelationMetrics",
    "CorrelationReport",
    "ExtractionResult",
    "FindingCategory",
    "FindingLocation",
    "RiskDistribution",
    "RiskLevel",
    "RiskSummary",
    "SarifLog",
    "SarifRun",
    "SeverityLevel",
    "SkippedInput",
    "SourceTool",
    "VulnerabilityFinding",
    "VulnerabilitySummary",
]
