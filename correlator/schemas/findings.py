"""Pydantic schemas for normalized scanner findings."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# Canonical ordinal severity shared by every stage of the pipeline.
SeverityLevel = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW", "INFO"]

SEVERITY_VALUES: frozenset[str] = frozenset({"CRITICAL", "HIGH", "MEDIUM", "LOW", "INFO"})

# Most severe first; index is the rank used for comparisons.
SEVERITY_ORDER: tuple[SeverityLevel, ...] = ("CRITICAL", "HIGH", "MEDIUM", "LOW", "INFO")

SourceTool = Literal["trivy", "grype", "safety", "pip-audit", "hadolint", "bandit", "semgrep"]

# Processing order of the extractors; defines discovery order across tools.
SOURCE_TOOLS: tuple[SourceTool, ...] = (
    "trivy",
    "grype",
    "safety",
    "pip-audit",
    "hadolint",
    "bandit",
    "semgrep",
)

FindingCategory = Literal["vulnerability", "static-analysis", "configuration/lint"]


def severity_rank(severity: str) -> int:
    """Rank of a canonical severity: 0 for CRITICAL up to 4 for INFO."""
    return SEVERITY_ORDER.index(severity)  # type: ignore[arg-type]


def more_severe(a: SeverityLevel, b: SeverityLevel) -> SeverityLevel:
    """Return whichever of two severities is more severe."""
    return a if severity_rank(a) <= severity_rank(b) else b


def _validate_cvss(value: float | None) -> float | None:
    """Ensure CVSS score is in [0, 10] when present."""
    if value is None:
        return None
    if not 0 <= value <= 10:
        raise ValueError("cvss_score must be between 0 and 10")
    return value


class FindingLocation(BaseModel):
    """File path and optional line a finding points at."""

    path: str = Field(
        ...,
        min_length=1,
        description="File path or scan target (e.g. Dockerfile, requirements.txt, image name).",
    )
    line: int | None = Field(
        default=None,
        ge=0,
        description="1-based line number when the tool reports one.",
    )


class VulnerabilityFinding(BaseModel):
    """One tool-reported vulnerability or lint issue in the common shape."""

    id: str = Field(
        ...,
        min_length=1,
        description="Tool-reported identifier (CVE, advisory number, or rule code).",
    )
    source_tool: SourceTool = Field(
        ...,
        description="Scanner that produced this finding.",
    )
    category: FindingCategory = Field(
        default="vulnerability",
        description="Report category: vulnerability, static-analysis, or configuration/lint.",
    )
    cve_id: str | None = Field(
        default=None,
        description="CVE identifier found in the id or aliases, upper-cased.",
    )
    package_name: str | None = Field(
        default=None,
        description="Affected package; absent for lint and static-analysis findings.",
    )
    installed_version: str | None = Field(default=None)
    fixed_version: str | None = Field(default=None)
    raw_severity: str | None = Field(
        default=None,
        description="Severity exactly as the tool reported it; None when the tool reports none.",
    )
    normalized_severity: SeverityLevel = Field(
        ...,
        description="Canonical severity derived from raw_severity, source_tool and cvss_score.",
    )
    title: str = Field(default="")
    description: str = Field(default="")
    location: FindingLocation | None = Field(default=None)
    cvss_score: float | None = Field(
        default=None,
        description="CVSS score in range 0.0-10.0.",
    )
    cwe_id: str | None = Field(
        default=None,
        description="CWE identifier (e.g. CWE-79) when the tool reports one.",
    )
    raw_payload: dict[str, Any] | None = Field(
        default=None,
        exclude=True,
        description="Original tool entry for traceability; never serialized into reports.",
    )

    @field_validator("cvss_score")
    @classmethod
    def validate_cvss_if_present(cls, v: float | None) -> float | None:
        return _validate_cvss(v)

    @property
    def has_package(self) -> bool:
        return bool(self.package_name and self.package_name.strip())
