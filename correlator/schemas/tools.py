"""Typed input schemas for each scanner's native JSON output.

Only the fields the extractors read are declared; everything else is ignored.
Each model keeps the tool's own field names (via aliases where they are not
valid Python identifiers or use PascalCase).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _ToolModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


# Trivy: {"Results": [{"Target", "Vulnerabilities": [...], "Misconfigurations": [...]}]}


class TrivyCvssEntry(_ToolModel):
    v3_score: float | None = Field(default=None, alias="V3Score")
    v2_score: float | None = Field(default=None, alias="V2Score")


class TrivyVulnerability(_ToolModel):
    vulnerability_id: str = Field(..., alias="VulnerabilityID")
    pkg_name: str | None = Field(default=None, alias="PkgName")
    installed_version: str | None = Field(default=None, alias="InstalledVersion")
    fixed_version: str | None = Field(default=None, alias="FixedVersion")
    severity: str | None = Field(default=None, alias="Severity")
    title: str | None = Field(default=None, alias="Title")
    description: str | None = Field(default=None, alias="Description")
    cvss: dict[str, TrivyCvssEntry] | None = Field(default=None, alias="CVSS")
    cwe_ids: list[str] | None = Field(default=None, alias="CweIDs")


class TrivyCauseMetadata(_ToolModel):
    start_line: int | None = Field(default=None, alias="StartLine")


class TrivyMisconfiguration(_ToolModel):
    id: str = Field(..., alias="ID")
    title: str | None = Field(default=None, alias="Title")
    description: str | None = Field(default=None, alias="Description")
    message: str | None = Field(default=None, alias="Message")
    severity: str | None = Field(default=None, alias="Severity")
    cause_metadata: TrivyCauseMetadata | None = Field(default=None, alias="CauseMetadata")


class TrivyResult(_ToolModel):
    target: str | None = Field(default=None, alias="Target")
    vulnerabilities: list[TrivyVulnerability] | None = Field(default=None, alias="Vulnerabilities")
    misconfigurations: list[TrivyMisconfiguration] | None = Field(
        default=None, alias="Misconfigurations"
    )


class TrivyVersionInfo(_ToolModel):
    version: str | None = Field(default=None, alias="Version")


class TrivyReport(_ToolModel):
    results: list[TrivyResult] | None = Field(default=None, alias="Results")
    trivy: TrivyVersionInfo | None = Field(default=None, alias="Trivy")


# Grype: {"matches": [{"vulnerability": {...}, "artifact": {...}}], "descriptor": {...}}


class GrypeCvssMetrics(_ToolModel):
    base_score: float | None = Field(default=None, alias="baseScore")


class GrypeCvss(_ToolModel):
    metrics: GrypeCvssMetrics | None = None


class GrypeFix(_ToolModel):
    versions: list[str] = Field(default_factory=list)
    state: str | None = None


class GrypeVulnerability(_ToolModel):
    id: str
    severity: str | None = None
    description: str | None = None
    fix: GrypeFix | None = None
    cvss: list[GrypeCvss] = Field(default_factory=list)


class GrypeRelatedVulnerability(_ToolModel):
    id: str


class GrypeLocation(_ToolModel):
    path: str | None = None


class GrypeArtifact(_ToolModel):
    name: str | None = None
    version: str | None = None
    locations: list[GrypeLocation] = Field(default_factory=list)


class GrypeMatch(_ToolModel):
    vulnerability: GrypeVulnerability
    related_vulnerabilities: list[GrypeRelatedVulnerability] = Field(
        default_factory=list, alias="relatedVulnerabilities"
    )
    artifact: GrypeArtifact = Field(default_factory=GrypeArtifact)


class GrypeDescriptor(_ToolModel):
    name: str | None = None
    version: str | None = None


class GrypeReport(_ToolModel):
    matches: list[GrypeMatch] = Field(default_factory=list)
    descriptor: GrypeDescriptor | None = None


# Safety: flat array of dicts, {"vulnerabilities": [...]} or legacy list rows.


class SafetyCvssV3(_ToolModel):
    base_score: float | None = None
    base_severity: str | None = None


class SafetySeverity(_ToolModel):
    cvssv3: SafetyCvssV3 | None = None
    source: str | None = None


class SafetyVulnerability(_ToolModel):
    vulnerability_id: str
    package: str | None = None
    package_name: str | None = None
    installed_version: str | None = None
    analyzed_version: str | None = None
    fixed_versions: list[str] = Field(default_factory=list)
    vulnerability: str | None = None
    advisory: str | None = None
    cve: str | None = Field(default=None, alias="CVE")
    severity: SafetySeverity | str | None = None


class SafetyReport(_ToolModel):
    vulnerabilities: list[SafetyVulnerability] = Field(default_factory=list)


# Safety 3 `scan`: {"meta": {...}, "scan_results": {"projects": [{"files": [{"results": {"dependencies": [...]}}]}]}}.


class SafetyKnownVulnerability(_ToolModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    vulnerable_spec: str | None = None


class SafetyRemediation(_ToolModel):
    recommended: str | None = None
    other_recommended: list[str] = Field(default_factory=list)


class SafetySpecificationVulnerabilities(_ToolModel):
    known_vulnerabilities: list[SafetyKnownVulnerability] = Field(default_factory=list)
    remediation: SafetyRemediation | None = None


class SafetySpecification(_ToolModel):
    raw: str | None = None
    vulnerabilities: SafetySpecificationVulnerabilities = Field(
        default_factory=SafetySpecificationVulnerabilities
    )


class SafetyDependency(_ToolModel):
    name: str
    specifications: list[SafetySpecification] = Field(default_factory=list)


class SafetyFileResults(_ToolModel):
    dependencies: list[SafetyDependency] = Field(default_factory=list)


class SafetyScanFile(_ToolModel):
    location: str | None = None
    results: SafetyFileResults = Field(default_factory=SafetyFileResults)


class SafetyProject(_ToolModel):
    files: list[SafetyScanFile] = Field(default_factory=list)


class SafetyScanResults(_ToolModel):
    projects: list[SafetyProject] = Field(default_factory=list)


class SafetyTelemetry(_ToolModel):
    safety_version: str | None = None


class SafetyScanMeta(_ToolModel):
    telemetry: SafetyTelemetry | None = None


class SafetyScanReport(_ToolModel):
    meta: SafetyScanMeta | None = None
    scan_results: SafetyScanResults


# pip-audit: {"dependencies": [{"name", "version", "vulns": [...]}]} or a flat list of dependencies.


class PipAuditVuln(_ToolModel):
    id: str
    fix_versions: list[str] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)
    description: str | None = None


class PipAuditDependency(_ToolModel):
    name: str
    version: str | None = None
    vulns: list[PipAuditVuln] = Field(default_factory=list)


class PipAuditReport(_ToolModel):
    dependencies: list[PipAuditDependency] = Field(default_factory=list)


# Hadolint: flat array of {"code", "message", "level", "line", "file"}.


class HadolintIssue(_ToolModel):
    code: str
    message: str | None = None
    level: str | None = None
    line: int | None = None
    column: int | None = None
    file: str | None = None


# Bandit: {"results": [{"test_id", "issue_severity", "filename", ...}]}.


class BanditCwe(_ToolModel):
    id: int | str | None = None


class BanditIssue(_ToolModel):
    test_id: str
    test_name: str | None = None
    issue_text: str | None = None
    issue_severity: str | None = None
    issue_confidence: str | None = None
    filename: str | None = None
    line_number: int | None = None
    issue_cwe: BanditCwe | None = None


class BanditReport(_ToolModel):
    results: list[BanditIssue] = Field(default_factory=list)


# Semgrep: {"version", "results": [{"check_id", "path", "start", "extra"}]}.


class SemgrepPosition(_ToolModel):
    line: int | None = None


class SemgrepExtra(_ToolModel):
    message: str | None = None
    severity: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SemgrepResult(_ToolModel):
    check_id: str
    path: str | None = None
    start: SemgrepPosition | None = None
    extra: SemgrepExtra = Field(default_factory=SemgrepExtra)


class SemgrepReport(_ToolModel):
    version: str | None = None
    results: list[SemgrepResult] = Field(default_factory=list)
