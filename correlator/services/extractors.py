"""Parse each scanner's native JSON output into VulnerabilityFinding records.

One typed extractor per tool; every extractor returns the findings (each
carrying its verbatim source entry in raw_payload) and the tool version when
the format reports one.
"""

import json
import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from correlator.schemas.correlation import ExtractionResult
from correlator.schemas.findings import (
    FindingCategory,
    FindingLocation,
    SourceTool,
    VulnerabilityFinding,
)
from correlator.schemas.tools import (
    BanditReport,
    GrypeReport,
    HadolintIssue,
    PipAuditDependency,
    PipAuditReport,
    SafetyScanReport,
    SafetySeverity,
    SafetySpecification,
    SafetyVulnerability,
    SemgrepReport,
    TrivyCvssEntry,
    TrivyReport,
)
from correlator.services.normalize import first_cve, normalize_severity

logger = logging.getLogger(__name__)

# Preferred CVSS sources in Trivy output, most authoritative first.
TRIVY_CVSS_SOURCES = ("nvd", "redhat", "ghsa")

TITLE_MAX_LENGTH = 120

_CWE_PATTERN = re.compile(r"CWE-\d+", re.IGNORECASE)

# Version pinned in a requirement specifier such as "jinja2==2.4.1".
_PINNED_VERSION_PATTERN = re.compile(r"===?\s*([^\s;,]+)")

ToolExtractor = Callable[[Any], tuple[list[VulnerabilityFinding], str | None]]


class ExtractionError(Exception):
    """Raised when a tool output file cannot be turned into findings (missing, malformed, wrong shape)."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)


def _str_or_none(value: Any) -> str | None:
    """Return stripped string or None; coerce non-str to str if sensible."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    return str(value).strip() or None


def _title_from(text: str | None, fallback: str) -> str:
    """First line of text, truncated to TITLE_MAX_LENGTH; fallback when empty."""
    if not text or not text.strip():
        return fallback
    first_line = text.strip().splitlines()[0].strip()
    if len(first_line) <= TITLE_MAX_LENGTH:
        return first_line
    return first_line[: TITLE_MAX_LENGTH - 3].rstrip() + "..."


def _valid_cvss(score: float | None) -> float | None:
    """Drop out-of-range CVSS scores instead of failing the whole file."""
    if score is None:
        return None
    if 0 <= score <= 10:
        return float(score)
    logger.debug("Ignoring out-of-range CVSS score %s", score)
    return None


def _extract_cwe(value: Any) -> str | None:
    """Normalize a CWE reference (int, 'CWE-79', 'CWE-79: ...', or list thereof) to 'CWE-N'."""
    if value is None:
        return None
    if isinstance(value, list):
        for item in value:
            cwe = _extract_cwe(item)
            if cwe:
                return cwe
        return None
    if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
        return f"CWE-{str(value).strip()}"
    match = _CWE_PATTERN.search(str(value))
    return match.group(0).upper() if match else None


def _location(path: str | None, line: int | None = None) -> FindingLocation | None:
    path = _str_or_none(path)
    if not path:
        return None
    return FindingLocation(path=path, line=line if line is not None and line >= 0 else None)


def build_finding(
    source_tool: SourceTool,
    *,
    finding_id: str,
    raw_severity: str | None,
    payload: dict[str, Any],
    category: FindingCategory = "vulnerability",
    cvss_score: float | None = None,
    cve_candidates: list[str | None] | None = None,
    package_name: str | None = None,
    installed_version: str | None = None,
    fixed_version: str | None = None,
    title: str | None = None,
    description: str | None = None,
    location: FindingLocation | None = None,
    cwe_id: str | None = None,
) -> VulnerabilityFinding:
    """Assemble one finding, normalizing severity and resolving the CVE identifier."""
    cvss = _valid_cvss(cvss_score)
    raw = _str_or_none(raw_severity)
    return VulnerabilityFinding(
        id=finding_id,
        source_tool=source_tool,
        category=category,
        cve_id=first_cve([finding_id, *(cve_candidates or [])]),
        package_name=_str_or_none(package_name),
        installed_version=_str_or_none(installed_version),
        fixed_version=_str_or_none(fixed_version),
        raw_severity=raw,
        normalized_severity=normalize_severity(source_tool, raw, cvss),
        title=title or finding_id,
        description=(description or "").strip(),
        location=location,
        cvss_score=cvss,
        cwe_id=cwe_id,
        raw_payload=payload,
    )


def _trivy_cvss(cvss: dict[str, TrivyCvssEntry] | None) -> float | None:
    """First V3 (else V2) score, preferring nvd, then redhat, then ghsa, then any other source."""
    if not cvss:
        return None
    ordered = [k for k in TRIVY_CVSS_SOURCES if k in cvss] + [
        k for k in cvss if k not in TRIVY_CVSS_SOURCES
    ]
    for source in ordered:
        entry = cvss[source]
        score = entry.v3_score if entry.v3_score is not None else entry.v2_score
        if score is not None:
            return score
    return None


def extract_trivy(data: Any) -> tuple[list[VulnerabilityFinding], str | None]:
    """Trivy: Results[].Vulnerabilities[] plus Results[].Misconfigurations[]."""
    if not isinstance(data, dict):
        raise ExtractionError("Trivy output must be a JSON object with a 'Results' array")
    report = TrivyReport.model_validate(data)
    raw_results = data.get("Results") or []
    findings: list[VulnerabilityFinding] = []
    for result, raw_result in zip(report.results or [], raw_results):
        target = result.target
        raw_vulns = raw_result.get("Vulnerabilities") or []
        for vuln, raw in zip(result.vulnerabilities or [], raw_vulns):
            findings.append(
                build_finding(
                    "trivy",
                    finding_id=vuln.vulnerability_id,
                    raw_severity=vuln.severity,
                    payload=raw,
                    cvss_score=_trivy_cvss(vuln.cvss),
                    package_name=vuln.pkg_name,
                    installed_version=vuln.installed_version,
                    fixed_version=vuln.fixed_version,
                    title=_title_from(vuln.title or vuln.description, vuln.vulnerability_id),
                    description=vuln.description,
                    location=_location(target),
                    cwe_id=_extract_cwe(vuln.cwe_ids),
                )
            )
        raw_misconfigs = raw_result.get("Misconfigurations") or []
        for misconfig, raw in zip(result.misconfigurations or [], raw_misconfigs):
            line = misconfig.cause_metadata.start_line if misconfig.cause_metadata else None
            findings.append(
                build_finding(
                    "trivy",
                    finding_id=misconfig.id,
                    raw_severity=misconfig.severity,
                    payload=raw,
                    category="configuration/lint",
                    title=_title_from(misconfig.title or misconfig.message, misconfig.id),
                    description=misconfig.message or misconfig.description,
                    location=_location(target, line),
                )
            )
    version = report.trivy.version if report.trivy else None
    return findings, version


def extract_grype(data: Any) -> tuple[list[VulnerabilityFinding], str | None]:
    """Grype: matches[] with vulnerability, artifact and relatedVulnerabilities."""
    if not isinstance(data, dict):
        raise ExtractionError("Grype output must be a JSON object with a 'matches' array")
    report = GrypeReport.model_validate(data)
    findings: list[VulnerabilityFinding] = []
    for match, raw in zip(report.matches, data.get("matches") or []):
        vuln = match.vulnerability
        scores = [
            c.metrics.base_score
            for c in vuln.cvss
            if c.metrics is not None and c.metrics.base_score is not None
        ]
        fixed = vuln.fix.versions[0] if vuln.fix and vuln.fix.versions else None
        path = match.artifact.locations[0].path if match.artifact.locations else None
        findings.append(
            build_finding(
                "grype",
                finding_id=vuln.id,
                raw_severity=vuln.severity,
                payload=raw,
                cvss_score=max(scores) if scores else None,
                cve_candidates=[r.id for r in match.related_vulnerabilities],
                package_name=match.artifact.name,
                installed_version=match.artifact.version,
                fixed_version=fixed,
                title=_title_from(vuln.description, vuln.id),
                description=vuln.description,
                location=_location(path),
            )
        )
    version = report.descriptor.version if report.descriptor else None
    return findings, version


# Column order of the legacy Safety list-row format.
_SAFETY_LEGACY_COLUMNS = ("package", "affected_versions", "installed_version", "vulnerability", "vulnerability_id")


def _safety_entries(data: Any) -> list[dict[str, Any]]:
    """Flatten the three Safety output shapes into a list of entry dicts."""
    if isinstance(data, dict):
        if "vulnerabilities" not in data:
            raise ExtractionError("Safety output object has no 'vulnerabilities' array")
        entries = data.get("vulnerabilities") or []
    elif isinstance(data, list):
        entries = data
    else:
        raise ExtractionError("Safety output must be a JSON array or object")
    out: list[dict[str, Any]] = []
    for entry in entries:
        if isinstance(entry, list):
            out.append(dict(zip(_SAFETY_LEGACY_COLUMNS, entry)))
        elif isinstance(entry, dict):
            out.append(entry)
        else:
            raise ExtractionError("Safety entries must be objects or rows")
    return out


def _safety_severity(severity: SafetySeverity | str | None) -> tuple[str | None, float | None]:
    if severity is None:
        return None, None
    if isinstance(severity, str):
        return severity, None
    if severity.cvssv3 is None:
        return None, None
    return severity.cvssv3.base_severity, severity.cvssv3.base_score


def _pinned_version(raw: str | None) -> str | None:
    if not raw:
        return None
    match = _PINNED_VERSION_PATTERN.search(raw)
    return match.group(1) if match else None


def _safety_fix(spec: SafetySpecification) -> str | None:
    remediation = spec.vulnerabilities.remediation
    if remediation is None:
        return None
    if remediation.recommended:
        return remediation.recommended
    return remediation.other_recommended[0] if remediation.other_recommended else None


def extract_safety_scan(data: dict[str, Any]) -> tuple[list[VulnerabilityFinding], str | None]:
    """Safety 3 scan: known vulnerabilities per pinned dependency specification, per scanned file."""
    report = SafetyScanReport.model_validate(data)
    findings: list[VulnerabilityFinding] = []
    for project in report.scan_results.projects:
        for scanned in project.files:
            for dep in scanned.results.dependencies:
                for spec in dep.specifications:
                    for known in spec.vulnerabilities.known_vulnerabilities:
                        description = (
                            f"Affected versions: {known.vulnerable_spec}" if known.vulnerable_spec else None
                        )
                        findings.append(
                            build_finding(
                                "safety",
                                finding_id=known.id,
                                raw_severity=None,
                                payload=known.model_dump(exclude_unset=True),
                                package_name=dep.name,
                                installed_version=_pinned_version(spec.raw),
                                fixed_version=_safety_fix(spec),
                                title=f"{dep.name} {known.id}",
                                description=description,
                                location=_location(scanned.location),
                            )
                        )
    telemetry = report.meta.telemetry if report.meta else None
    return findings, telemetry.safety_version if telemetry else None


def extract_safety(data: Any) -> tuple[list[VulnerabilityFinding], str | None]:
    """Safety: flat array of {vulnerability_id, package, ...}, report object, legacy rows, or a 3.x scan."""
    if isinstance(data, dict) and "scan_results" in data:
        return extract_safety_scan(data)
    entries = _safety_entries(data)
    findings: list[VulnerabilityFinding] = []
    for raw in entries:
        vuln = SafetyVulnerability.model_validate(raw)
        raw_severity, cvss = _safety_severity(vuln.severity)
        text = vuln.vulnerability or vuln.advisory
        findings.append(
            build_finding(
                "safety",
                finding_id=vuln.vulnerability_id,
                raw_severity=raw_severity,
                payload=raw,
                cvss_score=cvss,
                cve_candidates=[vuln.cve],
                package_name=vuln.package or vuln.package_name,
                installed_version=vuln.installed_version or vuln.analyzed_version,
                fixed_version=vuln.fixed_versions[0] if vuln.fixed_versions else None,
                title=_title_from(text, vuln.vulnerability_id),
                description=text,
            )
        )
    version = None
    if isinstance(data, dict):
        meta = data.get("report_meta")
        if isinstance(meta, dict):
            version = _str_or_none(meta.get("safety_version"))
    return findings, version


def extract_pip_audit(data: Any) -> tuple[list[VulnerabilityFinding], str | None]:
    """pip-audit: dependencies[].vulns[] (or a flat list of dependencies)."""
    if isinstance(data, dict):
        dependencies = PipAuditReport.model_validate(data).dependencies
        raw_dependencies = data.get("dependencies") or []
    elif isinstance(data, list):
        dependencies = [PipAuditDependency.model_validate(d) for d in data]
        raw_dependencies = data
    else:
        raise ExtractionError("pip-audit output must be a JSON object or array")
    findings: list[VulnerabilityFinding] = []
    for dep, raw_dep in zip(dependencies, raw_dependencies):
        for vuln, raw in zip(dep.vulns, raw_dep.get("vulns") or []):
            findings.append(
                build_finding(
                    "pip-audit",
                    finding_id=vuln.id,
                    raw_severity=None,
                    payload=raw,
                    cve_candidates=list(vuln.aliases),
                    package_name=dep.name,
                    installed_version=dep.version,
                    fixed_version=vuln.fix_versions[0] if vuln.fix_versions else None,
                    title=_title_from(vuln.description, vuln.id),
                    description=vuln.description,
                )
            )
    return findings, None


def extract_hadolint(data: Any) -> tuple[list[VulnerabilityFinding], str | None]:
    """Hadolint: flat array of {code, message, level, line}; no package identity."""
    if not isinstance(data, list):
        raise ExtractionError("Hadolint output must be a JSON array")
    findings: list[VulnerabilityFinding] = []
    for raw in data:
        issue = HadolintIssue.model_validate(raw)
        findings.append(
            build_finding(
                "hadolint",
                finding_id=issue.code,
                raw_severity=issue.level,
                payload=raw,
                category="configuration/lint",
                title=_title_from(issue.message, issue.code),
                description=issue.message,
                location=_location(issue.file or "Dockerfile", issue.line),
            )
        )
    return findings, None


def extract_bandit(data: Any) -> tuple[list[VulnerabilityFinding], str | None]:
    """Bandit: results[] of Python static-analysis issues."""
    if not isinstance(data, dict):
        raise ExtractionError("Bandit output must be a JSON object with a 'results' array")
    report = BanditReport.model_validate(data)
    findings: list[VulnerabilityFinding] = []
    for issue, raw in zip(report.results, data.get("results") or []):
        findings.append(
            build_finding(
                "bandit",
                finding_id=issue.test_id,
                raw_severity=issue.issue_severity,
                payload=raw,
                category="static-analysis",
                title=_title_from(issue.test_name or issue.issue_text, issue.test_id),
                description=issue.issue_text,
                location=_location(issue.filename, issue.line_number),
                cwe_id=_extract_cwe(issue.issue_cwe.id) if issue.issue_cwe else None,
            )
        )
    return findings, None


def extract_semgrep(data: Any) -> tuple[list[VulnerabilityFinding], str | None]:
    """Semgrep: results[] with check_id, path, start.line and extra.severity."""
    if not isinstance(data, dict):
        raise ExtractionError("Semgrep output must be a JSON object with a 'results' array")
    report = SemgrepReport.model_validate(data)
    findings: list[VulnerabilityFinding] = []
    for result, raw in zip(report.results, data.get("results") or []):
        line = result.start.line if result.start else None
        findings.append(
            build_finding(
                "semgrep",
                finding_id=result.check_id,
                raw_severity=result.extra.severity,
                payload=raw,
                category="static-analysis",
                title=_title_from(result.extra.message, result.check_id),
                description=result.extra.message,
                location=_location(result.path, line),
                cwe_id=_extract_cwe(result.extra.metadata.get("cwe")),
            )
        )
    return findings, report.version


EXTRACTORS: dict[SourceTool, ToolExtractor] = {
    "trivy": extract_trivy,
    "grype": extract_grype,
    "safety": extract_safety,
    "pip-audit": extract_pip_audit,
    "hadolint": extract_hadolint,
    "bandit": extract_bandit,
    "semgrep": extract_semgrep,
}


def _display_path(path: Path, base_dir: Path | None) -> str:
    """Path relative to base_dir when it lies inside it, else as given."""
    if base_dir is not None and path.is_relative_to(base_dir):
        return path.relative_to(base_dir).as_posix()
    return str(path)


def load_tool_output(path: Path, tool: SourceTool, base_dir: Path | None = None) -> ExtractionResult:
    """
    Read one tool output file and extract its findings.

    Raises ExtractionError when the file is missing, is not valid JSON, or does
    not match the tool's schema.
    """
    display = _display_path(path, base_dir)
    if not path.is_file():
        raise ExtractionError(f"{tool} input file not found: {display}", path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ExtractionError(f"Malformed JSON in {tool} output {display}: {e}", path) from e
    except OSError as e:
        raise ExtractionError(f"Cannot read {tool} output {display}: {e.strerror or e}", path) from e

    extractor = EXTRACTORS[tool]
    try:
        findings, version = extractor(data)
    except ValidationError as e:
        raise ExtractionError(
            f"{tool} output {display} does not match the expected schema ({e.error_count()} errors)",
            path,
        ) from e
    except ExtractionError as e:
        raise ExtractionError(f"{e.message}: {display}", path) from e

    return ExtractionResult(
        tool=tool,
        path=display,
        findings=findings,
        tool_version=version,
        raw_entries=[f.raw_payload or {} for f in findings],
    )


def extract_findings(path: Path, tool: SourceTool) -> list[VulnerabilityFinding]:
    """
    Extract findings from one tool output file without ever failing the run.

    Missing or malformed files yield an empty list and a logged warning.
    """
    try:
        return load_tool_output(path, tool).findings
    except ExtractionError as e:
        logger.warning("Skipping %s input: %s", tool, e.message)
        return []
