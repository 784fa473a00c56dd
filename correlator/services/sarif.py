"""Merge per-tool SARIF into one SARIF 2.1.0 document with one run per tool.

Tools that emit SARIF natively keep their own run (driver name, rules and
results untouched); tools that only emit JSON get a run synthesized from
their normalized findings.
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from correlator.schemas.correlation import ExtractionResult
from correlator.schemas.findings import SOURCE_TOOLS, SeverityLevel, SourceTool, VulnerabilityFinding
from correlator.schemas.sarif import (
    SarifArtifactLocation,
    SarifDriver,
    SarifInvocation,
    SarifLevel,
    SarifLocation,
    SarifLog,
    SarifMessage,
    SarifPhysicalLocation,
    SarifRegion,
    SarifReportingDescriptor,
    SarifResult,
    SarifRun,
    SarifTool,
)

logger = logging.getLogger(__name__)

# Driver name and information URI per tool, as the tools name themselves in native SARIF.
TOOL_DRIVERS: dict[SourceTool, tuple[str, str]] = {
    "trivy": ("Trivy", "https://trivy.dev/"),
    "grype": ("Grype", "https://github.com/anchore/grype"),
    "safety": ("Safety", "https://pyup.io/safety/"),
    "pip-audit": ("pip-audit", "https://github.com/pypa/pip-audit"),
    "hadolint": ("Hadolint", "https://github.com/hadolint/hadolint"),
    "bandit": ("Bandit", "https://bandit.readthedocs.io/"),
    "semgrep": ("Semgrep", "https://semgrep.dev/"),
}

_SEVERITY_TO_LEVEL: dict[SeverityLevel, SarifLevel] = {
    "CRITICAL": "error",
    "HIGH": "error",
    "MEDIUM": "warning",
    "LOW": "note",
    "INFO": "note",
}

# GitHub code scanning reads "security-severity" as a CVSS-like number.
_SEVERITY_TO_SECURITY_SEVERITY: dict[SeverityLevel, str] = {
    "CRITICAL": "9.5",
    "HIGH": "8.0",
    "MEDIUM": "5.5",
    "LOW": "2.0",
    "INFO": "0.0",
}


class SarifInputError(Exception):
    """Raised when a native SARIF input cannot be read or is not SARIF 2.1.0."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)


def resolve_tool(driver_name: str | None) -> SourceTool | None:
    """Map a SARIF driver name (any case) to a known tool, or None."""
    if not driver_name:
        return None
    normalized = driver_name.strip().lower()
    for tool, (display, _) in TOOL_DRIVERS.items():
        if normalized in (tool, display.lower()):
            return tool
    return None


def _result_for(finding: VulnerabilityFinding) -> SarifResult:
    locations: list[SarifLocation] = []
    if finding.location is not None:
        region = (
            SarifRegion(start_line=finding.location.line)
            if finding.location.line is not None and finding.location.line >= 1
            else None
        )
        locations.append(
            SarifLocation(
                physical_location=SarifPhysicalLocation(
                    artifact_location=SarifArtifactLocation(uri=finding.location.path),
                    region=region,
                )
            )
        )
    text = finding.title
    if finding.package_name:
        package = " ".join(filter(None, [finding.package_name, finding.installed_version]))
        text = f"{finding.title} ({package})"
    properties = {
        "normalizedSeverity": finding.normalized_severity,
        "rawSeverity": finding.raw_severity,
        "category": finding.category,
        "packageName": finding.package_name,
        "installedVersion": finding.installed_version,
        "fixedVersion": finding.fixed_version,
        "cvssScore": finding.cvss_score,
        "cveId": finding.cve_id,
    }
    return SarifResult(
        rule_id=finding.id,
        level=_SEVERITY_TO_LEVEL[finding.normalized_severity],
        message=SarifMessage(text=text or finding.id),
        locations=locations,
        properties={k: v for k, v in properties.items() if v is not None},
    )


def _rules_for(findings: list[VulnerabilityFinding]) -> list[SarifReportingDescriptor]:
    """One rule per distinct finding id, first occurrence wins."""
    rules: dict[str, SarifReportingDescriptor] = {}
    for f in findings:
        if f.id in rules:
            continue
        security_severity = (
            f"{f.cvss_score:.1f}"
            if f.cvss_score is not None
            else _SEVERITY_TO_SECURITY_SEVERITY[f.normalized_severity]
        )
        properties: dict[str, object] = {"security-severity": security_severity}
        if f.cwe_id:
            properties["tags"] = ["security", f.cwe_id]
        rules[f.id] = SarifReportingDescriptor(
            id=f.id,
            short_description=SarifMessage(text=f.title or f.id),
            properties=properties,
        )
    return list(rules.values())


def build_tool_run(
    tool: SourceTool,
    findings: list[VulnerabilityFinding],
    scan_timestamp: str,
    tool_version: str | None = None,
) -> SarifRun:
    """Synthesize a SARIF run for a tool that does not emit SARIF itself."""
    name, information_uri = TOOL_DRIVERS[tool]
    return SarifRun(
        tool=SarifTool(
            driver=SarifDriver(
                name=name,
                information_uri=information_uri,
                version=tool_version,
                semantic_version=tool_version,
                rules=_rules_for(findings),
            )
        ),
        results=[_result_for(f) for f in findings],
        invocations=[SarifInvocation(execution_successful=True, start_time_utc=scan_timestamp)],
    )


def load_native_sarif(path: Path) -> list[SarifRun]:
    """Read a SARIF file and return its runs. Raises SarifInputError on unreadable or invalid input."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SarifInputError(f"Malformed JSON in SARIF input {path}: {e}", path) from e
    except OSError as e:
        raise SarifInputError(f"Cannot read SARIF input {path}: {e.strerror or e}", path) from e
    try:
        log = SarifLog.model_validate(data)
    except ValidationError as e:
        raise SarifInputError(
            f"{path} is not a SARIF 2.1.0 document ({e.error_count()} errors)", path
        ) from e
    return log.runs


def _merge_runs(runs: list[SarifRun]) -> SarifRun:
    """Fold several runs of the same tool into the first one, keeping every result."""
    if len(runs) == 1:
        return runs[0]
    merged = runs[0].model_copy(deep=True)
    known_rules = {r.id for r in merged.tool.driver.rules}
    for run in runs[1:]:
        merged.results.extend(run.results)
        merged.invocations.extend(run.invocations)
        for rule in run.tool.driver.rules:
            if rule.id not in known_rules:
                known_rules.add(rule.id)
                merged.tool.driver.rules.append(rule)
    return merged


def aggregate_sarif(
    extractions: list[ExtractionResult],
    native_runs: list[SarifRun],
    scan_timestamp: str,
) -> SarifLog:
    """
    Build the unified SARIF log: one run per distinct tool present in the input.

    Native runs take precedence over synthesized ones for the same tool and
    keep their original tool.driver.name. Runs from unknown tools are kept
    as-is, one per driver name.
    """
    native_by_tool: dict[str, list[SarifRun]] = {}
    for run in native_runs:
        tool = resolve_tool(run.tool.driver.name)
        key = tool or run.tool.driver.name
        native_by_tool.setdefault(key, []).append(run)

    findings_by_tool: dict[str, list[VulnerabilityFinding]] = {}
    versions: dict[str, str | None] = {}
    for extraction in extractions:
        findings_by_tool.setdefault(extraction.tool, []).extend(extraction.findings)
        if extraction.tool_version and not versions.get(extraction.tool):
            versions[extraction.tool] = extraction.tool_version

    runs: list[SarifRun] = []
    for tool in SOURCE_TOOLS:
        if tool in native_by_tool:
            runs.append(_merge_runs(native_by_tool.pop(tool)))
        elif tool in findings_by_tool:
            runs.append(
                build_tool_run(tool, findings_by_tool[tool], scan_timestamp, versions.get(tool))
            )
    for name, leftover in native_by_tool.items():
        logger.info("Keeping SARIF run from unrecognised tool %s", name)
        runs.append(_merge_runs(leftover))
    return SarifLog(runs=runs)


def run_tool_name(run: SarifRun) -> str:
    """File-system friendly tool name for a run."""
    tool = resolve_tool(run.tool.driver.name)
    if tool:
        return tool
    return "".join(c if c.isalnum() or c in "-_" else "-" for c in run.tool.driver.name.lower())


def write_sarif(log: SarifLog, path: Path) -> None:
    path.write_text(json.dumps(log.to_json_dict(), indent=2) + "\n", encoding="utf-8")


def render_sarif_summary(log: SarifLog, unified_path: str, scan_timestamp: str) -> str:
    """Plain-text summary of the unified SARIF document."""
    lines = [
        "# SARIF Aggregation Summary",
        f"Generated: {scan_timestamp}",
        f"Unified SARIF: {unified_path}",
        "",
        "## Processed Security Tools",
    ]
    if not log.runs:
        lines.append("No security tool outputs found for SARIF processing")
    for run in log.runs:
        driver = run.tool.driver
        version = f" {driver.version}" if driver.version else ""
        lines.append(f"- {driver.name}{version}: {len(run.results)} result(s)")
    lines.extend(["", f"Total runs: {len(log.runs)}"])
    lines.append(f"Total results: {sum(len(r.results) for r in log.runs)}")
    return "\n".join(lines) + "\n"
