"""Map tool-specific severity vocabularies and CVSS scores onto the canonical severity scale."""

import logging
import re

from correlator.schemas.findings import SeverityLevel, more_severe

logger = logging.getLogger(__name__)

# Fallback for absent or unrecognised severities: neither suppressed nor escalated.
DEFAULT_SEVERITY: SeverityLevel = "MEDIUM"

# Generic vocabulary (lower-cased) -> canonical level.
_SEVERITY_ALIASES: dict[str, SeverityLevel] = {
    "critical": "CRITICAL",
    "crit": "CRITICAL",
    "high": "HIGH",
    "error": "HIGH",
    "medium": "MEDIUM",
    "med": "MEDIUM",
    "moderate": "MEDIUM",
    "warning": "MEDIUM",
    "low": "LOW",
    "minor": "LOW",
    "info": "INFO",
    "informational": "INFO",
    "negligible": "INFO",
    "none": "INFO",
    "note": "INFO",
}

# Tool-specific vocabulary, consulted before the generic aliases.
_TOOL_SEVERITY_ALIASES: dict[str, dict[str, SeverityLevel]] = {
    "hadolint": {
        "error": "HIGH",
        "warning": "MEDIUM",
        "info": "LOW",
        "style": "INFO",
    },
    "semgrep": {
        "error": "HIGH",
        "warning": "MEDIUM",
        "info": "LOW",
    },
    "grype": {
        "negligible": "INFO",
    },
}

# Lower bounds of the CVSS buckets, most severe first. Zero maps to INFO.
_CVSS_BUCKETS: tuple[tuple[float, SeverityLevel], ...] = (
    (9.0, "CRITICAL"),
    (7.0, "HIGH"),
    (4.0, "MEDIUM"),
)

_NUMERIC_PATTERN = re.compile(r"^\d+(\.\d+)?$")

# CVE: CVE-YEAR-NNNN+ (4+ digits after second hyphen).
_CVE_PATTERN = re.compile(r"CVE-\d{4}-\d{4,}", re.IGNORECASE)

MAX_VULN_ID_LENGTH = 255


def cvss_to_severity(score: float) -> SeverityLevel:
    """Bucket a CVSS score: >=9 CRITICAL, >=7 HIGH, >=4 MEDIUM, >0 LOW, 0 INFO."""
    for lower_bound, severity in _CVSS_BUCKETS:
        if score >= lower_bound:
            return severity
    if score > 0:
        return "LOW"
    return "INFO"


def lookup_severity(source_tool: str | None, raw_severity: str | None) -> SeverityLevel | None:
    """
    Table lookup of a qualitative (or numeric) raw severity.

    Returns None when the value is absent or not in any table, so callers can
    apply the documented fallback.
    """
    if raw_severity is None or not raw_severity.strip():
        return None
    normalized = raw_severity.strip().lower()
    tool_table = _TOOL_SEVERITY_ALIASES.get(source_tool or "", {})
    if normalized in tool_table:
        return tool_table[normalized]
    if normalized in _SEVERITY_ALIASES:
        return _SEVERITY_ALIASES[normalized]
    if _NUMERIC_PATTERN.match(normalized):
        score = float(normalized)
        if 0 <= score <= 10:
            return cvss_to_severity(score)
    return None


def normalize_severity(
    source_tool: str | None,
    raw_severity: str | None,
    cvss_score: float | None = None,
) -> SeverityLevel:
    """
    Map a tool's raw severity plus optional CVSS score to the canonical level.

    When both a qualitative severity and a CVSS score are available the more
    severe of the two wins. Unknown or absent values fall back to MEDIUM
    (logged) unless a CVSS score is available.
    """
    qualitative = lookup_severity(source_tool, raw_severity)
    from_cvss = (
        cvss_to_severity(cvss_score)
        if cvss_score is not None and 0 <= cvss_score <= 10
        else None
    )
    if qualitative is not None and from_cvss is not None:
        return more_severe(qualitative, from_cvss)
    if qualitative is not None:
        return qualitative
    if from_cvss is not None:
        return from_cvss
    logger.info(
        "Unmapped severity %r from %s; defaulting to %s",
        raw_severity,
        source_tool or "unknown tool",
        DEFAULT_SEVERITY,
    )
    return DEFAULT_SEVERITY


def extract_cve(text: str | None) -> str | None:
    """Return the first CVE identifier found in text, upper-cased, or None."""
    if not text or not isinstance(text, str):
        return None
    match = _CVE_PATTERN.search(text)
    if not match:
        return None
    value = match.group(0)
    if len(value) > MAX_VULN_ID_LENGTH:
        return None
    return value.upper()


def first_cve(candidates: list[str | None]) -> str | None:
    """First CVE identifier found in the candidates, in order."""
    for candidate in candidates:
        cve = extract_cve(candidate)
        if cve:
            return cve
    return None
