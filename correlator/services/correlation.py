"""Group findings reported by several tools into correlation groups and score their priority.

Grouping is exact, never fuzzy:
- findings with a CVE group by (CVE, package) so one CVE in two different
  packages stays two groups;
- package findings without a CVE group by (package, installed version, severity);
- findings without a package (lint, static analysis) group by rule id + file path.
"""

from collections import Counter

from correlator.schemas.correlation import (
    CorrelationGroup,
    CorrelationMetrics,
    RiskDistribution,
    RiskLevel,
)
from correlator.schemas.findings import (
    SEVERITY_ORDER,
    SeverityLevel,
    SourceTool,
    VulnerabilityFinding,
    more_severe,
    severity_rank,
)

# Base weight per severity for the priority score.
SEVERITY_WEIGHTS: dict[SeverityLevel, float] = {
    "CRITICAL": 10.0,
    "HIGH": 7.0,
    "MEDIUM": 4.0,
    "LOW": 1.0,
    "INFO": 0.0,
}

# Each additional corroborating tool adds 10%, up to five extra tools (+50%).
CORROBORATION_BONUS_PER_TOOL = 0.1
MAX_CORROBORATION_BONUS_TOOLS = 5

# Risk bucket thresholds on the priority score.
HIGH_RISK_MIN_SCORE = 7.0
MEDIUM_RISK_MIN_SCORE = 3.0


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def _file_path_pattern(finding: VulnerabilityFinding) -> str:
    """Normalized path of the finding's location: forward slashes, no leading './'."""
    if finding.location is None:
        return ""
    path = finding.location.path.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def group_key(finding: VulnerabilityFinding) -> str:
    """Hashable grouping key for one finding (null-separated components)."""
    if finding.cve_id:
        return f"cve\0{finding.cve_id.upper()}\0{_norm(finding.package_name)}"
    if finding.has_package:
        return (
            f"pkg\0{_norm(finding.package_name)}\0{_norm(finding.installed_version)}"
            f"\0{finding.normalized_severity}"
        )
    return f"rule\0{finding.id.strip().upper()}\0{_file_path_pattern(finding)}"


def priority_score(severity: SeverityLevel, corroborating_tool_count: int) -> float:
    """
    severity_weight * (1 + 0.1 * min(corroborating_tool_count - 1, 5)).

    More agreeing tools raise confidence, capped at +50%; they never change
    the severity itself.
    """
    extra_tools = min(max(corroborating_tool_count - 1, 0), MAX_CORROBORATION_BONUS_TOOLS)
    score = SEVERITY_WEIGHTS[severity] * (1 + CORROBORATION_BONUS_PER_TOOL * extra_tools)
    return round(score, 2)


def risk_level(score: float) -> RiskLevel:
    """Bucket a priority score: >=7 high_risk, >=3 medium_risk, else low_risk."""
    if score >= HIGH_RISK_MIN_SCORE:
        return "high_risk"
    if score >= MEDIUM_RISK_MIN_SCORE:
        return "medium_risk"
    return "low_risk"


def _worst_severity(findings: list[VulnerabilityFinding]) -> SeverityLevel:
    worst: SeverityLevel = SEVERITY_ORDER[-1]
    for f in findings:
        worst = more_severe(worst, f.normalized_severity)
    return worst


def _canonical_id(members: list[VulnerabilityFinding]) -> str:
    """First CVE among the members, else the first member's own id."""
    for f in members:
        if f.cve_id:
            return f.cve_id
    return members[0].id


def _first(values: list[str | None]) -> str | None:
    return next((v for v in values if v), None)


def _build_group(key: str, members: list[VulnerabilityFinding]) -> CorrelationGroup:
    tools: list[SourceTool] = []
    for f in members:
        if f.source_tool not in tools:
            tools.append(f.source_tool)
    severity = _worst_severity(members)
    scores = [f.cvss_score for f in members if f.cvss_score is not None]
    score = priority_score(severity, len(tools))
    # Prefer a descriptive title over one that merely repeats the id.
    title = _first([f.title for f in members if f.title and f.title != f.id]) or members[0].title

    return CorrelationGroup(
        canonical_id=_canonical_id(members),
        group_key=key.replace("\0", "|"),
        normalized_severity=severity,
        category=members[0].category,
        package_name=_first([f.package_name for f in members]),
        installed_version=_first([f.installed_version for f in members]),
        fixed_version=_first([f.fixed_version for f in members]),
        cvss_score=max(scores) if scores else None,
        title=title,
        corroborating_tools=tools,
        priority_score=score,
        risk_level=risk_level(score),
        members=list(members),
    )


def correlate(findings: list[VulnerabilityFinding]) -> list[CorrelationGroup]:
    """
    Group findings into correlation groups.

    Groups appear in order of their first member; members keep discovery
    order. Running this twice on the same input yields identical groups.
    """
    if not findings:
        return []
    groups: dict[str, list[VulnerabilityFinding]] = {}
    for f in findings:
        groups.setdefault(group_key(f), []).append(f)
    return [_build_group(key, members) for key, members in groups.items()]


def sort_by_priority(groups: list[CorrelationGroup]) -> list[CorrelationGroup]:
    """Highest priority first; ties broken by severity, then CVSS, then original order."""
    return sorted(
        groups,
        key=lambda g: (
            -g.priority_score,
            severity_rank(g.normalized_severity),
            -(g.cvss_score or 0.0),
        ),
    )


def risk_distribution(groups: list[CorrelationGroup]) -> RiskDistribution:
    counts = Counter(g.risk_level for g in groups)
    return RiskDistribution(
        high_risk=counts.get("high_risk", 0),
        medium_risk=counts.get("medium_risk", 0),
        low_risk=counts.get("low_risk", 0),
    )


def severity_breakdown(groups: list[CorrelationGroup]) -> dict[SeverityLevel, int]:
    """Group count per severity, every level present (zero when absent)."""
    counts = Counter(g.normalized_severity for g in groups)
    return {s: counts.get(s, 0) for s in SEVERITY_ORDER}


def category_breakdown(groups: list[CorrelationGroup]) -> dict[str, int]:
    counts = Counter(g.category for g in groups)
    return dict(sorted(counts.items()))


def compute_metrics(total_raw_findings: int, groups: list[CorrelationGroup]) -> CorrelationMetrics:
    """Dedup ratio and correlation accuracy (1 - removed / raw) for one run."""
    total_groups = len(groups)
    removed = max(total_raw_findings - total_groups, 0)
    if total_raw_findings:
        dedup_ratio = removed / total_raw_findings
    else:
        dedup_ratio = 0.0
    return CorrelationMetrics(
        total_raw_findings=total_raw_findings,
        total_groups=total_groups,
        duplicate_findings_removed=removed,
        multi_tool_groups=sum(1 for g in groups if g.corroborating_tool_count > 1),
        dedup_ratio=round(dedup_ratio, 4),
        correlation_accuracy=round(1 - dedup_ratio, 4),
    )


def requires_escalation(groups: list[CorrelationGroup], threshold: SeverityLevel) -> bool:
    """True when any high-risk group is at or above the severity threshold."""
    limit = severity_rank(threshold)
    return any(
        g.risk_level == "high_risk" and severity_rank(g.normalized_severity) <= limit
        for g in groups
    )
