"""Locate scanner output files under the results directory by naming convention."""

import logging
from pathlib import Path

from correlator.schemas.findings import SOURCE_TOOLS, SourceTool

logger = logging.getLogger(__name__)

# Per-tool glob patterns relative to SCAN_RESULTS_DIR. The first pattern is the
# fixed root file; the rest are the per-stage files the scan runners write.
TOOL_INPUT_PATTERNS: dict[SourceTool, tuple[str, ...]] = {
    "trivy": ("trivy-results.json", "basic/trivy-*.json", "container-security/trivy-*.json"),
    "grype": ("grype-results.json", "basic/grype-*.json", "container-security/grype-*.json"),
    "safety": ("safety-results.json", "basic/safety-*.json"),
    "pip-audit": ("pip-audit-results.json", "basic/pip-audit-*.json"),
    "hadolint": ("hadolint-results.json", "basic/hadolint-*.json"),
    "bandit": ("bandit-results.json", "static-analysis/bandit-*.json"),
    "semgrep": ("semgrep-results.json", "static-analysis/semgrep-*.json"),
}

# Native SARIF inputs: <tool>-results.sarif at the root and anything under sarif/raw/.
SARIF_INPUT_PATTERNS: tuple[str, ...] = ("*-results.sarif", "sarif/raw/*.sarif")


def discover_tool_inputs(base_dir: Path, tool: SourceTool) -> list[Path]:
    """
    Return the existing input files for one tool: the fixed root file first,
    then the per-stage files in sorted order, without duplicates.
    """
    found: list[Path] = []
    seen: set[Path] = set()
    for pattern in TOOL_INPUT_PATTERNS[tool]:
        for path in sorted(base_dir.glob(pattern)):
            resolved = path.resolve()
            if resolved in seen or not path.is_file():
                continue
            seen.add(resolved)
            found.append(path)
    return found


def discover_inputs(base_dir: Path) -> dict[SourceTool, list[Path]]:
    """Input files per tool, in tool processing order. Tools without files map to []."""
    inputs: dict[SourceTool, list[Path]] = {}
    for tool in SOURCE_TOOLS:
        inputs[tool] = discover_tool_inputs(base_dir, tool)
        logger.debug("Discovered %d %s input file(s)", len(inputs[tool]), tool)
    return inputs


def discover_sarif_inputs(base_dir: Path) -> list[Path]:
    """Native SARIF files supplied by tools that emit SARIF directly, in sorted order."""
    found: list[Path] = []
    for pattern in SARIF_INPUT_PATTERNS:
        found.extend(p for p in sorted(base_dir.glob(pattern)) if p.is_file())
    return found
