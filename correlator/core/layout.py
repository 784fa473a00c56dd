"""Output directory layout under SCAN_RESULTS_DIR."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Directory permissions for every generated output directory.
OUTPUT_DIR_MODE = 0o750


class OutputDirectoryError(Exception):
    """Raised when output directories cannot be created; no output can be produced."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)


class OutputLayout:
    """All input and output paths derived from one results directory."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    # Correlation engine outputs.
    @property
    def correlation_dir(self) -> Path:
        return self.base_dir / "correlation"

    @property
    def correlation_raw_dir(self) -> Path:
        return self.correlation_dir / "raw"

    @property
    def correlation_processed_dir(self) -> Path:
        return self.correlation_dir / "processed"

    @property
    def correlation_reports_dir(self) -> Path:
        return self.correlation_dir / "reports"

    @property
    def correlation_report(self) -> Path:
        return self.correlation_dir / "vulnerability-correlation-report.json"

    @property
    def normalized_findings(self) -> Path:
        return self.correlation_dir / "normalized-vulnerabilities.json"

    @property
    def deduplicated_findings(self) -> Path:
        return self.correlation_dir / "deduplicated-vulnerabilities.json"

    @property
    def risk_assessment(self) -> Path:
        return self.correlation_dir / "contextual-risk-assessment.json"

    @property
    def correlation_summary(self) -> Path:
        return self.correlation_reports_dir / "correlation-summary.txt"

    @property
    def risk_summary(self) -> Path:
        return self.correlation_reports_dir / "risk-summary.json"

    # SARIF aggregation outputs.
    @property
    def sarif_dir(self) -> Path:
        return self.base_dir / "sarif"

    @property
    def sarif_raw_dir(self) -> Path:
        return self.sarif_dir / "raw"

    @property
    def sarif_processed_dir(self) -> Path:
        return self.sarif_dir / "processed"

    @property
    def sarif_reports_dir(self) -> Path:
        return self.sarif_dir / "reports"

    @property
    def unified_sarif(self) -> Path:
        return self.sarif_dir / "unified-security-report.sarif"

    @property
    def sarif_summary(self) -> Path:
        return self.sarif_reports_dir / "sarif-summary.txt"

    # Unified report outputs.
    @property
    def reports_dir(self) -> Path:
        return self.base_dir / "reports"

    @property
    def reports_json_dir(self) -> Path:
        return self.reports_dir / "json"

    @property
    def reports_csv_dir(self) -> Path:
        return self.reports_dir / "csv"

    @property
    def html_report(self) -> Path:
        return self.reports_dir / "unified-security-report.html"

    @property
    def executive_summary(self) -> Path:
        return self.reports_dir / "security-executive-summary.txt"

    @property
    def api_response(self) -> Path:
        return self.reports_json_dir / "security-api-response.json"

    @property
    def findings_csv(self) -> Path:
        return self.reports_csv_dir / "security-findings.csv"

    def output_dirs(self) -> list[Path]:
        """Every directory the run writes into, parents before children."""
        return [
            self.correlation_dir,
            self.correlation_raw_dir,
            self.correlation_processed_dir,
            self.correlation_reports_dir,
            self.sarif_dir,
            self.sarif_raw_dir,
            self.sarif_processed_dir,
            self.sarif_reports_dir,
            self.reports_dir,
            self.reports_json_dir,
            self.reports_csv_dir,
        ]

    def relative(self, path: Path) -> str:
        """Path relative to the results directory, as a forward-slash string."""
        try:
            return path.relative_to(self.base_dir).as_posix()
        except ValueError:
            return path.as_posix()


def ensure_output_dirs(layout: OutputLayout) -> None:
    """
    Create all output directories with OUTPUT_DIR_MODE.

    Raises OutputDirectoryError when the results directory is not a directory
    or any output directory cannot be created. Failing to set the mode on an
    existing directory is only logged.
    """
    if layout.base_dir.exists() and not layout.base_dir.is_dir():
        raise OutputDirectoryError(
            f"Results path is not a directory: {layout.base_dir}", layout.base_dir
        )
    for directory in layout.output_dirs():
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(
                f"Cannot create output directory {directory}: {e.strerror or e}", directory
            ) from e
        try:
            directory.chmod(OUTPUT_DIR_MODE)
        except OSError as e:
            logger.warning("Cannot set mode %o on %s: %s", OUTPUT_DIR_MODE, directory, e.strerror or e)
    logger.debug("Output directories ready under %s", layout.base_dir)
