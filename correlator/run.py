"""
CLI entrypoint for the vulnerability correlation run. Run after the scanners, e.g.:

  python -m correlator.run --results-dir comprehensive-security-results

Exit codes: 0 no escalation, 1 high-risk findings at or above SEVERITY_THRESHOLD,
2 fatal error (configuration, output directories, core reports).
"""

import argparse
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from correlator import __version__
from correlator.core.config import Settings, get_settings
from correlator.core.layout import OutputDirectoryError
from correlator.services.pipeline import run_correlation
from correlator.services.reports import ReportGenerationError

logger = logging.getLogger("correlator.run")

EXIT_OK = 0
EXIT_HIGH_RISK = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="security-correlate",
        description="Correlate multi-tool scanner output into deduplicated, prioritized reports.",
    )
    parser.add_argument("--results-dir", help="Scanner results directory (SCAN_RESULTS_DIR)")
    parser.add_argument(
        "--severity-threshold",
        help="Minimum severity of a high-risk finding that fails the run (SEVERITY_THRESHOLD)",
    )
    parser.add_argument("--top", type=int, help="Number of top findings in summaries (TOP_FINDINGS_LIMIT)")
    parser.add_argument("--log-level", help="Log level (LOG_LEVEL)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    """Settings from env/.env, with command-line flags taking precedence."""
    flags = {
        "SCAN_RESULTS_DIR": args.results_dir,
        "SEVERITY_THRESHOLD": args.severity_threshold,
        "TOP_FINDINGS_LIMIT": args.top,
        "LOG_LEVEL": args.log_level,
    }
    overrides = {k: v for k, v in flags.items() if v is not None}
    if not overrides:
        return get_settings()
    return Settings(**overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


def main(argv: list[str] | None = None) -> int:
    """Run correlation and map the outcome to a process exit code."""
    args = build_parser().parse_args(argv)
    load_dotenv()
    try:
        settings = load_settings(args)
    except ValidationError as e:
        configure_logging("INFO")
        logger.error("Invalid configuration: %s", e)
        return EXIT_FATAL
    configure_logging(settings.LOG_LEVEL)

    try:
        result = run_correlation(settings)
    except OutputDirectoryError as e:
        logger.error("Cannot create output directories: %s", e.message)
        return EXIT_FATAL
    except ReportGenerationError as e:
        logger.error("Correlation failed: %s", e.message)
        return EXIT_FATAL
    except Exception as e:
        logger.exception("Correlation run failed: %s", e)
        return EXIT_FATAL

    dist = result.risk_summary.risk_distribution
    logger.info(
        "Correlation completed: high_risk=%s medium_risk=%s low_risk=%s",
        dist.high_risk,
        dist.medium_risk,
        dist.low_risk,
    )
    if result.requires_escalation:
        logger.warning(
            "High-risk vulnerabilities at or above %s found; escalation required",
            settings.SEVERITY_THRESHOLD,
        )
        return EXIT_HIGH_RISK
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
