"""Unit tests for correlator.core: settings validation, CLI overrides and output layout."""

import os
import stat
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pydantic import ValidationError

from correlator.core.config import Settings, get_settings
from correlator.core.layout import (
    OUTPUT_DIR_MODE,
    OutputDirectoryError,
    OutputLayout,
    ensure_output_dirs,
)
from correlator.run import build_parser, load_settings


class TestSettingsDefaults(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.SCAN_RESULTS_DIR, Path("comprehensive-security-results"))
        self.assertFalse(settings.ADVANCED_MODE)
        self.assertEqual(settings.DOCKER_REPOSITORY, "")
        self.assertEqual(settings.SEVERITY_THRESHOLD, "HIGH")
        self.assertEqual(settings.TOP_FINDINGS_LIMIT, 10)
        self.assertEqual(settings.LOG_LEVEL, "INFO")

    def test_reads_environment(self) -> None:
        env = {
            "SCAN_RESULTS_DIR": "/tmp/results",
            "ADVANCED_MODE": "true",
            "DOCKER_REPOSITORY": "  ghcr.io/acme/builder  ",
            "SEVERITY_THRESHOLD": "critical",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.SCAN_RESULTS_DIR, Path("/tmp/results"))
        self.assertTrue(settings.ADVANCED_MODE)
        self.assertEqual(settings.DOCKER_REPOSITORY, "ghcr.io/acme/builder")
        self.assertEqual(settings.SEVERITY_THRESHOLD, "CRITICAL")


class TestSettingsValidation(unittest.TestCase):
    """Invalid values are rejected at construction."""

    def test_unknown_threshold(self) -> None:
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, SEVERITY_THRESHOLD="SEVERE")

    def test_top_findings_range(self) -> None:
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, TOP_FINDINGS_LIMIT=0)
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, TOP_FINDINGS_LIMIT=101)
        self.assertEqual(Settings(_env_file=None, TOP_FINDINGS_LIMIT=100).TOP_FINDINGS_LIMIT, 100)

    def test_empty_results_dir(self) -> None:
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, SCAN_RESULTS_DIR="  ")

    def test_log_level(self) -> None:
        self.assertEqual(Settings(_env_file=None, LOG_LEVEL="debug").LOG_LEVEL, "DEBUG")
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, LOG_LEVEL="verbose")


class TestCliOverrides(unittest.TestCase):
    """Command-line flags take precedence over the environment."""

    def test_flags_override_env(self) -> None:
        args = build_parser().parse_args(
            ["--results-dir", "out", "--severity-threshold", "medium", "--top", "5"]
        )
        with patch.dict(os.environ, {"SEVERITY_THRESHOLD": "CRITICAL", "TOP_FINDINGS_LIMIT": "20"}, clear=True):
            settings = load_settings(args)
        self.assertEqual(settings.SCAN_RESULTS_DIR, Path("out"))
        self.assertEqual(settings.SEVERITY_THRESHOLD, "MEDIUM")
        self.assertEqual(settings.TOP_FINDINGS_LIMIT, 5)

    def test_unset_flags_use_cached_env_settings(self) -> None:
        args = build_parser().parse_args([])
        get_settings.cache_clear()
        self.addCleanup(get_settings.cache_clear)
        with patch.dict(os.environ, {"SEVERITY_THRESHOLD": "LOW"}, clear=True):
            settings = load_settings(args)
        self.assertEqual(settings.SEVERITY_THRESHOLD, "LOW")
        self.assertIs(load_settings(args), settings)


class TestOutputLayout(unittest.TestCase):
    """Output paths and directory creation."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name) / "results"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_paths(self) -> None:
        layout = OutputLayout(self.base)
        self.assertEqual(
            layout.relative(layout.correlation_report),
            "correlation/vulnerability-correlation-report.json",
        )
        self.assertEqual(layout.relative(layout.risk_summary), "correlation/reports/risk-summary.json")
        self.assertEqual(layout.relative(layout.unified_sarif), "sarif/unified-security-report.sarif")
        self.assertEqual(layout.relative(layout.api_response), "reports/json/security-api-response.json")
        self.assertEqual(layout.relative(layout.findings_csv), "reports/csv/security-findings.csv")

    def test_creates_missing_base_with_mode(self) -> None:
        layout = OutputLayout(self.base)
        ensure_output_dirs(layout)
        ensure_output_dirs(layout)
        for directory in layout.output_dirs():
            self.assertTrue(directory.is_dir())
            self.assertEqual(stat.S_IMODE(directory.stat().st_mode), OUTPUT_DIR_MODE)

    def test_mode_failure_on_existing_dirs_is_not_fatal(self) -> None:
        layout = OutputLayout(self.base)
        for directory in layout.output_dirs():
            directory.mkdir(parents=True)
        with patch.object(Path, "chmod", side_effect=PermissionError(1, "Operation not permitted")):
            with self.assertLogs("correlator.core.layout", level="WARNING") as logs:
                ensure_output_dirs(layout)
        self.assertEqual(len(logs.records), len(layout.output_dirs()))
        self.assertIn("Operation not permitted", logs.output[0])

    def test_base_is_a_file(self) -> None:
        self.base.write_text("x", encoding="utf-8")
        with self.assertRaises(OutputDirectoryError) as ctx:
            ensure_output_dirs(OutputLayout(self.base))
        self.assertEqual(ctx.exception.path, self.base)


if __name__ == "__main__":
    unittest.main()
