"""Integration tests: full correlation run over mock scanner outputs, and the CLI exit codes."""

import json
import stat
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from correlator.core.config import Settings
from correlator.core.layout import OUTPUT_DIR_MODE, OutputDirectoryError, OutputLayout
from correlator.run import EXIT_FATAL, EXIT_HIGH_RISK, EXIT_OK, main
from correlator.services.pipeline import run_correlation

MOCK_TRIVY = {
    "Results": [
        {
            "Vulnerabilities": [
                {
                    "VulnerabilityID": "CVE-2021-44228",
                    "Severity": "CRITICAL",
                    "Title": "Log4j Remote Code Execution",
                    "PkgName": "log4j-core",
                    "InstalledVersion": "2.14.0",
                    "FixedVersion": "2.15.0",
                    "CVSS": {"nvd": {"V3Score": 10.0}},
                },
                {
                    "VulnerabilityID": "CVE-2022-22965",
                    "Severity": "HIGH",
                    "Title": "Spring Framework RCE",
                    "PkgName": "spring-core",
                    "InstalledVersion": "5.3.16",
                    "FixedVersion": "5.3.18",
                    "CVSS": {"nvd": {"V3Score": 9.8}},
                },
                {
                    "VulnerabilityID": "CVE-2021-23337",
                    "Severity": "MEDIUM",
                    "Title": "lodash Prototype Pollution",
                    "PkgName": "lodash",
                    "InstalledVersion": "4.17.20",
                    "FixedVersion": "4.17.21",
                    "CVSS": {"nvd": {"V3Score": 7.2}},
                },
            ]
        }
    ]
}

MOCK_SAFETY = [
    {
        "vulnerability_id": "39611",
        "vulnerability": "Jinja2 before 2.11.3 allows XSS by leveraging the xmlattr filter.",
        "package": "jinja2",
        "installed_version": "2.10.1",
        "fixed_versions": ["2.11.3"],
    },
    {
        "vulnerability_id": "42194",
        "vulnerability": "Requests before 2.25.1 allows open redirects.",
        "package": "requests",
        "installed_version": "2.24.0",
        "fixed_versions": ["2.25.1"],
    },
]

MOCK_HADOLINT = [
    {"code": "DL3008", "message": "Pin versions in apt get install.", "level": "warning", "line": 12},
    {"code": "DL3009", "message": "Delete the apt-get lists after installing something", "level": "info", "line": 15},
    {"code": "DL3007", "message": "Using latest is prone to errors.", "level": "warning", "line": 3},
]

MOCK_GRYPE = {
    "matches": [
        {
            "vulnerability": {"id": "CVE-2021-44228", "severity": "Critical"},
            "artifact": {"name": "log4j-core", "version": "2.14.0"},
        },
        {
            "vulnerability": {"id": "CVE-2022-1234", "severity": "High"},
            "artifact": {"name": "example-lib", "version": "1.0.0"},
        },
    ]
}


def _write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def _write_mock_results(base: Path) -> None:
    _write_json(base / "trivy-results.json", MOCK_TRIVY)
    _write_json(base / "safety-results.json", MOCK_SAFETY)
    _write_json(base / "hadolint-results.json", MOCK_HADOLINT)
    _write_json(base / "grype-results.json", MOCK_GRYPE)


class PipelineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name) / "comprehensive-security-results"
        self.base.mkdir()
        self.layout = OutputLayout(self.base)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _settings(self, **overrides: object) -> Settings:
        return Settings(_env_file=None, SCAN_RESULTS_DIR=self.base, **overrides)

    def _load(self, path: Path) -> object:
        return json.loads(path.read_text(encoding="utf-8"))


class TestFullRun(PipelineTestCase):
    """Correlation over the mock Trivy, Safety, Hadolint and Grype outputs."""

    def setUp(self) -> None:
        super().setUp()
        _write_mock_results(self.base)
        self.result = run_correlation(self._settings())

    def test_counts_and_metrics(self) -> None:
        metrics = self.result.report.correlation_metrics
        self.assertEqual(metrics.total_raw_findings, 10)
        self.assertEqual(metrics.total_groups, 9)
        self.assertEqual(metrics.duplicate_findings_removed, 1)
        self.assertEqual(metrics.multi_tool_groups, 1)
        self.assertEqual(metrics.correlation_accuracy, 0.9)

    def test_log4j_correlated_across_trivy_and_grype(self) -> None:
        groups = [g for g in self.result.report.correlation_groups if g.canonical_id == "CVE-2021-44228"]
        self.assertEqual(len(groups), 1)
        self.assertEqual(len(groups[0].members), 2)
        self.assertEqual(groups[0].corroborating_tools, ["trivy", "grype"])
        self.assertEqual(groups[0].priority_score, 11.0)

    def test_safety_without_severity_defaults_to_medium(self) -> None:
        jinja = next(g for g in self.result.report.correlation_groups if g.canonical_id == "39611")
        self.assertEqual(jinja.normalized_severity, "MEDIUM")
        self.assertEqual(jinja.package_name, "jinja2")

    def test_hadolint_in_configuration_lint_category(self) -> None:
        summary = self.result.report.vulnerability_summary
        self.assertEqual(summary.category_breakdown["configuration/lint"], 3)
        dl3008 = next(g for g in self.result.report.correlation_groups if g.canonical_id == "DL3008")
        self.assertIsNone(dl3008.package_name)
        self.assertEqual(dl3008.category, "configuration/lint")
        with self.layout.findings_csv.open(encoding="utf-8") as fh:
            self.assertIn("DL3008", fh.read())

    def test_risk_distribution_and_escalation(self) -> None:
        dist = self.result.risk_summary.risk_distribution
        self.assertEqual((dist.high_risk, dist.medium_risk, dist.low_risk), (4, 4, 1))
        self.assertTrue(self.result.requires_escalation)

    def test_missing_tools_recorded_as_skipped(self) -> None:
        meta = self.result.report.correlation_metadata
        self.assertEqual(meta.tools_processed, ["trivy", "grype", "safety", "hadolint"])
        skipped_tools = [s.tool for s in meta.skipped_inputs]
        self.assertEqual(skipped_tools, ["pip-audit", "bandit", "semgrep"])
        self.assertTrue(all(s.reason == "missing input" for s in meta.skipped_inputs))

    def test_all_outputs_written(self) -> None:
        self.assertEqual(self.result.outcome.failed, [])
        for path in (
            self.layout.correlation_report,
            self.layout.correlation_summary,
            self.layout.risk_summary,
            self.layout.normalized_findings,
            self.layout.deduplicated_findings,
            self.layout.risk_assessment,
            self.layout.unified_sarif,
            self.layout.sarif_summary,
            self.layout.html_report,
            self.layout.executive_summary,
            self.layout.api_response,
            self.layout.findings_csv,
            self.layout.correlation_raw_dir / "trivy-vulnerabilities.json",
            self.layout.correlation_raw_dir / "safety-vulnerabilities.json",
            self.layout.sarif_processed_dir / "hadolint.sarif",
        ):
            with self.subTest(path=path.name):
                self.assertTrue(path.is_file())

    def test_report_file_shape(self) -> None:
        report = self._load(self.layout.correlation_report)
        self.assertIn("correlation_metadata", report)
        self.assertIn("correlation_metrics", report)
        self.assertEqual(report["vulnerability_summary"]["total_vulnerabilities"], 9)
        self.assertEqual(report["vulnerability_summary"]["risk_distribution"]["high_risk"], 4)
        risk = self._load(self.layout.risk_summary)
        self.assertGreaterEqual(len(risk["risk_distribution"]), 3)
        assessment = self._load(self.layout.risk_assessment)
        self.assertTrue(all("priority_score" in entry for entry in assessment))
        self.assertIn("correlation", self.layout.correlation_summary.read_text(encoding="utf-8"))

    def test_unified_sarif_has_one_run_per_tool(self) -> None:
        sarif = self._load(self.layout.unified_sarif)
        self.assertEqual(sarif["version"], "2.1.0")
        names = [run["tool"]["driver"]["name"] for run in sarif["runs"]]
        self.assertEqual(names, ["Trivy", "Grype", "Safety", "Hadolint"])

    def test_output_directories_mode(self) -> None:
        for directory in self.layout.output_dirs():
            with self.subTest(directory=directory.name):
                self.assertEqual(stat.S_IMODE(directory.stat().st_mode), OUTPUT_DIR_MODE)

    def test_rerun_is_idempotent(self) -> None:
        again = run_correlation(self._settings())
        self.assertEqual(
            [g.group_key for g in again.report.correlation_groups],
            [g.group_key for g in self.result.report.correlation_groups],
        )


class TestDegradedInputs(PipelineTestCase):
    """Bad inputs are skipped; native SARIF is passed through."""

    def test_malformed_file_is_skipped(self) -> None:
        _write_json(self.base / "safety-results.json", MOCK_SAFETY)
        (self.base / "trivy-results.json").write_text("{broken", encoding="utf-8")
        with self.assertLogs("correlator.services.pipeline", level="WARNING"):
            result = run_correlation(self._settings())
        skipped = {s.path: s.reason for s in result.report.correlation_metadata.skipped_inputs}
        self.assertIn("trivy-results.json", skipped)
        self.assertIn("Malformed JSON", skipped["trivy-results.json"])
        self.assertEqual(result.report.correlation_metrics.total_raw_findings, 2)
        self.assertFalse(result.requires_escalation)

    def test_no_inputs_produces_empty_reports(self) -> None:
        result = run_correlation(self._settings())
        self.assertEqual(result.report.correlation_groups, [])
        self.assertEqual(result.report.correlation_metrics.correlation_accuracy, 1.0)
        self.assertTrue(self.layout.correlation_report.is_file())
        self.assertEqual(self._load(self.layout.unified_sarif)["runs"], [])

    def test_stage_files_are_discovered(self) -> None:
        _write_json(self.base / "basic" / "hadolint-production.json", MOCK_HADOLINT[:1])
        _write_json(self.base / "basic" / "hadolint-development.json", MOCK_HADOLINT[1:])
        result = run_correlation(self._settings())
        self.assertEqual(result.report.correlation_metrics.total_raw_findings, 3)
        self.assertEqual(
            result.report.correlation_metadata.input_files,
            ["basic/hadolint-development.json", "basic/hadolint-production.json"],
        )

    def test_safety_scan_document_in_basic_dir(self) -> None:
        scan = {
            "meta": {"telemetry": {"safety_version": "3.2.3"}},
            "scan_results": {
                "projects": [
                    {
                        "files": [
                            {
                                "location": "requirements.txt",
                                "results": {
                                    "dependencies": [
                                        {
                                            "name": "jinja2",
                                            "specifications": [
                                                {
                                                    "raw": "jinja2==2.4.1",
                                                    "vulnerabilities": {
                                                        "known_vulnerabilities": [{"id": "39611"}]
                                                    },
                                                }
                                            ],
                                        }
                                    ]
                                },
                            }
                        ]
                    }
                ]
            },
        }
        _write_json(self.base / "basic" / "safety-scan.json", scan)
        result = run_correlation(self._settings())
        self.assertEqual(result.report.correlation_metrics.total_raw_findings, 1)
        group = result.report.correlation_groups[0]
        self.assertEqual(group.package_name, "jinja2")
        self.assertEqual(group.normalized_severity, "MEDIUM")
        self.assertNotIn("safety", [s.tool for s in result.report.correlation_metadata.skipped_inputs])

    def test_native_sarif_keeps_driver_name(self) -> None:
        native = {
            "version": "2.1.0",
            "runs": [
                {
                    "tool": {"driver": {"name": "Semgrep OSS", "rules": []}},
                    "results": [{"ruleId": "r1", "message": {"text": "m"}}],
                }
            ],
        }
        _write_json(self.base / "sarif" / "raw" / "semgrep.sarif", native)
        run_correlation(self._settings())
        sarif = self._load(self.layout.unified_sarif)
        self.assertEqual([r["tool"]["driver"]["name"] for r in sarif["runs"]], ["Semgrep OSS"])

    def test_results_path_that_is_a_file_is_fatal(self) -> None:
        not_a_dir = Path(self._tmp.name) / "not-a-dir"
        not_a_dir.write_text("x", encoding="utf-8")
        with self.assertRaises(OutputDirectoryError):
            run_correlation(Settings(_env_file=None, SCAN_RESULTS_DIR=not_a_dir))


class TestCliExitCodes(PipelineTestCase):
    """0 without escalation, 1 with high-risk findings, 2 on fatal errors."""

    def test_high_risk_exits_one(self) -> None:
        _write_mock_results(self.base)
        self.assertEqual(main(["--results-dir", str(self.base)]), EXIT_HIGH_RISK)

    def test_lint_only_exits_zero(self) -> None:
        _write_json(self.base / "hadolint-results.json", MOCK_HADOLINT)
        self.assertEqual(main(["--results-dir", str(self.base)]), EXIT_OK)

    def test_threshold_above_findings_exits_zero(self) -> None:
        _write_json(self.base / "grype-results.json", {"matches": MOCK_GRYPE["matches"][1:]})
        self.assertEqual(
            main(["--results-dir", str(self.base), "--severity-threshold", "critical"]),
            EXIT_OK,
        )
        self.assertEqual(main(["--results-dir", str(self.base)]), EXIT_HIGH_RISK)

    def test_invalid_threshold_is_fatal(self) -> None:
        self.assertEqual(
            main(["--results-dir", str(self.base), "--severity-threshold", "SEVERE"]),
            EXIT_FATAL,
        )

    def test_unsettable_directory_mode_is_not_fatal(self) -> None:
        _write_json(self.base / "hadolint-results.json", MOCK_HADOLINT)
        with patch.object(Path, "chmod", side_effect=PermissionError(1, "Operation not permitted")):
            with self.assertLogs("correlator.core.layout", level="WARNING"):
                self.assertEqual(main(["--results-dir", str(self.base)]), EXIT_OK)
        self.assertTrue(self.layout.correlation_report.is_file())

    def test_unusable_results_dir_is_fatal(self) -> None:
        blocker = Path(self._tmp.name) / "blocker"
        blocker.write_text("x", encoding="utf-8")
        self.assertEqual(main(["--results-dir", str(blocker)]), EXIT_FATAL)


if __name__ == "__main__":
    unittest.main()
