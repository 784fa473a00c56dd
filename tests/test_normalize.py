"""Unit tests for correlator.services.normalize: severity tables, CVSS bands and CVE extraction."""

import unittest

from correlator.schemas.findings import SEVERITY_VALUES
from correlator.services.normalize import (
    DEFAULT_SEVERITY,
    cvss_to_severity,
    extract_cve,
    first_cve,
    lookup_severity,
    normalize_severity,
)


class TestCvssToSeverity(unittest.TestCase):
    """CVSS buckets: >=9 CRITICAL, >=7 HIGH, >=4 MEDIUM, >0 LOW, 0 INFO."""

    def test_band_boundaries(self) -> None:
        cases = [
            (10.0, "CRITICAL"),
            (9.0, "CRITICAL"),
            (8.9, "HIGH"),
            (7.0, "HIGH"),
            (6.9, "MEDIUM"),
            (4.0, "MEDIUM"),
            (3.9, "LOW"),
            (0.1, "LOW"),
            (0.0, "INFO"),
        ]
        for score, expected in cases:
            with self.subTest(score=score):
                self.assertEqual(cvss_to_severity(score), expected)


class TestLookupSeverity(unittest.TestCase):
    """Tool-specific vocabularies are consulted before the generic table."""

    def test_generic_aliases_case_insensitive(self) -> None:
        self.assertEqual(lookup_severity("trivy", "CRITICAL"), "CRITICAL")
        self.assertEqual(lookup_severity("grype", "Critical"), "CRITICAL")
        self.assertEqual(lookup_severity("safety", " moderate "), "MEDIUM")
        self.assertEqual(lookup_severity("bandit", "low"), "LOW")

    def test_hadolint_levels(self) -> None:
        self.assertEqual(lookup_severity("hadolint", "error"), "HIGH")
        self.assertEqual(lookup_severity("hadolint", "warning"), "MEDIUM")
        self.assertEqual(lookup_severity("hadolint", "info"), "LOW")
        self.assertEqual(lookup_severity("hadolint", "style"), "INFO")

    def test_semgrep_info_is_low_not_info(self) -> None:
        self.assertEqual(lookup_severity("semgrep", "INFO"), "LOW")
        self.assertEqual(lookup_severity("trivy", "info"), "INFO")

    def test_numeric_string_is_bucketed_as_cvss(self) -> None:
        self.assertEqual(lookup_severity("safety", "9.8"), "CRITICAL")
        self.assertEqual(lookup_severity("safety", "5"), "MEDIUM")

    def test_unknown_or_absent_returns_none(self) -> None:
        self.assertIsNone(lookup_severity("trivy", "UNKNOWN"))
        self.assertIsNone(lookup_severity("trivy", ""))
        self.assertIsNone(lookup_severity("trivy", None))
        self.assertIsNone(lookup_severity("safety", "42"))


class TestNormalizeSeverity(unittest.TestCase):
    """Combined qualitative + CVSS normalization with the MEDIUM fallback."""

    def test_unknown_defaults_to_medium_and_logs(self) -> None:
        with self.assertLogs("correlator.services.normalize", level="INFO") as logs:
            result = normalize_severity("trivy", "UNKNOWN")
        self.assertEqual(result, DEFAULT_SEVERITY)
        self.assertEqual(result, "MEDIUM")
        self.assertIn("UNKNOWN", logs.output[0])

    def test_absent_severity_defaults_to_medium(self) -> None:
        self.assertEqual(normalize_severity("safety", None), "MEDIUM")

    def test_cvss_only(self) -> None:
        self.assertEqual(normalize_severity("grype", None, 9.1), "CRITICAL")

    def test_higher_of_qualitative_and_cvss_wins(self) -> None:
        self.assertEqual(normalize_severity("trivy", "HIGH", 9.8), "CRITICAL")
        self.assertEqual(normalize_severity("trivy", "MEDIUM", 7.2), "HIGH")
        self.assertEqual(normalize_severity("trivy", "CRITICAL", 5.0), "CRITICAL")

    def test_out_of_range_cvss_is_ignored(self) -> None:
        self.assertEqual(normalize_severity("trivy", "LOW", 42.0), "LOW")

    def test_deterministic_and_in_enum(self) -> None:
        for raw in ("critical", "HIGH", "Moderate", "warning", "note", "bogus", None):
            with self.subTest(raw=raw):
                first = normalize_severity("grype", raw)
                self.assertEqual(first, normalize_severity("grype", raw))
                self.assertIn(first, SEVERITY_VALUES)


class TestExtractCve(unittest.TestCase):
    """CVE identifiers are found anywhere in text and upper-cased."""

    def test_extracts_and_uppercases(self) -> None:
        self.assertEqual(extract_cve("see cve-2021-44228 for details"), "CVE-2021-44228")

    def test_requires_four_digit_sequence(self) -> None:
        self.assertIsNone(extract_cve("CVE-2021-123"))
        self.assertEqual(extract_cve("CVE-2021-1234567"), "CVE-2021-1234567")

    def test_non_cve_ids(self) -> None:
        self.assertIsNone(extract_cve("39611"))
        self.assertIsNone(extract_cve("GHSA-jfh8-c2jp-5v3q"))
        self.assertIsNone(extract_cve(None))

    def test_first_cve_in_order(self) -> None:
        self.assertEqual(
            first_cve(["PYSEC-2021-59", None, "CVE-2021-28957", "CVE-2020-0001"]),
            "CVE-2021-28957",
        )
        self.assertIsNone(first_cve(["GHSA-xxxx", None]))


if __name__ == "__main__":
    unittest.main()
