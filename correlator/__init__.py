"""Normalize, correlate and report security scanner findings."""

__version__ = "0.1.0"
