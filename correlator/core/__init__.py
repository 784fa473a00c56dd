"""Core configuration and output layout."""

from correlator.core.config import Settings, get_settings
from correlator.core.layout import OutputDirectoryError, OutputLayout, ensure_output_dirs

__all__ = [
    "OutputDirectoryError",
    "OutputLayout",
    "Settings",
    "ensure_output_dirs",
    "get_settings",
]
