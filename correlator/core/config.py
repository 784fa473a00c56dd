"""Correlation run configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from correlator.schemas.findings import SEVERITY_VALUES, SeverityLevel

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Validated run settings from env and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Base path for every scanner input and every generated report.
    SCAN_RESULTS_DIR: Path = Path("comprehensive-security-results")

    # Enables optional scanners upstream; only recorded in report metadata here.
    ADVANCED_MODE: bool = False
    DOCKER_REPOSITORY: str = ""

    # High-risk groups at or above this severity make the run exit with code 1.
    SEVERITY_THRESHOLD: SeverityLevel = "HIGH"

    TOP_FINDINGS_LIMIT: int = 10
    LOG_LEVEL: str = "INFO"

    @field_validator("SCAN_RESULTS_DIR", mode="before")
    @classmethod
    def validate_scan_results_dir(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("SCAN_RESULTS_DIR must be set and non-empty")
        return v.strip() if isinstance(v, str) else v

    @field_validator("SEVERITY_THRESHOLD", mode="before")
    @classmethod
    def validate_severity_threshold(cls, v: object) -> object:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("SEVERITY_THRESHOLD must be set and non-empty")
        normalized = v.strip().upper()
        if normalized not in SEVERITY_VALUES:
            raise ValueError(
                f"SEVERITY_THRESHOLD must be one of {sorted(SEVERITY_VALUES)}, got {v!r}"
            )
        return normalized

    @field_validator("TOP_FINDINGS_LIMIT")
    @classmethod
    def validate_top_findings_limit(cls, v: int) -> int:
        if v < 1 or v > 100:
            raise ValueError("TOP_FINDINGS_LIMIT must be between 1 and 100")
        return v

    @field_validator("DOCKER_REPOSITORY")
    @classmethod
    def validate_docker_repository(cls, v: str) -> str:
        return v.strip()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        normalized = (v or "").strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}")
        return normalized


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance built from the environment."""
    return Settings()
