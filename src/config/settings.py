# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for orchestration timings, backend selection
(state store, page scanner, progress notifier) and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Orchestration ===
    # Scan service allows one in-flight session per account.
    inter_page_delay_s: float = 10.0
    max_attempts: int = 3
    rate_limit_retry_delay_s: float = 10.0
    transient_retry_delay_s: float = 5.0
    seconds_per_page_estimate: int = 30

    # === State store ===
    state_backend: Literal["memory", "sqlite", "redis"] = "sqlite"
    state_sqlite_path: Path = Path("~/.a11ybatch/state.db")
    state_redis_url: str = ""

    # === Page scanner ===
    scanner_backend: Literal["http"] = "http"
    scanner_endpoint: str = "http://localhost:8080/scan"
    scanner_timeout_s: float = 55.0
    scanner_api_key: str = ""

    # === Progress notifier ===
    notifier_backend: Literal["log", "memory", "redis"] = "log"
    notifier_redis_url: str = ""
    notifier_channel_prefix: str = "a11ybatch:batch:"

    # === Reports ===
    report_output_dir: Path = Path("./reports")
    report_top_recommendations_html: int = 10

    # === Batches ===
    default_owner_id: str = "local-user"
    default_org_id: str = "00000000-0000-0000-0000-000000000000"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "inter_page_delay_s",
        "rate_limit_retry_delay_s",
        "transient_retry_delay_s",
        "scanner_timeout_s",
    )
    @classmethod
    def validate_non_negative_delay(cls, v: float, info) -> float:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.max_attempts < 1:
            errors.append("MAX_ATTEMPTS must be >= 1")

        if self.seconds_per_page_estimate < 0:
            errors.append("SECONDS_PER_PAGE_ESTIMATE must be >= 0")

        if self.state_backend == "redis" and not self.state_redis_url:
            errors.append("STATE_BACKEND=redis requires STATE_REDIS_URL")

        if self.notifier_backend == "redis" and not self.notifier_redis_url_resolved:
            errors.append(
                "NOTIFIER_BACKEND=redis requires NOTIFIER_REDIS_URL or STATE_REDIS_URL"
            )

        if self.scanner_backend == "http" and not self.scanner_endpoint.startswith(
            ("http://", "https://")
        ):
            errors.append("SCANNER_ENDPOINT must be an http(s) URL")

        if self.report_top_recommendations_html < 1:
            errors.append("REPORT_TOP_RECOMMENDATIONS_HTML must be >= 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def notifier_redis_url_resolved(self) -> str:
        """Notifier Redis URL, falling back to the state store's."""
        return self.notifier_redis_url or self.state_redis_url


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
