"""
Centralized settings for analysis-spine.

Manifesto:
    Endpoints, poll cadence and deadlines are operational knobs, not
    constants buried in the orchestration code. ``AnalysisSpineSettings``
    reads them once from ``ANALYSIS_SPINE_*`` environment variables or a
    ``.env`` file, validates them, and hands the same object to every
    component.

Tags:
    analysis-spine, configuration, settings, pydantic
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisSpineSettings(BaseSettings):
    """analysis-spine configuration.

    All fields can be set via ``ANALYSIS_SPINE_*`` environment variables
    (e.g. ``ANALYSIS_SPINE_POLL_INTERVAL_SECONDS=2``).
    """

    model_config = SettingsConfigDict(
        env_prefix="ANALYSIS_SPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Remote services ──────────────────────────────────────────
    app_api_url: str = Field(
        default="http://localhost:3000/api",
        description="Connection validation, data connections and run-result listing",
    )
    validation_api_url: str = Field(default="https://data-validation.datail.ai/api/v1")
    pipeline_api_url: str = Field(default="https://business-insight.datail.ai/api/v1")
    feedback_api_url: str = Field(
        default="http://localhost:8900/api/v1",
        description="Changeset, free-text feedback and standardize services",
    )

    # ── Timing ───────────────────────────────────────────────────
    request_timeout_seconds: float = Field(default=30.0)
    poll_interval_seconds: float = Field(default=10.0)
    poll_max_seconds: float = Field(default=360.0)
    standardize_timeout_seconds: float = Field(default=600.0)

    # ── Version reconciliation ───────────────────────────────────
    version_initial_delay_seconds: float = Field(default=1.0)
    version_retries: int = Field(default=5)
    version_retry_delay_seconds: float = Field(default=2.0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ── Paths ────────────────────────────────────────────────────
    state_path: Path = Field(
        default_factory=lambda: Path.home() / ".analysis-spine" / "state.json",
        description="Where the CLI persists the result store between invocations",
    )

    @field_validator(
        "request_timeout_seconds",
        "poll_max_seconds",
        "standardize_timeout_seconds",
    )
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator(
        "poll_interval_seconds",
        "version_initial_delay_seconds",
        "version_retry_delay_seconds",
    )
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    @field_validator("version_retries")
    @classmethod
    def _non_negative_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, AnalysisSpineSettings] = {}


def get_settings(*, _force_reload: bool = False) -> AnalysisSpineSettings:
    """Load, validate, and cache an :class:`AnalysisSpineSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = AnalysisSpineSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
