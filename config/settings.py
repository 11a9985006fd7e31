"""Engine settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. All keys use the
``SCHEME_MATCHER_`` prefix, e.g. ``SCHEME_MATCHER_HARD_TIMEOUT_SECONDS=8``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the matching engine.

    Environment variables are loaded from a ``.env`` file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEME_MATCHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # ── Latency contract (seconds) ─────────────────────────────────────
    soft_timeout_seconds: float = Field(default=5.0, gt=0)
    hard_timeout_seconds: float = Field(default=10.0, gt=0)

    # ── Evaluation ─────────────────────────────────────────────────────
    default_page_size: int = Field(default=20, ge=1)
    evaluation_batch_size: int = Field(default=25, ge=1)
    suggestion_top_k: int = Field(default=5, ge=1)

    # ── Margin normalisation ───────────────────────────────────────────
    age_reference_span: float = Field(default=100.0, gt=0)  # years
    income_reference_span: float = Field(default=1_000_000.0, gt=0)  # INR, used when no scheme caps income

    # ── Ranking ────────────────────────────────────────────────────────
    urgency_window_days: int = Field(default=30, ge=1)
    weight_benefit: float = Field(default=0.35, ge=0)
    weight_deadline: float = Field(default=0.25, ge=0)
    weight_margin: float = Field(default=0.25, ge=0)
    weight_preference: float = Field(default=0.15, ge=0)

    @model_validator(mode="after")
    def _check_timeouts(self) -> Settings:
        if self.hard_timeout_seconds <= self.soft_timeout_seconds:
            raise ValueError("hard_timeout_seconds must be greater than soft_timeout_seconds")
        return self


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
