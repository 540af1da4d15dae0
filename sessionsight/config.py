"""
Application configuration via environment variables.

Uses Pydantic BaseSettings to load and validate all config from env vars
or a .env.local file. Every setting has a sensible default for local
development so the pipeline can run with minimal configuration.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment selector."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Central configuration for the SessionSight review core.

    Values are loaded from environment variables first, falling back
    to a `.env.local` file in the project root. Secrets should NEVER
    be committed; use `.env.example` as the template.
    """

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────
    environment: Environment = Environment.DEVELOPMENT

    # ── LLM Provider ─────────────────────────────────────────────
    openai_api_key: str = Field(default="", description="OpenAI API key for extraction calls")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="Chat completions base URL")
    llm_request_timeout_seconds: float = Field(default=60.0, gt=0, description="HTTP timeout per model call")
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="Sampling temperature for extraction")
    llm_max_output_tokens: int = Field(default=2048, ge=1, description="Max tokens per model response")

    # ── Supabase ─────────────────────────────────────────────────
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service-role key")

    # ── Review Routing ───────────────────────────────────────────
    review_confidence_threshold: float = Field(
        default=0.70, ge=0.0, le=1.0, description="Overall confidence below this is flagged for review"
    )

    # ── Risk Guardrail ───────────────────────────────────────────
    risk_confidence_threshold: float = Field(
        default=0.90, ge=0.0, le=1.0, description="Risk fields below this are re-checked"
    )
    always_re_extract: bool = Field(default=False, description="Re-check every risk field on every note")
    enable_keyword_safety_net: bool = Field(default=True, description="Re-check risk fields when danger keywords appear")
    use_conservative_merge: bool = Field(default=True, description="Resolve disagreements toward the more severe value")
    require_criteria_used: bool = Field(
        default=True, description="Retry re-extraction when criteria_used/reasoning_used are missing"
    )
    criteria_validation_attempts: int = Field(
        default=2, ge=1, le=5, description="Max re-extraction attempts, including the first"
    )
    re_extraction_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Upper bound on one second-opinion call"
    )

    # ── Operational Limits ───────────────────────────────────────
    max_concurrent_extractions: int = Field(default=4, ge=1, le=64, description="Notes processed in parallel")
    notes_inbox_dir: str = Field(default="notes/inbox", description="Directory the worker polls for .txt notes")
    poll_interval_seconds: float = Field(default=10.0, gt=0, description="Worker sleep between empty polls")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Root log level")

    # ── Derived helpers ──────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached Settings instance.

    Using lru_cache ensures we read env vars exactly once, and every
    module that calls ``get_settings()`` gets the same object.
    """
    return Settings()
