"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production injects via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None

# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class SupabaseSettings(BaseSettings):
    """Supabase project access.

    The service role key bypasses row level security and is only used
    server-side (webhooks, cron jobs, quota bookkeeping).
    """

    url: str | None = Field(None, description="Supabase project URL")
    anon_key: str | None = Field(None, description="Public anon key")
    service_role_key: str | None = Field(
        None,
        description="Service role key used for admin operations",
    )

    model_config = SettingsConfigDict(env_prefix="SUPABASE_", case_sensitive=False)


class LLMSettings(BaseSettings):
    """Chat model configuration (any OpenAI-compatible endpoint)."""

    provider: str = Field("deepseek", description="LLM provider name (deepseek, openai)")
    model: str = Field("deepseek-chat", description="Model name")
    api_key: str | None = Field(None, description="API key for the provider")
    base_url: str | None = Field(
        None,
        description="Custom API endpoint; defaults per provider when omitted",
    )
    timeout_seconds: float = Field(30.0, description="Request timeout in seconds")
    max_retries: int = Field(
        3,
        ge=0,
        description="Retries on 429/5xx/timeouts with exponential backoff",
    )

    model_config = SettingsConfigDict(env_prefix="LLM_", case_sensitive=False)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(False, description="Enable debug mode with verbose logging")
    public_url: str | None = Field(
        None,
        description="Public site URL used for payment redirects",
    )
    max_prompt_chars: int = Field(
        100_000,
        ge=1,
        description="Maximum user prompt length accepted by /v1/analyze",
    )
    analysis_cache_ttl_seconds: int = Field(3600, ge=1)
    analysis_cache_max_entries: int = Field(1024, ge=1)

    rate_limit_enabled: bool = Field(True, description="Enable per-client IP rate limiting")
    rate_limit_requests: int = Field(
        100,
        ge=1,
        description="Maximum number of requests allowed per window (per client IP)",
    )
    rate_limit_window_seconds: int = Field(60, ge=1, description="Rate limit window size")
    rate_limit_max_tracked_keys: int = Field(
        10_000,
        ge=1,
        description="Tracked client keys before expired entries are pruned",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    cron_secret: str | None = Field(
        None,
        description="Bearer secret required by /v1/cron/* endpoints",
    )

    model_config = SettingsConfigDict(env_prefix="APP_", case_sensitive=False)


class PaymentSettings(BaseSettings):
    """Credit order lifecycle knobs."""

    order_expiry_hours: int = Field(24, ge=1, description="Pending orders expire after this")
    stale_pending_minutes: int = Field(60, ge=1)
    alert_stale_pending: int = Field(10, ge=0)
    alert_pending_credits: int = Field(5, ge=0)
    alert_min_success_rate: float = Field(80.0, ge=0, le=100)
    alert_min_recent_orders: int = Field(10, ge=0)

    model_config = SettingsConfigDict(env_prefix="PAYMENT_", case_sensitive=False)


class AfdianSettings(BaseSettings):
    """Afdian (爱发电) sponsorship checkout."""

    user_id: str | None = Field(None, description="Creator user id on Afdian")
    base_url: str = Field("https://afdian.com", description="Afdian site root")
    webhook_token: str | None = Field(
        None,
        description="Optional shared token expected as ?token= on the notify URL",
    )

    model_config = SettingsConfigDict(env_prefix="AFDIAN_", case_sensitive=False)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, ge=0, description="Rotate after this size (0 disables)")
    backup_count: int = Field(5, ge=0)
    request_id_header: str = Field("X-Request-ID")

    model_config = SettingsConfigDict(env_prefix="LOG_", case_sensitive=False)


class Settings(BaseSettings):
    """Main application settings container.

    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    app: AppSettings = Field(default_factory=AppSettings)
    payment: PaymentSettings = Field(default_factory=PaymentSettings)
    afdian: AfdianSettings = Field(default_factory=AfdianSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(case_sensitive=False)


# Global settings instance - composed from domain-specific settings
settings = Settings()
