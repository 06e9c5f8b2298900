"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment."""

    return RateLimitSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    admin_api_key_required: bool = Field(
        True,
        description="Whether admin endpoints require an API key",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of API keys accepted by admin endpoints",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Where log lines are written",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10_000_000,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class PolicyOverride(BaseModel):
    """Single rate limit policy supplied through configuration."""

    quota: int = Field(..., ge=1)
    window_seconds: int = Field(..., ge=1)
    block_seconds: int | None = Field(None, ge=1)
    fail_closed: bool = False


class RateLimitSettings(BaseSettings):
    """Distributed rate limiting configuration."""

    enabled: bool = Field(
        True,
        description="Global switch for quota enforcement",
    )
    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Quota store backend; memory is single-process only",
    )
    redis_url: str | None = Field(
        None,
        description="Redis connection URL (required when backend=redis)",
    )
    redis_key_prefix: str = Field(
        "quotaguard:rl:",
        description="Prefix for every Redis key written by the quota store",
    )
    redis_timeout_seconds: float = Field(
        1.0,
        description="Socket timeout for individual Redis commands",
        gt=0,
    )
    transaction_timeout_seconds: float = Field(
        2.0,
        description="Deadline for a single check-and-consume transaction",
        gt=0,
    )
    max_transaction_retries: int = Field(
        10,
        description="Optimistic transaction attempts before giving up",
        ge=1,
    )
    retention_hours: int = Field(
        24,
        description="Entries whose window started earlier than this are removed by cleanup",
        ge=1,
    )
    cleanup_batch_size: int = Field(
        500,
        description="Maximum entries removed by one cleanup invocation",
        ge=1,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on rate limited responses",
    )
    locale: Literal["en", "he"] = Field(
        "en",
        description="Language of the throttling message returned to clients",
    )
    default_limit_type: str = Field(
        "general",
        description="Policy applied when a route does not name one",
    )
    identity_hash_secret: str | None = Field(
        None,
        description="Optional HMAC key for hashing client addresses",
    )
    policies: dict[str, PolicyOverride] = Field(
        default_factory=dict,
        description="JSON object of limitType -> policy overriding or extending the defaults",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _require_redis_url(self) -> "RateLimitSettings":
        if self.backend == "redis" and not self.redis_url:
            raise ValueError("redis_url required when backend='redis'")
        return self


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
