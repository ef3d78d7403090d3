"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import AliasChoices, Field
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


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()


def _build_storage_settings() -> "StorageSettings":
    """Build storage settings from environment."""

    return StorageSettings()


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment.

    Pydantic Settings (v2) populates values from environment variables, so
    nested groups are created via default_factory instead of constructor args.
    """

    return RateLimitSettings()


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: 'json' (structured) or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class StorageSettings(BaseSettings):
    """Key-value storage configuration."""

    backend: str = Field(
        "memory",
        description="Substrate backing the storage adapter: 'memory' or 'file'",
    )
    file_path: str = Field(
        "data/storage.json",
        description="JSON document used when backend is 'file'",
    )
    quota_chars: int | None = Field(
        None,
        description="Maximum characters the memory substrate may hold (None for unlimited)",
        ge=1,
    )
    cache_enabled: bool = Field(
        True,
        description="Serve repeated reads from the in-memory cache",
    )
    compression_threshold: int = Field(
        1000,
        description="Compress serialized payloads longer than this many characters",
        ge=1,
    )
    chunk_size: int = Field(
        50_000,
        description="Split stored payloads into chunks of at most this many characters",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration.

    When both ``remote_url`` and ``remote_token`` are set, counters live in the
    remote counter store; otherwise an in-process map is used.
    """

    enabled: bool = Field(
        True,
        description="Enable rate limiting on protected endpoints",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    remote_url: str | None = Field(
        None,
        description="REST endpoint of the remote counter store",
        validation_alias=AliasChoices("RATE_LIMIT_REMOTE_URL", "UPSTASH_REDIS_REST_URL"),
    )
    remote_token: str | None = Field(
        None,
        description="Bearer token for the remote counter store",
        validation_alias=AliasChoices("RATE_LIMIT_REMOTE_TOKEN", "UPSTASH_REDIS_REST_TOKEN"),
    )
    remote_timeout_seconds: float = Field(
        2.0,
        description="Timeout for a single remote counter call",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
        populate_by_name=True,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    storage: StorageSettings = Field(default_factory=_build_storage_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
