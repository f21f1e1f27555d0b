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

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _default_database_url() -> str:
    return f"sqlite:///{(PROJECT_ROOT / 'data' / 'notifier.db').as_posix()}"


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on admin routes",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable rate limiting on HTTP routes and bot commands",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include RateLimit-* and Retry-After headers on responses",
    )
    rate_limit_sweep_seconds: float = Field(
        300.0,
        description="How often stale rate window entries are swept (0 disables the sweep thread)",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/notifier.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate request correlation ids",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class DatabaseSettings(BaseSettings):
    """Storage for job records and subscribers."""

    url: str = Field(
        default_factory=_default_database_url,
        description="SQLAlchemy database URL (SQLite file by default)",
    )
    echo: bool = Field(False, description="Echo SQL statements (debugging only)")

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
    )


class SchedulerSettings(BaseSettings):
    """Job runner configuration."""

    enabled: bool = Field(True, description="Start the polling job runner at startup")
    poll_interval_seconds: float = Field(
        10.0,
        description="Delay between two polls of the job store",
        gt=0,
    )
    max_concurrency: int = Field(
        20,
        description="Maximum number of handler invocations in flight",
        ge=1,
    )
    handler_timeout_seconds: float = Field(
        30.0,
        description="A handler running longer than this is treated as failed",
        gt=0,
    )
    lock_lease_seconds: float = Field(
        300.0,
        description="Lifetime of a job execution lock if never released",
        gt=0,
    )
    batch_size: int = Field(
        500,
        description="Maximum number of due jobs fetched per poll",
        ge=1,
    )
    restore_on_startup: bool = Field(
        True,
        description="Create missing jobs for enabled subscribers at startup",
    )

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        case_sensitive=False,
    )


class TelegramSettings(BaseSettings):
    """Telegram Bot API delivery channel."""

    bot_token: str | None = Field(
        None,
        description="Bot token; when missing, deliveries are only logged",
    )
    api_base_url: str = Field(
        "https://api.telegram.org",
        description="Bot API endpoint",
    )
    webhook_secret: str | None = Field(
        None,
        description="Expected X-Telegram-Bot-Api-Secret-Token on webhook calls",
    )
    timeout_seconds: float = Field(10.0, description="Request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        case_sensitive=False,
    )


class JokeApiSettings(BaseSettings):
    """Payload source configuration."""

    base_url: str = Field(
        "https://official-joke-api.appspot.com",
        description="Joke API endpoint",
    )
    timeout_seconds: float = Field(10.0, description="Request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="JOKE_API_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    """Build app settings from environment.

    Pydantic Settings populates values from environment variables; static type
    checkers still treat required fields as constructor arguments, hence the
    factory functions.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


def _build_database_settings() -> DatabaseSettings:
    return DatabaseSettings()  # type: ignore[call-arg]


def _build_scheduler_settings() -> SchedulerSettings:
    return SchedulerSettings()  # type: ignore[call-arg]


def _build_telegram_settings() -> TelegramSettings:
    return TelegramSettings()  # type: ignore[call-arg]


def _build_joke_api_settings() -> JokeApiSettings:
    return JokeApiSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    database: DatabaseSettings = Field(default_factory=_build_database_settings)
    scheduler: SchedulerSettings = Field(default_factory=_build_scheduler_settings)
    telegram: TelegramSettings = Field(default_factory=_build_telegram_settings)
    joke_api: JokeApiSettings = Field(default_factory=_build_joke_api_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
