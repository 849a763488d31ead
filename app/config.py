# app/config.py
"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Per-run tunables (enabled flag, batch size, retention window) live in the
auto_analysis_config table instead; see app/services/run_config.py.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        ...,
        description="PostgreSQL connection URL",
    )

    # Classification service
    CLASSIFIER_BASE_URL: str = Field(
        default="http://localhost:54321/functions/v1",
        description="Base URL of the classification functions (one endpoint per stage)",
    )
    CLASSIFIER_API_KEY: str | None = Field(
        default=None,
        description="Bearer token sent to the classification service",
    )
    CLASSIFIER_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        description="Per-call timeout for the classification service",
    )

    # Retention
    RETENTION_TIMESTAMP_FIELD: Literal["created_at", "published_at"] = Field(
        default="created_at",
        description="Post timestamp the retention cutoff is compared against",
    )

    # Alerting
    TELEGRAM_BOT_TOKEN: str | None = Field(default=None, description="Telegram bot token for failure alerts")
    TELEGRAM_CHAT_ID: str | None = Field(default=None, description="Telegram chat receiving failure alerts")
    DISCORD_WEBHOOK_URL: str | None = Field(default=None, description="Discord incoming webhook URL")
    SLACK_WEBHOOK_URL: str | None = Field(default=None, description="Slack incoming webhook URL")
    ALERT_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for each alert webhook call",
    )

    # Logging
    LOG_JSON: bool = Field(
        default=True,
        description="Emit single-line JSON logs (disable for local development)",
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    # Application
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but SQLAlchemy needs postgresql+psycopg2://"""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg2://", 1)
        return v

    @field_validator("CLASSIFIER_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings. Call at startup to validate config."""
    return Settings()
