"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(
        default_factory=lambda: Path("data/tasks.db"),
        validation_alias=AliasChoices("DATABASE_PATH", "database_path"),
    )
    logging_settings_path: Path = Field(
        default_factory=lambda: Path("logging_settings.conf"),
        validation_alias=AliasChoices(
            "LOGGING_SETTINGS_PATH", "logging_settings_path"
        ),
    )

    # Delivery
    delivery_webhook_url: Optional[AnyHttpUrl] = Field(
        default=None,
        validation_alias=AliasChoices("DELIVERY_WEBHOOK_URL", "delivery_webhook_url"),
    )
    delivery_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices(
            "DELIVERY_TIMEOUT_SECONDS", "delivery_timeout_seconds"
        ),
    )

    # Due-soon / overdue sweeps
    due_soon_offsets: list[int] = Field(
        default_factory=lambda: [105, 30, 15, 5],
        validation_alias=AliasChoices("DUE_SOON_OFFSETS", "due_soon_offsets"),
    )
    overdue_offsets: list[int] = Field(
        default_factory=lambda: [15, 30, 60],
        validation_alias=AliasChoices("OVERDUE_OFFSETS", "overdue_offsets"),
    )
    window_minutes: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices("WINDOW_MINUTES", "window_minutes"),
    )
    overdue_min_interval_seconds: float = Field(
        default=600,
        ge=0,
        validation_alias=AliasChoices(
            "OVERDUE_MIN_INTERVAL_SECONDS", "overdue_min_interval_seconds"
        ),
    )

    # Completion
    completion_recency_seconds: float = Field(
        default=60,
        gt=0,
        validation_alias=AliasChoices(
            "COMPLETION_RECENCY_SECONDS", "completion_recency_seconds"
        ),
    )
    completion_min_interval_seconds: float = Field(
        default=10,
        ge=0,
        validation_alias=AliasChoices(
            "COMPLETION_MIN_INTERVAL_SECONDS", "completion_min_interval_seconds"
        ),
    )

    # Daily digest
    digest_hour: int = Field(
        default=17,
        ge=0,
        le=23,
        validation_alias=AliasChoices("DIGEST_HOUR", "digest_hour"),
    )
    digest_window_minutes: int = Field(
        default=5,
        ge=0,
        le=59,
        validation_alias=AliasChoices(
            "DIGEST_WINDOW_MINUTES", "digest_window_minutes"
        ),
    )
    digest_lookahead_days: int = Field(
        default=7,
        ge=1,
        validation_alias=AliasChoices(
            "DIGEST_LOOKAHEAD_DAYS", "digest_lookahead_days"
        ),
    )

    # Ephemeral state
    watcher_request_ttl_hours: float = Field(
        default=72,
        gt=0,
        validation_alias=AliasChoices(
            "WATCHER_REQUEST_TTL_HOURS", "watcher_request_ttl_hours"
        ),
    )
    timezone_setup_ttl_seconds: float = Field(
        default=600,
        gt=0,
        validation_alias=AliasChoices(
            "TIMEZONE_SETUP_TTL_SECONDS", "timezone_setup_ttl_seconds"
        ),
    )

    # Scheduler cadence
    scheduler_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("SCHEDULER_ENABLED", "scheduler_enabled"),
    )
    completion_check_interval_seconds: float = Field(
        default=30,
        gt=0,
        validation_alias=AliasChoices(
            "COMPLETION_CHECK_INTERVAL_SECONDS", "completion_check_interval_seconds"
        ),
    )
    window_check_interval_seconds: float = Field(
        default=300,
        gt=0,
        validation_alias=AliasChoices(
            "WINDOW_CHECK_INTERVAL_SECONDS", "window_check_interval_seconds"
        ),
    )
    daily_summary_interval_seconds: float = Field(
        default=60,
        gt=0,
        validation_alias=AliasChoices(
            "DAILY_SUMMARY_INTERVAL_SECONDS", "daily_summary_interval_seconds"
        ),
    )
    initial_check_delay_seconds: float = Field(
        default=30,
        ge=0,
        validation_alias=AliasChoices(
            "INITIAL_CHECK_DELAY_SECONDS", "initial_check_delay_seconds"
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
