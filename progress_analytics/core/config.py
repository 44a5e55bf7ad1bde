"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PERIOD_TYPES = ("daily", "weekly", "monthly")


def _read_secret_file(path: str) -> str:
    try:
        content = Path(path).expanduser().read_text(encoding="utf-8").strip()
    except OSError as exc:
        msg = f"Could not read secret file '{path}'"
        raise ValueError(msg) from exc
    if not content:
        msg = f"Secret file '{path}' is empty"
        raise ValueError(msg)
    return content


class Settings(BaseSettings):
    """
    Application settings.

    All settings can be overridden via environment variables.
    For example, DATABASE_URL env var sets the DATABASE_URL field.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Database
    # =========================================================================
    DATABASE_URL: str = Field(
        default="postgresql+asyncpg://postgres@localhost:5432/progress",
        description="Async PostgreSQL connection string",
    )
    DATABASE_URL_FILE: str | None = Field(
        default=None,
        description="Path to file containing DATABASE_URL",
    )
    DATABASE_URL_SYNC: str = Field(
        default="",
        description="Sync PostgreSQL connection string (for Alembic); derived if empty",
    )
    DATABASE_POOL_SIZE: int = Field(default=10, ge=1, le=100)
    DATABASE_MAX_OVERFLOW: int = Field(default=20, ge=0, le=100)

    @model_validator(mode="after")
    def _load_secret_file_values(self) -> Settings:
        secret_mappings = {
            "DATABASE_URL": self.DATABASE_URL_FILE,
            "REDIS_URL": self.REDIS_URL_FILE,
            "CELERY_BROKER_URL": self.CELERY_BROKER_URL_FILE,
        }
        for target_field, file_path in secret_mappings.items():
            if not file_path:
                continue
            setattr(self, target_field, _read_secret_file(file_path))
        return self

    @model_validator(mode="after")
    def _derive_database_url_sync(self) -> Settings:
        if self.DATABASE_URL.startswith("postgresql://"):
            # Runtime engines use asyncpg; normalize common sync-style URLs.
            self.DATABASE_URL = self.DATABASE_URL.replace(
                "postgresql://",
                "postgresql+asyncpg://",
                1,
            )
        if not self.DATABASE_URL_SYNC.strip():
            self.DATABASE_URL_SYNC = self.DATABASE_URL.replace("postgresql+asyncpg", "postgresql")
        return self

    # =========================================================================
    # Redis
    # =========================================================================
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    REDIS_URL_FILE: str | None = Field(
        default=None,
        description="Path to file containing REDIS_URL",
    )

    # =========================================================================
    # Celery
    # =========================================================================
    CELERY_BROKER_URL: str = Field(default="redis://localhost:6379/1")
    CELERY_BROKER_URL_FILE: str | None = Field(
        default=None,
        description="Path to file containing CELERY_BROKER_URL",
    )
    CELERY_RESULT_BACKEND: str = Field(default="redis://localhost:6379/2")
    WORKER_HEARTBEAT_REDIS_KEY: str = Field(
        default="progress:worker:last_activity",
        description="Redis key storing the latest worker activity heartbeat payload",
    )
    WORKER_HEARTBEAT_TTL_SECONDS: int = Field(
        default=3600,
        ge=60,
        description="Redis TTL for worker heartbeat payload key",
    )

    # =========================================================================
    # Application
    # =========================================================================
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )
    SQL_ECHO: bool = Field(
        default=False,
        description="Log SQL statements from SQLAlchemy engine",
    )
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json", description="json or console")

    # =========================================================================
    # Snapshots
    # =========================================================================
    STREAK_LOOKBACK_DAYS: int = Field(
        default=30,
        ge=1,
        le=366,
        description="Days of activity history considered when computing streaks",
    )
    SNAPSHOT_PERIOD_TYPE: str = Field(
        default="weekly",
        description="Period type used by the scheduled team snapshot task",
    )
    SNAPSHOT_TEAM_IDS: list[str] = Field(
        default_factory=list,
        description="Teams snapshotted by the scheduled task (comma-separated env value supported)",
    )
    BATCH_MAX_CONCURRENCY: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum members snapshotted concurrently within one batch run",
    )
    BATCH_ENTITY_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Per-member timeout before a batch treats the member as failed",
    )
    WEEKLY_SNAPSHOT_DAY_OF_WEEK: int = Field(
        default=1,
        ge=0,
        le=6,
        description="UTC day of week for weekly snapshot task (0=Sun..6=Sat)",
    )
    WEEKLY_SNAPSHOT_HOUR_UTC: int = Field(default=6, ge=0, le=23)
    WEEKLY_SNAPSHOT_MINUTE_UTC: int = Field(default=0, ge=0, le=59)

    @field_validator("SNAPSHOT_TEAM_IDS", mode="before")
    @classmethod
    def parse_team_ids(cls, v: Any) -> list[str]:
        """Parse team ids from comma-separated string or list."""
        if isinstance(v, str):
            return [team_id.strip() for team_id in v.split(",") if team_id.strip()]
        if isinstance(v, list):
            return [str(team_id).strip() for team_id in v if str(team_id).strip()]
        return []

    @field_validator("SNAPSHOT_PERIOD_TYPE", mode="before")
    @classmethod
    def validate_period_type(cls, v: Any) -> str:
        """Reject unknown period types at load time."""
        normalized = str(v).strip().lower()
        if normalized not in _PERIOD_TYPES:
            msg = f"SNAPSHOT_PERIOD_TYPE must be one of {', '.join(_PERIOD_TYPES)}"
            raise ValueError(msg)
        return normalized

    # =========================================================================
    # Derived-data cache
    # =========================================================================
    CACHE_REDIS_PREFIX: str = Field(
        default="progress:derived_cache",
        description="Redis key prefix for versioned derived-data cache entries",
    )
    VOLATILE_CACHE_TTL_SECONDS: int = Field(
        default=7 * 24 * 3600,
        ge=1,
        description="Fixed TTL for externally-sourced cache entries (company research)",
    )
    DERIVED_CACHE_TTL_SECONDS: int = Field(
        default=7 * 24 * 3600,
        ge=1,
        description="TTL for profile-derived cache entries; fingerprint changes invalidate sooner",
    )
    PROFILE_ANALYTICS_CACHE_TTL_SECONDS: int = Field(
        default=24 * 3600,
        ge=1,
        description="TTL for cached profile analytics summaries",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience instance
settings = get_settings()
