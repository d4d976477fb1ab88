"""Application configuration management."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./.perf-audit/performance.db"


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Environment
    environment: Literal["development", "production", "testing"] = "development"

    # Database
    database_url: str = DEFAULT_DATABASE_URL

    # Retention / history
    retention_days: int = 30
    trend_days: int = 30

    # Analysis
    gzip_level: int = 9

    # Watch mode
    watch_debounce_ms: int = 1000
    watch_threshold_kb: float = 5
    watch_poll_interval_ms: int = 100

    # History API
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="PERF_AUDIT_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        pytest_flag = bool(os.getenv("PYTEST_CURRENT_TEST"))
        return self.environment == "testing" or pytest_flag

    @property
    def watch_threshold_bytes(self) -> int:
        return int(self.watch_threshold_kb * 1024)

    @field_validator("gzip_level")
    @classmethod
    def validate_gzip_level(cls, v: int) -> int:
        if not 1 <= v <= 9:
            raise ValueError(f"gzip_level must be between 1 and 9, got {v}")
        return v

    @field_validator("retention_days", "trend_days", "watch_debounce_ms", "watch_poll_interval_ms")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @model_validator(mode="after")
    def normalize_database_path(self) -> "Settings":
        """Resolve relative SQLite paths against the working directory."""
        self.database_url = resolve_sqlite_url(self.database_url)
        return self


def resolve_sqlite_url(database_url: str, base_dir: Optional[Path] = None) -> str:
    """Return ``database_url`` with a relative SQLite path made absolute.

    Non-SQLite URLs and in-memory databases are returned unchanged.
    """
    try:
        url = make_url(database_url)
    except Exception:
        return database_url

    if not url.get_backend_name().startswith("sqlite"):
        return database_url

    db_path = url.database
    if not db_path or db_path == ":memory:":
        return database_url

    path_obj = Path(db_path)
    if not path_obj.is_absolute():
        root = base_dir or Path.cwd()
        url = url.set(database=str((root / path_obj).resolve()))
    return url.render_as_string(hide_password=False)


# Global settings instance (API app and scripts only)
settings = Settings()
if os.getenv("PYTEST_CURRENT_TEST"):
    settings.environment = "testing"
