"""Configuration management for Familiar.

Centralized configuration using pydantic-settings, supporting environment
variables, .env files, and runtime overrides.

Example:
    >>> from familiar.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.storage.database_path
    PosixPath('data/familiar.db')

Environment Variables:
    FAMILIAR_DATABASE_PATH: Path to the SQLite database file
    FAMILIAR_BACKUP_DIR: Directory for JSON backups
    FAMILIAR_BUSY_TIMEOUT_SECONDS: How long SQLite waits on a locked database
    FAMILIAR_LOCK_RETRY_ATTEMPTS: Attempts to acquire the write lock
    FAMILIAR_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    FAMILIAR_JSON_LOGS: Emit JSON log lines instead of console output
    FAMILIAR_LOG_FILE: Optional file that receives JSON log lines
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from familiar.core.constants import DEFAULT_DATABASE_FILENAME
from familiar.core.exceptions import ConfigurationError


class StorageSettings(BaseSettings):
    """Configuration for the database file and backups.

    Attributes:
        database_path: Path to the SQLite database file.
        backup_dir: Directory where exports are written by default.
        busy_timeout_seconds: How long a connection waits on a locked database.
        lock_retry_attempts: Attempts to begin a write transaction before
            reporting the database as unavailable.
    """

    model_config = SettingsConfigDict(
        env_prefix="FAMILIAR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(
        default=Path("data") / DEFAULT_DATABASE_FILENAME,
        description="Path to SQLite database",
    )
    backup_dir: Path = Field(
        default=Path("data/backups"),
        description="Directory for JSON backups",
    )
    busy_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="SQLite busy timeout",
    )
    lock_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts to acquire the write lock",
    )

    @field_validator("backup_dir", mode="after")
    @classmethod
    def ensure_directory_exists(cls, value: Path) -> Path:
        """Create the backup directory if necessary."""
        value.mkdir(parents=True, exist_ok=True)
        return value

    @model_validator(mode="after")
    def validate_database_path(self) -> "StorageSettings":
        """Reject database paths that point at a directory.

        Raises:
            ConfigurationError: If database_path is an existing directory.
        """
        if self.database_path.is_dir():
            raise ConfigurationError(
                f"database_path ({self.database_path}) is a directory",
                config_key="database_path",
            )
        return self


class Settings(BaseSettings):
    """Main application settings.

    Attributes:
        app_name: Application name.
        debug: Enable debug mode.
        log_level: Application logging level.
        json_logs: Emit JSON log lines.
        log_file: Optional JSON log file.
        storage: Database and backup settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="FAMILIAR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = Field(default="Familiar", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    json_logs: bool = Field(default=False, description="Emit JSON logs")
    log_file: Path | None = Field(default=None, description="JSON log file")

    storage: StorageSettings = Field(default_factory=StorageSettings)

    @property
    def is_production(self) -> bool:
        """True if not in debug mode."""
        return not self.debug


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The application Settings instance.

    Raises:
        ConfigurationError: If configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load application settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access."""
    get_settings.cache_clear()


__all__ = [
    "StorageSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
