"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        FamiliarError: Base exception for all application errors.
        ValidationError, NotFoundError, ConflictError, DeleteFailedError,
        IncompatibleSchemaError: Expected outcomes returned by use cases.
        StorageUnavailableError, MigrationFailedError: Fatal storage errors.
        ConfigurationError: Configuration-related errors.

    Configuration:
        Settings: Main application settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up application logging.
        get_logger: Get a configured logger instance.
        bind_context: Add context to log entries.
        clear_context: Clear logging context.
        bound_context: Add context for one block.
"""

from __future__ import annotations

from familiar.core.config import (
    Settings,
    StorageSettings,
    clear_settings_cache,
    get_settings,
)
from familiar.core.exceptions import (
    ConfigurationError,
    ConflictError,
    DeleteFailedError,
    FamiliarError,
    IncompatibleSchemaError,
    MigrationFailedError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
    Violation,
)
from familiar.core.logging import (
    bind_context,
    bound_context,
    clear_context,
    configure_logging,
    get_logger,
)


__all__ = [
    # Exceptions
    "FamiliarError",
    "Violation",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "DeleteFailedError",
    "IncompatibleSchemaError",
    "StorageUnavailableError",
    "MigrationFailedError",
    "ConfigurationError",
    # Configuration
    "Settings",
    "StorageSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "bound_context",
]
