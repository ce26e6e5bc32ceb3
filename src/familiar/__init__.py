"""Familiar - local-first data layer for tabletop campaign journals.

Campaigns own characters and journal entries. Everything lives in one SQLite
file with versioned schema migrations, is validated before it is written,
and can be exported to and restored from a JSON backup.

Example:
    >>> from familiar import create_app
    >>>
    >>> with create_app() as app:
    ...     campaign = app.journal.create_campaign("Shadows of Esteren").unwrap()
    ...     arwen = app.journal.create_character(campaign.id, "Arwen").unwrap()
    ...     app.journal.create_entry(campaign.id, "Session 1", character_id=arwen.id)

Modules:
    core: Configuration, logging, and base exceptions.
    models: Pydantic V2 entities, validation rules, query and result types.
    storage: SQLite storage engine and schema migrations.
    repositories: Per-entity repositories (SQLite and in-memory).
    services: Journal use cases and JSON backup/restore.
"""

from __future__ import annotations

# Core
from familiar.core.config import Settings, get_settings
from familiar.core.exceptions import FamiliarError
from familiar.core.logging import configure_logging, get_logger

# Domain
from familiar.models import Campaign, Character, ImportReport, JournalEntry, Result

# Services
from familiar.services import BackupService, ImportMode, JournalService
from familiar.storage import StorageEngine

# Assembly
from familiar.app import Familiar, create_app


__version__ = "0.1.0"
__all__ = [
    # Version info
    "__version__",
    # Core
    "FamiliarError",
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # Domain
    "Campaign",
    "Character",
    "JournalEntry",
    "Result",
    "ImportReport",
    # Services
    "StorageEngine",
    "JournalService",
    "BackupService",
    "ImportMode",
    # Assembly
    "Familiar",
    "create_app",
]
