"""Application-wide constants for Familiar.

Field bounds shared by the entity models and the validation layer, and the
storage schema version this build writes.
"""

from __future__ import annotations

# =============================================================================
# Field Bounds
# =============================================================================

MAX_NAME_LENGTH = 200
"""Maximum length of a campaign or character name."""

MAX_NOTES_LENGTH = 20_000
"""Maximum length of free-text notes on campaigns and characters."""

MAX_BODY_LENGTH = 100_000
"""Maximum length of a journal entry body."""

MAX_TAG_LENGTH = 50
"""Maximum length of a single tag."""

MAX_TAGS = 50
"""Maximum number of tags on one campaign or entry."""

# =============================================================================
# Storage
# =============================================================================

SCHEMA_VERSION = 3
"""Schema version written by this build; also the backup document version."""

DEFAULT_DATABASE_FILENAME = "familiar.db"

BACKUP_FILENAME_TEMPLATE = "familiar-backup-{timestamp}.json"
"""Default backup file name; ``timestamp`` is a compact UTC timestamp."""


__all__ = [
    "MAX_NAME_LENGTH",
    "MAX_NOTES_LENGTH",
    "MAX_BODY_LENGTH",
    "MAX_TAG_LENGTH",
    "MAX_TAGS",
    "SCHEMA_VERSION",
    "DEFAULT_DATABASE_FILENAME",
    "BACKUP_FILENAME_TEMPLATE",
]
