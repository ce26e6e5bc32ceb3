"""Use-case services: journal operations and backup/restore."""

from __future__ import annotations

from familiar.services.backup import BackupService, ImportMode
from familiar.services.journal import JournalService, new_id


__all__ = [
    "JournalService",
    "BackupService",
    "ImportMode",
    "new_id",
]
