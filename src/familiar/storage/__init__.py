"""Storage module for Familiar persistence.

Provides the SQLite-backed storage engine and its versioned migrations:
- StorageEngine: file lifecycle, transactions, schema migration
- Migration steps and planning helpers
"""

from familiar.storage.engine import StorageEngine
from familiar.storage.migrations import (
    BASELINE,
    MIGRATIONS,
    STEPS,
    Migration,
    plan_migrations,
    schema_fingerprint,
)

__all__ = [
    "StorageEngine",
    "Migration",
    "MIGRATIONS",
    "STEPS",
    "BASELINE",
    "plan_migrations",
    "schema_fingerprint",
]
