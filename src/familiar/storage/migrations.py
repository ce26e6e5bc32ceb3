"""Versioned schema migrations for the journal database.

Each :class:`Migration` moves the schema from one version to a higher one.
The storage engine runs every step inside its own transaction together
with the schema-version update, so a failing step leaves the database at
its previous version.

Steps may only issue transactional statements through ``conn.execute``;
``executescript`` commits implicitly and must not be used here.

Shipped steps:
    0 -> 1: campaigns, characters and entries tables
    1 -> 2: tags on journal entries
    2 -> 3: lookup indexes
    0 -> 3: baseline creating the current schema directly (fresh installs)
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from familiar.core.constants import SCHEMA_VERSION
from familiar.core.exceptions import MigrationFailedError


ApplyStep = Callable[[sqlite3.Connection], None]


@dataclass(frozen=True)
class Migration:
    """A single schema transform.

    Attributes:
        from_version: Version the step starts from.
        to_version: Version the step produces.
        description: Short human-readable summary.
        apply: Function issuing the DDL/DML on the open connection.
    """

    from_version: int
    to_version: int
    description: str
    apply: ApplyStep

    def __post_init__(self) -> None:
        if self.to_version <= self.from_version:
            raise ValueError(
                f"Migration must move forward: {self.from_version} -> {self.to_version}"
            )

    @property
    def label(self) -> str:
        return f"{self.from_version}->{self.to_version}"


def execute_all(conn: sqlite3.Connection, statements: Iterable[str]) -> None:
    """Run statements one by one inside the caller's transaction."""
    for statement in statements:
        conn.execute(statement)


# =============================================================================
# Schema Statements
# =============================================================================

_CAMPAIGNS_TABLE = """
    CREATE TABLE campaigns (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        notes TEXT NOT NULL DEFAULT '',
        tags_json TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""

_CHARACTERS_TABLE = """
    CREATE TABLE characters (
        id TEXT PRIMARY KEY,
        campaign_id TEXT NOT NULL REFERENCES campaigns(id),
        name TEXT NOT NULL,
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""

_ENTRIES_TABLE_V1 = """
    CREATE TABLE entries (
        id TEXT PRIMARY KEY,
        campaign_id TEXT NOT NULL REFERENCES campaigns(id),
        character_id TEXT REFERENCES characters(id),
        body TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""

# Same column order as v1 + ALTER TABLE, so both paths fingerprint alike
_ENTRIES_TABLE_V3 = """
    CREATE TABLE entries (
        id TEXT PRIMARY KEY,
        campaign_id TEXT NOT NULL REFERENCES campaigns(id),
        character_id TEXT REFERENCES characters(id),
        body TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        tags_json TEXT NOT NULL DEFAULT '[]'
    )
"""

_ADD_ENTRY_TAGS = "ALTER TABLE entries ADD COLUMN tags_json TEXT NOT NULL DEFAULT '[]'"

_INDEXES = (
    "CREATE INDEX idx_campaigns_updated ON campaigns(updated_at DESC)",
    "CREATE INDEX idx_characters_campaign ON characters(campaign_id)",
    "CREATE INDEX idx_entries_campaign ON entries(campaign_id)",
    "CREATE INDEX idx_entries_character ON entries(character_id)",
    "CREATE INDEX idx_entries_updated ON entries(updated_at DESC)",
)


def _create_core_tables(conn: sqlite3.Connection) -> None:
    execute_all(conn, (_CAMPAIGNS_TABLE, _CHARACTERS_TABLE, _ENTRIES_TABLE_V1))


def _add_entry_tags(conn: sqlite3.Connection) -> None:
    conn.execute(_ADD_ENTRY_TAGS)


def _create_indexes(conn: sqlite3.Connection) -> None:
    execute_all(conn, _INDEXES)


def _create_current_schema(conn: sqlite3.Connection) -> None:
    execute_all(conn, (_CAMPAIGNS_TABLE, _CHARACTERS_TABLE, _ENTRIES_TABLE_V3, *_INDEXES))


STEPS: tuple[Migration, ...] = (
    Migration(0, 1, "create campaigns, characters and entries", _create_core_tables),
    Migration(1, 2, "add tags to journal entries", _add_entry_tags),
    Migration(2, 3, "add lookup indexes", _create_indexes),
)
"""Incremental history; every released schema version is reachable."""

BASELINE = Migration(0, SCHEMA_VERSION, "create current schema", _create_current_schema)

MIGRATIONS: tuple[Migration, ...] = (BASELINE, *STEPS)
"""Default migration set handed to the storage engine."""


# =============================================================================
# Planning
# =============================================================================


def plan_migrations(
    steps: Sequence[Migration],
    current: int,
    target: int,
) -> list[Migration]:
    """Choose the steps that move ``current`` to ``target``.

    From each version the step reaching furthest without passing the target
    is taken, so a baseline beats replaying history.

    Raises:
        MigrationFailedError: If the stored schema is newer than the target
            or no step leaves some intermediate version.
    """
    if current > target:
        raise MigrationFailedError(
            current,
            target,
            "database schema is newer than this build supports",
        )

    plan: list[Migration] = []
    version = current
    while version < target:
        candidates = [
            step for step in steps
            if step.from_version == version and step.to_version <= target
        ]
        if not candidates:
            raise MigrationFailedError(
                version,
                target,
                f"no migration step starts at version {version}",
            )
        step = max(candidates, key=lambda candidate: candidate.to_version)
        plan.append(step)
        version = step.to_version
    return plan


# =============================================================================
# Introspection
# =============================================================================


def schema_fingerprint(conn: sqlite3.Connection) -> dict[str, Any]:
    """Describe the user schema independently of how it was created.

    Two databases with equal fingerprints have the same tables, columns
    (type, nullability, default, primary key), foreign keys and explicit
    indexes, regardless of whether they were built with CREATE or ALTER.
    """
    tables = [
        row[0]
        for row in conn.execute(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
    ]
    fingerprint: dict[str, Any] = {}
    for table in tables:
        columns = [
            (row[1], str(row[2]).upper(), bool(row[3]), row[4], row[5])
            for row in conn.execute(f"PRAGMA table_info({table})")
        ]
        foreign_keys = sorted(
            (row[3], row[2], row[4])
            for row in conn.execute(f"PRAGMA foreign_key_list({table})")
        )
        indexes: dict[str, Any] = {}
        for row in conn.execute(f"PRAGMA index_list({table})"):
            name, unique, origin = row[1], bool(row[2]), row[3]
            if origin != "c":
                continue
            key_columns = tuple(
                (info[2], bool(info[3]))
                for info in conn.execute(f"PRAGMA index_xinfo({name})")
                if info[5]
            )
            indexes[name] = (key_columns, unique)
        fingerprint[table] = {
            "columns": columns,
            "foreign_keys": foreign_keys,
            "indexes": indexes,
        }
    return fingerprint


__all__ = [
    "Migration",
    "ApplyStep",
    "STEPS",
    "BASELINE",
    "MIGRATIONS",
    "execute_all",
    "plan_migrations",
    "schema_fingerprint",
]
