"""SQLite-backed repositories.

Each repository maps one table to one entity type over a
:class:`~familiar.storage.engine.StorageEngine`. Writes join the caller's
transaction when there is one and otherwise run in their own.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, ClassVar, Generic, TypeVar

from familiar.core.exceptions import ConflictError, NotFoundError, StorageUnavailableError
from familiar.core.logging import get_logger
from familiar.models.entities import (
    Campaign,
    Character,
    JournalEntry,
    format_timestamp,
    parse_timestamp,
)
from familiar.models.queries import ListFilter, Sort, SortField
from familiar.repositories.base import (
    CAMPAIGNS,
    CHARACTERS,
    ENTRIES,
    EntitySequence,
    TableShape,
)
from familiar.storage.engine import StorageEngine

logger = get_logger(__name__)

E = TypeVar("E", Campaign, Character, JournalEntry)


class SqliteRepository(Generic[E]):
    """Shared CRUD and query logic for one table.

    Subclasses provide the table shape and the row <-> entity mapping.
    """

    shape: ClassVar[TableShape]

    def __init__(self, engine: StorageEngine) -> None:
        self.engine = engine

    # -- mapping --------------------------------------------------------------

    def _to_row(self, entity: E) -> dict[str, Any]:
        raise NotImplementedError

    def _from_row(self, row: sqlite3.Row) -> E:
        raise NotImplementedError

    # -- error translation ----------------------------------------------------

    def _translate(self, exc: sqlite3.Error, entity_id: str, operation: str) -> Exception:
        entity = self.shape.entity
        text = str(exc)
        if isinstance(exc, sqlite3.IntegrityError):
            if "FOREIGN KEY" in text and operation == "delete":
                return ConflictError(
                    f"{entity.capitalize()} is still referenced",
                    entity=entity,
                    entity_id=entity_id,
                )
            if "FOREIGN KEY" in text:
                return NotFoundError(
                    f"{entity.capitalize()} references a record that does not exist",
                    entity=entity,
                    entity_id=entity_id,
                )
            return ConflictError(
                f"{entity.capitalize()} conflicts with stored data",
                entity=entity,
                entity_id=entity_id,
                details={"constraint": text},
            )
        return StorageUnavailableError(
            f"Cannot {operation} {entity}",
            path=str(self.engine.path),
            details={"error": text},
        )

    @contextmanager
    def _writing(self, entity_id: str, operation: str) -> Iterator[sqlite3.Connection]:
        try:
            with self.engine.transaction() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise self._translate(exc, entity_id, operation) from exc

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        try:
            with self.engine.connection() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise self._translate(exc, "", "read") from exc

    def _not_found(self, entity_id: str) -> NotFoundError:
        return NotFoundError(
            f"{self.shape.entity.capitalize()} not found",
            entity=self.shape.entity,
            entity_id=entity_id,
        )

    # -- CRUD -----------------------------------------------------------------

    def create(self, entity: E) -> str:
        """Insert a new record and return its identifier.

        Raises:
            ConflictError: If the identifier is already stored.
            NotFoundError: If a referenced record does not exist.
        """
        row = self._to_row(entity)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._writing(entity.id, "create") as conn:
            conn.execute(
                f"INSERT INTO {self.shape.table} ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
        logger.debug("record_created", table=self.shape.table, id=entity.id)
        return entity.id

    def get(self, entity_id: str) -> E:
        """Load one record.

        Raises:
            NotFoundError: If no record has this identifier.
        """
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT * FROM {self.shape.table} WHERE id = ?", (entity_id,)
            ).fetchone()
        if row is None:
            raise self._not_found(entity_id)
        return self._from_row(row)

    def exists(self, entity_id: str) -> bool:
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT 1 FROM {self.shape.table} WHERE id = ?", (entity_id,)
            ).fetchone()
        return row is not None

    def update(self, entity: E) -> None:
        """Overwrite a stored record with ``entity``.

        Raises:
            NotFoundError: If the record or a referenced record does not exist.
        """
        row = self._to_row(entity)
        del row["id"]
        assignments = ", ".join(f"{column} = ?" for column in row)
        with self._writing(entity.id, "update") as conn:
            cursor = conn.execute(
                f"UPDATE {self.shape.table} SET {assignments} WHERE id = ?",
                (*row.values(), entity.id),
            )
            if cursor.rowcount == 0:
                raise self._not_found(entity.id)
        logger.debug("record_updated", table=self.shape.table, id=entity.id)

    def delete(self, entity_id: str) -> None:
        """Remove a record.

        Raises:
            NotFoundError: If no record has this identifier.
            ConflictError: If other records still reference it.
        """
        with self._writing(entity_id, "delete") as conn:
            cursor = conn.execute(f"DELETE FROM {self.shape.table} WHERE id = ?", (entity_id,))
            if cursor.rowcount == 0:
                raise self._not_found(entity_id)
        logger.debug("record_deleted", table=self.shape.table, id=entity_id)

    # -- queries --------------------------------------------------------------

    def _build_query(self, criteria: ListFilter, sort: Sort) -> tuple[str, list[Any]]:
        table = self.shape.table
        clauses: list[str] = []
        params: list[Any] = []

        if criteria.campaign_id is not None:
            clauses.append("campaign_id = ?")
            params.append(criteria.campaign_id)
        if criteria.character_id is not None:
            clauses.append("character_id = ?")
            params.append(criteria.character_id)
        if criteria.has_character is not None:
            clauses.append(
                "character_id IS NOT NULL" if criteria.has_character else "character_id IS NULL"
            )
        if criteria.text:
            clauses.append(f"instr(casefold({self.shape.text_field}), ?) > 0")
            params.append(criteria.text.casefold())
        if criteria.tags:
            tags = sorted(criteria.tags)
            placeholders = ", ".join("?" for _ in tags)
            clauses.append(
                f"EXISTS (SELECT 1 FROM json_each({table}.tags_json) "
                f"WHERE json_each.value IN ({placeholders}))"
            )
            params.extend(tags)

        sql = f"SELECT * FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        direction = "DESC" if sort.descending else "ASC"
        order_column = "casefold(name)" if sort.field is SortField.NAME else sort.field.value
        sql += f" ORDER BY {order_column} {direction}, id ASC"
        return sql, params

    def list(
        self,
        criteria: ListFilter | None = None,
        sort: Sort | None = None,
    ) -> EntitySequence[E]:
        """Query records lazily.

        Raises:
            ValueError: If the criteria or sort do not apply to this entity type.
        """
        criteria = criteria or ListFilter()
        sort = sort or self.shape.default_sort
        self.shape.check(criteria, sort)
        sql, params = self._build_query(criteria, sort)

        def run() -> Iterator[E]:
            with self._reading() as conn:
                for row in conn.execute(sql, params):
                    entity = self._from_row(row)
                    if criteria.matches_predicates(entity):
                        yield entity

        return EntitySequence(run)


class SqliteCampaignRepository(SqliteRepository[Campaign]):
    """Campaign table mapping."""

    shape = CAMPAIGNS

    def _to_row(self, entity: Campaign) -> dict[str, Any]:
        return {
            "id": entity.id,
            "name": entity.name,
            "notes": entity.notes,
            "tags_json": json.dumps(list(entity.tags)),
            "created_at": format_timestamp(entity.created_at),
            "updated_at": format_timestamp(entity.updated_at),
        }

    def _from_row(self, row: sqlite3.Row) -> Campaign:
        return Campaign(
            id=row["id"],
            name=row["name"],
            notes=row["notes"],
            tags=tuple(json.loads(row["tags_json"])),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


class SqliteCharacterRepository(SqliteRepository[Character]):
    """Character table mapping."""

    shape = CHARACTERS

    def _to_row(self, entity: Character) -> dict[str, Any]:
        return {
            "id": entity.id,
            "campaign_id": entity.campaign_id,
            "name": entity.name,
            "notes": entity.notes,
            "created_at": format_timestamp(entity.created_at),
            "updated_at": format_timestamp(entity.updated_at),
        }

    def _from_row(self, row: sqlite3.Row) -> Character:
        return Character(
            id=row["id"],
            campaign_id=row["campaign_id"],
            name=row["name"],
            notes=row["notes"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


class SqliteEntryRepository(SqliteRepository[JournalEntry]):
    """Journal entry table mapping."""

    shape = ENTRIES

    def _to_row(self, entity: JournalEntry) -> dict[str, Any]:
        return {
            "id": entity.id,
            "campaign_id": entity.campaign_id,
            "character_id": entity.character_id,
            "body": entity.body,
            "tags_json": json.dumps(list(entity.tags)),
            "created_at": format_timestamp(entity.created_at),
            "updated_at": format_timestamp(entity.updated_at),
        }

    def _from_row(self, row: sqlite3.Row) -> JournalEntry:
        return JournalEntry(
            id=row["id"],
            campaign_id=row["campaign_id"],
            character_id=row["character_id"],
            body=row["body"],
            tags=tuple(json.loads(row["tags_json"])),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


__all__ = [
    "SqliteRepository",
    "SqliteCampaignRepository",
    "SqliteCharacterRepository",
    "SqliteEntryRepository",
]
