"""In-memory repositories for tests.

The store mirrors what SQLite enforces for the real repositories: unique
identifiers, foreign keys on insert/update and on delete, and atomic
transactions (a snapshot restored when the block raises).
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, ClassVar, Generic, TypeVar

from familiar.core.exceptions import ConflictError, NotFoundError
from familiar.models.entities import Campaign, Character, JournalEntry
from familiar.models.queries import ListFilter, Sort, SortField
from familiar.repositories.base import (
    CAMPAIGNS,
    CHARACTERS,
    ENTRIES,
    EntitySequence,
    TableShape,
)

E = TypeVar("E", Campaign, Character, JournalEntry)


class InMemoryStore:
    """Tables shared by the in-memory repositories, with transactions."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, Any]] = {
            CAMPAIGNS.table: {},
            CHARACTERS.table: {},
            ENTRIES.table: {},
        }
        self.lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[InMemoryStore]:
        """Atomic block; nested blocks join the outermost one."""
        with self.lock:
            snapshot = (
                {name: dict(rows) for name, rows in self.tables.items()}
                if self._depth == 0
                else None
            )
            self._depth += 1
            try:
                yield self
            except BaseException:
                if snapshot is not None:
                    self.tables = snapshot
                raise
            finally:
                self._depth -= 1

    def rows(self, table: str) -> list[Any]:
        with self.lock:
            return list(self.tables[table].values())


class InMemoryRepository(Generic[E]):
    """Dictionary-backed repository with the same contract as the SQLite one."""

    shape: ClassVar[TableShape]

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    @property
    def _rows(self) -> dict[str, E]:
        return self.store.tables[self.shape.table]

    def _not_found(self, entity_id: str) -> NotFoundError:
        return NotFoundError(
            f"{self.shape.entity.capitalize()} not found",
            entity=self.shape.entity,
            entity_id=entity_id,
        )

    def _check_references(self, entity: E) -> None:
        """Emulate foreign keys on insert and update."""

    def _referenced_by(self, entity_id: str) -> bool:
        """Emulate foreign keys on delete."""
        return False

    def _missing_reference(self, entity: E) -> NotFoundError:
        return NotFoundError(
            f"{self.shape.entity.capitalize()} references a record that does not exist",
            entity=self.shape.entity,
            entity_id=entity.id,
        )

    def create(self, entity: E) -> str:
        with self.store.transaction():
            if entity.id in self._rows:
                raise ConflictError(
                    f"{self.shape.entity.capitalize()} conflicts with stored data",
                    entity=self.shape.entity,
                    entity_id=entity.id,
                )
            self._check_references(entity)
            self._rows[entity.id] = entity
        return entity.id

    def get(self, entity_id: str) -> E:
        with self.store.lock:
            entity = self._rows.get(entity_id)
        if entity is None:
            raise self._not_found(entity_id)
        return entity

    def exists(self, entity_id: str) -> bool:
        with self.store.lock:
            return entity_id in self._rows

    def update(self, entity: E) -> None:
        with self.store.transaction():
            if entity.id not in self._rows:
                raise self._not_found(entity.id)
            self._check_references(entity)
            self._rows[entity.id] = entity

    def delete(self, entity_id: str) -> None:
        with self.store.transaction():
            if entity_id not in self._rows:
                raise self._not_found(entity_id)
            if self._referenced_by(entity_id):
                raise ConflictError(
                    f"{self.shape.entity.capitalize()} is still referenced",
                    entity=self.shape.entity,
                    entity_id=entity_id,
                )
            del self._rows[entity_id]

    def _matches(self, entity: E, criteria: ListFilter) -> bool:
        if criteria.campaign_id is not None and entity.campaign_id != criteria.campaign_id:
            return False
        if criteria.character_id is not None and entity.character_id != criteria.character_id:
            return False
        if criteria.has_character is not None and (
            (entity.character_id is not None) != criteria.has_character
        ):
            return False
        if criteria.text:
            haystack = getattr(entity, self.shape.text_field).casefold()
            if criteria.text.casefold() not in haystack:
                return False
        if criteria.tags and not criteria.tags.intersection(entity.tags):
            return False
        return criteria.matches_predicates(entity)

    def list(
        self,
        criteria: ListFilter | None = None,
        sort: Sort | None = None,
    ) -> EntitySequence[E]:
        criteria = criteria or ListFilter()
        sort = sort or self.shape.default_sort
        self.shape.check(criteria, sort)

        def sort_key(entity: E) -> Any:
            if sort.field is SortField.NAME:
                return entity.name.casefold()
            return getattr(entity, sort.field.value)

        def run() -> Iterator[E]:
            rows = [
                entity
                for entity in self.store.rows(self.shape.table)
                if self._matches(entity, criteria)
            ]
            rows.sort(key=lambda entity: entity.id)
            rows.sort(key=sort_key, reverse=sort.descending)
            yield from rows

        return EntitySequence(run)


class InMemoryCampaignRepository(InMemoryRepository[Campaign]):
    shape = CAMPAIGNS

    def _referenced_by(self, entity_id: str) -> bool:
        return any(
            row.campaign_id == entity_id
            for table in (CHARACTERS.table, ENTRIES.table)
            for row in self.store.tables[table].values()
        )


class InMemoryCharacterRepository(InMemoryRepository[Character]):
    shape = CHARACTERS

    def _check_references(self, entity: Character) -> None:
        if entity.campaign_id not in self.store.tables[CAMPAIGNS.table]:
            raise self._missing_reference(entity)

    def _referenced_by(self, entity_id: str) -> bool:
        return any(
            row.character_id == entity_id
            for row in self.store.tables[ENTRIES.table].values()
        )


class InMemoryEntryRepository(InMemoryRepository[JournalEntry]):
    shape = ENTRIES

    def _check_references(self, entity: JournalEntry) -> None:
        if entity.campaign_id not in self.store.tables[CAMPAIGNS.table]:
            raise self._missing_reference(entity)
        if (
            entity.character_id is not None
            and entity.character_id not in self.store.tables[CHARACTERS.table]
        ):
            raise self._missing_reference(entity)


__all__ = [
    "InMemoryStore",
    "InMemoryRepository",
    "InMemoryCampaignRepository",
    "InMemoryCharacterRepository",
    "InMemoryEntryRepository",
]
