"""Repository contracts shared by the SQLite and in-memory implementations.

Repositories translate between stored records and domain entities. They do
not run business validation; the use-case layer does that before calling
them. Storage-level constraint failures surface as ``NotFoundError`` or
``ConflictError``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from familiar.models.entities import Campaign, Character, JournalEntry
from familiar.models.queries import ListFilter, Sort, SortField


E = TypeVar("E")


class EntitySequence(Generic[E]):
    """Lazy, finite, restartable result of a ``list`` call.

    Nothing runs until iteration starts, and every new iteration re-runs the
    query; no cursor is kept between iterations.
    """

    def __init__(self, run: Callable[[], Iterator[E]]) -> None:
        self._run = run

    def __iter__(self) -> Iterator[E]:
        return self._run()

    def first(self) -> E | None:
        """Return the first entity, or None if the result is empty."""
        for entity in self:
            return entity
        return None

    def to_list(self) -> list[E]:
        return [entity for entity in self]


class TransactionProvider(Protocol):
    """Anything that can run a block of repository writes atomically."""

    def transaction(self) -> AbstractContextManager[Any]: ...


class CampaignRepository(Protocol):
    def create(self, entity: Campaign) -> str: ...
    def get(self, entity_id: str) -> Campaign: ...
    def exists(self, entity_id: str) -> bool: ...
    def update(self, entity: Campaign) -> None: ...
    def delete(self, entity_id: str) -> None: ...
    def list(
        self, criteria: ListFilter | None = None, sort: Sort | None = None
    ) -> EntitySequence[Campaign]: ...


class CharacterRepository(Protocol):
    def create(self, entity: Character) -> str: ...
    def get(self, entity_id: str) -> Character: ...
    def exists(self, entity_id: str) -> bool: ...
    def update(self, entity: Character) -> None: ...
    def delete(self, entity_id: str) -> None: ...
    def list(
        self, criteria: ListFilter | None = None, sort: Sort | None = None
    ) -> EntitySequence[Character]: ...


class EntryRepository(Protocol):
    def create(self, entity: JournalEntry) -> str: ...
    def get(self, entity_id: str) -> JournalEntry: ...
    def exists(self, entity_id: str) -> bool: ...
    def update(self, entity: JournalEntry) -> None: ...
    def delete(self, entity_id: str) -> None: ...
    def list(
        self, criteria: ListFilter | None = None, sort: Sort | None = None
    ) -> EntitySequence[JournalEntry]: ...


@dataclass(frozen=True)
class TableShape:
    """What a repository can filter and sort on.

    Attributes:
        entity: Singular entity name used in errors and logs.
        table: Storage table name.
        text_field: Attribute matched by ``ListFilter.text``.
        references: Reference attributes usable in equality filters.
        tagged: Whether ``ListFilter.tags`` applies.
        sortable: Allowed sort fields.
        default_sort: Sort used when the caller gives none.
    """

    entity: str
    table: str
    text_field: str
    references: frozenset[str]
    tagged: bool
    sortable: frozenset[SortField]
    default_sort: Sort

    def check(self, criteria: ListFilter, sort: Sort) -> None:
        """Reject criteria this entity type cannot answer.

        Raises:
            ValueError: On an unsupported filter or sort field.
        """
        if criteria.campaign_id is not None and "campaign_id" not in self.references:
            raise ValueError(f"{self.entity} cannot be filtered by campaign")
        if (
            criteria.character_id is not None or criteria.has_character is not None
        ) and "character_id" not in self.references:
            raise ValueError(f"{self.entity} cannot be filtered by character")
        if criteria.tags and not self.tagged:
            raise ValueError(f"{self.entity} has no tags")
        if sort.field not in self.sortable:
            raise ValueError(f"{self.entity} cannot be sorted by {sort.field.value}")


_TIME_SORTS = frozenset({SortField.CREATED_AT, SortField.UPDATED_AT})

CAMPAIGNS = TableShape(
    entity="campaign",
    table="campaigns",
    text_field="name",
    references=frozenset(),
    tagged=True,
    sortable=_TIME_SORTS | {SortField.NAME},
    default_sort=Sort(SortField.NAME),
)

CHARACTERS = TableShape(
    entity="character",
    table="characters",
    text_field="name",
    references=frozenset({"campaign_id"}),
    tagged=False,
    sortable=_TIME_SORTS | {SortField.NAME},
    default_sort=Sort(SortField.NAME),
)

ENTRIES = TableShape(
    entity="entry",
    table="entries",
    text_field="body",
    references=frozenset({"campaign_id", "character_id"}),
    tagged=True,
    sortable=_TIME_SORTS,
    default_sort=Sort(SortField.CREATED_AT),
)


__all__ = [
    "EntitySequence",
    "TransactionProvider",
    "CampaignRepository",
    "CharacterRepository",
    "EntryRepository",
    "TableShape",
    "CAMPAIGNS",
    "CHARACTERS",
    "ENTRIES",
]
