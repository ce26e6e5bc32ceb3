"""Filter and sort descriptions passed to repository ``list`` calls."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class SortField(StrEnum):
    """Orderable attributes."""

    NAME = "name"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class SortOrder(StrEnum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Sort:
    """Ordering for a list query. Ties are always broken by identifier, ascending."""

    field: SortField = SortField.NAME
    order: SortOrder = SortOrder.ASC

    @property
    def descending(self) -> bool:
        return self.order is SortOrder.DESC


RECENT_FIRST = Sort(SortField.UPDATED_AT, SortOrder.DESC)
OLDEST_FIRST = Sort(SortField.CREATED_AT, SortOrder.ASC)


@dataclass(frozen=True)
class ListFilter:
    """Criteria for a repository ``list`` call.

    All set criteria must hold (logical AND).

    Attributes:
        campaign_id: Equality on the owning campaign.
        character_id: Equality on the referenced character (entries only).
        has_character: True/False restricts entries to those with/without a
            character reference.
        text: Case-insensitive substring of the name (campaigns, characters)
            or body (entries).
        tags: Keep entities sharing at least one of these tags.
        predicates: Opaque callables applied to each decoded entity.
    """

    campaign_id: str | None = None
    character_id: str | None = None
    has_character: bool | None = None
    text: str | None = None
    tags: frozenset[str] = frozenset()
    predicates: tuple[Callable[[Any], bool], ...] = field(default=())

    def matches_predicates(self, entity: Any) -> bool:
        return all(predicate(entity) for predicate in self.predicates)


__all__ = [
    "SortField",
    "SortOrder",
    "Sort",
    "RECENT_FIRST",
    "OLDEST_FIRST",
    "ListFilter",
]
