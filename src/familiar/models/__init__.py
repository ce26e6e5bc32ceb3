"""Domain models: entities, validation rules, query and result types."""

from __future__ import annotations

from familiar.models.entities import (
    Campaign,
    Character,
    Entity,
    JournalEntry,
    format_timestamp,
    parse_timestamp,
    to_utc,
    utc_now,
)
from familiar.models.queries import (
    OLDEST_FIRST,
    RECENT_FIRST,
    ListFilter,
    Sort,
    SortField,
    SortOrder,
)
from familiar.models.results import ImportReport, Result
from familiar.models.validation import (
    check_model,
    validate_campaign,
    validate_character,
    validate_entry,
)


__all__ = [
    # Entities
    "Campaign",
    "Character",
    "JournalEntry",
    "Entity",
    "utc_now",
    "to_utc",
    "format_timestamp",
    "parse_timestamp",
    # Queries
    "ListFilter",
    "Sort",
    "SortField",
    "SortOrder",
    "RECENT_FIRST",
    "OLDEST_FIRST",
    # Results
    "Result",
    "ImportReport",
    # Validation
    "check_model",
    "validate_campaign",
    "validate_character",
    "validate_entry",
]
