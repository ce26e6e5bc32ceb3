"""Repositories mapping entities to storage.

Exports:
    Contracts:
        CampaignRepository, CharacterRepository, EntryRepository: one
        Protocol per entity type.
        TransactionProvider: anything offering ``transaction()``.
        EntitySequence: lazy, restartable ``list`` result.

    Implementations:
        SqliteCampaignRepository, SqliteCharacterRepository,
        SqliteEntryRepository: production repositories over StorageEngine.
        InMemoryStore and InMemory*Repository: test doubles.
"""

from __future__ import annotations

from familiar.repositories.base import (
    CAMPAIGNS,
    CHARACTERS,
    ENTRIES,
    CampaignRepository,
    CharacterRepository,
    EntitySequence,
    EntryRepository,
    TableShape,
    TransactionProvider,
)
from familiar.repositories.memory import (
    InMemoryCampaignRepository,
    InMemoryCharacterRepository,
    InMemoryEntryRepository,
    InMemoryRepository,
    InMemoryStore,
)
from familiar.repositories.sqlite import (
    SqliteCampaignRepository,
    SqliteCharacterRepository,
    SqliteEntryRepository,
    SqliteRepository,
)


__all__ = [
    # Contracts
    "CampaignRepository",
    "CharacterRepository",
    "EntryRepository",
    "TransactionProvider",
    "EntitySequence",
    "TableShape",
    "CAMPAIGNS",
    "CHARACTERS",
    "ENTRIES",
    # SQLite
    "SqliteRepository",
    "SqliteCampaignRepository",
    "SqliteCharacterRepository",
    "SqliteEntryRepository",
    # In-memory
    "InMemoryStore",
    "InMemoryRepository",
    "InMemoryCampaignRepository",
    "InMemoryCharacterRepository",
    "InMemoryEntryRepository",
]
