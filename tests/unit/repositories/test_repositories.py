"""Contract tests shared by the SQLite and in-memory repositories."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from familiar.core.exceptions import ConflictError, NotFoundError
from familiar.models import (
    Campaign,
    Character,
    JournalEntry,
    ListFilter,
    Sort,
    SortField,
    SortOrder,
)
from familiar.repositories import (
    InMemoryCampaignRepository,
    InMemoryCharacterRepository,
    InMemoryEntryRepository,
    InMemoryStore,
    SqliteCampaignRepository,
    SqliteCharacterRepository,
    SqliteEntryRepository,
)
from familiar.storage import StorageEngine


T0 = datetime(2026, 1, 1, 10, 0, tzinfo=UTC)


def at(seconds: int) -> datetime:
    return T0 + timedelta(seconds=seconds)


def campaign(campaign_id: str, name: str = "Shadows", *, t: int = 0, **extra: Any) -> Campaign:
    return Campaign(id=campaign_id, name=name, created_at=at(t), updated_at=at(t), **extra)


def character(character_id: str, campaign_id: str, name: str = "Arwen", *, t: int = 0) -> Character:
    return Character(
        id=character_id, campaign_id=campaign_id, name=name, created_at=at(t), updated_at=at(t)
    )


def entry(
    entry_id: str,
    campaign_id: str,
    body: str = "Session 1",
    *,
    character_id: str | None = None,
    t: int = 0,
    **extra: Any,
) -> JournalEntry:
    return JournalEntry(
        id=entry_id,
        campaign_id=campaign_id,
        character_id=character_id,
        body=body,
        created_at=at(t),
        updated_at=at(t),
        **extra,
    )


@dataclass
class Repositories:
    campaigns: Any
    characters: Any
    entries: Any
    transactions: Any


@pytest.fixture(params=["sqlite", "memory"])
def repos(request: pytest.FixtureRequest, engine: StorageEngine) -> Repositories:
    if request.param == "sqlite":
        return Repositories(
            SqliteCampaignRepository(engine),
            SqliteCharacterRepository(engine),
            SqliteEntryRepository(engine),
            engine,
        )
    store = InMemoryStore()
    return Repositories(
        InMemoryCampaignRepository(store),
        InMemoryCharacterRepository(store),
        InMemoryEntryRepository(store),
        store,
    )


@pytest.fixture
def seeded(repos: Repositories) -> Repositories:
    """Two campaigns, two characters, four entries."""
    repos.campaigns.create(campaign("c1", "Shadows of Esteren", tags=("gothic", "horror")))
    repos.campaigns.create(campaign("c2", "curse of strahd", t=1, tags=("horror",)))
    repos.characters.create(character("h1", "c1", "Arwen"))
    repos.characters.create(character("h2", "c2", "Ireena", t=1))
    repos.entries.create(entry("e1", "c1", "The Ferryman waits", character_id="h1", t=1))
    repos.entries.create(entry("e2", "c1", "A quiet village", t=2, tags=("village",)))
    repos.entries.create(entry("e3", "c2", "Barovia fog", character_id="h2", t=3))
    repos.entries.create(entry("e4", "c1", "ferry crossing", t=4, tags=("travel", "village")))
    return repos


def ids(entities: Any) -> list[str]:
    return [e.id for e in entities]


class TestCrud:
    """Tests for create, get, update and delete."""

    def test_create_then_get(self, repos: Repositories) -> None:
        """A stored entity reads back equal to what was written."""
        written = campaign("c1", notes="Gothic fantasy", tags=("gothic", "horror"))

        assert repos.campaigns.create(written) == "c1"
        assert repos.campaigns.get("c1") == written
        assert repos.campaigns.exists("c1")
        assert not repos.campaigns.exists("c2")

    def test_entry_round_trip(self, repos: Repositories) -> None:
        repos.campaigns.create(campaign("c1"))
        repos.characters.create(character("h1", "c1"))
        written = entry("e1", "c1", "", character_id="h1", tags=("a", "b"))

        repos.entries.create(written)

        assert repos.entries.get("e1") == written

    def test_get_missing(self, repos: Repositories) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            repos.characters.get("nope")

        assert exc_info.value.entity == "character"
        assert exc_info.value.entity_id == "nope"

    def test_duplicate_id(self, repos: Repositories) -> None:
        repos.campaigns.create(campaign("c1"))

        with pytest.raises(ConflictError):
            repos.campaigns.create(campaign("c1", "Other"))

    def test_dangling_reference(self, repos: Repositories) -> None:
        """Storage rejects references to missing records."""
        with pytest.raises(NotFoundError):
            repos.characters.create(character("h1", "missing"))

    def test_entry_with_missing_character(self, repos: Repositories) -> None:
        repos.campaigns.create(campaign("c1"))

        with pytest.raises(NotFoundError):
            repos.entries.create(entry("e1", "c1", character_id="ghost"))

    def test_update(self, repos: Repositories) -> None:
        repos.campaigns.create(campaign("c1"))
        renamed = campaign("c1", "Renamed").model_copy(update={"updated_at": at(5)})

        repos.campaigns.update(renamed)

        assert repos.campaigns.get("c1") == renamed

    def test_update_missing(self, repos: Repositories) -> None:
        with pytest.raises(NotFoundError):
            repos.campaigns.update(campaign("c1"))

    def test_delete(self, repos: Repositories) -> None:
        repos.campaigns.create(campaign("c1"))

        repos.campaigns.delete("c1")

        assert not repos.campaigns.exists("c1")
        with pytest.raises(NotFoundError):
            repos.campaigns.delete("c1")

    def test_delete_blocked_by_dependents(self, repos: Repositories) -> None:
        repos.campaigns.create(campaign("c1"))
        repos.characters.create(character("h1", "c1"))

        with pytest.raises(ConflictError):
            repos.campaigns.delete("c1")

        assert repos.campaigns.exists("c1")

    def test_transaction_rolls_back(self, repos: Repositories) -> None:
        with pytest.raises(RuntimeError):
            with repos.transactions.transaction():
                repos.campaigns.create(campaign("c1"))
                raise RuntimeError("boom")

        assert not repos.campaigns.exists("c1")


class TestListFilters:
    """Tests for list criteria."""

    def test_by_campaign(self, seeded: Repositories) -> None:
        result = seeded.entries.list(ListFilter(campaign_id="c1"))
        assert ids(result) == ["e1", "e2", "e4"]

    def test_by_character(self, seeded: Repositories) -> None:
        assert ids(seeded.entries.list(ListFilter(character_id="h1"))) == ["e1"]

    def test_has_character(self, seeded: Repositories) -> None:
        assert ids(seeded.entries.list(ListFilter(has_character=False))) == ["e2", "e4"]
        assert ids(seeded.entries.list(ListFilter(has_character=True))) == ["e1", "e3"]

    def test_text_is_case_insensitive(self, seeded: Repositories) -> None:
        assert ids(seeded.entries.list(ListFilter(text="FERRY"))) == ["e1", "e4"]
        assert ids(seeded.characters.list(ListFilter(text="arw"))) == ["h1"]

    def test_tags_intersection(self, seeded: Repositories) -> None:
        """Entities sharing at least one tag match."""
        assert ids(seeded.entries.list(ListFilter(tags=frozenset({"village"})))) == ["e2", "e4"]
        assert ids(
            seeded.campaigns.list(ListFilter(tags=frozenset({"gothic", "pirates"})))
        ) == ["c1"]

    def test_criteria_combine(self, seeded: Repositories) -> None:
        criteria = ListFilter(campaign_id="c1", text="ferry", tags=frozenset({"travel"}))
        assert ids(seeded.entries.list(criteria)) == ["e4"]

    def test_predicates(self, seeded: Repositories) -> None:
        late = ListFilter(predicates=(lambda e: e.created_at >= at(3),))
        assert ids(seeded.entries.list(late)) == ["e3", "e4"]

    def test_unsupported_criteria(self, seeded: Repositories) -> None:
        with pytest.raises(ValueError):
            seeded.characters.list(ListFilter(tags=frozenset({"x"})))
        with pytest.raises(ValueError):
            seeded.campaigns.list(ListFilter(campaign_id="c1"))


class TestListSorting:
    """Tests for list ordering."""

    def test_campaigns_by_name_ignore_case(self, seeded: Repositories) -> None:
        assert ids(seeded.campaigns.list()) == ["c2", "c1"]

    def test_recent_first(self, seeded: Repositories) -> None:
        order = Sort(SortField.UPDATED_AT, SortOrder.DESC)
        assert ids(seeded.entries.list(sort=order)) == ["e4", "e3", "e2", "e1"]

    @pytest.mark.parametrize("order", [SortOrder.ASC, SortOrder.DESC])
    def test_ties_broken_by_id(self, repos: Repositories, order: SortOrder) -> None:
        """Equal sort keys always come back in identifier order."""
        for campaign_id in ("b", "c", "a"):
            repos.campaigns.create(campaign(campaign_id, "Same"))

        assert ids(repos.campaigns.list(sort=Sort(SortField.NAME, order))) == ["a", "b", "c"]

    def test_entries_have_no_name(self, seeded: Repositories) -> None:
        with pytest.raises(ValueError):
            seeded.entries.list(sort=Sort(SortField.NAME))


class TestEntitySequence:
    """Tests for the lazy, restartable list result."""

    def test_restartable(self, repos: Repositories) -> None:
        """Each iteration re-runs the query."""
        repos.campaigns.create(campaign("c1"))
        sequence = repos.campaigns.list()

        assert ids(sequence) == ["c1"]
        repos.campaigns.create(campaign("c2", "Zeta"))
        assert ids(sequence) == ["c1", "c2"]
        assert ids(sequence) == ["c1", "c2"]

    def test_lazy(self, repos: Repositories) -> None:
        sequence = repos.campaigns.list()
        repos.campaigns.create(campaign("c1"))

        assert sequence.first() == repos.campaigns.get("c1")

    def test_first_on_empty(self, repos: Repositories) -> None:
        assert repos.entries.list().first() is None
        assert repos.entries.list().to_list() == []
