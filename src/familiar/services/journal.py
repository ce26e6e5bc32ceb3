"""Use-case layer for campaigns, characters and journal entries.

One method per user intent. Every method returns a :class:`Result`:
validation failures, unknown identifiers and conflicts come back as the
result's error, while storage failures (``StorageUnavailableError``,
``MigrationFailedError``) propagate to the caller.

Example:
    >>> journal = JournalService(campaigns, characters, entries, engine)
    >>> campaign = journal.create_campaign("Shadows of Esteren").unwrap()
    >>> journal.create_character(campaign.id, "Arwen").ok
    True
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any, TypeVar
from uuid import uuid4

from familiar.core.exceptions import (
    ConflictError,
    DeleteFailedError,
    NotFoundError,
    ValidationError,
    Violation,
)
from familiar.core.logging import get_logger
from familiar.models.entities import Campaign, Character, JournalEntry, to_utc, utc_now
from familiar.models.queries import RECENT_FIRST, ListFilter, Sort
from familiar.models.results import Result
from familiar.models.validation import validate_campaign, validate_character, validate_entry
from familiar.repositories.base import (
    CampaignRepository,
    CharacterRepository,
    EntryRepository,
    TransactionProvider,
)

logger = get_logger(__name__)

T = TypeVar("T")

_EXPECTED_ERRORS = (ValidationError, NotFoundError, ConflictError)
_TICK = timedelta(microseconds=1)

# Fields no edit may touch
_FIXED_FIELDS = frozenset({"id", "created_at", "updated_at"})


def new_id() -> str:
    """Return a fresh, never reused identifier."""
    return str(uuid4())


def _clean_tags(tags: Iterable[str]) -> frozenset[str]:
    return frozenset(tag.strip() for tag in tags if tag and tag.strip())


def _date_predicates(
    *,
    created_from: datetime | None,
    created_to: datetime | None,
    updated_from: datetime | None,
    updated_to: datetime | None,
) -> tuple[Callable[[Any], bool], ...]:
    """Build inclusive date-range predicates.

    Raises:
        ValidationError: If a range ends before it starts.
    """
    violations: list[Violation] = []
    predicates: list[Callable[[Any], bool]] = []
    ranges = (
        ("created", "created_at", created_from, created_to),
        ("updated", "updated_at", updated_from, updated_to),
    )
    for prefix, attribute, start, end in ranges:
        start = to_utc(start) if start is not None else None
        end = to_utc(end) if end is not None else None
        if start is not None and end is not None and end < start:
            violations.append(
                Violation(
                    field=f"{prefix}_to",
                    rule="invalid",
                    message=f"{prefix}_to must not be earlier than {prefix}_from",
                )
            )
            continue
        if start is not None:
            predicates.append(lambda entity, a=attribute, s=start: getattr(entity, a) >= s)
        if end is not None:
            predicates.append(lambda entity, a=attribute, e=end: getattr(entity, a) <= e)
    if violations:
        raise ValidationError(violations)
    return tuple(predicates)


def _matches_query(needle: str) -> Callable[[JournalEntry], bool]:
    def predicate(entry: JournalEntry) -> bool:
        if not needle:
            return True
        if needle in entry.body.casefold():
            return True
        return any(needle in tag.casefold() for tag in entry.tags)

    return predicate


class JournalService:
    """Create, edit, delete and query journal data.

    Mutations run inside one transaction of the supplied provider, so
    reference checks and writes are atomic with respect to other writers.

    Attributes:
        campaigns: Campaign repository.
        characters: Character repository.
        entries: Journal entry repository.
    """

    def __init__(
        self,
        campaigns: CampaignRepository,
        characters: CharacterRepository,
        entries: EntryRepository,
        transactions: TransactionProvider,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        """Wire the service to its repositories.

        Args:
            campaigns: Campaign repository.
            characters: Character repository.
            entries: Journal entry repository.
            transactions: Provider of atomic blocks shared by the repositories.
            clock: Source of the current time.
            id_factory: Source of new identifiers.
        """
        self.campaigns = campaigns
        self.characters = characters
        self.entries = entries
        self._transactions = transactions
        self._clock = clock
        self._new_id = id_factory

    # =========================================================================
    # Helpers
    # =========================================================================

    def _now(self, previous: datetime | None = None) -> datetime:
        """Current time, strictly after ``previous`` when given."""
        now = to_utc(self._clock())
        if previous is not None and now <= previous:
            now = previous + _TICK
        return now

    def _attempt(self, operation: str, work: Callable[[], T]) -> Result[T]:
        try:
            return Result.success(work())
        except _EXPECTED_ERRORS as exc:
            logger.info(
                "operation_rejected",
                operation=operation,
                error_type=type(exc).__name__,
                error=exc.message,
            )
            return Result.failure(exc)

    def _character_campaign(self, character_id: str) -> str | None:
        try:
            return self.characters.get(character_id).campaign_id
        except NotFoundError:
            return None

    def _validate_entry(self, data: Mapping[str, Any]) -> JournalEntry:
        return validate_entry(
            data,
            campaign_exists=self.campaigns.exists,
            character_campaign=self._character_campaign,
        )

    def _validate_character(self, data: Mapping[str, Any]) -> Character:
        return validate_character(data, campaign_exists=self.campaigns.exists)

    @staticmethod
    def _list(run: Callable[[], list[T]]) -> list[T]:
        try:
            return run()
        except ValueError as exc:
            raise ValidationError(
                [Violation(field="sort", rule="invalid", message=str(exc))]
            ) from exc

    def _edited(
        self,
        current: Campaign | Character | JournalEntry,
        changes: Mapping[str, Any],
        validate: Callable[[Mapping[str, Any]], Any],
        fixed: frozenset[str] = _FIXED_FIELDS,
    ) -> Any:
        """Merge ``changes`` into ``current`` and re-validate the result.

        Raises:
            ValidationError: With every immutable-field and field-rule violation.
        """
        known = type(current).model_fields
        violations: list[Violation] = []
        for name, value in changes.items():
            if name not in known:
                violations.append(
                    Violation(field=name, rule="unknown_field", message=f"{name} is not a field")
                )
            elif name in _FIXED_FIELDS or (name in fixed and value != getattr(current, name)):
                violations.append(
                    Violation(field=name, rule="immutable", message=f"{name} cannot be changed")
                )
        merged = current.model_dump()
        merged.update(
            {name: value for name, value in changes.items() if name in known and name not in fixed}
        )
        merged["updated_at"] = self._now(current.updated_at)
        try:
            entity = validate(merged)
        except ValidationError as exc:
            raise ValidationError([*violations, *exc.violations]) from exc
        if violations:
            raise ValidationError(violations)
        return entity

    # =========================================================================
    # Campaigns
    # =========================================================================

    def create_campaign(
        self,
        name: str,
        notes: str = "",
        tags: Iterable[str] = (),
    ) -> Result[Campaign]:
        """Create a campaign.

        Returns:
            The stored campaign, or a ValidationError listing every problem.
        """
        now = self._now()
        data = {
            "id": self._new_id(),
            "name": name,
            "notes": notes,
            "tags": tuple(tags),
            "created_at": now,
            "updated_at": now,
        }

        def work() -> Campaign:
            campaign = validate_campaign(data)
            with self._transactions.transaction():
                self.campaigns.create(campaign)
            logger.info("campaign_created", campaign_id=campaign.id)
            return campaign

        return self._attempt("create_campaign", work)

    def get_campaign(self, campaign_id: str) -> Result[Campaign]:
        return self._attempt("get_campaign", lambda: self.campaigns.get(campaign_id))

    def edit_campaign(self, campaign_id: str, **changes: Any) -> Result[Campaign]:
        """Apply field changes to a campaign.

        Args:
            campaign_id: Campaign to edit.
            **changes: New values for ``name``, ``notes`` or ``tags``.
        """

        def work() -> Campaign:
            with self._transactions.transaction():
                current = self.campaigns.get(campaign_id)
                campaign = self._edited(current, changes, validate_campaign)
                self.campaigns.update(campaign)
            logger.info("campaign_updated", campaign_id=campaign_id, fields=sorted(changes))
            return campaign

        return self._attempt("edit_campaign", work)

    def delete_campaign(self, campaign_id: str) -> Result[None]:
        """Delete a campaign with all of its characters and entries.

        The cascade runs in one transaction. If any step fails nothing is
        deleted and the result carries a DeleteFailedError.
        """

        def work() -> None:
            with self._transactions.transaction():
                self.campaigns.get(campaign_id)
                try:
                    owned = ListFilter(campaign_id=campaign_id)
                    entries = self.entries.list(owned).to_list()
                    for entry in entries:
                        self.entries.delete(entry.id)
                    characters = self.characters.list(owned).to_list()
                    for character in characters:
                        self.characters.delete(character.id)
                    self.campaigns.delete(campaign_id)
                except (NotFoundError, ConflictError) as exc:
                    raise DeleteFailedError(
                        exc.message, entity="campaign", entity_id=campaign_id
                    ) from exc
            logger.info(
                "campaign_deleted",
                campaign_id=campaign_id,
                entries=len(entries),
                characters=len(characters),
            )

        return self._attempt("delete_campaign", work)

    def list_campaigns(
        self,
        *,
        text: str | None = None,
        tags: Iterable[str] = (),
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        updated_from: datetime | None = None,
        updated_to: datetime | None = None,
        sort: Sort | None = None,
    ) -> Result[list[Campaign]]:
        """List campaigns matching every given criterion (default: by name)."""

        def work() -> list[Campaign]:
            criteria = ListFilter(
                text=text or None,
                tags=_clean_tags(tags),
                predicates=_date_predicates(
                    created_from=created_from,
                    created_to=created_to,
                    updated_from=updated_from,
                    updated_to=updated_to,
                ),
            )
            return self._list(lambda: self.campaigns.list(criteria, sort).to_list())

        return self._attempt("list_campaigns", work)

    # =========================================================================
    # Characters
    # =========================================================================

    def create_character(
        self,
        campaign_id: str,
        name: str,
        notes: str = "",
    ) -> Result[Character]:
        """Create a character in an existing campaign."""
        now = self._now()
        data = {
            "id": self._new_id(),
            "campaign_id": campaign_id,
            "name": name,
            "notes": notes,
            "created_at": now,
            "updated_at": now,
        }

        def work() -> Character:
            with self._transactions.transaction():
                character = self._validate_character(data)
                self.characters.create(character)
            logger.info("character_created", character_id=character.id, campaign_id=campaign_id)
            return character

        return self._attempt("create_character", work)

    def get_character(self, character_id: str) -> Result[Character]:
        return self._attempt("get_character", lambda: self.characters.get(character_id))

    def edit_character(self, character_id: str, **changes: Any) -> Result[Character]:
        """Apply field changes to a character.

        A character cannot move to another campaign; a changed
        ``campaign_id`` is reported as an ``immutable`` violation.
        """

        def work() -> Character:
            with self._transactions.transaction():
                current = self.characters.get(character_id)
                character = self._edited(
                    current,
                    changes,
                    self._validate_character,
                    fixed=_FIXED_FIELDS | {"campaign_id"},
                )
                self.characters.update(character)
            logger.info("character_updated", character_id=character_id, fields=sorted(changes))
            return character

        return self._attempt("edit_character", work)

    def delete_character(self, character_id: str) -> Result[None]:
        """Delete a character, detaching it from the entries that mention it."""

        def work() -> None:
            with self._transactions.transaction():
                self.characters.get(character_id)
                referencing = self.entries.list(ListFilter(character_id=character_id)).to_list()
                for entry in referencing:
                    detached = entry.model_copy(
                        update={"character_id": None, "updated_at": self._now(entry.updated_at)}
                    )
                    self.entries.update(detached)
                self.characters.delete(character_id)
            logger.info(
                "character_deleted",
                character_id=character_id,
                detached_entries=len(referencing),
            )

        return self._attempt("delete_character", work)

    def list_characters(
        self,
        campaign_id: str | None = None,
        *,
        text: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        updated_from: datetime | None = None,
        updated_to: datetime | None = None,
        sort: Sort | None = None,
    ) -> Result[list[Character]]:
        """List characters, optionally within one campaign (default: by name)."""

        def work() -> list[Character]:
            criteria = ListFilter(
                campaign_id=campaign_id,
                text=text or None,
                predicates=_date_predicates(
                    created_from=created_from,
                    created_to=created_to,
                    updated_from=updated_from,
                    updated_to=updated_to,
                ),
            )
            return self._list(lambda: self.characters.list(criteria, sort).to_list())

        return self._attempt("list_characters", work)

    # =========================================================================
    # Journal Entries
    # =========================================================================

    def create_entry(
        self,
        campaign_id: str,
        body: str,
        character_id: str | None = None,
        tags: Iterable[str] = (),
    ) -> Result[JournalEntry]:
        """Create a journal entry.

        The character, when given, must belong to ``campaign_id``; otherwise
        the result is a ValidationError citing the ``cross_entity`` rule and
        nothing is stored.
        """
        now = self._now()
        data = {
            "id": self._new_id(),
            "campaign_id": campaign_id,
            "character_id": character_id,
            "body": body,
            "tags": tuple(tags),
            "created_at": now,
            "updated_at": now,
        }

        def work() -> JournalEntry:
            with self._transactions.transaction():
                entry = self._validate_entry(data)
                self.entries.create(entry)
            logger.info("entry_created", entry_id=entry.id, campaign_id=campaign_id)
            return entry

        return self._attempt("create_entry", work)

    def get_entry(self, entry_id: str) -> Result[JournalEntry]:
        return self._attempt("get_entry", lambda: self.entries.get(entry_id))

    def edit_entry(self, entry_id: str, **changes: Any) -> Result[JournalEntry]:
        """Apply field changes to an entry.

        Passing ``character_id=None`` detaches the entry from its character.
        """

        def work() -> JournalEntry:
            with self._transactions.transaction():
                current = self.entries.get(entry_id)
                entry = self._edited(current, changes, self._validate_entry)
                self.entries.update(entry)
            logger.info("entry_updated", entry_id=entry_id, fields=sorted(changes))
            return entry

        return self._attempt("edit_entry", work)

    def delete_entry(self, entry_id: str) -> Result[None]:
        def work() -> None:
            with self._transactions.transaction():
                self.entries.delete(entry_id)
            logger.info("entry_deleted", entry_id=entry_id)

        return self._attempt("delete_entry", work)

    def list_entries(
        self,
        campaign_id: str | None = None,
        *,
        character_id: str | None = None,
        has_character: bool | None = None,
        text: str | None = None,
        tags: Iterable[str] = (),
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        updated_from: datetime | None = None,
        updated_to: datetime | None = None,
        sort: Sort | None = None,
    ) -> Result[list[JournalEntry]]:
        """List entries matching every given criterion (default: oldest first)."""

        def work() -> list[JournalEntry]:
            criteria = ListFilter(
                campaign_id=campaign_id,
                character_id=character_id,
                has_character=has_character,
                text=text or None,
                tags=_clean_tags(tags),
                predicates=_date_predicates(
                    created_from=created_from,
                    created_to=created_to,
                    updated_from=updated_from,
                    updated_to=updated_to,
                ),
            )
            return self._list(lambda: self.entries.list(criteria, sort).to_list())

        return self._attempt("list_entries", work)

    def search_entries(
        self,
        query: str,
        campaign_id: str | None = None,
    ) -> Result[list[JournalEntry]]:
        """Find entries whose body or tags contain ``query``, ignoring case.

        Results are most recently modified first, ties broken by identifier.
        A blank query matches every entry in scope.
        """

        def work() -> list[JournalEntry]:
            criteria = ListFilter(
                campaign_id=campaign_id,
                predicates=(_matches_query((query or "").strip().casefold()),),
            )
            return self.entries.list(criteria, RECENT_FIRST).to_list()

        return self._attempt("search_entries", work)


__all__ = ["JournalService", "new_id"]
