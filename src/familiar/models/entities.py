"""Pydantic V2 schemas for the journaling domain.

Defines the three persisted entity types: campaigns, the characters that
belong to them, and journal entries. Models are immutable; edits produce a
new instance through ``model_copy``/re-validation in the use-case layer.

Python attributes are snake_case; the JSON representation (backups) uses
camelCase aliases.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    StringConstraints,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from familiar.core.constants import (
    MAX_BODY_LENGTH,
    MAX_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_TAG_LENGTH,
    MAX_TAGS,
)


# =============================================================================
# Timestamps
# =============================================================================


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as fixed-width ISO 8601 text.

    Fixed width (always microseconds, always ``+00:00``) keeps the text
    representation sortable in the same order as the instants.
    """
    return to_utc(value).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """Inverse of :func:`format_timestamp`."""
    return to_utc(datetime.fromisoformat(value))


# =============================================================================
# Shared Field Types
# =============================================================================

EntityId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]
Name = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_NAME_LENGTH)
]
Notes = Annotated[str, StringConstraints(max_length=MAX_NOTES_LENGTH)]
Body = Annotated[str, StringConstraints(max_length=MAX_BODY_LENGTH)]
Tag = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_TAG_LENGTH)
]
Timestamp = Annotated[
    datetime,
    AfterValidator(to_utc),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]


def dedupe_tags(tags: tuple[str, ...]) -> tuple[str, ...]:
    """Drop repeated tags, keeping first-occurrence order.

    Raises:
        PydanticCustomError: If more than ``MAX_TAGS`` distinct tags remain.
    """
    unique = tuple(dict.fromkeys(tags))
    if len(unique) > MAX_TAGS:
        raise PydanticCustomError(
            "max_items",
            "at most {max_items} distinct tags are allowed",
            {"max_items": MAX_TAGS},
        )
    return unique


class _Entity(BaseModel):
    """Fields and configuration shared by every stored entity."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: EntityId = Field(description="Stable unique identifier")
    created_at: Timestamp = Field(description="Creation time (UTC)")
    updated_at: Timestamp = Field(description="Last modification time (UTC)")

    @model_validator(mode="after")
    def check_timestamp_order(self) -> "_Entity":
        """Ensure last-modified is never before creation."""
        if self.updated_at < self.created_at:
            raise PydanticCustomError(
                "timestamp_order",
                "updated_at must not be earlier than created_at",
            )
        return self


# =============================================================================
# Entities
# =============================================================================


class Campaign(_Entity):
    """A campaign: the root aggregate owning characters and entries.

    Attributes:
        id: Unique campaign identifier.
        name: Campaign name.
        notes: Free-text notes.
        tags: Ordered, de-duplicated tags.
        created_at: When the campaign was created.
        updated_at: When the campaign was last modified.
    """

    name: Name = Field(description="Campaign name")
    notes: Notes = Field(default="", description="Campaign notes")
    tags: tuple[Tag, ...] = Field(default=(), description="Campaign tags")

    @field_validator("tags", mode="after")
    @classmethod
    def unique_tags(cls, tags: tuple[str, ...]) -> tuple[str, ...]:
        return dedupe_tags(tags)


class Character(_Entity):
    """A character belonging to exactly one campaign.

    Attributes:
        id: Unique character identifier.
        campaign_id: Owning campaign.
        name: Character name.
        notes: Free-text notes.
    """

    campaign_id: EntityId = Field(description="Owning campaign")
    name: Name = Field(description="Character name")
    notes: Notes = Field(default="", description="Character notes")


class JournalEntry(_Entity):
    """A journal entry written in a campaign, optionally about one character.

    Attributes:
        id: Unique entry identifier.
        campaign_id: Owning campaign.
        character_id: Optional character the entry is about; must belong to
            the same campaign.
        body: Entry text. May be empty but must be present.
        tags: Ordered, de-duplicated tags (independent of campaign tags).
    """

    campaign_id: EntityId = Field(description="Owning campaign")
    character_id: EntityId | None = Field(default=None, description="Referenced character")
    body: Body = Field(description="Entry text")
    tags: tuple[Tag, ...] = Field(default=(), description="Entry tags")

    @field_validator("tags", mode="after")
    @classmethod
    def unique_tags(cls, tags: tuple[str, ...]) -> tuple[str, ...]:
        return dedupe_tags(tags)


Entity = Campaign | Character | JournalEntry


__all__ = [
    "Campaign",
    "Character",
    "JournalEntry",
    "Entity",
    "EntityId",
    "Name",
    "Tag",
    "Timestamp",
    "utc_now",
    "to_utc",
    "format_timestamp",
    "parse_timestamp",
    "dedupe_tags",
]
