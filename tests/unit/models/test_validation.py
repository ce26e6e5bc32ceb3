"""Tests for the validation rules.

Validation is pure, so every rule is checked here without a database;
cross-entity rules get plain functions as lookups.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from familiar.core.exceptions import ValidationError
from familiar.models import validate_campaign, validate_character, validate_entry


NOW = datetime(2026, 1, 1, 10, 0, tzinfo=UTC)


def base(**fields: object) -> dict[str, object]:
    data: dict[str, object] = {"id": "x1", "created_at": NOW, "updated_at": NOW}
    data.update(fields)
    return data


def rules_by_field(exc: ValidationError) -> dict[str, str]:
    return {v.field: v.rule for v in exc.violations}


class TestCampaignRules:
    """Tests for validate_campaign."""

    def test_valid(self) -> None:
        campaign = validate_campaign(base(name="Shadows of Esteren", tags=["gothic"]))
        assert campaign.name == "Shadows of Esteren"
        assert campaign.tags == ("gothic",)

    @pytest.mark.parametrize(
        "fields,field,rule",
        [
            ({}, "name", "required"),
            ({"name": None}, "name", "required"),
            ({"name": "   "}, "name", "required"),
            ({"name": "x" * 201}, "name", "max_length"),
            ({"name": 42}, "name", "invalid"),
            ({"name": "ok", "notes": "n" * 20_001}, "notes", "max_length"),
            ({"name": "ok", "tags": ["  "]}, "tags[0]", "blank"),
            ({"name": "ok", "tags": ["t" * 51]}, "tags[0]", "max_length"),
            ({"name": "ok", "tags": [f"t{n}" for n in range(51)]}, "tags", "max_items"),
            ({"name": "ok", "colour": "red"}, "colour", "unknown_field"),
        ],
    )
    def test_field_rules(self, fields: dict[str, object], field: str, rule: str) -> None:
        """Each broken rule is reported against its field."""
        with pytest.raises(ValidationError) as exc_info:
            validate_campaign(base(**fields))

        assert rules_by_field(exc_info.value)[field] == rule

    def test_boundaries_accepted(self) -> None:
        campaign = validate_campaign(
            base(
                name="x" * 200,
                notes="n" * 20_000,
                tags=[f"{n:02d}" + "t" * 48 for n in range(50)],
            )
        )
        assert len(campaign.name) == 200
        assert len(campaign.tags) == 50

    def test_timestamp_order(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_campaign(base(name="ok", updated_at=NOW - timedelta(microseconds=1)))

        assert rules_by_field(exc_info.value) == {"updated_at": "timestamp_order"}

    def test_every_violation_reported(self) -> None:
        """All problems come back at once, not just the first."""
        with pytest.raises(ValidationError) as exc_info:
            validate_campaign(base(name="", notes="n" * 20_001, tags=["", "ok"]))

        assert rules_by_field(exc_info.value) == {
            "name": "required",
            "notes": "max_length",
            "tags[0]": "blank",
        }


class TestCharacterRules:
    """Tests for validate_character."""

    def test_valid_with_existing_campaign(self) -> None:
        seen: list[str] = []

        def campaign_exists(campaign_id: str) -> bool:
            seen.append(campaign_id)
            return True

        character = validate_character(
            base(name="Arwen", campaign_id="c1"), campaign_exists=campaign_exists
        )

        assert character.campaign_id == "c1"
        assert seen == ["c1"]

    def test_missing_campaign_is_foreign_key(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_character(
                base(name="Arwen", campaign_id="nope"), campaign_exists=lambda _: False
            )

        assert rules_by_field(exc_info.value) == {"campaign_id": "foreign_key"}

    def test_field_and_reference_violations_together(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_character(base(campaign_id="nope"), campaign_exists=lambda _: False)

        assert rules_by_field(exc_info.value) == {
            "name": "required",
            "campaign_id": "foreign_key",
        }

    def test_absent_campaign_not_looked_up(self) -> None:
        def campaign_exists(campaign_id: str) -> bool:
            raise AssertionError("lookup should not run")

        with pytest.raises(ValidationError) as exc_info:
            validate_character(base(name="Arwen"), campaign_exists=campaign_exists)

        assert rules_by_field(exc_info.value) == {"campaign_id": "required"}


class TestEntryRules:
    """Tests for validate_entry."""

    @staticmethod
    def owners(**mapping: str) -> object:
        return lambda character_id: mapping.get(character_id)

    def test_valid_with_character_in_campaign(self) -> None:
        entry = validate_entry(
            base(campaign_id="c1", character_id="h1", body="Session 1"),
            campaign_exists=lambda _: True,
            character_campaign=self.owners(h1="c1"),
        )
        assert entry.character_id == "h1"

    def test_character_from_other_campaign(self) -> None:
        """A character owned by another campaign breaks the cross-entity rule."""
        with pytest.raises(ValidationError) as exc_info:
            validate_entry(
                base(campaign_id="c1", character_id="h2", body="Session 1"),
                campaign_exists=lambda _: True,
                character_campaign=self.owners(h2="c2"),
            )

        assert rules_by_field(exc_info.value) == {"character_id": "cross_entity"}

    def test_missing_character(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_entry(
                base(campaign_id="c1", character_id="ghost", body=""),
                campaign_exists=lambda _: True,
                character_campaign=self.owners(),
            )

        assert rules_by_field(exc_info.value) == {"character_id": "foreign_key"}

    def test_missing_campaign_and_body(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_entry(
                base(campaign_id="gone"),
                campaign_exists=lambda _: False,
                character_campaign=self.owners(),
            )

        assert rules_by_field(exc_info.value) == {
            "body": "required",
            "campaign_id": "foreign_key",
        }

    def test_body_length(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_entry(
                base(campaign_id="c1", body="b" * 100_001),
                campaign_exists=lambda _: True,
                character_campaign=self.owners(),
            )

        assert rules_by_field(exc_info.value) == {"body": "max_length"}

    def test_camel_case_input(self) -> None:
        """Backup documents use camelCase names; references are still checked."""
        with pytest.raises(ValidationError) as exc_info:
            validate_entry(
                {
                    "id": "e1",
                    "campaignId": "c1",
                    "characterId": "h2",
                    "body": "Session 1",
                    "createdAt": "2026-01-01T10:00:00.000000+00:00",
                    "updatedAt": "2026-01-01T10:00:00.000000+00:00",
                },
                campaign_exists=lambda _: True,
                character_campaign=self.owners(h2="c2"),
            )

        assert rules_by_field(exc_info.value) == {"character_id": "cross_entity"}
