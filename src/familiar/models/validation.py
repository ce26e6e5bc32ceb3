"""Field-level and cross-entity validation rules.

Validation functions are pure: they take candidate data plus lookup
callbacks for cross-entity rules, and either return the validated entity or
raise :class:`~familiar.core.exceptions.ValidationError` listing every
violated rule. No I/O happens here beyond the supplied callbacks.

Example:
    >>> campaign = validate_campaign({
    ...     "id": "c1", "name": "Shadows of Esteren",
    ...     "created_at": now, "updated_at": now,
    ... })
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import ErrorDetails

from familiar.core.exceptions import ValidationError, Violation
from familiar.models.entities import Campaign, Character, JournalEntry


ModelT = TypeVar("ModelT", bound=BaseModel)

CampaignExists = Callable[[str], bool]
"""Return True if a campaign with the given id exists."""

CharacterCampaign = Callable[[str], str | None]
"""Return the campaign id owning the given character, or None if absent."""


# pydantic error type -> rule code
_RULES_BY_TYPE = {
    "missing": "required",
    "extra_forbidden": "unknown_field",
    "string_too_long": "max_length",
    "too_long": "max_items",
    "max_items": "max_items",
    "timestamp_order": "timestamp_order",
}


def _field_name(model: type[BaseModel], key: str | int) -> str:
    """Map an alias (``campaignId``) back to its attribute name."""
    if not isinstance(key, str) or key in model.model_fields:
        return str(key)
    for name in model.model_fields:
        if to_camel(name) == key:
            return name
    return key


def _field_path(model: type[BaseModel], loc: tuple[str | int, ...]) -> str:
    if not loc:
        # Model-level rules are about the modification timestamp
        return "updated_at"
    path = _field_name(model, loc[0])
    for part in loc[1:]:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


def _rule_for(error: ErrorDetails) -> str:
    error_type = error["type"]
    if error_type in _RULES_BY_TYPE:
        return _RULES_BY_TYPE[error_type]
    if error_type == "string_too_short":
        # Tag items are positional; top-level strings are required fields
        nested = any(isinstance(part, int) for part in error["loc"])
        return "blank" if nested else "required"
    if error_type.endswith("_type") and error.get("input", ...) is None:
        return "required"
    return "invalid"


def check_model(
    model: type[ModelT],
    data: Mapping[str, Any],
) -> tuple[ModelT | None, list[Violation]]:
    """Validate ``data`` against ``model`` and translate every error.

    Returns:
        The model instance (or None) and the list of violations.
    """
    try:
        return model.model_validate(dict(data)), []
    except PydanticValidationError as exc:
        violations = [
            Violation(
                field=_field_path(model, tuple(error["loc"])),
                rule=_rule_for(error),
                message=error["msg"],
            )
            for error in exc.errors(include_url=False)
        ]
        return None, violations


def _reference(data: Mapping[str, Any], name: str) -> str | None:
    value = data.get(name, data.get(to_camel(name)))
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _finish(entity: ModelT | None, violations: list[Violation]) -> ModelT:
    if violations or entity is None:
        raise ValidationError(violations)
    return entity


def _check_campaign_reference(
    data: Mapping[str, Any],
    campaign_exists: CampaignExists,
    violations: list[Violation],
) -> str | None:
    campaign_id = _reference(data, "campaign_id")
    if campaign_id is not None and not campaign_exists(campaign_id):
        violations.append(
            Violation(
                field="campaign_id",
                rule="foreign_key",
                message=f"campaign {campaign_id!r} does not exist",
            )
        )
    return campaign_id


def validate_campaign(data: Mapping[str, Any]) -> Campaign:
    """Validate a candidate campaign.

    Raises:
        ValidationError: With every violated field rule.
    """
    return _finish(*check_model(Campaign, data))


def validate_character(
    data: Mapping[str, Any],
    *,
    campaign_exists: CampaignExists,
) -> Character:
    """Validate a candidate character, including its campaign reference.

    Args:
        data: Candidate fields (attribute names or camelCase aliases).
        campaign_exists: Lookup for the referenced campaign.

    Raises:
        ValidationError: With every field and reference violation.
    """
    character, violations = check_model(Character, data)
    _check_campaign_reference(data, campaign_exists, violations)
    return _finish(character, violations)


def validate_entry(
    data: Mapping[str, Any],
    *,
    campaign_exists: CampaignExists,
    character_campaign: CharacterCampaign,
) -> JournalEntry:
    """Validate a candidate journal entry.

    On top of the field rules, the campaign must exist, the character (if
    any) must exist, and the character must belong to the entry's campaign.

    Args:
        data: Candidate fields (attribute names or camelCase aliases).
        campaign_exists: Lookup for the referenced campaign.
        character_campaign: Lookup returning the owning campaign of a
            character, or None when the character does not exist.

    Raises:
        ValidationError: With every field, reference and cross-entity violation.
    """
    entry, violations = check_model(JournalEntry, data)
    campaign_id = _check_campaign_reference(data, campaign_exists, violations)

    character_id = _reference(data, "character_id")
    if character_id is not None:
        owner = character_campaign(character_id)
        if owner is None:
            violations.append(
                Violation(
                    field="character_id",
                    rule="foreign_key",
                    message=f"character {character_id!r} does not exist",
                )
            )
        elif campaign_id is not None and owner != campaign_id:
            violations.append(
                Violation(
                    field="character_id",
                    rule="cross_entity",
                    message=(
                        f"character {character_id!r} belongs to campaign {owner!r}, "
                        f"not {campaign_id!r}"
                    ),
                )
            )
    return _finish(entry, violations)


__all__ = [
    "CampaignExists",
    "CharacterCampaign",
    "check_model",
    "validate_campaign",
    "validate_character",
    "validate_entry",
]
