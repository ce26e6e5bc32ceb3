"""JSON backup and restore.

A backup document is a UTF-8 JSON object::

    {
        "schemaVersion": 3,
        "exportedAt": "2026-01-01T10:00:00.000000+00:00",
        "campaigns": [...],
        "characters": [...],
        "entries": [...]
    }

Entities use their camelCase field names and fixed-width ISO timestamps.
Arrays are in creation order, so a document can be re-imported in
dependency order (campaigns, characters, entries) in a single pass.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic.alias_generators import to_camel

from familiar.core.constants import BACKUP_FILENAME_TEMPLATE, SCHEMA_VERSION
from familiar.core.exceptions import (
    ConfigurationError,
    ConflictError,
    IncompatibleSchemaError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
    Violation,
)
from familiar.core.logging import get_logger
from familiar.models.entities import (
    Campaign,
    Character,
    JournalEntry,
    format_timestamp,
    utc_now,
)
from familiar.models.queries import OLDEST_FIRST
from familiar.models.results import ImportReport, Result
from familiar.models.validation import validate_campaign, validate_character, validate_entry
from familiar.repositories.base import (
    CampaignRepository,
    CharacterRepository,
    EntryRepository,
    TransactionProvider,
)

logger = get_logger(__name__)

SECTIONS = ("campaigns", "characters", "entries")


class ImportMode(StrEnum):
    """How an import treats data already in storage.

    REPLACE: Delete everything, then load the document.
    MERGE: Keep stored records; only add identifiers not yet stored.
    """

    REPLACE = "replace"
    MERGE = "merge"


def _document_field(field: str) -> str:
    """``campaign_id`` -> ``campaignId``, keeping any index suffix."""
    head, sep, rest = field.partition("[")
    return to_camel(head) + sep + rest


def _located(violations: tuple[Violation, ...], section: str, index: int) -> list[Violation]:
    prefix = f"{section}[{index}]"
    return [
        Violation(
            field=f"{prefix}.{_document_field(v.field)}",
            rule=v.rule,
            message=v.message,
        )
        for v in violations
    ]


def _schema_version(document: Mapping[str, Any]) -> int:
    """Read and check the document's schema version.

    Raises:
        ValidationError: If the version is missing or not an integer.
    """
    version = document.get("schemaVersion")
    if version is None:
        raise ValidationError(
            [Violation(field="schemaVersion", rule="required", message="schemaVersion is missing")]
        )
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValidationError(
            [
                Violation(
                    field="schemaVersion",
                    rule="invalid",
                    message="schemaVersion must be an integer",
                )
            ]
        )
    return version


def _sections(document: Mapping[str, Any]) -> dict[str, list[Mapping[str, Any]]]:
    """Return the entity arrays, checking their shape.

    Raises:
        ValidationError: If an array is missing or holds non-objects.
    """
    violations: list[Violation] = []
    sections: dict[str, list[Mapping[str, Any]]] = {}
    for section in SECTIONS:
        items = document.get(section)
        if items is None:
            violations.append(
                Violation(field=section, rule="required", message=f"{section} is missing")
            )
            continue
        if not isinstance(items, list):
            violations.append(
                Violation(field=section, rule="invalid", message=f"{section} must be an array")
            )
            continue
        for index, item in enumerate(items):
            if not isinstance(item, Mapping):
                violations.append(
                    Violation(
                        field=f"{section}[{index}]",
                        rule="invalid",
                        message="entity must be an object",
                    )
                )
        sections[section] = items
    if violations:
        raise ValidationError(violations)
    return sections


class _ImportPlan:
    """Entities accepted from one document, validated against storage."""

    def __init__(self, service: BackupService, mode: ImportMode) -> None:
        self.service = service
        self.mode = mode
        self.report = ImportReport(mode=mode.value)
        self.violations: list[Violation] = []
        self.campaigns: dict[str, Campaign] = {}
        self.characters: dict[str, Character] = {}
        self.entries: dict[str, JournalEntry] = {}

    # -- lookups over document plus storage -----------------------------------

    def campaign_exists(self, campaign_id: str) -> bool:
        return campaign_id in self.campaigns or self.service.campaigns.exists(campaign_id)

    def character_campaign(self, character_id: str) -> str | None:
        if character_id in self.characters:
            return self.characters[character_id].campaign_id
        try:
            return self.service.characters.get(character_id).campaign_id
        except NotFoundError:
            return None

    # -- validation ----------------------------------------------------------

    def _accept(
        self,
        section: str,
        items: list[Mapping[str, Any]],
        accepted: dict[str, Any],
        exists: Callable[[str], bool],
        validate: Callable[[Mapping[str, Any]], Any],
    ) -> None:
        for index, item in enumerate(items):
            entity_id = item.get("id")
            if isinstance(entity_id, str) and entity_id in accepted:
                self.violations.append(
                    Violation(
                        field=f"{section}[{index}].id",
                        rule="invalid",
                        message=f"duplicate identifier {entity_id!r}",
                    )
                )
                continue
            if self.mode is ImportMode.MERGE and isinstance(entity_id, str) and exists(entity_id):
                self.report.skipped[section] += 1
                continue
            try:
                entity = validate(item)
            except ValidationError as exc:
                self.violations.extend(_located(exc.violations, section, index))
                continue
            accepted[entity.id] = entity

    def validate(self, sections: Mapping[str, list[Mapping[str, Any]]]) -> None:
        """Validate every entity, collecting all violations.

        Raises:
            ValidationError: With the violations of the whole document.
        """
        service = self.service
        self._accept(
            "campaigns",
            sections["campaigns"],
            self.campaigns,
            service.campaigns.exists,
            validate_campaign,
        )
        self._accept(
            "characters",
            sections["characters"],
            self.characters,
            service.characters.exists,
            lambda data: validate_character(data, campaign_exists=self.campaign_exists),
        )
        self._accept(
            "entries",
            sections["entries"],
            self.entries,
            service.entries.exists,
            lambda data: validate_entry(
                data,
                campaign_exists=self.campaign_exists,
                character_campaign=self.character_campaign,
            ),
        )
        if self.violations:
            raise ValidationError(self.violations)

    def store(self) -> None:
        service = self.service
        for campaign in self.campaigns.values():
            service.campaigns.create(campaign)
        for character in self.characters.values():
            service.characters.create(character)
        for entry in self.entries.values():
            service.entries.create(entry)
        self.report.inserted.update(
            campaigns=len(self.campaigns),
            characters=len(self.characters),
            entries=len(self.entries),
        )


class BackupService:
    """Export the whole dataset to JSON and import it back.

    Attributes:
        campaigns: Campaign repository.
        characters: Character repository.
        entries: Journal entry repository.
        backup_dir: Default directory for exported files.
        schema_version: Newest document version this build understands.
    """

    def __init__(
        self,
        campaigns: CampaignRepository,
        characters: CharacterRepository,
        entries: EntryRepository,
        transactions: TransactionProvider,
        *,
        backup_dir: Path | None = None,
        schema_version: int = SCHEMA_VERSION,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.campaigns = campaigns
        self.characters = characters
        self.entries = entries
        self.backup_dir = backup_dir
        self.schema_version = schema_version
        self._transactions = transactions
        self._clock = clock

    # =========================================================================
    # Export
    # =========================================================================

    def export(self) -> dict[str, Any]:
        """Build a backup document of every stored entity.

        The whole read runs in one transaction, so the document is a
        consistent snapshot even while other callers write.
        """
        with self._transactions.transaction():
            campaigns = self.campaigns.list(sort=OLDEST_FIRST).to_list()
            characters = self.characters.list(sort=OLDEST_FIRST).to_list()
            entries = self.entries.list(sort=OLDEST_FIRST).to_list()

        document = {
            "schemaVersion": self.schema_version,
            "exportedAt": format_timestamp(self._clock()),
            "campaigns": [c.model_dump(mode="json", by_alias=True) for c in campaigns],
            "characters": [c.model_dump(mode="json", by_alias=True) for c in characters],
            "entries": [e.model_dump(mode="json", by_alias=True) for e in entries],
        }
        logger.info(
            "backup_exported",
            campaigns=len(campaigns),
            characters=len(characters),
            entries=len(entries),
        )
        return document

    def export_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.export(), ensure_ascii=False, indent=indent)

    def export_to_file(self, path: str | Path | None = None) -> Path:
        """Write a backup document to ``path``.

        Without a path, the file goes to ``backup_dir`` under a timestamped
        name.

        Raises:
            ConfigurationError: If no path is given and no backup_dir is set.
            StorageUnavailableError: If the file cannot be written.
        """
        if path is None:
            if self.backup_dir is None:
                raise ConfigurationError(
                    "No backup directory configured", config_key="backup_dir"
                )
            stamp = self._clock().strftime("%Y%m%dT%H%M%S%fZ")
            path = self.backup_dir / BACKUP_FILENAME_TEMPLATE.format(timestamp=stamp)
        path = Path(path)
        text = self.export_json()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise StorageUnavailableError(
                "Cannot write backup file", path=str(path), details={"error": str(exc)}
            ) from exc
        logger.info("backup_written", path=str(path))
        return path

    # =========================================================================
    # Import
    # =========================================================================

    def _import(self, document: Any, mode: ImportMode | str) -> ImportReport:
        if not isinstance(document, Mapping):
            raise ValidationError(
                [Violation(field="document", rule="invalid", message="document must be an object")]
            )
        try:
            mode = ImportMode(mode)
        except ValueError as exc:
            raise ValidationError(
                [Violation(field="mode", rule="invalid", message=f"unknown import mode {mode!r}")]
            ) from exc

        version = _schema_version(document)
        if version > self.schema_version:
            raise IncompatibleSchemaError(
                "Backup was written by a newer version",
                document_version=version,
                supported_version=self.schema_version,
            )
        sections = _sections(document)

        plan = _ImportPlan(self, mode)
        with self._transactions.transaction():
            if mode is ImportMode.REPLACE:
                self._clear(plan.report)
            plan.validate(sections)
            plan.store()

        logger.info(
            "backup_imported",
            mode=mode.value,
            document_version=version,
            inserted=plan.report.inserted,
            skipped=plan.report.skipped,
        )
        return plan.report

    def _clear(self, report: ImportReport) -> None:
        """Delete every stored entity, children first."""
        entries = self.entries.list().to_list()
        for entry in entries:
            self.entries.delete(entry.id)
        characters = self.characters.list().to_list()
        for character in characters:
            self.characters.delete(character.id)
        campaigns = self.campaigns.list().to_list()
        for campaign in campaigns:
            self.campaigns.delete(campaign.id)
        report.removed.update(
            campaigns=len(campaigns),
            characters=len(characters),
            entries=len(entries),
        )

    def import_document(
        self,
        document: Mapping[str, Any],
        mode: ImportMode | str = ImportMode.REPLACE,
    ) -> Result[ImportReport]:
        """Load a backup document.

        Either every entity is accepted or nothing changes: the import runs
        in one transaction and any violation rolls it back.

        Args:
            document: Parsed backup document.
            mode: ``ImportMode.REPLACE`` or ``ImportMode.MERGE``.

        Returns:
            The import report, or a ValidationError (every violation in the
            document), IncompatibleSchemaError, or ConflictError.
        """
        try:
            return Result.success(self._import(document, mode))
        except (ValidationError, IncompatibleSchemaError, NotFoundError, ConflictError) as exc:
            logger.warning(
                "backup_import_rejected",
                error_type=type(exc).__name__,
                error=exc.message,
            )
            return Result.failure(exc)

    def import_json(
        self,
        text: str,
        mode: ImportMode | str = ImportMode.REPLACE,
    ) -> Result[ImportReport]:
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            return Result.failure(
                ValidationError(
                    [Violation(field="document", rule="invalid", message=f"invalid JSON: {exc}")]
                )
            )
        return self.import_document(document, mode)

    def import_file(
        self,
        path: str | Path,
        mode: ImportMode | str = ImportMode.REPLACE,
    ) -> Result[ImportReport]:
        """Load a backup file written by :meth:`export_to_file`.

        Raises:
            StorageUnavailableError: If the file exists but cannot be read.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Result.failure(
                NotFoundError("Backup file not found", entity="backup", entity_id=str(path))
            )
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageUnavailableError(
                "Cannot read backup file", path=str(path), details={"error": str(exc)}
            ) from exc
        return self.import_json(text, mode)


__all__ = ["BackupService", "ImportMode"]
