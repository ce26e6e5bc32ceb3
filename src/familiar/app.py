"""Application assembly.

Builds the storage engine, the repositories and the services from
:class:`~familiar.core.config.Settings`. The returned :class:`Familiar`
object is handed to callers explicitly; nothing here is a process-wide
singleton.

Example:
    >>> with create_app() as app:
    ...     campaign = app.journal.create_campaign("Shadows of Esteren").unwrap()
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from familiar.core.config import Settings, get_settings
from familiar.core.logging import configure_logging, get_logger
from familiar.repositories.sqlite import (
    SqliteCampaignRepository,
    SqliteCharacterRepository,
    SqliteEntryRepository,
)
from familiar.services.backup import BackupService
from familiar.services.journal import JournalService
from familiar.storage.engine import StorageEngine

logger = get_logger(__name__)


@dataclass
class Familiar:
    """The assembled data layer.

    Attributes:
        settings: Settings the application was built from.
        engine: Open storage engine.
        journal: Campaign, character and entry use cases.
        backup: JSON export and import.
    """

    settings: Settings
    engine: StorageEngine
    journal: JournalService
    backup: BackupService

    def close(self) -> None:
        self.engine.close()

    def __enter__(self) -> Familiar:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_app(
    settings: Settings | None = None,
    *,
    database_path: str | Path | None = None,
    configure_logs: bool = False,
) -> Familiar:
    """Open the database and wire the services to it.

    Args:
        settings: Settings to use; loaded from the environment if omitted.
        database_path: Overrides ``settings.storage.database_path``.
        configure_logs: Configure structlog from the settings first.

    Raises:
        StorageUnavailableError: If the database cannot be opened.
        MigrationFailedError: If the schema cannot be brought up to date.
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(
            level=settings.log_level,
            json_format=settings.json_logs,
            log_file=settings.log_file,
            app_name=settings.app_name,
        )

    storage = settings.storage
    engine = StorageEngine.open(
        database_path or storage.database_path,
        busy_timeout=storage.busy_timeout_seconds,
        lock_retry_attempts=storage.lock_retry_attempts,
    )
    campaigns = SqliteCampaignRepository(engine)
    characters = SqliteCharacterRepository(engine)
    entries = SqliteEntryRepository(engine)

    app = Familiar(
        settings=settings,
        engine=engine,
        journal=JournalService(campaigns, characters, entries, engine),
        backup=BackupService(
            campaigns,
            characters,
            entries,
            engine,
            backup_dir=storage.backup_dir,
            schema_version=engine.schema_version,
        ),
    )
    logger.info("app_created", app_name=settings.app_name, database=str(engine.path))
    return app


__all__ = ["Familiar", "create_app"]
