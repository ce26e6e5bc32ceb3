"""Pytest configuration and shared fixtures.

This module provides common fixtures for the Familiar test suite: settings
isolation, temporary databases, a controllable clock, and the journal and
backup services built over both repository implementations.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from familiar.repositories import (
    InMemoryCampaignRepository,
    InMemoryCharacterRepository,
    InMemoryEntryRepository,
    InMemoryStore,
    SqliteCampaignRepository,
    SqliteCharacterRepository,
    SqliteEntryRepository,
)
from familiar.services import BackupService, JournalService, new_id
from familiar.storage import StorageEngine


if TYPE_CHECKING:
    from collections.abc import Generator


BACKENDS = ("sqlite", "memory")

START = datetime(2026, 1, 1, 10, 0, tzinfo=UTC)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    from familiar.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def isolated_workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every test from an empty directory with no FAMILIAR_ variables."""
    for key in list(os.environ):
        if key.startswith("FAMILIAR_"):
            monkeypatch.delenv(key)
    workdir = tmp_path / "workdir"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Deterministic clock advancing by ``step`` on every reading."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def clock_factory() -> type[FakeClock]:
    """The clock class, for tests that need several clocks."""
    return FakeClock


@pytest.fixture
def frozen_clock() -> FakeClock:
    """A clock that never moves."""
    return FakeClock(step=timedelta(0))


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "journal.db"


@pytest.fixture
def engine(db_path: Path) -> Generator[StorageEngine, None, None]:
    """A migrated engine over a fresh database file."""
    storage = StorageEngine.open(db_path)
    yield storage
    storage.close()


# =============================================================================
# Service Fixtures
# =============================================================================


@dataclass
class Services:
    """Journal and backup services sharing one set of repositories."""

    backend: str
    journal: JournalService
    backup: BackupService
    engine: StorageEngine | None = None
    store: InMemoryStore | None = None

    def close(self) -> None:
        if self.engine is not None:
            self.engine.close()


def build_services(
    backend: str,
    directory: Path,
    *,
    clock: Callable[[], datetime],
    id_factory: Callable[[], str] = new_id,
) -> Services:
    """Assemble services over SQLite (a file in ``directory``) or memory."""
    engine = None
    store = None
    if backend == "sqlite":
        engine = StorageEngine.open(directory / "journal.db")
        repositories = (
            SqliteCampaignRepository(engine),
            SqliteCharacterRepository(engine),
            SqliteEntryRepository(engine),
        )
        transactions = engine
    else:
        store = InMemoryStore()
        repositories = (
            InMemoryCampaignRepository(store),
            InMemoryCharacterRepository(store),
            InMemoryEntryRepository(store),
        )
        transactions = store
    return Services(
        backend=backend,
        journal=JournalService(
            *repositories, transactions, clock=clock, id_factory=id_factory
        ),
        backup=BackupService(
            *repositories, transactions, backup_dir=directory / "backups", clock=clock
        ),
        engine=engine,
        store=store,
    )


@pytest.fixture(params=BACKENDS)
def services(
    request: pytest.FixtureRequest,
    tmp_path: Path,
    clock: FakeClock,
) -> Iterator[Services]:
    """Services over each repository implementation."""
    directory = tmp_path / "primary"
    directory.mkdir()
    built = build_services(request.param, directory, clock=clock)
    yield built
    built.close()


@pytest.fixture
def journal(services: Services) -> JournalService:
    return services.journal


@pytest.fixture
def backup(services: Services) -> BackupService:
    return services.backup


@pytest.fixture
def make_services(tmp_path: Path) -> Iterator[Callable[..., Services]]:
    """Factory for additional, independent service stacks."""
    built: list[Services] = []

    def factory(
        backend: str = "sqlite",
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] = new_id,
    ) -> Services:
        directory = tmp_path / f"stack-{len(built)}"
        directory.mkdir()
        stack = build_services(
            backend, directory, clock=clock or FakeClock(), id_factory=id_factory
        )
        built.append(stack)
        return stack

    yield factory
    for stack in built:
        stack.close()
