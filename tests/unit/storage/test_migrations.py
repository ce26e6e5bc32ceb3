"""Tests for schema migrations."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from familiar.core.constants import SCHEMA_VERSION
from familiar.core.exceptions import MigrationFailedError
from familiar.repositories import SqliteEntryRepository
from familiar.storage import (
    BASELINE,
    MIGRATIONS,
    STEPS,
    Migration,
    StorageEngine,
    plan_migrations,
    schema_fingerprint,
)


def fingerprint(path: Path) -> dict[str, object]:
    conn = sqlite3.connect(str(path))
    try:
        return schema_fingerprint(conn)
    finally:
        conn.close()


class TestMigration:
    """Tests for the Migration record."""

    def test_must_move_forward(self) -> None:
        with pytest.raises(ValueError):
            Migration(2, 1, "backwards", lambda conn: None)

    def test_label(self) -> None:
        assert STEPS[0].label == "0->1"


class TestPlanMigrations:
    """Tests for plan_migrations."""

    def test_fresh_install_uses_baseline(self) -> None:
        """The step reaching furthest wins, so a new file skips history."""
        assert plan_migrations(MIGRATIONS, 0, SCHEMA_VERSION) == [BASELINE]

    def test_incremental_history(self) -> None:
        assert plan_migrations(STEPS, 0, SCHEMA_VERSION) == list(STEPS)

    def test_partial_upgrade(self) -> None:
        assert plan_migrations(MIGRATIONS, 1, SCHEMA_VERSION) == [STEPS[1], STEPS[2]]

    def test_never_passes_target(self) -> None:
        assert plan_migrations(MIGRATIONS, 0, 2) == [STEPS[0], STEPS[1]]

    def test_up_to_date(self) -> None:
        assert plan_migrations(MIGRATIONS, SCHEMA_VERSION, SCHEMA_VERSION) == []

    def test_downgrade_refused(self) -> None:
        with pytest.raises(MigrationFailedError) as exc_info:
            plan_migrations(MIGRATIONS, SCHEMA_VERSION + 1, SCHEMA_VERSION)

        assert exc_info.value.from_version == SCHEMA_VERSION + 1

    def test_gap_refused(self) -> None:
        with pytest.raises(MigrationFailedError) as exc_info:
            plan_migrations((STEPS[0], STEPS[2]), 0, SCHEMA_VERSION)

        assert exc_info.value.from_version == 1


class TestConfluence:
    """Sequential steps and a direct step must produce the same schema."""

    def test_baseline_matches_history(self, tmp_path: Path) -> None:
        with StorageEngine.open(tmp_path / "history.db", migrations=STEPS) as history:
            assert history.schema_version == SCHEMA_VERSION
        with StorageEngine.open(tmp_path / "baseline.db", migrations=(BASELINE,)) as baseline:
            assert baseline.schema_version == SCHEMA_VERSION

        assert fingerprint(tmp_path / "history.db") == fingerprint(tmp_path / "baseline.db")

    def test_two_steps_match_direct_step(self, tmp_path: Path) -> None:
        """1 -> 2 -> 3 equals a single 1 -> 3 step."""

        def direct(conn: sqlite3.Connection) -> None:
            STEPS[1].apply(conn)
            STEPS[2].apply(conn)

        jump = Migration(1, 3, "tags and indexes at once", direct)
        paths = (tmp_path / "stepwise.db", tmp_path / "direct.db")
        for path, upgrade in zip(paths, ((STEPS[1], STEPS[2]), (jump,)), strict=True):
            StorageEngine.open(path, migrations=STEPS, target_version=1).close()
            with StorageEngine.open(path, migrations=(STEPS[0], *upgrade)) as engine:
                assert engine.schema_version == 3

        assert fingerprint(paths[0]) == fingerprint(paths[1])

    def test_fingerprint_sees_differences(self, tmp_path: Path) -> None:
        StorageEngine.open(tmp_path / "v2.db", migrations=STEPS, target_version=2).close()
        StorageEngine.open(tmp_path / "v3.db").close()

        assert fingerprint(tmp_path / "v2.db") != fingerprint(tmp_path / "v3.db")


class TestMigrate:
    """Tests for StorageEngine.migrate."""

    def test_failing_step_rolls_back(self, tmp_path: Path) -> None:
        """A failing step leaves the database at the previous version."""
        path = tmp_path / "broken.db"

        def broken(conn: sqlite3.Connection) -> None:
            conn.execute("CREATE INDEX idx_half_done ON entries(body)")
            conn.execute("ALTER TABLE no_such_table ADD COLUMN x TEXT")

        migrations = (STEPS[0], STEPS[1], Migration(2, 3, "broken", broken))
        with pytest.raises(MigrationFailedError) as exc_info:
            StorageEngine.open(path, migrations=migrations)

        assert exc_info.value.from_version == 2
        assert exc_info.value.to_version == 3
        assert "no_such_table" in exc_info.value.cause

        with StorageEngine.open(path, auto_migrate=False) as engine:
            assert engine.schema_version == 2
            with engine.connection() as conn:
                index = conn.execute(
                    "SELECT name FROM sqlite_master WHERE name = 'idx_half_done'"
                ).fetchone()
            assert index is None

        with StorageEngine.open(path) as engine:
            assert engine.schema_version == SCHEMA_VERSION

    def test_newer_database_refused(self, tmp_path: Path) -> None:
        path = tmp_path / "future.db"
        StorageEngine.open(path).close()

        with pytest.raises(MigrationFailedError):
            StorageEngine.open(path, migrations=STEPS, target_version=2)

    def test_upgrade_keeps_data(self, tmp_path: Path) -> None:
        """Rows written at version 1 survive and gain default tags."""
        path = tmp_path / "old.db"
        with StorageEngine.open(path, migrations=STEPS, target_version=1) as old:
            with old.transaction() as conn:
                conn.execute(
                    "INSERT INTO campaigns (id, name, created_at, updated_at) "
                    "VALUES ('c1', 'Shadows', '2026-01-01T10:00:00.000000+00:00', "
                    "'2026-01-01T10:00:00.000000+00:00')"
                )
                conn.execute(
                    "INSERT INTO entries (id, campaign_id, body, created_at, updated_at) "
                    "VALUES ('e1', 'c1', 'Session 1', '2026-01-01T10:00:00.000000+00:00', "
                    "'2026-01-01T10:00:00.000000+00:00')"
                )

        with StorageEngine.open(path) as engine:
            assert engine.schema_version == SCHEMA_VERSION
            entry = SqliteEntryRepository(engine).get("e1")

        assert entry.body == "Session 1"
        assert entry.tags == ()

    def test_migrate_is_idempotent(self, engine: StorageEngine) -> None:
        assert engine.migrate() == SCHEMA_VERSION
        assert engine.migrate() == SCHEMA_VERSION
