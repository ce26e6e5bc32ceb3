"""SQLite storage engine for Familiar.

Owns the on-disk database file, the schema-version marker, the migration
sequence and transaction handling.

Concurrency model:
- One write transaction at a time: an in-process lock plus SQLite's
  ``BEGIN IMMEDIATE`` reserved lock (retried with tenacity while another
  process holds it).
- Readers open short-lived connections; WAL journaling lets them read the
  last committed state while a writer is active.
- A thread inside :meth:`StorageEngine.transaction` sees its own writes:
  :meth:`StorageEngine.connection` hands back the transaction connection.

Storage location: configured by ``StorageSettings.database_path``.
"""

from __future__ import annotations

import os
import sqlite3
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from familiar.core.constants import SCHEMA_VERSION
from familiar.core.exceptions import MigrationFailedError, StorageUnavailableError
from familiar.core.logging import bound_context, get_logger
from familiar.storage.migrations import MIGRATIONS, Migration, plan_migrations

logger = get_logger(__name__)

T = TypeVar("T")


def _casefold(value: Any) -> Any:
    """SQL ``casefold(x)``: Unicode-aware lowercase for substring matching."""
    return value.casefold() if isinstance(value, str) else value


def _is_lock_contention(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    text = str(exc).lower()
    return "locked" in text or "busy" in text


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


class StorageEngine:
    """SQLite database holding campaigns, characters and journal entries.

    Use :meth:`open` to obtain a ready engine; it creates the file if
    needed, verifies it and migrates the schema to ``target_version``.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        migrations: Sequence[Migration] = MIGRATIONS,
        target_version: int = SCHEMA_VERSION,
        busy_timeout: float = 5.0,
        lock_retry_attempts: int = 3,
    ) -> None:
        """Configure the engine without touching the file system.

        Args:
            path: Path to the database file.
            migrations: Ordered, versioned migration steps.
            target_version: Schema version to migrate to.
            busy_timeout: Seconds SQLite waits on a locked database.
            lock_retry_attempts: Attempts to begin a write transaction.
        """
        self.path = Path(path)
        self.migrations = tuple(migrations)
        self.target_version = target_version
        self.busy_timeout = busy_timeout
        self.lock_retry_attempts = lock_retry_attempts

        self._write_lock = threading.RLock()
        self._local = threading.local()
        self._closed = False

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        migrations: Sequence[Migration] = MIGRATIONS,
        target_version: int = SCHEMA_VERSION,
        busy_timeout: float = 5.0,
        lock_retry_attempts: int = 3,
        auto_migrate: bool = True,
    ) -> StorageEngine:
        """Open (or create) a database file and bring its schema up to date.

        Raises:
            StorageUnavailableError: If the location is not writable or the
                file is not a usable database.
            MigrationFailedError: If a migration step fails.
        """
        engine = cls(
            path,
            migrations=migrations,
            target_version=target_version,
            busy_timeout=busy_timeout,
            lock_retry_attempts=lock_retry_attempts,
        )
        engine._prepare_location()
        engine._bootstrap()
        if auto_migrate:
            engine.migrate()
        logger.info("storage_opened", path=str(engine.path), schema_version=engine.schema_version)
        return engine

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _unavailable(
        self, message: str, exc: BaseException | None = None
    ) -> StorageUnavailableError:
        details = {"error": str(exc)} if exc is not None else None
        return StorageUnavailableError(message, path=str(self.path), details=details)

    def _prepare_location(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise self._unavailable("Cannot create database directory", exc) from exc

        if self.path.is_dir():
            raise self._unavailable("Database path is a directory")
        probe = self.path if self.path.exists() else self.path.parent
        if not os.access(probe, os.W_OK):
            raise self._unavailable("Database location is not writable")

    def _bootstrap(self) -> None:
        """Verify the file and create the schema-version marker."""
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            status = conn.execute("PRAGMA quick_check").fetchone()[0]
            if status != "ok":
                raise StorageUnavailableError(
                    "Database file is corrupt",
                    path=str(self.path),
                    details={"quick_check": status},
                )
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    version INTEGER NOT NULL
                )
            """)
            conn.execute("INSERT OR IGNORE INTO schema_version (id, version) VALUES (1, 0)")
        except sqlite3.Error as exc:
            raise self._unavailable("Database file is unreadable or corrupt", exc) from exc
        finally:
            conn.close()

    def close(self) -> None:
        """Mark the engine closed; further use raises StorageUnavailableError."""
        if not self._closed:
            self._closed = True
            logger.info("storage_closed", path=str(self.path))

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> StorageEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # Connections & Transactions
    # =========================================================================

    def _connect(self) -> sqlite3.Connection:
        if self._closed:
            raise self._unavailable("Storage engine is closed")
        try:
            conn = sqlite3.connect(
                str(self.path),
                timeout=self.busy_timeout,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.create_function("casefold", 1, _casefold, deterministic=True)
        except sqlite3.Error as exc:
            raise self._unavailable("Cannot open database", exc) from exc
        return conn

    def _begin(self, conn: sqlite3.Connection) -> None:
        """Start a write transaction, retrying while another writer holds the lock."""
        retrying = Retrying(
            retry=retry_if_exception(_is_lock_contention),
            stop=stop_after_attempt(self.lock_retry_attempts),
            wait=wait_exponential(multiplier=0.05, max=1.0),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise self._unavailable("Cannot start write transaction", exc) from exc

    @property
    def in_transaction(self) -> bool:
        """True if the calling thread is inside :meth:`transaction`."""
        return getattr(self._local, "connection", None) is not None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection for reads.

        Inside a transaction this is the transaction's own connection, so
        uncommitted writes are visible to the writer; otherwise a fresh
        connection sees the last committed state.
        """
        active = getattr(self._local, "connection", None)
        if active is not None:
            yield active
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of writes atomically.

        Any exception escaping the block rolls back every write issued in
        it. Nested use on the same thread joins the outer transaction.

        Raises:
            StorageUnavailableError: If the transaction cannot start or commit.
        """
        active = getattr(self._local, "connection", None)
        if active is not None:
            yield active
            return

        with self._write_lock:
            conn = self._connect()
            try:
                self._begin(conn)
                self._local.connection = conn
                try:
                    yield conn
                except BaseException as exc:
                    _rollback(conn)
                    logger.debug("transaction_rolled_back", error_type=type(exc).__name__)
                    raise
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as exc:
                    _rollback(conn)
                    raise self._unavailable("Cannot commit transaction", exc) from exc
            finally:
                self._local.connection = None
                conn.close()

    def run_in_transaction(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Call ``fn`` with a transaction connection and commit its writes."""
        with self.transaction() as conn:
            return fn(conn)

    # =========================================================================
    # Schema
    # =========================================================================

    @property
    def schema_version(self) -> int:
        """Schema version currently recorded in the database."""
        try:
            with self.connection() as conn:
                row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
        except sqlite3.Error as exc:
            raise self._unavailable("Cannot read schema version", exc) from exc
        return int(row[0]) if row else 0

    def migrate(self) -> int:
        """Apply pending migration steps up to ``target_version``.

        Each step runs in its own transaction along with the version update.

        Returns:
            The schema version after migrating.

        Raises:
            MigrationFailedError: If planning or any step fails; the database
                is left at the version reached before the failing step.
        """
        current = self.schema_version
        plan = plan_migrations(self.migrations, current, self.target_version)
        if not plan:
            logger.debug("schema_up_to_date", version=current)
            return current

        with bound_context(database=str(self.path)):
            logger.info(
                "migration_started",
                from_version=current,
                to_version=self.target_version,
                steps=[step.label for step in plan],
            )
            for step in plan:
                self._apply_step(step)
        return self.target_version

    def _apply_step(self, step: Migration) -> None:
        with self._write_lock:
            conn = self._connect()
            try:
                self._begin(conn)
                try:
                    step.apply(conn)
                    conn.execute(
                        "UPDATE schema_version SET version = ? WHERE id = 1",
                        (step.to_version,),
                    )
                    conn.execute("COMMIT")
                except Exception as exc:
                    _rollback(conn)
                    logger.error("migration_step_failed", step=step.label, error=str(exc))
                    raise MigrationFailedError(
                        step.from_version, step.to_version, str(exc)
                    ) from exc
            finally:
                conn.close()
        logger.info("migration_step_applied", step=step.label, description=step.description)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def backup_to(self, destination: str | Path) -> Path:
        """Write a consistent copy of the database file to ``destination``.

        Uses SQLite's online backup, so it is safe while readers are active.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self.connection() as source:
                target = sqlite3.connect(str(destination))
                try:
                    source.backup(target)
                finally:
                    target.close()
        except sqlite3.Error as exc:
            raise self._unavailable("Database backup failed", exc) from exc
        logger.info("database_copied", destination=str(destination))
        return destination


__all__ = ["StorageEngine"]
