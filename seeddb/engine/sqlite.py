"""
SQLite engine adapter for seeddb.

This module is the only place that talks to sqlite3. It provides:
- A non-creating probe that classifies an existing database file
- Raw open-or-create, used to normalize the filesystem before seeding
- Versioned open for read/write that runs the lifecycle callbacks
- Creation of a database at an arbitrary path (used by exports)

Lifecycle (per open):
    on_configure -> [on_create | on_upgrade | on_downgrade] -> on_open

The schema version is stored in PRAGMA user_version. A version of 0 means
the database has never been created, so on_create runs. The migration step
runs inside BEGIN IMMEDIATE, so concurrent processes serialize on it.

Invariants:
    - probe() never creates or modifies a file
    - A locked file probes as BUSY, never as CORRUPT
    - user_version is stamped only after the migration callback succeeds,
      in the same transaction as the callback's changes
    - Every sqlite3.Error while opening surfaces as EngineFailureError
    - A connection is closed before any error leaves this module

How to change safely:
    - Keep callbacks free of connection management; they receive an open
      connection and must not close it
    - Test downgrade/upgrade paths with real files, not :memory:
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from ..errors import EngineFailureError, ProbeFailedError
from ..storage.paths import PathResolver

logger = logging.getLogger(__name__)

ConnectionCallback = Callable[[sqlite3.Connection], None]
VersionCallback = Callable[[sqlite3.Connection, int, int], None]


class ProbeResult(Enum):
    """Outcome of probing an existing database file.

    BUSY means another connection holds a lock on a file that may well be
    valid; it must never be treated as grounds for replacing the file.
    """

    OK = "ok"
    NOT_FOUND = "not_found"
    CORRUPT = "corrupt"
    BUSY = "busy"


def _no_op(conn: sqlite3.Connection) -> None:
    pass


def _no_op_upgrade(conn: sqlite3.Connection, old_version: int, new_version: int) -> None:
    pass


def refuse_downgrade(conn: sqlite3.Connection, old_version: int, new_version: int) -> None:
    """Default downgrade policy: refuse."""
    raise EngineFailureError(
        f"Can't downgrade database from version {old_version} to {new_version}"
    )


@dataclass
class DatabaseCallbacks:
    """Caller-supplied lifecycle logic run when a database is opened.

    Attributes:
        on_create: Called once on a brand-new database (user_version == 0)
        on_upgrade: Called with (old, new) when the stored version is lower
        on_downgrade: Called with (old, new) when the stored version is higher
        on_configure: Called first on every open, before any version check
        on_open: Called last on every open
    """

    on_create: ConnectionCallback = _no_op
    on_upgrade: VersionCallback = _no_op_upgrade
    on_downgrade: VersionCallback = refuse_downgrade
    on_configure: ConnectionCallback = _no_op
    on_open: ConnectionCallback = _no_op


def _read_only_uri(path: Path) -> str:
    return f"{path.resolve().as_uri()}?mode=ro"


def _read_write_uri(path: Path) -> str:
    return f"{path.resolve().as_uri()}?mode=rw"


class SQLiteEngine:
    """Opens and creates SQLite databases by logical name.

    Connections are returned with row_factory=sqlite3.Row, autocommit
    (isolation_level=None) and check_same_thread=False. Callers own the
    connections they receive and must close them.

    Example:
        >>> engine = SQLiteEngine(PathResolver("/var/lib/myapp"))
        >>> conn = engine.open_for_write("catalog.db", 2, DatabaseCallbacks(on_create=create))
        >>> conn.execute("SELECT count(*) FROM items").fetchone()[0]
    """

    def __init__(self, resolver: PathResolver, busy_timeout_ms: int = 5000) -> None:
        """Initialize the engine.

        Args:
            resolver: Maps logical database names to files
            busy_timeout_ms: SQLite busy timeout
        """
        self.resolver = resolver
        self.busy_timeout_ms = busy_timeout_ms

    def get_database_path(self, name: str) -> Path:
        """Get database file path for a logical name."""
        return self.resolver.get_database_path(name)

    def _connect(self, target: str, uri: bool = False) -> sqlite3.Connection:
        conn = sqlite3.connect(
            target,
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
            uri=uri,
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def probe(self, path: Path) -> ProbeResult:
        """Classify the file at path without creating it.

        A zero-length file counts as NOT_FOUND: it is what SQLite leaves
        behind after an open-or-create that never wrote anything. A file
        locked by another connection (after busy_timeout_ms) is BUSY.
        """
        try:
            if not path.exists():
                return ProbeResult.NOT_FOUND
            if path.is_file() and path.stat().st_size == 0:
                return ProbeResult.NOT_FOUND
        except OSError as e:
            logger.debug(f"Probe could not stat {path}: {e}")
            return ProbeResult.CORRUPT

        try:
            conn = self._connect(_read_write_uri(path), uri=True)
        except sqlite3.Error as e:
            if is_busy_error(e):
                logger.warning(f"Probe found {path} locked: {e}")
                return ProbeResult.BUSY
            logger.debug(f"Probe could not open {path}: {e}")
            return ProbeResult.CORRUPT

        try:
            conn.execute("PRAGMA schema_version").fetchone()
        except sqlite3.DatabaseError as e:
            if is_busy_error(e):
                logger.warning(f"Probe found {path} locked: {e}")
                return ProbeResult.BUSY
            logger.debug(f"Probe rejected {path}: {e}")
            return ProbeResult.CORRUPT
        finally:
            conn.close()

        return ProbeResult.OK

    def require_usable(self, path: Path) -> None:
        """Raise unless probe(path) is OK.

        Raises:
            ProbeFailedError: If the file is missing, empty or not a database
        """
        result = self.probe(path)
        if result is not ProbeResult.OK:
            raise ProbeFailedError(
                f"Database {path} is not usable ({result.value})", path=str(path)
            )

    def open_or_create(self, name: str) -> sqlite3.Connection:
        """Open the named database, creating an empty file if needed.

        No lifecycle callbacks run.

        Raises:
            EngineFailureError: If SQLite cannot open or create the file
        """
        return self.create_at(self.get_database_path(name))

    def create_at(self, path: Path) -> sqlite3.Connection:
        """Open or create a database at an explicit path.

        Raises:
            EngineFailureError: If SQLite cannot open or create the file
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return self._connect(str(path))
        except (sqlite3.Error, OSError) as e:
            raise EngineFailureError(
                f"Cannot open or create database {path}: {e}", path=str(path)
            ) from e

    def open_for_write(
        self,
        name: str,
        version: int,
        callbacks: DatabaseCallbacks,
    ) -> sqlite3.Connection:
        """Open the named database read-write and bring it to version.

        Raises:
            ValueError: If version is lower than 1
            EngineFailureError: If the database cannot be opened or migrated
        """
        _check_version(version)
        path = self.get_database_path(name)
        conn = self.create_at(path)
        return self._prepare(conn, path, version, callbacks, read_only=False)

    def open_for_read(
        self,
        name: str,
        version: int,
        callbacks: DatabaseCallbacks,
    ) -> sqlite3.Connection:
        """Open the named database for reading.

        A writable connection is preferred so pending migrations can run;
        if the file cannot be opened for writing, a read-only connection is
        returned instead, which only works when no migration is needed.

        Raises:
            ValueError: If version is lower than 1
            EngineFailureError: If the database cannot be opened
        """
        _check_version(version)
        path = self.get_database_path(name)
        try:
            conn = self.create_at(path)
            read_only = False
        except EngineFailureError as e:
            logger.warning(f"Opening {path} read-only after writable open failed: {e}")
            try:
                conn = self._connect(_read_only_uri(path), uri=True)
            except sqlite3.Error as ro_error:
                raise EngineFailureError(
                    f"Cannot open database {path} (read-only): {ro_error}", path=str(path)
                ) from ro_error
            read_only = True

        return self._prepare(conn, path, version, callbacks, read_only=read_only)

    def _prepare(
        self,
        conn: sqlite3.Connection,
        path: Path,
        version: int,
        callbacks: DatabaseCallbacks,
        read_only: bool,
    ) -> sqlite3.Connection:
        try:
            callbacks.on_configure(conn)
            current = get_user_version(conn)
            if current != version:
                if read_only:
                    raise EngineFailureError(
                        f"Can't upgrade read-only database from version {current} "
                        f"to {version}: {path}",
                        path=str(path),
                    )
                self.migrate(conn, version, callbacks)
            callbacks.on_open(conn)
        except sqlite3.Error as e:
            conn.close()
            raise EngineFailureError(f"Failed to open database {path}: {e}", path=str(path)) from e
        except BaseException:
            conn.close()
            raise
        return conn

    def migrate(
        self,
        conn: sqlite3.Connection,
        version: int,
        callbacks: DatabaseCallbacks,
    ) -> None:
        """Run create/upgrade/downgrade and stamp the new version.

        The stored version is re-read after taking the write lock, since
        another process may have migrated in the meantime. Callbacks must
        leave the transaction open; a callback that commits (for example
        through executescript()) fails the open instead of stamping a
        schema that could no longer be rolled back.

        Raises:
            EngineFailureError: If a callback ended the transaction
        """
        conn.execute("BEGIN IMMEDIATE")
        try:
            current = get_user_version(conn)
            if current == version:
                conn.execute("COMMIT")
                return

            if current == 0:
                logger.info(f"Creating database schema at version {version}")
                callbacks.on_create(conn)
            elif current < version:
                logger.info(f"Upgrading database from version {current} to {version}")
                callbacks.on_upgrade(conn, current, version)
            else:
                logger.info(f"Downgrading database from version {current} to {version}")
                callbacks.on_downgrade(conn, current, version)

            if not conn.in_transaction:
                raise EngineFailureError(
                    "Migration transaction was ended by a lifecycle callback; "
                    "use run_script() instead of executescript()"
                )

            conn.execute(f"PRAGMA user_version = {int(version)}")
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise


def get_user_version(conn: sqlite3.Connection) -> int:
    """Read the schema version stamped in PRAGMA user_version."""
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def split_statements(script: str) -> list[str]:
    """Split an SQL script into complete statements.

    Semicolons inside string literals and trigger bodies do not end a
    statement; sqlite3.complete_statement() decides where one ends.
    Trailing text without a terminating semicolon is kept as a final
    statement.
    """
    statements = []
    buffer = ""
    pieces = script.split(";")
    for i, piece in enumerate(pieces):
        buffer += piece
        if i < len(pieces) - 1:
            buffer += ";"
        if sqlite3.complete_statement(buffer):
            if _has_sql(buffer):
                statements.append(buffer.strip())
            buffer = ""

    if _has_sql(buffer):
        statements.append(buffer.strip())
    return statements


def _has_sql(text: str) -> bool:
    lines = [line.split("--", 1)[0] for line in text.splitlines()]
    return bool("".join(lines).replace(";", "").strip())


def run_script(conn: sqlite3.Connection, script: str) -> int:
    """Execute an SQL script statement by statement.

    Unlike Connection.executescript(), this never commits, so it can run
    inside the migration transaction of a lifecycle callback.

    Returns:
        Number of statements executed
    """
    statements = split_statements(script)
    for statement in statements:
        conn.execute(statement)
    return len(statements)


SQLITE_BUSY = 5
SQLITE_LOCKED = 6


def is_busy_error(error: sqlite3.Error) -> bool:
    """Check whether error is a lock conflict rather than a broken file.

    Uses sqlite_errorcode where the interpreter provides it (3.11+) and
    falls back to the error message otherwise.
    """
    code = getattr(error, "sqlite_errorcode", None)
    if code is not None:
        return code & 0xFF in (SQLITE_BUSY, SQLITE_LOCKED)
    message = str(error).lower()
    return "locked" in message or "busy" in message


def _check_version(version: int) -> None:
    if version < 1:
        raise ValueError(f"Version must be >= 1, was {version}")


SIDECAR_SUFFIXES = ("-journal", "-wal", "-shm")


def remove_sidecar_files(path: Path) -> None:
    """Delete rollback journal and WAL files belonging to path.

    Stale sidecars from a previous file would otherwise be replayed
    against whatever file is moved into place.
    """
    for suffix in SIDECAR_SUFFIXES:
        Path(f"{path}{suffix}").unlink(missing_ok=True)


def delete_database(path: Path) -> bool:
    """Delete a database file and its sidecars.

    Returns:
        True if the main database file existed
    """
    existed = path.exists()
    path.unlink(missing_ok=True)
    remove_sidecar_files(path)
    return existed
