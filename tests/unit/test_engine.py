"""
Unit tests for the SQLite engine adapter.

Tests cover:
- File classification (ok, missing, empty, corrupt, locked)
- Lifecycle callbacks: create, upgrade, downgrade, configure, open
- Atomic migrations, including schema scripts
- Read-only fallback and version guards
- Sidecar cleanup
"""

import sqlite3
import tempfile
from pathlib import Path

import pytest

from seeddb.engine import (
    DatabaseCallbacks,
    ProbeResult,
    SQLiteEngine,
    delete_database,
    get_user_version,
    is_busy_error,
    remove_sidecar_files,
    run_script,
    split_statements,
)
from seeddb.errors import EngineFailureError, ProbeFailedError
from seeddb.storage import PathResolver


def _create_items(conn):
    conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")


def _table_names(path: Path) -> set:
    conn = sqlite3.connect(str(path))
    try:
        return {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
    finally:
        conn.close()


class TestSQLiteEngine:
    """Tests for SQLiteEngine."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def engine(self, data_dir):
        """Create engine over the data directory."""
        return SQLiteEngine(PathResolver(data_dir), busy_timeout_ms=1000)

    def _write_db(self, path: Path, version: int = 1) -> None:
        conn = sqlite3.connect(str(path))
        conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
        conn.execute("INSERT INTO items (name) VALUES ('seeded')")
        conn.execute(f"PRAGMA user_version = {version}")
        conn.commit()
        conn.close()

    def test_probe_missing(self, engine, data_dir):
        """Missing file is classified as not found and is not created."""
        path = data_dir / "missing.db"

        assert engine.probe(path) is ProbeResult.NOT_FOUND
        assert not path.exists()

    def test_probe_empty_file(self, engine, data_dir):
        """Zero-length file is classified as not found."""
        path = data_dir / "empty.db"
        path.touch()

        assert engine.probe(path) is ProbeResult.NOT_FOUND

    def test_probe_corrupt(self, engine, data_dir):
        """Non-database file is classified as corrupt."""
        path = data_dir / "corrupt.db"
        path.write_bytes(b"this is definitely not sqlite " * 64)

        assert engine.probe(path) is ProbeResult.CORRUPT

    def test_probe_directory(self, engine, data_dir):
        """Directory is classified as corrupt."""
        assert engine.probe(data_dir) is ProbeResult.CORRUPT

    def test_probe_ok(self, engine, data_dir):
        """Valid database is classified as ok."""
        path = data_dir / "ok.db"
        self._write_db(path)

        assert engine.probe(path) is ProbeResult.OK

    def test_locked_file_is_busy(self, data_dir):
        """Database locked by another connection is classified as busy."""
        path = data_dir / "locked.db"
        self._write_db(path)
        engine = SQLiteEngine(PathResolver(data_dir), busy_timeout_ms=100)

        holder = sqlite3.connect(str(path), isolation_level=None)
        try:
            holder.execute("BEGIN EXCLUSIVE")
            assert engine.probe(path) is ProbeResult.BUSY
            holder.execute("ROLLBACK")

            assert engine.probe(path) is ProbeResult.OK
        finally:
            holder.close()

    def test_require_usable(self, engine, data_dir):
        """Unusable file raises ProbeFailedError."""
        with pytest.raises(ProbeFailedError) as exc_info:
            engine.require_usable(data_dir / "missing.db")

        assert exc_info.value.code == "PROBE_FAILED"

    def test_open_or_create_makes_empty_file(self, engine, data_dir):
        """Open-or-create leaves an empty file behind."""
        conn = engine.open_or_create("fresh.db")
        conn.close()

        assert (data_dir / "fresh.db").exists()
        assert engine.probe(data_dir / "fresh.db") is ProbeResult.NOT_FOUND

    def test_open_for_write_runs_on_create(self, engine):
        """Fresh database runs configure, create and open in order."""
        calls = []

        def on_create(conn):
            calls.append("create")
            _create_items(conn)

        callbacks = DatabaseCallbacks(
            on_create=on_create,
            on_configure=lambda conn: calls.append("configure"),
            on_open=lambda conn: calls.append("open"),
        )

        conn = engine.open_for_write("app.db", 3, callbacks)
        try:
            assert get_user_version(conn) == 3
            conn.execute("INSERT INTO items (name) VALUES ('a')")
            assert isinstance(conn.execute("SELECT name FROM items").fetchone(), sqlite3.Row)
        finally:
            conn.close()

        assert calls == ["configure", "create", "open"]

    def test_on_create_runs_once(self, engine):
        """Create callback does not run on later opens."""
        calls = []

        def on_create(conn):
            calls.append(1)
            _create_items(conn)

        callbacks = DatabaseCallbacks(on_create=on_create)
        engine.open_for_write("app.db", 1, callbacks).close()
        engine.open_for_write("app.db", 1, callbacks).close()

        assert calls == [1]

    def test_on_create_with_run_script(self, engine):
        """Schema script runs inside the migration transaction."""
        callbacks = DatabaseCallbacks(
            on_create=lambda conn: run_script(
                conn, "CREATE TABLE a (x INTEGER); CREATE TABLE b (y INTEGER);"
            )
        )

        conn = engine.open_for_write("script.db", 2, callbacks)
        try:
            assert get_user_version(conn) == 2
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
            assert {"a", "b"} <= tables
        finally:
            conn.close()

    def test_failed_script_rolls_back_and_retry_succeeds(self, engine, data_dir):
        """Half-applied schema script leaves nothing behind."""
        broken = DatabaseCallbacks(
            on_create=lambda conn: run_script(
                conn, "CREATE TABLE a (x); CREATE TABLE b (y); CREATE TABLE a (z);"
            )
        )

        with pytest.raises(EngineFailureError, match="already exists"):
            engine.open_for_write("app.db", 1, broken)

        assert _table_names(data_dir / "app.db") == set()

        fixed = DatabaseCallbacks(
            on_create=lambda conn: run_script(conn, "CREATE TABLE a (x); CREATE TABLE b (y);")
        )
        conn = engine.open_for_write("app.db", 1, fixed)
        try:
            assert get_user_version(conn) == 1
        finally:
            conn.close()

        assert _table_names(data_dir / "app.db") == {"a", "b"}

    def test_callback_ending_transaction_fails(self, engine, data_dir):
        """Callback that commits the migration is rejected without stamping."""
        callbacks = DatabaseCallbacks(
            on_create=lambda conn: conn.executescript("CREATE TABLE a (x INTEGER);")
        )

        with pytest.raises(EngineFailureError, match="executescript"):
            engine.open_for_write("app.db", 1, callbacks)

        conn = sqlite3.connect(str(data_dir / "app.db"))
        try:
            assert conn.execute("PRAGMA user_version").fetchone()[0] == 0
        finally:
            conn.close()

    def test_upgrade(self, engine, data_dir):
        """Older database runs the upgrade callback."""
        self._write_db(data_dir / "app.db", version=1)
        seen = []

        def on_upgrade(conn, old, new):
            seen.append((old, new))
            conn.execute("ALTER TABLE items ADD COLUMN price INTEGER")

        conn = engine.open_for_write("app.db", 2, DatabaseCallbacks(on_upgrade=on_upgrade))
        try:
            assert get_user_version(conn) == 2
            conn.execute("SELECT price FROM items").fetchall()
        finally:
            conn.close()

        assert seen == [(1, 2)]

    def test_downgrade_refused_by_default(self, engine, data_dir):
        """Newer database is refused and keeps its version."""
        self._write_db(data_dir / "app.db", version=5)

        with pytest.raises(EngineFailureError, match="downgrade"):
            engine.open_for_write("app.db", 4, DatabaseCallbacks())

        conn = sqlite3.connect(str(data_dir / "app.db"))
        assert conn.execute("PRAGMA user_version").fetchone()[0] == 5
        conn.close()

    def test_downgrade_callback(self, engine, data_dir):
        """Custom downgrade callback receives old and new versions."""
        self._write_db(data_dir / "app.db", version=5)
        seen = []

        callbacks = DatabaseCallbacks(on_downgrade=lambda conn, old, new: seen.append((old, new)))
        engine.open_for_write("app.db", 4, callbacks).close()

        assert seen == [(5, 4)]

    def test_failed_create_rolls_back(self, engine, data_dir):
        """Failing create callback leaves an unversioned, empty database."""
        def on_create(conn):
            _create_items(conn)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            engine.open_for_write("app.db", 1, DatabaseCallbacks(on_create=on_create))

        conn = sqlite3.connect(str(data_dir / "app.db"))
        try:
            assert conn.execute("PRAGMA user_version").fetchone()[0] == 0
            assert conn.execute("SELECT name FROM sqlite_master").fetchall() == []
        finally:
            conn.close()

    def test_sql_error_in_callback_is_engine_failure(self, engine):
        """SQL error in a callback surfaces as EngineFailureError."""
        callbacks = DatabaseCallbacks(on_create=lambda conn: conn.execute("CREATE TABLE"))

        with pytest.raises(EngineFailureError) as exc_info:
            engine.open_for_write("app.db", 1, callbacks)

        assert exc_info.value.code == "ENGINE_FAILURE"

    def test_corrupt_file_is_engine_failure(self, engine, data_dir):
        """Opening a corrupt file surfaces as EngineFailureError."""
        (data_dir / "app.db").write_bytes(b"garbage " * 256)

        with pytest.raises(EngineFailureError):
            engine.open_for_write("app.db", 1, DatabaseCallbacks())

    def test_version_must_be_positive(self, engine):
        """Version 0 is rejected."""
        with pytest.raises(ValueError):
            engine.open_for_write("app.db", 0, DatabaseCallbacks())

    def test_open_for_read(self, engine, data_dir):
        """Read handle sees existing rows."""
        self._write_db(data_dir / "app.db", version=1)

        conn = engine.open_for_read("app.db", 1, DatabaseCallbacks())
        try:
            assert conn.execute("SELECT name FROM items").fetchone()["name"] == "seeded"
        finally:
            conn.close()

    def test_create_at_unwritable_location(self, engine, data_dir):
        """Create below a regular file fails with EngineFailureError."""
        blocker = data_dir / "blocker"
        blocker.write_bytes(b"")

        with pytest.raises(EngineFailureError):
            engine.create_at(blocker / "app.db")


class TestScripts:
    """Tests for split_statements and run_script."""

    def test_split_keeps_literals_and_triggers(self):
        """Semicolons in strings and trigger bodies do not split."""
        script = """
        CREATE TABLE log (msg TEXT);
        CREATE TABLE items (name TEXT);
        CREATE TRIGGER items_log AFTER INSERT ON items BEGIN
            INSERT INTO log VALUES ('added; ' || new.name);
        END;
        -- default rows
        INSERT INTO items VALUES ('a;b');
        """

        statements = split_statements(script)

        assert len(statements) == 4
        assert statements[2].startswith("CREATE TRIGGER")
        assert statements[2].endswith("END;")
        assert statements[3].endswith("INSERT INTO items VALUES ('a;b');")

    def test_split_trailing_statement_without_semicolon(self):
        """Final statement without a semicolon is kept."""
        assert split_statements("CREATE TABLE a (x);\nCREATE TABLE b (y)") == [
            "CREATE TABLE a (x);",
            "CREATE TABLE b (y)",
        ]

    def test_split_ignores_comments_and_empty_statements(self):
        """Comment-only text and bare semicolons produce nothing."""
        assert split_statements("-- nothing here\n;\n  ;\n-- still nothing\n") == []

    def test_run_script(self, tmp_path):
        """Script statements run in order without committing."""
        conn = sqlite3.connect(str(tmp_path / "app.db"), isolation_level=None)
        try:
            conn.execute("BEGIN")
            count = run_script(
                conn,
                "CREATE TABLE log (msg TEXT);\n"
                "CREATE TABLE items (name TEXT);\n"
                "CREATE TRIGGER items_log AFTER INSERT ON items BEGIN\n"
                "    INSERT INTO log VALUES ('added ' || new.name);\n"
                "END;\n"
                "INSERT INTO items VALUES ('a;b');\n",
            )

            assert count == 4
            assert conn.in_transaction
            assert conn.execute("SELECT msg FROM log").fetchall() == [("added a;b",)]
            conn.execute("ROLLBACK")
            assert conn.execute("SELECT name FROM sqlite_master").fetchall() == []
        finally:
            conn.close()


class TestBusyErrors:
    """Tests for is_busy_error."""

    def test_locked_message(self):
        """Lock conflicts are busy errors."""
        assert is_busy_error(sqlite3.OperationalError("database is locked"))

    def test_other_errors(self):
        """Other operational errors are not busy errors."""
        assert not is_busy_error(sqlite3.OperationalError("no such table: items"))
        assert not is_busy_error(sqlite3.DatabaseError("file is not a database"))


class TestFileHelpers:
    """Tests for sidecar and delete helpers."""

    def test_remove_sidecar_files(self, tmp_path):
        """Journal and WAL files are removed, the database is kept."""
        db = tmp_path / "app.db"
        db.write_bytes(b"main")
        for suffix in ("-journal", "-wal", "-shm"):
            Path(f"{db}{suffix}").write_bytes(b"x")

        remove_sidecar_files(db)

        assert db.exists()
        assert sorted(p.name for p in tmp_path.iterdir()) == ["app.db"]

    def test_delete_database(self, tmp_path):
        """Delete removes the file and sidecars and reports existence."""
        db = tmp_path / "app.db"
        db.write_bytes(b"main")
        Path(f"{db}-wal").write_bytes(b"x")

        assert delete_database(db) is True
        assert delete_database(db) is False
        assert list(tmp_path.iterdir()) == []
