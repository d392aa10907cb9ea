"""
SeededOpenHelper - the public entry point of seeddb.

An open helper owns one logical database. It hands out SQLite connections
that are guaranteed to sit on top of a provisioned file, and it can export
the database for reuse as a seed.

Lifecycle policy can be supplied two ways:
- Pass a DatabaseCallbacks instance to the constructor
- Subclass and override on_create/on_upgrade/on_downgrade/on_configure/
  on_open (and get_seed_resource_path)

Invariants:
    - No handle is returned before provisioning has resolved
    - Seeding failures fall back to an engine-created database silently
    - Only EngineFailureError (and ValueError for bad arguments) escape
      get_readable_handle/get_writable_handle
    - dump_database/dump_database_on_create never raise

Example:
    >>> def create(conn):
    ...     conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT)")
    >>> helper = SeededOpenHelper(
    ...     "catalog.db",
    ...     version=1,
    ...     seed_resource="db/catalog.db",
    ...     resource_reader=PackageResourceReader("myapp.assets"),
    ...     callbacks=DatabaseCallbacks(on_create=create),
    ... )
    >>> with helper.connection() as conn:
    ...     conn.execute("SELECT count(*) FROM items").fetchone()[0]
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..config import HelperConfig
from ..engine.sqlite import DatabaseCallbacks, SQLiteEngine, refuse_downgrade
from ..errors import EngineFailureError
from ..snapshot.exporter import SnapshotExporter
from ..storage.paths import ExternalStorage, PathResolver
from ..storage.resources import DirectoryResourceReader, ResourceReader
from .guard import ProvisioningGuard, ProvisionState

logger = logging.getLogger(__name__)


class SeededOpenHelper:
    """Open helper that provisions a database from a bundled seed.

    Attributes:
        config: Effective configuration
        engine: SQLite engine used for every open
        resource_reader: Reader for seed resources
        external_storage: Destination for exports
        callbacks: Lifecycle callbacks passed to the engine
    """

    def __init__(
        self,
        name: str,
        version: int,
        *,
        seed_resource: str | None = None,
        resource_reader: ResourceReader | None = None,
        callbacks: DatabaseCallbacks | None = None,
        config: HelperConfig | None = None,
        engine: SQLiteEngine | None = None,
        external_storage: ExternalStorage | None = None,
    ) -> None:
        """Initialize the helper.

        Nothing touches the filesystem until the first handle is requested.

        Args:
            name: Logical database name (file name in the data directory)
            version: Schema version, at least 1
            seed_resource: Seed resource path (defaults to config.seed.seed_resource)
            resource_reader: Seed reader (defaults to a reader over config.seed.seed_dir)
            callbacks: Lifecycle callbacks (defaults to this object's on_* methods)
            config: Configuration (defaults to HelperConfig())
            engine: SQLite engine (built from config.storage if omitted)
            external_storage: Export destination (built from config.export if omitted)

        Raises:
            ValueError: If version is lower than 1 or name is invalid
        """
        if version < 1:
            raise ValueError(f"Version must be >= 1, was {version}")

        self.config = config or HelperConfig()
        storage = self.config.storage

        self._name = name
        self._version = version
        self._seed_resource = (
            seed_resource if seed_resource is not None else self.config.seed.seed_resource
        )

        if resource_reader is None and self.config.seed.seed_dir:
            resource_reader = DirectoryResourceReader(self.config.seed.seed_dir)
        self.resource_reader = resource_reader

        self.engine = engine or SQLiteEngine(
            PathResolver(storage.data_dir, storage.app_name),
            busy_timeout_ms=storage.busy_timeout_ms,
        )
        self.external_storage = external_storage or ExternalStorage(self.config.export.export_dir)
        self.callbacks = callbacks or DatabaseCallbacks(
            on_create=self.on_create,
            on_upgrade=self.on_upgrade,
            on_downgrade=self.on_downgrade,
            on_configure=self.on_configure,
            on_open=self.on_open,
        )

        self._guard = ProvisioningGuard(
            self.engine,
            name,
            resource_reader,
            self.get_seed_resource_path,
            buffer_size=storage.copy_buffer_size,
        )
        self._exporter = SnapshotExporter(
            self.engine,
            name,
            version,
            self.callbacks,
            self.external_storage,
            buffer_size=storage.copy_buffer_size,
        )
        self._opening = False

    @property
    def database_name(self) -> str:
        return self._name

    @property
    def database_path(self) -> Path:
        return self._guard.path

    @property
    def version(self) -> int:
        return self._version

    @property
    def provision_state(self) -> ProvisionState:
        return self._guard.state

    @property
    def guard(self) -> ProvisioningGuard:
        return self._guard

    @property
    def exporter(self) -> SnapshotExporter:
        return self._exporter

    def get_seed_resource_path(self) -> str | None:
        """Return the seed resource path, or None to start from an empty database."""
        return self._seed_resource

    def on_configure(self, conn: sqlite3.Connection) -> None:
        pass

    def on_create(self, conn: sqlite3.Connection) -> None:
        pass

    def on_upgrade(self, conn: sqlite3.Connection, old_version: int, new_version: int) -> None:
        pass

    def on_downgrade(self, conn: sqlite3.Connection, old_version: int, new_version: int) -> None:
        refuse_downgrade(conn, old_version, new_version)

    def on_open(self, conn: sqlite3.Connection) -> None:
        pass

    def get_readable_handle(self) -> sqlite3.Connection:
        """Get a connection for reading, provisioning the file first.

        Raises:
            EngineFailureError: If SQLite cannot open the database
        """
        return self._get_handle(writable=False)

    def get_writable_handle(self) -> sqlite3.Connection:
        """Get a connection for writing, provisioning the file first.

        Raises:
            EngineFailureError: If SQLite cannot open the database
        """
        return self._get_handle(writable=True)

    def _get_handle(self, writable: bool) -> sqlite3.Connection:
        # The lock stays held across the engine open so lifecycle callbacks
        # never run concurrently on one helper.
        with self._guard.lock:
            if self._opening:
                kind = "writable" if writable else "readable"
                raise EngineFailureError(
                    f"get_{kind}_handle called recursively", path=str(self.database_path)
                )

            self._opening = True
            try:
                self._guard.ensure_provisioned()
                if writable:
                    return self.engine.open_for_write(self._name, self._version, self.callbacks)
                return self.engine.open_for_read(self._name, self._version, self.callbacks)
            finally:
                self._opening = False

    @contextmanager
    def connection(self, writable: bool = True) -> Iterator[sqlite3.Connection]:
        """Get a handle that is closed when the block exits.

        Yields:
            SQLite connection
        """
        conn = self._get_handle(writable=writable)
        try:
            yield conn
        finally:
            conn.close()

    def dump_database_on_create(self, file_name: str) -> bool:
        """Write a freshly created database to external storage.

        Runs on_create against a new file at the destination; the live
        database is not touched.

        Args:
            file_name: Name of the file in the export directory

        Returns:
            True if the operation succeeded
        """
        return self._exporter.export_via_create_callback(file_name)

    def dump_database(self, file_name: str) -> bool:
        """Copy the current database file to external storage.

        Only meaningful after a handle has been requested at least once;
        before that there is no file and False is returned.

        Args:
            file_name: Name of the file in the export directory

        Returns:
            True if the operation succeeded
        """
        return self._exporter.export_current_file(file_name)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._name!r}, version={self._version}, "
            f"state={self._guard.state.value})"
        )
