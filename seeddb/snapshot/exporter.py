"""
Snapshot exporter for seeddb.

The exporter writes a copy of a database to external storage so it can be
inspected or shipped as a seed image in a later release:

- export_current_file: raw byte copy of the live database file
- export_via_create_callback: a brand-new database built by running the
  on_create callback directly at the destination

Invariants:
    - Exports never raise; failure is reported as False and logged
    - The live database file is only ever read, never written
    - Exports do not take the provisioning lock; callers synchronize
      exports with concurrent writers themselves
    - last_export is only updated after a successful export
    - A file copy is written to a temporary sibling and moved into place,
      so the destination never holds a truncated export
    - A failed create-callback export leaves no file behind
"""

from __future__ import annotations

import contextlib
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

from ..config import DEFAULT_COPY_BUFFER_SIZE
from ..engine.sqlite import DatabaseCallbacks, SQLiteEngine, delete_database
from ..errors import ProbeFailedError, SeedDbError
from ..storage.paths import ExternalStorage
from ..streams import copy_stream, file_checksum

logger = logging.getLogger(__name__)

EXPORT_TMP_SUFFIX = ".export-tmp"


@dataclass
class ExportInfo:
    """Information about a completed export.

    Attributes:
        source: Live database file copied (None for create-callback exports)
        destination: Written export file
        size_bytes: Size of the export in bytes
        checksum: SHA-256 of the export
        exported_at: Export timestamp (Unix ms)
    """

    source: str | None
    destination: str
    size_bytes: int
    checksum: str
    exported_at: int


class SnapshotExporter:
    """Copies or recreates a database into external storage.

    Example:
        >>> exporter = SnapshotExporter(engine, "catalog.db", 3, callbacks, ExternalStorage())
        >>> if exporter.export_current_file("catalog-seed.db"):
        ...     print(exporter.last_export.checksum)
    """

    def __init__(
        self,
        engine: SQLiteEngine,
        name: str,
        version: int,
        callbacks: DatabaseCallbacks,
        external_storage: ExternalStorage,
        buffer_size: int = DEFAULT_COPY_BUFFER_SIZE,
    ) -> None:
        """Initialize the exporter.

        Args:
            engine: SQLite engine
            name: Logical name of the live database
            version: Schema version stamped on create-callback exports
            callbacks: Lifecycle callbacks (on_configure and on_create are used)
            external_storage: Destination for exports
            buffer_size: Copy buffer size in bytes
        """
        self.engine = engine
        self.name = name
        self.version = version
        self.callbacks = callbacks
        self.external_storage = external_storage
        self.buffer_size = buffer_size
        self.last_export: ExportInfo | None = None

    def export_current_file(self, destination_name: str) -> bool:
        """Copy the live database file to external storage.

        The database must have been opened at least once; otherwise there is
        no file to copy and False is returned without writing anything.

        Args:
            destination_name: File name in the export directory

        Returns:
            True if the export succeeded
        """
        source_path = self.engine.get_database_path(self.name)
        try:
            self.engine.require_usable(source_path)
        except ProbeFailedError as e:
            logger.error(f"Failed to dump database: {e}. Has the database been opened yet?")
            return False

        try:
            destination = self.external_storage.get_export_path(destination_name)
            if destination.resolve() == source_path.resolve():
                logger.error(f"Refusing to dump database {source_path} onto itself")
                return False

            tmp_name = destination_name + EXPORT_TMP_SUFFIX
            tmp_path = self.external_storage.get_export_path(tmp_name)
            try:
                with open(source_path, "rb") as source, self.external_storage.open_output_stream(
                    tmp_name
                ) as out:
                    copy_stream(source, out, self.buffer_size, destination_name=str(destination))
                    out.flush()
                    os.fsync(out.fileno())
                os.replace(tmp_path, destination)
            except BaseException:
                with contextlib.suppress(OSError):
                    tmp_path.unlink(missing_ok=True)
                raise
            self._record(source_path, destination)
        except (SeedDbError, OSError, ValueError) as e:
            logger.error(f"Failed to dump database {source_path}: {e}", exc_info=True)
            return False

        return True

    def export_via_create_callback(self, destination_name: str) -> bool:
        """Build a fresh database at the export destination.

        An existing file at the destination is replaced. The result is
        stamped with the current schema version so that it can be used as
        a seed without on_create running again.

        Args:
            destination_name: File name in the export directory

        Returns:
            True if the export succeeded
        """
        try:
            destination = self.external_storage.get_export_path(destination_name)
            live_path = self.engine.get_database_path(self.name)
            if destination.resolve() == live_path.resolve():
                logger.error(f"Refusing to replace live database {live_path} with a fresh one")
                return False
            delete_database(destination)

            try:
                conn = self.engine.create_at(destination)
                try:
                    self.callbacks.on_configure(conn)
                    self.engine.migrate(conn, self.version, self.callbacks)
                finally:
                    conn.close()
            except BaseException:
                with contextlib.suppress(OSError):
                    delete_database(destination)
                raise

            self._record(None, destination)
        except Exception as e:
            logger.error(f"Failed to dump database on create: {e}", exc_info=True)
            return False

        return True

    def _record(self, source: Path | None, destination: Path) -> None:
        info = ExportInfo(
            source=str(source) if source is not None else None,
            destination=str(destination),
            size_bytes=destination.stat().st_size,
            checksum=file_checksum(destination),
            exported_at=int(time.time() * 1000),
        )
        self.last_export = info
        logger.info(
            "Exported database",
            extra={
                "source": info.source,
                "destination": info.destination,
                "size_bytes": info.size_bytes,
                "checksum": info.checksum,
            },
        )
