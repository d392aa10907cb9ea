"""
Provisioning guard: at-most-once seeding of a database file.

Before any handle is issued for a database, the guard makes sure a usable
file exists. If none does and a seed resource is configured, the seed image
is copied into place exactly once per guard instance.

Provisioning sequence (under the per-instance lock):
    1. State already resolved -> done
    2. No seed configured -> done (SQLite creates the file on open)
    3. Probe the file: OK -> PRESENT; BUSY (locked elsewhere) -> stay
       UNKNOWN without touching the file
    4. Otherwise normalize with open-or-create, then copy the seed into a
       temporary sibling and move it into place -> SEEDED
    5. Seeding failed -> log, stay UNKNOWN, retry on the next call

Invariants:
    - State moves UNKNOWN -> PRESENT | SEEDED at most once, never back
    - At most one seed copy runs at a time per guard
    - State is SEEDED only after the copy has fully succeeded
    - The database path never holds a partially copied seed
    - A file that is merely locked is never replaced
    - Seeding failures never escape ensure_provisioned()

How to change safely:
    - Keep the state check and the copy under the same lock
    - Never mark the state before os.replace() has returned
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable

from ..config import DEFAULT_COPY_BUFFER_SIZE
from ..engine.sqlite import ProbeResult, SQLiteEngine, remove_sidecar_files
from ..errors import EngineFailureError, SeedDbError, SeedUnavailableError
from ..storage.resources import ResourceReader
from ..streams import copy_stream

logger = logging.getLogger(__name__)

SEED_TMP_SUFFIX = ".seed-tmp"


class ProvisionState(Enum):
    """Whether a usable database file is known to exist."""

    UNKNOWN = "unknown"
    PRESENT = "present"
    SEEDED = "absent-then-seeded"


class ProvisioningGuard:
    """Ensures a database file exists before handles are issued.

    The guard owns the lock that serializes provisioning. The lock is
    re-entrant so the owning helper can hold it across provisioning and
    the engine open that follows.

    Attributes:
        engine: SQLite engine used for probing and normalizing
        name: Logical database name
        path: Resolved database file path
        resource_reader: Where seed images are read from
        buffer_size: Copy buffer size
        seed_count: Number of completed seed copies
    """

    def __init__(
        self,
        engine: SQLiteEngine,
        name: str,
        resource_reader: ResourceReader | None,
        seed_path_provider: Callable[[], str | None],
        buffer_size: int = DEFAULT_COPY_BUFFER_SIZE,
    ) -> None:
        """Initialize the guard.

        Args:
            engine: SQLite engine
            name: Logical database name
            resource_reader: Reader for seed resources (None disables seeding)
            seed_path_provider: Returns the seed resource path, or None
            buffer_size: Copy buffer size in bytes
        """
        self.engine = engine
        self.name = name
        self.path: Path = engine.get_database_path(name)
        self.resource_reader = resource_reader
        self.buffer_size = buffer_size
        self.seed_count = 0

        self._seed_path_provider = seed_path_provider
        self._state = ProvisionState.UNKNOWN
        self._lock = threading.RLock()

    @property
    def state(self) -> ProvisionState:
        return self._state

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def ensure_provisioned(self) -> ProvisionState:
        """Make sure a usable database file exists.

        Returns:
            Resulting state; UNKNOWN when no seed is configured or seeding
            failed (the caller falls back to an engine-created database)
        """
        with self._lock:
            if self._state is not ProvisionState.UNKNOWN:
                return self._state

            seed_path = self._seed_path_provider()
            if not seed_path:
                return self._state

            result = self.engine.probe(self.path)
            if result is ProbeResult.OK:
                self._state = ProvisionState.PRESENT
                logger.debug(f"Database already present: {self.path}")
                return self._state
            if result is ProbeResult.BUSY:
                logger.warning(
                    "Database is locked, not seeding; will retry on next access",
                    extra={"path": str(self.path), "seed": seed_path},
                )
                return self._state

            logger.info(
                "Database missing or unusable, seeding",
                extra={"path": str(self.path), "probe": result.value, "seed": seed_path},
            )
            self._normalize()

            try:
                copied = self._copy_seed(seed_path)
            except (SeedDbError, OSError) as e:
                logger.error(
                    f"Could not create database file from seed {seed_path}: {e}",
                    exc_info=True,
                    extra={"path": str(self.path), "seed": seed_path},
                )
                return self._state

            self.seed_count += 1
            self._state = ProvisionState.SEEDED
            logger.info(
                "Seeded database",
                extra={"path": str(self.path), "seed": seed_path, "size_bytes": copied},
            )
            return self._state

    def _normalize(self) -> None:
        """Let SQLite create the file and its directory if it can."""
        try:
            conn = self.engine.open_or_create(self.name)
        except EngineFailureError as e:
            logger.debug(f"Ignoring open-or-create failure before seeding: {e}")
            return
        conn.close()

    def _open_seed(self, seed_path: str) -> BinaryIO:
        if self.resource_reader is None:
            raise SeedUnavailableError(
                "No resource reader configured for seed", resource_path=seed_path
            )
        return self.resource_reader.open_stream(seed_path)

    def _copy_seed(self, seed_path: str) -> int:
        """Copy the seed into place.

        Returns:
            Number of bytes copied

        Raises:
            SeedUnavailableError: If the seed cannot be opened
            CopyFailedError: If copying fails mid-stream
            OSError: If the destination cannot be written or replaced
        """
        tmp_path = self.path.with_name(self.path.name + SEED_TMP_SUFFIX)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._open_seed(seed_path) as source, open(tmp_path, "wb") as destination:
                copied = copy_stream(
                    source,
                    destination,
                    self.buffer_size,
                    destination_name=str(self.path),
                )
                destination.flush()
                os.fsync(destination.fileno())

            remove_sidecar_files(self.path)
            os.replace(tmp_path, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise

        return copied
