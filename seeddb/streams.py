"""
Bounded-buffer byte copying shared by seeding and export.

Both the provisioning guard (seed resource -> database file) and the
snapshot exporter (database file -> export directory) move database bytes
with copy_stream(), so the two paths behave identically.

Invariants:
    - Destination receives exactly the source bytes, in order
    - The buffer size affects throughput only, never the output
    - A read returning None (non-blocking source, no data yet) is skipped
    - A read returning zero bytes is end-of-stream
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import BinaryIO

from .config import DEFAULT_COPY_BUFFER_SIZE
from .errors import CopyFailedError

logger = logging.getLogger(__name__)


def _read_chunk(source: BinaryIO, view: memoryview) -> int | None:
    """Read the next chunk of source into view.

    Returns the number of bytes read, 0 at end-of-stream, or None when a
    non-blocking source has nothing available yet.
    """
    readinto = getattr(source, "readinto", None)
    if readinto is not None:
        return readinto(view)

    data = source.read(len(view))
    if data is None:
        return None
    view[: len(data)] = data
    return len(data)


def copy_stream(
    source: BinaryIO,
    destination: BinaryIO,
    buffer_size: int = DEFAULT_COPY_BUFFER_SIZE,
    destination_name: str | None = None,
) -> int:
    """Copy every byte of source into destination.

    Neither stream is closed; callers own both.

    Args:
        source: Readable binary stream
        destination: Writable binary stream
        buffer_size: Size of the reusable read buffer
        destination_name: Destination label used in errors

    Returns:
        Number of bytes copied

    Raises:
        ValueError: If buffer_size is not positive
        CopyFailedError: If reading or writing fails mid-stream
    """
    if buffer_size <= 0:
        raise ValueError(f"buffer_size must be positive, got {buffer_size}")

    buffer = bytearray(buffer_size)
    view = memoryview(buffer)
    copied = 0

    while True:
        try:
            length = _read_chunk(source, view)
        except OSError as e:
            raise CopyFailedError(
                f"Read failed after {copied} bytes: {e}",
                bytes_copied=copied,
                destination=destination_name,
            ) from e

        if length is None:
            continue
        if length == 0:
            break

        try:
            destination.write(view[:length])
        except OSError as e:
            raise CopyFailedError(
                f"Write failed after {copied} bytes: {e}",
                bytes_copied=copied,
                destination=destination_name,
            ) from e
        copied += length

    logger.debug(f"Copied {copied} bytes", extra={"destination": destination_name})
    return copied


def file_checksum(path: Path) -> str:
    """Compute SHA-256 checksum of a file."""
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return f"sha256:{sha256.hexdigest()}"
