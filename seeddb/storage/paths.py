"""
Filesystem locations for live databases and exported snapshots.

PathResolver maps a logical database name to its file in the
application-private data directory. ExternalStorage maps an export file
name to a location the user can reach (the downloads directory by default).

Invariants:
    - A relative database name never contains a path separator
    - Absolute names are used as-is
    - Directories are created lazily, on first write
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import BinaryIO

import platformdirs

from ..config import DEFAULT_APP_NAME

logger = logging.getLogger(__name__)


def _resolve_file(base_dir: Path, name: str, kind: str) -> Path:
    if not name:
        raise ValueError(f"{kind} name must not be empty")

    candidate = Path(name)
    if candidate.is_absolute():
        return candidate

    separators = [os.sep] + ([os.altsep] if os.altsep else [])
    if any(sep in name for sep in separators):
        raise ValueError(f"{kind} name {name!r} contains a path separator")
    return base_dir / name


class PathResolver:
    """Resolves database names to files in the private data directory.

    Example:
        >>> resolver = PathResolver("/var/lib/myapp")
        >>> resolver.get_database_path("catalog.db")
        PosixPath('/var/lib/myapp/catalog.db')
    """

    def __init__(
        self,
        data_dir: str | Path | None = None,
        app_name: str = DEFAULT_APP_NAME,
    ) -> None:
        if data_dir:
            self.data_dir = Path(data_dir)
        else:
            self.data_dir = Path(platformdirs.user_data_dir(app_name)) / "databases"

    def get_database_path(self, name: str) -> Path:
        """Get the database file path for a logical name."""
        return _resolve_file(self.data_dir, name, "Database")


class ExternalStorage:
    """Writes exported database files to a user-visible directory."""

    def __init__(self, export_dir: str | Path | None = None) -> None:
        if export_dir:
            self.export_dir = Path(export_dir)
        else:
            self.export_dir = Path(platformdirs.user_downloads_dir())

    def get_export_path(self, file_name: str) -> Path:
        """Get the destination path for an export file name."""
        return _resolve_file(self.export_dir, file_name, "Export file")

    def open_output_stream(self, file_name: str) -> BinaryIO:
        """Open (truncating) an export destination for writing.

        Raises:
            OSError: If the directory or file cannot be created
        """
        path = self.get_export_path(file_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Opening export destination {path}")
        return open(path, "wb")
