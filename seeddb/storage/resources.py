"""
Read-only access to bundled seed database images.

A ResourceReader opens a named byte stream from wherever the application
ships its assets: package data (PackageResourceReader) or a plain directory
(DirectoryResourceReader).

Invariants:
    - Resource paths are relative and '/'-separated
    - A resource path can never escape its bundle root
    - Every failure to open surfaces as SeedUnavailableError

How to change safely:
    - New readers must raise SeedUnavailableError, never OSError
    - Streams are returned open; callers close them
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from importlib import resources
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from ..errors import SeedUnavailableError

logger = logging.getLogger(__name__)


def split_resource_path(resource_path: str) -> list[str]:
    """Split a resource path into its components.

    Raises:
        SeedUnavailableError: If the path is empty, absolute or uses '..'
    """
    if not resource_path:
        raise SeedUnavailableError("Empty seed resource path", resource_path=resource_path)

    pure = PurePosixPath(resource_path.replace("\\", "/"))
    if pure.is_absolute() or ".." in pure.parts:
        raise SeedUnavailableError(
            f"Seed resource path must be relative to the bundle: {resource_path}",
            resource_path=resource_path,
        )
    return [part for part in pure.parts if part not in ("", ".")]


class ResourceReader(ABC):
    """Source of bundled, read-only byte streams."""

    @abstractmethod
    def open_stream(self, resource_path: str) -> BinaryIO:
        """Open a bundled resource for binary reading.

        Raises:
            SeedUnavailableError: If the resource cannot be opened
        """


class DirectoryResourceReader(ResourceReader):
    """Reads resources from a directory on disk.

    Example:
        >>> reader = DirectoryResourceReader("/opt/myapp/assets")
        >>> with reader.open_stream("db/catalog.db") as stream:
        ...     header = stream.read(16)
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def open_stream(self, resource_path: str) -> BinaryIO:
        path = self.root.joinpath(*split_resource_path(resource_path))
        try:
            return open(path, "rb")
        except OSError as e:
            raise SeedUnavailableError(
                f"Cannot open seed resource {resource_path} in {self.root}: {e}",
                resource_path=resource_path,
            ) from e

    def __repr__(self) -> str:
        return f"DirectoryResourceReader({str(self.root)!r})"


class PackageResourceReader(ResourceReader):
    """Reads resources shipped as package data of an importable package."""

    def __init__(self, package: str) -> None:
        self.package = package

    def open_stream(self, resource_path: str) -> BinaryIO:
        parts = split_resource_path(resource_path)
        try:
            traversable = resources.files(self.package)
            for part in parts:
                traversable = traversable.joinpath(part)
            return traversable.open("rb")
        except (ImportError, TypeError, OSError) as e:
            raise SeedUnavailableError(
                f"Cannot open seed resource {resource_path} in package {self.package}: {e}",
                resource_path=resource_path,
            ) from e

    def __repr__(self) -> str:
        return f"PackageResourceReader({self.package!r})"
