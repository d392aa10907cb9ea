"""
Storage module for seeddb - where database bytes come from and go to.

This module handles:
- Resolving database names to files in the private data directory
- Opening bundled seed images (package data or a directory)
- Writing exported snapshots to a user-visible directory

Invariants:
    - Seed resources are read-only
    - Only the provisioning guard writes the live database file directly
"""

from .paths import ExternalStorage, PathResolver
from .resources import (
    DirectoryResourceReader,
    PackageResourceReader,
    ResourceReader,
    split_resource_path,
)

__all__ = [
    "PathResolver",
    "ExternalStorage",
    "ResourceReader",
    "DirectoryResourceReader",
    "PackageResourceReader",
    "split_resource_path",
]
