"""
seeddb - seeded SQLite databases for local applications.

An application ships a pre-built SQLite file as package data or next to
its executable. On first access seeddb copies it into the application's
private data directory, exactly once, even under concurrent first access;
later runs open the existing file. Databases can be exported again to
produce the seed for the next release.

Architecture:
    ┌──────────────┐  get_*_handle   ┌──────────────────┐
    │    Caller    │────────────────▶│ SeededOpenHelper │
    └──────────────┘                 └────────┬─────────┘
                                              │
                     ┌────────────────────────┼────────────────────┐
                     ▼                        ▼                    ▼
           ┌───────────────────┐     ┌──────────────┐     ┌──────────────────┐
           │ ProvisioningGuard │────▶│ SQLiteEngine │     │ SnapshotExporter │
           │ (seed copy, once) │     │ (callbacks)  │     │ (dump to export) │
           └─────────┬─────────┘     └──────────────┘     └──────────────────┘
                     ▼
           ┌───────────────────┐
           │  ResourceReader   │
           └───────────────────┘

Invariants:
    - Provisioning happens at most once per helper and process
    - A handle is never issued before provisioning resolves
    - Seeding and exporting failures never raise to the caller
"""

from ._version import __version__
from .config import HelperConfig
from .engine import DatabaseCallbacks, ProbeResult, SQLiteEngine
from .errors import (
    CopyFailedError,
    EngineFailureError,
    ProbeFailedError,
    SeedDbError,
    SeedUnavailableError,
)
from .provision import ProvisioningGuard, ProvisionState, SeededOpenHelper
from .snapshot import ExportInfo, SnapshotExporter
from .storage import (
    DirectoryResourceReader,
    ExternalStorage,
    PackageResourceReader,
    PathResolver,
    ResourceReader,
)

__all__ = [
    "__version__",
    "HelperConfig",
    "SeededOpenHelper",
    "ProvisioningGuard",
    "ProvisionState",
    "SnapshotExporter",
    "ExportInfo",
    "SQLiteEngine",
    "DatabaseCallbacks",
    "ProbeResult",
    "PathResolver",
    "ExternalStorage",
    "ResourceReader",
    "DirectoryResourceReader",
    "PackageResourceReader",
    "SeedDbError",
    "ProbeFailedError",
    "SeedUnavailableError",
    "CopyFailedError",
    "EngineFailureError",
]
