"""
Snapshot module for seeddb.

This module exports database files to external storage for:
- Shipping a pre-built database as the seed of a later release
- Inspecting a database outside the application

Invariants:
    - Exports report success as a boolean and never raise
    - Only complete files are recorded as exported
"""

from .exporter import ExportInfo, SnapshotExporter

__all__ = ["SnapshotExporter", "ExportInfo"]
