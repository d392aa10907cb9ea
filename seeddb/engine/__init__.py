"""
Engine module for seeddb - the embedded SQL engine behind every handle.

seeddb does not execute queries itself; it opens, creates and versions
SQLite databases and hands the connections to callers.
"""

from .sqlite import (
    DatabaseCallbacks,
    ProbeResult,
    SQLiteEngine,
    delete_database,
    get_user_version,
    is_busy_error,
    refuse_downgrade,
    remove_sidecar_files,
    run_script,
    split_statements,
)

__all__ = [
    "SQLiteEngine",
    "DatabaseCallbacks",
    "ProbeResult",
    "delete_database",
    "get_user_version",
    "refuse_downgrade",
    "remove_sidecar_files",
    "run_script",
    "split_statements",
    "is_busy_error",
]
