"""
Error types for seeddb.

This module defines the exceptions raised while provisioning and exporting
a database file:
- SeedDbError: Base exception
- ProbeFailedError: Existing database file is missing or unreadable
- SeedUnavailableError: Bundled seed resource cannot be opened
- CopyFailedError: I/O failure while copying bytes
- EngineFailureError: SQLite cannot open or create the database

Invariants:
    - All errors inherit from SeedDbError
    - Only EngineFailureError escapes get_readable_handle/get_writable_handle
    - Export operations report failure as False, never as an exception
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SeedDbError(Exception):
    """Base exception for all seeddb errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SEEDDB_ERROR"
        self.details = details or {}


class ProbeFailedError(SeedDbError):
    """Existing database file is missing, corrupt or not accessible."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="PROBE_FAILED", details={"path": path})
        self.path = path


class SeedUnavailableError(SeedDbError):
    """Seed resource could not be opened.

    Raised when:
    - The resource does not exist in the bundle
    - The resource path escapes the bundle root
    - The resource exists but cannot be read
    """

    def __init__(self, message: str, resource_path: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="SEED_UNAVAILABLE",
            details={"resource_path": resource_path},
        )
        self.resource_path = resource_path


class CopyFailedError(SeedDbError):
    """Reading or writing failed in the middle of a stream copy."""

    def __init__(
        self,
        message: str,
        bytes_copied: int = 0,
        destination: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="COPY_FAILED",
            details={"bytes_copied": bytes_copied, "destination": destination},
        )
        self.bytes_copied = bytes_copied
        self.destination = destination


class EngineFailureError(SeedDbError):
    """SQLite could not open or create the database.

    This is the only error propagated to callers asking for a handle.
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="ENGINE_FAILURE", details={"path": path})
        self.path = path
