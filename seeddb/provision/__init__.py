"""
Provision module for seeddb - getting a usable database file in place.

This module handles:
- Probing for an existing database file
- Seeding a missing file from a bundled image, at most once
- Handing out connections through SeededOpenHelper

Invariants:
    - One lock per helper; independent databases never contend
    - Handles are only issued after provisioning resolves
    - Seeding is best-effort; failure falls back to an empty database
"""

from .guard import ProvisioningGuard, ProvisionState
from .helper import SeededOpenHelper

__all__ = [
    "ProvisioningGuard",
    "ProvisionState",
    "SeededOpenHelper",
]
