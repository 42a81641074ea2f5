"""
Core types for packstore.

This module defines the data structures shared by the registry, the pack
manager and the transport:
- RegistryEntry: per-hash metadata kept in the registry snapshot
- ReconcileReport: outcome of one cleanup pass
- Helper functions for hashing, ID generation and timestamps
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from typing import Any

from uuid6 import uuid7


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "req").

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def epoch_seconds() -> int:
    """Get the current Unix time in whole seconds."""
    return int(time.time())


def content_hash(data: bytes) -> str:
    """Compute the storage key for a pack.

    SHA-1 is what resource-pack clients verify downloads against, so the
    key doubles as the checksum handed back to uploaders.
    """
    return hashlib.sha1(data).hexdigest()


@dataclass
class RegistryEntry:
    """Metadata for one stored pack, keyed by its content hash.

    Attributes:
        origin_id: Uploader-supplied label (opaque, not validated).
        source_address: Client address the pack was uploaded from.
        last_access: Unix seconds of the registration or most recent download.
    """

    origin_id: str
    source_address: str
    last_access: int

    def touch(self, now: int) -> None:
        """Record an access without ever moving the timestamp backwards."""
        self.last_access = max(self.last_access, now)

    def is_expired(self, now: int, lifespan: int) -> bool:
        """Whether the entry has been idle for strictly longer than lifespan."""
        return now - self.last_access > lifespan

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the snapshot field names."""
        return {
            "id": self.origin_id,
            "ip": self.source_address,
            "last_download": self.last_access,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryEntry:
        """Deserialize from the snapshot field names.

        Raises:
            KeyError: If a field is missing.
            TypeError: If a field has the wrong type.
        """
        origin_id = data["id"]
        source_address = data["ip"]
        last_access = data["last_download"]
        if not isinstance(origin_id, str) or not isinstance(source_address, str):
            raise TypeError("id and ip must be strings")
        if isinstance(last_access, bool) or not isinstance(last_access, int):
            raise TypeError("last_download must be an integer")
        return cls(
            origin_id=origin_id,
            source_address=source_address,
            last_access=last_access,
        )


@dataclass
class ReconcileReport:
    """Outcome of one reconcile pass."""

    dangling_removed: list[str] = field(default_factory=list)
    expired_removed: list[str] = field(default_factory=list)
    orphans_deleted: list[str] = field(default_factory=list)
    delete_failures: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Whether any registry entry was removed."""
        return bool(self.dangling_removed or self.expired_removed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dangling_removed": len(self.dangling_removed),
            "expired_removed": len(self.expired_removed),
            "orphans_deleted": len(self.orphans_deleted),
            "delete_failures": len(self.delete_failures),
        }
