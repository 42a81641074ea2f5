"""
Registry index for stored packs.

In-memory mapping from content hash to RegistryEntry, backed by a single
JSON snapshot (registry.json) that is rewritten in full on every save.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Callable, Iterator

import orjson

from packstore.exceptions import IndexPersistenceError
from packstore.logging import get_logger
from packstore.types import RegistryEntry

logger = get_logger(__name__)


class RegistryIndex:
    """Hash -> RegistryEntry mapping with a durable snapshot.

    The index itself is not thread-safe; PackManager serializes access.
    Mutating methods do not persist on their own, callers follow them with
    save().
    """

    def __init__(self, snapshot_path: str | Path) -> None:
        """Initialize the index.

        Args:
            snapshot_path: Location of registry.json.
        """
        self.snapshot_path = Path(snapshot_path)
        self._entries: dict[str, RegistryEntry] = {}

    def exists(self) -> bool:
        """Whether a snapshot is present on disk."""
        return self.snapshot_path.exists()

    def load(self, strict: bool = False) -> bool:
        """Replace in-memory state with the snapshot contents.

        The snapshot is fully parsed before anything is replaced, so a
        failure leaves the previous state untouched.

        Args:
            strict: Raise instead of returning False on failure.

        Returns:
            True if the snapshot was loaded.

        Raises:
            IndexPersistenceError: On failure when strict is set.
        """
        try:
            raw = orjson.loads(self.snapshot_path.read_bytes())
            if not isinstance(raw, dict):
                raise TypeError(f"expected a JSON object, got {type(raw).__name__}")
            entries = {
                str(content_hash): RegistryEntry.from_dict(value)
                for content_hash, value in raw.items()
            }
        except (OSError, orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            if strict:
                raise IndexPersistenceError(
                    "Cannot load registry snapshot",
                    context={"path": str(self.snapshot_path), "error": str(e)},
                ) from e
            logger.warning(
                "Cannot load registry snapshot, keeping current state",
                path=str(self.snapshot_path),
                error=str(e),
            )
            return False

        self._entries = entries
        logger.info("Registry loaded", entries=len(entries))
        return True

    def save(self) -> bool:
        """Overwrite the snapshot with the current mapping.

        Writes to a temp file in the same directory and renames it over the
        snapshot so a crash never leaves a half-written registry.

        Returns:
            True if the snapshot was written.
        """
        payload = orjson.dumps(
            {content_hash: entry.to_dict() for content_hash, entry in self._entries.items()},
            option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS,
        )
        tmp_name: str | None = None
        try:
            self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".registry-", suffix=".tmp", dir=self.snapshot_path.parent
            )
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp_name, self.snapshot_path)
            tmp_name = None
        except OSError as e:
            logger.warning(
                "Cannot save registry snapshot",
                path=str(self.snapshot_path),
                error=str(e),
            )
            return False
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        logger.debug("Registry saved", entries=len(self._entries))
        return True

    def get(self, content_hash: str) -> RegistryEntry | None:
        return self._entries.get(content_hash)

    def put(self, content_hash: str, entry: RegistryEntry) -> None:
        """Insert or replace the entry for a hash."""
        self._entries[content_hash] = entry

    def remove(self, content_hash: str) -> RegistryEntry | None:
        return self._entries.pop(content_hash, None)

    def update(
        self,
        content_hash: str,
        mutator: Callable[[RegistryEntry], None],
    ) -> RegistryEntry | None:
        """Apply mutator to an existing entry in place.

        Returns:
            The updated entry, or None if the hash is unknown.
        """
        entry = self._entries.get(content_hash)
        if entry is None:
            return None
        mutator(entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def items(self) -> Iterator[tuple[str, RegistryEntry]]:
        return iter(list(self._entries.items()))

    def __contains__(self, content_hash: object) -> bool:
        return content_hash in self._entries

    def __len__(self) -> int:
        return len(self._entries)
