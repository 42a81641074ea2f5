"""
Content-addressed blob storage.

Blobs live as flat files under <storage>/packs/{content_hash}. The store
keeps no state besides the directory itself.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterator

from packstore.exceptions import StorageError
from packstore.logging import get_logger

logger = get_logger(__name__)

TEMP_PREFIX = ".tmp-"


class BlobStore:
    """Flat directory of immutable blobs named by content hash."""

    def __init__(self, packs_dir: str | Path) -> None:
        """Initialize blob store.

        Args:
            packs_dir: Directory holding the blob files.
        """
        self.packs_dir = Path(packs_dir)

    def init(self) -> None:
        """Create the packs directory.

        Raises:
            StorageError: If the path is not a directory or cannot be created.
        """
        if self.packs_dir.exists() and not self.packs_dir.is_dir():
            raise StorageError(
                "Packs path is not a directory", context={"path": str(self.packs_dir)}
            )
        try:
            self.packs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                "Cannot create packs directory",
                context={"path": str(self.packs_dir), "error": str(e)},
            ) from e

    @staticmethod
    def is_valid_key(key: str) -> bool:
        """Whether key is a bare file name that stays inside the packs directory."""
        return bool(key) and key not in (".", "..") and not any(c in key for c in "/\\\0")

    def _path(self, key: str) -> Path:
        if not self.is_valid_key(key):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.packs_dir / key

    def write(self, content_hash: str, data: bytes) -> Path:
        """Persist data under content_hash.

        Data goes to a temp file in the packs directory and is renamed into
        place, so a reader never observes a partially written blob. An
        existing blob is left alone since equal keys mean equal bytes.

        Returns:
            Path of the stored blob.

        Raises:
            StorageError: If the blob cannot be written.
        """
        path = self._path(content_hash)
        if path.is_file():
            logger.debug("Blob already stored", hash=content_hash[:12])
            return path

        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=self.packs_dir)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageError(
                "Cannot write blob",
                context={"content_hash": content_hash, "path": str(path), "error": str(e)},
            ) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning("Cannot remove temp blob", path=tmp_name)

        logger.debug("Stored blob", hash=content_hash[:12], size=len(data))
        return path

    def resolve(self, content_hash: str) -> Path | None:
        """Get the path of a stored blob without reading it.

        Returns:
            Path to the blob, or None if it is not stored.
        """
        if not self.is_valid_key(content_hash):
            return None
        path = self._path(content_hash)
        return path if path.is_file() else None

    def exists(self, content_hash: str) -> bool:
        return self.resolve(content_hash) is not None

    def delete(self, content_hash: str) -> bool:
        """Remove a blob. Best effort: failures are logged, not raised.

        Returns:
            True if the blob is gone afterwards.
        """
        path = self._path(content_hash)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Cannot delete blob", hash=content_hash, error=str(e))
            return False
        return True

    def list_all(self) -> Iterator[str]:
        """Enumerate every stored key.

        Re-reads the directory on each call. Leftover temp files are listed
        too so that cleanup sweeps can remove them.
        """
        try:
            with os.scandir(self.packs_dir) as it:
                names = [entry.name for entry in it if entry.is_file()]
        except FileNotFoundError:
            return iter(())
        return iter(sorted(names))

    def size(self, content_hash: str) -> int | None:
        """Size of a stored blob in bytes, or None if missing."""
        path = self.resolve(content_hash)
        if path is None:
            return None
        try:
            return path.stat().st_size
        except OSError:
            return None
