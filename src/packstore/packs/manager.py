"""
Pack manager: the single owner of the registry and blob store.

Every public operation runs under one asyncio.Lock, so registrations,
downloads, cleanup passes and shutdown never interleave. Blocking file I/O
is pushed to a thread pool while the lock is held.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, TypeVar

from packstore.exceptions import IndexPersistenceError, RegistrationError, StorageError
from packstore.logging import get_logger, log_context
from packstore.registry.index import RegistryIndex
from packstore.storage.blob_store import BlobStore
from packstore.types import ReconcileReport, RegistryEntry, content_hash, epoch_seconds

logger = get_logger(__name__)

T = TypeVar("T")

# Disk and hashing work is not async-native
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="packstore-io")

PACKS_DIRNAME = "packs"
SNAPSHOT_NAME = "registry.json"


class PackManager:
    """Registers, serves and expires packs.

    Layout under storage_dir:
        packs/{sha1}    blob files
        registry.json   registry snapshot
    """

    def __init__(
        self,
        storage_dir: str | Path,
        pack_lifespan: int,
        clock: Callable[[], int] = epoch_seconds,
    ) -> None:
        """Initialize pack manager.

        Args:
            storage_dir: Root of the on-disk layout.
            pack_lifespan: Seconds a pack may go without downloads before
                a cleanup pass evicts it.
            clock: Source of Unix seconds, replaceable in tests.
        """
        self.storage_dir = Path(storage_dir)
        self.pack_lifespan = pack_lifespan
        self.clock = clock
        self.blob_store = BlobStore(self.storage_dir / PACKS_DIRNAME)
        self.index = RegistryIndex(self.storage_dir / SNAPSHOT_NAME)
        self._lock = asyncio.Lock()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        ctx = contextvars.copy_context()
        return await loop.run_in_executor(_executor, functools.partial(ctx.run, fn, *args))

    async def start(self) -> None:
        """Prepare directories and load the registry.

        Raises:
            StorageError: If the storage layout cannot be created.
            IndexPersistenceError: If an existing snapshot cannot be read.
        """
        async with self._lock:
            await self._run(self._start_sync)

    def _start_sync(self) -> None:
        if self.storage_dir.exists() and not self.storage_dir.is_dir():
            raise StorageError(
                "Storage path is not a directory", context={"path": str(self.storage_dir)}
            )
        self.blob_store.init()

        snapshot = self.index.snapshot_path
        if not self.index.exists():
            self.index.save()
        elif not snapshot.is_file():
            raise IndexPersistenceError(
                "Registry snapshot is not a file", context={"path": str(snapshot)}
            )
        else:
            self.index.load(strict=True)

        logger.info(
            "Pack manager started",
            storage_dir=str(self.storage_dir),
            entries=len(self.index),
        )

    async def register(self, data: bytes, origin_id: str, source_address: str) -> str:
        """Store a pack and record who uploaded it.

        Registering bytes that are already stored overwrites the entry's
        origin, address and last access time.

        Args:
            data: Raw pack bytes.
            origin_id: Uploader-supplied label.
            source_address: Client address.

        Returns:
            The pack's SHA-1 hex digest.

        Raises:
            RegistrationError: If the blob could not be written. The
                registry is left untouched.
        """
        pack_hash = await self._run(content_hash, data)

        async with self._lock:
            with log_context(operation="register"):
                try:
                    await self._run(self.blob_store.write, pack_hash, data)
                except StorageError as e:
                    logger.warning(
                        "Cannot write pack",
                        hash=pack_hash,
                        origin_id=origin_id,
                        ip=source_address,
                        error=str(e),
                    )
                    raise RegistrationError(
                        "Pack could not be stored",
                        context={
                            "content_hash": pack_hash,
                            "origin_id": origin_id,
                            "source_address": source_address,
                        },
                    ) from e

                entry = RegistryEntry(
                    origin_id=origin_id,
                    source_address=source_address,
                    last_access=self.clock(),
                )
                self.index.put(pack_hash, entry)
                await self._run(self.index.save)

                logger.info(
                    "Registered pack",
                    hash=pack_hash,
                    size=len(data),
                    origin_id=origin_id[:80],
                )
                return pack_hash

    async def fetch(self, pack_hash: str) -> Path | None:
        """Look up a pack for download and mark it as recently used.

        Args:
            pack_hash: Content hash from the download link.

        Returns:
            Path to the blob, or None if the hash is unknown or its blob is
            missing. A missing blob is left for the next cleanup pass.
        """
        async with self._lock:
            with log_context(operation="fetch"):
                now = self.clock()
                entry = self.index.update(pack_hash, lambda e: e.touch(now))
                if entry is None:
                    return None
                await self._run(self.index.save)

                path = await self._run(self.blob_store.resolve, pack_hash)
                if path is None:
                    logger.warning("Registered pack has no blob", hash=pack_hash)
                return path

    async def reconcile(self) -> ReconcileReport:
        """Run one cleanup pass.

        Entry sweep: entries whose blob is gone are dropped; entries idle for
        longer than pack_lifespan are dropped together with their blob.
        Orphan sweep: blobs without an entry are deleted.

        The snapshot is saved once at the end if any entry was removed.
        """
        async with self._lock:
            with log_context(operation="reconcile"):
                return await self._run(self._reconcile_sync, self.clock())

    def _reconcile_sync(self, now: int) -> ReconcileReport:
        report = ReconcileReport()

        for pack_hash, entry in self.index.items():
            if not self.blob_store.exists(pack_hash):
                self.index.remove(pack_hash)
                report.dangling_removed.append(pack_hash)
                logger.info("Dropped entry with missing blob", hash=pack_hash)
            elif entry.is_expired(now, self.pack_lifespan):
                self.index.remove(pack_hash)
                report.expired_removed.append(pack_hash)
                if not self.blob_store.delete(pack_hash):
                    report.delete_failures.append(pack_hash)
                logger.info(
                    "Evicted idle pack",
                    hash=pack_hash,
                    idle_seconds=now - entry.last_access,
                )

        for key in self.blob_store.list_all():
            if key in self.index:
                continue
            if self.blob_store.delete(key):
                report.orphans_deleted.append(key)
                logger.info("Deleted orphan blob", hash=key)
            else:
                report.delete_failures.append(key)

        if report.changed:
            self.index.save()

        logger.info("Cleanup pass finished", remaining=len(self.index), **report.to_dict())
        return report

    async def shutdown(self) -> None:
        """Clear the registry and persist it empty.

        Blobs stay on disk, so the first cleanup pass after the next start
        deletes all of them as orphans.
        """
        async with self._lock:
            with log_context(operation="shutdown"):
                dropped = len(self.index)
                self.index.clear()
                await self._run(self.index.save)
                logger.info("Pack manager stopped", entries_dropped=dropped)

    async def entries(self) -> dict[str, RegistryEntry]:
        """Copy of all registry entries, keyed by hash."""
        async with self._lock:
            return {pack_hash: replace(entry) for pack_hash, entry in self.index.items()}
