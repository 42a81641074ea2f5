"""
Service lifecycle: wires settings into the pack manager and cleaner.
"""

from __future__ import annotations

from typing import Callable

from packstore.config import Settings
from packstore.logging import get_logger
from packstore.packs.cleaner import PackCleaner
from packstore.packs.manager import PackManager
from packstore.types import epoch_seconds

logger = get_logger(__name__)


class PackService:
    """Owns one PackManager and its PackCleaner for the life of the process."""

    def __init__(self, settings: Settings, clock: Callable[[], int] = epoch_seconds) -> None:
        self.settings = settings
        self.manager = PackManager(
            storage_dir=settings.storage.directory,
            pack_lifespan=settings.cleaner.pack_lifespan,
            clock=clock,
        )
        self.cleaner = PackCleaner(self.manager, delay=settings.cleaner.delay)
        self.started = False

    async def start(self) -> None:
        """Load the registry, then begin periodic cleanup.

        Raises:
            StorageError: If the storage layout cannot be prepared.
            IndexPersistenceError: If the registry snapshot is unreadable.
        """
        logger.info("Starting packstore")
        await self.manager.start()
        self.cleaner.start()
        self.started = True
        logger.info("Packstore started", url=self.settings.server.url)

    async def stop(self) -> None:
        """Stop the cleaner, then shut the manager down."""
        if not self.started:
            return
        logger.info("Stopping packstore")
        await self.cleaner.stop()
        await self.manager.shutdown()
        self.started = False
        logger.info("Packstore stopped")
