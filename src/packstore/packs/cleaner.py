"""
Periodic cleanup of idle and orphaned packs.
"""

from __future__ import annotations

import asyncio

from packstore.logging import get_logger
from packstore.packs.manager import PackManager

logger = get_logger(__name__)


class PackCleaner:
    """Runs PackManager.reconcile() on a fixed schedule.

    The first pass runs as soon as the cleaner starts, later passes every
    delay seconds measured from the previous pass's scheduled start. The
    loop lives in its own asyncio task, apart from request handling.
    """

    def __init__(self, manager: PackManager, delay: float) -> None:
        """Initialize cleaner.

        Args:
            manager: Pack manager to reconcile.
            delay: Seconds between passes. Must be positive.
        """
        if delay <= 0:
            raise ValueError("Cleaner delay must be positive")
        self.manager = manager
        self.delay = delay
        self.passes = 0
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the cleanup loop on the running event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self._stop_event), name="pack-cleaner")
        logger.info("Pack cleaner started", delay=self.delay)

    async def stop(self) -> None:
        """Prevent further passes and wait for the loop to exit.

        A pass that is already running is allowed to finish.
        """
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Pack cleaner stopped", passes=self.passes)

    async def _loop(self, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time()

        while not stop_event.is_set():
            try:
                await self.manager.reconcile()
            except Exception as e:
                logger.exception("Cleanup pass failed", error=str(e))
            self.passes += 1

            next_run += self.delay
            # Skip missed slots rather than running passes back to back
            while next_run <= loop.time():
                next_run += self.delay

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=next_run - loop.time())
            except asyncio.TimeoutError:
                pass
