"""Periodic memory cleanup."""

import asyncio
from typing import Optional

from loguru import logger

from meshbot.memory.store import MemoryStore


class CleanupProcessor:
    """
    Removes old turns and learning events on a fixed interval.

    Runs independently of request handling; a failed cycle is logged and
    retried on the next tick.
    """

    def __init__(self, memory_store: MemoryStore, interval_seconds: Optional[int] = None):
        """
        Initialize the cleanup processor.

        Args:
            memory_store: Store to clean
            interval_seconds: Seconds between cycles (default from memory config)
        """
        self.memory_store = memory_store
        self.interval_seconds = interval_seconds or memory_store.config.cleanup_interval_seconds

        self.running = False
        self._task: Optional[asyncio.Task] = None

        logger.info(f"CleanupProcessor initialized (interval: {self.interval_seconds}s)")

    async def start(self):
        """Start the cleanup loop."""
        if self._task and not self._task.done():
            return
        self.running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Cleanup processor started")

    async def stop(self):
        """Stop the cleanup loop gracefully."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cleanup processor stopped")

    async def _loop(self):
        while self.running:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Memory cleanup error: {e}")

    def run_once(self) -> dict[str, int]:
        """Run a single cleanup cycle."""
        return self.memory_store.cleanup()
