"""Application wiring and lifecycle.

Everything is built explicitly from a Config and owned by MeshApplication;
there are no module-level singletons.
"""

import asyncio
import signal
from typing import Optional

from loguru import logger

from meshbot.agent.fallback import CompletionClient
from meshbot.agent.router import MessageRouter
from meshbot.config.schema import Config
from meshbot.memory.background import CleanupProcessor
from meshbot.memory.learning import create_learning_manager
from meshbot.memory.store import MemoryStore, create_memory_store
from meshbot.server import MeshServer
from meshbot.skills.registry import SkillRegistry, create_default_registry


class MeshApplication:
    """
    Owns the store, learning manager, router, cleanup task and HTTP server.

    Args:
        config: Root configuration
        store: Memory store (built from config if None)
        registry: Skill registry (built-in skills if None)
        completion: Completion client (built from config if None)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[MemoryStore] = None,
        registry: Optional[SkillRegistry] = None,
        completion: Optional[CompletionClient] = None,
    ):
        self.config = config or Config()
        self.store = store or create_memory_store(self.config.memory)
        self.learning = create_learning_manager(self.store)
        self.registry = registry or create_default_registry()
        self.completion = completion or CompletionClient.from_config(self.config)
        self.router = MessageRouter(
            registry=self.registry,
            completion=self.completion,
            store=self.store,
            learning=self.learning,
            bot=self.config.bot,
            request_timeout=self.config.server.request_timeout_seconds,
        )
        self.cleanup = CleanupProcessor(self.store, self.config.memory.cleanup_interval_seconds)
        self.server = MeshServer(
            router=self.router,
            store=self.store,
            learning=self.learning,
            host=self.config.server.host,
            port=self.config.server.port,
        )
        self._started = False

    async def start(self, serve_http: bool = True) -> None:
        """Start background cleanup and, optionally, the HTTP server."""
        await self.cleanup.start()
        if serve_http:
            await self.server.start()
        self._started = True
        logger.info(f"{self.config.bot.name} started with skills: {', '.join(self.registry.names)}")

    async def stop(self) -> None:
        """Stop the server and cleanup task, flush learning events and close the store."""
        if not self._started:
            return
        self._started = False
        await self.server.stop()
        await self.cleanup.stop()
        try:
            self.learning.process_pending()
        except Exception as e:
            logger.error(f"Failed to flush learning events on shutdown: {e}")
        self.store.close()
        logger.info(f"{self.config.bot.name} stopped")

    async def run_forever(self) -> None:
        """Serve until SIGINT or SIGTERM, then shut down gracefully."""
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Signal handlers are unavailable on some platforms (Windows)
                pass

        await self.start()
        try:
            await stop_event.wait()
            logger.info("Shutdown signal received")
        finally:
            await self.stop()
