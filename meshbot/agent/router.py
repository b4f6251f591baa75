"""Message routing: greeting, skills, then the completion fallback."""

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from meshbot.agent.fallback import CompletionClient
from meshbot.config.schema import BotConfig
from meshbot.memory.learning import LearningManager
from meshbot.memory.store import MemoryStore
from meshbot.memory.topics import extract_topic
from meshbot.skills.base import SkillContext
from meshbot.skills.registry import SkillRegistry
from meshbot.utils.logging import short_id

ERROR_MESSAGE = "Tive um problema técnico. Pode tentar novamente?"
TIMEOUT_MESSAGE = "Desculpe, a resposta demorou mais do que o esperado. Pode tentar novamente?"

CONTEXT_TURNS = 5


@dataclass
class RouterResponse:
    """Reply to one inbound message."""
    text: str
    source: str  # "greeting", "skill", "llm", "static", "timeout", "error"
    skill_name: Optional[str] = None
    provider: Optional[str] = None


class MessageRouter:
    """
    Routes each inbound message to a reply.

    Empty text gets the greeting without touching skills, the completion
    client or memory. Otherwise registered skills are tried in order and
    the completion client answers when none succeeds. Every non-empty
    exchange is saved as a turn.
    """

    def __init__(
        self,
        registry: SkillRegistry,
        completion: CompletionClient,
        store: MemoryStore,
        learning: Optional[LearningManager] = None,
        bot: Optional[BotConfig] = None,
        request_timeout: float = 25.0,
    ):
        """
        Initialize the router.

        Args:
            registry: Skills in dispatch order
            completion: Fallback completion client
            store: Conversation memory
            learning: Learning event recorder (events are skipped if None)
            bot: Assistant identity (greeting)
            request_timeout: Seconds allowed for routing one message
        """
        self.registry = registry
        self.completion = completion
        self.store = store
        self.learning = learning
        self.bot = bot or BotConfig()
        self.request_timeout = request_timeout

    async def handle_message(self, user_id: str, text: str, channel_id: str = "default") -> RouterResponse:
        """
        Produce the reply for one message.

        Never raises for routing failures: timeouts and unexpected errors
        become a polite apology.

        Args:
            user_id: Opaque user identifier
            text: Raw message text
            channel_id: Channel the message came from

        Returns:
            RouterResponse with non-empty text
        """
        if not text or not text.strip():
            return RouterResponse(text=self.bot.greeting, source="greeting")

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._route(user_id, text, channel_id),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Request from {short_id(user_id)} timed out after {self.request_timeout}s")
            response = RouterResponse(text=TIMEOUT_MESSAGE, source="timeout")
        except Exception as e:
            logger.error(f"Error handling message from {short_id(user_id)}: {e}")
            response = RouterResponse(text=ERROR_MESSAGE, source="error")

        elapsed_ms = int((time.monotonic() - started) * 1000)
        self.store.save_turn(
            user_id,
            text,
            response.text,
            {
                "channel": channel_id,
                "source": response.source,
                "skill": response.skill_name,
                "provider": response.provider,
                "processing_time_ms": elapsed_ms,
            },
        )
        return response

    async def _route(self, user_id: str, text: str, channel_id: str) -> RouterResponse:
        context = SkillContext(
            user_id=user_id,
            channel=channel_id,
            profile=self.store.get_profile(user_id),
            history=self.store.get_history(user_id, CONTEXT_TURNS),
        )
        topic = extract_topic(text)

        outcome = await self.registry.dispatch(text, context)
        for name in outcome.failed_skills:
            self._record(user_id, "record_skill_usage", name, False)

        # One interaction outcome per message
        if outcome.handled:
            self._record(user_id, "record_interaction", True, skill=outcome.skill_name, topic=topic, source="skill")
            return RouterResponse(text=outcome.result.text, source="skill", skill_name=outcome.skill_name)

        completion = await self.completion.complete(text, context.profile, context.history)
        self._record(user_id, "record_interaction", not completion.is_static, topic=topic, source="fallback")
        return RouterResponse(
            text=completion.text,
            source="static" if completion.is_static else "llm",
            provider=completion.provider,
        )

    def _record(self, user_id: str, method: str, *args, **kwargs) -> None:
        if self.learning is None:
            return
        try:
            getattr(self.learning, method)(user_id, *args, **kwargs)
        except Exception as e:
            logger.error(f"Failed to record learning event for {short_id(user_id)}: {e}")
