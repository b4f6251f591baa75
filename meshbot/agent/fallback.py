"""Completion client used when no skill handles a message.

Providers are tried in order; if none returns usable text the reply comes
from a keyword-templated static response, so callers always get text.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from meshbot.agent.persona import build_system_prompt
from meshbot.config.schema import BotConfig, Config, LLMConfig
from meshbot.memory.models import ConversationTurn, UserProfile
from meshbot.providers.base import LLMProvider
from meshbot.providers.litellm_provider import create_provider

STATIC_FALLBACKS: list[tuple[tuple[str, ...], str]] = [
    ((r"\bfluxo", r"\bcaixa"), "Para fluxo de caixa, posso analisar qualquer período. Qual você precisa?"),
    ((r"\bconcilia[çc][ãa]o",), "Conciliação bancária é algo que faço bastante. Qual banco?"),
    ((r"\brelat[óo]rio",), "Que tipo de relatório você está pensando?"),
    ((r"\bhelp\b",), "Trabalho com análises financeiras, conciliações e relatórios. O que você precisa?"),
    ((r"\bajuda",), "Trabalho com análises financeiras, conciliações e relatórios. O que você precisa?"),
]

DEFAULT_FALLBACK = "Como posso ajudar? Trabalho principalmente com processos financeiros."

HISTORY_TURNS = 3


def static_fallback(text: str) -> str:
    """Pick the static reply for a message."""
    for patterns, reply in STATIC_FALLBACKS:
        if all(re.search(p, text or "", re.IGNORECASE) for p in patterns):
            return reply
    return DEFAULT_FALLBACK


def static_replies() -> set[str]:
    """Every reply static_fallback can return."""
    return {reply for _, reply in STATIC_FALLBACKS} | {DEFAULT_FALLBACK}


@dataclass
class Completion:
    """Fallback reply and where it came from."""
    text: str
    provider: Optional[str] = None

    @property
    def is_static(self) -> bool:
        return self.provider is None


class CompletionClient:
    """
    Ordered provider chain with a static last resort.

    Args:
        providers: (name, provider) pairs in preference order
        bot: Assistant identity for the persona prompt
        llm: Sampling parameters and per-call timeout
    """

    def __init__(
        self,
        providers: list[tuple[str, LLMProvider]],
        bot: Optional[BotConfig] = None,
        llm: Optional[LLMConfig] = None,
    ):
        self.providers = list(providers)
        self.bot = bot or BotConfig()
        self.llm = llm or LLMConfig()

    @classmethod
    def from_config(cls, config: Config) -> "CompletionClient":
        """Build the chain from the configured providers, skipping incomplete ones."""
        providers: list[tuple[str, LLMProvider]] = []
        for name in config.providers.order:
            if not config.providers.is_configured(name):
                logger.info(f"Provider '{name}' not configured, skipping")
                continue
            try:
                provider = create_provider(
                    name, getattr(config.providers, name), timeout=config.llm.timeout_seconds
                )
            except Exception as e:
                logger.warning(f"Provider '{name}' failed to initialize: {e}")
                continue
            providers.append((name, provider))

        if not providers:
            logger.warning("No completion provider configured, only static replies are available")
        return cls(providers, bot=config.bot, llm=config.llm)

    def build_messages(
        self,
        text: str,
        profile: Optional[UserProfile] = None,
        history: Optional[list[ConversationTurn]] = None,
    ) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": build_system_prompt(self.bot, profile)}]
        for turn in (history or [])[-HISTORY_TURNS:]:
            messages.append({"role": "user", "content": turn.user_text})
            messages.append({"role": "assistant", "content": turn.bot_text})
        messages.append({"role": "user", "content": text})
        return messages

    async def complete(
        self,
        text: str,
        profile: Optional[UserProfile] = None,
        history: Optional[list[ConversationTurn]] = None,
    ) -> Completion:
        """
        Get a reply from the first provider that answers.

        Each provider gets one attempt bounded by the configured timeout.
        An error response, empty content or timeout moves on to the next
        provider; when all fail the static template is returned.

        Returns:
            Completion with non-empty text
        """
        messages = self.build_messages(text, profile, history)

        for name, provider in self.providers:
            try:
                response = await asyncio.wait_for(
                    provider.chat(
                        messages,
                        max_tokens=self.llm.max_tokens,
                        temperature=self.llm.temperature,
                    ),
                    timeout=self.llm.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Provider '{name}' timed out after {self.llm.timeout_seconds}s")
                continue
            except Exception as e:
                logger.warning(f"Provider '{name}' raised: {e}")
                continue

            if response.is_error:
                logger.warning(f"Provider '{name}' failed: {response.content}")
                continue

            content = (response.content or "").strip()
            if not content:
                logger.warning(f"Provider '{name}' returned an empty reply")
                continue

            logger.debug(f"Completion served by '{name}'")
            return Completion(text=content, provider=name)

        logger.warning("All completion providers failed, using static reply")
        return Completion(text=static_fallback(text))
