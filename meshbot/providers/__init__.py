"""LLM provider abstraction module."""

from meshbot.providers.base import LLMProvider, LLMResponse
from meshbot.providers.litellm_provider import LiteLLMProvider, create_provider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider", "create_provider"]
