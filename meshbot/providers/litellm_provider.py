"""LiteLLM provider implementation for Azure OpenAI and OpenAI."""

from typing import Any

import litellm
from litellm import acompletion

from meshbot.config.schema import ProviderConfig
from meshbot.providers.base import LLMProvider, LLMResponse


class LiteLLMProvider(LLMProvider):
    """
    LLM provider using LiteLLM.

    Azure deployments are addressed as "azure/<deployment>" with the
    resource endpoint as api_base; OpenAI models are passed through.
    """

    def __init__(
        self,
        provider_name: str,
        api_key: str | None = None,
        api_base: str | None = None,
        api_version: str | None = None,
        default_model: str = "gpt-4o-mini",
        extra_headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ):
        super().__init__(api_key, api_base)
        self.provider_name = provider_name
        self.api_version = api_version
        self.default_model = default_model
        self.extra_headers = extra_headers or {}
        self.timeout = timeout

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True
        # Drop unsupported parameters for providers
        litellm.drop_params = True

    def _resolve_model(self, model: str) -> str:
        if self.provider_name == "azure" and not model.startswith("azure/"):
            return f"azure/{model}"
        return model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 800,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        Send a chat completion request via LiteLLM.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model or deployment name.
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.

        Returns:
            LLMResponse; errors come back with finish_reason "error".
        """
        kwargs: dict[str, Any] = {
            "model": self._resolve_model(model or self.default_model),
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_version:
            kwargs["api_version"] = self.api_version
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers
        if self.timeout:
            kwargs["timeout"] = self.timeout

        try:
            response = await acompletion(**kwargs)
            return self._parse_response(response)
        except Exception as e:
            # Return error as content for graceful handling
            return LLMResponse(
                content=f"Error calling LLM: {str(e)}",
                finish_reason="error",
            )

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]

        usage = {}
        if hasattr(response, "usage") and response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        return self.default_model


def create_provider(name: str, config: ProviderConfig, timeout: float | None = None) -> LiteLLMProvider:
    """Build a provider from its config section."""
    return LiteLLMProvider(
        provider_name=name,
        api_key=config.api_key or None,
        api_base=config.api_base,
        api_version=config.api_version,
        default_model=config.model,
        extra_headers=config.extra_headers,
        timeout=timeout,
    )
