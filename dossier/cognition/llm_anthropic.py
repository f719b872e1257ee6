"""Claim matching through the Anthropic Messages API.

Used when ``LLM_PROVIDER=anthropic`` or as the fallback behind Ollama.
Cited article sentences and source claims leave the machine, which
matters for cases under embargo.
"""

from __future__ import annotations

import logging
from typing import Any

from anthropic import APIConnectionError, APIStatusError, APITimeoutError, AsyncAnthropic, RateLimitError

from dossier.cognition.llm_base import (
    LLMClient,
    LLMError,
    LLMProvider,
    LLMResponse,
    LLMUnavailableError,
)
from dossier.config.settings import settings

logger = logging.getLogger(__name__)

# Transient: let FallbackLLMClient move on.
_UNAVAILABLE = (APIConnectionError, APITimeoutError, RateLimitError)


def _reply_text(content: list[Any]) -> str:
    return "".join(getattr(block, "text", "") for block in content)


class AnthropicClient(LLMClient):
    """Routes tiers to model IDs from ``models`` or ``settings.MODEL_ROUTING``."""

    def __init__(self, api_key: str, models: dict[str, str] | None = None) -> None:
        if not api_key:
            raise LLMError(
                "ANTHROPIC_API_KEY is not set; set it or use LLM_PROVIDER=ollama"
            )
        self._client = AsyncAnthropic(api_key=api_key)
        self._models = models or dict(settings.MODEL_ROUTING)

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.ANTHROPIC

    def _resolve_model(self, tier: str) -> str:
        return self._models.get(tier) or self._models["balanced"]

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        stop_sequences: list[str] | None = None,
        tier: str = "balanced",
    ) -> LLMResponse:
        model = self._resolve_model(tier)
        request = {
            "model": model,
            "max_tokens": max_tokens,
            "system": system or "",
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "stop_sequences": stop_sequences or [],
        }
        try:
            message = await self._client.messages.create(**request)
        except _UNAVAILABLE as e:
            raise LLMUnavailableError(f"Anthropic unreachable for {model}: {e}") from e
        except APIStatusError as e:
            raise LLMError(f"Anthropic rejected the {model} request: {e}") from e

        return LLMResponse(
            text=_reply_text(message.content),
            model=model,
            provider=LLMProvider.ANTHROPIC,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            stop_reason=message.stop_reason,
        )
