"""LLM client factory with cascading provider fallback.

Reads ``LLM_PROVIDER`` and builds the requested client. With
``LLM_FALLBACK_ENABLED`` (default) failures cascade through

    Ollama → Anthropic → Stub

so claim verification always completes; the stub never verifies a
claim, it only marks it UNVERIFIED.
"""

from __future__ import annotations

import logging
from typing import Any

from dossier.cognition.llm_anthropic import AnthropicClient
from dossier.cognition.llm_base import (
    LLMClient,
    LLMError,
    LLMProvider,
    LLMResponse,
    LLMUnavailableError,
)
from dossier.cognition.llm_ollama import OllamaClient
from dossier.cognition.llm_stub import StubClient
from dossier.config.settings import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fallback wrapper
# ---------------------------------------------------------------------------


class FallbackLLMClient(LLMClient):
    """Primary client with automatic fallback to a chain of backups.

    When a client raises ``LLMUnavailableError`` the next one in the chain
    is tried. Callers see a single ``LLMClient``.
    """

    def __init__(self, clients: list[LLMClient]) -> None:
        if not clients:
            raise ValueError("At least one LLM client required")
        self._clients = clients
        self._active_index = 0

    @property
    def provider(self) -> LLMProvider:
        return self._clients[self._active_index].provider

    @property
    def active_client(self) -> LLMClient:
        return self._clients[self._active_index]

    async def complete(self, prompt: str, **kwargs: Any) -> LLMResponse:
        last_error: LLMError | None = None
        for i, client in enumerate(self._clients):
            try:
                result = await client.complete(prompt, **kwargs)
            except LLMUnavailableError as e:
                logger.warning(
                    "LLM provider %s unavailable: %s; trying next",
                    client.provider.value,
                    e,
                )
                last_error = e
                continue
            if i != self._active_index:
                logger.info(
                    "LLM fallback: %s → %s",
                    self._clients[self._active_index].provider.value,
                    client.provider.value,
                )
                self._active_index = i
            return result
        raise last_error or LLMUnavailableError("All LLM providers failed")

    async def health_check(self) -> bool:
        for client in self._clients:
            if await client.health_check():
                return True
        return False

    async def provider_status(self) -> dict[str, bool]:
        return {c.provider.value: await c.health_check() for c in self._clients}


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def _build_ollama_client() -> OllamaClient:
    return OllamaClient(
        host=settings.OLLAMA_HOST,
        models=dict(settings.OLLAMA_MODELS),
        timeout=settings.OLLAMA_TIMEOUT,
    )


def _build_anthropic_client() -> AnthropicClient | None:
    if not settings.ANTHROPIC_API_KEY:
        logger.debug("No ANTHROPIC_API_KEY; Anthropic client not available")
        return None
    return AnthropicClient(
        api_key=settings.ANTHROPIC_API_KEY,
        models=dict(settings.MODEL_ROUTING),
    )


def create_llm_client(provider: str | None = None) -> LLMClient:
    """Create the configured client, wrapped in a fallback chain.

    Parameters
    ----------
    provider:
        Explicit provider name (``"ollama"``, ``"anthropic"``, ``"stub"``).
        Overrides ``settings.LLM_PROVIDER`` when given.
    """
    provider_enum = LLMProvider(provider or settings.LLM_PROVIDER)

    primary: LLMClient | None
    if provider_enum == LLMProvider.OLLAMA:
        primary = _build_ollama_client()
    elif provider_enum == LLMProvider.ANTHROPIC:
        primary = _build_anthropic_client()
    else:
        primary = StubClient()

    if primary is None:
        logger.warning("Requested LLM provider %s not available", provider_enum.value)
        primary = StubClient()

    if not settings.LLM_FALLBACK_ENABLED or primary.provider == LLMProvider.STUB:
        logger.info("LLM provider: %s (no fallback)", primary.provider.value)
        return primary

    chain: list[LLMClient] = [primary]
    if primary.provider == LLMProvider.OLLAMA:
        anthropic = _build_anthropic_client()
        if anthropic:
            chain.append(anthropic)
    else:
        chain.append(_build_ollama_client())
    chain.append(StubClient())

    logger.info("LLM provider chain: %s", " → ".join(c.provider.value for c in chain))
    return FallbackLLMClient(chain)
