"""Claim matching against a local Ollama server (the default backend).

Article text and source claims stay on the machine running the case.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from dossier.cognition.llm_base import (
    LLMClient,
    LLMError,
    LLMProvider,
    LLMResponse,
    LLMUnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_MODELS: dict[str, str] = {
    "fast": "llama3.2:3b",
    "balanced": "mistral:7b",
    "powerful": "deepseek-r1:14b",
}


def _chat_payload(
    model: str,
    prompt: str,
    system: str | None,
    max_tokens: int,
    temperature: float,
    stop_sequences: list[str] | None,
) -> dict[str, Any]:
    messages = [{"role": "user", "content": prompt}]
    if system:
        messages.insert(0, {"role": "system", "content": system})
    options: dict[str, Any] = {"num_predict": max_tokens, "temperature": temperature}
    if stop_sequences:
        options["stop"] = stop_sequences
    return {"model": model, "messages": messages, "stream": False, "options": options}


class OllamaClient(LLMClient):
    """Talks to ``/api/chat`` on ``host``; ``models`` maps tiers to pulled models."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        models: dict[str, str] | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._host = host.rstrip("/")
        self._models = models or dict(DEFAULT_OLLAMA_MODELS)
        self._timeout = timeout

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.OLLAMA

    def _resolve_model(self, tier: str) -> str:
        if tier in self._models:
            return self._models[tier]
        return self._models.get("balanced", DEFAULT_OLLAMA_MODELS["balanced"])

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        model = payload.get("model", "?")
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(f"{self._host}{endpoint}", json=payload)
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMUnavailableError(f"Cannot connect to Ollama at {self._host}: {e}") from e
        except httpx.TimeoutException as e:
            raise LLMUnavailableError(f"No answer from Ollama within {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                raise LLMUnavailableError(f"{model} is not pulled; run: ollama pull {model}") from e
            raise LLMError(f"Ollama returned HTTP {status} for {model}") from e
        try:
            return resp.json()
        except ValueError as e:
            raise LLMError(f"Ollama sent a non-JSON body for {model}") from e

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
        payload = _chat_payload(model, prompt, system, max_tokens, temperature, stop_sequences)
        data = await self._post("/api/chat", payload)
        message = data.get("message") or {}
        return LLMResponse(
            text=message.get("content", ""),
            model=model,
            provider=LLMProvider.OLLAMA,
            input_tokens=data.get("prompt_eval_count", 0),
            output_tokens=data.get("eval_count", 0),
            stop_reason=data.get("done_reason"),
            metadata={"total_duration_ns": data.get("total_duration", 0)},
        )

    async def health_check(self) -> bool:
        """Up only when the server answers ``/api/tags`` with at least one model."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self._host}/api/tags")
        except httpx.HTTPError as e:
            logger.debug("Ollama unreachable at %s: %s", self._host, e)
            return False
        if resp.status_code != 200:
            return False
        if resp.json().get("models"):
            return True
        logger.warning("Ollama at %s has no models pulled; claim matching cannot run", self._host)
        return False
