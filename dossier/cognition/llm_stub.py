"""Stub LLM client: deterministic responses for testing.

Final fallback when neither Ollama nor Anthropic is reachable. Without
scripted responses it answers claim-matching prompts with an
UNVERIFIED verdict, so an article is never passed on the stub's say-so.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from dossier.cognition.llm_base import LLMClient, LLMProvider, LLMResponse

logger = logging.getLogger(__name__)

_DEFAULT_VERDICT = json.dumps({
    "match": None,
    "confidence": 0.0,
    "status": "UNVERIFIED",
    "reason": "Stub LLM cannot verify claims",
})


class StubClient(LLMClient):
    """Deterministic stub client.

    Parameters
    ----------
    responses:
        Scripted responses returned in order; once exhausted the
        default response is used.
    default_response:
        Text returned when no scripted response is left.
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        default_response: str = _DEFAULT_VERDICT,
    ) -> None:
        self._responses = list(responses or [])
        self._default_response = default_response
        self._call_log: list[dict[str, Any]] = []

    @property
    def provider(self) -> LLMProvider:
        return LLMProvider.STUB

    @property
    def call_log(self) -> list[dict[str, Any]]:
        """Access recorded calls for test assertions."""
        return self._call_log

    def reset(self) -> None:
        self._call_log.clear()

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
        self._call_log.append({
            "method": "complete",
            "prompt": prompt,
            "system": system,
            "tier": tier,
            "max_tokens": max_tokens,
        })
        text = self._responses.pop(0) if self._responses else self._default_response
        return LLMResponse(
            text=text,
            model=f"stub/{tier}",
            provider=LLMProvider.STUB,
            input_tokens=len(prompt) // 4,
            output_tokens=len(text) // 4,
            stop_reason="end_turn",
        )

    async def health_check(self) -> bool:
        """Stub is always healthy."""
        return True
