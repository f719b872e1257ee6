"""Model clients used by claim matching.

``verify_article`` hands a PENDING item's prompt (one article sentence
plus the candidate source claims) to a client and expects a short JSON
verdict back. Every backend therefore implements one call, ``complete``;
``FallbackLLMClient`` in ``llm_factory`` chains them.
"""

from __future__ import annotations

import abc
import enum
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class LLMProvider(str, enum.Enum):
    OLLAMA = "ollama"
    ANTHROPIC = "anthropic"
    STUB = "stub"


@dataclass
class LLMResponse:
    """A verdict as returned by a backend, plus token accounting."""

    text: str
    model: str
    provider: LLMProvider
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class LLMError(Exception):
    """The backend answered, but not usefully. The item becomes UNVERIFIED."""


class LLMUnavailableError(LLMError):
    """The backend could not be reached; the next client in the chain is tried."""


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class LLMClient(abc.ABC):

    @property
    @abc.abstractmethod
    def provider(self) -> LLMProvider:
        ...

    @abc.abstractmethod
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
        """Answer one matching prompt.

        ``tier`` is ``fast``, ``balanced`` or ``powerful``; each backend maps
        it to one of its own models. Claim matching asks for ``fast`` at
        temperature 0.
        """

    async def health_check(self) -> bool:
        """Whether a trivial prompt gets any answer at all."""
        try:
            reply = await self.complete("Reply with OK.", max_tokens=10, temperature=0.0, tier="fast")
        except LLMError as e:
            logger.debug("%s health check failed: %s", self.provider.value, e)
            return False
        return bool(reply.text.strip())


def strip_code_fence(text: str) -> str:
    """Unwrap a verdict that came back inside a markdown ``` block."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    inner = text.split("\n", 1)[-1]
    return inner.rsplit("```", 1)[0].strip()
