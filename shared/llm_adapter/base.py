"""Abstract base class that all LLM providers must implement."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from shared.llm_adapter.models import LLMRequest, LLMResponse, Message, StreamChunk
from shared.llm_adapter.utils import count_tokens, validate_request

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    """
    Contract for LLM providers.

    Every implementation MUST:
    - Reject invalid requests with ValidationError before touching the network
    - Raise TransportError for network/upstream failures
    - Return a fully populated LLMResponse including token counts
    - Terminate every completed stream with exactly one done=True chunk and
      close its upstream connection when the generator is closed early
    """

    name: str = "base"
    default_model: str = ""

    def validate(self, request: LLMRequest) -> bool:
        valid, error = validate_request(request)
        if not valid:
            logger.error(
                "Invalid %s request: %s",
                self.name,
                error,
                extra={"_extra": {"provider": self.name, "error": error}},
            )
        return valid

    def count_tokens(self, text: str) -> int:
        return count_tokens(text)

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a request and return the model's full response."""

    @abstractmethod
    def stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        """Yield content fragments, then a single terminal chunk."""

    async def generate_text(self, prompt: str, **kwargs) -> LLMResponse:
        """Convenience wrapper: accepts a plain string prompt."""
        request = LLMRequest(messages=[Message(role="user", content=prompt)], **kwargs)
        return await self.generate(request)

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
