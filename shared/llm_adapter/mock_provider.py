"""
Deterministic mock LLM provider for testing and development.

Always returns the same output for the same prompt hash,
making the entire pipeline reproducible without network calls.
"""

from __future__ import annotations

import hashlib
from collections import deque
from collections.abc import AsyncIterator

from shared.llm_adapter.base import LLMProvider
from shared.llm_adapter.errors import ValidationError
from shared.llm_adapter.models import (
    LLMRequest,
    LLMResponse,
    ProviderName,
    StreamChunk,
    TokenUsage,
)

_MOCK_PREFIX = "[MOCK] "
MOCK_MODEL = "mock-deterministic"
REQUEST_LOG_SIZE = 100


class MockProvider(LLMProvider):

    def __init__(
        self,
        provider_name: str = ProviderName.MOCK.value,
        default_model: str = MOCK_MODEL,
    ) -> None:
        self.name = provider_name
        self.default_model = default_model
        self.call_count = 0
        self.stream_count = 0
        # most recent requests only
        self.requests: deque[LLMRequest] = deque(maxlen=REQUEST_LOG_SIZE)

    def _render(self, request: LLMRequest) -> tuple[str, str]:
        prompt = "\n".join(f"{m.role}: {m.content}" for m in request.messages)
        prompt_hash = hashlib.sha256(prompt.encode()).hexdigest()
        content = (
            f"{_MOCK_PREFIX}Deterministic response for prompt hash "
            f"{prompt_hash[:12]}."
        )
        return prompt, content

    async def generate(self, request: LLMRequest) -> LLMResponse:
        if not self.validate(request):
            raise ValidationError("Invalid request structure", provider=self.name)

        self.call_count += 1
        self.requests.append(request)
        prompt, content = self._render(request)

        prompt_tokens = self.count_tokens(prompt)
        completion_tokens = self.count_tokens(content)

        return LLMResponse(
            content=content,
            model=request.model or self.default_model,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            provider=_provider_enum(self.name),
        )

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        if not self.validate(request):
            raise ValidationError("Invalid request structure", provider=self.name)

        self.stream_count += 1
        self.requests.append(request)
        _, content = self._render(request)
        for word in content.split(" "):
            yield StreamChunk(content=word + " ", done=False)
        yield StreamChunk(content="", done=True)


def _provider_enum(name: str) -> ProviderName:
    try:
        return ProviderName(name)
    except ValueError:
        return ProviderName.MOCK
