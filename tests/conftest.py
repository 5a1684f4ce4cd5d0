"""Shared fixtures and fake providers for the orchestrator tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from shared.llm_adapter.errors import TransportError
from shared.llm_adapter.mock_provider import MockProvider
from shared.llm_adapter.models import (
    LLMRequest,
    LLMResponse,
    Message,
    ProviderName,
    StreamChunk,
    TokenUsage,
)
from shared.llm_adapter.orchestrator import Orchestrator


def make_request(content: str = "Hello", **kwargs) -> LLMRequest:
    return LLMRequest(messages=[Message(role="user", content=content)], **kwargs)


class FlakyProvider(MockProvider):
    """Fails the first ``failures`` generate() calls (every call when -1)."""

    def __init__(self, provider_name: str = "mock", failures: int = -1) -> None:
        super().__init__(provider_name)
        self.failures = failures
        self.attempts = 0

    async def generate(self, request: LLMRequest) -> LLMResponse:
        self.attempts += 1
        if self.failures < 0 or self.attempts <= self.failures:
            raise TransportError("upstream unavailable", provider=self.name)
        return await super().generate(request)


class EchoProvider(MockProvider):
    """Echoes the last message back, optionally with extra markup appended."""

    def __init__(self, provider_name: str = "mock", suffix: str = "") -> None:
        super().__init__(provider_name)
        self.suffix = suffix

    async def generate(self, request: LLMRequest) -> LLMResponse:
        self.call_count += 1
        self.requests.append(request)
        return LLMResponse(
            content=request.messages[-1].content + self.suffix,
            model=request.model or self.default_model,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            provider=ProviderName.MOCK,
        )


class SlowProvider(MockProvider):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay
        self.started = asyncio.Event()

    async def generate(self, request: LLMRequest) -> LLMResponse:
        self.started.set()
        await asyncio.sleep(self.delay)
        return await super().generate(request)


class ScriptedStreamProvider(MockProvider):
    """Streams fixed fragments; can fail after ``fail_after`` of them."""

    def __init__(self, fragments: list[str], fail_after: int | None = None) -> None:
        super().__init__()
        self.fragments = fragments
        self.fail_after = fail_after
        self.closed = False
        self.emitted = 0

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        self.stream_count += 1
        try:
            for fragment in self.fragments:
                if self.fail_after is not None and self.emitted >= self.fail_after:
                    raise TransportError("connection reset", provider=self.name)
                self.emitted += 1
                yield StreamChunk(content=fragment, done=False)
            yield StreamChunk(content="", done=True)
        finally:
            self.closed = True


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def orchestrator(mock_provider: MockProvider) -> Orchestrator:
    orch = Orchestrator(enable_caching=True, cache_ttl=3600, retry_base_delay=0)
    orch.register("mock", mock_provider)
    return orch
