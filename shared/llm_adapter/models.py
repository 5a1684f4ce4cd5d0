"""Data models for the LLM adapter layer."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ProviderName(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    MOCK = "mock"


class Message(BaseModel):
    # Kept as a plain string so malformed roles reach validate() instead of
    # failing at parse time.
    role: str
    content: str


class LLMRequest(BaseModel):
    messages: list[Message] = Field(default_factory=list)
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    stream: bool = False


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    provider: ProviderName
    cached: bool = False


class StreamChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str = ""
    done: bool = False


class UsageMetrics(BaseModel):
    """Point-in-time copy of the orchestrator's counters."""

    total_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0
    average_latency: float = 0.0  # milliseconds

    @property
    def cache_hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.cache_hits / self.total_requests * 100

    @property
    def average_cost(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_cost / self.total_requests
