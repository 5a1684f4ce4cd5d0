from shared.llm_adapter.base import LLMProvider
from shared.llm_adapter.cache import CacheStore, LRUCache, RedisCache
from shared.llm_adapter.config import LLMConfig
from shared.llm_adapter.errors import (
    CacheUnavailable,
    DeadlineExceeded,
    ErrorKind,
    LLMError,
    NoAdapterAvailable,
    TransportError,
    ValidationError,
)
from shared.llm_adapter.factory import build_orchestrator
from shared.llm_adapter.models import (
    LLMRequest,
    LLMResponse,
    Message,
    ProviderName,
    Role,
    StreamChunk,
    TokenUsage,
    UsageMetrics,
)
from shared.llm_adapter.mock_provider import MockProvider
from shared.llm_adapter.orchestrator import Orchestrator

__all__ = [
    "LLMProvider",
    "LLMRequest",
    "LLMResponse",
    "Message",
    "ProviderName",
    "Role",
    "StreamChunk",
    "TokenUsage",
    "UsageMetrics",
    "CacheStore",
    "LRUCache",
    "RedisCache",
    "LLMConfig",
    "ErrorKind",
    "LLMError",
    "ValidationError",
    "TransportError",
    "NoAdapterAvailable",
    "DeadlineExceeded",
    "CacheUnavailable",
    "MockProvider",
    "Orchestrator",
    "build_orchestrator",
]
