"""Process-wide usage counters for the orchestrator."""

from __future__ import annotations

import threading

from shared.llm_adapter.models import LLMResponse, UsageMetrics
from shared.llm_adapter.pricing import estimate_cost


class UsageAccumulator:
    """
    Running totals over completed requests.

    All reads and writes go through one lock so a snapshot never mixes
    counters from before and after a concurrent record() or reset().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics = UsageMetrics()

    def record(self, response: LLMResponse, latency_ms: float, cached: bool) -> None:
        cost = estimate_cost(
            response.provider.value,
            response.model,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
        )
        with self._lock:
            m = self._metrics
            m.total_requests += 1
            m.total_tokens += response.usage.total_tokens
            if cached:
                m.cache_hits += 1
            else:
                m.cache_misses += 1
            n = m.total_requests
            m.average_latency = (m.average_latency * (n - 1) + latency_ms) / n
            m.total_cost += cost

    def snapshot(self) -> UsageMetrics:
        with self._lock:
            return self._metrics.model_copy()

    def reset(self) -> None:
        with self._lock:
            self._metrics = UsageMetrics()
