"""
Request orchestrator -- the single entry point callers use to talk to LLMs.

send_request() pipeline:
  sanitize -> cache lookup -> adapter.generate with retry
  -> (single fallback hop to another provider) -> sanitize output
  -> cache write -> usage metrics

stream_request() shares sanitization and adapter selection but never touches
the cache and never retries: a partially delivered stream cannot be replayed
without duplicating content the consumer already has.

Fallback only happens when the caller named a provider_hint. Requests without
a hint fail after retries even if other providers are registered.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing

from pydantic import ValidationError as PydanticValidationError

from shared.llm_adapter.base import LLMProvider
from shared.llm_adapter.cache import DEFAULT_TTL_SECONDS, CacheStore
from shared.llm_adapter.errors import (
    DeadlineExceeded,
    LLMError,
    NoAdapterAvailable,
    TransportError,
    ValidationError,
)
from shared.llm_adapter.models import (
    LLMRequest,
    LLMResponse,
    Message,
    StreamChunk,
    UsageMetrics,
)
from shared.llm_adapter.usage import UsageAccumulator
from shared.llm_adapter.utils import (
    DEFAULT_MAX_INPUT_LENGTH,
    make_cache_key,
    sanitize_input,
    sanitize_output,
)
from shared.observability.metrics import (
    llm_errors,
    llm_fallbacks,
    llm_request_latency,
    llm_requests,
    llm_retries,
    llm_tokens,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_FALLBACK_MODEL = "gpt-3.5-turbo"


class Orchestrator:
    """
    Owns the end-to-end lifecycle of every LLM request.

    Build one per process (see factory.build_orchestrator), call start()
    before serving and aclose() on shutdown.
    """

    def __init__(
        self,
        cache: CacheStore | None = None,
        *,
        enable_caching: bool = False,
        cache_ttl: int = DEFAULT_TTL_SECONDS,
        fallback_model: str = DEFAULT_FALLBACK_MODEL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        max_input_length: int = DEFAULT_MAX_INPUT_LENGTH,
    ) -> None:
        self._adapters: dict[str, LLMProvider] = {}
        self._cache = cache if cache is not None else CacheStore(default_ttl=cache_ttl)
        self._enable_caching = enable_caching
        self._cache_ttl = cache_ttl
        self._fallback_model = fallback_model
        self._max_retries = max(1, max_retries)
        self._retry_base_delay = retry_base_delay
        self._max_input_length = max_input_length
        self._usage = UsageAccumulator()

    # ------------------------------------------------------------------
    # Lifecycle / registry
    # ------------------------------------------------------------------

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def providers(self) -> list[str]:
        return list(self._adapters)

    def register(self, name: str, adapter: LLMProvider) -> None:
        self._adapters[name] = adapter
        logger.info("Registered LLM provider %s (model=%s)", name, adapter.default_model)

    async def start(self) -> None:
        await self._cache.connect()
        if not self._adapters:
            logger.warning("No AI adapters available - check API key configuration")

    async def aclose(self) -> None:
        for name, adapter in self._adapters.items():
            try:
                await adapter.aclose()
            except Exception:
                logger.exception("Error closing provider %s", name)
        await self._cache.aclose()

    def get_adapter(self, provider_hint: str | None = None) -> LLMProvider:
        if provider_hint and provider_hint in self._adapters:
            return self._adapters[provider_hint]
        if not self._adapters:
            raise NoAdapterAvailable("No AI adapters available")
        return next(iter(self._adapters.values()))

    def _fallback_for(self, provider: str) -> str | None:
        for name in self._adapters:
            if name != provider:
                return name
        return None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _sanitize_request(self, request: LLMRequest) -> LLMRequest:
        return request.model_copy(
            update={
                "messages": [
                    Message(
                        role=m.role,
                        content=sanitize_input(m.content, self._max_input_length),
                    )
                    for m in request.messages
                ]
            }
        )

    async def send_request(
        self,
        request: LLMRequest,
        provider_hint: str | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        """
        Send a request through cache, retry and fallback.

        ``timeout`` bounds the whole call, every retry and the fallback hop
        included. Cancelling the calling task aborts the in-flight provider
        call and skips the cache write.
        """
        request_id = str(uuid.uuid4())
        start = time.perf_counter()
        try:
            if timeout is None:
                return await self._send(
                    request, provider_hint, request_id, start, True
                )
            try:
                return await asyncio.wait_for(
                    self._send(request, provider_hint, request_id, start, True), timeout
                )
            except asyncio.TimeoutError as exc:
                raise DeadlineExceeded(
                    f"Request {request_id} exceeded its {timeout}s deadline"
                ) from exc
        except LLMError as exc:
            llm_errors.labels(kind=exc.kind.value).inc()
            logger.error(
                "LLM error",
                extra={
                    "_extra": {
                        "request_id": request_id,
                        "model": request.model,
                        "error": str(exc),
                        "kind": exc.kind.value,
                        "type": "ai_error",
                    }
                },
            )
            raise

    async def _send(
        self,
        request: LLMRequest,
        provider_hint: str | None,
        request_id: str,
        start: float,
        allow_fallback: bool,
    ) -> LLMResponse:
        sanitized = self._sanitize_request(request)

        cache_key = None
        if self._enable_caching and not request.stream:
            cache_key = make_cache_key(sanitized)
            cached = await self._lookup(cache_key)
            if cached is not None:
                self._record(cached, start, request_id, cached=True)
                return cached

        adapter = self.get_adapter(provider_hint)
        model = sanitized.model or adapter.default_model
        logger.info(
            "LLM request",
            extra={
                "_extra": {
                    "request_id": request_id,
                    "provider": adapter.name,
                    "model": model,
                    "token_count": adapter.count_tokens(
                        " ".join(m.content for m in sanitized.messages)
                    ),
                    "type": "ai_request",
                }
            },
        )

        try:
            response = await self._generate_with_retry(adapter, sanitized)
        except TransportError as exc:
            fallback = self._fallback_for(adapter.name)
            if not (allow_fallback and provider_hint and fallback):
                raise
            logger.warning(
                "Attempting fallback model %s on %s after %s failed: %s",
                self._fallback_model,
                fallback,
                adapter.name,
                exc,
                extra={"_extra": {"request_id": request_id}},
            )
            llm_fallbacks.labels(from_provider=adapter.name, to_provider=fallback).inc()
            return await self._send(
                sanitized.model_copy(update={"model": self._fallback_model}),
                fallback,
                request_id,
                start,
                False,
            )

        response = response.model_copy(
            update={"content": sanitize_output(response.content), "cached": False}
        )

        if cache_key is not None:
            await self._cache.set(cache_key, response.model_dump_json(), self._cache_ttl)

        self._record(response, start, request_id, cached=False)
        return response

    async def _lookup(self, cache_key: str) -> LLMResponse | None:
        raw = await self._cache.get(cache_key)
        if raw is None:
            return None
        try:
            response = LLMResponse.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning("Cache parse error for key %s: %s", cache_key[:24], exc)
            return None
        return response.model_copy(update={"cached": True})

    async def _generate_with_retry(
        self, adapter: LLMProvider, request: LLMRequest
    ) -> LLMResponse:
        if not adapter.validate(request):
            raise ValidationError("Invalid request structure", provider=adapter.name)

        last_error: TransportError | None = None
        for attempt in range(self._max_retries):
            try:
                return await adapter.generate(request)
            except TransportError as exc:
                last_error = exc
                logger.warning(
                    "Retry attempt %d/%d for %s: %s",
                    attempt + 1,
                    self._max_retries,
                    adapter.name,
                    exc,
                )
                if attempt < self._max_retries - 1:
                    llm_retries.labels(provider=adapter.name).inc()
                    await asyncio.sleep(self._retry_base_delay * 2**attempt)

        # max_retries >= 1, so at least one attempt failed here
        raise last_error

    def _record(
        self, response: LLMResponse, start: float, request_id: str, cached: bool
    ) -> None:
        elapsed = time.perf_counter() - start
        latency_ms = elapsed * 1000
        self._usage.record(response, latency_ms, cached)

        provider = response.provider.value
        llm_requests.labels(provider=provider, cached=str(cached).lower()).inc()
        llm_tokens.labels(provider=provider, direction="prompt").inc(
            response.usage.prompt_tokens
        )
        llm_tokens.labels(provider=provider, direction="completion").inc(
            response.usage.completion_tokens
        )
        llm_request_latency.labels(provider=provider).observe(elapsed)

        logger.info(
            "LLM response",
            extra={
                "_extra": {
                    "request_id": request_id,
                    "model": response.model,
                    "latency_ms": round(latency_ms, 1),
                    "cached": cached,
                    "type": "ai_response",
                }
            },
        )

    async def stream_request(
        self,
        request: LLMRequest,
        provider_hint: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Forward chunks from the selected provider.

        Closing this generator (``aclose()`` or abandoning an ``async for``
        inside ``aclosing``) closes the provider stream and its connection.
        """
        request_id = str(uuid.uuid4())
        sanitized = self._sanitize_request(request).model_copy(update={"stream": True})
        chunks_sent = 0
        try:
            adapter = self.get_adapter(provider_hint)
            if not adapter.validate(sanitized):
                raise ValidationError("Invalid request structure", provider=adapter.name)

            logger.info(
                "LLM request",
                extra={
                    "_extra": {
                        "request_id": request_id,
                        "provider": adapter.name,
                        "model": sanitized.model or adapter.default_model,
                        "token_count": adapter.count_tokens(
                            " ".join(m.content for m in sanitized.messages)
                        ),
                        "stream": True,
                        "type": "ai_request",
                    }
                },
            )

            async with aclosing(adapter.stream(sanitized)) as chunks:
                async for chunk in chunks:
                    chunks_sent += 1
                    logger.debug(
                        "Stream chunk %d for %s (done=%s)",
                        chunks_sent,
                        request_id[:8],
                        chunk.done,
                    )
                    yield chunk
        except LLMError as exc:
            llm_errors.labels(kind=exc.kind.value).inc()
            logger.error(
                "LLM error",
                extra={
                    "_extra": {
                        "request_id": request_id,
                        "model": request.model,
                        "error": str(exc),
                        "kind": exc.kind.value,
                        "chunks_sent": chunks_sent,
                        "type": "ai_error",
                    }
                },
            )
            raise

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> UsageMetrics:
        return self._usage.snapshot()

    def reset_metrics(self) -> None:
        self._usage.reset()
