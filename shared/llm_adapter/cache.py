"""
Response cache for the orchestrator.

Two tiers:
- LRUCache: in-process, bounded, recency-ordered; always present
- RedisCache: shared across processes and restarts; used when REDIS_URL is set

CacheStore composes them. Redis is preferred; any Redis failure falls back
to the local tier and is logged, never raised. Cache trouble must not fail
a request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from shared.llm_adapter.errors import CacheUnavailable
from shared.observability.metrics import llm_cache_events

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_ENTRIES = 1000

_REDIS_FAILURES = (RedisError, OSError, asyncio.TimeoutError)


@dataclass
class CacheEntry:
    value: str
    expires_at: float


class LRUCache:
    """asyncio-safe bounded TTL cache; least recently used entry goes first."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if time.monotonic() >= entry.expires_at:
                del self._store[key]
                return None
            self._store.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        async with self._lock:
            if key in self._store:
                del self._store[key]
            elif len(self._store) >= self._max_entries:
                evicted, _ = self._store.popitem(last=False)
                logger.debug("LRU cache evicted key %s", evicted[:24])
            self._store[key] = CacheEntry(value=value, expires_at=time.monotonic() + ttl)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()


class RedisCache:
    """Thin wrapper over redis.asyncio that reports failures as CacheUnavailable."""

    def __init__(
        self,
        redis_url: str,
        password: str | None = None,
        client: aioredis.Redis | None = None,
    ) -> None:
        self._redis = client or aioredis.from_url(
            redis_url, password=password or None, decode_responses=True
        )

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except _REDIS_FAILURES as exc:
            raise CacheUnavailable(f"Redis ping failed: {exc}") from exc

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(key)
        except _REDIS_FAILURES as exc:
            raise CacheUnavailable(f"Redis get failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl)
        except _REDIS_FAILURES as exc:
            raise CacheUnavailable(f"Redis set failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except _REDIS_FAILURES as exc:
            raise CacheUnavailable(f"Redis delete failed: {exc}") from exc

    async def clear(self) -> None:
        try:
            await self._redis.flushdb()
        except _REDIS_FAILURES as exc:
            raise CacheUnavailable(f"Redis clear failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._redis.aclose()


class CacheStore:
    """Two-tier cache: Redis when configured, local LRU always."""

    def __init__(
        self,
        redis_url: str | None = None,
        redis_password: str | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        redis_client: aioredis.Redis | None = None,
    ) -> None:
        self._default_ttl = default_ttl
        self.local = LRUCache(max_entries=max_entries, default_ttl=default_ttl)
        self._redis: RedisCache | None = None
        if redis_url or redis_client is not None:
            self._redis = RedisCache(
                redis_url or "", password=redis_password, client=redis_client
            )

    @property
    def distributed(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """Check Redis at start-up; an unreachable server leaves only the local tier."""
        if self._redis is None:
            logger.info("Cache running with local LRU tier only")
            return
        try:
            await self._redis.ping()
            logger.info("Redis cache connected")
        except CacheUnavailable as exc:
            logger.warning("Redis initialization failed, using LRU cache: %s", exc)
            await self._drop_redis()

    async def _drop_redis(self) -> None:
        redis_tier, self._redis = self._redis, None
        if redis_tier is None:
            return
        try:
            await redis_tier.aclose()
        except _REDIS_FAILURES as exc:
            logger.warning("Error closing Redis connection: %s", exc)

    async def get(self, key: str) -> str | None:
        value = await self._get(key)
        if value is not None:
            logger.debug("LLM cache HIT for key %s", key[:24])
            llm_cache_events.labels(result="hit").inc()
        else:
            logger.debug("LLM cache MISS for key %s", key[:24])
            llm_cache_events.labels(result="miss").inc()
        return value

    async def _get(self, key: str) -> str | None:
        if self._redis is not None:
            try:
                return await self._redis.get(key)
            except CacheUnavailable as exc:
                logger.warning("Cache get error, trying fallback: %s", exc)
                llm_cache_events.labels(result="error").inc()
        try:
            return await self.local.get(key)
        except Exception:
            logger.exception("Local cache get failed; treating as miss")
            return None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        if self._redis is not None:
            try:
                await self._redis.set(key, value, ttl)
                return
            except CacheUnavailable as exc:
                logger.warning("Cache set error, trying fallback: %s", exc)
                llm_cache_events.labels(result="error").inc()
        try:
            await self.local.set(key, value, ttl)
        except Exception:
            logger.exception("Local cache set failed; skipping cache write")

    async def delete(self, key: str) -> None:
        if self._redis is not None:
            try:
                await self._redis.delete(key)
            except CacheUnavailable as exc:
                logger.warning("Cache delete error: %s", exc)
        await self.local.delete(key)

    async def clear(self) -> None:
        if self._redis is not None:
            try:
                await self._redis.clear()
            except CacheUnavailable as exc:
                logger.warning("Cache clear error: %s", exc)
        await self.local.clear()

    async def aclose(self) -> None:
        await self._drop_redis()
