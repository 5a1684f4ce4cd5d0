"""
Error taxonomy for the LLM adapter layer.

Every error carries an ErrorKind so callers (the HTTP layer, mostly) can
branch on the category without isinstance chains:

  validation         malformed request, never retried, client fault
  transport          upstream/network failure, retried then surfaced
  no_adapter         no provider configured
  timeout            caller deadline expired (covers all retries)
  cache_unavailable  internal only, absorbed by the cache store
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    TRANSPORT = "transport"
    NO_ADAPTER = "no_adapter"
    TIMEOUT = "timeout"
    CACHE_UNAVAILABLE = "cache_unavailable"


class LLMError(Exception):
    """Base class for every error raised by the adapter layer."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class ValidationError(LLMError):
    kind = ErrorKind.VALIDATION


class TransportError(LLMError):
    kind = ErrorKind.TRANSPORT


class NoAdapterAvailable(LLMError):
    kind = ErrorKind.NO_ADAPTER


class DeadlineExceeded(LLMError):
    kind = ErrorKind.TIMEOUT


class CacheUnavailable(LLMError):
    kind = ErrorKind.CACHE_UNAVAILABLE
