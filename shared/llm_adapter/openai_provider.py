"""
OpenAI Chat Completions provider.

Works with any API that speaks the OpenAI Chat Completions protocol; point
base_url at a compatible server to use it with something other than OpenAI.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator

import httpx
import openai
from openai import AsyncOpenAI

from shared.llm_adapter.base import LLMProvider
from shared.llm_adapter.errors import TransportError, ValidationError
from shared.llm_adapter.models import (
    LLMRequest,
    LLMResponse,
    ProviderName,
    StreamChunk,
    TokenUsage,
)
from shared.llm_adapter.utils import DEFAULT_TEMPERATURE

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "gpt-4-turbo-preview"
_DEFAULT_MAX_TOKENS = 4096

# 400/422 mean the upstream rejected the request itself; retrying won't help.
_CLIENT_FAULTS = (openai.BadRequestError, openai.UnprocessableEntityError)


def _wrap_error(exc: Exception) -> Exception:
    if isinstance(exc, _CLIENT_FAULTS):
        return ValidationError(f"OpenAI rejected request: {exc}", provider="openai")
    return TransportError(f"OpenAI request failed: {exc}", provider="openai")


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions adapter."""

    name = ProviderName.OPENAI.value

    def __init__(
        self,
        api_key: str,
        default_model: str = _DEFAULT_MODEL,
        max_tokens: int = _DEFAULT_MAX_TOKENS,
        base_url: str | None = None,
        timeout: float = 120.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OpenAI API key is not configured")

        self.default_model = default_model
        self._max_tokens = max_tokens
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout,
        )

    def _params(self, request: LLMRequest) -> dict:
        return {
            "model": request.model or self.default_model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "max_tokens": request.max_tokens or self._max_tokens,
            "temperature": (
                DEFAULT_TEMPERATURE if request.temperature is None else request.temperature
            ),
        }

    async def generate(self, request: LLMRequest) -> LLMResponse:
        if not self.validate(request):
            raise ValidationError("Invalid request structure", provider=self.name)

        params = self._params(request)
        start = time.monotonic()
        try:
            completion = await self._client.chat.completions.create(
                **params, stream=False
            )
        except (openai.APIError, httpx.HTTPError) as exc:
            logger.error("OpenAI request failed (model=%s): %s", params["model"], exc)
            raise _wrap_error(exc) from exc

        choice = completion.choices[0] if completion.choices else None
        usage = completion.usage
        response = LLMResponse(
            content=(choice.message.content if choice else None) or "",
            model=completion.model,
            usage=TokenUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            provider=ProviderName.OPENAI,
        )

        logger.info(
            "OpenAI request completed",
            extra={
                "_extra": {
                    "model": params["model"],
                    "latency_ms": round((time.monotonic() - start) * 1000, 1),
                    "tokens": response.usage.total_tokens,
                }
            },
        )
        return response

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        if not self.validate(request):
            raise ValidationError("Invalid request structure", provider=self.name)

        params = self._params(request)
        try:
            upstream = await self._client.chat.completions.create(**params, stream=True)
        except (openai.APIError, httpx.HTTPError) as exc:
            logger.error("OpenAI stream failed (model=%s): %s", params["model"], exc)
            raise _wrap_error(exc) from exc

        try:
            async for event in upstream:
                if not event.choices:
                    continue
                content = event.choices[0].delta.content
                if content:
                    yield StreamChunk(content=content, done=False)
        except (openai.APIError, httpx.HTTPError) as exc:
            logger.error("OpenAI stream failed (model=%s): %s", params["model"], exc)
            raise _wrap_error(exc) from exc
        finally:
            await upstream.close()

        yield StreamChunk(content="", done=True)
        logger.info("OpenAI stream completed", extra={"_extra": {"model": params["model"]}})

    async def aclose(self) -> None:
        await self._client.close()
