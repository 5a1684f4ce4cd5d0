"""
Anthropic (Claude) provider over the Messages HTTP API.

System messages are lifted into the top-level ``system`` field; the rest of
the conversation keeps its order. Streaming reads the server-sent event
stream and forwards ``text_delta`` fragments.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from shared.llm_adapter.base import LLMProvider
from shared.llm_adapter.errors import TransportError, ValidationError
from shared.llm_adapter.models import (
    LLMRequest,
    LLMResponse,
    Message,
    ProviderName,
    Role,
    StreamChunk,
    TokenUsage,
)
from shared.llm_adapter.utils import DEFAULT_TEMPERATURE

logger = logging.getLogger(__name__)

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
_DEFAULT_MODEL = "claude-3-5-sonnet-20241022"
_DEFAULT_MAX_TOKENS = 8192
_CLIENT_FAULT_STATUSES = {400, 422}


def _wrap_error(exc: httpx.HTTPError) -> Exception:
    if (
        isinstance(exc, httpx.HTTPStatusError)
        and exc.response.status_code in _CLIENT_FAULT_STATUSES
    ):
        return ValidationError(f"Anthropic rejected request: {exc}", provider="anthropic")
    return TransportError(f"Anthropic request failed: {exc}", provider="anthropic")


def convert_messages(messages: list[Message]) -> tuple[str | None, list[dict[str, str]]]:
    """Split a conversation into Anthropic's ``system`` and ``messages`` fields."""
    system_parts = [m.content for m in messages if m.role == Role.SYSTEM.value]
    conversation = [
        {
            "role": "assistant" if m.role == Role.ASSISTANT.value else "user",
            "content": m.content,
        }
        for m in messages
        if m.role != Role.SYSTEM.value
    ]
    return ("\n\n".join(system_parts) or None), conversation


class AnthropicProvider(LLMProvider):
    """Claude Messages API adapter."""

    name = ProviderName.ANTHROPIC.value

    def __init__(
        self,
        api_key: str,
        default_model: str = _DEFAULT_MODEL,
        max_tokens: int = _DEFAULT_MAX_TOKENS,
        base_url: str = ANTHROPIC_BASE_URL,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Anthropic API key is not configured")

        self.default_model = default_model
        self._max_tokens = max_tokens
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def _payload(self, request: LLMRequest, stream: bool) -> dict[str, Any]:
        system, messages = convert_messages(request.messages)
        payload: dict[str, Any] = {
            "model": request.model or self.default_model,
            "messages": messages,
            "max_tokens": request.max_tokens or self._max_tokens,
            "temperature": (
                DEFAULT_TEMPERATURE if request.temperature is None else request.temperature
            ),
        }
        if system:
            payload["system"] = system
        if stream:
            payload["stream"] = True
        return payload

    async def generate(self, request: LLMRequest) -> LLMResponse:
        if not self.validate(request):
            raise ValidationError("Invalid request structure", provider=self.name)

        payload = self._payload(request, stream=False)
        start = time.monotonic()
        try:
            resp = await self._client.post("/messages", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.error("Anthropic request failed (model=%s): %s", payload["model"], exc)
            raise _wrap_error(exc) from exc
        except ValueError as exc:
            raise TransportError(
                f"Anthropic returned invalid JSON: {exc}", provider=self.name
            ) from exc

        content = "\n".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        prompt_tokens = int(usage.get("input_tokens", 0))
        completion_tokens = int(usage.get("output_tokens", 0))

        response = LLMResponse(
            content=content,
            model=data.get("model", payload["model"]),
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            provider=ProviderName.ANTHROPIC,
        )

        logger.info(
            "Anthropic request completed",
            extra={
                "_extra": {
                    "model": payload["model"],
                    "latency_ms": round((time.monotonic() - start) * 1000, 1),
                    "tokens": response.usage.total_tokens,
                }
            },
        )
        return response

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        if not self.validate(request):
            raise ValidationError("Invalid request structure", provider=self.name)

        payload = self._payload(request, stream=True)
        try:
            async with self._client.stream("POST", "/messages", json=payload) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    try:
                        event = json.loads(line[len("data:"):].strip())
                    except ValueError:
                        logger.warning("Skipping malformed Anthropic stream event")
                        continue

                    event_type = event.get("type")
                    if event_type == "content_block_delta":
                        delta = event.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield StreamChunk(content=delta["text"], done=False)
                    elif event_type == "error":
                        message = (event.get("error") or {}).get("message", "unknown error")
                        raise TransportError(
                            f"Anthropic stream error: {message}", provider=self.name
                        )
                    elif event_type == "message_stop":
                        break
        except httpx.HTTPError as exc:
            logger.error("Anthropic stream failed (model=%s): %s", payload["model"], exc)
            raise _wrap_error(exc) from exc

        yield StreamChunk(content="", done=True)
        logger.info("Anthropic stream completed", extra={"_extra": {"model": payload["model"]}})

    async def aclose(self) -> None:
        await self._client.aclose()
