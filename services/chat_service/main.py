"""
Chat Service -- HTTP surface over the LLM orchestrator.

Endpoints:
1. POST   /api/chat     -- one-shot JSON response, or SSE when stream=true
2. GET    /api/chat     -- usage description
3. GET    /api/metrics  -- usage counters plus hit rate and average cost
4. DELETE /api/metrics  -- reset the counters
5. GET    /health, GET /metrics (Prometheus)

Wire encoding lives here; the orchestrator only sees LLMRequest objects.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from shared.llm_adapter import (
    ErrorKind,
    LLMError,
    LLMRequest,
    Orchestrator,
    build_orchestrator,
)
from shared.logging.logger import setup_logging
from shared.observability.metrics import metrics_response
from services.chat_service.config import ChatConfig

SERVICE_NAME = "chat_service"
orchestrator: Orchestrator | None = None
cfg: ChatConfig | None = None

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NO_ADAPTER: 503,
    ErrorKind.TRANSPORT: 502,
    ErrorKind.TIMEOUT: 504,
}


@asynccontextmanager
async def lifespan(application: FastAPI):
    global orchestrator, cfg
    cfg = ChatConfig.from_env()
    logger = setup_logging(SERVICE_NAME, cfg.log_level)

    orchestrator = build_orchestrator(cfg.llm)
    await orchestrator.start()
    logger.info("Chat Service ready (providers=%s)", orchestrator.providers)
    yield

    logger.info("Shutting down")
    if orchestrator:
        await orchestrator.aclose()


app = FastAPI(
    title="LLM Orchestrator - Chat Service",
    version="0.1.0",
    description="Cached, retrying, multi-provider LLM chat API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger(SERVICE_NAME)


class ChatRequest(LLMRequest):
    provider: str | None = None


def _error_response(exc: LLMError) -> JSONResponse:
    return JSONResponse(
        content={"error": str(exc), "kind": exc.kind.value},
        status_code=_STATUS_BY_KIND.get(exc.kind, 500),
    )


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "providers": orchestrator.providers if orchestrator else [],
    }


@app.get("/metrics")
async def metrics():
    return metrics_response()


@app.post("/api/chat")
async def chat(body: ChatRequest):
    if not body.messages:
        return JSONResponse(content={"error": "Messages are required"}, status_code=400)

    request = LLMRequest.model_validate(body.model_dump(exclude={"provider"}))

    if request.stream:
        return StreamingResponse(
            _sse(request, body.provider),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    try:
        response = await orchestrator.send_request(
            request, body.provider, timeout=cfg.request_deadline if cfg else None
        )
    except LLMError as exc:
        return _error_response(exc)
    except Exception as exc:
        logger.exception("Chat API error")
        return JSONResponse(content={"error": str(exc)}, status_code=500)

    return JSONResponse(content=response.model_dump(mode="json"))


async def _sse(request: LLMRequest, provider: str | None) -> AsyncIterator[str]:
    try:
        async with aclosing(orchestrator.stream_request(request, provider)) as chunks:
            async for chunk in chunks:
                yield f"data: {chunk.model_dump_json()}\n\n"
                if chunk.done:
                    return
    except LLMError as exc:
        logger.error("Stream error: %s", exc)
        yield f"data: {json.dumps({'error': str(exc), 'kind': exc.kind.value})}\n\n"


@app.get("/api/chat")
async def chat_usage():
    return {
        "message": "Chat API - Use POST to send messages",
        "endpoints": {
            "POST": "/api/chat",
            "body": {
                "messages": [{"role": "user", "content": "Your message"}],
                "model": "gpt-4-turbo-preview (optional)",
                "max_tokens": "4096 (optional)",
                "temperature": "0.7 (optional)",
                "stream": "false (optional)",
                "provider": "openai | anthropic | mock (optional)",
            },
        },
    }


@app.get("/api/metrics")
async def get_metrics():
    snapshot = orchestrator.get_metrics()
    data = snapshot.model_dump()
    data["cache_hit_rate"] = f"{snapshot.cache_hit_rate:.2f}%"
    data["average_cost"] = f"{snapshot.average_cost:.6f}"
    return {"success": True, "data": data}


@app.delete("/api/metrics")
async def reset_metrics():
    orchestrator.reset_metrics()
    return {"success": True, "message": "Metrics reset successfully"}
