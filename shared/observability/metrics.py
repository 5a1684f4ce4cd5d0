from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from fastapi import Response


llm_requests = Counter(
    "llm_requests_total",
    "Completed LLM requests",
    ["provider", "cached"],
)

llm_tokens = Counter(
    "llm_tokens_total",
    "Total LLM tokens consumed",
    ["provider", "direction"],
)

llm_request_latency = Histogram(
    "llm_request_latency_seconds",
    "End-to-end latency of orchestrated LLM requests",
    ["provider"],
    buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

llm_retries = Counter(
    "llm_retries_total",
    "Retry attempts after a transport failure",
    ["provider"],
)

llm_fallbacks = Counter(
    "llm_fallbacks_total",
    "Requests re-issued against an alternate provider",
    ["from_provider", "to_provider"],
)

llm_cache_events = Counter(
    "llm_cache_events_total",
    "Response cache lookups and degradations",
    ["result"],
)

llm_errors = Counter(
    "llm_errors_total",
    "Errors surfaced to callers",
    ["kind"],
)


def metrics_response() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
