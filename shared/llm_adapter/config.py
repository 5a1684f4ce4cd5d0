from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


@dataclass(frozen=True)
class LLMConfig:
    openai_api_key: str
    openai_base_url: str
    openai_default_model: str
    openai_max_tokens: int
    anthropic_api_key: str
    anthropic_base_url: str
    anthropic_default_model: str
    anthropic_max_tokens: int
    fallback_model: str
    enable_caching: bool
    cache_ttl: int
    cache_max_entries: int
    redis_url: str | None
    redis_password: str | None
    max_retries: int
    retry_base_delay: float
    max_input_length: int
    request_timeout: float
    enable_mock: bool

    @classmethod
    def from_env(cls) -> LLMConfig:
        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            openai_base_url=os.environ.get("OPENAI_BASE_URL", ""),
            openai_default_model=os.environ.get("AI_DEFAULT_MODEL", "gpt-4-turbo-preview"),
            openai_max_tokens=int(os.environ.get("AI_MAX_TOKENS", "4096")),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            anthropic_base_url=os.environ.get(
                "ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1"
            ),
            anthropic_default_model=os.environ.get(
                "ANTHROPIC_DEFAULT_MODEL", "claude-3-5-sonnet-20241022"
            ),
            anthropic_max_tokens=int(os.environ.get("ANTHROPIC_MAX_TOKENS", "8192")),
            fallback_model=os.environ.get("AI_FALLBACK_MODEL", "gpt-3.5-turbo"),
            enable_caching=_flag("AI_ENABLE_CACHING"),
            cache_ttl=int(os.environ.get("AI_CACHE_TTL", "3600")),
            cache_max_entries=int(os.environ.get("AI_CACHE_MAX_ENTRIES", "1000")),
            redis_url=os.environ.get("REDIS_URL") or None,
            redis_password=os.environ.get("REDIS_PASSWORD") or None,
            max_retries=int(os.environ.get("AI_MAX_RETRIES", "3")),
            retry_base_delay=float(os.environ.get("AI_RETRY_BASE_DELAY", "1.0")),
            max_input_length=int(os.environ.get("AI_MAX_INPUT_LENGTH", "10000")),
            request_timeout=float(os.environ.get("LLM_REQUEST_TIMEOUT", "120")),
            enable_mock=_flag("LLM_ENABLE_MOCK"),
        )
