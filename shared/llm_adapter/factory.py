"""
Orchestrator wiring -- builds the one Orchestrator a process serves from.

Providers are registered only when their credentials are configured:

  openai      OPENAI_API_KEY (OPENAI_BASE_URL for compatible servers)
  anthropic   ANTHROPIC_API_KEY
  mock        LLM_ENABLE_MOCK=true, deterministic, no network

Registration order decides the default provider for requests without a
hint: openai, then anthropic, then mock. With nothing configured every
request fails with NoAdapterAvailable.
"""

from __future__ import annotations

import logging

from shared.llm_adapter.anthropic_provider import AnthropicProvider
from shared.llm_adapter.cache import CacheStore
from shared.llm_adapter.config import LLMConfig
from shared.llm_adapter.mock_provider import MockProvider
from shared.llm_adapter.models import ProviderName
from shared.llm_adapter.openai_provider import OpenAIProvider
from shared.llm_adapter.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def build_orchestrator(cfg: LLMConfig | None = None) -> Orchestrator:
    """
    Construct an Orchestrator with every provider that has credentials.

    Args:
        cfg: Configuration; read from the environment when omitted.
    """
    cfg = cfg or LLMConfig.from_env()

    cache = CacheStore(
        redis_url=cfg.redis_url,
        redis_password=cfg.redis_password,
        max_entries=cfg.cache_max_entries,
        default_ttl=cfg.cache_ttl,
    )
    orchestrator = Orchestrator(
        cache,
        enable_caching=cfg.enable_caching,
        cache_ttl=cfg.cache_ttl,
        fallback_model=cfg.fallback_model,
        max_retries=cfg.max_retries,
        retry_base_delay=cfg.retry_base_delay,
        max_input_length=cfg.max_input_length,
    )

    if cfg.openai_api_key:
        try:
            orchestrator.register(
                ProviderName.OPENAI.value,
                OpenAIProvider(
                    api_key=cfg.openai_api_key,
                    default_model=cfg.openai_default_model,
                    max_tokens=cfg.openai_max_tokens,
                    base_url=cfg.openai_base_url or None,
                    timeout=cfg.request_timeout,
                ),
            )
        except ValueError as exc:
            logger.warning("OpenAI adapter initialization failed: %s", exc)

    if cfg.anthropic_api_key:
        try:
            orchestrator.register(
                ProviderName.ANTHROPIC.value,
                AnthropicProvider(
                    api_key=cfg.anthropic_api_key,
                    default_model=cfg.anthropic_default_model,
                    max_tokens=cfg.anthropic_max_tokens,
                    base_url=cfg.anthropic_base_url,
                    timeout=cfg.request_timeout,
                ),
            )
        except ValueError as exc:
            logger.warning("Anthropic adapter initialization failed: %s", exc)

    if cfg.enable_mock:
        orchestrator.register(ProviderName.MOCK.value, MockProvider())

    logger.info(
        "LLM orchestrator initialized: providers=%s cached=%s distributed_cache=%s",
        orchestrator.providers or "none",
        cfg.enable_caching,
        cache.distributed,
    )
    return orchestrator
