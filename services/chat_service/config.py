from __future__ import annotations

import os
from dataclasses import dataclass

from shared.llm_adapter.config import LLMConfig


@dataclass(frozen=True)
class ChatConfig:
    log_level: str
    request_deadline: float | None
    llm: LLMConfig

    @classmethod
    def from_env(cls) -> ChatConfig:
        deadline = os.environ.get("CHAT_REQUEST_DEADLINE", "").strip()
        return cls(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            request_deadline=float(deadline) if deadline else None,
            llm=LLMConfig.from_env(),
        )
