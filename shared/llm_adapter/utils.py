"""
Request helpers shared by every provider and the orchestrator.

Token counts here are an approximation (about four characters per token)
used for budgeting and logging, never for billing.
"""

from __future__ import annotations

import hashlib
import json
import math
import re

from shared.llm_adapter.models import LLMRequest, Role

MAX_TOKENS_LIMIT = 128000
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_INPUT_LENGTH = 10000
CACHE_KEY_PREFIX = "llm_cache:"

_VALID_ROLES = {role.value for role in Role}

_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_SCRIPT_BLOCK_RE = re.compile(
    r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE
)
# Unbalanced leftovers such as "<script src=x>" with no closing tag.
_SCRIPT_TAG_RE = re.compile(r"</?script\b[^>]*>?", re.IGNORECASE)


def count_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def truncate_to_token_limit(text: str, max_tokens: int) -> str:
    """Shorten ``text`` so its estimated token count fits ``max_tokens``."""
    estimated = count_tokens(text)
    if estimated <= max_tokens:
        return text

    ratio = max_tokens / estimated
    target_length = math.floor(len(text) * ratio * 0.95)
    return text[:target_length] + "..."


def validate_request(request: LLMRequest) -> tuple[bool, str | None]:
    """Structural check of a request. Returns ``(valid, error_message)``."""
    if not request.messages:
        return False, "Messages array is required and cannot be empty"

    for msg in request.messages:
        if msg.role not in _VALID_ROLES:
            return False, f"Invalid message role: {msg.role}"
        if not isinstance(msg.content, str) or not msg.content:
            return False, "Message content must be a non-empty string"

    if request.max_tokens is not None and not (
        1 <= request.max_tokens <= MAX_TOKENS_LIMIT
    ):
        return False, f"Max tokens must be between 1 and {MAX_TOKENS_LIMIT}"

    return True, None


def make_cache_key(request: LLMRequest) -> str:
    """
    Fingerprint of the fields that determine a response.

    Message content is trimmed so requests differing only in surrounding
    whitespace share a key; a missing temperature counts as the default.
    """
    normalized = {
        "messages": [
            {"role": m.role, "content": m.content.strip()} for m in request.messages
        ],
        "model": request.model,
        "temperature": (
            DEFAULT_TEMPERATURE if request.temperature is None else request.temperature
        ),
        "max_tokens": request.max_tokens,
    }
    raw = json.dumps(normalized, sort_keys=True)
    return f"{CACHE_KEY_PREFIX}{hashlib.sha256(raw.encode()).hexdigest()}"


def _strip_markup(text: str, comments: bool) -> str:
    # Removing one match can splice its neighbours into a new tag, so repeat
    # until nothing changes.
    while True:
        stripped = _HTML_COMMENT_RE.sub("", text) if comments else text
        stripped = _SCRIPT_BLOCK_RE.sub("", stripped)
        stripped = _SCRIPT_TAG_RE.sub("", stripped)
        if stripped == text:
            return text
        text = stripped


def sanitize_input(text: str, max_length: int = DEFAULT_MAX_INPUT_LENGTH) -> str:
    """Drop HTML comments and script markup from user input and cap its length."""
    sanitized = _strip_markup(text, comments=True).strip()
    if len(sanitized) > max_length:
        # a cut can leave a tag prefix such as "<script" behind
        sanitized = _strip_markup(sanitized[:max_length], comments=True)
    return sanitized


def sanitize_output(text: str) -> str:
    return _strip_markup(text, comments=False).strip()


def create_prompt_template(template: str, variables: dict[str, str]) -> str:
    """Fill ``{{name}}`` placeholders in ``template``."""
    result = template
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", value)
    return result
