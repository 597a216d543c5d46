"""OpenRouter LLM client factory via the OpenAI-compatible SDK."""
from __future__ import annotations

from typing import Any

from serp_entities.config import settings

OPENROUTER_HEADERS = {
    "X-Title": "SERP Entity Analysis",
}


def get_client() -> Any:
    """Create an AsyncOpenAI client pointed at OpenRouter."""
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
        timeout=settings.summary_timeout_seconds,
        default_headers=OPENROUTER_HEADERS,
    )


def get_model() -> str:
    """Get the active OpenRouter model id."""
    return settings.openrouter_model or "anthropic/claude-3.5-sonnet"


_client: Any | None = None


def client() -> Any:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
