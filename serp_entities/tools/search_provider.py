from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from loguru import logger

from serp_entities.config import settings
from serp_entities.errors import (
    ErrorCategory,
    ProviderOverloadedError,
    SearchProviderError,
)
from serp_entities.models.interfaces import SearchProvider
from serp_entities.models.schemas import SearchParams, SearchResult
from serp_entities.services.logger import log_provider_call
from serp_entities.tools.search_fixtures import fixture_results

MAX_RESULTS = 10

TRACKING_PARAMS = frozenset({"fbclid", "gclid", "msclkid", "ref", "source"})
OVERLOAD_MARKERS = ("overloaded", "перегружен")

_DISALLOWED_CHARS_RE = re.compile(r"[^a-zA-Zа-яА-ЯёЁ0-9\s\-.,!?():«»\"'“”]")


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    fallback_reason: str | None = None


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered.startswith("utm_") or lowered in TRACKING_PARAMS


def normalize_url(url: str) -> str:
    """Strip tracking query parameters; unparsable URLs pass through unchanged."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not _is_tracking_param(k)]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def clean_text(text: str) -> str:
    text = _DISALLOWED_CHARS_RE.sub("", text or "")
    return re.sub(r"\s+", " ", text).strip()


def normalize_results(results: list[SearchResult]) -> list[SearchResult]:
    cleaned: list[SearchResult] = []
    for result in results:
        if not result.url or not result.title:
            continue
        cleaned.append(
            SearchResult(
                position=result.position,
                title=clean_text(result.title),
                url=normalize_url(result.url),
                snippet=clean_text(result.snippet) if result.snippet else None,
            )
        )
    cleaned.sort(key=lambda r: r.position)
    return cleaned[:MAX_RESULTS]


def _is_overload(exc: BaseException) -> bool:
    if isinstance(exc, ProviderOverloadedError):
        return True
    lowered = str(exc).lower()
    return any(marker in lowered for marker in OVERLOAD_MARKERS)


async def search(
    params: SearchParams,
    *,
    provider: SearchProvider,
    fixture_fallback: bool | None = None,
) -> SearchResponse:
    """Fetch up to ten ranked organic results for ``params``.

    Raises ``SearchProviderError`` when nothing usable comes back. If the
    provider reports that it is overloaded and the fixture fallback is on,
    a built-in result set is served instead.
    """
    use_fixtures = settings.search_fixture_fallback if fixture_fallback is None else fixture_fallback
    started = time.monotonic()

    try:
        raw_results = await provider.search(
            params.query,
            country=params.country,
            lang=params.lang,
            device=params.device,
            extra_params=params.extra_params(),
        )
    except Exception as exc:
        duration_ms = int((time.monotonic() - started) * 1000)
        log_provider_call(provider.name, "search", duration_ms, "failed", error=str(exc))

        if _is_overload(exc):
            if use_fixtures:
                logger.warning(f"Search provider {provider.name} is overloaded, serving fixture results")
                return SearchResponse(
                    results=fixture_results(params.query),
                    provider="fixtures",
                    fallback_reason=str(exc),
                )
            if isinstance(exc, SearchProviderError):
                raise
            raise SearchProviderError(f"Search provider is overloaded: {exc}") from exc

        if isinstance(exc, SearchProviderError):
            raise
        if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
            raise SearchProviderError(
                "Search provider timed out, try again later",
                category=ErrorCategory.TIMEOUT,
            ) from exc
        raise SearchProviderError(f"Search provider failed: {exc}") from exc

    log_provider_call(provider.name, "search", int((time.monotonic() - started) * 1000))

    results = normalize_results(raw_results)
    if not results:
        raise SearchProviderError(f"No valid organic results found for '{params.query}'")
    return SearchResponse(results=results, provider=provider.name)
