from __future__ import annotations

from typing import Any, Optional

import httpx

from serp_entities.config import settings
from serp_entities.errors import ProviderOverloadedError, SearchProviderError
from serp_entities.models.schemas import SearchResult

OVERLOAD_MARKERS = ("overloaded", "перегружен")


def _error_message(error: Any) -> str:
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        return str(error.get("message") or "Unknown error")
    return "Unknown error"


def parse_results(payload: dict) -> list[SearchResult]:
    """Convert the XMLStock ``results`` map (keyed by position) into results."""
    raw_results = payload.get("results")
    if not isinstance(raw_results, dict):
        raise SearchProviderError("No results found in XMLStock response")

    results: list[SearchResult] = []
    for key, item in raw_results.items():
        if not isinstance(item, dict) or not item.get("url") or not item.get("title"):
            continue
        try:
            position = int(key)
        except (TypeError, ValueError):
            continue
        results.append(
            SearchResult(
                position=position,
                title=str(item["title"]),
                url=str(item["url"]),
                snippet=str(item["passage"]) if item.get("passage") else None,
            )
        )
    return results


class XmlStockSearchProvider:
    """Google organic results through the XMLStock JSON API."""

    name = "xmlstock"

    def __init__(
        self,
        *,
        user: Optional[str] = None,
        key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        num_results: Optional[int] = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.user = settings.xmlstock_user if user is None else user
        self.key = settings.xmlstock_key if key is None else key
        self.base_url = base_url or settings.xmlstock_base_url
        self.timeout_seconds = timeout_seconds or settings.search_timeout_seconds
        self.num_results = num_results or settings.search_max_results
        self._http_client = http_client

    async def search(
        self,
        query: str,
        *,
        country: str,
        lang: str,
        device: str,
        extra_params: Optional[dict[str, str]] = None,
    ) -> list[SearchResult]:
        if not self.user or not self.key:
            raise SearchProviderError("XMLStock credentials not configured")

        params = {
            "user": self.user,
            "key": self.key,
            "query": query,
            "country": country,
            "lang": lang,
            "device": device,
            "num": str(self.num_results),
        }
        for name, value in (extra_params or {}).items():
            if value:
                params[name] = value

        if self._http_client is None:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                payload = await self._request(client, params)
        else:
            payload = await self._request(self._http_client, params)

        if payload.get("error"):
            message = _error_message(payload["error"])
            if any(marker in message.lower() for marker in OVERLOAD_MARKERS):
                raise ProviderOverloadedError(f"XMLStock API error: {message}")
            raise SearchProviderError(f"XMLStock API error: {message}")

        return parse_results(payload)

    async def _request(self, client: httpx.AsyncClient, params: dict[str, str]) -> dict:
        response = await client.get(
            self.base_url,
            params=params,
            headers={
                "Accept": "application/json",
                "User-Agent": "Mozilla/5.0 (compatible; EntityAnalyzer/1.0)",
            },
            timeout=self.timeout_seconds,
        )
        if response.status_code >= 400:
            raise SearchProviderError(f"XMLStock API error: HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SearchProviderError("XMLStock returned a non-JSON response") from exc
        return payload if isinstance(payload, dict) else {}
