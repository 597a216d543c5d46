from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from serp_entities.errors import ErrorCategory, ProviderOverloadedError, SearchProviderError
from serp_entities.models.schemas import SearchParams, SearchResult
from serp_entities.tools import search_provider
from serp_entities.tools.search_fixtures import fixture_results
from serp_entities.tools.xmlstock_search import XmlStockSearchProvider


class FakeProvider:
    name = "fake"

    def __init__(self, results=None, error: Exception | None = None):
        self.results = results or []
        self.error = error
        self.calls: list[dict] = []

    async def search(self, query, *, country, lang, device, extra_params=None):
        self.calls.append(
            {"query": query, "country": country, "lang": lang, "device": device, "extra": extra_params}
        )
        if self.error is not None:
            raise self.error
        return self.results


def test_normalize_url_strips_tracking_parameters():
    url = "https://example.com/page?id=7&utm_source=google&utm_custom=x&gclid=abc&ref=home#top"
    assert search_provider.normalize_url(url) == "https://example.com/page?id=7#top"


def test_normalize_url_passes_through_unparsable_values():
    assert search_provider.normalize_url("not a url") == "not a url"


def test_clean_text_keeps_latin_cyrillic_and_basic_punctuation():
    assert search_provider.clean_text("Курсы  английского ✔️ — «Skyeng»!") == "Курсы английского «Skyeng»!"


@pytest.mark.asyncio
async def test_search_cleans_sorts_and_caps_results():
    raw = [
        SearchResult(position=p, title=f"Result {p}", url=f"https://site{p}.example/?utm_medium=cpc")
        for p in range(12, 0, -1)
    ] + [SearchResult(position=13, title="", url="https://untitled.example")]
    provider = FakeProvider(results=raw)
    params = SearchParams(query="уроки английского", country="ru", lang="ru", device="mobile", tbm="nws")

    response = await search_provider.search(params, provider=provider, fixture_fallback=False)

    assert response.provider == "fake"
    assert [r.position for r in response.results] == list(range(1, 11))
    assert response.results[0].url == "https://site1.example/"
    assert provider.calls[0]["extra"] == {"tbm": "nws"}
    assert provider.calls[0]["device"] == "mobile"


@pytest.mark.asyncio
async def test_search_without_results_raises():
    with pytest.raises(SearchProviderError):
        await search_provider.search(
            SearchParams(query="nothing"), provider=FakeProvider(results=[]), fixture_fallback=False
        )


@pytest.mark.asyncio
async def test_search_timeout_is_categorized():
    provider = FakeProvider(error=asyncio.TimeoutError())

    with pytest.raises(SearchProviderError) as exc_info:
        await search_provider.search(SearchParams(query="q"), provider=provider, fixture_fallback=False)

    assert exc_info.value.category is ErrorCategory.TIMEOUT
    assert exc_info.value.status_code == 408


@pytest.mark.asyncio
async def test_overloaded_provider_serves_fixtures_when_enabled():
    provider = FakeProvider(error=ProviderOverloadedError("XMLStock API error: service overloaded"))

    response = await search_provider.search(
        SearchParams(query="курсы английского"), provider=provider, fixture_fallback=True
    )

    assert response.provider == "fixtures"
    assert "overloaded" in response.fallback_reason
    assert response.results == fixture_results("курсы английского")
    assert "skillbox" in response.results[0].url


@pytest.mark.asyncio
async def test_overloaded_provider_raises_when_fixtures_disabled():
    provider = FakeProvider(error=RuntimeError("Сервис перегружен"))

    with pytest.raises(SearchProviderError, match="overloaded"):
        await search_provider.search(SearchParams(query="q"), provider=provider, fixture_fallback=False)


@pytest.mark.parametrize(
    "query,expected_host",
    [
        ("best headphones", "example.com"),
        ("купить смартфон", "example.com"),
        ("weather today", "www.google.com"),
    ],
)
def test_fixture_sets_follow_query_intent(query, expected_host):
    results = fixture_results(query)
    assert urlsplit(results[0].url).netloc == expected_host
    assert [r.position for r in results] == list(range(1, len(results) + 1))


def _xmlstock(handler) -> XmlStockSearchProvider:
    return XmlStockSearchProvider(
        user="u1",
        key="k1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_xmlstock_parses_position_keyed_results():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(parse_qs(urlsplit(str(request.url)).query))
        return httpx.Response(
            200,
            json={
                "results": {
                    "2": {"url": "https://b.example", "title": "B", "passage": "second"},
                    "1": {"url": "https://a.example", "title": "A"},
                    "3": {"url": "", "title": "no url"},
                }
            },
        )

    results = await _xmlstock(handler).search(
        "уроки", country="ru", lang="ru", device="desktop", extra_params={"gl": "ru"}
    )

    assert {r.position: r.url for r in results} == {2: "https://b.example", 1: "https://a.example"}
    assert seen["query"] == ["уроки"]
    assert seen["num"] == ["10"]
    assert seen["gl"] == ["ru"]
    assert seen["user"] == ["u1"]


@pytest.mark.asyncio
async def test_xmlstock_maps_overload_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": {"code": 55, "message": "Service overloaded"}})

    with pytest.raises(ProviderOverloadedError):
        await _xmlstock(handler).search("q", country="us", lang="en", device="desktop")


@pytest.mark.asyncio
async def test_xmlstock_maps_api_error_and_missing_results():
    def api_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "Invalid key"})

    with pytest.raises(SearchProviderError, match="Invalid key"):
        await _xmlstock(api_error).search("q", country="us", lang="en", device="desktop")

    def empty(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"query": "q"})

    with pytest.raises(SearchProviderError, match="No results"):
        await _xmlstock(empty).search("q", country="us", lang="en", device="desktop")


@pytest.mark.asyncio
async def test_xmlstock_requires_credentials():
    provider = XmlStockSearchProvider(user="", key="")
    with pytest.raises(SearchProviderError, match="credentials"):
        await provider.search("q", country="us", lang="en", device="desktop")
