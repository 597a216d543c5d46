from __future__ import annotations

import asyncio

import pytest

from serp_entities.errors import ErrorCategory, ExtractionError
from serp_entities.research_core.extract.service import ExtractService
from serp_entities.research_core.scrape.service import (
    PageFetcher,
    looks_javascript_rendered,
    looks_like_redirect,
)

ARTICLE = " ".join(
    ["Online English lessons help students practice grammar and speaking every day."] * 8
)
GOOD_HTML = (
    "<html><head><title>English lessons</title></head><body><nav>Home About</nav>"
    f"<main><h1>English lessons online</h1><p>{ARTICLE}</p></main></body></html>"
)
SPA_HTML = (
    "<html><head><title>App</title></head><body><div id=\"root\"></div>"
    f"<script>window.__INITIAL_STATE__ = {{\"padding\": \"{'x' * 600}\"}};</script></body></html>"
)
REDIRECT_HTML = (
    "<html><head><meta http-equiv=\"refresh\" content=\"0; url=/new\"></head><body>"
    f"<p>Redirecting</p><style>/* {'x' * 600} */</style></body></html>"
)


def _fetcher(request_fn, delays: list[float], **kwargs) -> PageFetcher:
    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    return PageFetcher(
        extractor=ExtractService(max_elements=0),
        request_fn=request_fn,
        sleep=fake_sleep,
        extract_in_thread=False,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fetch_and_extract_returns_page_text():
    delays: list[float] = []

    async def ok(url, _timeout):
        return GOOD_HTML, url, 200, "text/html; charset=utf-8"

    page = await _fetcher(ok, delays).fetch_and_extract("https://example.com/lessons")

    assert page.url == "https://example.com/lessons"
    assert page.title == "English lessons online"
    assert "practice grammar" in page.text
    assert page.error is None
    assert delays == []


@pytest.mark.asyncio
async def test_fetch_retries_with_exponential_backoff_then_succeeds():
    attempts: list[str] = []
    delays: list[float] = []

    async def flaky(url, _timeout):
        attempts.append(url)
        if len(attempts) < 3:
            raise RuntimeError("connection reset")
        return GOOD_HTML, url, 200, "text/html"

    page = await _fetcher(flaky, delays).fetch_and_extract("https://example.com/flaky")

    assert len(attempts) == 3
    assert delays == [2.0, 4.0]
    assert "practice grammar" in page.text


@pytest.mark.asyncio
async def test_not_found_fails_after_all_attempts():
    attempts: list[str] = []
    delays: list[float] = []

    async def missing(url, _timeout):
        attempts.append(url)
        return "<html>not found</html>", url, 404, "text/html"

    with pytest.raises(ExtractionError) as exc_info:
        await _fetcher(missing, delays).fetch_and_extract("https://example.com/missing")

    assert len(attempts) == 3
    assert delays == [2.0, 4.0]
    assert "404" in str(exc_info.value)
    assert exc_info.value.url == "https://example.com/missing"


@pytest.mark.asyncio
async def test_slow_request_is_cancelled_and_reported_as_timeout():
    delays: list[float] = []

    async def slow(url, _timeout):
        await asyncio.sleep(5)
        return GOOD_HTML, url, 200, "text/html"

    fetcher = _fetcher(slow, delays, timeout_seconds=0.05, max_attempts=2)
    with pytest.raises(ExtractionError) as exc_info:
        await fetcher.fetch_and_extract("https://example.com/slow")

    assert exc_info.value.category is ErrorCategory.TIMEOUT
    assert "timed out" in str(exc_info.value)
    assert delays == [2.0]


@pytest.mark.asyncio
async def test_non_html_and_tiny_bodies_fail_validation():
    delays: list[float] = []

    async def json_body(url, _timeout):
        return GOOD_HTML, url, 200, "application/json"

    with pytest.raises(ExtractionError, match="content-type"):
        await _fetcher(json_body, delays, max_attempts=1).fetch_and_extract("https://example.com/api")

    async def tiny(url, _timeout):
        return "<html><body>hi</body></html>", url, 200, "text/html"

    with pytest.raises(ExtractionError, match="too short"):
        await _fetcher(tiny, delays, max_attempts=1).fetch_and_extract("https://example.com/tiny")


@pytest.mark.asyncio
async def test_javascript_rendered_page_fails_without_retrying():
    attempts: list[str] = []
    delays: list[float] = []

    async def spa(url, _timeout):
        attempts.append(url)
        return SPA_HTML, url, 200, "text/html"

    with pytest.raises(ExtractionError, match="JavaScript"):
        await _fetcher(spa, delays).fetch_and_extract("https://example.com/app")

    assert len(attempts) == 1
    assert delays == []


@pytest.mark.asyncio
async def test_client_side_redirect_is_reported():
    async def redirect(url, _timeout):
        return REDIRECT_HTML, url, 200, "text/html"

    with pytest.raises(ExtractionError, match="redirect"):
        await _fetcher(redirect, []).fetch_and_extract("https://example.com/old")


def test_marker_detection():
    assert looks_javascript_rendered(SPA_HTML)
    assert not looks_javascript_rendered(GOOD_HTML)
    assert looks_like_redirect(REDIRECT_HTML)
    assert not looks_like_redirect(GOOD_HTML)
