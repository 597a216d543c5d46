from __future__ import annotations

import asyncio
import re
import time
from typing import Awaitable, Callable, Optional

import httpx
from loguru import logger

from serp_entities.config import settings
from serp_entities.errors import ErrorCategory, ExtractionError
from serp_entities.models.schemas import PageExtract
from serp_entities.research_core.extract.service import ExtractedText, ExtractService

FetchResult = tuple[str, str, int, str]
RequestFn = Callable[[str, float], Awaitable[FetchResult]]
SleepFn = Callable[[float], Awaitable[None]]

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

SPA_PATTERNS = (
    re.compile(r"<div[^>]+id=[\"']?(?:root|app|__next|__nuxt)[\"']?[^>]*>\s*</div>", re.IGNORECASE),
    re.compile(r"window\.__(?:NEXT_DATA|NUXT|VUE|INITIAL_STATE)__"),
    re.compile(r"id=[\"']__NEXT_DATA__[\"']"),
    re.compile(r"data-react-helmet|data-next-head"),
    re.compile(r"<script[^>]+src=[\"'][^\"']*/_next/static", re.IGNORECASE),
)

REDIRECT_PATTERNS = (
    re.compile(r"<meta[^>]+http-equiv=[\"']?refresh", re.IGNORECASE),
    re.compile(r"window\.location\.(?:href|replace)"),
    re.compile(r"\b(?:301 Moved Permanently|302 Found|307 Temporary Redirect|308 Permanent Redirect)\b"),
)


class FetchAttemptError(Exception):
    """A single failed fetch attempt; retried until attempts run out."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def looks_javascript_rendered(html: str) -> bool:
    return any(pattern.search(html) for pattern in SPA_PATTERNS)


def looks_like_redirect(html: str) -> bool:
    return any(pattern.search(html) for pattern in REDIRECT_PATTERNS)


def _is_timeout(exc: Optional[BaseException]) -> bool:
    return isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException))


def describe_failure(url: str, last_error: Optional[BaseException]) -> tuple[str, ErrorCategory]:
    """Turn the last attempt error into an actionable message and category."""
    prefix = f"Could not extract content from {url}"
    status_code = getattr(last_error, "status_code", None)
    if status_code == 403:
        return f"{prefix}: access denied (403)", ErrorCategory.SERVICE_UNAVAILABLE
    if status_code == 404:
        return f"{prefix}: page not found (404)", ErrorCategory.SERVICE_UNAVAILABLE
    if status_code == 429:
        return f"{prefix}: rate limited by the site (429)", ErrorCategory.QUOTA_EXCEEDED
    if _is_timeout(last_error):
        return f"{prefix}: request timed out", ErrorCategory.TIMEOUT
    detail = str(last_error) if last_error else "unknown error"
    return f"{prefix}: {detail}", ErrorCategory.SERVICE_UNAVAILABLE


class PageFetcher:
    """Fetch a page as a crawler would and extract its readable text.

    Each attempt has its own timeout and the whole URL gets a bounded number
    of attempts with exponential backoff. Failures surface as
    ``ExtractionError`` with a message that names the likely cause.
    """

    def __init__(
        self,
        *,
        extractor: Optional[ExtractService] = None,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        timeout_seconds: float = 15.0,
        min_html_bytes: int = 500,
        min_text_chars: int = 100,
        user_agent: str = settings.fetch_user_agent,
        extract_in_thread: bool = True,
        request_fn: Optional[RequestFn] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.extractor = extractor or ExtractService()
        self.max_attempts = max(int(max_attempts), 1)
        self.backoff_base = float(backoff_base)
        self.timeout_seconds = max(float(timeout_seconds), 0.1)
        self.min_html_bytes = int(min_html_bytes)
        self.min_text_chars = int(min_text_chars)
        self.user_agent = user_agent
        self.extract_in_thread = bool(extract_in_thread)
        self._request_fn = request_fn or self._request_with_httpx
        self._sleep = sleep

    @classmethod
    def from_settings(cls) -> "PageFetcher":
        extractor = ExtractService(
            primary=settings.extractor_primary,
            max_chars=settings.extractor_max_page_chars,
            min_article_chars=settings.extractor_min_article_chars,
            max_elements=settings.extractor_max_elements,
            min_primary_chars=settings.extractor_min_primary_chars,
        )
        return cls(
            extractor=extractor,
            max_attempts=settings.fetch_max_attempts,
            backoff_base=settings.fetch_backoff_base,
            timeout_seconds=settings.fetch_timeout_seconds,
            min_html_bytes=settings.fetch_min_html_bytes,
            min_text_chars=settings.extractor_min_success_chars,
            user_agent=settings.fetch_user_agent,
            extract_in_thread=settings.extract_in_thread,
        )

    async def fetch_and_extract(self, url: str) -> PageExtract:
        started = time.monotonic()
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                html = await self.fetch_html(url)
                extracted = await self._extract(html, url)
                if len(extracted.text) > self.min_text_chars:
                    logger.debug(
                        f"Extracted {len(extracted.text)} chars from {url} via {extracted.method} "
                        f"in {int((time.monotonic() - started) * 1000)}ms (attempt {attempt})"
                    )
                    return PageExtract(
                        url=url,
                        title=extracted.title,
                        text=extracted.text,
                        word_count=extracted.word_count,
                    )
                # Retrying will not render JavaScript or follow a client-side redirect.
                if looks_javascript_rendered(html):
                    raise ExtractionError(
                        f"Could not extract content from {url}: the site renders its content "
                        "with JavaScript (SPA)",
                        url=url,
                    )
                if looks_like_redirect(html):
                    raise ExtractionError(
                        f"Could not extract content from {url}: the site responds with a redirect",
                        url=url,
                    )
                raise FetchAttemptError("Extracted text is too short")
            except ExtractionError:
                raise
            except Exception as exc:
                last_error = exc
                logger.debug(f"Fetch attempt {attempt}/{self.max_attempts} failed for {url}: {exc!r}")
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff_base ** attempt)

        message, category = describe_failure(url, last_error)
        raise ExtractionError(message, url=url, category=category)

    async def fetch_html(self, url: str) -> str:
        html, _final_url, status_code, content_type = await asyncio.wait_for(
            self._request_fn(url, self.timeout_seconds),
            timeout=self.timeout_seconds,
        )
        if not 200 <= status_code < 300:
            raise FetchAttemptError(f"HTTP {status_code}", status_code=status_code)
        lowered_type = (content_type or "").lower()
        if not any(ct in lowered_type for ct in HTML_CONTENT_TYPES):
            raise FetchAttemptError(f"Unexpected content-type: {content_type or 'missing'}")
        if len(html.encode("utf-8")) < self.min_html_bytes:
            raise FetchAttemptError("HTML body is too short")
        return html

    async def _extract(self, html: str, url: str) -> ExtractedText:
        if self.extract_in_thread:
            return await asyncio.to_thread(self.extractor.extract, html, url)
        return self.extractor.extract(html, url)

    async def _request_with_httpx(self, url: str, timeout_seconds: float) -> FetchResult:
        async with httpx.AsyncClient(
            timeout=timeout_seconds,
            follow_redirects=True,
        ) as client:
            response = await client.get(
                url,
                headers={"User-Agent": self.user_agent, **BROWSER_HEADERS},
            )
            return (
                response.text,
                str(response.url),
                int(response.status_code),
                response.headers.get("content-type", ""),
            )
