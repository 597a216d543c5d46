"""Exception taxonomy for the analysis pipeline.

Every pipeline error carries an ``ErrorCategory`` so that callers can tell a
retryable outage from a quota problem or an internal failure without parsing
message text.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Optional

import httpx


class ErrorCategory(str, Enum):
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    QUOTA_EXCEEDED = "quota_exceeded"
    INTERNAL = "internal"


CATEGORY_STATUS_CODES = {
    ErrorCategory.SERVICE_UNAVAILABLE: 503,
    ErrorCategory.TIMEOUT: 408,
    ErrorCategory.QUOTA_EXCEEDED: 429,
    ErrorCategory.INTERNAL: 500,
}

CATEGORY_MESSAGES = {
    ErrorCategory.SERVICE_UNAVAILABLE: "An upstream service is unavailable. Try again later.",
    ErrorCategory.TIMEOUT: "The analysis took too long. Try again later.",
    ErrorCategory.QUOTA_EXCEEDED: "One of the services hit its usage limit. Try again later.",
    ErrorCategory.INTERNAL: "Internal error while running the analysis.",
}


class AnalysisError(Exception):
    """Base exception for pipeline errors."""

    default_category = ErrorCategory.INTERNAL

    def __init__(self, message: str, category: Optional[ErrorCategory] = None):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category

    @property
    def status_code(self) -> int:
        return CATEGORY_STATUS_CODES[self.category]


class SearchProviderError(AnalysisError):
    """Raised when the search stage cannot produce any results."""

    default_category = ErrorCategory.SERVICE_UNAVAILABLE


class ProviderOverloadedError(SearchProviderError):
    """Raised by a search provider that reports it is overloaded."""


class ExtractionError(AnalysisError):
    """Raised when a single page cannot be fetched or extracted.

    Recoverable: the pipeline degrades the document to its snippet.
    """

    default_category = ErrorCategory.SERVICE_UNAVAILABLE

    def __init__(self, message: str, url: str = "", category: Optional[ErrorCategory] = None):
        super().__init__(message, category)
        self.url = url


class EntityProviderError(AnalysisError):
    default_category = ErrorCategory.SERVICE_UNAVAILABLE


class SummarizationError(AnalysisError):
    """Raised by a summarizer. Recoverable via the templated summary."""

    default_category = ErrorCategory.SERVICE_UNAVAILABLE


class ComparisonError(AnalysisError):
    """Raised when the user page analysis needed for a comparison is missing."""


class CacheError(AnalysisError):
    """Raised by durable cache stores. Never propagates past the cache."""


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Map any exception to one of the user-facing error categories."""
    if isinstance(exc, AnalysisError):
        return exc.category
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorCategory.TIMEOUT

    lowered = str(exc).lower()
    if "timeout" in lowered or "timed out" in lowered:
        return ErrorCategory.TIMEOUT
    if "quota" in lowered or "rate limit" in lowered or "429" in lowered:
        return ErrorCategory.QUOTA_EXCEEDED
    if isinstance(exc, (httpx.TransportError, httpx.HTTPStatusError, ConnectionError)):
        return ErrorCategory.SERVICE_UNAVAILABLE
    return ErrorCategory.INTERNAL


def user_message(exc: BaseException) -> str:
    return CATEGORY_MESSAGES[categorize_error(exc)]


def status_code_for(exc: BaseException) -> int:
    return CATEGORY_STATUS_CODES[categorize_error(exc)]
