from __future__ import annotations

import re
import time
from typing import Any, Optional

import httpx
from loguru import logger

from serp_entities.config import settings
from serp_entities.errors import EntityProviderError, ErrorCategory
from serp_entities.models.schemas import EntityMention
from serp_entities.services.logger import log_provider_call

SUPPORTED_LANGUAGES = frozenset(
    {"en", "ru", "fr", "de", "it", "ja", "ko", "pt", "es", "zh", "zh-Hant"}
)
MIN_TEXT_CHARS = 10
MAX_NAME_CHARS = 100

_NAME_PUNCTUATION_RE = re.compile(r"[.,!?;:()\[\]{}\"'`~@#$%^&*+=|\\/<>]+")
_EDGE_DIGITS_RE = re.compile(r"^\d+|\d+$")
_SINGLE_CHAR_WORD_RE = re.compile(r"\b[а-яёa-z0-9]\b", re.IGNORECASE)


def language_code(hint: Optional[str]) -> Optional[str]:
    """Map a search language to a code the API accepts, else let it auto-detect."""
    if not hint:
        return None
    return hint if hint in SUPPORTED_LANGUAGES else None


def clean_entity_name(name: str) -> str:
    cleaned = _NAME_PUNCTUATION_RE.sub(" ", name.strip())
    cleaned = _EDGE_DIGITS_RE.sub("", cleaned)
    cleaned = _SINGLE_CHAR_WORD_RE.sub(" ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:MAX_NAME_CHARS]


def parse_entities(payload: dict, source_url: str, *, salience_floor: float) -> list[EntityMention]:
    entities: list[EntityMention] = []
    for raw in payload.get("entities") or []:
        raw_name = str(raw.get("name") or "").strip()
        if not raw_name:
            continue
        salience = float(raw.get("salience") or 0.0)
        if salience <= salience_floor:
            continue
        name = clean_entity_name(raw_name)
        if not name:
            continue

        mentions: list[dict[str, Any]] = raw.get("mentions") or []
        mention_texts = [
            str((mention.get("text") or {}).get("content") or raw_name) for mention in mentions
        ] or [raw_name]
        metadata = raw.get("metadata") or {}

        entities.append(
            EntityMention(
                name=name,
                type=str(raw.get("type") or "UNKNOWN"),
                salience=min(salience, 1.0),
                mention_count=len(mentions) or 1,
                source_url=source_url,
                mention_texts=mention_texts,
                wikipedia_url=metadata.get("wikipedia_url") or None,
            )
        )

    entities.sort(key=lambda e: e.salience, reverse=True)
    return entities


def _classify_failure(status_code: int, message: str) -> EntityProviderError:
    lowered = message.lower()
    if status_code == 429 or "quota" in lowered or "limit" in lowered:
        return EntityProviderError(
            "Google Cloud Natural Language API quota exceeded",
            category=ErrorCategory.QUOTA_EXCEEDED,
        )
    if status_code in (401, 403) or "authentication" in lowered or "credentials" in lowered:
        return EntityProviderError("Google Cloud Natural Language API authentication failed")
    return EntityProviderError(f"Entity analysis failed: {message or f'HTTP {status_code}'}")


class GoogleNaturalLanguageProvider:
    """Entity extraction through the Cloud Natural Language REST API."""

    name = "google_nl"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        salience_floor: Optional[float] = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = settings.google_nl_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.google_nl_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.entity_timeout_seconds
        self.salience_floor = settings.entity_salience_floor if salience_floor is None else salience_floor
        self._http_client = http_client

    async def extract_entities(
        self,
        text: str,
        source_url: str,
        language_hint: Optional[str] = None,
    ) -> list[EntityMention]:
        if not self.api_key:
            raise EntityProviderError("GOOGLE_NL_API_KEY not configured")
        if not text or len(text) < MIN_TEXT_CHARS:
            raise EntityProviderError("Text is too short for entity analysis")

        document: dict[str, Any] = {"content": text, "type": "PLAIN_TEXT"}
        code = language_code(language_hint)
        if code:
            document["language"] = code
        elif language_hint:
            logger.debug(f"Language {language_hint} is not supported, using auto-detection")

        body = {"document": document, "encodingType": "UTF8"}
        started = time.monotonic()
        try:
            if self._http_client is None:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await self._post(client, body)
            else:
                response = await self._post(self._http_client, body)
        except httpx.TimeoutException as exc:
            log_provider_call(self.name, "analyze_entities", status="failed", error=str(exc))
            raise EntityProviderError(
                "Entity analysis timed out",
                category=ErrorCategory.TIMEOUT,
            ) from exc
        except httpx.HTTPError as exc:
            log_provider_call(self.name, "analyze_entities", status="failed", error=str(exc))
            raise EntityProviderError(f"Entity analysis failed: {exc}") from exc

        duration_ms = int((time.monotonic() - started) * 1000)
        if response.status_code >= 400:
            message = _response_error_message(response)
            log_provider_call(self.name, "analyze_entities", duration_ms, "failed", error=message)
            raise _classify_failure(response.status_code, message)

        log_provider_call(self.name, "analyze_entities", duration_ms)
        entities = parse_entities(response.json(), source_url, salience_floor=self.salience_floor)
        logger.debug(f"Google NL returned {len(entities)} entities for {source_url}")
        return entities

    async def _post(self, client: httpx.AsyncClient, body: dict) -> httpx.Response:
        return await client.post(
            f"{self.base_url}/documents:analyzeEntities",
            params={"key": self.api_key},
            json=body,
            timeout=self.timeout_seconds,
        )


def _response_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("status") or "")
    return ""
