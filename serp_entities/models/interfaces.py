from __future__ import annotations

from typing import Optional, Protocol

from serp_entities.models.schemas import (
    CanonicalEntity,
    ComparisonResult,
    EntityMention,
    PageExtract,
    SearchResult,
)


class SearchProvider(Protocol):
    name: str

    async def search(
        self,
        query: str,
        *,
        country: str,
        lang: str,
        device: str,
        extra_params: Optional[dict[str, str]] = None,
    ) -> list[SearchResult]: ...


class PageSource(Protocol):
    async def fetch_and_extract(self, url: str) -> PageExtract: ...


class EntityProvider(Protocol):
    async def extract_entities(
        self,
        text: str,
        source_url: str,
        language_hint: Optional[str] = None,
    ) -> list[EntityMention]: ...


class Summarizer(Protocol):
    async def summarize(
        self,
        query: str,
        results: list[SearchResult],
        aggregate: list[CanonicalEntity],
        per_url_entities: dict[str, list[EntityMention]],
        comparison: Optional[ComparisonResult] = None,
    ) -> str: ...


class DurableStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def keys(self, prefix: str) -> list[str]: ...


class Normalizer(Protocol):
    def normalize(self, name: str, lang: str = "ru") -> str: ...
    def lemmatize(self, token: str, lang: str = "ru") -> str: ...
    def correct_type(self, entity_type: str, name: str) -> str: ...
