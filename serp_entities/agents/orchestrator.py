from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from uuid import uuid4

from loguru import logger
from pydantic import ValidationError

from serp_entities.agents.summarizer import OpenRouterSummarizer, fallback_summary
from serp_entities.config import settings
from serp_entities.errors import ComparisonError, categorize_error
from serp_entities.models.interfaces import (
    EntityProvider,
    Normalizer,
    PageSource,
    SearchProvider,
    Summarizer,
)
from serp_entities.models.schemas import (
    CanonicalEntity,
    ComparisonResult,
    EntityMention,
    PageExtract,
    PipelineResult,
    SearchParams,
    SearchResult,
    UserPageAnalysis,
)
from serp_entities.research_core.entities.aggregator import (
    aggregate_entities,
    compare_with_top10,
    filter_mentions,
)
from serp_entities.research_core.entities.normalizer import default_normalizer
from serp_entities.research_core.extract.service import count_words
from serp_entities.research_core.scrape.service import PageFetcher
from serp_entities.services.batching import run_batched
from serp_entities.services.cache_store import build_durable_store
from serp_entities.services.logger import log_pipeline_stage
from serp_entities.tools import search_provider
from serp_entities.tools.analysis_cache import AnalysisCache
from serp_entities.tools.google_nl import GoogleNaturalLanguageProvider
from serp_entities.tools.xmlstock_search import XmlStockSearchProvider

USER_PAGE_TOP_ENTITIES = 10


class PipelineStage(str, Enum):
    IDLE = "idle"
    CACHE_CHECK = "cache_check"
    SEARCHING = "searching"
    FETCHING = "fetching"
    EXTRACTING_ENTITIES = "extracting_entities"
    AGGREGATING = "aggregating"
    COMPARING = "comparing"
    SUMMARIZING = "summarizing"
    COMPLETE = "complete"
    ERROR = "error"


StageCallback = Callable[[PipelineStage], None]


@dataclass
class AcquiredPages:
    extracts: list[PageExtract] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def degraded_urls(self) -> set[str]:
        return {extract.url for extract in self.extracts if extract.error}


class ContentAcquisition:
    """Fetch and extract result pages in fixed-size concurrent batches.

    A page that cannot be fetched degrades to its search snippet (or title)
    so that entity analysis still sees something for that position. The
    failure reason is kept in ``errors``.
    """

    def __init__(
        self,
        fetcher: PageSource,
        *,
        batch_size: int = 3,
        min_document_chars: int = 10,
    ):
        self.fetcher = fetcher
        self.batch_size = max(int(batch_size), 1)
        self.min_document_chars = int(min_document_chars)

    async def fetch_pages(self, results: list[SearchResult]) -> AcquiredPages:
        errors: dict[str, str] = {}

        async def _fetch(result: SearchResult) -> PageExtract:
            try:
                extract = await self.fetcher.fetch_and_extract(result.url)
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                logger.warning(f"Falling back to snippet for {result.url}: {message}")
                errors[result.url] = message
                fallback_text = result.snippet or result.title
                return PageExtract(
                    url=result.url,
                    title=result.title,
                    text=fallback_text,
                    word_count=count_words(fallback_text),
                    error=message,
                )
            if not extract.title:
                extract = extract.model_copy(update={"title": result.title})
            return extract

        extracts = await run_batched(results, _fetch, self.batch_size)
        kept = [extract for extract in extracts if len(extract.text) > self.min_document_chars]
        logger.info(
            f"Acquired {len(kept)}/{len(results)} documents "
            f"({len(errors)} degraded, {len(extracts) - len(kept)} dropped)"
        )
        return AcquiredPages(extracts=kept, errors=errors)


class AnalysisPipeline:
    """Runs one SERP entity analysis end to end.

    Flow:
      1. Return the cached result for the same search parameters, if any
      2. Search for the top organic results
      3. Fetch and extract the result pages in batches
      4. Extract entities per document in batches
      5. Fold entities into the cross-document aggregate
      6. Optionally analyze the user page and compare it to the aggregate
      7. Summarize (templated fallback when the summarizer fails)
      8. Cache and return the immutable ``PipelineResult``
    """

    def __init__(
        self,
        *,
        search_provider: SearchProvider,
        entity_provider: EntityProvider,
        summarizer: Summarizer,
        cache: Optional[AnalysisCache] = None,
        fetcher: Optional[PageSource] = None,
        normalizer: Normalizer = default_normalizer,
        batch_size: Optional[int] = None,
        aggregate_degraded_documents: Optional[bool] = None,
        fixture_fallback: Optional[bool] = None,
        on_stage: Optional[StageCallback] = None,
    ):
        self.search_provider = search_provider
        self.entity_provider = entity_provider
        self.summarizer = summarizer
        self.cache = cache if cache is not None else AnalysisCache()
        self.fetcher = fetcher if fetcher is not None else PageFetcher.from_settings()
        self.normalizer = normalizer
        self.batch_size = max(int(batch_size or settings.pipeline_batch_size), 1)
        self.aggregate_degraded_documents = (
            settings.aggregate_degraded_documents
            if aggregate_degraded_documents is None
            else bool(aggregate_degraded_documents)
        )
        self.fixture_fallback = fixture_fallback
        self.on_stage = on_stage
        self.acquisition = ContentAcquisition(
            self.fetcher,
            batch_size=self.batch_size,
            min_document_chars=settings.min_document_chars,
        )
        self.stage = PipelineStage.IDLE

    def _enter(self, run_id: str, stage: PipelineStage, data: Optional[dict] = None) -> None:
        self.stage = stage
        status = "failed" if stage is PipelineStage.ERROR else "started"
        if stage is PipelineStage.COMPLETE:
            status = "completed"
        log_pipeline_stage(run_id, stage.value, status, data)
        if self.on_stage is not None:
            self.on_stage(stage)

    def _cache_key(self, params: SearchParams) -> str:
        return self.cache.key_for(params.query, params.country, params.lang, params.device)

    async def run_analysis(self, params: SearchParams) -> PipelineResult:
        run_id = uuid4().hex[:8]
        started = time.monotonic()
        self.stage = PipelineStage.IDLE

        self._enter(run_id, PipelineStage.CACHE_CHECK)
        cache_key = self._cache_key(params)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                result = PipelineResult.model_validate(cached)
            except ValidationError as exc:
                logger.warning(f"Ignoring unreadable cache entry {cache_key}: {exc}")
            else:
                self._enter(run_id, PipelineStage.COMPLETE, {"cache_hit": True})
                return result

        try:
            result = await self._run_stages(run_id, params, started)
        except Exception as exc:
            self._enter(
                run_id,
                PipelineStage.ERROR,
                {"error": str(exc), "category": categorize_error(exc).value},
            )
            raise

        await self.cache.set(cache_key, result.model_dump(mode="json"))
        self._enter(run_id, PipelineStage.COMPLETE, {"processing_time_ms": result.processing_time})
        return result

    async def _run_stages(self, run_id: str, params: SearchParams, started: float) -> PipelineResult:
        self._enter(run_id, PipelineStage.SEARCHING, {"query": params.query})
        response = await search_provider.search(
            params,
            provider=self.search_provider,
            fixture_fallback=self.fixture_fallback,
        )
        top10 = response.results
        if response.fallback_reason:
            logger.warning(f"Serving {response.provider} results: {response.fallback_reason}")

        self._enter(run_id, PipelineStage.FETCHING, {"urls": len(top10)})
        pages = await self.acquisition.fetch_pages(top10)
        errors = dict(pages.errors)

        self._enter(run_id, PipelineStage.EXTRACTING_ENTITIES, {"documents": len(pages.extracts)})
        per_url_entities = await self.analyze_entities(pages.extracts, params.lang, errors)

        self._enter(run_id, PipelineStage.AGGREGATING)
        degraded = pages.degraded_urls
        aggregate_input = {
            url: entities
            for url, entities in per_url_entities.items()
            if self.aggregate_degraded_documents or url not in degraded
        }
        aggregate = aggregate_entities(
            aggregate_input,
            normalizer=self.normalizer,
            lang=params.lang,
            limit=settings.aggregate_limit,
        )

        user_page: Optional[UserPageAnalysis] = None
        comparison: Optional[ComparisonResult] = None
        if params.user_url:
            self._enter(run_id, PipelineStage.COMPARING, {"user_url": params.user_url})
            user_page = await self.analyze_user_page(params.user_url, params.lang)
            comparison = compare_with_top10(
                user_page,
                aggregate,
                normalizer=self.normalizer,
                lang=params.lang,
                top_limit=settings.comparison_top_entities,
                gap_limit=settings.comparison_gap_limit,
            )

        self._enter(run_id, PipelineStage.SUMMARIZING)
        summary, fallback_used = await self._summarize(
            params.query, top10, aggregate, per_url_entities, comparison
        )

        return PipelineResult(
            top10=top10,
            per_url_entities=per_url_entities,
            aggregate=aggregate,
            llm_summary=summary,
            user_page_analysis=user_page,
            comparison=comparison,
            errors=errors,
            processing_time=int((time.monotonic() - started) * 1000),
            timestamp=datetime.now(timezone.utc).isoformat(),
            summary_fallback_used=fallback_used,
        )

    def _correct_types(self, mentions: list[EntityMention]) -> list[EntityMention]:
        corrected: list[EntityMention] = []
        for mention in mentions:
            entity_type = self.normalizer.correct_type(mention.type, mention.name)
            if entity_type != mention.type:
                mention = mention.model_copy(update={"type": entity_type})
            corrected.append(mention)
        return corrected

    async def analyze_entities(
        self,
        extracts: list[PageExtract],
        lang: str,
        errors: dict[str, str],
    ) -> dict[str, list[EntityMention]]:
        """Extract entities per document; failures are recorded, never raised."""

        async def _analyze(extract: PageExtract) -> tuple[str, list[EntityMention]]:
            try:
                raw = await self.entity_provider.extract_entities(extract.text, extract.url, lang)
            except Exception as exc:
                logger.warning(f"Entity analysis failed for {extract.url}: {exc}")
                errors.setdefault(extract.url, f"Entity analysis failed: {exc}")
                return extract.url, []
            return extract.url, filter_mentions(
                self._correct_types(raw),
                salience_floor=settings.entity_salience_floor,
            )

        analyzed = await run_batched(extracts, _analyze, self.batch_size)
        per_url_entities = {url: entities for url, entities in analyzed if entities}
        logger.info(f"Entities extracted for {len(per_url_entities)}/{len(extracts)} documents")
        return per_url_entities

    async def analyze_user_page(self, url: str, lang: str) -> UserPageAnalysis:
        try:
            page = await self.fetcher.fetch_and_extract(url)
            raw = await self.entity_provider.extract_entities(page.text, url, lang)
        except Exception as exc:
            raise ComparisonError(
                f"Could not analyze the user page {url}: {exc}",
                category=categorize_error(exc),
            ) from exc

        entities = filter_mentions(
            self._correct_types(raw),
            salience_floor=settings.entity_salience_floor,
        )
        top_entities = sorted(entities, key=lambda e: e.salience, reverse=True)[:USER_PAGE_TOP_ENTITIES]
        return UserPageAnalysis(
            url=url,
            title=page.title,
            entities=entities,
            word_count=page.word_count,
            entity_count=len(entities),
            top_entities=top_entities,
        )

    async def _summarize(
        self,
        query: str,
        top10: list[SearchResult],
        aggregate: list[CanonicalEntity],
        per_url_entities: dict[str, list[EntityMention]],
        comparison: Optional[ComparisonResult],
    ) -> tuple[str, bool]:
        try:
            summary = await self.summarizer.summarize(
                query, top10, aggregate, per_url_entities, comparison
            )
        except Exception as exc:
            logger.warning(f"Summarizer failed, using templated summary: {exc}")
            return fallback_summary(aggregate, comparison), True
        return summary, False

    async def clear_cache(self, params: SearchParams) -> None:
        await self.cache.delete(self._cache_key(params))

    async def clear_all_cache(self) -> None:
        await self.cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()


def build_pipeline(on_stage: Optional[StageCallback] = None) -> AnalysisPipeline:
    """Wire the default collaborators from settings."""
    cache = AnalysisCache(
        build_durable_store(),
        max_memory_entries=settings.cache_memory_max_entries,
        default_ttl=settings.cache_ttl_seconds,
    )
    return AnalysisPipeline(
        search_provider=XmlStockSearchProvider(),
        entity_provider=GoogleNaturalLanguageProvider(),
        summarizer=OpenRouterSummarizer(),
        cache=cache,
        fetcher=PageFetcher.from_settings(),
        on_stage=on_stage,
    )
