from __future__ import annotations

import time
from collections import Counter
from typing import Any, Optional

from loguru import logger

from serp_entities.config import settings
from serp_entities.errors import ErrorCategory, SummarizationError
from serp_entities.llm_client import client as default_client
from serp_entities.llm_client import get_model
from serp_entities.models.schemas import (
    CanonicalEntity,
    ComparisonResult,
    EntityMention,
    SearchResult,
)
from serp_entities.services.logger import log_provider_call

SYSTEM_PROMPT = """You are a senior SEO analyst with more than ten years of experience. \
Analyze the entity data extracted by the Google Natural Language API from the top search \
results and write a DETAILED report.

## REPORT STRUCTURE

### 1. Summary of the main topics and entities in the top 10

Describe in detail:
- **Topic clusters** (5-7 clusters with example entities and how many documents mention them)
- **Dominant entity types** (PERSON, ORGANIZATION, LOCATION and so on)
- **Recurring patterns** in page titles and descriptions
- **Search intent** of the results (informational, commercial or navigational)

---

### 2. Practical ranking recommendations

Give 10-15 CONCRETE recommendations grouped by:
- Content: what the page must contain and which topics to cover in depth
- Structure: how to organize the page and its headings
- Intent: which user needs the results satisfy and what drives conversion
- E-E-A-T: how to demonstrate expertise and trust
- Technical: speed, mobile layout, interactive elements

Every recommendation must be actionable.

---

### 3. Table "Entity / importance / implementation"

Build a table for the top 20 entities:

| Entity | Type | Frequency | Why it matters | How to cover it |
|--------|------|-----------|----------------|-----------------|

Give 2-4 concrete implementation ideas per entity.

---"""

GAP_SECTION = """

### 4. Gaps and opportunities (user page)

For EACH gap on the user page provide:

#### [Entity or topic] - [priority: HIGH/MEDIUM/LOW]

**Current situation:** how many top documents cover it, how competitors implement it and \
why it matters for ranking.

**What to add:** the content, its volume, its format and where it goes on the page.

**Competitor examples:** URLs with what each does well.

**Step-by-step implementation** with example text or structure.

**Expected effect** on relevance, E-E-A-T and positions.

---"""

WRITING_RULES = """

## WRITING RULES

- Use concrete numbers and facts from the data
- Cite competitor URLs where relevant
- Give advice that can be applied right away
- Use markdown formatting
- Avoid generic phrases such as "improve the content", avoid repetition

Write professionally, in a structured way and to the point."""


def build_system_prompt(has_comparison: bool) -> str:
    prompt = SYSTEM_PROMPT
    if has_comparison:
        prompt += GAP_SECTION
    return prompt + WRITING_RULES


def _titles_by_url(results: list[SearchResult]) -> dict[str, SearchResult]:
    return {result.url: result for result in results}


def build_user_content(
    query: str,
    results: list[SearchResult],
    aggregate: list[CanonicalEntity],
    per_url_entities: dict[str, list[EntityMention]],
    comparison: Optional[ComparisonResult] = None,
) -> str:
    by_url = _titles_by_url(results)
    lines: list[str] = [f'Query: "{query}"', "", "Top Google results:"]

    for index, result in enumerate(results, start=1):
        lines.append(f"{index}. {result.title}")
        lines.append(f"   URL: {result.url}")
        if result.snippet:
            lines.append(f"   Snippet: {result.snippet[:150]}...")

    lines += ["", "=== TOP ENTITIES (AGGREGATED) ===", f"Unique entities found: {len(aggregate)}", ""]
    lines.append("Distribution by type:")
    for entity_type, count in Counter(entity.type for entity in aggregate).items():
        lines.append(f"- {entity_type}: {count} entities")

    lines += ["", "Top 20 entities:"]
    for index, entity in enumerate(aggregate[:20], start=1):
        lines.append("")
        lines.append(f"{index}. **{entity.lemma}** ({entity.type})")
        lines.append(f"   - Total salience: {entity.total_salience:.3f}")
        lines.append(f"   - Average salience: {entity.avg_salience:.3f}")
        lines.append(f"   - Found in {entity.doc_count}/{len(results)} documents")
        lines.append(f"   - Mentions: {entity.total_mentions}")
        if entity.sources:
            lines.append("   - Present on:")
            for source in entity.sources[:3]:
                if source in by_url:
                    lines.append(f"     * {by_url[source].title}")
            if len(entity.sources) > 3:
                lines.append(f"     * ...and {len(entity.sources) - 3} more pages")
        if entity.forms_count > 1:
            forms = ", ".join(entity.original_forms[:5])
            extra = f" (+{entity.forms_count - 5})" if entity.forms_count > 5 else ""
            lines.append(f"   - Surface forms: {forms}{extra}")

    lines += ["", "Sample entities per URL:"]
    for url in list(per_url_entities)[:3]:
        entities = per_url_entities[url]
        if not entities:
            continue
        lines += ["", f"{url}:"]
        for entity in entities[:5]:
            lines.append(f"- {entity.name} ({entity.type}, salience: {entity.salience:.3f})")

    if comparison is not None:
        lines += _comparison_lines(comparison, by_url)

    return "\n".join(lines) + "\n"


def _comparison_lines(comparison: ComparisonResult, by_url: dict[str, SearchResult]) -> list[str]:
    page = comparison.user_page
    lines = [
        "",
        "",
        "=== USER PAGE ANALYSIS ===",
        f"URL: {page.url}",
        f"Title: {page.title or 'not found'}",
        f"Word count: {page.word_count}",
        f"Entities found: {page.entity_count}",
        "",
        "Top 5 entities on the page:",
    ]
    for index, entity in enumerate(page.top_entities[:5], start=1):
        lines.append(f"{index}. {entity.name} ({entity.type}, salience: {entity.salience:.3f})")

    lines += ["", f"Missing important entities ({len(comparison.missing_entities)}):"]
    for index, entity in enumerate(comparison.missing_entities[:10], start=1):
        lines.append(f"{index}. {entity.lemma} ({entity.type})")
        lines.append(f"   - Found in {entity.doc_count} top documents")
        lines.append(f"   - Average salience: {entity.avg_salience:.3f}")
        if entity.sources:
            lines.append("   - Found on:")
            for source in entity.sources[:3]:
                if source in by_url:
                    lines.append(f"     * {by_url[source].title}")
                    lines.append(f"       {source}")
                else:
                    lines.append(f"     * {source}")
            if len(entity.sources) > 3:
                lines.append(f"     * ...and {len(entity.sources) - 3} more pages")

    lines += ["", "Improvement recommendations:"]
    for index, recommendation in enumerate(comparison.recommendations, start=1):
        lines.append(f"{index}. {recommendation}")

    lines += ["", "Critical entity gaps:"]
    for index, gap in enumerate(comparison.entity_gaps, start=1):
        lines.append(f"{index}. {gap.entity.lemma} ({gap.importance} priority)")
        lines.append(f"   - {gap.recommendation}")
        examples = [source for source in gap.entity.sources[:2] if source in by_url]
        if examples:
            lines.append("   - Done well on:")
        for source in examples:
            lines.append(f'     * "{by_url[source].title}" - {source}')
            if by_url[source].snippet:
                lines.append(f"       Snippet: {by_url[source].snippet[:100]}...")
    return lines


def fallback_summary(
    aggregate: list[CanonicalEntity],
    comparison: Optional[ComparisonResult] = None,
) -> str:
    """Deterministic markdown summary used when the LLM is unavailable."""
    lines = [
        "## Key entity analysis",
        "",
        f"Found {len(aggregate)} unique entities in the top results.",
        "",
        "### Top 10 entities:",
        "",
    ]
    for index, entity in enumerate(aggregate[:10], start=1):
        lines.append(f"{index}. **{entity.lemma}** ({entity.type})")
        lines.append(f"   - Found in {entity.doc_count} documents")
        lines.append(f"   - Total salience: {entity.total_salience:.3f}")
        lines.append("")

    lines += [
        "### Recommendations:",
        "",
        "1. Focus on entities that appear in several documents",
        "2. Study the context in which the key entities are used",
        "3. Take entity types into account when writing content",
    ]

    if comparison is not None:
        page = comparison.user_page
        lines += [
            "",
            "### Your page:",
            "",
            f"- URL: {page.url}",
            f"- Word count: {page.word_count}",
            f"- Entities found: {page.entity_count}",
            f"- Missing important entities: {len(comparison.missing_entities)}",
        ]
        if comparison.recommendations:
            lines += ["", "### Improvement recommendations:", ""]
            for index, recommendation in enumerate(comparison.recommendations, start=1):
                lines.append(f"{index}. {recommendation}")

    return "\n".join(lines) + "\n"


class OpenRouterSummarizer:
    """Writes the analyst report with an OpenRouter chat model."""

    name = "openrouter"

    def __init__(
        self,
        *,
        llm_client: Any = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ):
        self._client = llm_client
        self.model = model or get_model()
        self.max_tokens = max_tokens or settings.summary_max_tokens
        self.temperature = settings.summary_temperature if temperature is None else temperature

    async def summarize(
        self,
        query: str,
        results: list[SearchResult],
        aggregate: list[CanonicalEntity],
        per_url_entities: dict[str, list[EntityMention]],
        comparison: Optional[ComparisonResult] = None,
    ) -> str:
        if not settings.openrouter_api_key and self._client is None:
            raise SummarizationError("OPENROUTER_API_KEY not configured")

        llm = self._client or default_client()
        messages = [
            {"role": "system", "content": build_system_prompt(comparison is not None)},
            {
                "role": "user",
                "content": build_user_content(query, results, aggregate, per_url_entities, comparison),
            },
        ]

        started = time.monotonic()
        try:
            response = await llm.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            log_provider_call(self.name, "summarize", duration_ms, "failed", error=str(exc))
            lowered = str(exc).lower()
            if "quota" in lowered or "limit" in lowered or "429" in lowered:
                raise SummarizationError(
                    "OpenRouter API limit exceeded",
                    category=ErrorCategory.QUOTA_EXCEEDED,
                ) from exc
            if "timeout" in lowered or "timed out" in lowered:
                raise SummarizationError(
                    "OpenRouter request timed out",
                    category=ErrorCategory.TIMEOUT,
                ) from exc
            raise SummarizationError(f"Summary generation failed: {exc}") from exc

        log_provider_call(self.name, "summarize", int((time.monotonic() - started) * 1000))

        choices = getattr(response, "choices", None) or []
        content = getattr(choices[0].message, "content", None) if choices else None
        if not content:
            raise SummarizationError("Empty response from OpenRouter")
        logger.debug(f"Summary generated with {self.model}: {len(content)} chars")
        return content
