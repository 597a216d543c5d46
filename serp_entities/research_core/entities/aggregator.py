from __future__ import annotations

import re
from typing import Iterable, Mapping, Optional

from loguru import logger

from serp_entities.errors import ComparisonError
from serp_entities.models.interfaces import Normalizer
from serp_entities.models.schemas import (
    CanonicalEntity,
    ComparisonResult,
    EntityGap,
    EntityMention,
    Importance,
    UserPageAnalysis,
)
from serp_entities.research_core.entities.normalizer import default_normalizer

# Low SEO value.
EXCLUDED_TYPES = frozenset({"UNKNOWN", "NUMBER", "PHONE_NUMBER"})
SALIENCE_FLOOR = 0.001

_PUNCTUATION_ONLY_RE = re.compile(r"^[.,!?;:()\[\]{}\"'`~@#$%^&*+=|\\/<>0-9\s]+$")


def filter_mentions(
    mentions: Iterable[EntityMention],
    *,
    salience_floor: float = SALIENCE_FLOOR,
) -> list[EntityMention]:
    """Drop entities that carry no signal before they reach aggregation."""
    kept: list[EntityMention] = []
    for mention in mentions:
        name = (mention.name or "").strip()
        if mention.type in EXCLUDED_TYPES:
            continue
        if len(name) < 2 or _PUNCTUATION_ONLY_RE.match(name):
            continue
        if mention.salience < salience_floor:
            continue
        kept.append(mention)
    return kept


def aggregate_entities(
    per_url_entities: Mapping[str, Iterable[EntityMention]],
    *,
    normalizer: Normalizer = default_normalizer,
    lang: str = "ru",
    limit: int = 50,
) -> list[CanonicalEntity]:
    """Fold per-document entity lists into one ranked cross-document table.

    Entities whose names share a lemma merge into one ``CanonicalEntity``.
    ``doc_count`` grows once per distinct source URL; salience and mention
    counts add up for every sighting.

    Ranking is by ``doc_count`` (breadth across documents) and then by
    ``total_salience``, so an entity that appears moderately across many
    pages outranks a single high-salience mention.
    """
    table: dict[str, CanonicalEntity] = {}

    for url, entities in per_url_entities.items():
        for entity in entities:
            if entity.type in EXCLUDED_TYPES:
                continue
            lemma = normalizer.normalize(entity.name, lang)
            if not lemma:
                continue

            existing = table.get(lemma)
            if existing is None:
                table[lemma] = CanonicalEntity(
                    lemma=lemma,
                    type=entity.type,
                    total_salience=entity.salience,
                    doc_count=1,
                    total_mentions=entity.mention_count,
                    sources=[url],
                    avg_salience=entity.salience,
                    original_forms=[entity.name],
                )
                continue

            existing.total_salience += entity.salience
            existing.total_mentions += entity.mention_count
            if url not in existing.sources:
                existing.sources.append(url)
                existing.doc_count += 1
            if entity.name not in existing.original_forms:
                existing.original_forms.append(entity.name)

    for entry in table.values():
        entry.avg_salience = entry.total_salience / entry.doc_count

    ranked = sorted(
        table.values(),
        key=lambda e: (-e.doc_count, -e.total_salience, e.lemma),
    )
    logger.debug(f"Aggregated {len(table)} lemmas from {len(per_url_entities)} documents")
    return ranked[: max(int(limit), 0)]


def classify_importance(entity: CanonicalEntity) -> Importance:
    if entity.doc_count >= 3 and entity.avg_salience >= 0.01:
        return "high"
    if entity.doc_count >= 2 and entity.avg_salience >= 0.005:
        return "medium"
    return "low"


def entity_recommendation(entity: CanonicalEntity, importance: Importance) -> str:
    base = f'Add mentions of "{entity.lemma}" to the content'
    if importance == "high":
        return (
            f"{base}. It appears in {entity.doc_count} of the top results and carries high "
            "importance. Give it a dedicated section or mention it in key places."
        )
    if importance == "medium":
        return (
            f"{base}. It appears in {entity.doc_count} documents and can improve "
            "the relevance of the page."
        )
    return f"{base}. It may add some relevance but is not critical."


def page_recommendations(
    user_page: UserPageAnalysis,
    missing_entities: list[CanonicalEntity],
) -> list[str]:
    recommendations: list[str] = []
    if user_page.word_count < 500:
        recommendations.append("Grow the content to at least 500-800 words to rank better")
    if user_page.entity_count < 10:
        recommendations.append("Add more named entities (brands, people, places) to the content")

    high_missing = [e for e in missing_entities if classify_importance(e) == "high"]
    if high_missing:
        recommendations.append(
            f"Add the {len(high_missing)} critical entities that competing pages cover"
        )

    recommendations.append("Give the content a clear structure with H2/H3 headings")
    recommendations.append("Add an FAQ section covering the key questions on the topic")
    return recommendations


def _gap_score(entity: CanonicalEntity) -> float:
    return entity.doc_count * entity.avg_salience


def compare_with_top10(
    user_page: Optional[UserPageAnalysis],
    aggregate: list[CanonicalEntity],
    *,
    normalizer: Normalizer = default_normalizer,
    lang: str = "ru",
    top_limit: int = 20,
    gap_limit: int = 10,
) -> ComparisonResult:
    """Find aggregate entities that the user page does not mention."""
    if user_page is None:
        raise ComparisonError("User page analysis is unavailable; cannot compare")

    user_lemmas = {normalizer.normalize(e.name, lang) for e in user_page.entities}
    user_lemmas.discard("")

    missing = [entity for entity in aggregate if entity.lemma not in user_lemmas]
    missing.sort(key=_gap_score, reverse=True)

    gaps: list[EntityGap] = []
    for entity in missing[:gap_limit]:
        importance = classify_importance(entity)
        gaps.append(
            EntityGap(
                entity=entity,
                importance=importance,
                recommendation=entity_recommendation(entity, importance),
            )
        )

    return ComparisonResult(
        user_page=user_page,
        top_entities=aggregate[:top_limit],
        missing_entities=missing[:gap_limit],
        entity_gaps=gaps,
        recommendations=page_recommendations(user_page, missing),
    )
