from __future__ import annotations

import pytest

from serp_entities.errors import ComparisonError
from serp_entities.models.schemas import CanonicalEntity, EntityMention, UserPageAnalysis
from serp_entities.research_core.entities.aggregator import (
    aggregate_entities,
    classify_importance,
    compare_with_top10,
    filter_mentions,
)


def _mention(name: str, salience: float, url: str, entity_type: str = "OTHER", mentions: int = 1):
    return EntityMention(
        name=name,
        type=entity_type,
        salience=salience,
        mention_count=mentions,
        source_url=url,
    )


def _canonical(lemma: str, doc_count: int, avg_salience: float) -> CanonicalEntity:
    return CanonicalEntity(
        lemma=lemma,
        type="OTHER",
        total_salience=avg_salience * doc_count,
        doc_count=doc_count,
        total_mentions=doc_count,
        sources=[f"https://site{i}.example" for i in range(doc_count)],
        avg_salience=avg_salience,
        original_forms=[lemma],
    )


def test_lesson_forms_merge_across_documents():
    aggregate = aggregate_entities(
        {
            "https://a.example": [_mention("уроки", 0.2, "https://a.example", "EVENT")],
            "https://b.example": [_mention("урок", 0.1, "https://b.example", "EVENT")],
        },
        lang="ru",
    )

    assert len(aggregate) == 1
    entity = aggregate[0]
    assert entity.lemma == "урок"
    assert entity.doc_count == 2
    assert entity.total_salience == pytest.approx(0.3)
    assert entity.avg_salience == pytest.approx(0.15)
    assert entity.sources == ["https://a.example", "https://b.example"]
    assert entity.original_forms == ["уроки", "урок"]
    assert entity.forms_count == 2


def test_repeated_lemma_in_one_document_counts_one_document():
    url = "https://a.example"
    aggregate = aggregate_entities(
        {url: [_mention("Google", 0.1, url, mentions=2), _mention("google", 0.2, url, mentions=3)]},
    )

    entity = aggregate[0]
    assert entity.doc_count == 1
    assert entity.sources == [url]
    assert entity.total_mentions == 5
    assert entity.total_salience == pytest.approx(0.3)
    assert entity.avg_salience == pytest.approx(entity.total_salience / entity.doc_count)
    assert entity.original_forms == ["Google", "google"]


def test_ranking_prefers_breadth_then_salience_then_lemma():
    per_url = {
        "u1": [_mention("alpha", 0.9, "u1"), _mention("beta", 0.1, "u1"), _mention("delta", 0.3, "u1")],
        "u2": [_mention("beta", 0.1, "u2"), _mention("gamma", 0.3, "u2")],
    }
    aggregate = aggregate_entities(per_url)

    assert [e.lemma for e in aggregate] == ["beta", "alpha", "delta", "gamma"]
    assert all(e.doc_count <= len(per_url) for e in aggregate)


def test_aggregation_skips_excluded_types_and_truncates():
    per_url = {
        "u1": [_mention(f"entity{i}", 0.01 * (i + 1), "u1") for i in range(5)]
        + [_mention("12345", 0.5, "u1", "NUMBER")],
    }
    aggregate = aggregate_entities(per_url, limit=3)

    assert len(aggregate) == 3
    assert all(e.type != "NUMBER" for e in aggregate)


def test_aggregate_of_nothing_is_empty():
    assert aggregate_entities({}) == []


def test_filter_mentions_drops_noise():
    url = "https://a.example"
    kept = filter_mentions(
        [
            _mention("Skillbox", 0.2, url, "ORGANIZATION"),
            _mention("42", 0.2, url, "NUMBER"),
            _mention("x", 0.2, url),
            _mention("2024", 0.2, url, "DATE"),
            _mention("rare", 0.0005, url),
            _mention("+7 999", 0.2, url, "PHONE_NUMBER"),
        ]
    )
    assert [m.name for m in kept] == ["Skillbox"]


@pytest.mark.parametrize(
    "doc_count,avg_salience,expected",
    [
        (3, 0.01, "high"),
        (5, 0.2, "high"),
        (3, 0.009, "medium"),
        (2, 0.005, "medium"),
        (2, 0.004, "low"),
        (1, 0.9, "low"),
    ],
)
def test_classify_importance_tiers(doc_count, avg_salience, expected):
    assert classify_importance(_canonical("topic", doc_count, avg_salience)) == expected


def test_compare_requires_user_page():
    with pytest.raises(ComparisonError):
        compare_with_top10(None, [])


def test_compare_finds_missing_entities_by_lemma():
    aggregate = [
        _canonical("урок", 4, 0.05),
        _canonical("грамматика", 3, 0.02),
        _canonical("skyeng", 1, 0.5),
        _canonical("преподаватель", 2, 0.006),
    ]
    user_page = UserPageAnalysis(
        url="https://mine.example",
        entities=[_mention("Уроки", 0.3, "https://mine.example", "EVENT")],
        word_count=320,
        entity_count=1,
    )

    comparison = compare_with_top10(user_page, aggregate, lang="ru")

    assert [e.lemma for e in comparison.missing_entities] == ["skyeng", "грамматика", "преподаватель"]
    assert [g.importance for g in comparison.entity_gaps] == ["low", "high", "medium"]
    assert all(g.recommendation for g in comparison.entity_gaps)
    assert comparison.top_entities == aggregate
    assert any("500" in r for r in comparison.recommendations)
    assert any("critical" in r for r in comparison.recommendations)


def test_compare_caps_gap_list():
    aggregate = [_canonical(f"topic{i}", 2, 0.01) for i in range(15)]
    user_page = UserPageAnalysis(url="https://mine.example", word_count=900, entity_count=20)

    comparison = compare_with_top10(user_page, aggregate, gap_limit=10)

    assert len(comparison.missing_entities) == 10
    assert len(comparison.entity_gaps) == 10
