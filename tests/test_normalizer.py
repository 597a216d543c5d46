from __future__ import annotations

import pytest

from serp_entities.research_core.entities.normalizer import (
    HeuristicNormalizer,
    default_normalizer,
)


@pytest.mark.parametrize(
    "form",
    ["урок", "уроки", "урока", "уроков", "уроками", "Уроки"],
)
def test_inflected_forms_of_lesson_share_a_lemma(form):
    assert default_normalizer.normalize(form, "ru") == "урок"


def test_normalize_strips_edge_punctuation_and_joins_tokens():
    assert default_normalizer.normalize("  «Яндекс Практикум»  ", "ru") == "яндекс практикум"


def test_normalize_unifies_yo():
    assert default_normalizer.normalize("ёлка") == default_normalizer.normalize("елка")


def test_normalize_empty_input():
    assert default_normalizer.normalize("") == ""
    assert default_normalizer.normalize("   ") == ""


def test_short_tokens_pass_through_lowercased():
    assert default_normalizer.lemmatize("AI", "en") == "ai"
    assert default_normalizer.lemmatize("ЕГЭ", "ru") == "егэ"


def test_english_suffix_stripping_uses_latin_rules():
    assert default_normalizer.lemmatize("lessons", "ru") == "lesson"
    assert default_normalizer.lemmatize("lesson", "en") == "lesson"


def test_stem_never_shorter_than_three_characters():
    assert default_normalizer.lemmatize("дома") == "дом"
    assert default_normalizer.lemmatize("домами") == "дом"


@pytest.mark.parametrize(
    "word",
    [
        "уроки",
        "страницами",
        "преподавателей",
        "английского",
        "грамматике",
        "платформами",
        "учебники",
        "courses",
        "learning",
        "Skillbox",
        "running",
        "practicing",
    ],
)
def test_lemmatize_is_idempotent(word):
    once = default_normalizer.lemmatize(word)
    assert default_normalizer.lemmatize(once) == once


def test_normalize_is_idempotent_for_multiword_names():
    name = "Онлайн-курсы английского языка"
    once = default_normalizer.normalize(name, "ru")
    assert default_normalizer.normalize(once, "ru") == once


def test_ending_lists_are_tunable():
    normalizer = HeuristicNormalizer(russian_endings=("ы",), lemma_forms={})
    assert normalizer.lemmatize("сайты") == "сайт"
    assert normalizer.lemmatize("сайта") == "сайта"


def test_correct_type_prefers_correction_table():
    assert default_normalizer.correct_type("PERSON", "Уроки") == "EVENT"
    assert default_normalizer.correct_type("PERSON", "сайт") == "OTHER"


def test_correct_type_normalizes_provider_types():
    assert default_normalizer.correct_type("organization", "Google") == "ORGANIZATION"
    assert default_normalizer.correct_type("SOMETHING_NEW", "Google") == "OTHER"
