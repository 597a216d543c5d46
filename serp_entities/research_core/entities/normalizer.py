"""Heuristic lemmatization of entity names.

Groups word forms such as "уроки"/"урока"/"урок" under one canonical lemma
using a small dictionary of domain nouns and longest-ending suffix stripping.
This is not morphological analysis; ``HeuristicNormalizer`` sits behind the
``Normalizer`` protocol so a real stemmer can replace it.
"""

from __future__ import annotations

import re
from typing import Iterable, Mapping, Optional

EDGE_PUNCTUATION = ".,!?;:()[]{}\"'`~@#$%^&*+=|\\/<>«»"

CYRILLIC_RE = re.compile(r"[а-яё]", re.IGNORECASE)
LATIN_RE = re.compile(r"[a-z]", re.IGNORECASE)

# The ending set is a tuning knob, not a fixed rule set.
RUSSIAN_ENDINGS: tuple[str, ...] = (
    # nouns
    "ами", "ями", "ах", "ях", "ов", "ев", "ам", "ям",
    # adjectives and participles
    "ого", "его", "ому", "ему", "ими", "ыми",
    "ой", "ей", "ый", "ий", "ая", "яя", "ое", "ее", "ые", "ие",
    "ом", "ем", "им", "ым",
    # diminutive and short noun endings
    "ок", "ек", "ка", "ку", "ки", "ке", "кой", "кам", "ками",
    "енок", "енка", "енку", "енком", "енке",
    "онок", "онка", "онку", "онком", "онке",
    "а", "я", "у", "ю", "ы", "и", "е", "о",
    # verbs
    "ать", "ять", "еть", "ить", "ть",
    "ал", "ял", "ел", "ил", "ала", "яла", "ела", "ила",
    "али", "яли", "ели", "или",
)

ENGLISH_SUFFIXES: tuple[str, ...] = (
    "ing", "ed", "es", "s", "ly", "er", "est", "ness", "ment", "tion", "sion",
)

# Inflected forms of domain nouns the suffix rules get wrong.
RUSSIAN_LEMMA_FORMS: dict[str, tuple[str, ...]] = {
    "урок": ("урока", "уроку", "уроком", "уроке", "уроки", "уроков", "урокам", "уроками", "уроках"),
    "курс": ("курса", "курсу", "курсом", "курсе", "курсы", "курсов", "курсам", "курсами", "курсах"),
    "сайт": ("сайта", "сайту", "сайтом", "сайте", "сайты", "сайтов", "сайтам", "сайтами", "сайтах"),
    "страница": ("страницы", "странице", "страницу", "страницей", "страниц", "страницам", "страницами", "страницах"),
    "язык": ("языка", "языку", "языком", "языке", "языки", "языков", "языкам", "языками", "языках"),
    "занятие": ("занятия", "занятию", "занятием", "занятии", "занятий", "занятиям", "занятиями", "занятиях"),
    "лекция": ("лекции", "лекцию", "лекцией", "лекций", "лекциям", "лекциями", "лекциях"),
    "тренинг": ("тренинга", "тренингу", "тренингом", "тренинге", "тренинги", "тренингов", "тренингам", "тренингами", "тренингах"),
    "вебинар": ("вебинара", "вебинару", "вебинаром", "вебинаре", "вебинары", "вебинаров", "вебинарам", "вебинарами", "вебинарах"),
    "семинар": ("семинара", "семинару", "семинаром", "семинаре", "семинары", "семинаров", "семинарам", "семинарами", "семинарах"),
    "школа": ("школы", "школе", "школу", "школой", "школ", "школам", "школами", "школах"),
    "преподаватель": ("преподавателя", "преподавателю", "преподавателем", "преподавателе", "преподаватели", "преподавателей", "преподавателям", "преподавателями", "преподавателях"),
    "учитель": ("учителя", "учителю", "учителем", "учителе", "учителей", "учителям", "учителями", "учителях"),
    "ученик": ("ученика", "ученику", "учеником", "ученике", "ученики", "учеников", "ученикам", "учениками", "учениках"),
    "студент": ("студента", "студенту", "студентом", "студенте", "студенты", "студентов", "студентам", "студентами", "студентах"),
    "программа": ("программы", "программе", "программу", "программой", "программ", "программам", "программами", "программах"),
    "обучение": ("обучения", "обучению", "обучением", "обучении"),
    "уровень": ("уровня", "уровню", "уровнем", "уровне", "уровни", "уровней", "уровням", "уровнями", "уровнях"),
    "ресурс": ("ресурса", "ресурсу", "ресурсом", "ресурсе", "ресурсы", "ресурсов", "ресурсам", "ресурсами", "ресурсах"),
    "грамматика": ("грамматики", "грамматике", "грамматику", "грамматикой"),
}


def _build_dictionary(lemma_forms: Mapping[str, Iterable[str]]) -> dict[str, str]:
    dictionary: dict[str, str] = {}
    for lemma, forms in lemma_forms.items():
        dictionary[lemma] = lemma
        for form in forms:
            dictionary[form] = lemma
    return dictionary


# Educational and generic nouns the NLP provider tends to tag as PERSON.
TYPE_CORRECTIONS: dict[str, str] = {
    "урок": "EVENT",
    "уроки": "EVENT",
    "урока": "EVENT",
    "уроков": "EVENT",
    "занятие": "EVENT",
    "занятия": "EVENT",
    "курс": "EVENT",
    "курсы": "EVENT",
    "лекция": "EVENT",
    "лекции": "EVENT",
    "тренинг": "EVENT",
    "тренинги": "EVENT",
    "вебинар": "EVENT",
    "вебинары": "EVENT",
    "семинар": "EVENT",
    "семинары": "EVENT",
    "сайт": "OTHER",
    "сайта": "OTHER",
    "сайтов": "OTHER",
    "сайты": "OTHER",
    "страница": "OTHER",
    "страницы": "OTHER",
    "ресурс": "OTHER",
    "ресурсы": "OTHER",
}

KNOWN_ENTITY_TYPES = frozenset(
    {
        "PERSON",
        "ORGANIZATION",
        "LOCATION",
        "CONSUMER_GOOD",
        "EVENT",
        "WORK_OF_ART",
        "PHONE_NUMBER",
        "ADDRESS",
        "DATE",
        "NUMBER",
        "PRICE",
        "OTHER",
        "UNKNOWN",
    }
)


class HeuristicNormalizer:
    """Dictionary plus suffix-stripping lemmatizer for Russian and English."""

    def __init__(
        self,
        *,
        russian_endings: Iterable[str] = RUSSIAN_ENDINGS,
        english_suffixes: Iterable[str] = ENGLISH_SUFFIXES,
        min_stem: int = 3,
        lemma_forms: Optional[Mapping[str, Iterable[str]]] = None,
        type_corrections: Optional[Mapping[str, str]] = None,
    ):
        # Longest first so "ами" wins over "и".
        self.russian_endings = tuple(sorted(set(russian_endings), key=lambda e: (-len(e), e)))
        self.english_suffixes = tuple(sorted(set(english_suffixes), key=lambda e: (-len(e), e)))
        self.min_stem = max(int(min_stem), 1)
        self.dictionary = _build_dictionary(lemma_forms if lemma_forms is not None else RUSSIAN_LEMMA_FORMS)
        self.type_corrections = dict(type_corrections if type_corrections is not None else TYPE_CORRECTIONS)

    def normalize(self, name: str, lang: str = "ru") -> str:
        if not name:
            return ""
        cleaned = name.strip().strip(EDGE_PUNCTUATION)
        cleaned = cleaned.replace("ё", "е").replace("Ё", "Е")
        tokens = cleaned.split()
        return " ".join(self.lemmatize(token, lang) for token in tokens)

    def lemmatize(self, token: str, lang: str = "ru") -> str:
        word = token.strip().lower().replace("ё", "е")
        if len(word) < self.min_stem:
            return word

        has_cyrillic = bool(CYRILLIC_RE.search(word))
        has_latin = bool(LATIN_RE.search(word))
        if has_cyrillic and has_latin:
            use_russian = lang.lower().startswith("ru")
        elif has_cyrillic:
            use_russian = True
        elif has_latin:
            use_russian = False
        else:
            return word

        if use_russian:
            return self._strip_to_fixed_point(word, self.russian_endings, use_dictionary=True)
        return self._strip_to_fixed_point(word, self.english_suffixes, use_dictionary=False)

    def _strip_to_fixed_point(
        self,
        word: str,
        endings: tuple[str, ...],
        *,
        use_dictionary: bool,
    ) -> str:
        # Repeat until no rule applies so that lemmatize(lemmatize(w)) == lemmatize(w).
        current = word
        while True:
            if use_dictionary and current in self.dictionary:
                return self.dictionary[current]
            stripped = self._strip_once(current, endings)
            if stripped == current:
                return current
            current = stripped

    def _strip_once(self, word: str, endings: tuple[str, ...]) -> str:
        for ending in endings:
            if word.endswith(ending) and len(word) - len(ending) >= self.min_stem:
                return word[: -len(ending)]
        return word

    def correct_type(self, entity_type: str, name: str) -> str:
        corrected = self.type_corrections.get((name or "").lower().strip())
        if corrected:
            return corrected
        normalized = (entity_type or "").upper().strip()
        return normalized if normalized in KNOWN_ENTITY_TYPES else "OTHER"


default_normalizer = HeuristicNormalizer()
