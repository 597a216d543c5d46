"""Built-in search results served while the search provider is overloaded."""

from __future__ import annotations

from serp_entities.models.schemas import SearchResult

COURSE_KEYWORDS = ("курс", "обучение", "учеба", "course", "learn", "training")
AUDIO_KEYWORDS = ("наушник", "headphone", "audio", "earbud")
PHONE_KEYWORDS = ("телефон", "смартфон", "phone", "smartphone")


def _results(rows: list[tuple[str, str, str]]) -> list[SearchResult]:
    return [
        SearchResult(position=index, title=title, url=url, snippet=snippet)
        for index, (title, url, snippet) in enumerate(rows, start=1)
    ]


COURSE_RESULTS = _results(
    [
        (
            "Онлайн-курсы английского языка - Skillbox",
            "https://eng.skillbox.ru/",
            "Вы быстро начнете говорить по-английски в школе иностранных языков Skillbox, "
            "благодаря нашей особой методике. Обучение на результат!",
        ),
        (
            "Онлайн-курсы английского языка - Яндекс Практикум",
            "https://practicum.yandex.ru/english/",
            "Онлайн-курсы английского языка от Яндекс Практикума: гибкая и эффективная программа "
            "для любого уровня, личный преподаватель, много разговорной практики.",
        ),
        (
            "Курсы английского языка онлайн - Skyeng",
            "https://skyeng.ru/programs/",
            "Начните говорить по-английски свободно. Определим уровень и гарантированно его "
            "поднимем за 3 месяца.",
        ),
        (
            "Бесплатные курсы английского языка - USAHello",
            "https://usahello.org/ru/education/learn-english/",
            "Полный список лучших бесплатных курсов английского языка онлайн и другие полезные "
            "ресурсы. Найдите сайты и приложения, которые помогут вам выучить язык.",
        ),
        (
            "Курсы по теме Английский язык - Udemy",
            "https://www.udemy.com/ru/topic/english-language/",
            "Курсы по английскому языку помогут вам отточить навыки коммуникации посредством "
            "изучения грамматики, лексики и произношения.",
        ),
    ]
)

AUDIO_RESULTS = _results(
    [
        (
            "Best Wireless Headphones 2024 - Top Picks & Reviews",
            "https://example.com/best-wireless-headphones-2024",
            "Discover the best wireless headphones for 2024. Our experts tested Sony, Bose, "
            "Apple AirPods and more to find the top performers.",
        ),
        (
            "Sony WH-1000XM5 vs Bose QC45: Which is Better?",
            "https://example.com/sony-vs-bose-headphones-comparison",
            "Detailed comparison of Sony WH-1000XM5 and Bose QuietComfort 45. Noise cancellation, "
            "sound quality, battery life tested.",
        ),
        (
            "Apple AirPods Pro 2 Review - Premium Wireless Earbuds",
            "https://example.com/apple-airpods-pro-2-review",
            "Apple AirPods Pro 2 review: active noise cancellation, spatial audio, and improved "
            "battery life in Apple's premium earbuds.",
        ),
        (
            "Wireless Headphones Buying Guide - What to Look For",
            "https://example.com/wireless-headphones-buying-guide",
            "Complete guide to buying wireless headphones. Learn about noise cancellation, "
            "battery life, codecs, and comfort features.",
        ),
        (
            "Budget Wireless Headphones Under $100 - Best Options",
            "https://example.com/budget-wireless-headphones-under-100",
            "Best budget wireless headphones under $100. Great sound quality and features "
            "without breaking the bank.",
        ),
    ]
)

PHONE_RESULTS = _results(
    [
        (
            "Лучшие смартфоны 2024 - Топ обзоры и сравнения",
            "https://example.com/best-smartphones-2024",
            "Обзор лучших смартфонов 2024 года. Сравнение iPhone, Samsung Galaxy, Google Pixel "
            "и других флагманских моделей.",
        ),
        (
            "iPhone 15 vs Samsung Galaxy S24 - Что выбрать?",
            "https://example.com/iphone-vs-samsung-comparison",
            "Детальное сравнение iPhone 15 и Samsung Galaxy S24. Камера, производительность, "
            "батарея и цена.",
        ),
        (
            "Бюджетные смартфоны до 30000 рублей - Топ выбор",
            "https://example.com/budget-smartphones-under-30k",
            "Лучшие бюджетные смартфоны до 30000 рублей. Отличное соотношение цена-качество "
            "без переплаты.",
        ),
    ]
)

GENERAL_RESULTS = _results(
    [
        (
            "Поисковая система Google - Официальный сайт",
            "https://www.google.com/",
            "Поисковая система Google. Быстрый и точный поиск по всему интернету.",
        ),
        (
            "Википедия - Свободная энциклопедия",
            "https://ru.wikipedia.org/",
            "Википедия - свободная энциклопедия, которую может редактировать каждый. "
            "Миллионы статей на разных языках.",
        ),
    ]
)


def fixture_results(query: str) -> list[SearchResult]:
    """Pick a fixture set by coarse keyword intent of the query."""
    lowered = (query or "").lower()
    if any(keyword in lowered for keyword in COURSE_KEYWORDS):
        return list(COURSE_RESULTS)
    if any(keyword in lowered for keyword in AUDIO_KEYWORDS):
        return list(AUDIO_RESULTS)
    if any(keyword in lowered for keyword in PHONE_KEYWORDS):
        return list(PHONE_RESULTS)
    return list(GENERAL_RESULTS)
