from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup
from loguru import logger

from serp_entities.errors import ExtractionError

IGNORE_FRAGMENTS = (
    "ad",
    "ads",
    "advert",
    "advertisement",
    "banner",
    "sidebar",
    "menu",
    "nav",
    "navigation",
    "social",
    "share",
    "comments",
    "related",
    "recommended",
    "sponsored",
    "widget",
    "popup",
    "modal",
    "overlay",
    "cookie",
)

# Matches a class/id token such as "ad", "cookie-banner" or "share_bar".
_IGNORE_TOKEN_RE = re.compile(
    r"(?:^|[-_])(?:" + "|".join(IGNORE_FRAGMENTS) + r")(?:[-_]|$)",
    re.IGNORECASE,
)

UNWANTED_SELECTORS = (
    "script",
    "style",
    "nav",
    "header",
    "footer",
    "aside",
    "noscript",
    "iframe",
    "form",
    '[role="banner"]',
    '[role="navigation"]',
    '[role="complementary"]',
    "[data-ad]",
    "[data-ads]",
    ".hidden",
    ".sr-only",
    ".visually-hidden",
    ".screen-reader-only",
)

CONTENT_SELECTORS = (
    "main",
    "article",
    ".content",
    ".post",
    ".entry",
    ".article-content",
    ".post-content",
    ".main-content",
)

TITLE_SELECTORS = (
    "h1",
    "title",
    ".title",
    ".headline",
    ".post-title",
    ".article-title",
)


@dataclass(slots=True)
class ExtractedText:
    title: Optional[str]
    text: str
    method: str
    word_count: int


def clean_text(text: str) -> str:
    """Strip markup and code residue that survives DOM text extraction."""
    text = re.sub(r"<[^>]*>", " ", text)
    text = re.sub(r"javascript:", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"function\s*\([^)]*\)\s*\{[^}]*\}", " ", text)
    text = re.sub(r"@[^{\s]*\s*\{[^}]*\}", " ", text)
    text = re.sub(r"\{[^}]*\}", " ", text)
    text = re.sub(r"https?://\S+", " ", text)
    text = re.sub(r"www\.\S+", " ", text)
    text = re.sub(r"\S+@\S+", " ", text)
    text = re.sub(r"[^\w\s\-.,!?();:]", " ", text)
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\s+([.,!?;:])", r"\1", text)
    return text.strip()


def prepare_for_nlp(text: str) -> str:
    """Remove tokens that only add noise for entity extraction."""
    text = re.sub(r"\b[A-ZА-ЯЁ]{5,}\b", " ", text)
    text = re.sub(r"\d{4,}", " ", text)
    text = re.sub(r"\b(?=[a-f0-9]*\d)[a-f0-9]{8,}\b", " ", text, flags=re.IGNORECASE)
    text = re.sub(r"\b(\w+)(?:\s+\1\b)+", r"\1", text, flags=re.IGNORECASE)
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\s+([.,!?;:])", r"\1", text)
    return text.strip()


def truncate_at_sentence(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text

    sentences = re.split(r"(?<=[.!?])\s+", text)
    kept: list[str] = []
    length = 0
    for sentence in sentences:
        added = len(sentence) + (1 if kept else 0)
        if length + added > max_chars:
            break
        kept.append(sentence)
        length += added

    if not kept:
        return text[:max_chars]
    return " ".join(kept)


def count_words(text: str) -> int:
    return len(text.split())


def _has_ignored_token(tag) -> bool:
    if tag.attrs is None:
        return False
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    tokens = list(classes)
    tag_id = tag.get("id")
    if isinstance(tag_id, str):
        tokens.append(tag_id)
    return any(_IGNORE_TOKEN_RE.search(token) for token in tokens)


def extract_title(soup: BeautifulSoup) -> Optional[str]:
    for selector in TITLE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        title = " ".join(element.get_text(" ").split())
        if 5 < len(title) < 200:
            return title
    return None


class ExtractService:
    """Main-content extraction: readability first, DOM heuristics as fallback."""

    def __init__(
        self,
        *,
        primary: str = "readability",
        max_chars: int = 150000,
        min_article_chars: int = 500,
        max_elements: int = 2000,
        min_primary_chars: int = 200,
    ):
        self.primary = primary.lower().strip()
        self.max_chars = max(int(max_chars), 1000)
        self.min_article_chars = int(min_article_chars)
        self.max_elements = int(max_elements)
        self.min_primary_chars = int(min_primary_chars)

    def extract(self, raw_html: str, url: str) -> ExtractedText:
        soup = BeautifulSoup(raw_html, "html.parser")

        primary_title: Optional[str] = None
        primary_text = ""
        element_count = len(soup.find_all(True))
        if element_count <= self.max_elements:
            primary_title, primary_text = self._extract_primary(raw_html, url)
        else:
            logger.debug(f"Skipping {self.primary} for {url}: {element_count} elements")

        if len(primary_text) > self.min_primary_chars:
            method = self.primary
            title = primary_title or extract_title(soup)
            text = primary_text
        else:
            method = "heuristic"
            title = extract_title(soup)
            text = self._extract_heuristic(soup, url)

        cleaned = prepare_for_nlp(clean_text(text))
        return ExtractedText(
            title=title,
            text=truncate_at_sentence(cleaned, self.max_chars),
            method=method,
            word_count=count_words(cleaned),
        )

    def _extract_primary(self, raw_html: str, url: str) -> tuple[Optional[str], str]:
        if self.primary == "trafilatura":
            return None, self._extract_trafilatura(raw_html, url)
        return self._extract_readability(raw_html, url)

    def _extract_readability(self, raw_html: str, url: str) -> tuple[Optional[str], str]:
        from readability import Document

        try:
            doc = Document(
                raw_html,
                url=url,
                retry_length=self.min_article_chars,
                negative_keywords=list(IGNORE_FRAGMENTS),
            )
            summary_html = doc.summary(html_partial=True)
            title = doc.short_title() or None
        except Exception as exc:
            logger.debug(f"Readability failed for {url}: {exc}")
            return None, ""
        text = BeautifulSoup(summary_html, "html.parser").get_text(" ")
        return title, " ".join(text.split())

    def _extract_trafilatura(self, raw_html: str, url: str) -> str:
        import trafilatura

        extracted = trafilatura.extract(raw_html, url=url, output_format="txt")
        return " ".join(extracted.split()) if isinstance(extracted, str) else ""

    def _extract_heuristic(self, soup: BeautifulSoup, url: str) -> str:
        for selector in UNWANTED_SELECTORS:
            for element in soup.select(selector):
                if not element.decomposed:
                    element.decompose()
        for element in soup.find_all(_has_ignored_token):
            if element.decomposed or element.name in ("html", "body", "main", "article"):
                continue
            element.decompose()

        container = None
        for selector in CONTENT_SELECTORS:
            container = soup.select_one(selector)
            if container is not None:
                break
        if container is None:
            container = soup.body
        if container is None:
            raise ExtractionError("No content found on the page", url=url)

        return container.get_text(" ")
