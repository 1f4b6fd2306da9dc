# File: unveil_seo/parser/markdown_parser.py
"""
Нормализация страниц, полученных от API краулера (markdown + metadata).

Из документа извлекаются заголовки H1/H2/H3, ключевые слова (топ-15 по
частоте), короткий фрагмент контента и число слов. Навигационный мусор до
первого заголовка ``# `` отбрасывается.
"""
from __future__ import annotations

import re
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence

from unveil_seo.crawler.models import ProcessedPage
from unveil_seo.linking.stopwords import stop_words
from unveil_seo.parser.html_parser import parse_html
from unveil_seo.utils import collapse_whitespace, truncate_on_word

__all__: Sequence[str] = (
    "clean_markdown",
    "extract_headings",
    "extract_primary_keywords",
    "extract_content_snippet",
    "clean_inline",
    "count_words",
    "document_url",
    "process_page",
)

MAX_KEYWORDS = 15
SNIPPET_LENGTH = 200
SNIPPET_MIN_CUT = 150
FALLBACK_WINDOW = 500
MIN_PARAGRAPH = 50

_H1_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)
_H2_RE = re.compile(r"^##\s+(.+?)\s*#*\s*$", re.MULTILINE)
_H3_RE = re.compile(r"^###\s+(.+?)\s*#*\s*$", re.MULTILINE)
_H2_LINE_RE = re.compile(r"^##\s", re.MULTILINE)
_IMAGE_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_LINK_RE = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_URL_RE = re.compile(r"https?://\S+")
_FORMAT_RE = re.compile(r"[*_`]+")
_HEADING_MARK_RE = re.compile(r"^#{1,6}\s*", re.MULTILINE)
_NON_WORD_RE = re.compile(r"[^\w\s-]|_")
_DIGITS_RE = re.compile(r"^\d+$")


def clean_markdown(markdown: str) -> str:
    """Drop everything before the first level-1 heading (menus, breadcrumbs)."""
    if not markdown:
        return ""
    if markdown.startswith("# "):
        return markdown
    idx = markdown.find("\n# ")
    return markdown[idx + 1:] if idx >= 0 else markdown


def extract_headings(markdown: str) -> Dict[str, Any]:
    h1 = _H1_RE.search(markdown)
    return {
        "h1": clean_inline(h1.group(1)) if h1 else "",
        "h2_tags": [clean_inline(m) for m in _H2_RE.findall(markdown)],
        "h3_tags": [clean_inline(m) for m in _H3_RE.findall(markdown)],
    }


def clean_inline(text: str) -> str:
    """Remove images, keep link labels, strip emphasis markers and newlines."""
    text = _IMAGE_RE.sub("", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _FORMAT_RE.sub("", text)
    return collapse_whitespace(text)


def _plain_words(text: str) -> List[str]:
    text = _HEADING_MARK_RE.sub("", text)
    text = _IMAGE_RE.sub(" ", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _URL_RE.sub(" ", text)
    return _NON_WORD_RE.sub(" ", text.lower()).split()


def extract_primary_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """Most frequent meaningful words (longer than 3 characters, no stop words)."""
    stops = stop_words()
    counter = Counter(
        w.strip("-")
        for w in _plain_words(text)
        if len(w.strip("-")) > 3 and w not in stops and not _DIGITS_RE.match(w)
    )
    return [word for word, _count in counter.most_common(limit)]


def extract_content_snippet(markdown: str) -> str:
    """Intro text between the H1 and the first H2, else the first real paragraph."""
    h1 = _H1_RE.search(markdown)
    if h1:
        rest = markdown[h1.end():]
        h2 = _H2_LINE_RE.search(rest)
        intro = rest[:h2.start()] if h2 else rest[:FALLBACK_WINDOW]
        snippet = clean_inline(intro)
        if snippet:
            return truncate_on_word(snippet, SNIPPET_LENGTH, min_cut=SNIPPET_MIN_CUT)

    for paragraph in re.split(r"\n\s*\n", markdown):
        if paragraph.lstrip().startswith("#"):
            continue
        cleaned = clean_inline(paragraph)
        if len(cleaned) > MIN_PARAGRAPH:
            return truncate_on_word(cleaned, SNIPPET_LENGTH, min_cut=SNIPPET_MIN_CUT)
    return ""


def count_words(text: str) -> int:
    return len(_plain_words(text))


def _first_str(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return str(value).strip() if value else ""


def document_url(document: Mapping[str, Any]) -> Optional[str]:
    """Canonical URL of a crawl document: ``sourceURL``, then ``url``."""
    metadata = document.get("metadata") or {}
    url = _first_str(metadata.get("sourceURL")) or _first_str(metadata.get("url")) or _first_str(document.get("url"))
    return url or None


def _from_html(url: str, html: str, metadata: Mapping[str, Any]) -> ProcessedPage:
    parsed = parse_html(html, url)
    return ProcessedPage(
        url=url,
        title=_first_str(metadata.get("title")) or parsed.title,
        meta_description=_first_str(metadata.get("description")) or parsed.meta_description,
        h1=parsed.h1,
        h2_tags=parsed.h2_tags,
        h3_tags=parsed.h3_tags,
        primary_keywords=extract_primary_keywords(parsed.text),
        word_count=len(parsed.text.split()),
        content_snippet=truncate_on_word(parsed.text, SNIPPET_LENGTH, min_cut=SNIPPET_MIN_CUT),
    )


def process_page(document: Mapping[str, Any]) -> ProcessedPage:
    """Build a :class:`ProcessedPage` from one crawl document.

    Raises ``ValueError`` when the document has no URL.
    """
    url = document_url(document)
    if not url:
        raise ValueError("crawl document has no URL")
    metadata = document.get("metadata") or {}

    markdown = document.get("markdown") or ""
    if not markdown.strip() and document.get("html"):
        return _from_html(url, document["html"], metadata)

    content = clean_markdown(markdown)
    headings = extract_headings(content)
    return ProcessedPage(
        url=url,
        title=_first_str(metadata.get("title")) or headings["h1"],
        meta_description=_first_str(metadata.get("description")),
        h1=headings["h1"],
        h2_tags=headings["h2_tags"],
        h3_tags=headings["h3_tags"],
        primary_keywords=extract_primary_keywords(content),
        word_count=count_words(content),
        content_snippet=extract_content_snippet(content),
    )
