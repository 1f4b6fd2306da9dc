# === FILE: unveil_seo/parser/html_parser.py ===
"""HTML parsing for crawl documents that arrive without markdown.

The crawl API normally returns markdown, but some documents only carry the
rendered HTML. :func:`parse_html` pulls the same SEO fields the markdown path
extracts so both end up as identical page rows:

* title - ``<title>`` text, falling back to the first ``<h1>``;
* meta_description - ``<meta name="description">`` content;
* h1 / h2_tags / h3_tags - heading texts in document order;
* text - visible text with scripts, styles and page chrome removed.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

__all__: Sequence[str] = ("ParsedPage", "parse_html")

_CHROME_TAGS = ("script", "style", "noscript", "template", "nav", "footer", "aside")


@dataclass(slots=True)
class ParsedPage:
    """Lightweight representation of an HTML page."""

    url: str
    title: str
    meta_description: str
    h1: str
    h2_tags: list[str] = field(default_factory=list)
    h3_tags: list[str] = field(default_factory=list)
    text: str = ""


def _heading_texts(soup: BeautifulSoup, name: str) -> list[str]:
    return [t for t in (h.get_text(" ", strip=True) for h in soup.find_all(name)) if t]


def parse_html(html: str, url: str = "") -> ParsedPage:
    soup = BeautifulSoup(html or "", "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    meta_tag = soup.find("meta", attrs={"name": "description"})
    meta_description = ""
    if meta_tag is not None:
        meta_description = str(meta_tag.get("content") or "").strip()

    h1_list = _heading_texts(soup, "h1")
    h2_tags = _heading_texts(soup, "h2")
    h3_tags = _heading_texts(soup, "h3")

    for element in soup(list(_CHROME_TAGS)):
        element.decompose()
    body = soup.body or soup
    text = " ".join(body.stripped_strings)

    return ParsedPage(
        url=url,
        title=title or (h1_list[0] if h1_list else ""),
        meta_description=meta_description,
        h1=h1_list[0] if h1_list else "",
        h2_tags=h2_tags,
        h3_tags=h3_tags,
        text=text,
    )
