# File: unveil_seo/filters/content.py
"""Content checks applied to raw pages before they are promoted to the index."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from unveil_seo.filters.urlfilter import exclusion_reason

__all__: Sequence[str] = (
    "MIN_TEXT_CHARS",
    "ContentFilterStats",
    "is_pagination_title",
    "validate_page_content",
    "filter_raw_pages",
)

MIN_TEXT_CHARS = 3

_PAGE_N_RE = re.compile(r"page\s+\d+(\s+of\s+\d+)?", re.IGNORECASE)


def is_pagination_title(title: Optional[str]) -> bool:
    """Titles like ``Page 2``, ``Page 3 of 12`` or containing the bare word ``page``."""
    if not title:
        return False
    if "page" in title.lower().split():
        return True
    return bool(_PAGE_N_RE.search(title))


def validate_page_content(page: Mapping[str, Any]) -> Optional[str]:
    """Reason a raw page is unfit for the index, ``None`` when it is fine."""
    status = page.get("status_code")
    if status is not None and int(status) != 200:
        return f"Status code: {status}"
    combined = " ".join(t for t in ((page.get(k) or "").strip() for k in ("title", "h1", "meta_description")) if t)
    if not combined:
        return "No embeddable text content"
    if len(combined) < MIN_TEXT_CHARS:
        return f"Content too short ({len(combined)} chars)"
    if is_pagination_title(page.get("title")):
        return "Pagination page detected in title"
    return None


@dataclass(slots=True)
class ContentFilterStats:
    total: int = 0
    kept: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)
    examples: Dict[str, List[str]] = field(default_factory=dict)

    def record(self, reason: str, url: str, *, max_examples: int = 3) -> None:
        key = reason.split(":", 1)[0]
        self.reasons[key] = self.reasons.get(key, 0) + 1
        samples = self.examples.setdefault(key, [])
        if len(samples) < max_examples:
            samples.append(url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "kept": self.kept,
            "excluded": self.total - self.kept,
            "reasons": dict(self.reasons),
            "examples": {k: list(v) for k, v in self.examples.items()},
        }


def filter_raw_pages(
    pages: Iterable[Mapping[str, Any]], **url_options: Any
) -> tuple[List[Mapping[str, Any]], ContentFilterStats]:
    """Split raw pages into promotable ones and statistics about the rest.

    Pages flagged ``excluded`` by a reviewer are skipped, then content and URL
    rules are applied.
    """
    stats = ContentFilterStats()
    kept: List[Mapping[str, Any]] = []
    for page in pages:
        stats.total += 1
        url = page.get("url") or ""
        if page.get("excluded"):
            stats.record("Excluded by reviewer", url)
            continue
        reason = validate_page_content(page) or exclusion_reason(
            url, page.get("meta_description"), **url_options
        )
        if reason:
            stats.record(reason, url)
            continue
        kept.append(page)
        stats.kept += 1
    return kept, stats
