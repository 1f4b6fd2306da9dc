# File: unveil_seo/filters/urlfilter.py
"""URL / page exclusion rules.

Decides whether a crawled URL should stay out of the index. The rules form a
flat ordered list of pure predicates; each returns a human-readable reason or
``None`` and the first reason found wins:

1. forum language in the meta description (first-person pronouns, appeals
   for help, SMS slang, informal punctuation);
2. site-specific path substrings (``forum``, ``tags`` by default);
3. generic excluded path segments (``admin``, ``checkout``, ``search``...);
4. excluded file extensions (``.pdf``, ``.zip``...);
5. excluded query parameters (tracking, pagination, export...);
6. path deeper than six segments;
7. a purely numeric segment longer than six digits.

The word lists live in ``rules/`` next to this module.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlsplit

from unveil_seo.utils import read_wordlist

__all__: Sequence[str] = (
    "UrlContext",
    "DEFAULT_SITE_PATTERNS",
    "exclusion_reason",
    "should_exclude_url",
    "filter_indexable_urls",
    "is_forum_content",
    "forum_indicator",
    "RULES",
)

RULES_DIR = Path(__file__).resolve().parent / "rules"

DEFAULT_SITE_PATTERNS: Tuple[str, ...] = ("forum", "tags")
DEFAULT_MAX_DEPTH = 6
DEFAULT_NUMERIC_ID = 6

_APOSTROPHES_RE = re.compile(r"[’‘ʼ]")
_FORUM_WORD_STRIP_RE = re.compile(r"[^\w'-]")
_DIGITS_RE = re.compile(r"^\d+$")


@lru_cache(maxsize=None)
def _excluded_segments() -> FrozenSet[str]:
    segments = set()
    for pattern in read_wordlist(RULES_DIR / "excluded_paths.txt"):
        parts = [p for p in pattern.lower().split("/") if p]
        if parts:
            segments.add(parts[0])
    return frozenset(segments)


@lru_cache(maxsize=None)
def _excluded_extensions() -> Tuple[str, ...]:
    return tuple(e.lower() for e in read_wordlist(RULES_DIR / "excluded_extensions.txt"))


@lru_cache(maxsize=None)
def _excluded_query_params() -> Tuple[str, ...]:
    return tuple(p.lower() for p in read_wordlist(RULES_DIR / "excluded_query_params.txt"))


@lru_cache(maxsize=None)
def _forum_indicators() -> Tuple[str, ...]:
    return tuple(
        _APOSTROPHES_RE.sub("'", i.lower()) for i in read_wordlist(RULES_DIR / "forum_indicators.txt")
    )


@dataclass(frozen=True, slots=True)
class UrlContext:
    """Pre-parsed view of a URL handed to every rule."""

    url: str
    path: str
    segments: Tuple[str, ...]
    query_keys: Tuple[str, ...]
    meta_description: str
    site_patterns: Tuple[str, ...]
    max_depth: int
    numeric_id_length: int


Rule = Callable[[UrlContext], Optional[str]]


# --------------------------------------------------------------------------- #
# Forum heuristics                                                            #
# --------------------------------------------------------------------------- #


def _has_standalone_phrase(words: Sequence[str], raw_words: Sequence[str], phrase: str) -> bool:
    parts = phrase.split()
    if all(not re.search(r"\w", p) for p in parts):
        # punctuation indicators ("!!!", "???") are matched against raw tokens
        return any(phrase in w for w in raw_words)
    size = len(parts)
    for i in range(len(words) - size + 1):
        if list(words[i:i + size]) == parts:
            return True
    return False


def forum_indicator(meta_description: Optional[str]) -> Optional[str]:
    """First forum indicator found as standalone word(s) in *meta_description*."""
    if not meta_description:
        return None
    text = _APOSTROPHES_RE.sub("'", meta_description.lower())
    raw_words = text.split()
    words = [_FORUM_WORD_STRIP_RE.sub("", w) for w in raw_words]
    for indicator in _forum_indicators():
        if _has_standalone_phrase(words, raw_words, indicator):
            return indicator
    return None


def is_forum_content(meta_description: Optional[str]) -> bool:
    return forum_indicator(meta_description) is not None


# --------------------------------------------------------------------------- #
# Rules                                                                       #
# --------------------------------------------------------------------------- #


def _forum_rule(ctx: UrlContext) -> Optional[str]:
    indicator = forum_indicator(ctx.meta_description)
    return f"Forum '{indicator}' detected" if indicator else None


def _site_specific_rule(ctx: UrlContext) -> Optional[str]:
    pattern = next((p for p in ctx.site_patterns if p in ctx.path), None)
    return f"Site-specific exclusion: {pattern}" if pattern else None


def _segment_rule(ctx: UrlContext) -> Optional[str]:
    excluded = _excluded_segments()
    segment = next((s for s in ctx.segments if s in excluded), None)
    return f"Excluded pattern: /{segment}" if segment else None


def _extension_rule(ctx: UrlContext) -> Optional[str]:
    ext = next((e for e in _excluded_extensions() if ctx.path.endswith(e)), None)
    return f"Excluded extension: {ext}" if ext else None


def _query_param_rule(ctx: UrlContext) -> Optional[str]:
    excluded = _excluded_query_params()
    param = next((p for p in excluded if p in ctx.query_keys), None)
    return f"Excluded query param: {param}" if param else None


def _depth_rule(ctx: UrlContext) -> Optional[str]:
    if len(ctx.segments) > ctx.max_depth:
        return f"Too many path segments: {len(ctx.segments)}"
    return None


def _numeric_id_rule(ctx: UrlContext) -> Optional[str]:
    segment = next(
        (s for s in ctx.segments if _DIGITS_RE.match(s) and len(s) > ctx.numeric_id_length),
        None,
    )
    return f"Long numeric ID: {segment}" if segment else None


RULES: Tuple[Tuple[str, Rule], ...] = (
    ("forum", _forum_rule),
    ("site_specific", _site_specific_rule),
    ("segment", _segment_rule),
    ("extension", _extension_rule),
    ("query_param", _query_param_rule),
    ("depth", _depth_rule),
    ("numeric_id", _numeric_id_rule),
)


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #


def _build_context(
    url: str,
    meta_description: Optional[str],
    site_patterns: Iterable[str],
    max_depth: int,
    numeric_id_length: int,
) -> Optional[UrlContext]:
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    path = parts.path.lower()
    return UrlContext(
        url=url,
        path=path,
        segments=tuple(s for s in path.split("/") if s),
        query_keys=tuple(k.lower() for k, _ in parse_qsl(parts.query, keep_blank_values=True)),
        meta_description=meta_description or "",
        site_patterns=tuple(p.lower() for p in site_patterns),
        max_depth=max_depth,
        numeric_id_length=numeric_id_length,
    )


def exclusion_reason(
    url: Optional[str],
    meta_description: Optional[str] = None,
    *,
    site_patterns: Iterable[str] = DEFAULT_SITE_PATTERNS,
    max_depth: int = DEFAULT_MAX_DEPTH,
    numeric_id_length: int = DEFAULT_NUMERIC_ID,
) -> Optional[str]:
    """Reason why *url* must not be indexed, or ``None`` when it may be."""
    if not url or not url.strip():
        return "Empty URL"
    ctx = _build_context(url, meta_description, site_patterns, max_depth, numeric_id_length)
    if ctx is None:
        return "Invalid URL format"
    for _name, rule in RULES:
        reason = rule(ctx)
        if reason is not None:
            return reason
    return None


def should_exclude_url(url: Optional[str], meta_description: Optional[str] = None, **options) -> bool:
    return exclusion_reason(url, meta_description, **options) is not None


def filter_indexable_urls(
    urls: Iterable[str],
    meta_descriptions: Optional[Sequence[Optional[str]]] = None,
    **options,
) -> List[str]:
    """Keep only URLs that pass every rule; descriptions are matched by position."""
    metas = list(meta_descriptions or [])
    kept = []
    for index, url in enumerate(urls):
        meta = metas[index] if index < len(metas) else None
        if not should_exclude_url(url, meta, **options):
            kept.append(url)
    return kept
