# File: unveil_seo/utils.py
"""unveil_seo.utils: Утилиты для словарей, URL и временных меток."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, FrozenSet, List, Sequence, Union
from urllib.parse import urlparse

from unveil_seo.logger import logger

__all__: Sequence[str] = (
    "read_wordlist",
    "load_wordset",
    "is_http_url",
    "utc_now",
    "isoformat",
    "truncate_on_word",
    "collapse_whitespace",
)

_WS_RE = re.compile(r"\s+")


def read_wordlist(path: Union[str, Path]) -> List[str]:
    """Читает wordlist, возвращает непустые строки без пробелов по краям; ``#`` начинает комментарий."""
    p = Path(path)
    if not p.exists():
        logger.error("Wordlist not found: %s", p)
        raise FileNotFoundError(f"Wordlist file not found: {p}")
    words = []
    for line in p.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if entry and not entry.startswith("#"):
            words.append(entry)
    logger.debug("Loaded %d entries from wordlist %s", len(words), p)
    return words


@lru_cache(maxsize=None)
def load_wordset(path: Union[str, Path]) -> FrozenSet[str]:
    """Кэшированное множество слов в нижнем регистре."""
    return frozenset(w.lower() for w in read_wordlist(path))


def is_http_url(url: str) -> bool:
    """True для абсолютного http(s) URL с хостом."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: Any = None) -> str:
    """ISO-8601 строка для хранилища; без аргумента текущее время UTC."""
    if value is None:
        value = utc_now()
    return value.isoformat()


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def truncate_on_word(text: str, limit: int, *, min_cut: int = 0, suffix: str = "...") -> str:
    """Обрезает *text* до *limit* символов, по возможности на границе слова.

    Граница слова используется, только если последний пробел стоит дальше
    позиции *min_cut*.
    """
    if len(text) <= limit:
        return text
    cut = text[:limit]
    last_space = cut.rfind(" ")
    if last_space > min_cut:
        cut = cut[:last_space]
    return cut.rstrip() + suffix
