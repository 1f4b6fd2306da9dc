# File: unveil_seo/linking/stopwords.py
"""Static linguistic tables used to reject uninteresting anchor words.

The tables ship as plain word lists next to this module:

* ``stopwords_fr.txt`` / ``stopwords_en.txt`` - function words, common verbs
  and their conjugations, vague adjectives;
* ``web_terms.txt`` - navigation and boilerplate vocabulary of web pages;
* ``generic_words.txt`` - vague nouns that make poor link targets;
* ``domain_terms.txt`` - vocabulary of the indexed site's topic (gardening),
  rewarded by the anchor scorer.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import FrozenSet, Iterable, List, Sequence

from unveil_seo.utils import load_wordset

__all__: Sequence[str] = (
    "WORDLIST_DIR",
    "stop_words",
    "generic_words",
    "domain_terms",
    "is_stop_word",
    "is_generic_word",
    "is_domain_term",
    "filter_stop_words",
)

WORDLIST_DIR = Path(__file__).resolve().parent / "wordlists"


@lru_cache(maxsize=None)
def stop_words() -> FrozenSet[str]:
    return (
        load_wordset(WORDLIST_DIR / "stopwords_fr.txt")
        | load_wordset(WORDLIST_DIR / "stopwords_en.txt")
        | load_wordset(WORDLIST_DIR / "web_terms.txt")
    )


def generic_words() -> FrozenSet[str]:
    return load_wordset(WORDLIST_DIR / "generic_words.txt")


def domain_terms() -> FrozenSet[str]:
    return load_wordset(WORDLIST_DIR / "domain_terms.txt")


def is_stop_word(word: str) -> bool:
    return word.lower() in stop_words()


def is_generic_word(word: str) -> bool:
    return word.lower() in generic_words()


def is_domain_term(word: str) -> bool:
    return word.lower() in domain_terms()


def filter_stop_words(words: Iterable[str]) -> List[str]:
    """Drop stop words, keeping order."""
    stops = stop_words()
    return [w for w in words if w.lower() not in stops]
