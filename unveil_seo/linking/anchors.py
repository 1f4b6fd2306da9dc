# File: unveil_seo/linking/anchors.py
"""Anchor-candidate extraction.

Scans free text for phrases worth turning into internal links:

1. the text is split into sentences and each sentence normalised
   (lower case, punctuation and apostrophes become spaces, hyphens kept);
2. every contiguous span of 1-4 words whose words all pass
   :func:`is_linkable_word` becomes a phrase (deduplicated);
3. phrases are scored by :func:`score_phrase` and weak ones dropped;
4. every occurrence of a phrase is located in the *original* text, with
   up to five words of context on each side;
5. overlapping spans are resolved greedily by score, then the best
   :data:`MAX_CANDIDATES` are returned.

Usage::

    from unveil_seo.linking.anchors import extract_anchor_candidates
    for cand in extract_anchor_candidates(article):
        print(cand.text, cand.score, cand.start_index)
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence

from unveil_seo.linking.stopwords import domain_terms, generic_words, stop_words
from unveil_seo.logger import logger

__all__: Sequence[str] = (
    "AnchorCandidate",
    "MAX_CANDIDATES",
    "MIN_TEXT_LENGTH",
    "normalize_text",
    "split_sentences",
    "is_linkable_word",
    "score_phrase",
    "extract_anchor_candidates",
    "remove_overlaps",
    "analysis_stats",
)

MAX_CANDIDATES = 20
MIN_TEXT_LENGTH = 10
MAX_PHRASE_WORDS = 4
MIN_PHRASE_SCORE = 2
CONTEXT_WORDS = 5

_LENGTH_BONUS = {1: 1, 2: 3, 3: 4, 4: 2}

_SENTENCE_RE = re.compile(r"[.!?\n]+")
_NON_WORD_RE = re.compile(r"[^\w\s-]|_")
_WS_RE = re.compile(r"\s+")
_DIGITS_RE = re.compile(r"^\d+$")
_PUNCT_ONLY_RE = re.compile(r"^[\W_]+$")


@dataclass(slots=True)
class AnchorCandidate:
    """A span of the source text proposed as link anchor."""

    text: str
    start_index: int
    end_index: int
    context_before: str
    context_after: str
    score: int

    def overlaps(self, other: AnchorCandidate) -> bool:
        return self.start_index < other.end_index and other.start_index < self.end_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "startIndex": self.start_index,
            "endIndex": self.end_index,
            "contextBefore": self.context_before,
            "contextAfter": self.context_after,
            "score": self.score,
        }


def normalize_text(text: str) -> str:
    """Lower-case *text*, turn punctuation and apostrophes into spaces, keep hyphens."""
    text = _NON_WORD_RE.sub(" ", text.lower())
    return _WS_RE.sub(" ", text).strip()


def split_sentences(text: str) -> List[str]:
    return [s for s in (part.strip() for part in _SENTENCE_RE.split(text)) if s]


def is_linkable_word(word: str) -> bool:
    """Length 3-20, not a stop/generic word, not purely numeric or punctuation."""
    if not 3 <= len(word) <= 20:
        return False
    if _DIGITS_RE.match(word) or _PUNCT_ONLY_RE.match(word):
        return False
    lowered = word.lower()
    return lowered not in stop_words() and lowered not in generic_words()


def score_phrase(words: Sequence[str]) -> int:
    """Heuristic relevance of a phrase.

    Length bonus peaks at three words, every domain term adds 2, a hyphenated
    word adds 1, more than half stop words costs 2. Never negative.
    """
    count = len(words)
    score = _LENGTH_BONUS.get(count, -1)

    domain = domain_terms()
    score += 2 * sum(1 for w in words if w.lower() in domain)

    if any("-" in w for w in words):
        score += 1

    stops = stop_words()
    if sum(1 for w in words if w.lower() in stops) > count / 2:
        score -= 2

    return max(0, score)


def _tokens(sentence: str) -> List[str]:
    return [t.strip("-") for t in normalize_text(sentence).split() if t.strip("-")]


def _phrases(sentences: Iterable[str]) -> List[List[str]]:
    seen: set[str] = set()
    phrases: List[List[str]] = []
    for sentence in sentences:
        words = _tokens(sentence)
        for start in range(len(words)):
            for size in range(1, MAX_PHRASE_WORDS + 1):
                span = words[start:start + size]
                if len(span) < size:
                    break
                if not is_linkable_word(span[-1]):
                    # every longer span from this start contains the same word
                    break
                key = " ".join(span)
                if key not in seen:
                    seen.add(key)
                    phrases.append(span)
    return phrases


def _occurrence_pattern(words: Sequence[str]) -> re.Pattern[str]:
    body = r"\s+".join(re.escape(w) for w in words)
    return re.compile(rf"(?<![\w-]){body}(?![\w-])", re.IGNORECASE)


def _context(text: str, start: int, end: int) -> tuple[str, str]:
    before = text[:start].split()[-CONTEXT_WORDS:]
    after = text[end:].split()[:CONTEXT_WORDS]
    return " ".join(before), " ".join(after)


def remove_overlaps(candidates: Iterable[AnchorCandidate]) -> List[AnchorCandidate]:
    """Greedy selection: highest score first, earlier position wins ties."""
    kept: List[AnchorCandidate] = []
    for cand in sorted(candidates, key=lambda c: (-c.score, c.start_index)):
        if not any(cand.overlaps(k) for k in kept):
            kept.append(cand)
    return kept


def extract_anchor_candidates(text: str, *, limit: int = MAX_CANDIDATES) -> List[AnchorCandidate]:
    """Return up to *limit* ranked, non-overlapping anchor candidates from *text*."""
    if not text or len(text.strip()) < MIN_TEXT_LENGTH:
        return []

    candidates: List[AnchorCandidate] = []
    for words in _phrases(split_sentences(text)):
        score = score_phrase(words)
        if score < MIN_PHRASE_SCORE:
            continue
        for match in _occurrence_pattern(words).finditer(text):
            before, after = _context(text, match.start(), match.end())
            candidates.append(
                AnchorCandidate(
                    text=match.group(0),
                    start_index=match.start(),
                    end_index=match.end(),
                    context_before=before,
                    context_after=after,
                    score=score,
                )
            )

    selected = remove_overlaps(candidates)[:limit]
    logger.debug("Anchor extraction: %d raw candidates, %d selected", len(candidates), len(selected))
    return selected


def analysis_stats(text: str, candidates: Sequence[AnchorCandidate]) -> Dict[str, Any]:
    """Word count, candidate count, link density (%) and mean score."""
    word_count = len(text.split())
    count = len(candidates)
    return {
        "wordCount": word_count,
        "candidateCount": count,
        "linkDensity": round(count / word_count * 100, 2) if word_count else 0.0,
        "averageScore": round(sum(c.score for c in candidates) / count, 2) if count else 0.0,
    }
