# File: unveil_seo/linking/matcher.py
"""Similarity matching of anchor texts against indexed pages.

For one anchor: embed it, run the similarity search with a relaxed
threshold (``max(floor, min_similarity - margin)``) and a widened limit
(``min(2 * max_options, cap)``), then keep rows at or above the real
threshold. Each kept page is labelled with the section that literally
contains the anchor (Title, then H1, then Meta, otherwise Semantic) and
gets a relevance score of ``min(1.0, similarity + section bonus)``.
Ordering is by relevance, ties broken by section priority, so a direct
title hit never ranks below a semantic match with the same score.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from unveil_seo.config import MatchingSettings, SectionBonuses
from unveil_seo.errors import UnveilError
from unveil_seo.linking.anchors import AnchorCandidate
from unveil_seo.logger import logger
from unveil_seo.store.base import PageStore

__all__: Sequence[str] = (
    "MatchOption",
    "AnchorMatch",
    "MatchingResult",
    "SimilarityMatcher",
    "matched_section",
    "section_bonus",
    "SECTION_PRIORITY",
)

SECTION_TITLE = "Title"
SECTION_H1 = "H1"
SECTION_META = "Meta"
SECTION_SEMANTIC = "Semantic"

SECTION_PRIORITY: Dict[str, int] = {
    SECTION_TITLE: 0,
    SECTION_H1: 1,
    SECTION_META: 2,
    SECTION_SEMANTIC: 3,
}


@dataclass(slots=True)
class MatchOption:
    id: Any
    url: str
    title: str = "Untitled Page"
    description: str = "No description available"
    matched_section: str = SECTION_SEMANTIC
    matched_content: str = ""
    similarity: float = 0.0
    relevance_score: float = 0.0

    def sort_key(self) -> Tuple[float, int, float]:
        return (-self.relevance_score, SECTION_PRIORITY[self.matched_section], -self.similarity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "matchedSection": self.matched_section,
            "matchedContent": self.matched_content,
            "similarity": round(self.similarity, 4),
            "relevanceScore": round(self.relevance_score, 4),
        }


@dataclass(slots=True)
class AnchorMatch:
    anchor: AnchorCandidate
    options: List[MatchOption] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"anchor": self.anchor.to_dict(), "options": [o.to_dict() for o in self.options]}


@dataclass(slots=True)
class MatchingResult:
    matches: List[AnchorMatch] = field(default_factory=list)
    total_candidates: int = 0
    total_matches: int = 0
    average_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "totalCandidates": self.total_candidates,
            "totalMatches": self.total_matches,
            "averageScore": self.average_score,
        }


def matched_section(anchor_text: str, page: Mapping[str, Any]) -> Tuple[str, str]:
    """Section whose text contains *anchor_text* (case-insensitive) and that text."""
    needle = anchor_text.strip().lower()
    for section, column in ((SECTION_TITLE, "title"), (SECTION_H1, "h1"), (SECTION_META, "meta_description")):
        value = page.get(column)
        if value and needle and needle in value.lower():
            return section, value
    return SECTION_SEMANTIC, page.get("h1") or page.get("title") or "Content similarity detected"


def section_bonus(section: str, bonuses: SectionBonuses) -> float:
    return {
        SECTION_TITLE: bonuses.title,
        SECTION_H1: bonuses.h1,
        SECTION_META: bonuses.meta,
    }.get(section, 0.0)


class SimilarityMatcher:
    def __init__(self, store: PageStore, embedder: Any, settings: Optional[MatchingSettings] = None) -> None:
        self._store = store
        self._embedder = embedder
        self._settings = settings or MatchingSettings()

    def _option(self, anchor_text: str, row: Mapping[str, Any]) -> MatchOption:
        section, content = matched_section(anchor_text, row)
        similarity = float(row.get("similarity") or 0.0)
        bonus = section_bonus(section, self._settings.bonuses)
        return MatchOption(
            id=row.get("id"),
            url=row.get("url") or "",
            title=row.get("title") or "Untitled Page",
            description=row.get("meta_description") or "No description available",
            matched_section=section,
            matched_content=content,
            similarity=similarity,
            relevance_score=min(1.0, similarity + bonus),
        )

    async def match_anchor(
        self,
        anchor_text: str,
        *,
        max_options: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[MatchOption]:
        """Ranked pages for one anchor text.

        Embedding errors propagate; a search that exceeds ``search_timeout``
        is logged and yields no options.
        """
        s = self._settings
        max_options = max_options or s.max_options
        min_similarity = s.min_similarity if min_similarity is None else min_similarity

        embedding = await self._embedder.embed(anchor_text)
        threshold = max(s.relaxed_floor, min_similarity - s.relaxed_margin)
        limit = min(max_options * 2, s.search_limit_cap)
        try:
            rows = await asyncio.wait_for(
                self._store.similar_pages(embedding, threshold, limit), timeout=s.search_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Similarity search for %r timed out after %.1fs", anchor_text, s.search_timeout)
            return []

        options = [
            self._option(anchor_text, row)
            for row in rows
            if float(row.get("similarity") or 0.0) >= min_similarity
        ]
        options.sort(key=MatchOption.sort_key)
        logger.debug(
            "Anchor %r: %d rows at >= %.2f, %d kept at >= %.2f",
            anchor_text, len(rows), threshold, len(options), min_similarity,
        )
        return options[:max_options]

    async def match_candidates(
        self,
        candidates: Sequence[AnchorCandidate],
        *,
        max_options: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> MatchingResult:
        result = MatchingResult(total_candidates=len(candidates))
        score_sum = 0.0
        for index, candidate in enumerate(candidates):
            try:
                options = await self.match_anchor(
                    candidate.text, max_options=max_options, min_similarity=min_similarity
                )
            except (UnveilError, ValueError) as exc:
                logger.error("Matching failed for %r: %s", candidate.text, exc)
                options = []
            if options:
                result.matches.append(AnchorMatch(anchor=candidate, options=options))
                result.total_matches += len(options)
                score_sum += sum(o.relevance_score for o in options)
            if index < len(candidates) - 1:
                await asyncio.sleep(self._settings.candidate_delay)

        if result.total_matches:
            result.average_score = round(score_sum / result.total_matches, 2)
        logger.info(
            "Matching finished: %d/%d anchors matched, %d options, average %.2f",
            len(result.matches), result.total_candidates, result.total_matches, result.average_score,
        )
        return result
