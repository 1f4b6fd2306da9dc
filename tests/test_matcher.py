# File: tests/test_matcher.py
from __future__ import annotations

import asyncio

import pytest

from conftest import FakeEmbedder
from unveil_seo.config import MatchingSettings, SectionBonuses
from unveil_seo.embeddings.encoding import embedding_to_string
from unveil_seo.linking.anchors import AnchorCandidate
from unveil_seo.linking.matcher import (
    MatchOption,
    SimilarityMatcher,
    matched_section,
    section_bonus,
)
from unveil_seo.store.memory import MemoryStore

SETTINGS = MatchingSettings(candidate_delay=0)


class SpyStore(MemoryStore):
    def __init__(self, delay: float = 0.0) -> None:
        super().__init__()
        self.delay = delay
        self.searches = []

    async def similar_pages(self, embedding, threshold, limit):
        self.searches.append((threshold, limit))
        if self.delay:
            await asyncio.sleep(self.delay)
        return await super().similar_pages(embedding, threshold, limit)


def _candidate(text: str, start: int = 0) -> AnchorCandidate:
    return AnchorCandidate(text, start, start + len(text), "", "", 3)


@pytest.fixture()
def garden_store() -> SpyStore:
    store = SpyStore()
    store.add_page(url="https://e.test/compost", title="Compost maison", embedding=embedding_to_string([1, 0, 0]))
    store.add_page(
        url="https://e.test/guide", title="Jardin", h1="Guide du compost",
        embedding=embedding_to_string([0.9, 0.1, 0]),
    )
    store.add_page(
        url="https://e.test/hiver", title="Hiver", meta_description="Le compost en hiver",
        embedding=embedding_to_string([0.8, 0.2, 0]),
    )
    store.add_page(url="https://e.test/paillage", title="Paillage", embedding=embedding_to_string([0.7, 0.7, 0]))
    store.add_page(url="https://e.test/tomates", title="Tomates", embedding=embedding_to_string([0, 1, 0]))
    store.add_page(url="https://e.test/vide", title="Sans contenu", embedding="[]")
    return store


@pytest.fixture()
def garden_embedder() -> FakeEmbedder:
    return FakeEmbedder({"compost": [1, 0, 0], "tomates": [0, 1, 0], "paillage": [0.7, 0.7, 0], "désert": [0, 0, 1]})


# --------------------------------------------------------------------------- #
#                                Pure helpers                                 #
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "page,section,content",
    [
        ({"title": "Le COMPOST facile", "h1": "compost"}, "Title", "Le COMPOST facile"),
        ({"title": "Jardin", "h1": "Guide du compost"}, "H1", "Guide du compost"),
        ({"title": "Jardin", "meta_description": "Tout sur le compost"}, "Meta", "Tout sur le compost"),
        ({"title": "Jardin", "h1": "Potager"}, "Semantic", "Potager"),
        ({"title": "Jardin"}, "Semantic", "Jardin"),
        ({}, "Semantic", "Content similarity detected"),
    ],
)
def test_matched_section(page, section, content):
    assert matched_section(" compost ", page) == (section, content)


def test_section_bonus():
    bonuses = SectionBonuses()
    assert section_bonus("Title", bonuses) == 0.15
    assert section_bonus("H1", bonuses) == 0.10
    assert section_bonus("Meta", bonuses) == 0.05
    assert section_bonus("Semantic", bonuses) == 0.0


def test_option_sort_key_breaks_ties_by_section():
    semantic = MatchOption(id=1, url="u1", matched_section="Semantic", similarity=1.0, relevance_score=1.0)
    title = MatchOption(id=2, url="u2", matched_section="Title", similarity=0.9, relevance_score=1.0)
    better = MatchOption(id=3, url="u3", matched_section="Semantic", similarity=0.99, relevance_score=0.99)
    assert sorted([better, semantic, title], key=MatchOption.sort_key) == [title, semantic, better]


def test_option_to_dict_defaults_and_rounding():
    data = MatchOption(id=7, url="https://e.test", similarity=0.123456, relevance_score=0.98768).to_dict()
    assert data["title"] == "Untitled Page"
    assert data["description"] == "No description available"
    assert data["similarity"] == 0.1235
    assert data["relevanceScore"] == 0.9877


# --------------------------------------------------------------------------- #
#                                Single anchor                                #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_match_anchor_ranks_by_relevance_then_section(garden_store, garden_embedder):
    matcher = SimilarityMatcher(garden_store, garden_embedder, SETTINGS)
    options = await matcher.match_anchor("compost", max_options=5)

    assert [o.url for o in options] == [
        "https://e.test/compost",
        "https://e.test/guide",
        "https://e.test/hiver",
        "https://e.test/paillage",
    ]
    assert [o.matched_section for o in options] == ["Title", "H1", "Meta", "Semantic"]
    # bonuses never push relevance above 1
    assert all(o.relevance_score <= 1.0 for o in options)
    assert options[1].similarity < 1.0 and options[1].relevance_score == 1.0
    assert options[3].relevance_score == pytest.approx(0.7071, abs=1e-4)
    assert options[3].matched_content == "Paillage"


@pytest.mark.asyncio()
async def test_match_anchor_uses_relaxed_search_then_real_threshold(garden_store, garden_embedder):
    matcher = SimilarityMatcher(garden_store, garden_embedder, SETTINGS)
    options = await matcher.match_anchor("compost", max_options=3, min_similarity=0.95)

    assert garden_store.searches == [(0.75, 6)]
    assert [o.url for o in options] == ["https://e.test/compost", "https://e.test/guide", "https://e.test/hiver"]


@pytest.mark.asyncio()
async def test_match_anchor_search_parameters_are_bounded(garden_store, garden_embedder):
    matcher = SimilarityMatcher(garden_store, garden_embedder, SETTINGS)
    await matcher.match_anchor("compost", max_options=50, min_similarity=0.6)
    assert garden_store.searches == [(0.5, 20)]


@pytest.mark.asyncio()
async def test_match_anchor_truncates_to_max_options(garden_store, garden_embedder):
    matcher = SimilarityMatcher(garden_store, garden_embedder, SETTINGS)
    options = await matcher.match_anchor("compost", max_options=2)
    assert len(options) == 2


@pytest.mark.asyncio()
async def test_match_anchor_timeout_returns_nothing(garden_embedder):
    store = SpyStore(delay=1.0)
    settings = MatchingSettings(candidate_delay=0, search_timeout=0.01)
    assert await SimilarityMatcher(store, garden_embedder, settings).match_anchor("compost") == []


@pytest.mark.asyncio()
async def test_match_anchor_embedding_errors_propagate(garden_store, garden_embedder):
    garden_embedder.failing.add("compost")
    with pytest.raises(Exception):
        await SimilarityMatcher(garden_store, garden_embedder, SETTINGS).match_anchor("compost")


# --------------------------------------------------------------------------- #
#                                 Candidates                                  #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_match_candidates(garden_store, garden_embedder):
    garden_embedder.failing.add("broken")
    candidates = [_candidate("compost"), _candidate("broken", 20), _candidate("tomates", 40), _candidate("désert", 60)]

    result = await SimilarityMatcher(garden_store, garden_embedder, SETTINGS).match_candidates(
        candidates, max_options=2
    )

    data = result.to_dict()
    assert data["totalCandidates"] == 4
    assert [m["anchor"]["text"] for m in data["matches"]] == ["compost", "tomates"]
    assert data["totalMatches"] == sum(len(m["options"]) for m in data["matches"])
    assert 0 < data["averageScore"] <= 1.0
    assert data["matches"][1]["options"][0]["url"] == "https://e.test/tomates"
    assert data["matches"][1]["options"][0]["matchedSection"] == "Title"


@pytest.mark.asyncio()
async def test_match_candidates_empty(garden_store, garden_embedder):
    result = await SimilarityMatcher(garden_store, garden_embedder, SETTINGS).match_candidates([])
    assert result.to_dict() == {"matches": [], "totalCandidates": 0, "totalMatches": 0, "averageScore": 0.0}
