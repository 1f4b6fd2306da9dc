# File: tests/test_anchors.py
import pytest

from unveil_seo.linking.anchors import (
    MAX_CANDIDATES,
    AnchorCandidate,
    analysis_stats,
    extract_anchor_candidates,
    is_linkable_word,
    normalize_text,
    remove_overlaps,
    score_phrase,
    split_sentences,
)
from unveil_seo.linking.stopwords import filter_stop_words, is_domain_term, is_stop_word

ARTICLE = (
    "Le compost maison nourrit le potager toute l'année. "
    "Pour réussir le paillage, étalez le compost autour des tomates!\n"
    "Le paillage protège aussi les semis contre le froid."
)


def _cand(text, start, score):
    return AnchorCandidate(text, start, start + len(text), "", "", score)


def test_normalize_text_turns_punctuation_and_apostrophes_into_spaces():
    assert normalize_text("L'été, c'est   BEAU!") == "l été c est beau"
    assert normalize_text("porte-greffe") == "porte-greffe"


def test_split_sentences():
    assert split_sentences("Un. Deux!\nTrois?  ") == ["Un", "Deux", "Trois"]


@pytest.mark.parametrize(
    "word,expected",
    [
        ("tomate", True),
        ("ab", False),
        ("a" * 21, False),
        ("2024", False),
        ("the", False),
        ("le", False),
        ("---", False),
    ],
)
def test_is_linkable_word(word, expected):
    assert is_linkable_word(word) is expected


def test_score_phrase_prefers_three_words():
    assert score_phrase(["alpha", "beta", "gamma"]) > score_phrase(["alpha", "beta"]) > score_phrase(["alpha"])
    assert score_phrase(["alpha", "beta", "gamma", "delta"]) < score_phrase(["alpha", "beta", "gamma"])


def test_score_phrase_bonuses_and_penalties():
    assert score_phrase(["compost"]) == 1 + 2
    assert score_phrase(["porte-greffe"]) == 1 + 1
    # more than half stop words
    assert score_phrase(["the", "and"]) == 3 - 2
    assert score_phrase(["a", "b", "c", "d", "e"]) == 0


def test_stopword_tables():
    assert is_stop_word("The")
    assert is_stop_word("avec")
    assert is_domain_term("Compost")
    assert filter_stop_words(["the", "compost", "and", "tomates"]) == ["compost", "tomates"]


def test_remove_overlaps_keeps_highest_score_first():
    kept = remove_overlaps([
        _cand("compost", 3, 3),
        _cand("compost maison", 3, 5),
        _cand("maison", 11, 1),
        _cand("potager", 30, 3),
    ])
    assert [c.text for c in kept] == ["compost maison", "potager"]


def test_remove_overlaps_earlier_position_wins_ties():
    kept = remove_overlaps([_cand("bcd", 1, 2), _cand("abc", 0, 2)])
    assert [c.text for c in kept] == ["abc"]


def test_extract_candidates_from_article():
    candidates = extract_anchor_candidates(ARTICLE)
    assert candidates
    assert any("compost" in c.text.lower() for c in candidates)

    for cand in candidates:
        # spans point into the original text
        assert ARTICLE[cand.start_index:cand.end_index] == cand.text
        assert cand.score >= 2
        assert len(cand.context_before.split()) <= 5
        assert len(cand.context_after.split()) <= 5

    # no two selected spans overlap
    for i, a in enumerate(candidates):
        for b in candidates[i + 1:]:
            assert not a.overlaps(b)


def test_extract_finds_every_occurrence():
    candidates = extract_anchor_candidates(ARTICLE)
    # two occurrences, either alone or inside a longer phrase
    assert sum(1 for c in candidates if "paillage" in c.text.lower()) == 2


def test_extract_respects_limit():
    assert len(extract_anchor_candidates(ARTICLE, limit=1)) == 1


def test_extract_caps_and_sorts_long_text():
    # every copy contributes two "paillage" spans, so there are more than enough
    long_text = "\n".join([ARTICLE] * 12)
    candidates = extract_anchor_candidates(long_text)
    assert len(candidates) == MAX_CANDIDATES
    scores = [c.score for c in candidates]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.parametrize("text", ["", "   ", "trop court", "le la les de du des et ou mais donc car"])
def test_extract_returns_nothing_for_short_or_stopword_text(text):
    assert extract_anchor_candidates(text) == []


def test_candidate_to_dict_is_camel_case():
    data = _cand("compost", 3, 3).to_dict()
    assert data == {
        "text": "compost",
        "startIndex": 3,
        "endIndex": 10,
        "contextBefore": "",
        "contextAfter": "",
        "score": 3,
    }


def test_analysis_stats():
    candidates = [_cand("compost", 0, 3)]
    stats = analysis_stats("compost pour le jardin", candidates)
    assert stats == {"wordCount": 4, "candidateCount": 1, "linkDensity": 25.0, "averageScore": 3.0}
    assert analysis_stats("", [])["linkDensity"] == 0.0
