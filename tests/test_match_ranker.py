"""Tests for scoring, thresholding and ordering of candidates"""
import random

import pytest

from libs.items import MatchDirection
from libs.matching import MatchingConfig, MatchRanker, SimilarityScorer


@pytest.fixture
def ranker():
    return MatchRanker(SimilarityScorer(MatchingConfig()))


def test_rank_orders_by_score_descending(ranker, make_found, make_lost):
    found = make_found(when="2024-01-11")
    candidates = [
        make_lost("weak", category="Electronics", location="Gym", when="2024-01-10"),
        make_lost("strong", when="2024-01-10"),
        make_lost("medium", location="Library Building", when="2024-01-10"),
    ]

    ranked = ranker.rank(candidates, found)

    assert [m.candidate.record_id for m in ranked] == ["strong", "medium", "weak"]
    scores = [m.similarity_score for m in ranked]
    assert scores == sorted(scores, reverse=True)


def test_ties_break_on_fresher_date_then_identifier(ranker, make_found, make_lost):
    found = make_found(when="2024-06-01")
    # all outside the date window so the date sub-score is 0 for every one
    candidates = [
        make_lost("b-older", when="2024-03-01"),
        make_lost("c-newer", when="2024-04-01"),
        make_lost("a-older", when="2024-03-01"),
    ]

    ranked = ranker.rank(candidates, found)

    assert len({m.similarity_score for m in ranked}) == 1
    assert [m.candidate.record_id for m in ranked] == ["c-newer", "a-older", "b-older"]


def test_order_does_not_depend_on_retrieval_order(ranker, make_found, make_lost):
    found = make_found(when="2024-06-01")
    candidates = [make_lost(f"lost-{i}", when=f"2024-0{1 + i % 5}-15") for i in range(12)]
    expected = [m.candidate.record_id for m in ranker.rank(candidates, found, limit=12, min_score=0)]

    shuffled = list(candidates)
    random.Random(7).shuffle(shuffled)

    assert [m.candidate.record_id for m in ranker.rank(shuffled, found, limit=12, min_score=0)] == expected


def test_below_threshold_is_dropped(ranker, make_found, make_lost):
    found = make_found()
    candidates = [
        make_lost("match"),
        make_lost("unrelated", item_name="Calculus Textbook", category="Books",
                  description="Hardcover math book", location="Gym", when="2023-01-01"),
    ]

    ranked = ranker.rank(candidates, found, min_score=50)

    assert [m.candidate.record_id for m in ranked] == ["match"]
    assert all(m.similarity_score >= 50 for m in ranked)


def test_limit_truncates_after_ordering(ranker, make_found, make_lost):
    found = make_found(when="2024-01-11")
    candidates = [make_lost(f"lost-{i}", when=f"2024-01-{10 - i:02d}") for i in range(8)]

    ranked = ranker.rank(candidates, found, limit=3)

    assert len(ranked) == 3
    assert [m.candidate.record_id for m in ranked] == ["lost-0", "lost-1", "lost-2"]


def test_defaults_come_from_config(make_found, make_lost):
    ranker = MatchRanker(SimilarityScorer(MatchingConfig(result_limit=2, min_score=99)))
    found = make_found(when="2024-01-10")
    candidates = [make_lost(f"lost-{i}", when="2024-01-10") for i in range(4)]
    candidates.append(make_lost("near", location="Library Building", when="2024-01-10"))

    ranked = ranker.rank(candidates, found)

    assert [m.candidate.record_id for m in ranked] == ["lost-0", "lost-1"]


def test_invalid_pairs_are_skipped_not_scored_zero(ranker, make_found, make_lost):
    found = make_found()
    candidates = [make_lost("broken", description=""), make_lost("ok")]

    ranked = ranker.rank(candidates, found, min_score=0)

    assert [m.candidate.record_id for m in ranked] == ["ok"]


def test_rank_does_not_mutate_inputs(ranker, make_found, make_lost):
    found = make_found()
    candidates = [make_lost("a"), make_lost("b", location="Gym")]
    before = list(candidates)

    ranker.rank(candidates, found)

    assert candidates == before


def test_reverse_direction_uses_same_pair_score(ranker, make_found, make_lost):
    lost = make_lost(location="Library", when="2024-01-10")
    found = make_found(location="Library Building", when="2024-01-12")

    forward = ranker.rank([lost], found, MatchDirection.LOST_FOR_FOUND)[0]
    reverse = ranker.rank([found], lost, MatchDirection.FOUND_FOR_LOST)[0]
    direct = ranker.scorer.score(lost, found)

    assert forward.similarity_score == reverse.similarity_score == direct.total
    assert forward.lost is lost and forward.found is found
    assert reverse.lost is lost and reverse.found is found


def test_match_payload_shape(ranker, make_found, make_lost):
    match = ranker.rank([make_lost()], make_found())[0]

    payload = match.to_payload()

    assert isinstance(payload["similarityScore"], int)
    assert payload["lostItem"] == {
        "_id": "lost-1",
        "itemName": "Blue Backpack",
        "category": "Accessories",
        "dateLost": "2024-01-10",
        "location": "Library",
        "status": "Pending",
    }
    assert set(payload["scoreBreakdown"]) == {"category", "text", "location", "date"}
