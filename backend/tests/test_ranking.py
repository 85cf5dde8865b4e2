from datetime import timedelta

from fakes import NOW, candidate, meal

from mealsuggest.services.suggestion.algorithm_config import RankingWeights
from mealsuggest.services.suggestion.ranking import annotate_signals, paginate, rank_candidates, rank_key
from mealsuggest.services.suggestion.types import MatchType, MealType

WEIGHTS = RankingWeights()


def test_rank_key_combines_signals():
    c = candidate(meal("a"), score=80)
    c.favorite_boost = True
    c.meal_type_match = True
    c.recency_penalty = 0.5
    # 0.4*0.8 + 0.2 + 0.15 - 0.1*0.5
    assert abs(rank_key(c, WEIGHTS) - 0.62) < 1e-9


def test_favorite_outranks_slightly_better_score():
    plain = candidate(meal("plain"), score=100)
    fav = candidate(meal("fav"), score=80, match_type=MatchType.GOOD)
    annotate_signals([plain, fav], favorite_ids={"fav"}, preferred_kitchens=set(), target_meal_types=set())
    assert [c.meal_id for c in rank_candidates([plain, fav], WEIGHTS)] == ["fav", "plain"]


def test_favorite_boost_can_be_disabled():
    fav = candidate(meal("fav"))
    annotate_signals([fav], {"fav"}, set(), set(), favorite_boost_enabled=False)
    assert not fav.favorite_boost


def test_kitchen_and_meal_type_signals():
    c = candidate(meal("a", kitchen_id="thai", meal_type=MealType.LUNCH))
    annotate_signals([c], set(), {"thai"}, {MealType.LUNCH})
    assert c.kitchen_preference_match
    assert c.meal_type_match


def test_tie_breaks():
    older = candidate(meal("b-old", created_at=NOW - timedelta(days=10)), score=90)
    newer = candidate(meal("c-new", created_at=NOW - timedelta(days=1)), score=90)
    same_a = candidate(meal("a-same", created_at=NOW - timedelta(days=1)), score=90)
    ranked = rank_candidates([older, newer, same_a], RankingWeights(availability_score=0.0, favorite_boost=1.0))
    # equal rank and score: newest first, then meal id
    assert [c.meal_id for c in ranked] == ["a-same", "c-new", "b-old"]


def test_higher_score_breaks_rank_ties():
    low = candidate(meal("low"), score=60, match_type=MatchType.PARTIAL)
    high = candidate(meal("high"), score=90, match_type=MatchType.GOOD)
    ranked = rank_candidates([low, high], RankingWeights(availability_score=0.0, favorite_boost=1.0))
    assert [c.meal_id for c in ranked] == ["high", "low"]


def test_ranking_is_deterministic():
    pool = [candidate(meal(f"m{i}"), score=50 + i % 3) for i in range(12)]
    first = [c.meal_id for c in rank_candidates(pool, WEIGHTS)]
    second = [c.meal_id for c in rank_candidates(list(reversed(pool)), WEIGHTS)]
    assert first == second


def test_paginate_respects_max_suggestions():
    ranked = [candidate(meal(f"m{i:02d}")) for i in range(30)]
    assert len(paginate(ranked, limit=50, offset=0, max_suggestions=20)) == 20
    assert [c.meal_id for c in paginate(ranked, limit=2, offset=3, max_suggestions=20)] == ["m03", "m04"]
