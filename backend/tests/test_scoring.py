"""Tests for availability scoring."""

import itertools

from fakes import meal

from mealsuggest.services.suggestion.algorithm_config import StatusWeights
from mealsuggest.services.suggestion.scoring import score_meal
from mealsuggest.services.suggestion.types import IngredientStatus, MatchMode, PantrySnapshot


def pantry(*ids):
    return PantrySnapshot.of("u1", ids)


def test_score_recommended_missing():
    m = meal("chicken-rice", mandatory=["rice", "chicken"], recommended=["tomato"])
    result = score_meal(m, pantry("rice", "chicken"), MatchMode.STRICT)
    assert result.score == 80.0
    assert not result.disqualified
    assert [(r.ingredient_id, r.status) for r in result.missing] == [("tomato", IngredientStatus.RECOMMENDED)]


def test_strict_mode_disqualifies_missing_mandatory():
    m = meal("chicken-rice", mandatory=["rice", "chicken"], recommended=["tomato"])
    result = score_meal(m, pantry("rice"), MatchMode.STRICT)
    assert result.disqualified
    assert result.missing_mandatory_count == 1
    # score still computed for near-miss analysis: 0.7 * 0.5 + 0 + 0.1
    assert result.score == 45.0


def test_lenient_mode_penalizes_without_disqualifying():
    m = meal("chicken-rice", mandatory=["rice", "chicken"], recommended=["tomato"])
    result = score_meal(m, pantry("rice"), MatchMode.LENIENT)
    assert not result.disqualified
    assert result.score == 45.0


def test_missing_ordered_by_importance():
    m = meal("salad", mandatory=["lettuce"], recommended=["feta"], optional=["olives"])
    result = score_meal(m, pantry(), MatchMode.LENIENT)
    assert [r.status for r in result.missing] == [
        IngredientStatus.MANDATORY,
        IngredientStatus.RECOMMENDED,
        IngredientStatus.OPTIONAL,
    ]
    assert result.score == 0.0


def test_empty_meal_scores_full(caplog):
    result = score_meal(meal("water"), pantry())
    assert result.score == 100.0
    assert result.missing == ()
    assert "scoring.empty_meal" in caplog.text


def test_empty_status_buckets_count_as_covered():
    # no recommended / optional requirements: their share is vacuously satisfied
    m = meal("toast", mandatory=["bread"])
    assert score_meal(m, pantry("bread")).score == 100.0


def test_custom_status_weights():
    m = meal("pasta", mandatory=["pasta"], recommended=["basil"])
    weights = StatusWeights(mandatory=0.5, recommended=0.5, optional=0.0)
    assert score_meal(m, pantry("pasta"), weights=weights).score == 50.0


def test_missing_only_lists_absent_ingredients():
    m = meal("curry", mandatory=["rice", "curry-paste"], recommended=["coconut"], optional=["lime"])
    p = pantry("rice", "lime")
    result = score_meal(m, p, MatchMode.LENIENT)
    assert all(r.ingredient_id not in p for r in result.missing)
    assert {r.ingredient_id for r in result.missing} == {"curry-paste", "coconut"}


def test_adding_ingredient_never_lowers_score():
    m = meal("stew", mandatory=["beef", "carrot"], recommended=["wine", "thyme"], optional=["bay"])
    universe = ["beef", "carrot", "wine", "thyme", "bay", "salt"]
    for size in range(len(universe)):
        for subset in itertools.combinations(universe, size):
            base = score_meal(m, pantry(*subset), MatchMode.LENIENT).score
            for extra in universe:
                assert score_meal(m, pantry(*subset, extra), MatchMode.LENIENT).score >= base


def test_score_bounds():
    m = meal("stew", mandatory=["beef", "carrot"], recommended=["wine"], optional=["bay"])
    for subset in itertools.chain.from_iterable(
        itertools.combinations(["beef", "carrot", "wine", "bay"], n) for n in range(5)
    ):
        score = score_meal(m, pantry(*subset), MatchMode.LENIENT).score
        assert 0.0 <= score <= 100.0
