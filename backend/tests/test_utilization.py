"""Tests for pantry utilization and single-gap analysis."""

from fakes import candidate, meal

from mealsuggest.services.suggestion.types import IngredientRequirement, IngredientStatus, MatchType, PantrySnapshot
from mealsuggest.services.suggestion.utilization import (
    analyze_pantry_utilization,
    blocking_gap,
    ingredients_to_add,
    single_gap_meals,
)


def missing(*pairs):
    return [IngredientRequirement(i, status) for i, status in pairs]


M = IngredientStatus.MANDATORY
R = IngredientStatus.RECOMMENDED


def test_utilization_counts_used_and_unused():
    pantry = PantrySnapshot.of("u1", ["rice", "chicken", "basil", "egg"])
    eligible = [candidate(meal("fried-rice", mandatory=["rice", "egg"]))]
    result = analyze_pantry_utilization(eligible, [], pantry)
    assert result.total_ingredients == 4
    assert result.used_ingredients == 2
    assert result.unused_ingredients == ["basil", "chicken"]
    assert result.utilization_percentage == 50.0


def test_empty_pantry():
    result = analyze_pantry_utilization([], [], PantrySnapshot.of("u1", []))
    assert result.utilization_percentage == 0.0
    assert result.unused_ingredients == []


def test_blocking_gap_prefers_mandatory():
    c = candidate(meal("x"), score=40, missing=missing(("a", M), ("b", R)), match_type=MatchType.POOR)
    assert [r.ingredient_id for r in blocking_gap(c)] == ["a"]
    c2 = candidate(meal("y"), score=40, missing=missing(("b", R), ("c", R)), match_type=MatchType.POOR)
    assert [r.ingredient_id for r in blocking_gap(c2)] == ["b", "c"]


def test_single_gap_meals():
    one = candidate(meal("pesto", mandatory=["basil", "pasta"]), 35, missing(("pasta", M)), MatchType.POOR)
    two = candidate(meal("carbonara"), 10, missing(("pasta", M), ("egg", M)), MatchType.POOR)
    gaps = single_gap_meals([one, two])
    assert list(gaps) == ["pasta"]
    assert [c.meal_id for c in gaps["pasta"]] == ["pesto"]


def test_unused_ingredient_suggestions():
    pantry = PantrySnapshot.of("u1", ["basil", "rice"])
    near_miss = [
        candidate(meal("pesto", mandatory=["basil", "pasta"]), 35, missing(("pasta", M)), MatchType.POOR),
        candidate(meal("caprese", mandatory=["basil", "mozzarella"]), 45, missing(("mozzarella", M)), MatchType.POOR),
        candidate(meal("risotto", mandatory=["rice", "stock", "parmesan"]), 23, missing(("stock", M), ("parmesan", M)), MatchType.POOR),
    ]
    result = analyze_pantry_utilization([], near_miss, pantry)
    assert result.unused_ingredients == ["basil", "rice"]
    assert len(result.suggestions_for_unused) == 1
    suggestion = result.suggestions_for_unused[0]
    assert suggestion.ingredient_id == "basil"
    # best score first
    assert suggestion.possible_meals == ["caprese", "pesto"]


def test_possible_meals_capped():
    pantry = PantrySnapshot.of("u1", ["basil"])
    near_miss = [
        candidate(meal(f"m{i}", mandatory=["basil", f"x{i}"]), 35, missing((f"x{i}", M)), MatchType.POOR)
        for i in range(5)
    ]
    result = analyze_pantry_utilization([], near_miss, pantry, max_meals_per_ingredient=3)
    assert len(result.suggestions_for_unused[0].possible_meals) == 3


def test_ingredients_to_add_orders_by_unlock_count():
    near_miss = [
        candidate(meal("a"), 35, missing(("pasta", M)), MatchType.POOR),
        candidate(meal("b"), 35, missing(("pasta", M)), MatchType.POOR),
        candidate(meal("c"), 35, missing(("egg", M)), MatchType.POOR),
        candidate(meal("d"), 10, missing(("egg", M), ("ham", M)), MatchType.POOR),
    ]
    assert ingredients_to_add(near_miss) == ["pasta", "egg"]
    assert ingredients_to_add(near_miss, limit=1) == ["pasta"]
