"""
Pantry utilization: which pantry items the eligible meals actually use, and which
single purchases would unlock near-miss meals.

A near-miss meal's blocking gap is its missing mandatory items, or every missing
item when no mandatory item is missing. Meals whose gap is exactly one ingredient
are single-gap meals: adding that one ingredient makes them cookable.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from mealsuggest.services.suggestion.types import (
    IngredientRequirement,
    IngredientStatus,
    PantrySnapshot,
    SuggestionCandidate,
)

MAX_MEALS_PER_UNUSED = 3
MAX_ADD_INGREDIENTS = 5


@dataclass
class UnusedIngredientSuggestion:
    ingredient_id: str
    possible_meals: list[str] = field(default_factory=list)


@dataclass
class PantryUtilization:
    total_ingredients: int
    used_ingredients: int
    unused_ingredients: list[str]
    utilization_percentage: float
    suggestions_for_unused: list[UnusedIngredientSuggestion] = field(default_factory=list)


def blocking_gap(candidate: SuggestionCandidate) -> list[IngredientRequirement]:
    mandatory = candidate.missing_with_status(IngredientStatus.MANDATORY)
    return mandatory or list(candidate.missing_ingredients)


def single_gap_meals(near_miss: Iterable[SuggestionCandidate]) -> dict[str, list[SuggestionCandidate]]:
    """Missing ingredient id -> near-miss meals that only lack that ingredient."""
    unlocks: dict[str, list[SuggestionCandidate]] = defaultdict(list)
    for candidate in near_miss:
        gap = {req.ingredient_id for req in blocking_gap(candidate)}
        if len(gap) == 1:
            unlocks[gap.pop()].append(candidate)
    return unlocks


def _best_first(candidates: Iterable[SuggestionCandidate]) -> list[SuggestionCandidate]:
    return sorted(candidates, key=lambda c: (-c.availability_score, c.meal_id))


def analyze_pantry_utilization(
    eligible: Iterable[SuggestionCandidate],
    near_miss: Iterable[SuggestionCandidate],
    pantry: PantrySnapshot,
    max_meals_per_ingredient: int = MAX_MEALS_PER_UNUSED,
) -> PantryUtilization:
    used: set[str] = set()
    for candidate in eligible:
        used |= candidate.meal.ingredient_ids() & pantry.ingredient_ids
    unused = sorted(pantry.ingredient_ids - used)
    total = len(pantry)
    percentage = round(100.0 * len(used) / total, 2) if total else 0.0

    single_gap = _best_first(
        c for meals in single_gap_meals(near_miss).values() for c in meals
    )
    suggestions: list[UnusedIngredientSuggestion] = []
    for ingredient_id in unused:
        meals = [c.meal_id for c in single_gap if ingredient_id in c.meal.ingredient_ids()]
        if meals:
            suggestions.append(
                UnusedIngredientSuggestion(
                    ingredient_id=ingredient_id,
                    possible_meals=meals[:max_meals_per_ingredient],
                )
            )

    return PantryUtilization(
        total_ingredients=total,
        used_ingredients=len(used),
        unused_ingredients=unused,
        utilization_percentage=percentage,
        suggestions_for_unused=suggestions,
    )


def ingredients_to_add(near_miss: Iterable[SuggestionCandidate], limit: int = MAX_ADD_INGREDIENTS) -> list[str]:
    """Ingredient ids ordered by how many near-miss meals each one alone would unlock."""
    counts = {ingredient_id: len(meals) for ingredient_id, meals in single_gap_meals(near_miss).items()}
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [ingredient_id for ingredient_id, _ in ranked[:limit]]
