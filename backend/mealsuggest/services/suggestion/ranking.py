"""
Suggestion ranking.

rank = wA * score/100 + wF * favorite + wK * kitchen_match + wT * meal_type_match - wP * recency_penalty

Ties: higher availability score, then newest meal, then meal id (ascending).
"""

from typing import Iterable

from mealsuggest.services.suggestion.algorithm_config import RankingWeights
from mealsuggest.services.suggestion.types import MealType, SuggestionCandidate, as_utc


def annotate_signals(
    candidates: Iterable[SuggestionCandidate],
    favorite_ids: set[str],
    preferred_kitchens: set[str],
    target_meal_types: set[MealType],
    favorite_boost_enabled: bool = True,
) -> None:
    for candidate in candidates:
        candidate.favorite_boost = favorite_boost_enabled and candidate.meal_id in favorite_ids
        candidate.kitchen_preference_match = candidate.meal.kitchen_id in preferred_kitchens
        candidate.meal_type_match = candidate.meal.meal_type in target_meal_types


def rank_key(candidate: SuggestionCandidate, weights: RankingWeights) -> float:
    return (
        weights.availability_score * candidate.availability_score / 100.0
        + weights.favorite_boost * float(candidate.favorite_boost)
        + weights.kitchen_preference * float(candidate.kitchen_preference_match)
        + weights.meal_type_match * float(candidate.meal_type_match)
        - weights.recency_penalty * candidate.recency_penalty
    )


def _sort_key(candidate: SuggestionCandidate) -> tuple:
    # rank_score is rounded so float noise cannot defeat the tie-breakers
    return (
        -candidate.rank_score,
        -candidate.availability_score,
        -as_utc(candidate.meal.created_at).timestamp(),
        candidate.meal_id,
    )


def rank_candidates(
    candidates: Iterable[SuggestionCandidate], weights: RankingWeights
) -> list[SuggestionCandidate]:
    ranked = list(candidates)
    for candidate in ranked:
        candidate.rank_score = round(rank_key(candidate, weights), 9)
    ranked.sort(key=_sort_key)
    return ranked


def paginate(
    ranked: list[SuggestionCandidate], limit: int, offset: int, max_suggestions: int
) -> list[SuggestionCandidate]:
    return ranked[offset : offset + min(limit, max_suggestions)]
