"""Request filter validation. Runs before any provider call or scoring work."""

from dataclasses import dataclass, field
from typing import Optional

from mealsuggest.errors import InvalidFilter
from mealsuggest.schemas.suggestion import SuggestionFilters, UserPreferences
from mealsuggest.services.providers.base import CatalogFilters
from mealsuggest.services.suggestion.algorithm_config import AlgorithmLimits
from mealsuggest.services.suggestion.types import MatchMode, MealType

MAX_PAGE_LIMIT = 50
MAX_RANDOM_COUNT = 10


@dataclass(frozen=True)
class MatchCriteria:
    mode: MatchMode
    catalog: CatalogFilters
    max_missing_ingredients: int
    min_availability_score: Optional[float]
    exclude_recent: bool = True
    favorite_boost: bool = True
    limit: int = 10
    offset: int = 0
    preferred_kitchens: frozenset[str] = field(default_factory=frozenset)
    target_meal_types: frozenset[MealType] = field(default_factory=frozenset)


def parse_meal_type(value: Optional[str], field_name: str = "meal_type") -> Optional[MealType]:
    if value is None:
        return None
    try:
        return MealType(value.strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in MealType)
        raise InvalidFilter(
            f"{field_name} must be one of: {allowed}", details={"field": field_name, "value": value}
        ) from None


def parse_kitchen_ids(values: Optional[list[str]]) -> Optional[tuple[str, ...]]:
    """Empty list means no kitchen filter."""
    if not values:
        return None
    if any(not (v or "").strip() for v in values):
        raise InvalidFilter("kitchen_ids must not contain blank ids", details={"field": "kitchen_ids"})
    return tuple(dict.fromkeys(v.strip() for v in values))


def build_criteria(
    filters: SuggestionFilters,
    preferences: Optional[UserPreferences],
    limits: AlgorithmLimits,
) -> MatchCriteria:
    if not 1 <= filters.limit <= MAX_PAGE_LIMIT:
        raise InvalidFilter(f"limit must be between 1 and {MAX_PAGE_LIMIT}", details={"field": "limit"})
    if filters.offset < 0:
        raise InvalidFilter("offset must be >= 0", details={"field": "offset"})
    if filters.min_availability_score is not None and not 0 <= filters.min_availability_score <= 100:
        raise InvalidFilter(
            "min_availability_score must be between 0 and 100", details={"field": "min_availability_score"}
        )
    if filters.max_missing_ingredients is not None and filters.max_missing_ingredients < 0:
        raise InvalidFilter("max_missing_ingredients must be >= 0", details={"field": "max_missing_ingredients"})

    meal_type = parse_meal_type(filters.meal_type)
    kitchen_ids = parse_kitchen_ids(filters.kitchen_ids)

    preferences = preferences or UserPreferences()
    preferred_types = {
        parse_meal_type(v, "preferred_meal_types") for v in preferences.preferred_meal_types
    }
    target_meal_types = {meal_type} if meal_type else preferred_types

    return MatchCriteria(
        mode=MatchMode.STRICT if filters.strict_mode else MatchMode.LENIENT,
        catalog=CatalogFilters(meal_type=meal_type, kitchen_ids=kitchen_ids),
        max_missing_ingredients=(
            limits.max_missing_ingredients
            if filters.max_missing_ingredients is None
            else filters.max_missing_ingredients
        ),
        min_availability_score=filters.min_availability_score,
        exclude_recent=filters.exclude_recent,
        favorite_boost=filters.favorite_boost,
        limit=filters.limit,
        offset=filters.offset,
        preferred_kitchens=frozenset(k.strip() for k in preferences.preferred_kitchens if k and k.strip()),
        target_meal_types=frozenset(t for t in target_meal_types if t is not None),
    )


def validate_random_count(count: int) -> int:
    if not 1 <= count <= MAX_RANDOM_COUNT:
        raise InvalidFilter(f"count must be between 1 and {MAX_RANDOM_COUNT}", details={"field": "count"})
    return count
