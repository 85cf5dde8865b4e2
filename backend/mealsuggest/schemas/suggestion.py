from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from mealsuggest.services.suggestion.types import (
    IngredientRequirement,
    IngredientStatus,
    MatchType,
    MealType,
    SelectionMode,
    SuggestionCandidate,
    SuggestionReason,
)


class EmptyReason(str, Enum):
    EMPTY_CATALOG = "empty_catalog"  # provider returned no candidate meals
    FILTERED_BY_POLICY = "filtered_by_policy"  # candidates existed, all removed by strictness/score/recency


class SuggestionFilters(BaseModel):
    meal_type: str | None = None  # breakfast | lunch | dinner; validated by the engine
    kitchen_ids: list[str] | None = None
    exclude_recent: bool = True
    strict_mode: bool = True
    favorite_boost: bool = True
    max_missing_ingredients: int | None = None  # missing mandatory+recommended; default from config
    min_availability_score: float | None = None
    limit: int = 10
    offset: int = 0


class UserPreferences(BaseModel):
    preferred_kitchens: list[str] = []
    preferred_meal_types: list[str] = []


class SuggestionRequest(BaseModel):
    user_id: str
    filters: SuggestionFilters = Field(default_factory=SuggestionFilters)
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)
    use_cache: bool = True


class MissingIngredient(BaseModel):
    ingredient_id: str
    status: IngredientStatus
    quantity: float = 0.0
    unit: str = ""

    @classmethod
    def from_requirement(cls, req: IngredientRequirement) -> "MissingIngredient":
        return cls(ingredient_id=req.ingredient_id, status=req.status, quantity=req.quantity, unit=req.unit)


class MealSuggestion(BaseModel):
    meal_id: str
    title: str = ""
    kitchen_id: str
    meal_type: MealType
    created_at: datetime
    availability_score: float
    match_type: MatchType
    suggestion_reason: SuggestionReason
    missing_ingredients: list[MissingIngredient] = []
    missing_mandatory_count: int = 0
    favorite_boost: bool = False
    kitchen_preference_match: bool = False
    meal_type_match: bool = False
    recency_excluded: bool = False
    recency_relaxed: bool = False
    recency_penalty: float = 0.0
    rank_score: float = 0.0

    @classmethod
    def from_candidate(cls, candidate: SuggestionCandidate) -> "MealSuggestion":
        meal = candidate.meal
        return cls(
            meal_id=meal.id,
            title=meal.title,
            kitchen_id=meal.kitchen_id,
            meal_type=meal.meal_type,
            created_at=meal.created_at,
            availability_score=candidate.availability_score,
            match_type=candidate.match_type,
            suggestion_reason=candidate.suggestion_reason,
            missing_ingredients=[MissingIngredient.from_requirement(r) for r in candidate.missing_ingredients],
            missing_mandatory_count=candidate.missing_mandatory_count,
            favorite_boost=candidate.favorite_boost,
            kitchen_preference_match=candidate.kitchen_preference_match,
            meal_type_match=candidate.meal_type_match,
            recency_excluded=candidate.recency_excluded,
            recency_relaxed=candidate.recency_relaxed,
            recency_penalty=candidate.recency_penalty,
            rank_score=candidate.rank_score,
        )


class SuggestionMetadata(BaseModel):
    pantry_size: int = 0
    catalog_size: int = 0
    total_eligible_meals: int = 0
    perfect_matches: int = 0
    good_matches: int = 0
    partial_matches: int = 0
    excluded_by_strictness: int = 0
    excluded_by_score: int = 0
    excluded_by_missing_limit: int = 0
    excluded_recent: int = 0
    recency_relaxed: int = 0
    favorite_boosted: int = 0
    empty_reason: EmptyReason | None = None
    config_version: int = 0
    processing_time_ms: int = 0
    cached: bool = False


class SuggestionResponse(BaseModel):
    meals: list[MealSuggestion]
    total: int
    filters_applied: SuggestionFilters
    suggestion_metadata: SuggestionMetadata


class RandomMealRequest(BaseModel):
    user_id: str
    count: int = 3
    filters: SuggestionFilters = Field(default_factory=SuggestionFilters)
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)
    selection_mode: SelectionMode = SelectionMode.WEIGHTED_RANDOM
    seed: int | None = None  # replay a previous pick by passing its random_seed


class SelectionCriteria(BaseModel):
    total_eligible: int
    filters_applied: SuggestionFilters
    selection_method: SelectionMode
    random_seed: int


class RandomMealResponse(BaseModel):
    meals: list[MealSuggestion]
    selection_criteria: SelectionCriteria
    suggestion_metadata: SuggestionMetadata


class PantryBasedSuggestionRequest(BaseModel):
    user_id: str
    pantry_ingredient_ids: list[str] | None = None  # overrides the stored pantry when given
    strict_mode: bool = False
    meal_type: str | None = None
    kitchen_ids: list[str] | None = None
    limit: int = 20
    use_cache: bool = True


class PartialMatch(BaseModel):
    meal_id: str
    title: str = ""
    kitchen_id: str
    meal_type: MealType
    missing_mandatory: list[MissingIngredient] = []
    missing_recommended: list[MissingIngredient] = []
    availability_score: float
    match_type: MatchType
    difficulty_increase: str  # low | medium | high


class UnusedIngredient(BaseModel):
    ingredient_id: str
    possible_meals: list[str] = []


class PantryUtilization(BaseModel):
    total_ingredients: int
    used_ingredients: int
    unused_ingredients: list[str] = []
    utilization_percentage: float
    suggestions_for_unused: list[UnusedIngredient] = []


class PantryHints(BaseModel):
    add_ingredients: list[str] = []
    try_different_kitchens: list[str] = []
    explore_meal_types: list[MealType] = []


class PantryBasedSuggestionResponse(BaseModel):
    eligible_meals: list[MealSuggestion]
    partial_matches: list[PartialMatch]
    pantry_utilization: PantryUtilization
    suggestions: PantryHints
    suggestion_metadata: SuggestionMetadata


class SuggestionFeedback(BaseModel):
    user_id: str
    meal_id: str
    was_selected: bool = False
    rating: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = None
    suggestion_reason: SuggestionReason | None = None
    availability_score: float | None = None


class SuggestionStats(BaseModel):
    user_id: str
    total_eligible_meals: int
    partial_matches: int
    recent_meals_excluded: int
    favorite_boost_available: bool
    config_version: int


class CacheClearResponse(BaseModel):
    user_id: str
    cleared_keys: int
