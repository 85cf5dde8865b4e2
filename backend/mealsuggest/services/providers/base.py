"""Read-only query interfaces the engine consumes. Implementations live outside the engine core."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from mealsuggest.schemas.suggestion import SuggestionFeedback
from mealsuggest.services.suggestion.algorithm_config import AlgorithmConfig
from mealsuggest.services.suggestion.types import MealDefinition, MealType, SuggestionHistoryEntry


@dataclass(frozen=True)
class CatalogFilters:
    meal_type: Optional[MealType] = None
    kitchen_ids: Optional[tuple[str, ...]] = None


class PantryProvider(Protocol):
    def get_pantry(self, user_id: str) -> set[str]: ...


class CatalogProvider(Protocol):
    def get_candidate_meals(self, filters: CatalogFilters) -> list[MealDefinition]: ...


class FavoritesProvider(Protocol):
    def get_favorite_meal_ids(self, user_id: str) -> set[str]: ...


class HistoryProvider(Protocol):
    def get_recent_history(self, user_id: str, window: timedelta) -> list[SuggestionHistoryEntry]: ...

    def record_feedback(self, feedback: SuggestionFeedback, at: datetime) -> None: ...


class KitchenPreferencesProvider(Protocol):
    def get_preferred_kitchen_ids(self, user_id: str) -> set[str]: ...


class ConfigProvider(Protocol):
    def get_algorithm_config(self) -> AlgorithmConfig: ...


@dataclass
class Providers:
    pantry: PantryProvider
    catalog: CatalogProvider
    favorites: FavoritesProvider
    history: HistoryProvider
    config: ConfigProvider
    # stored kitchen preferences; consulted only when a request carries none
    kitchens: Optional[KitchenPreferencesProvider] = None
