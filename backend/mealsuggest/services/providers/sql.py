"""Providers backed by the SQLModel read models in mealsuggest.storage."""

from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlmodel import Session

from mealsuggest.logging import get_logger
from mealsuggest.schemas.suggestion import SuggestionFeedback
from mealsuggest.services.providers.base import CatalogFilters
from mealsuggest.services.suggestion.types import (
    IngredientRequirement,
    IngredientStatus,
    MealDefinition,
    MealType,
    SuggestionHistoryEntry,
    as_utc,
    utcnow,
)
from mealsuggest.storage import db as db_module
from mealsuggest.storage.models import Meal, MealIngredient, SuggestionHistory
from mealsuggest.storage.repositories import (
    create_history_entry,
    get_candidate_meals,
    get_favorite_meal_ids,
    get_history_since,
    get_pantry_ingredient_ids,
    get_preferred_kitchen_ids,
)

logger = get_logger(__name__)

SessionFactory = Callable[[], Session]


def _naive_utc(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def _status(raw: str, meal_id: str) -> IngredientStatus:
    try:
        return IngredientStatus((raw or "").strip().lower())
    except ValueError:
        logger.warning("catalog.unknown_status meal_id=%s status=%s (treated as optional)", meal_id, raw)
        return IngredientStatus.OPTIONAL


def to_meal_definition(meal: Meal, rows: list[MealIngredient]) -> Optional[MealDefinition]:
    try:
        meal_type = MealType(meal.meal_type)
    except ValueError:
        logger.warning("catalog.skip_meal meal_id=%s meal_type=%s", meal.id, meal.meal_type)
        return None
    return MealDefinition(
        id=meal.id,
        kitchen_id=meal.kitchen_id,
        meal_type=meal_type,
        ingredients=tuple(
            IngredientRequirement(
                ingredient_id=row.ingredient_id,
                status=_status(row.status, meal.id),
                quantity=row.quantity,
                unit=row.unit,
            )
            for row in rows
        ),
        title=meal.title,
        is_public=meal.is_public,
        created_at=as_utc(meal.created_at),
    )


class _SqlProvider:
    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory

    def _session(self) -> Session:
        # resolved per call so a swapped db engine (tests, reconfiguration) is picked up
        factory = self._session_factory or db_module.get_session
        return factory()


class SqlPantryProvider(_SqlProvider):
    def get_pantry(self, user_id: str) -> set[str]:
        with self._session() as session:
            return get_pantry_ingredient_ids(session, user_id)


class SqlCatalogProvider(_SqlProvider):
    def get_candidate_meals(self, filters: CatalogFilters) -> list[MealDefinition]:
        with self._session() as session:
            rows = get_candidate_meals(
                session,
                meal_type=filters.meal_type.value if filters.meal_type else None,
                kitchen_ids=filters.kitchen_ids,
            )
        meals = [to_meal_definition(meal, ingredients) for meal, ingredients in rows]
        return [m for m in meals if m is not None]


class SqlFavoritesProvider(_SqlProvider):
    def get_favorite_meal_ids(self, user_id: str) -> set[str]:
        with self._session() as session:
            return get_favorite_meal_ids(session, user_id)


class SqlKitchenPreferencesProvider(_SqlProvider):
    def get_preferred_kitchen_ids(self, user_id: str) -> set[str]:
        with self._session() as session:
            return get_preferred_kitchen_ids(session, user_id)


class SqlHistoryProvider(_SqlProvider):
    def get_recent_history(self, user_id: str, window: timedelta) -> list[SuggestionHistoryEntry]:
        since = _naive_utc(utcnow() - window)
        with self._session() as session:
            rows = get_history_since(session, user_id, since)
        return [
            SuggestionHistoryEntry(
                meal_id=row.meal_id,
                suggested_at=as_utc(row.suggested_at),
                was_selected=row.was_selected,
                selected_at=as_utc(row.selected_at) if row.selected_at else None,
            )
            for row in rows
        ]

    def record_feedback(self, feedback: SuggestionFeedback, at: datetime) -> None:
        at = _naive_utc(at)
        with self._session() as session:
            create_history_entry(
                session,
                SuggestionHistory(
                    user_id=feedback.user_id,
                    meal_id=feedback.meal_id,
                    suggested_at=at,
                    suggestion_reason=feedback.suggestion_reason.value if feedback.suggestion_reason else None,
                    availability_score=feedback.availability_score,
                    was_selected=feedback.was_selected,
                    selected_at=at if feedback.was_selected else None,
                    feedback_rating=feedback.rating,
                    feedback_comment=feedback.comment,
                ),
            )
