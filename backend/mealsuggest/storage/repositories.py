from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlmodel import Session, select

from mealsuggest.logging import get_logger
from mealsuggest.storage.models import (
    FavoriteMeal,
    Meal,
    MealIngredient,
    PantryItem,
    SuggestionHistory,
    UserKitchenPreference,
)

logger = get_logger(__name__)


def get_pantry_ingredient_ids(session: Session, user_id: str) -> set[str]:
    return set(session.exec(select(PantryItem.ingredient_id).where(PantryItem.user_id == user_id)))


def get_candidate_meals(
    session: Session, meal_type: Optional[str] = None, kitchen_ids: Optional[Iterable[str]] = None
) -> list[tuple[Meal, list[MealIngredient]]]:
    """Public, approved meals with their ingredient rows, newest first."""
    query = select(Meal).where(Meal.is_public == True, Meal.is_approved == True)  # noqa: E712
    if meal_type:
        query = query.where(Meal.meal_type == meal_type)
    if kitchen_ids:
        query = query.where(Meal.kitchen_id.in_(list(kitchen_ids)))
    meals = list(session.exec(query.order_by(Meal.created_at.desc(), Meal.id)))
    if not meals:
        return []
    rows = session.exec(
        select(MealIngredient).where(MealIngredient.meal_id.in_([m.id for m in meals])).order_by(MealIngredient.id)
    )
    by_meal: dict[str, list[MealIngredient]] = {}
    for row in rows:
        by_meal.setdefault(row.meal_id, []).append(row)
    return [(meal, by_meal.get(meal.id, [])) for meal in meals]


def get_favorite_meal_ids(session: Session, user_id: str) -> set[str]:
    return set(session.exec(select(FavoriteMeal.meal_id).where(FavoriteMeal.user_id == user_id)))


def get_preferred_kitchen_ids(session: Session, user_id: str) -> set[str]:
    return set(
        session.exec(select(UserKitchenPreference.kitchen_id).where(UserKitchenPreference.user_id == user_id))
    )


def get_history_since(session: Session, user_id: str, since: datetime) -> list[SuggestionHistory]:
    return list(
        session.exec(
            select(SuggestionHistory)
            .where(SuggestionHistory.user_id == user_id)
            .where(or_(SuggestionHistory.suggested_at >= since, SuggestionHistory.selected_at >= since))
            .order_by(SuggestionHistory.suggested_at.desc())
        )
    )


def create_history_entry(session: Session, entry: SuggestionHistory) -> SuggestionHistory:
    session.add(entry)
    session.commit()
    session.refresh(entry)
    logger.info(
        "suggestion_history.created id=%s user_id=%s meal_id=%s selected=%s rating=%s",
        entry.id,
        entry.user_id,
        entry.meal_id,
        entry.was_selected,
        entry.feedback_rating,
    )
    return entry
