from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


MEAL_TYPES = ("breakfast", "lunch", "dinner")
INGREDIENT_STATUSES = ("mandatory", "recommended", "optional")


class Meal(SQLModel, table=True):
    id: str = Field(primary_key=True)
    title: str = ""
    kitchen_id: str = Field(index=True)
    meal_type: str = "dinner"  # breakfast | lunch | dinner
    is_public: bool = True
    is_approved: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class MealIngredient(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    meal_id: str = Field(foreign_key="meal.id", index=True)
    ingredient_id: str
    quantity: float = 0.0
    unit: str = ""
    status: str = "mandatory"  # mandatory | recommended | optional


class PantryItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    ingredient_id: str
    added_at: datetime = Field(default_factory=datetime.utcnow)


class FavoriteMeal(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    meal_id: str = Field(foreign_key="meal.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class SuggestionHistory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    meal_id: str = Field(index=True)
    suggested_at: datetime = Field(default_factory=datetime.utcnow)
    suggestion_reason: Optional[str] = None
    availability_score: Optional[float] = None
    was_selected: bool = False
    selected_at: Optional[datetime] = None
    feedback_rating: Optional[int] = None
    feedback_comment: Optional[str] = None


class UserKitchenPreference(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    kitchen_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
