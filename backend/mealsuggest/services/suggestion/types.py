import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional


class IngredientStatus(str, Enum):
    MANDATORY = "mandatory"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


class MatchType(str, Enum):
    PERFECT = "perfect"
    GOOD = "good"
    PARTIAL = "partial"
    POOR = "poor"


class SuggestionReason(str, Enum):
    PERFECT_MATCH = "perfect_match"
    GOOD_MATCH = "good_match"
    PARTIAL_MATCH = "partial_match"
    POOR_MATCH = "poor_match"


class MatchMode(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"


class SelectionMode(str, Enum):
    PURE_RANDOM = "pure_random"
    WEIGHTED_RANDOM = "weighted_random"


def as_utc(value: datetime) -> datetime:
    """Naive datetimes from storage are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PantrySnapshot:
    user_id: str
    ingredient_ids: frozenset[str] = frozenset()

    @classmethod
    def of(cls, user_id: str, ingredient_ids: Iterable[str]) -> "PantrySnapshot":
        return cls(user_id=user_id, ingredient_ids=frozenset(i for i in ingredient_ids if i))

    def __contains__(self, ingredient_id: object) -> bool:
        return ingredient_id in self.ingredient_ids

    def __len__(self) -> int:
        return len(self.ingredient_ids)

    def fingerprint(self) -> str:
        """Content hash of the pantry; changes whenever any ingredient is added or removed."""
        digest = hashlib.sha256("\x1f".join(sorted(self.ingredient_ids)).encode("utf-8"))
        return digest.hexdigest()


@dataclass(frozen=True)
class IngredientRequirement:
    ingredient_id: str
    status: IngredientStatus = IngredientStatus.MANDATORY
    quantity: float = 0.0
    unit: str = ""


@dataclass(frozen=True)
class MealDefinition:
    id: str
    kitchen_id: str
    meal_type: MealType
    ingredients: tuple[IngredientRequirement, ...] = ()
    title: str = ""
    is_public: bool = True
    created_at: datetime = field(default_factory=utcnow)

    def ingredient_ids(self) -> frozenset[str]:
        return frozenset(req.ingredient_id for req in self.ingredients)


@dataclass(frozen=True)
class SuggestionHistoryEntry:
    meal_id: str
    suggested_at: datetime
    was_selected: bool = False
    selected_at: Optional[datetime] = None


@dataclass
class SuggestionCandidate:
    """Per-request scored view of one meal. Never persisted."""

    meal: MealDefinition
    availability_score: float
    missing_ingredients: list[IngredientRequirement]
    match_type: MatchType
    suggestion_reason: SuggestionReason
    disqualified: bool = False
    favorite_boost: bool = False
    kitchen_preference_match: bool = False
    meal_type_match: bool = False
    recency_excluded: bool = False
    recency_relaxed: bool = False
    recency_penalty: float = 0.0
    rank_score: float = 0.0

    @property
    def meal_id(self) -> str:
        return self.meal.id

    def missing_with_status(self, status: IngredientStatus) -> list[IngredientRequirement]:
        return [req for req in self.missing_ingredients if req.status == status]

    @property
    def missing_mandatory_count(self) -> int:
        return len(self.missing_with_status(IngredientStatus.MANDATORY))

    @property
    def missing_required_count(self) -> int:
        """Missing mandatory + recommended; optional items can be left out of a dish."""
        return sum(1 for req in self.missing_ingredients if req.status != IngredientStatus.OPTIONAL)
