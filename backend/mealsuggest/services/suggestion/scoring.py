"""
Availability scoring: how completely a pantry covers one meal's requirements.

score = 100 * sum over statuses of  w_status * (1 - missing_status / max(total_status, 1))

Mandatory items dominate the score. In strict mode a meal missing any mandatory
item is disqualified; the score is still computed so near-miss analysis can use it.
"""

from dataclasses import dataclass

from mealsuggest.logging import get_logger
from mealsuggest.services.suggestion.algorithm_config import StatusWeights
from mealsuggest.services.suggestion.types import (
    IngredientRequirement,
    IngredientStatus,
    MatchMode,
    MealDefinition,
    PantrySnapshot,
)

logger = get_logger(__name__)

# Missing items are listed most-important first
_STATUS_ORDER = (IngredientStatus.MANDATORY, IngredientStatus.RECOMMENDED, IngredientStatus.OPTIONAL)


@dataclass(frozen=True)
class AvailabilityResult:
    score: float
    missing: tuple[IngredientRequirement, ...]
    disqualified: bool = False

    @property
    def missing_mandatory_count(self) -> int:
        return sum(1 for req in self.missing if req.status == IngredientStatus.MANDATORY)


def _status_weight(weights: StatusWeights, status: IngredientStatus) -> float:
    if status == IngredientStatus.MANDATORY:
        return weights.mandatory
    if status == IngredientStatus.RECOMMENDED:
        return weights.recommended
    return weights.optional


def score_meal(
    meal: MealDefinition,
    pantry: PantrySnapshot,
    mode: MatchMode = MatchMode.STRICT,
    weights: StatusWeights | None = None,
) -> AvailabilityResult:
    weights = weights or StatusWeights()
    if not meal.ingredients:
        logger.warning("scoring.empty_meal meal_id=%s (no ingredient requirements; scored 100)", meal.id)
        return AvailabilityResult(score=100.0, missing=())

    totals = {status: 0 for status in _STATUS_ORDER}
    missing_by_status: dict[IngredientStatus, list[IngredientRequirement]] = {s: [] for s in _STATUS_ORDER}
    for req in meal.ingredients:
        totals[req.status] += 1
        if req.ingredient_id not in pantry:
            missing_by_status[req.status].append(req)

    raw = 0.0
    for status in _STATUS_ORDER:
        covered = 1.0 - len(missing_by_status[status]) / max(totals[status], 1)
        raw += _status_weight(weights, status) * covered
    score = round(min(100.0, max(0.0, 100.0 * raw)), 2)

    missing = tuple(req for status in _STATUS_ORDER for req in missing_by_status[status])
    disqualified = mode == MatchMode.STRICT and bool(missing_by_status[IngredientStatus.MANDATORY])
    return AvailabilityResult(score=score, missing=missing, disqualified=disqualified)
