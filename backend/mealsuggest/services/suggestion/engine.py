"""
Suggestion engine: the request pipeline shared by every exposed operation.

fetch providers -> score -> classify -> filter by mode/score/missing limit
-> recency exclusion -> rank (or sample) -> response with metadata.

Every stage reads one AlgorithmConfig snapshot taken at request start.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel

from mealsuggest.config import settings
from mealsuggest.errors import InvalidFilter
from mealsuggest.logging import get_logger
from mealsuggest.schemas.suggestion import (
    EmptyReason,
    MealSuggestion,
    MissingIngredient,
    PantryBasedSuggestionRequest,
    PantryBasedSuggestionResponse,
    PantryHints,
    PantryUtilization,
    PartialMatch,
    RandomMealRequest,
    RandomMealResponse,
    SelectionCriteria,
    SuggestionFeedback,
    SuggestionFilters,
    SuggestionMetadata,
    SuggestionRequest,
    SuggestionResponse,
    SuggestionStats,
    UnusedIngredient,
)
from mealsuggest.services.cache.suggestion_cache import SuggestionCache, make_cache_key
from mealsuggest.services.providers import CatalogFilters, ProviderFetcher, Providers
from mealsuggest.services.suggestion.algorithm_config import AlgorithmConfig, validate_algorithm_config
from mealsuggest.services.suggestion.classifier import classify_match
from mealsuggest.services.suggestion.filters import (
    MAX_PAGE_LIMIT,
    MatchCriteria,
    build_criteria,
    parse_kitchen_ids,
    parse_meal_type,
    validate_random_count,
)
from mealsuggest.services.suggestion.random_select import new_seed, select_random
from mealsuggest.services.suggestion.ranking import annotate_signals, paginate, rank_candidates
from mealsuggest.services.suggestion.recency import apply_recency_exclusion, assign_recency_penalties
from mealsuggest.services.suggestion.scoring import score_meal
from mealsuggest.services.suggestion.types import (
    IngredientStatus,
    MatchMode,
    MatchType,
    MealDefinition,
    MealType,
    PantrySnapshot,
    SuggestionCandidate,
    utcnow,
)
from mealsuggest.services.suggestion.utilization import analyze_pantry_utilization, ingredients_to_add
from mealsuggest.utils.request_context import RequestContext
from mealsuggest.utils.timing import TimingTracker, time_span

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=BaseModel)

SUGGESTIONS_NAMESPACE = "suggestions"
PANTRY_NAMESPACE = "pantry"

MAX_KITCHEN_HINTS = 3
FEW_ELIGIBLE_MEALS = 3

# Cancellation is re-checked every this many meals while scoring
_SCORING_CHECK_EVERY = 64


@dataclass
class _RankedPool:
    ranked: list[SuggestionCandidate]
    metadata: SuggestionMetadata


def _difficulty(missing_mandatory: int) -> str:
    if missing_mandatory <= 1:
        return "low"
    if missing_mandatory == 2:
        return "medium"
    return "high"


def _tier_counts(candidates: list[SuggestionCandidate]) -> dict[str, int]:
    return {
        "perfect_matches": sum(1 for c in candidates if c.match_type == MatchType.PERFECT),
        "good_matches": sum(1 for c in candidates if c.match_type == MatchType.GOOD),
        "partial_matches": sum(1 for c in candidates if c.match_type == MatchType.PARTIAL),
    }


def _empty_reason(catalog_size: int, eligible: int) -> Optional[EmptyReason]:
    if catalog_size == 0:
        return EmptyReason.EMPTY_CATALOG
    if eligible == 0:
        return EmptyReason.FILTERED_BY_POLICY
    return None


def _require_user(user_id: str) -> str:
    if not (user_id or "").strip():
        raise InvalidFilter("user_id must not be blank", details={"field": "user_id"})
    return user_id


class SuggestionEngine:
    def __init__(
        self,
        providers: Providers,
        cache: Optional[SuggestionCache] = None,
        fetcher: Optional[ProviderFetcher] = None,
        budget_s: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._providers = providers
        self._cache = cache
        self._fetcher = fetcher or ProviderFetcher()
        self._budget_s = settings.provider_timeout_s if budget_s is None else budget_s
        self._clock = clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def new_context(self) -> RequestContext:
        return RequestContext.with_budget(self._budget_s)

    def _fetch_one(self, name: str, fn: Callable[[], T], ctx: RequestContext) -> T:
        return self._fetcher.fetch({name: fn}, ctx)[name]

    def _config(self, ctx: RequestContext) -> AlgorithmConfig:
        config = self._fetch_one("config", self._providers.config.get_algorithm_config, ctx)
        return validate_algorithm_config(config)

    def _pantry(self, user_id: str, ctx: RequestContext) -> PantrySnapshot:
        ids = self._fetch_one("pantry", lambda: self._providers.pantry.get_pantry(user_id), ctx)
        return PantrySnapshot.of(user_id, ids)

    def _cached(
        self,
        namespace: str,
        user_id: str,
        pantry: PantrySnapshot,
        params: dict[str, Any],
        config: AlgorithmConfig,
        model: type[R],
        compute: Callable[[], R],
        use_cache: bool,
    ) -> tuple[R, bool]:
        if self._cache is None or not use_cache:
            return compute(), False
        key = make_cache_key(namespace, user_id, pantry, params, config.version)
        return self._cache.get_or_compute(user_id, pantry.fingerprint(), key, model, compute)

    @staticmethod
    def _stamp(metadata: SuggestionMetadata, span: TimingTracker, cached: bool) -> SuggestionMetadata:
        return metadata.model_copy(update={"processing_time_ms": span.elapsed_ms, "cached": cached})

    def _evaluate(
        self,
        meals: list[MealDefinition],
        pantry: PantrySnapshot,
        mode: MatchMode,
        config: AlgorithmConfig,
        ctx: RequestContext,
    ) -> list[SuggestionCandidate]:
        candidates: list[SuggestionCandidate] = []
        for i, meal in enumerate(meals):
            if i % _SCORING_CHECK_EVERY == 0:
                ctx.check("scoring")
            result = score_meal(meal, pantry, mode, config.status_weights)
            match_type, reason = classify_match(result.score, result.missing_mandatory_count, config.thresholds)
            candidates.append(
                SuggestionCandidate(
                    meal=meal,
                    availability_score=result.score,
                    missing_ingredients=list(result.missing),
                    match_type=match_type,
                    suggestion_reason=reason,
                    disqualified=result.disqualified,
                )
            )
        return candidates

    def _ranked_pool(
        self,
        user_id: str,
        criteria: MatchCriteria,
        config: AlgorithmConfig,
        pantry: PantrySnapshot,
        ctx: RequestContext,
    ) -> _RankedPool:
        providers = self._providers
        window = timedelta(days=config.limits.recent_exclusion_days)
        calls = {
            "catalog": lambda: providers.catalog.get_candidate_meals(criteria.catalog),
            "favorites": lambda: providers.favorites.get_favorite_meal_ids(user_id),
            "history": lambda: providers.history.get_recent_history(user_id, window),
        }
        if not criteria.preferred_kitchens and providers.kitchens is not None:
            calls["kitchens"] = lambda: providers.kitchens.get_preferred_kitchen_ids(user_id)
        fetched = self._fetcher.fetch(calls, ctx)
        meals: list[MealDefinition] = fetched["catalog"]
        favorites: set[str] = set(fetched["favorites"])
        history = fetched["history"]
        preferred_kitchens = set(criteria.preferred_kitchens) or set(fetched.get("kitchens", ()))

        with time_span("suggestions.score", user_id=user_id, meals=len(meals)):
            candidates = self._evaluate(meals, pantry, criteria.mode, config, ctx)

        excluded_strict = excluded_score = excluded_missing = 0
        pool: list[SuggestionCandidate] = []
        for candidate in candidates:
            if candidate.disqualified:
                excluded_strict += 1
            elif candidate.match_type == MatchType.POOR or (
                criteria.min_availability_score is not None
                and candidate.availability_score < criteria.min_availability_score
            ):
                excluded_score += 1
            elif candidate.missing_required_count > criteria.max_missing_ingredients:
                excluded_missing += 1
            else:
                pool.append(candidate)

        ctx.check("recency")
        now = self._clock()
        annotate_signals(
            pool,
            favorite_ids=favorites,
            preferred_kitchens=preferred_kitchens,
            target_meal_types=set(criteria.target_meal_types),
            favorite_boost_enabled=criteria.favorite_boost,
        )
        assign_recency_penalties(pool, history, config.limits.recent_exclusion_days, now)
        excluded_recent = relaxed = 0
        if criteria.exclude_recent:
            outcome = apply_recency_exclusion(pool, history, config.limits, now)
            pool = outcome.kept
            excluded_recent, relaxed = len(outcome.excluded), len(outcome.relaxed)

        ctx.check("ranking")
        ranked = rank_candidates(pool, config.weights)
        metadata = SuggestionMetadata(
            pantry_size=len(pantry),
            catalog_size=len(meals),
            total_eligible_meals=len(ranked),
            excluded_by_strictness=excluded_strict,
            excluded_by_score=excluded_score,
            excluded_by_missing_limit=excluded_missing,
            excluded_recent=excluded_recent,
            recency_relaxed=relaxed,
            favorite_boosted=sum(1 for c in ranked if c.favorite_boost),
            empty_reason=_empty_reason(len(meals), len(ranked)),
            config_version=config.version,
            **_tier_counts(ranked),
        )
        return _RankedPool(ranked=ranked, metadata=metadata)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def generate_suggestions(
        self, request: SuggestionRequest, ctx: Optional[RequestContext] = None
    ) -> SuggestionResponse:
        ctx = ctx or self.new_context()
        user_id = _require_user(request.user_id)
        with time_span("suggestions.generate", user_id=user_id) as span:
            config = self._config(ctx)
            criteria = build_criteria(request.filters, request.user_preferences, config.limits)
            logger.info(
                "suggestions.generate.start user_id=%s mode=%s config_version=%s",
                user_id,
                criteria.mode.value,
                config.version,
            )
            pantry = self._pantry(user_id, ctx)

            def compute() -> SuggestionResponse:
                pool = self._ranked_pool(user_id, criteria, config, pantry, ctx)
                visible = pool.ranked[: config.limits.max_suggestions]
                page = paginate(visible, criteria.limit, criteria.offset, config.limits.max_suggestions)
                return SuggestionResponse(
                    meals=[MealSuggestion.from_candidate(c) for c in page],
                    total=len(visible),
                    filters_applied=request.filters,
                    suggestion_metadata=pool.metadata,
                )

            params = {
                "filters": request.filters.model_dump(mode="json"),
                "preferences": request.user_preferences.model_dump(mode="json"),
            }
            response, hit = self._cached(
                SUGGESTIONS_NAMESPACE, user_id, pantry, params, config, SuggestionResponse, compute, request.use_cache
            )
            metadata = self._stamp(response.suggestion_metadata, span, hit)
        logger.info(
            "suggestions.generate.done user_id=%s returned=%s eligible=%s cached=%s empty_reason=%s",
            user_id,
            len(response.meals),
            metadata.total_eligible_meals,
            hit,
            metadata.empty_reason.value if metadata.empty_reason else None,
        )
        return response.model_copy(update={"suggestion_metadata": metadata})

    def get_random_meals(
        self, request: RandomMealRequest, ctx: Optional[RequestContext] = None
    ) -> RandomMealResponse:
        ctx = ctx or self.new_context()
        user_id = _require_user(request.user_id)
        count = validate_random_count(request.count)
        with time_span("suggestions.random", user_id=user_id, count=count) as span:
            config = self._config(ctx)
            criteria = build_criteria(request.filters, request.user_preferences, config.limits)
            pantry = self._pantry(user_id, ctx)
            pool = self._ranked_pool(user_id, criteria, config, pantry, ctx)
            seed = new_seed() if request.seed is None else request.seed
            picked = select_random(pool.ranked, count, request.selection_mode, seed)
            metadata = self._stamp(pool.metadata, span, cached=False)
        logger.info(
            "suggestions.random.done user_id=%s method=%s seed=%s picked=%s pool=%s",
            user_id,
            request.selection_mode.value,
            seed,
            len(picked),
            len(pool.ranked),
        )
        return RandomMealResponse(
            meals=[MealSuggestion.from_candidate(c) for c in picked],
            selection_criteria=SelectionCriteria(
                total_eligible=len(pool.ranked),
                filters_applied=request.filters,
                selection_method=request.selection_mode,
                random_seed=seed,
            ),
            suggestion_metadata=metadata,
        )

    def get_pantry_based_suggestions(
        self, request: PantryBasedSuggestionRequest, ctx: Optional[RequestContext] = None
    ) -> PantryBasedSuggestionResponse:
        ctx = ctx or self.new_context()
        user_id = _require_user(request.user_id)
        if not 1 <= request.limit <= MAX_PAGE_LIMIT:
            raise InvalidFilter(f"limit must be between 1 and {MAX_PAGE_LIMIT}", details={"field": "limit"})
        meal_type = parse_meal_type(request.meal_type)
        catalog_filters = CatalogFilters(meal_type=meal_type, kitchen_ids=parse_kitchen_ids(request.kitchen_ids))
        mode = MatchMode.STRICT if request.strict_mode else MatchMode.LENIENT

        with time_span("suggestions.pantry", user_id=user_id) as span:
            config = self._config(ctx)
            explicit_pantry = request.pantry_ingredient_ids is not None
            if explicit_pantry:
                pantry = PantrySnapshot.of(user_id, request.pantry_ingredient_ids)
            else:
                pantry = self._pantry(user_id, ctx)

            def compute() -> PantryBasedSuggestionResponse:
                return self._analyze_pantry(user_id, pantry, catalog_filters, meal_type, mode, request.limit, config, ctx)

            params = {
                "strict_mode": request.strict_mode,
                "meal_type": meal_type.value if meal_type else None,
                "kitchen_ids": list(catalog_filters.kitchen_ids or ()),
                "limit": request.limit,
            }
            # an explicit pantry is a what-if query; it must not replace the stored pantry's fingerprint
            response, hit = self._cached(
                PANTRY_NAMESPACE,
                user_id,
                pantry,
                params,
                config,
                PantryBasedSuggestionResponse,
                compute,
                request.use_cache and not explicit_pantry,
            )
            metadata = self._stamp(response.suggestion_metadata, span, hit)
        logger.info(
            "suggestions.pantry.done user_id=%s eligible=%s partial=%s utilization=%s cached=%s",
            user_id,
            len(response.eligible_meals),
            len(response.partial_matches),
            response.pantry_utilization.utilization_percentage,
            hit,
        )
        return response.model_copy(update={"suggestion_metadata": metadata})

    def _analyze_pantry(
        self,
        user_id: str,
        pantry: PantrySnapshot,
        catalog_filters: CatalogFilters,
        meal_type: Optional[MealType],
        mode: MatchMode,
        limit: int,
        config: AlgorithmConfig,
        ctx: RequestContext,
    ) -> PantryBasedSuggestionResponse:
        meals = self._fetch_one(
            "catalog", lambda: self._providers.catalog.get_candidate_meals(catalog_filters), ctx
        )
        candidates = self._evaluate(meals, pantry, mode, config, ctx)
        # cookable now: every mandatory item on hand, whatever the mode
        eligible = [c for c in candidates if c.missing_mandatory_count == 0 and c.match_type != MatchType.POOR]
        near_miss = [c for c in candidates if c.missing_mandatory_count > 0 or c.match_type == MatchType.POOR]

        ctx.check("ranking")
        annotate_signals(eligible, set(), set(), {meal_type} if meal_type else set())
        ranked = rank_candidates(eligible, config.weights)

        close = sorted(
            (c for c in near_miss if c.missing_mandatory_count <= config.limits.max_missing_ingredients),
            key=lambda c: (c.missing_mandatory_count, -c.availability_score, c.meal_id),
        )[:limit]
        partial_matches = [
            PartialMatch(
                meal_id=c.meal_id,
                title=c.meal.title,
                kitchen_id=c.meal.kitchen_id,
                meal_type=c.meal.meal_type,
                missing_mandatory=[
                    MissingIngredient.from_requirement(r) for r in c.missing_with_status(IngredientStatus.MANDATORY)
                ],
                missing_recommended=[
                    MissingIngredient.from_requirement(r) for r in c.missing_with_status(IngredientStatus.RECOMMENDED)
                ],
                availability_score=c.availability_score,
                match_type=c.match_type,
                difficulty_increase=_difficulty(c.missing_mandatory_count),
            )
            for c in close
        ]

        utilization = analyze_pantry_utilization(eligible, near_miss, pantry)

        eligible_kitchens = {c.meal.kitchen_id for c in eligible}
        kitchens: list[str] = []
        for c in close:
            kitchen = c.meal.kitchen_id
            if kitchen not in eligible_kitchens and kitchen not in kitchens:
                kitchens.append(kitchen)
        meal_types: list[MealType] = []
        if meal_type is not None and len(eligible) < FEW_ELIGIBLE_MEALS:
            meal_types = [t for t in MealType if t != meal_type]

        metadata = SuggestionMetadata(
            pantry_size=len(pantry),
            catalog_size=len(meals),
            total_eligible_meals=len(eligible),
            excluded_by_strictness=sum(
                1 for c in candidates if c.disqualified or (c.missing_mandatory_count and c.match_type != MatchType.POOR)
            ),
            excluded_by_score=sum(1 for c in candidates if not c.disqualified and c.match_type == MatchType.POOR),
            empty_reason=_empty_reason(len(meals), len(eligible)),
            config_version=config.version,
            **_tier_counts(eligible),
        )
        return PantryBasedSuggestionResponse(
            eligible_meals=[MealSuggestion.from_candidate(c) for c in ranked[:limit]],
            partial_matches=partial_matches,
            pantry_utilization=PantryUtilization(
                total_ingredients=utilization.total_ingredients,
                used_ingredients=utilization.used_ingredients,
                unused_ingredients=utilization.unused_ingredients,
                utilization_percentage=utilization.utilization_percentage,
                suggestions_for_unused=[
                    UnusedIngredient(ingredient_id=s.ingredient_id, possible_meals=s.possible_meals)
                    for s in utilization.suggestions_for_unused
                ],
            ),
            suggestions=PantryHints(
                add_ingredients=ingredients_to_add(near_miss),
                try_different_kitchens=kitchens[:MAX_KITCHEN_HINTS],
                explore_meal_types=meal_types,
            ),
            suggestion_metadata=metadata,
        )

    def record_suggestion_feedback(
        self, feedback: SuggestionFeedback, ctx: Optional[RequestContext] = None
    ) -> None:
        ctx = ctx or self.new_context()
        user_id = _require_user(feedback.user_id)
        if not (feedback.meal_id or "").strip():
            raise InvalidFilter("meal_id must not be blank", details={"field": "meal_id"})
        at = self._clock()
        self._fetch_one("history", lambda: self._providers.history.record_feedback(feedback, at), ctx)
        dropped = self._cache.invalidate_user(user_id) if self._cache is not None else 0
        logger.info(
            "suggestions.feedback user_id=%s meal_id=%s selected=%s rating=%s cache_dropped=%s",
            user_id,
            feedback.meal_id,
            feedback.was_selected,
            feedback.rating,
            dropped,
        )

    def get_suggestion_stats(self, user_id: str, ctx: Optional[RequestContext] = None) -> SuggestionStats:
        ctx = ctx or self.new_context()
        user_id = _require_user(user_id)
        with time_span("suggestions.stats", user_id=user_id):
            config = self._config(ctx)
            criteria = build_criteria(
                SuggestionFilters(strict_mode=False, limit=MAX_PAGE_LIMIT), None, config.limits
            )
            pantry = self._pantry(user_id, ctx)
            pool = self._ranked_pool(user_id, criteria, config, pantry, ctx)
        metadata = pool.metadata
        return SuggestionStats(
            user_id=user_id,
            total_eligible_meals=metadata.total_eligible_meals,
            partial_matches=metadata.partial_matches,
            recent_meals_excluded=metadata.excluded_recent,
            favorite_boost_available=metadata.favorite_boosted > 0,
            config_version=config.version,
        )

    def clear_user_cache(self, user_id: str) -> int:
        user_id = _require_user(user_id)
        if self._cache is None:
            return 0
        return self._cache.invalidate_user(user_id)

    def close(self) -> None:
        self._fetcher.close()
        if self._cache is not None:
            self._cache.close()
