from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from mealsuggest.errors import (
    ConfigInvalid,
    InvalidFilter,
    ProviderUnavailable,
    RequestCancelled,
    SuggestionEngineError,
    SuggestionTimeout,
)
from mealsuggest.logging import get_logger
from mealsuggest.schemas.suggestion import (
    CacheClearResponse,
    PantryBasedSuggestionRequest,
    PantryBasedSuggestionResponse,
    RandomMealRequest,
    RandomMealResponse,
    SuggestionFeedback,
    SuggestionRequest,
    SuggestionResponse,
    SuggestionStats,
)
from mealsuggest.services.suggestion.engine import SuggestionEngine

router = APIRouter(prefix="/suggestions")
logger = get_logger(__name__)

# 499: client closed request (nginx convention)
ERROR_STATUS: dict[type[SuggestionEngineError], int] = {
    InvalidFilter: 400,
    ConfigInvalid: 500,
    ProviderUnavailable: 503,
    SuggestionTimeout: 504,
    RequestCancelled: 499,
}


def status_for(error: SuggestionEngineError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


def engine_error_handler(request: Request, exc: SuggestionEngineError) -> JSONResponse:
    status = status_for(exc)
    log = logger.warning if status < 500 else logger.error
    log("api.error path=%s status=%s code=%s message=%s", request.url.path, status, exc.code, exc.message)
    return JSONResponse(status_code=status, content={"error": exc.to_dict()})


def get_engine(request: Request) -> SuggestionEngine:
    return request.app.state.engine


@router.post("", response_model=SuggestionResponse)
def generate_suggestions(
    body: SuggestionRequest, engine: SuggestionEngine = Depends(get_engine)
) -> SuggestionResponse:
    return engine.generate_suggestions(body)


@router.post("/random", response_model=RandomMealResponse)
def random_meals(body: RandomMealRequest, engine: SuggestionEngine = Depends(get_engine)) -> RandomMealResponse:
    return engine.get_random_meals(body)


@router.post("/pantry", response_model=PantryBasedSuggestionResponse)
def pantry_based_suggestions(
    body: PantryBasedSuggestionRequest, engine: SuggestionEngine = Depends(get_engine)
) -> PantryBasedSuggestionResponse:
    return engine.get_pantry_based_suggestions(body)


@router.post("/feedback", status_code=204)
def record_feedback(body: SuggestionFeedback, engine: SuggestionEngine = Depends(get_engine)) -> None:
    engine.record_suggestion_feedback(body)


@router.delete("/cache/{user_id}", response_model=CacheClearResponse)
def clear_cache(user_id: str, engine: SuggestionEngine = Depends(get_engine)) -> CacheClearResponse:
    cleared = engine.clear_user_cache(user_id)
    logger.info("api.cache_cleared user_id=%s keys=%s", user_id, cleared)
    return CacheClearResponse(user_id=user_id, cleared_keys=cleared)


@router.get("/stats/{user_id}", response_model=SuggestionStats)
def suggestion_stats(user_id: str, engine: SuggestionEngine = Depends(get_engine)) -> SuggestionStats:
    return engine.get_suggestion_stats(user_id)
