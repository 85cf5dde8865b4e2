from fastapi import APIRouter

from mealsuggest.api.health import router as health_router
from mealsuggest.api.suggestions import router as suggestions_router

router = APIRouter(prefix="/api")
router.include_router(health_router)
router.include_router(suggestions_router)
