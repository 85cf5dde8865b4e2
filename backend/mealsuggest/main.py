from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mealsuggest.api.routes import router as api_router
from mealsuggest.api.suggestions import engine_error_handler
from mealsuggest.errors import SuggestionEngineError
from mealsuggest.logging import configure_logging, get_logger
from mealsuggest.services.suggestion.factory import build_engine
from mealsuggest.storage.db import create_db_and_tables

app = FastAPI(title="Meal Suggestion API")
logger = get_logger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(SuggestionEngineError, engine_error_handler)


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    logger.info("startup: configuring services")
    create_db_and_tables()
    app.state.engine = build_engine()


@app.on_event("shutdown")
def on_shutdown() -> None:
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        logger.info("shutdown: closing suggestion engine")
        engine.close()


app.include_router(api_router)
