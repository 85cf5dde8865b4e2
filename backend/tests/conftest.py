import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from mealsuggest import main
from mealsuggest.services.cache.suggestion_cache import InMemorySuggestionCache
from mealsuggest.services.providers import ProviderFetcher, Providers
from mealsuggest.services.providers.sql import (
    SqlCatalogProvider,
    SqlFavoritesProvider,
    SqlHistoryProvider,
    SqlKitchenPreferencesProvider,
    SqlPantryProvider,
)
from mealsuggest.services.suggestion.algorithm_config import SettingsConfigProvider
from mealsuggest.services.suggestion.engine import SuggestionEngine
from mealsuggest.storage import db as db_module


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="suggestion_engine")
def suggestion_engine_fixture(monkeypatch, engine):
    def _get_session_override():
        return Session(engine)

    monkeypatch.setattr(db_module, "engine", engine)
    monkeypatch.setattr(db_module, "get_session", _get_session_override)

    providers = Providers(
        pantry=SqlPantryProvider(),
        catalog=SqlCatalogProvider(),
        favorites=SqlFavoritesProvider(),
        history=SqlHistoryProvider(),
        config=SettingsConfigProvider(),
        kitchens=SqlKitchenPreferencesProvider(),
    )
    # one worker: the sqlite StaticPool shares a single connection
    suggestion_engine = SuggestionEngine(
        providers,
        cache=InMemorySuggestionCache(ttl_s=60, max_entries=100),
        fetcher=ProviderFetcher(max_workers=1, retries=1, backoff_s=0.0),
        budget_s=10.0,
    )
    yield suggestion_engine
    suggestion_engine.close()


@pytest.fixture(name="client")
def client_fixture(monkeypatch, suggestion_engine):
    monkeypatch.setattr(main.app.state, "engine", suggestion_engine, raising=False)
    client = TestClient(main.app)
    return client
