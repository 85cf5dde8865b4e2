"""Wires the default SQL providers, config source, cache and fetcher into an engine."""

from typing import Optional

from mealsuggest.config import Settings, settings as default_settings
from mealsuggest.logging import get_logger
from mealsuggest.services.cache.suggestion_cache import build_cache
from mealsuggest.services.providers import ProviderFetcher, Providers
from mealsuggest.services.providers.base import ConfigProvider
from mealsuggest.services.providers.remote_config import RemoteConfigProvider
from mealsuggest.services.providers.sql import (
    SqlCatalogProvider,
    SqlFavoritesProvider,
    SqlHistoryProvider,
    SqlKitchenPreferencesProvider,
    SqlPantryProvider,
)
from mealsuggest.services.suggestion.algorithm_config import SettingsConfigProvider
from mealsuggest.services.suggestion.engine import SuggestionEngine

logger = get_logger(__name__)


def build_config_provider(source: Settings) -> ConfigProvider:
    if source.algorithm_config_url:
        logger.info("algorithm_config.source remote url=%s", source.algorithm_config_url)
        return RemoteConfigProvider(
            url=source.algorithm_config_url,
            timeout_s=source.algorithm_config_timeout_s,
            refresh_s=source.algorithm_config_refresh_s,
        )
    logger.info("algorithm_config.source settings")
    return SettingsConfigProvider(source)


def build_engine(source: Optional[Settings] = None) -> SuggestionEngine:
    source = source or default_settings
    providers = Providers(
        pantry=SqlPantryProvider(),
        catalog=SqlCatalogProvider(),
        favorites=SqlFavoritesProvider(),
        history=SqlHistoryProvider(),
        config=build_config_provider(source),
        kitchens=SqlKitchenPreferencesProvider(),
    )
    fetcher = ProviderFetcher(
        max_workers=source.provider_max_workers,
        retries=source.provider_retries,
        backoff_s=source.provider_retry_backoff_s,
    )
    return SuggestionEngine(
        providers,
        cache=build_cache(source),
        fetcher=fetcher,
        budget_s=source.provider_timeout_s,
    )
