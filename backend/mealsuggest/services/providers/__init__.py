"""Data providers consumed by the suggestion engine."""

from mealsuggest.services.providers.base import CatalogFilters, Providers
from mealsuggest.services.providers.fetch import ProviderFetcher, call_with_retry

__all__ = ["CatalogFilters", "Providers", "ProviderFetcher", "call_with_retry"]
