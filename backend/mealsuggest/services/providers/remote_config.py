"""
Algorithm config served by a remote JSON endpoint, for hot reloads across workers.

Payload shape: {"weights": {...}, "thresholds": {...}, "limits": {...}, "status_weights": {...}}.
Fetched at most once per refresh interval; a new version number is issued only when the
payload content changes, so cache keys stay stable between identical refreshes.
Transport errors propagate so the engine's provider retry can handle them.
"""

import hashlib
import json
import threading
import time
from typing import Any, Callable, Optional

import httpx

from mealsuggest.config import settings
from mealsuggest.errors import ConfigInvalid
from mealsuggest.logging import get_logger
from mealsuggest.services.suggestion.algorithm_config import (
    AlgorithmConfig,
    next_config_version,
    validate_algorithm_config,
)

logger = get_logger(__name__)


class RemoteConfigProvider:
    def __init__(
        self,
        url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        refresh_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._url = url or settings.algorithm_config_url
        self._timeout_s = timeout_s or settings.algorithm_config_timeout_s
        self._refresh_s = settings.algorithm_config_refresh_s if refresh_s is None else refresh_s
        self._clock = clock
        self._lock = threading.Lock()
        self._config: Optional[AlgorithmConfig] = None
        self._digest: Optional[str] = None
        self._fetched_at: Optional[float] = None

    def _fetch(self) -> Any:
        logger.info("algorithm_config.fetch url=%s", self._url)
        resp = httpx.get(self._url, timeout=self._timeout_s)
        resp.raise_for_status()
        return resp.json()

    def get_algorithm_config(self) -> AlgorithmConfig:
        with self._lock:
            if (
                self._config is not None
                and self._fetched_at is not None
                and self._clock() - self._fetched_at < self._refresh_s
            ):
                return self._config
            payload = self._fetch()
            if not isinstance(payload, dict):
                raise ConfigInvalid("algorithm config payload must be a JSON object")
            digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()
            if digest != self._digest:
                config = validate_algorithm_config(AlgorithmConfig.from_dict(payload, next_config_version()))
                self._config, self._digest = config, digest
                logger.info("algorithm_config.updated version=%s source=remote", config.version)
            self._fetched_at = self._clock()
            return self._config
