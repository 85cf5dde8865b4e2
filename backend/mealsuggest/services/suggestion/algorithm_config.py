"""
Algorithm configuration snapshots.

A request takes one immutable AlgorithmConfig at its start and uses it for every
stage, so a hot reload mid-request cannot mix weights from two versions.
"""

import itertools
import threading
from dataclasses import asdict, dataclass, field
from typing import Any

from mealsuggest.config import Settings, settings as default_settings
from mealsuggest.errors import ConfigInvalid
from mealsuggest.logging import get_logger

logger = get_logger(__name__)

_version_counter = itertools.count(1)


def next_config_version() -> int:
    return next(_version_counter)


@dataclass(frozen=True)
class RankingWeights:
    availability_score: float = 0.4
    favorite_boost: float = 0.2
    kitchen_preference: float = 0.15
    meal_type_match: float = 0.15
    recency_penalty: float = 0.1


@dataclass(frozen=True)
class MatchThresholds:
    perfect_match: float = 95
    good_match: float = 75
    minimum_viable: float = 50


@dataclass(frozen=True)
class AlgorithmLimits:
    max_suggestions: int = 20
    max_missing_ingredients: int = 3
    recent_exclusion_days: int = 1
    max_consecutive_suggestions: int = 3


@dataclass(frozen=True)
class StatusWeights:
    mandatory: float = 0.7
    recommended: float = 0.2
    optional: float = 0.1


@dataclass(frozen=True)
class AlgorithmConfig:
    weights: RankingWeights = field(default_factory=RankingWeights)
    thresholds: MatchThresholds = field(default_factory=MatchThresholds)
    limits: AlgorithmLimits = field(default_factory=AlgorithmLimits)
    status_weights: StatusWeights = field(default_factory=StatusWeights)
    version: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any], version: int) -> "AlgorithmConfig":
        """Build from a nested dict; missing sections fall back to defaults, unknown keys are rejected."""
        try:
            return cls(
                weights=RankingWeights(**(data.get("weights") or {})),
                thresholds=MatchThresholds(**(data.get("thresholds") or {})),
                limits=AlgorithmLimits(**(data.get("limits") or {})),
                status_weights=StatusWeights(**(data.get("status_weights") or {})),
                version=version,
            )
        except TypeError as e:
            raise ConfigInvalid(f"malformed algorithm config: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_ALGORITHM_CONFIG = AlgorithmConfig()


def validate_algorithm_config(config: AlgorithmConfig) -> AlgorithmConfig:
    """Sanity-check a snapshot. Raises ConfigInvalid; returns the config unchanged when valid."""
    problems: list[str] = []

    weights = asdict(config.weights)
    for name, value in weights.items():
        if value < 0:
            problems.append(f"weights.{name} is negative ({value})")
    if sum(weights.values()) <= 0:
        problems.append("weights sum to zero")

    status = asdict(config.status_weights)
    for name, value in status.items():
        if value < 0:
            problems.append(f"status_weights.{name} is negative ({value})")
    if sum(status.values()) <= 0:
        problems.append("status_weights sum to zero")

    t = config.thresholds
    if not (0 <= t.minimum_viable <= t.good_match <= t.perfect_match <= 100):
        problems.append(
            "thresholds must satisfy 0 <= minimum_viable <= good_match <= perfect_match <= 100 "
            f"(got {t.minimum_viable}/{t.good_match}/{t.perfect_match})"
        )

    limits = config.limits
    if limits.max_suggestions < 1:
        problems.append("limits.max_suggestions must be >= 1")
    if limits.max_missing_ingredients < 0:
        problems.append("limits.max_missing_ingredients must be >= 0")
    if limits.recent_exclusion_days < 1:
        problems.append("limits.recent_exclusion_days must be >= 1")
    if limits.max_consecutive_suggestions < 1:
        problems.append("limits.max_consecutive_suggestions must be >= 1")

    if problems:
        raise ConfigInvalid("algorithm config failed validation", details={"problems": problems})

    total = sum(weights.values())
    if abs(total - 1.0) > 1e-6:
        logger.warning("algorithm_config.weights_not_normalized version=%s total=%.4f", config.version, total)
    return config


def config_from_settings(source: Settings, version: int) -> AlgorithmConfig:
    return AlgorithmConfig(
        weights=RankingWeights(
            availability_score=source.algo_weight_availability_score,
            favorite_boost=source.algo_weight_favorite_boost,
            kitchen_preference=source.algo_weight_kitchen_preference,
            meal_type_match=source.algo_weight_meal_type_match,
            recency_penalty=source.algo_weight_recency_penalty,
        ),
        thresholds=MatchThresholds(
            perfect_match=source.algo_threshold_perfect_match,
            good_match=source.algo_threshold_good_match,
            minimum_viable=source.algo_threshold_minimum_viable,
        ),
        limits=AlgorithmLimits(
            max_suggestions=source.algo_limit_max_suggestions,
            max_missing_ingredients=source.algo_limit_max_missing_ingredients,
            recent_exclusion_days=source.algo_limit_recent_exclusion_days,
            max_consecutive_suggestions=source.algo_limit_max_consecutive_suggestions,
        ),
        status_weights=StatusWeights(
            mandatory=source.algo_status_weight_mandatory,
            recommended=source.algo_status_weight_recommended,
            optional=source.algo_status_weight_optional,
        ),
        version=version,
    )


class SettingsConfigProvider:
    """Serves the algo_* settings as a snapshot; reload() re-reads the environment / .env."""

    def __init__(self, source: Settings | None = None):
        self._lock = threading.Lock()
        self._config = config_from_settings(source or default_settings, next_config_version())

    def get_algorithm_config(self) -> AlgorithmConfig:
        with self._lock:
            return self._config

    def set_algorithm_config(self, config: AlgorithmConfig) -> AlgorithmConfig:
        """Swap in a new snapshot (validated first); returns it with a fresh version."""
        validate_algorithm_config(config)
        snapshot = AlgorithmConfig(
            weights=config.weights,
            thresholds=config.thresholds,
            limits=config.limits,
            status_weights=config.status_weights,
            version=next_config_version(),
        )
        with self._lock:
            self._config = snapshot
        logger.info("algorithm_config.swapped version=%s", snapshot.version)
        return snapshot

    def reload(self) -> AlgorithmConfig:
        return self.set_algorithm_config(config_from_settings(Settings(), 0))
