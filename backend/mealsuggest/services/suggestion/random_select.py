"""
Random meal picks without replacement.

pure_random:     uniform sample.
weighted_random: probability proportional to availability score, drawn by
                 cumulative-weight inversion; all-zero scores fall back to weight 1.

A seeded random.Random over the same ordered pool always yields the same picks.
"""

import random
from bisect import bisect_right
from itertools import accumulate
from typing import Optional

from mealsuggest.services.suggestion.types import SelectionMode, SuggestionCandidate


def new_seed() -> int:
    return random.SystemRandom().randrange(2**32)


def _weights(pool: list[SuggestionCandidate]) -> list[float]:
    weights = [max(0.0, c.availability_score) for c in pool]
    if not any(weights):
        return [1.0] * len(pool)
    return weights


def _weighted_sample(pool: list[SuggestionCandidate], count: int, rng: random.Random) -> list[SuggestionCandidate]:
    remaining = list(pool)
    weights = _weights(remaining)
    picked: list[SuggestionCandidate] = []
    while remaining and len(picked) < count:
        total = sum(weights)
        if total <= 0:
            # only zero-weight items left after positive ones were drawn
            weights = [1.0] * len(remaining)
            total = float(len(remaining))
        cumulative = list(accumulate(weights))
        target = rng.random() * total
        index = min(bisect_right(cumulative, target), len(remaining) - 1)
        picked.append(remaining.pop(index))
        weights.pop(index)
    return picked


def select_random(
    pool: list[SuggestionCandidate],
    count: int,
    mode: SelectionMode = SelectionMode.WEIGHTED_RANDOM,
    seed: Optional[int] = None,
) -> list[SuggestionCandidate]:
    if count <= 0 or not pool:
        return []
    rng = random.Random(seed)
    if mode == SelectionMode.PURE_RANDOM:
        return rng.sample(pool, min(count, len(pool)))
    return _weighted_sample(pool, count, rng)
