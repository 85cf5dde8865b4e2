"""
Recency exclusion: keep suggestions varied without starving small catalogs.

A meal is excluded when, inside the window of `recent_exclusion_days`:
  - it was selected (cooked), or
  - it was suggested but not picked more than `max_consecutive_suggestions` times in a row.

If exclusion leaves fewer than min(max_suggestions, pool size) meals, exclusions are
relaxed oldest-first until the pool is large enough. Relaxed meals stay in the pool
and carry a recency penalty into ranking.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from mealsuggest.logging import get_logger
from mealsuggest.services.suggestion.algorithm_config import AlgorithmLimits
from mealsuggest.services.suggestion.types import SuggestionCandidate, SuggestionHistoryEntry, as_utc, utcnow

logger = get_logger(__name__)


@dataclass
class RecencyOutcome:
    kept: list[SuggestionCandidate]
    excluded: list[SuggestionCandidate] = field(default_factory=list)
    relaxed: list[SuggestionCandidate] = field(default_factory=list)


def _last_event(entry: SuggestionHistoryEntry) -> datetime:
    if entry.was_selected and entry.selected_at is not None:
        return max(as_utc(entry.selected_at), as_utc(entry.suggested_at))
    return as_utc(entry.suggested_at)


def history_in_window(
    history: Iterable[SuggestionHistoryEntry], window_days: int, now: datetime
) -> dict[str, list[SuggestionHistoryEntry]]:
    """Group window entries per meal, newest suggestion first."""
    window_start = now - timedelta(days=window_days)
    grouped: dict[str, list[SuggestionHistoryEntry]] = defaultdict(list)
    for entry in history:
        if _last_event(entry) >= window_start:
            grouped[entry.meal_id].append(entry)
    for entries in grouped.values():
        entries.sort(key=lambda e: as_utc(e.suggested_at), reverse=True)
    return grouped


def exclusion_time(
    entries: list[SuggestionHistoryEntry], max_consecutive: int
) -> Optional[datetime]:
    """When the meal became excluded (latest triggering event), or None if it is not excluded.

    `entries` must be window entries for one meal, newest first.
    """
    triggers: list[datetime] = []
    for entry in entries:
        if entry.was_selected:
            triggers.append(_last_event(entry))
    streak = 0
    for entry in entries:
        if entry.was_selected:
            break
        streak += 1
    if streak > max_consecutive:
        triggers.append(as_utc(entries[0].suggested_at))
    return max(triggers) if triggers else None


def recency_penalty(entries: list[SuggestionHistoryEntry], window_days: int, now: datetime) -> float:
    """1.0 for an event right now, decaying linearly to 0.0 at the edge of the window."""
    if not entries:
        return 0.0
    latest = max(_last_event(e) for e in entries)
    age_days = max(0.0, (now - latest).total_seconds() / 86400.0)
    return round(max(0.0, 1.0 - age_days / window_days), 6)


def assign_recency_penalties(
    candidates: Iterable[SuggestionCandidate],
    history: Iterable[SuggestionHistoryEntry],
    window_days: int,
    now: Optional[datetime] = None,
) -> None:
    now = now or utcnow()
    grouped = history_in_window(history, window_days, now)
    for candidate in candidates:
        candidate.recency_penalty = recency_penalty(grouped.get(candidate.meal_id, []), window_days, now)


def apply_recency_exclusion(
    pool: list[SuggestionCandidate],
    history: Iterable[SuggestionHistoryEntry],
    limits: AlgorithmLimits,
    now: Optional[datetime] = None,
) -> RecencyOutcome:
    now = now or utcnow()
    grouped = history_in_window(history, limits.recent_exclusion_days, now)

    excluded_at: dict[str, datetime] = {}
    for candidate in pool:
        entries = grouped.get(candidate.meal_id)
        if not entries:
            continue
        when = exclusion_time(entries, limits.max_consecutive_suggestions)
        if when is not None:
            excluded_at[candidate.meal_id] = when

    min_pool = min(limits.max_suggestions, len(pool))
    kept_count = len(pool) - len(excluded_at)
    relaxed_ids: set[str] = set()
    if kept_count < min_pool:
        for meal_id in sorted(excluded_at, key=lambda mid: (excluded_at[mid], mid)):
            if kept_count >= min_pool:
                break
            relaxed_ids.add(meal_id)
            kept_count += 1

    outcome = RecencyOutcome(kept=[])
    for candidate in pool:
        if candidate.meal_id in relaxed_ids:
            candidate.recency_relaxed = True
            outcome.relaxed.append(candidate)
            outcome.kept.append(candidate)
        elif candidate.meal_id in excluded_at:
            candidate.recency_excluded = True
            outcome.excluded.append(candidate)
        else:
            outcome.kept.append(candidate)

    if excluded_at:
        logger.info(
            "recency.applied pool=%s excluded=%s relaxed=%s kept=%s min_pool=%s",
            len(pool),
            len(outcome.excluded),
            len(outcome.relaxed),
            len(outcome.kept),
            min_pool,
        )
    return outcome
