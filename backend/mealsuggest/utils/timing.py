"""Timing spans for pipeline stages; the same tracker feeds response metadata."""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from mealsuggest.logging import get_logger

logger = get_logger(__name__)


class TimingTracker:
    """Elapsed time for one named span. Reads are valid while the span is open."""

    def __init__(self, name: str):
        self.name = name
        self._start: Optional[float] = None
        self._elapsed_ms: Optional[int] = None

    def start(self) -> "TimingTracker":
        self._start = time.perf_counter()
        self._elapsed_ms = None
        return self

    def stop(self) -> int:
        if self._start is None:
            return 0
        self._elapsed_ms = int((time.perf_counter() - self._start) * 1000)
        return self._elapsed_ms

    @property
    def elapsed_ms(self) -> int:
        if self._elapsed_ms is not None:
            return self._elapsed_ms
        if self._start is None:
            return 0
        return int((time.perf_counter() - self._start) * 1000)


@contextmanager
def time_span(stage: str, **fields: object) -> Iterator[TimingTracker]:
    """Time one pipeline stage and log `stage.timing stage=<name> elapsed_ms=<n>` plus any fields."""
    tracker = TimingTracker(stage).start()
    try:
        yield tracker
    finally:
        elapsed = tracker.stop()
        extra = "".join(f" {k}={v}" for k, v in fields.items())
        logger.info("stage.timing stage=%s elapsed_ms=%s%s", stage, elapsed, extra)
