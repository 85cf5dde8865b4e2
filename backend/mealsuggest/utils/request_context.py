"""Request-scoped time budget and cancellation, shared by every pipeline stage."""

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from mealsuggest.errors import RequestCancelled, SuggestionTimeout


class Deadline:
    """Monotonic-clock budget. `None` budget means no limit."""

    def __init__(self, budget_s: Optional[float]):
        self.budget_s = budget_s
        self._expires_at = None if budget_s is None else time.monotonic() + budget_s

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0


@dataclass
class RequestContext:
    deadline: Deadline
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_budget(cls, budget_s: Optional[float]) -> "RequestContext":
        return cls(deadline=Deadline(budget_s))

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def check(self, stage: str) -> None:
        """Raise if the request was cancelled or ran out of time before `stage`."""
        if self.cancelled:
            raise RequestCancelled(f"request cancelled before {stage}", details={"stage": stage})
        if self.deadline.expired():
            raise SuggestionTimeout(
                f"request budget of {self.deadline.budget_s}s exceeded before {stage}",
                details={"stage": stage, "budget_s": self.deadline.budget_s},
            )

    def sleep(self, seconds: float) -> None:
        """Backoff sleep that wakes early on cancellation and never outlives the deadline."""
        remaining = self.deadline.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self.cancel_event.wait(seconds)
