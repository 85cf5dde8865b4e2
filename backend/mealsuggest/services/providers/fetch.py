"""
Provider calls: one bounded retry per call, independent calls issued concurrently.

The whole batch shares the request's deadline. On timeout, cancellation or a
provider failure the remaining calls are abandoned: queued ones are cancelled and
running ones stop at their next retry boundary.
"""

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional, TypeVar

from mealsuggest.config import settings
from mealsuggest.errors import ProviderUnavailable, RequestCancelled, SuggestionEngineError, SuggestionTimeout
from mealsuggest.logging import get_logger
from mealsuggest.utils.request_context import RequestContext

logger = get_logger(__name__)

T = TypeVar("T")

# Wake-up interval while waiting on futures, so cancellation is noticed promptly
_POLL_S = 0.05


def call_with_retry(
    name: str,
    fn: Callable[[], T],
    ctx: RequestContext,
    retries: int = 1,
    backoff_s: float = 0.2,
    abort: Optional[threading.Event] = None,
) -> T:
    attempt = 0
    while True:
        if abort is not None and abort.is_set():
            raise RequestCancelled(f"{name} fetch abandoned", details={"provider": name})
        ctx.check(f"provider.{name}")
        try:
            return fn()
        except SuggestionEngineError:
            raise
        except Exception as e:
            attempt += 1
            if attempt > retries:
                logger.error("provider.failed name=%s attempts=%s error=%s", name, attempt, e)
                raise ProviderUnavailable(name, f"{name} provider failed after {attempt} attempts: {e}") from e
            logger.warning("provider.retry name=%s attempt=%s error=%s", name, attempt, e)
            ctx.sleep(backoff_s * attempt)


class ProviderFetcher:
    def __init__(
        self,
        max_workers: Optional[int] = None,
        retries: Optional[int] = None,
        backoff_s: Optional[float] = None,
    ):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.provider_max_workers,
            thread_name_prefix="provider",
        )
        self.retries = settings.provider_retries if retries is None else retries
        self.backoff_s = settings.provider_retry_backoff_s if backoff_s is None else backoff_s

    def fetch(self, calls: dict[str, Callable[[], Any]], ctx: RequestContext) -> dict[str, Any]:
        """Run independent provider calls concurrently; all succeed or the batch raises."""
        abort = threading.Event()
        futures: dict[Future, str] = {
            self._executor.submit(
                call_with_retry, name, fn, ctx, self.retries, self.backoff_s, abort
            ): name
            for name, fn in calls.items()
        }
        pending = set(futures)
        results: dict[str, Any] = {}
        try:
            while pending:
                if ctx.cancelled:
                    raise RequestCancelled(
                        "request cancelled while fetching providers",
                        details={"pending": sorted(futures[f] for f in pending)},
                    )
                remaining = ctx.deadline.remaining()
                if remaining is not None and remaining <= 0:
                    raise SuggestionTimeout(
                        f"provider fetch exceeded request budget of {ctx.deadline.budget_s}s",
                        details={"pending": sorted(futures[f] for f in pending)},
                    )
                timeout = _POLL_S if remaining is None else min(_POLL_S, remaining)
                done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
                for future in done:
                    results[futures[future]] = future.result()
        except SuggestionEngineError as e:
            abort.set()
            for future in pending:
                future.cancel()
            logger.warning("provider.batch_aborted code=%s reason=%s", e.code, e.message)
            raise
        return results

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
