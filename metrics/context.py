"""
Root cancellation / deadline context shared by all queries of one collection.
"""
import threading
import time
from typing import Optional

from metrics.prometheus_client import QUERY_TIMEOUT_SECONDS, QueryCancelledError


class QueryContext:
    """Cancellation handle with an optional overall deadline.

    Each query asks for a child timeout, which is the per-query limit capped
    by whatever time is left. Cancelling the context makes every subsequent
    query fail fast; queries already on the wire end at their own timeout.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def check(self) -> None:
        if self.cancelled:
            raise QueryCancelledError("collection cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise QueryCancelledError("collection deadline exceeded")

    def child_timeout(self, limit: float = QUERY_TIMEOUT_SECONDS) -> float:
        self.check()
        remaining = self.remaining()
        if remaining is None:
            return limit
        return min(limit, remaining)
