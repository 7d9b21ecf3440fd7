"""Sliding-window request limiter keyed by client address."""
import math
import time
from collections import deque
from typing import Callable, Deque, Dict

from hr_gateway import config
from hr_gateway.errors import ErrorKind, GatewayError


class SlidingWindowRateLimiter:
    """Allow at most ``max_requests`` per key within ``window_seconds``.

    State lives on the instance, which the service context owns.
    """

    def __init__(
        self,
        window_ms: int = None,
        max_requests: int = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = (window_ms or config.RATE_LIMIT_WINDOW_MS) / 1000.0
        self.max_requests = max_requests or config.RATE_LIMIT_MAX_REQUESTS
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._last_cleanup = clock()

    def __len__(self) -> int:
        return len(self._requests)

    @property
    def retry_after(self) -> int:
        return math.ceil(self.window_seconds)

    def _prune(self, key: str, now: float) -> Deque[float]:
        times = self._requests.setdefault(key, deque())
        while times and now - times[0] >= self.window_seconds:
            times.popleft()
        return times

    def hit(self, key: str) -> None:
        """Record a request for ``key``.

        Raises:
            GatewayError: RATE_LIMITED when the window is full
        """
        now = self._clock()
        if now - self._last_cleanup >= self.window_seconds:
            self.cleanup()
        times = self._prune(key, now)

        if len(times) >= self.max_requests:
            raise GatewayError(
                ErrorKind.RATE_LIMITED,
                "Too many requests, please try again later",
                retry_after=self.retry_after,
            )

        times.append(now)

    def cleanup(self) -> int:
        """Drop keys with no requests left in the window; returns how many."""
        now = self._clock()
        self._last_cleanup = now
        stale = [key for key in list(self._requests) if not self._prune(key, now)]
        for key in stale:
            del self._requests[key]
        return len(stale)
