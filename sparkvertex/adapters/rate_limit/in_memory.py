"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a lock guards the per-key timestamp logs.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable

from sparkvertex.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Allow at most ``limit`` requests per key in any ``window_seconds`` span.

    Each key keeps a log of request timestamps. Entries older than the window
    are dropped on every call, so the window slides with the clock instead of
    resetting at fixed boundaries.

    When more than ``max_tracked_keys`` keys are tracked, keys whose logs have
    fully expired are pruned to bound memory.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        max_tracked_keys: int = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum requests per window.
            window_seconds: Window length in seconds.
            max_tracked_keys: Key count that triggers pruning of idle keys.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If limit, window_seconds or max_tracked_keys are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if max_tracked_keys < 1:
            raise ValueError("max_tracked_keys must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds
        self._max_tracked_keys = max_tracked_keys
        self._clock = clock
        self._lock = threading.Lock()
        self._log_by_key: dict[str, deque[float]] = {}

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._log_by_key)

    def _evict_expired(self, log: deque[float], cutoff: float) -> None:
        while log and log[0] <= cutoff:
            log.popleft()

    def _prune(self, cutoff: float) -> None:
        idle = [key for key, log in self._log_by_key.items() if not log or log[-1] <= cutoff]
        for key in idle:
            del self._log_by_key[key]

    def consume(self, key: str) -> RateLimitResult:
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        cutoff = now - self._window_seconds

        with self._lock:
            log = self._log_by_key.get(key)
            if log is None:
                if len(self._log_by_key) >= self._max_tracked_keys:
                    self._prune(cutoff)
                log = deque()
                self._log_by_key[key] = log

            self._evict_expired(log, cutoff)

            if len(log) >= self._limit:
                # The oldest entry leaving the window frees the next slot
                frees_at = log[0] + self._window_seconds
                return RateLimitResult(
                    allowed=False,
                    limit=self._limit,
                    remaining=0,
                    reset_at=int(math.ceil(frees_at)),
                    retry_after_seconds=max(1, int(math.ceil(frees_at - now))),
                )

            log.append(now)
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - len(log),
                reset_at=int(math.ceil(log[0] + self._window_seconds)),
                retry_after_seconds=None,
            )
