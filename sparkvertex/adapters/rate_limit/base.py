"""Rate limiter interfaces.

The HTTP layer depends on these abstractions so the in-memory limiter can be
swapped for a shared backend without touching routes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single ``consume`` call.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests left in the window after this one (0 when blocked).
        reset_at: UNIX epoch seconds when a slot frees up again.
        retry_after_seconds: Wait time in seconds when blocked, else None.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for per-key request limiters."""

    @abstractmethod
    def consume(self, key: str) -> RateLimitResult:
        """Record one request for ``key`` if the limit allows.

        Args:
            key: Client identifier (e.g. IP address).

        Returns:
            RateLimitResult describing whether it was allowed.

        Raises:
            ValueError: If key is empty.
        """
        raise NotImplementedError
