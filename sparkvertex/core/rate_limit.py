"""Rate limiting dependencies for FastAPI routes.

Two layers:
- ``enforce_ip_rate_limit``: sliding-window limit per client IP, in process.
- ``require_quota(endpoint, per_minute, per_day)``: per-user quota persisted
  in ``user_api_limits``; also authenticates the caller.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from sparkvertex.adapters.rate_limit.base import AbstractRateLimiter
from sparkvertex.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from sparkvertex.adapters.rate_limit.quota import QuotaLimiter, SupabaseQuotaStore
from sparkvertex.adapters.storage.supabase_client import get_service_client
from sparkvertex.core.auth import AuthenticatedUser, get_current_user
from sparkvertex.core.config import settings
from sparkvertex.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)


_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, int, int] | None = None


def get_ip_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide IP limiter.

    Rebuilt when configuration changes (primarily in tests).
    """

    global _limiter, _limiter_config

    config = (
        settings.app.rate_limit_requests,
        settings.app.rate_limit_window_seconds,
        settings.app.rate_limit_max_tracked_keys,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = InMemorySlidingWindowRateLimiter(
            limit=settings.app.rate_limit_requests,
            window_seconds=settings.app.rate_limit_window_seconds,
            max_tracked_keys=settings.app.rate_limit_max_tracked_keys,
        )
        _limiter_config = config

    return _limiter


def client_ip(request: Request) -> str:
    """First address of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def enforce_ip_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing the per-IP sliding window.

    Raises:
        HTTPException: 429 with Retry-After and X-RateLimit-* headers.
    """

    if not settings.app.rate_limit_enabled:
        return

    limiter = get_ip_rate_limiter()
    key = f"ip:{client_ip(request)}"
    result = limiter.consume(key)
    if result.allowed:
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": _hash_key(key),
            "limit": result.limit,
            "window_s": settings.app.rate_limit_window_seconds,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if settings.app.rate_limit_include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)
        headers["X-RateLimit-Reset"] = str(result.reset_at)

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests. Try again later.",
        headers=headers or None,
    )


def get_quota_limiter() -> QuotaLimiter:
    return QuotaLimiter(SupabaseQuotaStore(get_service_client()))


def require_quota(
    endpoint: str,
    *,
    per_minute: int,
    per_day: int,
) -> Callable[..., Awaitable[AuthenticatedUser]]:
    """Build a dependency that authenticates and counts one request.

    Usage:
        user: AuthenticatedUser = Depends(require_quota("analyze", per_minute=50, per_day=200))

    Raises:
        RateLimitAppError: 429 when the minute or day quota is exhausted.
    """

    async def dependency(
        user: AuthenticatedUser = Depends(get_current_user),
        limiter: QuotaLimiter = Depends(get_quota_limiter),
    ) -> AuthenticatedUser:
        decision = await run_in_threadpool(
            limiter.check,
            user.id,
            endpoint,
            per_minute=per_minute,
            per_day=per_day,
        )
        if not decision.allowed:
            raise RateLimitAppError(
                code="quota_exceeded",
                message=decision.reason or "Too many requests",
                details={
                    "endpoint": endpoint,
                    "retry_after": decision.retry_after_seconds or 0,
                },
            )
        return user

    return dependency
