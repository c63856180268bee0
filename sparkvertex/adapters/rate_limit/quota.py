"""Per-user, per-endpoint request quotas backed by ``user_api_limits``.

Each (user, endpoint) pair has a one-minute window and a UTC-day window.
The counter arithmetic lives in ``advance_counters`` (pure, no I/O); the
``QuotaLimiter`` reads the stored row, applies it, and writes the new
counters back only when the request is allowed.

Storage failures fail open: an outage of the quota table must not take the
paid features down with it.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable

from supabase import Client

from sparkvertex.adapters.storage.supabase_store import storage_errors
from sparkvertex.core.errors import StorageAppError

logger = logging.getLogger(__name__)

QUOTA_TABLE = "user_api_limits"
MINUTE = timedelta(seconds=60)


@dataclass(frozen=True)
class UsageCounters:
    """Stored usage for one (user, endpoint) pair."""

    minute_count: int = 0
    minute_window_start: datetime | None = None
    daily_count: int = 0
    last_date: date | None = None


@dataclass(frozen=True)
class QuotaDecision:
    """Result of a quota check.

    Attributes:
        allowed: Whether the request may proceed.
        reason: Client-facing message when denied.
        retry_after_seconds: Seconds until the blocking window resets.
        counters: Counters to persist when allowed.
    """

    allowed: bool
    reason: str | None = None
    retry_after_seconds: int | None = None
    counters: UsageCounters | None = None


def _seconds_until(moment: datetime, now: datetime) -> int:
    return max(1, int(math.ceil((moment - now).total_seconds())))


def advance_counters(
    counters: UsageCounters,
    *,
    now: datetime,
    per_minute: int,
    per_day: int,
) -> QuotaDecision:
    """Apply one request to ``counters``.

    The minute window is fixed: it starts at the first request after the
    previous window ended and lasts 60 seconds. The day window is the UTC
    calendar date. The minute limit is checked first.
    """
    today = now.astimezone(timezone.utc).date()

    window_start = counters.minute_window_start
    if window_start is not None and now - window_start < MINUTE:
        if counters.minute_count >= per_minute:
            return QuotaDecision(
                allowed=False,
                reason=f"Rate limit exceeded. Max {per_minute} requests per minute.",
                retry_after_seconds=_seconds_until(window_start + MINUTE, now),
            )
        minute_count = counters.minute_count + 1
    else:
        window_start = now
        minute_count = 1

    if counters.last_date == today:
        if counters.daily_count >= per_day:
            midnight = datetime.combine(today + timedelta(days=1), time.min, tzinfo=timezone.utc)
            return QuotaDecision(
                allowed=False,
                reason=f"Daily quota exceeded. Max {per_day} requests per day.",
                retry_after_seconds=_seconds_until(midnight, now),
            )
        daily_count = counters.daily_count + 1
    else:
        daily_count = 1

    return QuotaDecision(
        allowed=True,
        counters=UsageCounters(
            minute_count=minute_count,
            minute_window_start=window_start,
            daily_count=daily_count,
            last_date=today,
        ),
    )


class AbstractQuotaStore(ABC):
    """Persistence for quota counters."""

    @abstractmethod
    def get_usage(self, user_id: str, endpoint: str) -> UsageCounters | None:
        """Stored counters, or None when the pair has never been seen."""
        raise NotImplementedError

    @abstractmethod
    def save_usage(
        self,
        user_id: str,
        endpoint: str,
        counters: UsageCounters,
        *,
        now: datetime,
    ) -> None:
        raise NotImplementedError


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class SupabaseQuotaStore(AbstractQuotaStore):
    """Counters in the ``user_api_limits`` table, keyed by (user_id, endpoint)."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def get_usage(self, user_id: str, endpoint: str) -> UsageCounters | None:
        with storage_errors(QUOTA_TABLE, "select"):
            response = (
                self._client.table(QUOTA_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .eq("endpoint", endpoint)
                .limit(1)
                .execute()
            )
        if not response.data:
            return None
        row = response.data[0]
        return UsageCounters(
            minute_count=int(row.get("minute_count") or 0),
            # Rows written before minute_window_start existed only carry last_request_at
            minute_window_start=_parse_timestamp(
                row.get("minute_window_start") or row.get("last_request_at")
            ),
            daily_count=int(row.get("daily_count") or 0),
            last_date=_parse_date(row.get("last_date")),
        )

    def save_usage(
        self,
        user_id: str,
        endpoint: str,
        counters: UsageCounters,
        *,
        now: datetime,
    ) -> None:
        row = {
            "user_id": user_id,
            "endpoint": endpoint,
            "minute_count": counters.minute_count,
            "minute_window_start": (
                counters.minute_window_start.isoformat() if counters.minute_window_start else None
            ),
            "last_request_at": now.isoformat(),
            "daily_count": counters.daily_count,
            "last_date": counters.last_date.isoformat() if counters.last_date else None,
        }
        with storage_errors(QUOTA_TABLE, "upsert"):
            self._client.table(QUOTA_TABLE).upsert(row, on_conflict="user_id,endpoint").execute()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaLimiter:
    """Check and record per-user endpoint usage."""

    def __init__(
        self,
        store: AbstractQuotaStore,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    def check(self, user_id: str, endpoint: str, *, per_minute: int, per_day: int) -> QuotaDecision:
        """Count one request against the user's quota for ``endpoint``.

        Raises:
            ValueError: If a limit is below 1.
        """
        if per_minute < 1 or per_day < 1:
            raise ValueError("quota limits must be >= 1")

        now = self._clock()
        try:
            stored = self._store.get_usage(user_id, endpoint)
        except StorageAppError:
            logger.warning(
                "quota.read_failed",
                extra={"endpoint": endpoint, "fail_open": True},
            )
            return QuotaDecision(allowed=True)

        decision = advance_counters(
            stored or UsageCounters(),
            now=now,
            per_minute=per_minute,
            per_day=per_day,
        )
        if not decision.allowed:
            logger.warning(
                "quota.exceeded",
                extra={
                    "endpoint": endpoint,
                    "per_minute": per_minute,
                    "per_day": per_day,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
            return decision

        try:
            self._store.save_usage(user_id, endpoint, decision.counters, now=now)
        except StorageAppError:
            logger.warning("quota.write_failed", extra={"endpoint": endpoint})
        return decision
