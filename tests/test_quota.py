"""Tests for per-user endpoint quotas (pure counters, Supabase store, limiter)."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import Mock

import httpx
import pytest
from postgrest.exceptions import APIError

from sparkvertex.adapters.rate_limit.quota import (
    QUOTA_TABLE,
    QuotaLimiter,
    SupabaseQuotaStore,
    UsageCounters,
    advance_counters,
)

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestAdvanceCounters:
    def test_first_request_starts_both_windows(self) -> None:
        decision = advance_counters(UsageCounters(), now=NOW, per_minute=5, per_day=10)

        assert decision.allowed is True
        assert decision.retry_after_seconds is None
        assert decision.counters == UsageCounters(
            minute_count=1,
            minute_window_start=NOW,
            daily_count=1,
            last_date=NOW.date(),
        )

    def test_increments_inside_window(self) -> None:
        stored = UsageCounters(
            minute_count=2,
            minute_window_start=NOW - timedelta(seconds=30),
            daily_count=7,
            last_date=NOW.date(),
        )

        decision = advance_counters(stored, now=NOW, per_minute=5, per_day=10)

        assert decision.allowed is True
        assert decision.counters.minute_count == 3
        assert decision.counters.minute_window_start == stored.minute_window_start
        assert decision.counters.daily_count == 8

    def test_denies_when_minute_limit_reached(self) -> None:
        stored = UsageCounters(
            minute_count=5,
            minute_window_start=NOW - timedelta(seconds=45),
            daily_count=5,
            last_date=NOW.date(),
        )

        decision = advance_counters(stored, now=NOW, per_minute=5, per_day=10)

        assert decision.allowed is False
        assert decision.reason == "Rate limit exceeded. Max 5 requests per minute."
        assert decision.retry_after_seconds == 15
        assert decision.counters is None

    def test_minute_window_restarts_after_sixty_seconds(self) -> None:
        stored = UsageCounters(
            minute_count=5,
            minute_window_start=NOW - timedelta(seconds=60),
            daily_count=5,
            last_date=NOW.date(),
        )

        decision = advance_counters(stored, now=NOW, per_minute=5, per_day=10)

        assert decision.allowed is True
        assert decision.counters.minute_count == 1
        assert decision.counters.minute_window_start == NOW

    def test_steady_traffic_does_not_pin_the_window(self) -> None:
        # One request every 10 s with a limit of 6/minute never gets blocked
        counters = UsageCounters()
        for i in range(30):
            decision = advance_counters(
                counters, now=NOW + timedelta(seconds=10 * i), per_minute=6, per_day=1000
            )
            assert decision.allowed is True
            counters = decision.counters

    def test_denies_when_daily_quota_reached(self) -> None:
        stored = UsageCounters(
            minute_count=0,
            minute_window_start=None,
            daily_count=10,
            last_date=NOW.date(),
        )

        decision = advance_counters(stored, now=NOW, per_minute=5, per_day=10)

        assert decision.allowed is False
        assert decision.reason == "Daily quota exceeded. Max 10 requests per day."
        # 12:00 UTC -> next midnight
        assert decision.retry_after_seconds == 12 * 3600

    def test_minute_limit_checked_before_daily(self) -> None:
        stored = UsageCounters(
            minute_count=5,
            minute_window_start=NOW - timedelta(seconds=1),
            daily_count=10,
            last_date=NOW.date(),
        )

        decision = advance_counters(stored, now=NOW, per_minute=5, per_day=10)

        assert "per minute" in decision.reason

    def test_daily_counter_resets_on_new_utc_date(self) -> None:
        stored = UsageCounters(
            minute_count=1,
            minute_window_start=NOW - timedelta(days=1),
            daily_count=10,
            last_date=NOW.date() - timedelta(days=1),
        )

        decision = advance_counters(stored, now=NOW, per_minute=5, per_day=10)

        assert decision.allowed is True
        assert decision.counters.daily_count == 1
        assert decision.counters.last_date == NOW.date()

    def test_day_boundary_uses_utc(self) -> None:
        # 23:30 on May 31 in UTC-5 is 04:30 on June 1 UTC
        local = datetime(2025, 5, 31, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        decision = advance_counters(UsageCounters(), now=local, per_minute=5, per_day=10)

        assert decision.counters.last_date == date(2025, 6, 1)


class TestSupabaseQuotaStore:
    def test_missing_row_means_no_usage(self, fake_client) -> None:
        store = SupabaseQuotaStore(fake_client)

        assert store.get_usage("u1", "analyze") is None

    def test_round_trips_counters(self, fake_client) -> None:
        store = SupabaseQuotaStore(fake_client)
        counters = UsageCounters(
            minute_count=3,
            minute_window_start=NOW,
            daily_count=9,
            last_date=NOW.date(),
        )

        store.save_usage("u1", "analyze", counters, now=NOW)
        store.save_usage("u1", "analyze", counters, now=NOW)

        assert len(fake_client.rows(QUOTA_TABLE)) == 1
        assert store.get_usage("u1", "analyze") == counters
        assert store.get_usage("u1", "other") is None

    def test_legacy_rows_fall_back_to_last_request_at(self, fake_client) -> None:
        fake_client.rows(QUOTA_TABLE).append(
            {
                "user_id": "u1",
                "endpoint": "analyze",
                "minute_count": 2,
                "last_request_at": "2025-06-01T11:59:30+00:00",
                "daily_count": 4,
                "last_date": "2025-06-01",
            }
        )

        usage = SupabaseQuotaStore(fake_client).get_usage("u1", "analyze")

        assert usage.minute_window_start == NOW - timedelta(seconds=30)
        assert usage.last_date == date(2025, 6, 1)


class TestQuotaLimiter:
    def _limiter(self, fake_client) -> QuotaLimiter:
        return QuotaLimiter(SupabaseQuotaStore(fake_client), clock=Mock(return_value=NOW))

    def test_counts_and_denies(self, fake_client) -> None:
        limiter = self._limiter(fake_client)

        assert limiter.check("u1", "analyze", per_minute=2, per_day=10).allowed is True
        assert limiter.check("u1", "analyze", per_minute=2, per_day=10).allowed is True
        denied = limiter.check("u1", "analyze", per_minute=2, per_day=10)

        assert denied.allowed is False
        row = fake_client.rows(QUOTA_TABLE)[0]
        assert row["minute_count"] == 2
        assert row["daily_count"] == 2

    def test_denied_requests_do_not_write(self, fake_client) -> None:
        limiter = self._limiter(fake_client)
        limiter.check("u1", "analyze", per_minute=1, per_day=10)
        fake_client.calls.clear()

        limiter.check("u1", "analyze", per_minute=1, per_day=10)

        assert (QUOTA_TABLE, "upsert") not in fake_client.calls

    def test_endpoints_are_counted_separately(self, fake_client) -> None:
        limiter = self._limiter(fake_client)
        limiter.check("u1", "analyze", per_minute=1, per_day=10)

        assert limiter.check("u1", "analyze-metadata", per_minute=1, per_day=10).allowed is True

    def test_read_failure_fails_open_without_writing(self, fake_client) -> None:
        fake_client.fail(QUOTA_TABLE, "select", APIError({"message": "boom", "code": "500"}))
        limiter = self._limiter(fake_client)

        decision = limiter.check("u1", "analyze", per_minute=1, per_day=1)

        assert decision.allowed is True
        assert (QUOTA_TABLE, "upsert") not in fake_client.calls

    def test_transport_failure_fails_open(self, fake_client) -> None:
        fake_client.fail(QUOTA_TABLE, "select", httpx.ConnectError("down"))

        assert self._limiter(fake_client).check("u1", "analyze", per_minute=1, per_day=1).allowed

    def test_write_failure_still_allows(self, fake_client) -> None:
        fake_client.fail(QUOTA_TABLE, "upsert", APIError({"message": "boom", "code": "500"}))

        decision = self._limiter(fake_client).check("u1", "analyze", per_minute=1, per_day=1)

        assert decision.allowed is True

    def test_rejects_invalid_limits(self, fake_client) -> None:
        with pytest.raises(ValueError):
            self._limiter(fake_client).check("u1", "analyze", per_minute=0, per_day=1)
