"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports settings, so no
``.env`` file is loaded and no real Supabase/LLM credentials are needed.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("LLM_PROVIDER", "deepseek")
os.environ.setdefault("LLM_MODEL", "deepseek-chat")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-test-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-test-key")
os.environ.setdefault("APP_CRON_SECRET", "cron-test-secret")
os.environ.setdefault("AFDIAN_USER_ID", "creator-123")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402

from fakes import FakeSupabaseClient  # noqa: E402

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW
