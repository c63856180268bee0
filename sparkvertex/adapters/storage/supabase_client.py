"""Supabase client construction.

Two clients:
- ``get_service_client()``: service-role key, bypasses RLS; used by
  webhooks, cron jobs and quota bookkeeping.
- ``get_auth_client()``: anon key (falls back to service role); used only to
  resolve access tokens to users.

Both are cached per process; ``reset_clients()`` drops the cache (tests).
"""

from __future__ import annotations

import logging
from functools import lru_cache

from supabase import Client, create_client

from sparkvertex.core.config import settings
from sparkvertex.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)


def _require_url() -> str:
    url = settings.supabase.url
    if not url:
        raise ConfigurationAppError(
            code="supabase_not_configured",
            message="Server misconfigured: SUPABASE_URL is not set",
        )
    return url


@lru_cache(maxsize=1)
def get_service_client() -> Client:
    """Return the process-wide service-role client.

    Raises:
        ConfigurationAppError: If URL or service role key are missing.
    """
    url = _require_url()
    key = settings.supabase.service_role_key
    if not key:
        raise ConfigurationAppError(
            code="supabase_not_configured",
            message="Server misconfigured: SUPABASE_SERVICE_ROLE_KEY is not set",
        )
    logger.info("supabase.client_created", extra={"role": "service"})
    return create_client(url, key)


@lru_cache(maxsize=1)
def get_auth_client() -> Client:
    """Return a client suitable for ``auth.get_user(token)`` calls."""
    url = _require_url()
    key = settings.supabase.anon_key or settings.supabase.service_role_key
    if not key:
        raise ConfigurationAppError(
            code="supabase_not_configured",
            message="Server misconfigured: SUPABASE_ANON_KEY is not set",
        )
    logger.info("supabase.client_created", extra={"role": "auth"})
    return create_client(url, key)


def reset_clients() -> None:
    get_service_client.cache_clear()
    get_auth_client.cache_clear()
