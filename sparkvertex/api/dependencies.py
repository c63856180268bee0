"""Service providers for route handlers.

Process-wide instances are built lazily on first use so importing the app
does not require Supabase or LLM credentials. Tests replace these through
``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from sparkvertex.adapters.llm.base import AbstractLLMClient
from sparkvertex.adapters.llm.factory import create_llm_client
from sparkvertex.adapters.storage.supabase_client import get_service_client
from sparkvertex.adapters.storage.supabase_store import SupabaseStore
from sparkvertex.core.config import settings
from sparkvertex.services.analysis_service import AnalysisService
from sparkvertex.services.app_metadata import AppMetadataService
from sparkvertex.services.credit_orders import CreditOrderService
from sparkvertex.services.credits import CreditService
from sparkvertex.utils.simple_cache import SimpleTTLCache


@lru_cache(maxsize=1)
def get_llm_client() -> AbstractLLMClient:
    return create_llm_client()


@lru_cache(maxsize=1)
def get_analysis_cache() -> SimpleTTLCache[str]:
    return SimpleTTLCache(
        ttl_seconds=settings.app.analysis_cache_ttl_seconds,
        max_entries=settings.app.analysis_cache_max_entries,
    )


def get_store() -> SupabaseStore:
    return SupabaseStore(get_service_client())


def get_analysis_service() -> AnalysisService:
    return AnalysisService(llm=get_llm_client(), cache=get_analysis_cache())


def get_app_metadata_service() -> AppMetadataService:
    return AppMetadataService(llm=get_llm_client())


def get_credit_order_service() -> CreditOrderService:
    store = get_store()
    return CreditOrderService(orders=store, profiles=store)


def get_credit_service() -> CreditService:
    store = get_store()
    return CreditService(tasks=store, profiles=store)
