from __future__ import annotations

from fastapi import APIRouter

from sparkvertex.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe.

    Does not touch Supabase or the LLM provider, so it stays green while a
    dependency is down.
    """

    return {"status": "ok", "env": settings.app_env}
