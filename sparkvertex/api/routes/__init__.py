from __future__ import annotations

from sparkvertex.api.routes.analyze import router as analyze_router
from sparkvertex.api.routes.credits import router as credits_router
from sparkvertex.api.routes.cron import router as cron_router
from sparkvertex.api.routes.health import router as health_router
from sparkvertex.api.routes.payments import router as payments_router

__all__ = [
    "analyze_router",
    "credits_router",
    "cron_router",
    "health_router",
    "payments_router",
]
