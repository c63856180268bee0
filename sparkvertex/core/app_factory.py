"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build a fresh app per test module.
"""

from __future__ import annotations

from fastapi import FastAPI

from sparkvertex.api.routes import (
    analyze_router,
    credits_router,
    cron_router,
    health_router,
    payments_router,
)
from sparkvertex.core.config import settings
from sparkvertex.core.exception_handlers import setup_exception_handlers
from sparkvertex.core.logging import configure_logging
from sparkvertex.core.middleware import request_id_middleware
from sparkvertex.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="SparkVertex API",
        description=(
            "Backend for the SparkVertex single-file app gallery: an AI analysis "
            "proxy with per-user quotas, Afdian credit purchases with webhook "
            "processing, credit refunds, and scheduled payment maintenance jobs."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(analyze_router, prefix="/v1")
    app.include_router(payments_router, prefix="/v1")
    app.include_router(credits_router, prefix="/v1")
    app.include_router(cron_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
