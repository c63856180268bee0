"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a request ID: the incoming header is
reused when present, otherwise a UUID is generated. The ID lives in a
contextvar for the duration of the request so log lines can be correlated,
and the user context is reset so it cannot leak across requests.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from sparkvertex.core.config import settings
from sparkvertex.core.logging import clear_request_id, set_request_id, set_user_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Generate/propagate the request ID and time the request.

    Side Effects:
        - Sets request_id in contextvars for the request lifetime
        - Adds the request ID header and X-Request-Duration-ms to the response
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    set_user_id(None)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "route": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()
        set_user_id(None)

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
