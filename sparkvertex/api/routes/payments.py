"""Afdian checkout, webhook and order status endpoints."""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from sparkvertex.api.dependencies import get_credit_order_service
from sparkvertex.core.auth import AuthenticatedUser, get_current_user
from sparkvertex.core.config import settings
from sparkvertex.core.errors import PermissionAppError, StorageAppError
from sparkvertex.core.rate_limit import enforce_ip_rate_limit
from sparkvertex.schemas.orders import (
    AfdianAck,
    AfdianCreateRequest,
    AfdianCreateResponse,
    AfdianWebhookPayload,
    OrderCheckRequest,
    OrderCheckResponse,
    OrderDetailResponse,
    OrderLookupRequest,
    RecentOrdersResponse,
)
from sparkvertex.services.credit_orders import CreditOrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["Payments"])


def _site_url(request: Request) -> str:
    return settings.app.public_url or str(request.base_url)


@router.post(
    "/afdian/create",
    response_model=AfdianCreateResponse,
    dependencies=[Depends(enforce_ip_rate_limit)],
)
def create_afdian_order(
    body: AfdianCreateRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    service: CreditOrderService = Depends(get_credit_order_service),
) -> AfdianCreateResponse:
    """Create a pending order and return the Afdian checkout URL."""
    return service.create_afdian_order(user.id, body, site_url=_site_url(request))


@router.post("/afdian/notify", response_model=AfdianAck)
def afdian_notify(
    payload: AfdianWebhookPayload,
    token: str | None = Query(None, description="Shared webhook token, when configured."),
    service: CreditOrderService = Depends(get_credit_order_service),
):
    """Afdian webhook. Always answers ``{ec: 200}`` unless the database fails.

    Raises:
        PermissionAppError: 403 when AFDIAN_WEBHOOK_TOKEN is set and does not match.
    """
    expected = settings.afdian.webhook_token
    if expected and not hmac.compare_digest((token or "").encode(), expected.encode()):
        logger.warning("orders.notify.bad_token")
        raise PermissionAppError(code="invalid_webhook_token", message="Forbidden")

    try:
        return service.handle_afdian_notification(payload)
    except StorageAppError as exc:
        logger.error("orders.notify.database_error", extra={"error_code": exc.code})
        return JSONResponse(status_code=500, content=AfdianAck(ec=500, em="database error").model_dump())


@router.post(
    "/afdian/check",
    response_model=OrderCheckResponse,
    dependencies=[Depends(enforce_ip_rate_limit)],
)
def check_afdian_order(
    body: OrderCheckRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: CreditOrderService = Depends(get_credit_order_service),
) -> OrderCheckResponse:
    return service.check_order(user.id, body.out_trade_no)


@router.get(
    "/check-status",
    response_model=RecentOrdersResponse,
    dependencies=[Depends(enforce_ip_rate_limit)],
)
def list_recent_orders(
    since_ms: int | None = Query(None, description="Only orders created at or after this epoch ms."),
    timestamp: int | None = Query(None, description="Alias of since_ms."),
    limit: int = Query(5, description="Max orders returned (capped at 20)."),
    user: AuthenticatedUser = Depends(get_current_user),
    service: CreditOrderService = Depends(get_credit_order_service),
) -> RecentOrdersResponse:
    """Newest orders of the caller, used to poll after checkout."""
    return service.list_recent_orders(
        user.id,
        since_ms=since_ms if since_ms is not None else timestamp,
        limit=limit,
    )


@router.post(
    "/check-status",
    response_model=OrderDetailResponse,
    dependencies=[Depends(enforce_ip_rate_limit)],
)
def get_order_status(
    body: OrderLookupRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: CreditOrderService = Depends(get_credit_order_service),
) -> OrderDetailResponse:
    """Single order by ``orderId`` or ``outTradeNo`` (payment payload omitted)."""
    return service.get_order(user.id, body)
