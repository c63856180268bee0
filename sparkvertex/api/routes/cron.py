"""Scheduled maintenance jobs, called by an external scheduler."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from sparkvertex.api.dependencies import get_credit_order_service
from sparkvertex.core.auth import verify_cron_secret
from sparkvertex.schemas.maintenance import (
    CleanupOrdersResponse,
    PaymentHealthResponse,
    RetryCreditsResponse,
)
from sparkvertex.services.credit_orders import CreditOrderService

router = APIRouter(prefix="/cron", tags=["Cron"], dependencies=[Depends(verify_cron_secret)])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/cleanup-orders", response_model=CleanupOrdersResponse)
def cleanup_orders(
    service: CreditOrderService = Depends(get_credit_order_service),
) -> CleanupOrdersResponse:
    """Expire pending orders past PAYMENT_ORDER_EXPIRY_HOURS."""
    expired = service.cleanup_expired_orders()
    return CleanupOrdersResponse(expired_count=expired, timestamp=_now_iso())


@router.get("/retry-credits", response_model=RetryCreditsResponse)
def retry_credits(
    service: CreditOrderService = Depends(get_credit_order_service),
) -> RetryCreditsResponse:
    """Grant credits for orders stuck in pending_credits."""
    retried, succeeded, failed = service.retry_pending_credits()
    return RetryCreditsResponse(
        retried=retried,
        succeeded=succeeded,
        failed=failed,
        timestamp=_now_iso(),
    )


@router.get("/health-check", response_model=PaymentHealthResponse)
def payment_health_check(
    service: CreditOrderService = Depends(get_credit_order_service),
) -> PaymentHealthResponse:
    return service.payment_health()
