from fastapi import APIRouter, Depends

from sparkvertex.api.dependencies import get_credit_service
from sparkvertex.core.auth import AuthenticatedUser, get_current_user
from sparkvertex.core.rate_limit import enforce_ip_rate_limit
from sparkvertex.schemas.maintenance import RefundRequest, RefundResponse
from sparkvertex.services.credits import CreditService

router = APIRouter(tags=["Credits"])


@router.post(
    "/refund",
    response_model=RefundResponse,
    dependencies=[Depends(enforce_ip_rate_limit)],
)
def refund_credits(
    body: RefundRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: CreditService = Depends(get_credit_service),
) -> RefundResponse:
    """Refund credits spent on a generation task owned by the caller."""
    return service.refund(user.id, body)
