"""Credit refunds for failed generation tasks."""

import logging
import math

from sparkvertex.adapters.storage.base import AbstractProfileStore, AbstractTaskStore
from sparkvertex.core.errors import NotFoundAppError, PermissionAppError, ValidationAppError
from sparkvertex.schemas.maintenance import RefundRequest, RefundResponse

logger = logging.getLogger(__name__)


def parse_amount(raw: float | str | None) -> float | None:
    """Positive finite amount from a number or numeric string, else None.

    >>> parse_amount("2.5")
    2.5
    >>> parse_amount(float("nan")) is None
    True
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        amount = float(raw)
    except ValueError:
        return None
    if not math.isfinite(amount) or amount <= 0:
        return None
    return amount


class CreditService:
    def __init__(self, tasks: AbstractTaskStore, profiles: AbstractProfileStore) -> None:
        self.tasks = tasks
        self.profiles = profiles

    def refund(self, user_id: str, request: RefundRequest) -> RefundResponse:
        """Return up to the task's cost to the owner's balance.

        Raises:
            NotFoundAppError: Task or profile does not exist.
            PermissionAppError: Task belongs to someone else.
            ValidationAppError: Amount missing, not positive, or above the cost.
        """
        task = self.tasks.get_task(request.task_id)
        if task is None:
            raise NotFoundAppError(code="task_not_found", message="Task not found")
        if task.user_id != user_id:
            logger.warning("credits.refund_denied", extra={"task_id": task.id})
            raise PermissionAppError(code="task_forbidden", message="Unauthorized task access")

        amount = parse_amount(request.amount)
        if amount is None:
            raise ValidationAppError(code="invalid_amount", message="Invalid amount")
        cost = task.cost or 0
        if amount > cost:
            raise ValidationAppError(
                code="refund_exceeds_cost",
                message="Refund amount exceeds task cost",
                details={"limit": int(cost), "actual": int(amount)},
            )

        new_credits = self.profiles.add_credits(user_id, amount)
        logger.info("credits.refunded", extra={"task_id": task.id, "amount": amount})
        return RefundResponse(new_credits=new_credits)
