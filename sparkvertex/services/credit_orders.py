"""Credit order lifecycle for Afdian (爱发电) payments.

An order is created ``pending`` when the buyer is sent to Afdian. The webhook
records the payment by moving it to ``pending_credits``; settling then claims
it as ``paid`` and grants the credits. A failed grant puts the order back in
``pending_credits`` for the retry job. Pending orders that never get paid are
expired by the cleanup job.

Every status change is a conditional update (``from_status`` → ``to_status``)
and credits are only granted by whoever won the ``pending_credits → paid``
claim, so replayed webhooks and overlapping jobs cannot apply an order twice.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal
from urllib.parse import urlencode

from sparkvertex.adapters.storage.base import AbstractOrderStore, AbstractProfileStore
from sparkvertex.core.config import settings
from sparkvertex.core.errors import (
    AppError,
    ConfigurationAppError,
    NotFoundAppError,
    StorageAppError,
    ValidationAppError,
)
from sparkvertex.schemas.orders import (
    AfdianAck,
    AfdianCreateRequest,
    AfdianCreateResponse,
    AfdianWebhookPayload,
    CreditOrder,
    OrderCheckResponse,
    OrderDetailResponse,
    OrderLookupRequest,
    OrderStatus,
    RecentOrdersResponse,
    StatusCount,
)
from sparkvertex.schemas.maintenance import PaymentHealthMetrics, PaymentHealthResponse

logger = logging.getLogger(__name__)

PROVIDER_AFDIAN = "afdian"
AFDIAN_ORDER_PAID = 2

DEFAULT_RECENT_LIMIT = 5
MAX_RECENT_LIMIT = 20

SettleOutcome = Literal["granted", "failed", "skipped"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ParsedRemark:
    user_id: str
    credits: int
    created_ms: int


def build_remark(user_id: str, credits: int, now: datetime, nonce: str) -> str:
    """Merchant order number sent to Afdian as ``remark``: user|credits|ms|nonce."""
    return f"{user_id}|{credits}|{int(now.timestamp() * 1000)}|{nonce}"


def parse_remark(remark: str) -> ParsedRemark | None:
    """Recover order facts from a remark; None when it is not ours."""
    parts = remark.split("|")
    if len(parts) != 4 or not all(parts):
        return None
    user_id, credits, created_ms, _ = parts
    try:
        parsed = ParsedRemark(user_id=user_id, credits=int(credits), created_ms=int(created_ms))
    except ValueError:
        return None
    if parsed.credits < 1:
        return None
    return parsed


def _parse_amount(raw: str | None) -> float | None:
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class CreditOrderService:
    """Order creation, webhook handling, queries and maintenance jobs."""

    def __init__(
        self,
        orders: AbstractOrderStore,
        profiles: AbstractProfileStore,
        *,
        clock: Callable[[], datetime] = _utc_now,
        nonce_factory: Callable[[], str] = lambda: secrets.token_hex(6),
    ) -> None:
        self.orders = orders
        self.profiles = profiles
        self._clock = clock
        self._nonce = nonce_factory

    # ------------------------------------------------------------ checkout

    def create_afdian_order(
        self,
        user_id: str,
        request: AfdianCreateRequest,
        *,
        site_url: str,
    ) -> AfdianCreateResponse:
        """Insert a pending order and build the Afdian checkout URL.

        Raises:
            ConfigurationAppError: If AFDIAN_USER_ID is not set.
            StorageAppError: If the order cannot be stored.
        """
        creator_id = settings.afdian.user_id
        if not creator_id:
            raise ConfigurationAppError(
                code="afdian_not_configured",
                message="Afdian user id is not configured",
                details={"hint": "Set AFDIAN_USER_ID"},
            )

        now = self._clock()
        remark = build_remark(user_id, request.credits, now, self._nonce())
        self.orders.insert_order(
            {
                "user_id": user_id,
                "out_trade_no": remark,
                "amount": request.amount,
                "credits": request.credits,
                "status": OrderStatus.PENDING.value,
                "provider": PROVIDER_AFDIAN,
                "created_at": now.isoformat(),
            }
        )

        redirect_url = f"{site_url.rstrip('/')}/profile?payment=success"
        base = settings.afdian.base_url.rstrip("/")
        if request.item_id:
            query = {"remark": remark, "redirect_url": redirect_url}
            url = f"{base}/item/{request.item_id}?{urlencode(query)}"
        else:
            query = {"user_id": creator_id}
            if request.plan_id:
                query["plan_id"] = request.plan_id
            query.update({"remark": remark, "redirect_url": redirect_url})
            url = f"{base}/order/create?{urlencode(query)}"

        logger.info(
            "orders.created",
            extra={
                "provider": PROVIDER_AFDIAN,
                "credits": request.credits,
                "amount": request.amount,
                "mode": "item" if request.item_id else "plan" if request.plan_id else "open",
            },
        )
        return AfdianCreateResponse(url=url, out_trade_no=remark)

    # ------------------------------------------------------------- webhook

    def handle_afdian_notification(self, payload: AfdianWebhookPayload) -> AfdianAck:
        """Apply an Afdian webhook.

        Anything that cannot be processed is acknowledged so Afdian stops
        redelivering it. Only storage failures before the payment is recorded
        propagate, which makes Afdian retry later. Once the order sits in
        ``pending_credits`` any later failure is left to the retry job.

        Raises:
            StorageAppError: If the order lookup or recording the payment fails.
        """
        data = payload.data
        order_payload = data.order
        if data.type != "order" or order_payload is None or order_payload.status != AFDIAN_ORDER_PAID:
            logger.info("orders.notify.ignored", extra={"notify_type": data.type})
            return AfdianAck()

        remark = (order_payload.remark or "").strip()
        if not remark:
            logger.warning("orders.notify.missing_remark")
            return AfdianAck()

        order = self.orders.find_order(out_trade_no=remark)
        if order is None:
            order = self._adopt_unknown_order(remark, order_payload.total_amount)
            if order is None:
                return AfdianAck()

        if order.status != OrderStatus.PENDING:
            logger.info(
                "orders.notify.duplicate",
                extra={"order_id": order.id, "status": order.status.value},
            )
            return AfdianAck()

        moved = self.orders.transition_order(
            order.id,
            from_status=OrderStatus.PENDING,
            to_status=OrderStatus.PENDING_CREDITS,
            changes={
                "trade_no": order_payload.out_trade_no or None,
                "payment_info": order_payload.model_dump(mode="json"),
            },
        )
        if not moved:
            # A concurrent delivery won the race
            logger.info("orders.notify.duplicate", extra={"order_id": order.id})
            return AfdianAck()

        logger.info("orders.notify.paid", extra={"order_id": order.id, "credits": order.credits})
        try:
            self._settle(order)
        except StorageAppError as exc:
            logger.warning(
                "orders.notify.settle_deferred",
                extra={"order_id": order.id, "error_code": exc.code},
            )
        return AfdianAck()

    def _adopt_unknown_order(self, remark: str, total_amount: str | None) -> CreditOrder | None:
        parsed = parse_remark(remark)
        if parsed is None:
            logger.warning("orders.notify.unknown_remark")
            return None
        logger.info("orders.notify.adopted", extra={"credits": parsed.credits})
        return self.orders.insert_order(
            {
                "user_id": parsed.user_id,
                "out_trade_no": remark,
                "amount": _parse_amount(total_amount),
                "credits": parsed.credits,
                "status": OrderStatus.PENDING.value,
                "provider": PROVIDER_AFDIAN,
                "created_at": self._clock().isoformat(),
            }
        )

    def _settle(self, order: CreditOrder) -> SettleOutcome:
        """Claim a ``pending_credits`` order as paid, then grant its credits.

        Only the caller that wins the claim grants, so concurrent settles of
        the same order apply it once. A failed grant returns the order to
        ``pending_credits``.

        Raises:
            StorageAppError: If the claim itself fails (nothing was granted).
        """
        claimed = self.orders.transition_order(
            order.id,
            from_status=OrderStatus.PENDING_CREDITS,
            to_status=OrderStatus.PAID,
        )
        if not claimed:
            logger.info("orders.settle_skipped", extra={"order_id": order.id})
            return "skipped"

        try:
            self.profiles.add_credits(order.user_id, order.credits)
        except AppError as exc:
            logger.error(
                "orders.credit_grant_failed",
                extra={"order_id": order.id, "error_code": exc.code},
            )
            try:
                self.orders.transition_order(
                    order.id,
                    from_status=OrderStatus.PAID,
                    to_status=OrderStatus.PENDING_CREDITS,
                )
            except StorageAppError as revert_exc:
                # Paid without credits; needs manual reconciliation
                logger.error(
                    "orders.credit_grant_unrecorded",
                    extra={
                        "order_id": order.id,
                        "credits": order.credits,
                        "error_code": revert_exc.code,
                    },
                )
            return "failed"
        return "granted"

    # ------------------------------------------------------------- queries

    def check_order(self, user_id: str, out_trade_no: str) -> OrderCheckResponse:
        order = self.orders.find_order(out_trade_no=out_trade_no, user_id=user_id)
        if order is None:
            raise NotFoundAppError(
                code="order_not_found",
                message="Order not found",
                details={"out_trade_no": out_trade_no},
            )
        return OrderCheckResponse(
            status=order.status,
            credits=order.credits,
            paid=order.status == OrderStatus.PAID,
        )

    def list_recent_orders(
        self,
        user_id: str,
        *,
        since_ms: int | None = None,
        limit: int | None = None,
    ) -> RecentOrdersResponse:
        """Newest orders of the user, for polling after checkout."""
        limit = DEFAULT_RECENT_LIMIT if limit is None or limit < 1 else min(limit, MAX_RECENT_LIMIT)
        created_after = None
        if since_ms is not None:
            created_after = datetime.fromtimestamp(since_ms / 1000, tz=timezone.utc)

        orders = self.orders.list_orders(user_id=user_id, created_after=created_after, limit=limit)
        counts = StatusCount()
        for order in orders:
            if order.status.value in StatusCount.model_fields:
                setattr(counts, order.status.value, getattr(counts, order.status.value) + 1)

        return RecentOrdersResponse(
            orders=[order.public_dict() for order in orders],
            count=len(orders),
            status_count=counts,
            current_credits=self.profiles.get_credits(user_id) or 0,
            timestamp=int(self._clock().timestamp() * 1000),
        )

    def get_order(self, user_id: str, lookup: OrderLookupRequest) -> OrderDetailResponse:
        if not lookup.order_id and not lookup.out_trade_no:
            raise ValidationAppError(
                code="missing_order_reference",
                message="orderId or outTradeNo is required",
            )
        if lookup.order_id:
            order = self.orders.find_order(order_id=lookup.order_id, user_id=user_id)
        else:
            order = self.orders.find_order(out_trade_no=lookup.out_trade_no, user_id=user_id)
        if order is None:
            raise NotFoundAppError(code="order_not_found", message="Order not found")

        return OrderDetailResponse(
            order=order.public_dict(),
            is_paid=order.status == OrderStatus.PAID,
            is_pending=order.status == OrderStatus.PENDING,
            needs_retry=order.status == OrderStatus.PENDING_CREDITS,
            timestamp=int(self._clock().timestamp() * 1000),
        )

    # --------------------------------------------------------- maintenance

    def retry_pending_credits(self) -> tuple[int, int, int]:
        """Settle every ``pending_credits`` order.

        Orders another run already claimed are skipped and counted in
        neither ``succeeded`` nor ``failed``.

        Returns:
            (retried, succeeded, failed)
        """
        parked = self.orders.list_orders(statuses=[OrderStatus.PENDING_CREDITS])
        succeeded = failed = 0
        for order in parked:
            try:
                outcome = self._settle(order)
            except StorageAppError as exc:
                failed += 1
                logger.warning(
                    "orders.retry_failed",
                    extra={"order_id": order.id, "error_code": exc.code},
                )
                continue
            if outcome == "granted":
                succeeded += 1
            elif outcome == "failed":
                failed += 1

        logger.info(
            "orders.retry_completed",
            extra={"retried": len(parked), "succeeded": succeeded, "failed": failed},
        )
        return len(parked), succeeded, failed

    def cleanup_expired_orders(self) -> int:
        """Expire pending orders older than PAYMENT_ORDER_EXPIRY_HOURS."""
        cutoff = self._clock() - timedelta(hours=settings.payment.order_expiry_hours)
        stale = self.orders.list_orders(statuses=[OrderStatus.PENDING], created_before=cutoff)
        expired = 0
        for order in stale:
            if self.orders.transition_order(
                order.id,
                from_status=OrderStatus.PENDING,
                to_status=OrderStatus.EXPIRED,
            ):
                expired += 1
        logger.info("orders.cleanup_completed", extra={"expired_count": expired})
        return expired

    def payment_health(self) -> PaymentHealthResponse:
        """Order metrics over the last hour plus threshold alerts."""
        cfg = settings.payment
        now = self._clock()
        stale_cutoff = now - timedelta(minutes=cfg.stale_pending_minutes)
        hour_ago = now - timedelta(hours=1)

        stale = len(self.orders.list_orders(statuses=[OrderStatus.PENDING], created_before=stale_cutoff))
        parked = len(self.orders.list_orders(statuses=[OrderStatus.PENDING_CREDITS]))
        recent = self.orders.list_orders(created_after=hour_ago)
        paid = sum(1 for order in recent if order.status == OrderStatus.PAID)
        success_rate = round(paid / len(recent) * 100, 2) if recent else 100.0

        alerts: list[str] = []
        if stale > cfg.alert_stale_pending:
            alerts.append(f"{stale} pending orders older than {cfg.stale_pending_minutes} minutes")
        if parked > cfg.alert_pending_credits:
            alerts.append(f"{parked} orders with pending credits")
        if success_rate < cfg.alert_min_success_rate and len(recent) > cfg.alert_min_recent_orders:
            alerts.append(f"Success rate dropped to {success_rate}%")

        status = "warning" if alerts else "healthy"
        log = logger.warning if alerts else logger.info
        log(
            "orders.health_checked",
            extra={
                "health_status": status,
                "stale_pending_orders": stale,
                "pending_credit_orders": parked,
                "recent_orders": len(recent),
                "success_rate_last_hour": success_rate,
            },
        )
        return PaymentHealthResponse(
            status=status,
            alerts=alerts,
            metrics=PaymentHealthMetrics(
                stale_pending_orders=stale,
                pending_credit_orders=parked,
                recent_orders=len(recent),
                success_rate_last_hour=success_rate,
            ),
            timestamp=now.isoformat(),
        )
