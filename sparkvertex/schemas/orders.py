"""Pydantic schemas for credit orders and payment endpoints."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OrderStatus(str, Enum):
    """Lifecycle states of a credit order.

    pending → pending_credits | expired; pending_credits → paid, and back to
    pending_credits when the credit grant fails.
    """

    PENDING = "pending"
    PAID = "paid"
    PENDING_CREDITS = "pending_credits"
    EXPIRED = "expired"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.FAILED})


class CreditOrder(BaseModel):
    """A row of the ``credit_orders`` table."""

    model_config = ConfigDict(use_enum_values=False, extra="ignore")

    id: str
    user_id: str
    out_trade_no: str
    trade_no: str | None = None
    amount: float | None = None
    credits: int
    status: OrderStatus
    provider: str | None = None
    payment_info: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_id(cls, data: Any) -> Any:
        # Postgres bigint ids come back as ints
        if isinstance(data, dict) and data.get("id") is not None:
            data = {**data, "id": str(data["id"])}
        return data

    def public_dict(self) -> dict[str, Any]:
        """Serialize without the raw provider payload."""
        return self.model_dump(mode="json", exclude={"payment_info"})


class GenerationTask(BaseModel):
    """The subset of ``generation_tasks`` needed for refunds."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    cost: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("id") is not None:
            data = {**data, "id": str(data["id"])}
        return data


# ---------------------------------------------------------------- requests


class AfdianCreateRequest(BaseModel):
    credits: int = Field(..., ge=1, description="Credits granted once paid.")
    amount: float = Field(..., gt=0, description="Price in CNY shown to the buyer.")
    item_id: str | None = Field(None, description="Afdian shop item to purchase.")
    plan_id: str | None = Field(None, description="Afdian sponsorship plan.")


class OrderCheckRequest(BaseModel):
    out_trade_no: str = Field(..., min_length=1)


class OrderLookupRequest(BaseModel):
    order_id: str | None = Field(None, alias="orderId")
    out_trade_no: str | None = Field(None, alias="outTradeNo")

    model_config = ConfigDict(populate_by_name=True)


class AfdianOrderPayload(BaseModel):
    """Order object inside an Afdian webhook."""

    model_config = ConfigDict(extra="allow")

    out_trade_no: str = Field("", description="Afdian's own order number.")
    user_id: str | None = None
    plan_id: str | None = None
    total_amount: str | None = None
    status: int = 0
    remark: str | None = Field(None, description="Carries our merchant order number.")


class AfdianNotifyData(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""
    order: AfdianOrderPayload | None = None
    sign: str | None = None


class AfdianWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    ec: int = 200
    em: str = ""
    data: AfdianNotifyData = Field(default_factory=AfdianNotifyData)


# --------------------------------------------------------------- responses


class AfdianCreateResponse(BaseModel):
    url: str
    out_trade_no: str


class OrderCheckResponse(BaseModel):
    status: OrderStatus
    credits: int
    paid: bool


class StatusCount(BaseModel):
    paid: int = 0
    pending: int = 0
    pending_credits: int = 0
    failed: int = 0


class RecentOrdersResponse(BaseModel):
    orders: list[dict[str, Any]]
    count: int
    status_count: StatusCount
    current_credits: float
    timestamp: int


class OrderDetailResponse(BaseModel):
    order: dict[str, Any]
    is_paid: bool
    is_pending: bool
    needs_retry: bool
    timestamp: int


class AfdianAck(BaseModel):
    """Reply format Afdian expects; anything but ec=200 triggers redelivery."""

    ec: int = 200
    em: str = ""
