"""Schemas for refunds and scheduled maintenance jobs."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RefundRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(..., min_length=1, alias="taskId")
    # Strings are accepted here and parsed by the service so that bad amounts get a 400
    amount: float | str | None = Field(
        None,
        description="Credits to return; a positive number, at most the task cost.",
    )


class RefundResponse(BaseModel):
    new_credits: float


class CleanupOrdersResponse(BaseModel):
    success: bool = True
    expired_count: int
    timestamp: str


class RetryCreditsResponse(BaseModel):
    success: bool = True
    retried: int
    succeeded: int
    failed: int
    timestamp: str


class PaymentHealthMetrics(BaseModel):
    stale_pending_orders: int
    pending_credit_orders: int
    recent_orders: int
    success_rate_last_hour: float


class PaymentHealthResponse(BaseModel):
    status: Literal["healthy", "warning"]
    alerts: list[str]
    metrics: PaymentHealthMetrics
    timestamp: str
