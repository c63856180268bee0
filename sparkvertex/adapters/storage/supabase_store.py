"""Supabase (PostgREST) implementation of the order/profile/task stores."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from sparkvertex.adapters.storage.base import (
    AbstractOrderStore,
    AbstractProfileStore,
    AbstractTaskStore,
)
from sparkvertex.core.errors import NotFoundAppError, StorageAppError
from sparkvertex.schemas.orders import CreditOrder, GenerationTask, OrderStatus

logger = logging.getLogger(__name__)

ORDERS_TABLE = "credit_orders"
PROFILES_TABLE = "profiles"
TASKS_TABLE = "generation_tasks"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def storage_errors(table: str, operation: str) -> Iterator[None]:
    """Translate PostgREST/transport failures into StorageAppError."""
    try:
        yield
    except APIError as exc:
        logger.error(
            "storage.api_error",
            extra={
                "table": table,
                "operation": operation,
                "pg_code": exc.code,
                "error_msg": exc.message,
            },
        )
        raise StorageAppError(
            code="database_error",
            message=f"Database {operation} on {table} failed",
            details={"table": table, "hint": exc.code or ""},
        ) from exc
    except httpx.HTTPError as exc:
        logger.error(
            "storage.transport_error",
            extra={"table": table, "operation": operation, "error_msg": str(exc)},
        )
        raise StorageAppError(
            code="database_unavailable",
            message="Database is unreachable",
            details={"table": table},
        ) from exc


class SupabaseStore(AbstractOrderStore, AbstractProfileStore, AbstractTaskStore):
    """All business tables behind a single service-role client."""

    def __init__(self, client: Client) -> None:
        self._client = client

    # ------------------------------------------------------------ orders

    def insert_order(self, row: dict[str, Any]) -> CreditOrder:
        with storage_errors(ORDERS_TABLE, "insert"):
            response = self._client.table(ORDERS_TABLE).insert(row).execute()
        if not response.data:
            raise StorageAppError(
                code="database_error",
                message="Order insert returned no row",
                details={"table": ORDERS_TABLE},
            )
        return CreditOrder.model_validate(response.data[0])

    def find_order(
        self,
        *,
        order_id: str | None = None,
        out_trade_no: str | None = None,
        user_id: str | None = None,
    ) -> CreditOrder | None:
        query = self._client.table(ORDERS_TABLE).select("*")
        if order_id is not None:
            query = query.eq("id", order_id)
        if out_trade_no is not None:
            query = query.eq("out_trade_no", out_trade_no)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        with storage_errors(ORDERS_TABLE, "select"):
            response = query.limit(1).execute()
        if not response.data:
            return None
        return CreditOrder.model_validate(response.data[0])

    def list_orders(
        self,
        *,
        user_id: str | None = None,
        statuses: Sequence[OrderStatus] | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int | None = None,
    ) -> list[CreditOrder]:
        query = self._client.table(ORDERS_TABLE).select("*")
        if user_id is not None:
            query = query.eq("user_id", user_id)
        if statuses:
            query = query.in_("status", [s.value for s in statuses])
        if created_after is not None:
            query = query.gte("created_at", created_after.isoformat())
        if created_before is not None:
            query = query.lt("created_at", created_before.isoformat())
        query = query.order("created_at", desc=True)
        if limit is not None:
            query = query.limit(limit)
        with storage_errors(ORDERS_TABLE, "select"):
            response = query.execute()
        return [CreditOrder.model_validate(row) for row in response.data or []]

    def transition_order(
        self,
        order_id: str,
        *,
        from_status: OrderStatus,
        to_status: OrderStatus,
        changes: dict[str, Any] | None = None,
    ) -> bool:
        payload = {**(changes or {}), "status": to_status.value, "updated_at": utc_now_iso()}
        with storage_errors(ORDERS_TABLE, "update"):
            response = (
                self._client.table(ORDERS_TABLE)
                .update(payload)
                .eq("id", order_id)
                .eq("status", from_status.value)
                .execute()
            )
        return bool(response.data)

    # ---------------------------------------------------------- profiles

    def get_credits(self, user_id: str) -> float | None:
        with storage_errors(PROFILES_TABLE, "select"):
            response = (
                self._client.table(PROFILES_TABLE)
                .select("credits")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        if not response.data:
            return None
        return float(response.data[0].get("credits") or 0)

    def add_credits(self, user_id: str, delta: float) -> float:
        # Read-modify-write; PostgREST offers no atomic increment without an RPC.
        current = self.get_credits(user_id)
        if current is None:
            raise NotFoundAppError(
                code="profile_not_found",
                message="Profile not found",
                details={"table": PROFILES_TABLE},
            )
        new_balance = current + delta
        if new_balance.is_integer():
            new_balance = int(new_balance)
        with storage_errors(PROFILES_TABLE, "update"):
            self._client.table(PROFILES_TABLE).update({"credits": new_balance}).eq(
                "id", user_id
            ).execute()
        logger.info(
            "credits.updated",
            extra={"target_user": user_id, "delta": delta, "balance": new_balance},
        )
        return float(new_balance)

    # ------------------------------------------------------------- tasks

    def get_task(self, task_id: str) -> GenerationTask | None:
        with storage_errors(TASKS_TABLE, "select"):
            response = (
                self._client.table(TASKS_TABLE)
                .select("id, user_id, cost")
                .eq("id", task_id)
                .limit(1)
                .execute()
            )
        if not response.data:
            return None
        return GenerationTask.model_validate(response.data[0])
