"""Store interfaces for orders, profiles and generation tasks.

Services depend on these abstractions so the Supabase backend can be
replaced by an in-memory implementation in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Sequence

from sparkvertex.schemas.orders import CreditOrder, GenerationTask, OrderStatus


class AbstractOrderStore(ABC):
    """Persistence for ``credit_orders``."""

    @abstractmethod
    def insert_order(self, row: dict[str, Any]) -> CreditOrder:
        """Insert a new order row and return the stored order."""
        raise NotImplementedError

    @abstractmethod
    def find_order(
        self,
        *,
        order_id: str | None = None,
        out_trade_no: str | None = None,
        user_id: str | None = None,
    ) -> CreditOrder | None:
        """Return the first order matching every given filter, or None."""
        raise NotImplementedError

    @abstractmethod
    def list_orders(
        self,
        *,
        user_id: str | None = None,
        statuses: Sequence[OrderStatus] | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int | None = None,
    ) -> list[CreditOrder]:
        """List orders newest first."""
        raise NotImplementedError

    @abstractmethod
    def transition_order(
        self,
        order_id: str,
        *,
        from_status: OrderStatus,
        to_status: OrderStatus,
        changes: dict[str, Any] | None = None,
    ) -> bool:
        """Move an order between states only if it is still in ``from_status``.

        Returns:
            True when a row was updated, False when the order had already
            left ``from_status``.
        """
        raise NotImplementedError


class AbstractProfileStore(ABC):
    """Credit balances on ``profiles``."""

    @abstractmethod
    def get_credits(self, user_id: str) -> float | None:
        """Current balance, or None when the profile does not exist."""
        raise NotImplementedError

    @abstractmethod
    def add_credits(self, user_id: str, delta: float) -> float:
        """Add ``delta`` to the balance and return the new balance.

        Raises:
            NotFoundAppError: If the profile does not exist.
        """
        raise NotImplementedError


class AbstractTaskStore(ABC):
    """Read access to ``generation_tasks``."""

    @abstractmethod
    def get_task(self, task_id: str) -> GenerationTask | None:
        raise NotImplementedError
