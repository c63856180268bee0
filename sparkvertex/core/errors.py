"""Application-level exception types.

Domain errors used across services/adapters, enabling consistent error
handling, logging, and API responses. Each subclass maps to one HTTP status
in the exception handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    limit: int
    actual: int
    retry_after: int
    endpoint: str
    table: str
    order_id: str
    out_trade_no: str
    model: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails."""


class AuthenticationAppError(AppError):
    """Raised when the caller cannot be identified."""


class PermissionAppError(AppError):
    """Raised when the caller is identified but not allowed."""


class NotFoundAppError(AppError):
    """Raised when a requested record does not exist (or is not visible)."""


class RateLimitAppError(AppError):
    """Raised when a quota or rate limit blocks the request."""


class ConfigurationAppError(AppError):
    """Raised when required server configuration is missing."""


class StorageAppError(AppError):
    """Raised when the database backend fails."""


class LLMAppError(AppError):
    """Raised when LLM provider/client operations fail."""
