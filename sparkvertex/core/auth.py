"""Caller identification.

Two independent mechanisms:
- End users send their Supabase access token as ``Authorization: Bearer``;
  ``get_current_user`` resolves it to a user through Supabase Auth.
- Scheduled jobs send a shared secret; ``verify_cron_secret`` compares it in
  constant time.

Neither secret is ever logged, only a short SHA-256 prefix.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, Header
from starlette.concurrency import run_in_threadpool
from supabase import AuthError, Client

from sparkvertex.adapters.storage.supabase_client import get_auth_client
from sparkvertex.core.config import settings
from sparkvertex.core.errors import AuthenticationAppError
from sparkvertex.core.logging import set_user_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str | None
    access_token: str


def parse_bearer(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Examples:
        >>> parse_bearer("Bearer abc")
        'abc'
        >>> parse_bearer("bearer  abc ")
        'abc'
        >>> parse_bearer("Basic abc") is None
        True
        >>> parse_bearer(None) is None
        True
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def _fingerprint(secret: str) -> str:
    return hashlib.sha256(secret.encode()).hexdigest()[:16]


def resolve_user(client: Client, token: str) -> AuthenticatedUser:
    """Resolve an access token to a user via Supabase Auth.

    Raises:
        AuthenticationAppError: If the token is invalid or expired.
    """
    try:
        response = client.auth.get_user(token)
    except (AuthError, httpx.HTTPError) as exc:
        logger.warning(
            "auth.token_rejected",
            extra={"token_hash": _fingerprint(token), "reason": type(exc).__name__},
        )
        raise AuthenticationAppError(
            code="invalid_token",
            message="Unauthorized",
        ) from exc

    user = getattr(response, "user", None)
    if user is None:
        logger.warning("auth.token_rejected", extra={"token_hash": _fingerprint(token)})
        raise AuthenticationAppError(code="invalid_token", message="Unauthorized")

    return AuthenticatedUser(id=str(user.id), email=getattr(user, "email", None), access_token=token)


async def get_current_user(
    authorization: Annotated[str | None, Header(alias="Authorization")] = None,
    client: Client = Depends(get_auth_client),
) -> AuthenticatedUser:
    """FastAPI dependency returning the authenticated user.

    Usage:
        @router.post("/analyze")
        async def analyze(user: AuthenticatedUser = Depends(get_current_user)): ...

    Raises:
        AuthenticationAppError: 401 when the header is missing or the token
            is rejected.
    """
    token = parse_bearer(authorization)
    if not token:
        logger.info("auth.missing_token")
        raise AuthenticationAppError(code="missing_token", message="Unauthorized")

    # supabase-py is synchronous
    user = await run_in_threadpool(resolve_user, client, token)
    set_user_id(user.id)
    logger.debug("auth.success")
    return user


async def verify_cron_secret(
    authorization: Annotated[str | None, Header(alias="Authorization")] = None,
) -> None:
    """FastAPI dependency guarding scheduled job endpoints.

    Raises:
        AuthenticationAppError: 401 when no secret is configured or the
            provided one does not match.
    """
    expected = settings.app.cron_secret
    if not expected:
        logger.error("cron.auth_failed", extra={"reason": "cron_secret_not_configured"})
        raise AuthenticationAppError(
            code="cron_secret_not_configured",
            message="Cron secret is not configured on the server",
            details={"hint": "Set APP_CRON_SECRET"},
        )

    provided = parse_bearer(authorization)
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning(
            "cron.auth_failed",
            extra={
                "reason": "invalid_cron_secret",
                "secret_hash": _fingerprint(provided) if provided else None,
            },
        )
        raise AuthenticationAppError(code="invalid_cron_secret", message="Unauthorized")
