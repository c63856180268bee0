"""Unit tests for caller identification (Supabase tokens and cron secret)."""

from unittest.mock import patch

import httpx
import pytest

from sparkvertex.core.auth import (
    AuthenticatedUser,
    get_current_user,
    parse_bearer,
    resolve_user,
    verify_cron_secret,
)
from sparkvertex.core.errors import AuthenticationAppError
from sparkvertex.core.logging import get_user_id, set_user_id


class TestParseBearer:
    def test_extracts_token(self) -> None:
        assert parse_bearer("Bearer abc.def") == "abc.def"

    def test_scheme_is_case_insensitive_and_trimmed(self) -> None:
        assert parse_bearer("  bearer   tok  ") == "tok"

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic abc", "abc"])
    def test_rejects_malformed(self, header) -> None:
        assert parse_bearer(header) is None


class TestResolveUser:
    def test_returns_user_for_valid_token(self, fake_client) -> None:
        fake_client.auth.add_user("good-token", "user-1", "a@example.com")

        user = resolve_user(fake_client, "good-token")

        assert user == AuthenticatedUser(id="user-1", email="a@example.com", access_token="good-token")

    def test_unknown_token_is_rejected(self, fake_client) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            resolve_user(fake_client, "nope")

        assert exc_info.value.code == "invalid_token"

    def test_transport_error_is_rejected(self, fake_client) -> None:
        fake_client.auth.error = httpx.ConnectError("down")

        with pytest.raises(AuthenticationAppError):
            resolve_user(fake_client, "any")


class TestGetCurrentUser:
    @pytest.mark.asyncio
    async def test_missing_header_is_401(self, fake_client) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            await get_current_user(authorization=None, client=fake_client)

        assert exc_info.value.code == "missing_token"

    @pytest.mark.asyncio
    async def test_sets_user_context(self, fake_client) -> None:
        fake_client.auth.add_user("tok", "user-9")
        set_user_id(None)

        user = await get_current_user(authorization="Bearer tok", client=fake_client)

        assert user.id == "user-9"
        assert get_user_id() == "user-9"


class TestVerifyCronSecret:
    @pytest.mark.asyncio
    @patch("sparkvertex.core.auth.settings")
    async def test_accepts_matching_secret(self, mock_settings) -> None:
        mock_settings.app.cron_secret = "s3cret"

        await verify_cron_secret(authorization="Bearer s3cret")

    @pytest.mark.asyncio
    @patch("sparkvertex.core.auth.settings")
    async def test_rejects_wrong_secret(self, mock_settings) -> None:
        mock_settings.app.cron_secret = "s3cret"

        with pytest.raises(AuthenticationAppError) as exc_info:
            await verify_cron_secret(authorization="Bearer wrong")

        assert exc_info.value.code == "invalid_cron_secret"

    @pytest.mark.asyncio
    @patch("sparkvertex.core.auth.settings")
    async def test_long_arbitrary_bearer_is_not_accepted(self, mock_settings) -> None:
        mock_settings.app.cron_secret = "s3cret"

        with pytest.raises(AuthenticationAppError):
            await verify_cron_secret(authorization="Bearer " + "x" * 80)

    @pytest.mark.asyncio
    @patch("sparkvertex.core.auth.settings")
    async def test_unconfigured_secret_is_401(self, mock_settings) -> None:
        mock_settings.app.cron_secret = None

        with pytest.raises(AuthenticationAppError) as exc_info:
            await verify_cron_secret(authorization="Bearer anything")

        assert exc_info.value.code == "cron_secret_not_configured"

    @pytest.mark.asyncio
    @patch("sparkvertex.core.auth.settings")
    async def test_secret_never_logged(self, mock_settings, caplog) -> None:
        mock_settings.app.cron_secret = "s3cret"

        with pytest.raises(AuthenticationAppError):
            await verify_cron_secret(authorization="Bearer wrong-secret-value")

        for record in caplog.records:
            assert "wrong-secret-value" not in str(record.__dict__)
            assert "s3cret" not in str(record.__dict__)
