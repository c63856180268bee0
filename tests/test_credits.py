"""Tests for generation task refunds."""

import pytest

from sparkvertex.adapters.storage.supabase_store import PROFILES_TABLE, TASKS_TABLE, SupabaseStore
from sparkvertex.core.errors import NotFoundAppError, PermissionAppError, ValidationAppError
from sparkvertex.schemas.maintenance import RefundRequest
from sparkvertex.services.credits import CreditService, parse_amount


@pytest.fixture
def service(fake_client) -> CreditService:
    fake_client.rows(PROFILES_TABLE).append({"id": "u1", "credits": 10})
    fake_client.rows(TASKS_TABLE).append({"id": 7, "user_id": "u1", "cost": 5})
    fake_client.rows(TASKS_TABLE).append({"id": 8, "user_id": "u2", "cost": 5})
    store = SupabaseStore(fake_client)
    return CreditService(tasks=store, profiles=store)


def test_refund_adds_credits(service, fake_client) -> None:
    response = service.refund("u1", RefundRequest(taskId="7", amount=5))

    assert response.new_credits == 15
    assert fake_client.rows(PROFILES_TABLE)[0]["credits"] == 15


def test_partial_refund(service) -> None:
    assert service.refund("u1", RefundRequest(task_id="7", amount=2.5)).new_credits == 12.5


def test_unknown_task(service) -> None:
    with pytest.raises(NotFoundAppError) as exc_info:
        service.refund("u1", RefundRequest(taskId="999", amount=1))

    assert exc_info.value.code == "task_not_found"


def test_foreign_task_is_forbidden(service, fake_client) -> None:
    with pytest.raises(PermissionAppError):
        service.refund("u1", RefundRequest(taskId="8", amount=1))

    assert fake_client.rows(PROFILES_TABLE)[0]["credits"] == 10


@pytest.mark.parametrize(
    "amount", [None, 0, -3, float("nan"), float("inf"), "abc", "", "NaN", "-1"]
)
def test_invalid_amount(service, fake_client, amount) -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        service.refund("u1", RefundRequest(taskId="7", amount=amount))

    assert exc_info.value.code == "invalid_amount"
    assert fake_client.rows(PROFILES_TABLE)[0]["credits"] == 10


def test_numeric_string_amount(service) -> None:
    assert service.refund("u1", RefundRequest(taskId="7", amount="3")).new_credits == 13


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(2, 2.0), ("2.5", 2.5), (" 1 ", 1.0), (True, None), ("1e400", None), (None, None)],
)
def test_parse_amount(raw, expected) -> None:
    assert parse_amount(raw) == expected


def test_refund_above_cost(service, fake_client) -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        service.refund("u1", RefundRequest(taskId="7", amount=6))

    assert exc_info.value.code == "refund_exceeds_cost"
    assert exc_info.value.details == {"limit": 5, "actual": 6}
    assert fake_client.rows(PROFILES_TABLE)[0]["credits"] == 10


def test_missing_profile(fake_client) -> None:
    fake_client.rows(TASKS_TABLE).append({"id": 1, "user_id": "ghost", "cost": 2})
    store = SupabaseStore(fake_client)

    with pytest.raises(NotFoundAppError):
        CreditService(tasks=store, profiles=store).refund("ghost", RefundRequest(taskId="1", amount=1))
