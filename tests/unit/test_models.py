from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from expensesync.models import (
    AuthSession,
    CategoryDTO,
    CloudTransaction,
    SyncJob,
    SyncResult,
    SyncStatus,
    TransactionDTO,
    is_valid_date,
    parse_timestamp,
)


def test_category_dto_defaults_color() -> None:
    category = CategoryDTO(name="  Food  ")

    assert category.name == "Food"
    assert category.color == "#000000"


def test_category_dto_validation() -> None:
    with pytest.raises(ValueError):
        CategoryDTO(name="   ")
    with pytest.raises(ValueError):
        CategoryDTO(name="Food", color="red")


def test_transaction_dto_normalizes_fields() -> None:
    transaction = TransactionDTO(
        type="Income",
        amount="12.50",
        date=dt.date(2026, 2, 16),
        description=" Pay ",
        category_ids=[1, 2],
    )

    assert transaction.type == "income"
    assert transaction.amount == Decimal("12.50")
    assert transaction.date == "2026-02-16"
    assert transaction.description == "Pay"
    assert transaction.category_ids == (1, 2)


def test_transaction_dto_accepts_datetime() -> None:
    transaction = TransactionDTO(
        type="expense", amount=Decimal("1"), date=dt.datetime(2026, 2, 16, 8, 30)
    )
    assert transaction.date == "2026-02-16 08:30:00"


def test_transaction_dto_allows_zero_amount() -> None:
    assert TransactionDTO(type="expense", amount=0, date="2026-01-01").amount == Decimal("0")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"type": "transfer", "amount": "1", "date": "2026-01-01"},
        {"type": "expense", "amount": "-1", "date": "2026-01-01"},
        {"type": "expense", "amount": "abc", "date": "2026-01-01"},
        {"type": "expense", "amount": "NaN", "date": "2026-01-01"},
        {"type": "expense", "amount": "1", "date": "2026-02-30"},
        {"type": "expense", "amount": "1", "date": "16/02/2026"},
    ],
)
def test_transaction_dto_validation(kwargs) -> None:
    with pytest.raises(ValueError):
        TransactionDTO(**kwargs)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2026-02-16", True),
        ("2026-02-16 23:59:59", True),
        ("2024-02-29", True),
        ("2026-02-29", False),
        ("2026-13-01", False),
        ("2026-02-16T10:00:00", False),
        ("2026-2-16", False),
        (None, False),
        (20260216, False),
    ],
)
def test_is_valid_date(value, expected: bool) -> None:
    assert is_valid_date(value) is expected


def test_cloud_transaction_to_dict_uses_float_amount() -> None:
    transaction = CloudTransaction(
        amount=Decimal("19.99"),
        description="Book",
        date="2026-02-16",
        type="expense",
        categories=("Books",),
        created_at="c",
        updated_at="u",
    )
    payload = transaction.to_dict()

    assert payload["amount"] == 19.99
    assert payload["categories"] == ["Books"]


def test_cloud_transaction_from_dict_keeps_decimal_digits() -> None:
    transaction = CloudTransaction.from_dict(
        {"amount": 0.1, "type": "EXPENSE", "date": "2026-01-01", "categories": []}
    )
    assert transaction.amount == Decimal("0.1")
    assert transaction.type == "expense"


def test_sync_status_from_dict() -> None:
    status = SyncStatus.from_dict(
        {
            "categoriesCount": 2,
            "transactionsCount": 5,
            "lastSync": "2026-02-16T10:00:00Z",
            "serverTime": "2026-02-16T11:00:00Z",
        }
    )

    assert status.total_count == 7
    assert status.last_sync == dt.datetime(2026, 2, 16, 10, tzinfo=dt.timezone.utc)


def test_parse_timestamp_handles_missing_and_invalid() -> None:
    assert parse_timestamp(None) is None
    assert parse_timestamp("not a date") is None
    assert parse_timestamp("2026-02-16T10:00:00").tzinfo is dt.timezone.utc


def test_sync_job_terminal_states() -> None:
    assert SyncJob.from_dict({"id": 1, "status": "completed"}).is_terminal
    assert SyncJob.from_dict({"id": 1, "status": "failed"}).is_terminal
    assert not SyncJob.from_dict({"id": 1, "status": "processing"}).is_terminal


def test_sync_result_to_dict() -> None:
    failed = SyncResult(
        success=False, message="Try later", error="HTTP 503", error_kind="SERVER", retryable=True
    ).to_dict()

    assert failed["success"] is False
    assert failed["errorType"] == "SERVER"
    assert failed["retryable"] is True
    assert "timestamp" in failed

    ok = SyncResult(success=True, message="done").to_dict()
    assert "error" not in ok


def test_auth_session_round_trip_keys() -> None:
    session = AuthSession(
        user_id="u1", email="a@b.c", token="t", refresh_token="r", expires_at=100
    )
    payload = session.to_dict()

    assert payload == {
        "id": "u1",
        "email": "a@b.c",
        "token": "t",
        "refreshToken": "r",
        "expiresAt": 100,
    }
    assert AuthSession.from_dict(payload) == session
