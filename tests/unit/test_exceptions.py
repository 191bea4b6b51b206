from __future__ import annotations

import pytest
import requests

from expensesync.exceptions import (
    ApiError,
    AuthError,
    DataIntegrityError,
    DuplicateError,
    ErrorKind,
    GENERIC_ERROR_MESSAGE,
    JobTimeoutError,
    NetworkError,
    SyncError,
    ValidationError,
    classify_error,
    error_message,
)


def test_duplicate_error_details() -> None:
    details = {"name": "Food", "existing_id": 3}
    error = DuplicateError("Duplicate category", details)

    assert error.details == details
    assert "Duplicate category" in str(error)


@pytest.mark.parametrize(
    ("error", "kind", "retryable"),
    [
        (ValidationError("bad"), ErrorKind.VALIDATION, False),
        (DataIntegrityError("bad row"), ErrorKind.DATA_INTEGRITY, False),
        (NetworkError("offline"), ErrorKind.NETWORK, True),
        (NetworkError("slow", kind=ErrorKind.TIMEOUT), ErrorKind.TIMEOUT, True),
        (AuthError("expired"), ErrorKind.AUTH, False),
        (ApiError("boom", status_code=503), ErrorKind.SERVER, True),
        (ApiError("bad request", status_code=422), ErrorKind.VALIDATION, False),
        (JobTimeoutError("job-1", 360), ErrorKind.TIMEOUT, False),
    ],
)
def test_error_kinds_and_retryability(error: SyncError, kind: ErrorKind, retryable: bool) -> None:
    assert error.kind == kind
    assert error.retryable is retryable


def test_user_messages() -> None:
    assert NetworkError("x").user_message == "Please check your internet connection and try again."
    assert AuthError("x").user_message == "Please sign in to sync your data."
    assert ApiError("x", status_code=500).user_message == (
        "Server is temporarily unavailable. Please try again later."
    )
    assert SyncError("x").user_message == GENERIC_ERROR_MESSAGE


def test_classify_requests_errors() -> None:
    timeout = classify_error(requests.Timeout("read timed out"))
    assert isinstance(timeout, NetworkError)
    assert timeout.kind == ErrorKind.TIMEOUT

    offline = classify_error(requests.ConnectionError("refused"))
    assert offline.kind == ErrorKind.NETWORK
    assert offline.retryable


def test_classify_keeps_sync_errors() -> None:
    error = AuthError("nope")
    assert classify_error(error) is error


def test_classify_unknown_error() -> None:
    error = classify_error(KeyError("x"))
    assert error.kind == ErrorKind.UNKNOWN
    assert not error.retryable
    assert error.details["type"] == "KeyError"


def test_error_message_fallback() -> None:
    assert error_message(None) == GENERIC_ERROR_MESSAGE
    assert error_message(ValueError("")) == GENERIC_ERROR_MESSAGE
    assert error_message(ValueError("broken")) == "broken"


def test_to_dict() -> None:
    payload = ApiError("down", status_code=502, details={"path": "/x"}).to_dict()
    assert payload["kind"] == "SERVER"
    assert payload["status_code"] == 502
    assert payload["retryable"] is True
    assert payload["details"] == {"path": "/x"}
