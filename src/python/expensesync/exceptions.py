"""Custom exception types for ExpenseSync."""

from __future__ import annotations

from enum import Enum
from typing import Any

import requests


class ErrorKind(str, Enum):
    """Classification used for retry decisions and user messaging."""

    NETWORK = "NETWORK"
    AUTH = "AUTH"
    VALIDATION = "VALIDATION"
    SERVER = "SERVER"
    TIMEOUT = "TIMEOUT"
    DATA_INTEGRITY = "DATA_INTEGRITY"
    UNKNOWN = "UNKNOWN"


USER_MESSAGES = {
    ErrorKind.NETWORK: "Please check your internet connection and try again.",
    ErrorKind.AUTH: "Please sign in to sync your data.",
    ErrorKind.TIMEOUT: "The request took too long. Please try again.",
    ErrorKind.SERVER: "Server is temporarily unavailable. Please try again later.",
    ErrorKind.VALIDATION: "Invalid data detected. Please contact support.",
    ErrorKind.DATA_INTEGRITY: "Data format is invalid and cannot be synced.",
    ErrorKind.UNKNOWN: "An unexpected error occurred. Please try again.",
}

RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.SERVER})
GENERIC_ERROR_MESSAGE = USER_MESSAGES[ErrorKind.UNKNOWN]


class DuplicateError(Exception):
    """Raised when a duplicate record is detected."""

    def __init__(self, message: str, details: dict[str, Any]) -> None:
        super().__init__(message)
        self.details = details


class NotFoundError(Exception):
    """Raised when a requested record does not exist."""


class SyncError(Exception):
    """Base error for everything raised by the sync pipeline."""

    default_kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.details = details or {}
        self.retryable = self.kind in RETRYABLE_KINDS if retryable is None else retryable
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.kind, GENERIC_ERROR_MESSAGE)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for result payloads and logs."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "status_code": self.status_code,
            "details": self.details,
        }


class ValidationError(SyncError):
    """Raised when input or payload shape is invalid."""

    default_kind = ErrorKind.VALIDATION


class DataIntegrityError(SyncError):
    """Raised when an individual record cannot be converted."""

    default_kind = ErrorKind.DATA_INTEGRITY


class NetworkError(SyncError):
    """Raised on transport failures, including request timeouts."""

    default_kind = ErrorKind.NETWORK


class AuthError(SyncError):
    """Raised when the server rejects the credentials."""

    default_kind = ErrorKind.AUTH


class ApiError(SyncError):
    """Raised for HTTP error responses and ``success: false`` bodies."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        kind = (
            ErrorKind.SERVER
            if status_code is not None and status_code >= 500
            else ErrorKind.VALIDATION
        )
        super().__init__(message, kind=kind, details=details, status_code=status_code)


class JobTimeoutError(SyncError):
    """Raised when a background job does not finish within the polling window."""

    default_kind = ErrorKind.TIMEOUT

    def __init__(self, job_id: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Job {job_id} did not finish within {timeout_seconds:g} seconds",
            details={"job_id": job_id, "timeout_seconds": timeout_seconds},
            retryable=False,
        )
        self.job_id = job_id


def classify_error(exc: BaseException) -> SyncError:
    """Return ``exc`` as a SyncError, wrapping foreign exceptions."""
    if isinstance(exc, SyncError):
        return exc
    if isinstance(exc, requests.Timeout):
        return NetworkError(str(exc) or "Request timed out", kind=ErrorKind.TIMEOUT)
    if isinstance(exc, (requests.ConnectionError, ConnectionError)):
        return NetworkError(str(exc) or "Network request failed")
    if isinstance(exc, TimeoutError):
        return NetworkError(str(exc) or "Operation timed out", kind=ErrorKind.TIMEOUT)
    return SyncError(str(exc) or exc.__class__.__name__, details={"type": exc.__class__.__name__})


def error_message(exc: BaseException | None) -> str:
    """Human-readable text for any error value."""
    if exc is None:
        return GENERIC_ERROR_MESSAGE
    text = str(exc).strip()
    return text or GENERIC_ERROR_MESSAGE
