"""Public ExpenseSync package exports."""

from __future__ import annotations

from expensesync.__version__ import __version__
from expensesync.api import ApiClient
from expensesync.client import ExpenseSyncClient
from expensesync.config import AppConfig, load_config
from expensesync.exceptions import (
    ApiError,
    AuthError,
    DataIntegrityError,
    DuplicateError,
    ErrorKind,
    JobTimeoutError,
    NetworkError,
    NotFoundError,
    SyncError,
    ValidationError,
)
from expensesync.models import (
    CategoryDTO,
    CategoryRecord,
    SyncJob,
    SyncResult,
    SyncStateInfo,
    SyncStatus,
    TransactionDTO,
    TransactionRecord,
)
from expensesync.persistence import LocalStore
from expensesync.poller import JobPoller
from expensesync.repository import Repository
from expensesync.sync import SyncService, determine_sync_state

__all__ = [
    "__version__",
    "ApiClient",
    "ExpenseSyncClient",
    "AppConfig",
    "load_config",
    "ApiError",
    "AuthError",
    "DataIntegrityError",
    "DuplicateError",
    "ErrorKind",
    "JobTimeoutError",
    "NetworkError",
    "NotFoundError",
    "SyncError",
    "ValidationError",
    "CategoryDTO",
    "CategoryRecord",
    "SyncJob",
    "SyncResult",
    "SyncStateInfo",
    "SyncStatus",
    "TransactionDTO",
    "TransactionRecord",
    "LocalStore",
    "JobPoller",
    "Repository",
    "SyncService",
    "determine_sync_state",
]
