"""Client orchestration layer for ExpenseSync."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, TypeVar
import logging
import os

import requests

from expensesync.api import ApiClient
from expensesync.config import AppConfig, load_config
from expensesync.models import (
    AuthSession,
    CategoryDTO,
    CategoryRecord,
    LocalStats,
    StatusResult,
    SyncJob,
    SyncResult,
    SyncStateInfo,
    TransactionDTO,
    TransactionRecord,
    TransactionTypeRecord,
)
from expensesync.persistence import LocalStore
from expensesync.poller import JobPoller, ProgressCallback
from expensesync.repository import Repository
from expensesync.session import SessionStore
from expensesync.sync import SyncService

T = TypeVar("T")

# Configure logging for the whole package
logger = logging.getLogger(__name__)
package_logger = logging.getLogger("expensesync")
log_level = os.environ.get('LOGGING_LEVEL', 'INFO').upper()
package_logger.setLevel(getattr(logging, log_level, logging.INFO))
if not package_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))
    package_logger.addHandler(handler)


class ExpenseSyncClient:
    """Own the local store, API client, poller and sync service."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        config: AppConfig | None = None,
        repository: LocalStore | None = None,
        session_store: SessionStore | None = None,
        http: requests.Session | None = None,
    ) -> None:
        """Initialize the client and wire its services.

        Args:
            db_path: Path to the local SQLite database; defaults to the config value
            config: Loaded configuration; read from disk when omitted
            repository: Optional custom local store backend
            session_store: Optional session store; defaults to the config session path
            http: Optional requests session, mainly for tests
        """
        self.config = config or load_config()
        self.db_path = Path(db_path) if db_path is not None else self.config.db_path
        self.repository = repository or Repository(self.db_path)
        self.session_store = session_store or SessionStore(self.config.session_path)
        self.api = ApiClient(
            self.config.base_url,
            self.session_store,
            timeout=self.config.request_timeout,
            http=http,
            job_status_endpoint=self.config.job_status_endpoint,
        )
        self.poller = JobPoller(self.api, self.config.polling)
        self.sync_service = SyncService(self.repository, self.api, self.poller, self.config)

    def __enter__(self) -> "ExpenseSyncClient":
        """Open the repository connection and ensure the schema exists."""
        self.repository.connect()
        self.repository.initialize_schema()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        """Close the repository connection."""
        self.close()

    def close(self) -> None:
        """Stop polling and release connections."""
        self.poller.stop_all_polling()
        self.repository.close()
        self.api.close()

    def _run_transaction(self, action: Callable[[], T]) -> T:
        """Run repository work inside a transaction.

        Raises:
            Any exception raised by the action; the transaction is rolled back
        """
        with self.repository.transaction():
            return action()

    # Categories

    def add_category(self, category: CategoryDTO) -> CategoryRecord:
        """Add a category and return the created record."""
        return self._run_transaction(lambda: self.repository.insert_category(category))

    def get_category(self, category_id: int) -> CategoryRecord:
        return self.repository.get_category(category_id)

    def list_categories(self) -> list[CategoryRecord]:
        return self.repository.list_categories()

    def update_category(self, category_id: int, category: CategoryDTO) -> CategoryRecord:
        return self._run_transaction(
            lambda: self.repository.update_category(category_id, category)
        )

    def delete_category(self, category_id: int) -> None:
        """Delete a category and unlink it from its transactions."""
        self._run_transaction(lambda: self.repository.delete_category(category_id))

    # Transactions

    def add_transaction(self, transaction: TransactionDTO) -> TransactionRecord:
        """Add a transaction with its category links."""
        return self._run_transaction(lambda: self.repository.insert_transaction(transaction))

    def get_transaction(self, transaction_id: int) -> TransactionRecord:
        return self.repository.get_transaction(transaction_id)

    def list_transactions(self) -> list[TransactionRecord]:
        return self.repository.list_transactions()

    def delete_transaction(self, transaction_id: int) -> None:
        self._run_transaction(lambda: self.repository.delete_transaction(transaction_id))

    def list_transaction_types(self) -> list[TransactionTypeRecord]:
        return self.repository.list_transaction_types()

    # Auth

    def login(self, email: str, password: str) -> AuthSession:
        return self.api.login(email, password)

    def register(self, email: str, password: str) -> dict:
        return self.api.register(email, password)

    def forgot_password(self, email: str) -> str:
        return self.api.forgot_password(email)

    def logout(self) -> None:
        self.api.logout()
        self.sync_service.clear_status_cache()

    def current_session(self) -> AuthSession | None:
        return self.session_store.load_session()

    def last_email(self) -> str | None:
        return self.session_store.get_last_email()

    # Sync

    def upload(
        self, progress_callback: ProgressCallback | None = None, background: bool | None = None
    ) -> SyncResult:
        return self.sync_service.upload_data(progress_callback, background=background)

    def download(self, progress_callback: ProgressCallback | None = None) -> SyncResult:
        return self.sync_service.download_data(progress_callback)

    def full_sync(
        self, progress_callback: ProgressCallback | None = None, background: bool | None = None
    ) -> SyncResult:
        return self.sync_service.full_sync(progress_callback, background=background)

    def sync_status(self, force_refresh: bool = False) -> StatusResult:
        return self.sync_service.get_sync_status(force_refresh=force_refresh)

    def local_stats(self) -> LocalStats:
        return self.sync_service.get_local_stats()

    def sync_state(self, force_refresh: bool = False) -> SyncStateInfo:
        return self.sync_service.check_sync_state(force_refresh=force_refresh)

    def job_history(self, limit: int | None = 10) -> list[SyncJob]:
        return self.sync_service.get_job_history(limit)
