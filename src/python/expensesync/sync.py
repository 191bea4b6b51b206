"""Sync orchestration between the local store and the remote API."""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3
import threading
import time
from typing import Any, Callable, TypeVar

from expensesync.api import ApiClient
from expensesync.config import AppConfig
from expensesync.exceptions import (
    ErrorKind,
    JobTimeoutError,
    SyncError,
    ValidationError,
    classify_error,
)
from expensesync.models import (
    DownloadedData,
    LocalData,
    LocalStats,
    StatusResult,
    SyncJob,
    SyncResult,
    SyncStateInfo,
    SyncStatus,
    utc_now_iso,
)
from expensesync.persistence import LocalStore
from expensesync.poller import JobPoller, ProgressCallback
from expensesync.schema import (
    EXPENSE_TYPE,
    INCOME_TYPE,
    JOB_FAILED,
    JOB_TYPE_FULL_SYNC,
    JOB_TYPE_UPLOAD,
    PHASE_COMPLETED,
    PHASE_DOWNLOADING,
    PHASE_FAILED,
    PHASE_PROCESSING,
    PHASE_PROGRESS,
    PHASE_STARTING,
    PHASE_UPLOADING,
    RECENT_SYNC_HOURS,
    STATE_PENDING,
    STATE_SYNCED,
    STATE_UNKNOWN,
    SUCCESS_MESSAGES,
    SYNC_STATE_MESSAGES,
)
from expensesync.transformer import (
    category_inserts_from_download,
    create_category_lookup_maps,
    create_transaction_type_maps,
    get_data_summary,
    parse_downloaded_data,
    prepare_downloaded_data_for_local,
    prepare_local_data_for_sync,
    validate_downloaded_data,
)
from expensesync.validator import SyncValidator, validate_or_raise

T = TypeVar("T")

logger = logging.getLogger(__name__)


def determine_sync_state(
    local_stats: LocalStats,
    cloud_status: SyncStatus | None,
    now: dt.datetime | None = None,
) -> SyncStateInfo:
    """Classify how local data relates to the cloud copy.

    Counts are categories plus transactions on each side.
    """
    local_count = local_stats.total_count
    if cloud_status is None:
        message = SYNC_STATE_MESSAGES["ready_to_upload" if local_count > 0 else "no_data"]
        return SyncStateInfo(STATE_PENDING, message, local_count, 0)

    cloud_count = cloud_status.total_count
    last_sync = cloud_status.last_sync
    if local_count < 0 or cloud_count < 0:
        return SyncStateInfo(
            STATE_UNKNOWN, SYNC_STATE_MESSAGES["checking"], local_count, cloud_count, last_sync
        )

    if local_count == cloud_count and last_sync is not None:
        now = now or dt.datetime.now(dt.timezone.utc)
        if last_sync.tzinfo is None:
            last_sync = last_sync.replace(tzinfo=dt.timezone.utc)
        is_recent = now - last_sync < dt.timedelta(hours=RECENT_SYNC_HOURS)
        message = SYNC_STATE_MESSAGES["up_to_date" if is_recent else "stale"]
        return SyncStateInfo(STATE_SYNCED, message, local_count, cloud_count, last_sync, is_recent)

    if local_count != cloud_count:
        if local_count > 0 and cloud_count > 0:
            key = "differ"
        elif local_count > 0:
            key = "backup"
        else:
            key = "cloud_only"
        return SyncStateInfo(
            STATE_PENDING, SYNC_STATE_MESSAGES[key], local_count, cloud_count, last_sync
        )

    # Equal counts without a recorded sync.
    key = "no_data" if local_count == 0 else "never_synced"
    return SyncStateInfo(STATE_PENDING, SYNC_STATE_MESSAGES[key], local_count, cloud_count)


class _ProgressReporter:
    """Forward progress to a caller callback, with exactly one terminal call."""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._progress = 0
        self._finished = False

    def progress(self, progress: int, phase: str, message: str | None = None) -> None:
        with self._lock:
            if self._finished:
                return
            self._progress = progress
        self._emit(progress, phase, message)

    def phase(self, phase: str, message: str | None = None) -> None:
        self.progress(PHASE_PROGRESS[phase], phase, message)

    def finish(self, result: SyncResult) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
            progress = self._progress
        if result.success:
            self._emit(PHASE_PROGRESS[PHASE_COMPLETED], PHASE_COMPLETED, result.message)
        else:
            self._emit(progress, PHASE_FAILED, result.error or result.message)

    def _emit(self, progress: int, phase: str, message: str | None) -> None:
        if self._callback is None:
            return
        try:
            self._callback(progress, phase, message)
        except Exception:
            logger.exception("Progress callback raised during %s", phase)


class SyncService:
    """Upload, download and full sync between the local store and the server.

    Public operations never raise: failures come back as a SyncResult with
    ``success=False`` and a user-facing message.
    """

    def __init__(
        self,
        store: LocalStore,
        api: ApiClient,
        poller: JobPoller | None = None,
        config: AppConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        validator: SyncValidator | None = None,
    ) -> None:
        self.store = store
        self.api = api
        self.config = config or AppConfig()
        self.poller = poller or JobPoller(api, self.config.polling)
        self.validator = validator or SyncValidator(self.config.rules)
        self._clock = clock
        self._sleep = sleep
        self._status_lock = threading.Lock()
        self._status_cache: tuple[float, SyncStatus] | None = None

    # Local reads

    def get_local_data(self) -> LocalData:
        """Read the local store and build the upload payload."""
        categories = self.store.list_categories()
        transactions = self.store.list_transactions()
        links = self.store.list_transaction_category_links()
        type_map, _, _ = create_transaction_type_maps(self.store.list_transaction_types())
        id_to_name, _ = create_category_lookup_maps(categories)
        return prepare_local_data_for_sync(
            categories, transactions, links, type_map, id_to_name, self.config.rules
        )

    def get_local_stats(self) -> LocalStats:
        """Count local rows; a read failure is logged and reported as zero."""
        try:
            return LocalStats(
                categories_count=self.store.count_categories(),
                transactions_count=self.store.count_transactions(),
                last_modified=utc_now_iso(),
            )
        except (sqlite3.Error, RuntimeError) as exc:
            logger.warning("Could not read local stats: %s", exc)
            return LocalStats(categories_count=0, transactions_count=0)

    # Status

    def get_sync_status(self, force_refresh: bool = False) -> StatusResult:
        now = self._clock()
        with self._status_lock:
            cached = self._status_cache
        if (
            not force_refresh
            and cached is not None
            and now - cached[0] < self.config.sync.status_cache_seconds
        ):
            logger.debug("Using cached sync status")
            return StatusResult(success=True, status=cached[1])

        try:
            status = self.api.get_sync_status()
        except Exception as exc:
            error = classify_error(exc)
            logger.warning("Sync status request failed: %s", error.message)
            return StatusResult(
                success=False,
                error=error.user_message,
                needs_auth=error.kind == ErrorKind.AUTH,
            )
        with self._status_lock:
            self._status_cache = (now, status)
        return StatusResult(success=True, status=status)

    def clear_status_cache(self) -> None:
        with self._status_lock:
            self._status_cache = None

    def check_sync_state(self, force_refresh: bool = False) -> SyncStateInfo:
        """Combine local counts and cloud status into a sync state."""
        local_stats = self.get_local_stats()
        status = self.get_sync_status(force_refresh=force_refresh)
        return determine_sync_state(local_stats, status.status if status.success else None)

    def get_job_history(self, limit: int | None = 10) -> list[SyncJob]:
        return self.api.get_job_history(limit)

    # Operations

    def upload_data(
        self,
        progress_callback: ProgressCallback | None = None,
        background: bool | None = None,
    ) -> SyncResult:
        """Send local data to the server without touching the local store."""
        reporter = _ProgressReporter(progress_callback)
        use_jobs = self._use_jobs(background)

        def action() -> SyncResult:
            data = self._prepare_upload(reporter, "Upload data")
            if use_jobs:
                results = self._run_job(JOB_TYPE_UPLOAD, data, reporter)
            else:
                results = self.api.upload(data).get("results")
            return SyncResult(True, SUCCESS_MESSAGES["upload"], results=results)

        return self._execute("upload", action, reporter)

    def download_data(self, progress_callback: ProgressCallback | None = None) -> SyncResult:
        """Replace local data with the server copy.

        The payload is validated before anything local is deleted; an empty
        download leaves the local store untouched.
        """
        reporter = _ProgressReporter(progress_callback)

        def action() -> SyncResult:
            reporter.phase(PHASE_STARTING, "Requesting cloud data...")
            raw = self.api.download()
            reporter.phase(PHASE_DOWNLOADING, "Updating local data...")
            applied = self._apply_download(raw)
            message = SUCCESS_MESSAGES["download" if applied else "download_empty"]
            return SyncResult(True, message, results={"download": applied})

        return self._execute("download", action, reporter)

    def full_sync(
        self,
        progress_callback: ProgressCallback | None = None,
        background: bool | None = None,
    ) -> SyncResult:
        """Upload local data, then apply the server's merged copy locally."""
        reporter = _ProgressReporter(progress_callback)
        use_jobs = self._use_jobs(background)

        def action() -> SyncResult:
            data = self._prepare_upload(reporter, "Full sync data")
            if use_jobs:
                results = self._run_job(JOB_TYPE_FULL_SYNC, data, reporter)
            else:
                results = self.api.full_sync(data).get("results")
            reporter.phase(PHASE_PROCESSING, "Server finished processing")
            results = results or {}

            reporter.phase(PHASE_DOWNLOADING, "Updating local data...")
            download = results.get("download")
            if download is None:
                logger.info("Full sync returned no download section, fetching cloud data")
                download = self.api.download()
            applied = self._apply_download(download)
            if not applied:
                logger.warning("Full sync completed without download data, keeping local data")
            return SyncResult(True, SUCCESS_MESSAGES["full_sync"], results=results)

        return self._execute("full sync", action, reporter)

    # Internals

    def _use_jobs(self, background: bool | None) -> bool:
        return self.config.sync.use_background_jobs if background is None else background

    def _prepare_upload(self, reporter: _ProgressReporter, context: str) -> LocalData:
        reporter.phase(PHASE_STARTING, "Preparing local data...")
        data = self.get_local_data()
        validate_or_raise(data, self.validator, context)
        summary = get_data_summary(data)
        logger.info("%s summary: %s", context, summary)
        reporter.phase(
            PHASE_UPLOADING,
            f"Uploading {summary['categories_count']} categories and "
            f"{summary['transactions_count']} transactions...",
        )
        return data

    def _execute(
        self, operation: str, action: Callable[[], SyncResult], reporter: _ProgressReporter
    ) -> SyncResult:
        logger.info("Starting %s", operation)
        try:
            result = self._with_retry(operation, action)
        except Exception as exc:
            error = classify_error(exc)
            if error.kind == ErrorKind.UNKNOWN:
                logger.exception("%s failed unexpectedly", operation.capitalize())
            else:
                logger.error("%s failed (%s): %s", operation.capitalize(), error.kind.value, error.message)
            result = SyncResult(
                success=False,
                message=error.user_message,
                error=error.message,
                error_kind=error.kind.value,
                retryable=error.retryable,
            )
        else:
            logger.info("%s finished: %s", operation.capitalize(), result.message)
            self.clear_status_cache()
        reporter.finish(result)
        return result

    def _with_retry(self, operation: str, action: Callable[[], T]) -> T:
        """Run ``action``, retrying retryable failures with exponential backoff."""
        settings = self.config.sync
        attempts = max(1, settings.max_retry_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return action()
            except Exception as exc:
                error = classify_error(exc)
                if not error.retryable or attempt == attempts:
                    if error is exc:
                        raise
                    raise error from exc
                delay = min(settings.retry_delay_base * 2 ** (attempt - 1), settings.retry_delay_max)
                logger.warning(
                    "%s attempt %d/%d failed, retrying in %.1fs: %s",
                    operation.capitalize(),
                    attempt,
                    attempts,
                    delay,
                    error.message,
                )
                self._sleep(delay)
        raise AssertionError("unreachable")

    def _apply_download(self, raw: Any) -> bool:
        """Replace local data with ``raw``; returns False when nothing was applied."""
        if not validate_downloaded_data(raw):
            raise ValidationError(
                "Invalid data format received from server",
                details={"received": type(raw).__name__},
            )
        downloaded = parse_downloaded_data(raw)
        if downloaded.is_empty:
            logger.warning("Download is empty, skipping local update to prevent data loss")
            return False
        self._replace_local_data(downloaded)
        return True

    def _replace_local_data(self, downloaded: DownloadedData) -> None:
        logger.info(
            "Replacing local data with %d categories and %d transactions",
            len(downloaded.categories),
            len(downloaded.transactions),
        )
        with self.store.transaction():
            self.store.clear_all_data()
            income_type = self.store.ensure_transaction_type(INCOME_TYPE)
            expense_type = self.store.ensure_transaction_type(EXPENSE_TYPE)
            categories = self.store.insert_categories(category_inserts_from_download(downloaded))
            _, name_to_id = create_category_lookup_maps(categories)
            inserts = prepare_downloaded_data_for_local(
                downloaded, income_type.id, expense_type.id, name_to_id
            )
            transaction_ids = self.store.insert_transactions(inserts.transaction_inserts)
            self.store.insert_links(
                [
                    (transaction_ids[link.transaction_index], category_id)
                    for link in inserts.category_links
                    for category_id in link.category_ids
                ]
            )

    def _run_job(
        self, job_type: str, data: LocalData, reporter: _ProgressReporter
    ) -> dict[str, Any] | None:
        """Create a background job and block until polling reports an outcome."""
        job_id = self.api.create_job(job_type, data)
        reporter.progress(
            PHASE_PROGRESS[PHASE_UPLOADING], PHASE_PROCESSING, SUCCESS_MESSAGES["job_started"]
        )
        done = threading.Event()
        outcome: dict[str, Any] = {}
        span = PHASE_PROGRESS[PHASE_PROCESSING] - PHASE_PROGRESS[PHASE_UPLOADING]

        def on_update(job: SyncJob) -> None:
            scaled = PHASE_PROGRESS[PHASE_UPLOADING] + span * max(0, min(job.progress, 100)) // 100
            reporter.progress(scaled, PHASE_PROCESSING, self.poller.status_message(job))
            if job.is_terminal:
                outcome["job"] = job
                done.set()

        def on_error(error: SyncError) -> None:
            if self.poller.is_polling(job_id):
                logger.debug("Transient polling error for job %s: %s", job_id, error.message)
                return
            outcome["error"] = error
            done.set()

        self.poller.start_polling(job_id, on_update, on_error)
        polling = self.config.polling
        wait_limit = polling.timeout_seconds + 2 * self.poller.poll_interval + self.config.request_timeout
        if not done.wait(wait_limit):
            self.poller.stop_polling(job_id)
            raise JobTimeoutError(job_id, polling.timeout_seconds)
        if "error" in outcome:
            raise outcome["error"]

        job = outcome["job"]
        if job.status == JOB_FAILED:
            raise SyncError(
                job.error_message or "Job failed",
                kind=ErrorKind.SERVER,
                details={"job_id": job_id, "job_type": job_type},
                retryable=False,
            )
        return job.results
