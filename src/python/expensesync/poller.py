"""Recurring status polling for server-side background jobs."""

from __future__ import annotations

from dataclasses import dataclass
import itertools
import logging
import threading
import time
from typing import Any, Callable, Protocol

from expensesync.config import PollingSettings
from expensesync.exceptions import JobTimeoutError, SyncError, classify_error
from expensesync.models import SyncJob
from expensesync.schema import JOB_COMPLETED, JOB_FAILED, JOB_PENDING, JOB_PROCESSING

logger = logging.getLogger(__name__)

JobUpdateCallback = Callable[[SyncJob], None]
JobErrorCallback = Callable[[SyncError], None]
ProgressCallback = Callable[[int, str, "str | None"], None]


class JobStatusSource(Protocol):
    def get_job_status(self, job_id: str) -> SyncJob:
        ...


@dataclass
class _PollHandle:
    job_id: str
    on_update: JobUpdateCallback
    on_error: JobErrorCallback | None
    started_at: float
    generation: int
    timer: Any = None
    active: bool = True
    poll_count: int = 0
    consecutive_errors: int = 0
    last_status: str | None = None


class JobPoller:
    """Poll job status until the job finishes, times out or keeps failing.

    One poll runs immediately on :meth:`start_polling`; later polls are
    chained one-shot timers. Each poll belongs to a generation, so a timer
    left over from a restarted or stopped poll never fires a request.
    """

    def __init__(
        self,
        api: JobStatusSource,
        settings: PollingSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.api = api
        self.settings = settings or PollingSettings()
        self._clock = clock
        self._timer_factory = timer_factory
        self._interval = max(self.settings.interval_seconds, self.settings.min_interval_seconds)
        self._lock = threading.RLock()
        self._polls: dict[str, _PollHandle] = {}
        self._generations = itertools.count(1)

    @property
    def poll_interval(self) -> float:
        return self._interval

    def set_poll_interval(self, seconds: float) -> None:
        """Change the delay between polls, never below the configured minimum."""
        self._interval = max(float(seconds), self.settings.min_interval_seconds)
        logger.debug("Poll interval set to %.2fs", self._interval)

    def start_polling(
        self,
        job_id: str,
        on_update: JobUpdateCallback,
        on_error: JobErrorCallback | None = None,
    ) -> None:
        self.stop_polling(job_id)
        handle = _PollHandle(
            job_id=job_id,
            on_update=on_update,
            on_error=on_error,
            started_at=self._clock(),
            generation=next(self._generations),
        )
        with self._lock:
            self._polls[job_id] = handle
        logger.info("Started polling job %s every %.2fs", job_id, self._interval)
        self._poll(handle)

    def stop_polling(self, job_id: str) -> bool:
        """Stop polling ``job_id``; returns False when it was not being polled."""
        with self._lock:
            handle = self._polls.pop(job_id, None)
            if handle is None:
                return False
            self._deactivate(handle)
        logger.info("Stopped polling job %s", job_id)
        return True

    def stop_all_polling(self) -> None:
        with self._lock:
            job_ids = list(self._polls)
        for job_id in job_ids:
            self.stop_polling(job_id)

    def is_polling(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._polls

    def get_polling_status(self) -> dict[str, dict[str, Any]]:
        """Snapshot of every active poll keyed by job id."""
        now = self._clock()
        with self._lock:
            return {
                job_id: {
                    "generation": handle.generation,
                    "elapsed_seconds": now - handle.started_at,
                    "poll_count": handle.poll_count,
                    "consecutive_errors": handle.consecutive_errors,
                    "last_status": handle.last_status,
                }
                for job_id, handle in self._polls.items()
            }

    def create_progress_callback(
        self,
        job_id: str,
        on_progress: ProgressCallback,
        on_error: JobErrorCallback | None = None,
    ) -> None:
        """Poll ``job_id``, reporting each update as ``(progress, status, message)``."""

        def on_update(job: SyncJob) -> None:
            on_progress(job.progress, job.status, self.status_message(job))

        self.start_polling(job_id, on_update, on_error)

    @staticmethod
    def status_message(job: SyncJob) -> str:
        if job.status == JOB_PENDING:
            return "Waiting to start..."
        if job.status == JOB_PROCESSING:
            if job.total_items > 0:
                return f"Processing {job.processed_items}/{job.total_items} items..."
            return "Processing..."
        if job.status == JOB_COMPLETED:
            return "Completed successfully!"
        if job.status == JOB_FAILED:
            return job.error_message or "Failed"
        return job.status

    # Internals

    def _is_current(self, handle: _PollHandle) -> bool:
        with self._lock:
            return handle.active and self._polls.get(handle.job_id) is handle

    @staticmethod
    def _deactivate(handle: _PollHandle) -> None:
        handle.active = False
        if handle.timer is not None:
            handle.timer.cancel()
            handle.timer = None

    def _finish(self, handle: _PollHandle) -> None:
        with self._lock:
            if self._polls.get(handle.job_id) is handle:
                del self._polls[handle.job_id]
            self._deactivate(handle)

    def _schedule(self, handle: _PollHandle) -> None:
        with self._lock:
            if not self._is_current(handle):
                return
            timer = self._timer_factory(self._interval, self._poll, args=(handle,))
            timer.daemon = True
            handle.timer = timer
        timer.start()

    def _poll(self, handle: _PollHandle) -> None:
        if not self._is_current(handle):
            return

        timeout = self.settings.timeout_seconds
        if self._clock() - handle.started_at > timeout:
            logger.warning("Job %s polling timed out after %ss", handle.job_id, timeout)
            self._finish(handle)
            self._notify_error(handle, JobTimeoutError(handle.job_id, timeout))
            return

        handle.poll_count += 1
        try:
            job = self.api.get_job_status(handle.job_id)
        except Exception as exc:
            self._handle_poll_error(handle, exc)
            return

        if not self._is_current(handle):
            return
        handle.consecutive_errors = 0
        handle.last_status = job.status
        logger.debug(
            "Job %s status %s (%s%%), poll %d",
            job.id,
            job.status,
            job.progress,
            handle.poll_count,
        )
        if job.is_terminal:
            self._finish(handle)
            logger.info("Job %s finished with status %s", job.id, job.status)
        self._notify_update(handle, job)
        if not job.is_terminal:
            self._schedule(handle)

    def _handle_poll_error(self, handle: _PollHandle, exc: Exception) -> None:
        if not self._is_current(handle):
            return
        error = classify_error(exc)
        handle.consecutive_errors += 1
        limit = self.settings.max_consecutive_errors
        logger.warning(
            "Polling job %s failed (%d/%d consecutive): %s",
            handle.job_id,
            handle.consecutive_errors,
            limit,
            error.message,
        )
        if handle.consecutive_errors >= limit:
            self._finish(handle)
            self._notify_error(
                handle,
                SyncError(
                    f"Polling for job {handle.job_id} stopped after "
                    f"{handle.consecutive_errors} consecutive errors: {error.message}",
                    kind=error.kind,
                    details={"job_id": handle.job_id, "last_error": error.to_dict()},
                    retryable=False,
                ),
            )
            return
        self._notify_error(handle, error)
        self._schedule(handle)

    @staticmethod
    def _notify_update(handle: _PollHandle, job: SyncJob) -> None:
        try:
            handle.on_update(job)
        except Exception:
            logger.exception("Job update callback failed for %s", handle.job_id)

    @staticmethod
    def _notify_error(handle: _PollHandle, error: SyncError) -> None:
        if handle.on_error is None:
            return
        try:
            handle.on_error(error)
        except Exception:
            logger.exception("Job error callback failed for %s", handle.job_id)
