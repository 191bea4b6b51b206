"""HTTP client for the ExpenseSync server."""

from __future__ import annotations

from concurrent.futures import Future
import logging
import threading
from typing import Any, Mapping

import requests

from expensesync.exceptions import (
    ApiError,
    AuthError,
    ErrorKind,
    NetworkError,
)
from expensesync.models import AuthSession, LocalData, SyncJob, SyncStatus
from expensesync.schema import (
    ENDPOINT_FORGOT_PASSWORD,
    ENDPOINT_JOB_CREATE,
    ENDPOINT_JOB_HISTORY,
    ENDPOINT_JOB_STATUS,
    ENDPOINT_LOGIN,
    ENDPOINT_REFRESH,
    ENDPOINT_REGISTER,
    ENDPOINT_SYNC_DOWNLOAD,
    ENDPOINT_SYNC_FULL,
    ENDPOINT_SYNC_STATUS,
    ENDPOINT_SYNC_UPLOAD,
    JOB_TYPES,
)
from expensesync.session import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15


class ApiClient:
    """Send authenticated JSON requests and map failures to SyncError types.

    A 401 on an authenticated request triggers one token refresh followed by
    one retry. Concurrent 401s share a single refresh call.
    """

    def __init__(
        self,
        base_url: str,
        session_store: SessionStore,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http: requests.Session | None = None,
        job_status_endpoint: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session_store = session_store
        self.timeout = timeout
        self.job_status_endpoint = job_status_endpoint or ENDPOINT_JOB_STATUS
        self.http = http or requests.Session()
        self.http.headers.update(
            {"Content-Type": "application/json", "Accept": "application/json"}
        )
        self._refresh_lock = threading.Lock()
        self._refresh_future: Future | None = None

    def close(self) -> None:
        self.http.close()

    # Request pipeline

    def request(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        params: Mapping[str, Any] | None = None,
        authenticated: bool = True,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body."""
        token = self.session_store.get_token() if authenticated else None
        response = self._send(method, path, json_body, params, token)
        if authenticated and response.status_code == 401:
            logger.info("Received 401 for %s %s, refreshing session", method, path)
            token = self._refresh_after_401(token, self._error_message(response))
            response = self._send(method, path, json_body, params, token)
        return self._handle_response(response)

    def _send(
        self,
        method: str,
        path: str,
        json_body: Any,
        params: Mapping[str, Any] | None,
        token: str | None,
    ) -> requests.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        url = f"{self.base_url}{path}"
        try:
            return self.http.request(
                method,
                url,
                json=json_body,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise NetworkError(
                f"Request to {path} timed out after {self.timeout:g}s",
                kind=ErrorKind.TIMEOUT,
            ) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Cannot connect to server: {exc}") from exc

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            if response.ok:
                raise ApiError("Server returned an invalid JSON response", response.status_code)
            return {"message": response.text[:200]}

    def _error_message(self, response: requests.Response) -> str:
        body = self._decode(response) if not response.ok else {}
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if message:
                return str(message)
        return f"HTTP {response.status_code}"

    def _handle_response(self, response: requests.Response) -> dict[str, Any]:
        status = response.status_code
        if not response.ok:
            message = self._error_message(response)
            logger.warning("Request %s failed with %s: %s", response.url, status, message)
            if status in (401, 403):
                raise AuthError(message, status_code=status)
            if status >= 500:
                raise ApiError(message, status_code=status)
            if status == 408:
                raise NetworkError(message, kind=ErrorKind.TIMEOUT, status_code=status)
            raise ApiError(message, status_code=status)

        body = self._decode(response)
        if not isinstance(body, dict):
            return {"data": body}
        if body.get("success") is False:
            raise ApiError(
                str(body.get("message") or body.get("error") or "Request failed"),
                status_code=status,
                details={"error": body.get("error")},
            )
        return body

    # Session refresh

    def _refresh_after_401(self, failed_token: str | None, message: str) -> str:
        """Return a fresh token, refreshing at most once for concurrent callers."""
        with self._refresh_lock:
            current = self.session_store.get_token()
            if current and current != failed_token:
                return current
            future = self._refresh_future
            leader = future is None
            if leader:
                future = Future()
                self._refresh_future = future

        if leader:
            try:
                session = self.refresh_session()
            except Exception as exc:
                logger.warning("Session refresh failed, signing out: %s", exc)
                self.session_store.clear_session()
                with self._refresh_lock:
                    self._refresh_future = None
                future.set_exception(exc)
            else:
                with self._refresh_lock:
                    self._refresh_future = None
                future.set_result(session.token)

        try:
            return future.result()
        except Exception as exc:
            raise AuthError(message, status_code=401) from exc

    def refresh_session(self) -> AuthSession:
        """Exchange the stored refresh token for a new session."""
        current = self.session_store.load_session()
        if current is None or not current.refresh_token:
            raise AuthError("No refresh token available", status_code=401)
        body = self.request(
            "POST",
            ENDPOINT_REFRESH,
            json_body={"refresh_token": current.refresh_token},
            authenticated=False,
        )
        payload = body.get("session") or body
        token = payload.get("access_token") or payload.get("token")
        if not token:
            raise AuthError("Refresh response did not include a token", status_code=401)
        session = AuthSession(
            user_id=current.user_id,
            email=current.email,
            token=token,
            refresh_token=payload.get("refresh_token") or current.refresh_token,
            expires_at=payload.get("expires_at", current.expires_at),
        )
        self.session_store.store_session(session)
        logger.info("Refreshed session for %s", session.email)
        return session

    # Auth

    def _session_from_auth(self, body: dict[str, Any], email: str) -> AuthSession | None:
        payload = body.get("session")
        if not isinstance(payload, dict) or not payload.get("access_token"):
            return None
        user = body.get("user") or {}
        return AuthSession(
            user_id=str(user.get("id") or ""),
            email=user.get("email") or email,
            token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=payload.get("expires_at"),
        )

    def login(self, email: str, password: str) -> AuthSession:
        body = self.request(
            "POST",
            ENDPOINT_LOGIN,
            json_body={"email": email, "password": password},
            authenticated=False,
        )
        session = self._session_from_auth(body, email)
        if session is None:
            raise AuthError(str(body.get("message") or "Login did not return a session"))
        self.session_store.store_session(session)
        self.session_store.store_last_email(email)
        logger.info("Signed in as %s", session.email)
        return session

    def register(self, email: str, password: str) -> dict[str, Any]:
        """Create an account; the session is stored when the server returns one."""
        body = self.request(
            "POST",
            ENDPOINT_REGISTER,
            json_body={"email": email, "password": password},
            authenticated=False,
        )
        session = self._session_from_auth(body, email)
        if session is not None:
            self.session_store.store_session(session)
        self.session_store.store_last_email(email)
        return body

    def forgot_password(self, email: str) -> str:
        body = self.request(
            "POST", ENDPOINT_FORGOT_PASSWORD, json_body={"email": email}, authenticated=False
        )
        return str(body.get("message") or "Password reset email sent")

    def logout(self) -> None:
        self.session_store.clear_session()

    # Sync

    @staticmethod
    def _payload(data: LocalData | Mapping[str, Any]) -> dict[str, Any]:
        return data.to_dict() if isinstance(data, LocalData) else dict(data)

    def upload(self, data: LocalData | Mapping[str, Any]) -> dict[str, Any]:
        return self.request("POST", ENDPOINT_SYNC_UPLOAD, json_body=self._payload(data))

    def download(self) -> Any:
        """Return the raw ``data`` section of the download response."""
        body = self.request("GET", ENDPOINT_SYNC_DOWNLOAD)
        return body.get("data", body)

    def full_sync(self, data: LocalData | Mapping[str, Any]) -> dict[str, Any]:
        return self.request("POST", ENDPOINT_SYNC_FULL, json_body=self._payload(data))

    def get_sync_status(self) -> SyncStatus:
        body = self.request("GET", ENDPOINT_SYNC_STATUS)
        status = body.get("status")
        if not isinstance(status, dict):
            raise ApiError("Sync status response did not include a status")
        return SyncStatus.from_dict(status)

    # Background jobs

    def create_job(
        self, job_type: str, data: LocalData | Mapping[str, Any] | None = None
    ) -> str:
        """Create a background sync job and return its id."""
        if job_type not in JOB_TYPES:
            raise ValueError(f"Unknown job type: {job_type}")
        payload = {"type": job_type}
        if data is not None:
            payload.update(self._payload(data))
        body = self.request("POST", ENDPOINT_JOB_CREATE, json_body=payload)
        job = body.get("job")
        if not isinstance(job, dict) or "id" not in job:
            raise ApiError("Job creation response did not include a job id")
        logger.info("Created %s job %s", job_type, job["id"])
        return str(job["id"])

    def get_job_status(self, job_id: str) -> SyncJob:
        body = self.request("GET", self.job_status_endpoint.format(job_id=job_id))
        job = body.get("job")
        if not isinstance(job, dict):
            raise ApiError(f"Job status response for {job_id} did not include a job")
        return SyncJob.from_dict(job)

    def get_job_history(self, limit: int | None = None) -> list[SyncJob]:
        params = {"limit": limit} if limit else None
        body = self.request("GET", ENDPOINT_JOB_HISTORY, params=params)
        return [SyncJob.from_dict(job) for job in body.get("jobs") or []]
