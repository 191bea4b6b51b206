"""Persisted authentication session."""

from __future__ import annotations

import json
import logging
from pathlib import Path
import threading
import time
from typing import Any

from expensesync.models import AuthSession

logger = logging.getLogger(__name__)

SESSION_KEY = "authUser"
LAST_EMAIL_KEY = "lastEmail"


class SessionStore:
    """Keep the signed-in user and last used email in a JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write(self, payload: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        tmp_path.replace(self.path)

    def load_session(self) -> AuthSession | None:
        with self._lock:
            raw = self._read().get(SESSION_KEY)
        if not isinstance(raw, dict) or not raw.get("token"):
            return None
        return AuthSession.from_dict(raw)

    def store_session(self, session: AuthSession) -> None:
        with self._lock:
            payload = self._read()
            payload[SESSION_KEY] = session.to_dict()
            self._write(payload)
        logger.debug("Stored session for %s", session.email)

    def clear_session(self) -> None:
        with self._lock:
            payload = self._read()
            if payload.pop(SESSION_KEY, None) is not None:
                self._write(payload)
                logger.info("Cleared stored session")

    def get_token(self) -> str | None:
        session = self.load_session()
        return session.token if session else None

    def is_session_valid(self, now: float | None = None) -> bool:
        """True when a session exists and has not passed ``expiresAt`` (epoch seconds)."""
        session = self.load_session()
        if session is None:
            return False
        if session.expires_at is None:
            return True
        current = time.time() if now is None else now
        return float(session.expires_at) > current

    def get_last_email(self) -> str | None:
        with self._lock:
            value = self._read().get(LAST_EMAIL_KEY)
        return value if isinstance(value, str) and value else None

    def store_last_email(self, email: str) -> None:
        with self._lock:
            payload = self._read()
            payload[LAST_EMAIL_KEY] = email
            self._write(payload)
