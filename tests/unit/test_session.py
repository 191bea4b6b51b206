from __future__ import annotations

import json

from expensesync.models import AuthSession
from expensesync.session import SessionStore


def _session(**overrides) -> AuthSession:
    values = {
        "user_id": "user-1",
        "email": "sam@example.com",
        "token": "access-1",
        "refresh_token": "refresh-1",
        "expires_at": 2_000,
    }
    values.update(overrides)
    return AuthSession(**values)


def test_empty_store(session_store: SessionStore) -> None:
    assert session_store.load_session() is None
    assert session_store.get_token() is None
    assert session_store.get_last_email() is None
    assert not session_store.is_session_valid()


def test_store_and_load(session_store: SessionStore) -> None:
    session_store.store_session(_session())

    assert session_store.load_session() == _session()
    assert session_store.get_token() == "access-1"
    payload = json.loads(session_store.path.read_text(encoding="utf-8"))
    assert payload["authUser"]["refreshToken"] == "refresh-1"


def test_session_expiry(session_store: SessionStore) -> None:
    session_store.store_session(_session())
    assert session_store.is_session_valid(now=1_999)
    assert not session_store.is_session_valid(now=2_000)

    session_store.store_session(_session(expires_at=None))
    assert session_store.is_session_valid(now=10**12)


def test_clear_keeps_last_email(session_store: SessionStore) -> None:
    session_store.store_session(_session())
    session_store.store_last_email("sam@example.com")

    session_store.clear_session()

    assert session_store.load_session() is None
    assert session_store.get_last_email() == "sam@example.com"


def test_unreadable_file_is_ignored(session_store: SessionStore) -> None:
    session_store.path.write_text("{not json", encoding="utf-8")
    assert session_store.load_session() is None

    session_store.store_last_email("a@b.c")
    assert session_store.get_last_email() == "a@b.c"
