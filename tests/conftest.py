"""Pytest configuration and fixtures for ExpenseSync tests.

Databases are created fresh in a temporary directory from the package
schema, so no binary fixtures are needed.
"""
from __future__ import annotations

from decimal import Decimal
from pathlib import Path
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src" / "python"

for path in (SRC_DIR, ROOT_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from expensesync.config import AppConfig, PollingSettings, SyncSettings  # noqa: E402
from expensesync.models import CategoryDTO, TransactionDTO  # noqa: E402
from expensesync.repository import Repository  # noqa: E402
from expensesync.session import SessionStore  # noqa: E402


@pytest.fixture()
def empty_db_path(tmp_path: Path) -> Path:
    """Database with schema and transaction types only."""
    path = tmp_path / "empty.db"
    repository = Repository(path)
    repository.connect()
    repository.initialize_schema()
    repository.close()
    return path


@pytest.fixture()
def test_db_path(empty_db_path: Path) -> Path:
    """Database with two categories and three transactions."""
    repository = Repository(empty_db_path)
    repository.connect()
    try:
        food = repository.insert_category(CategoryDTO(name="Food", color="#ff0000"))
        salary = repository.insert_category(CategoryDTO(name="Salary", color="#00ff00"))
        repository.insert_transaction(
            TransactionDTO(
                type="expense",
                amount=Decimal("25.50"),
                date="2026-02-16",
                description="Groceries",
                category_ids=(food.id,),
            )
        )
        repository.insert_transaction(
            TransactionDTO(
                type="income",
                amount=Decimal("3000"),
                date="2026-02-01",
                description="February pay",
                category_ids=(salary.id,),
            )
        )
        repository.insert_transaction(
            TransactionDTO(
                type="expense",
                amount=Decimal("4.20"),
                date="2026-02-17 08:30:00",
                description="Coffee",
                category_ids=(food.id, salary.id),
            )
        )
    finally:
        repository.close()
    return empty_db_path


@pytest.fixture()
def repository(test_db_path: Path):
    repo = Repository(test_db_path)
    repo.connect()
    yield repo
    repo.close()


@pytest.fixture()
def empty_repository(empty_db_path: Path):
    repo = Repository(empty_db_path)
    repo.connect()
    yield repo
    repo.close()


@pytest.fixture()
def session_store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / "session.json")


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    """Config with fast retries for tests."""
    return AppConfig(
        base_url="http://api.test",
        db_path=tmp_path / "expenses.db",
        session_path=tmp_path / "session.json",
        sync=SyncSettings(max_retry_attempts=3, retry_delay_base=1.0),
        polling=PollingSettings(interval_seconds=3.0, timeout_seconds=360.0),
    )


@pytest.fixture()
def sample_download_payload() -> dict:
    return {
        "categories": [
            {"name": "Rent", "color": "#123456"},
            {"name": "Bonus"},
        ],
        "transactions": [
            {
                "amount": 1200,
                "description": "March rent",
                "date": "2026-03-01",
                "type": "expense",
                "categories": ["Rent"],
            },
            {
                "amount": 500.25,
                "description": "Quarterly bonus",
                "date": "2026-03-15",
                "type": "income",
                "categories": ["Bonus", "Missing"],
            },
        ],
    }
