"""Persistence interfaces for ExpenseSync local storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from expensesync.models import (
    CategoryDTO,
    CategoryInsert,
    CategoryRecord,
    TransactionCategoryLink,
    TransactionDTO,
    TransactionInsert,
    TransactionRecord,
    TransactionTypeRecord,
)


class LocalStore(ABC):
    """Abstract interface for local store backends.

    Multi-statement writes run inside :meth:`transaction`, which nests: only
    the outermost block issues BEGIN and COMMIT or ROLLBACK.
    """

    _transaction_depth = 0

    @abstractmethod
    def __init__(self, db_path: str | Path) -> None:
        """Initialize the backend with a storage path."""

    @abstractmethod
    def connect(self) -> None:
        """Establish a backend connection."""

    @abstractmethod
    def close(self) -> None:
        """Close the backend connection."""

    @abstractmethod
    def begin_transaction(self) -> None:
        """Start a transaction."""

    @abstractmethod
    def commit(self) -> None:
        """Commit the active transaction."""

    @abstractmethod
    def rollback(self) -> None:
        """Rollback the active transaction."""

    @contextmanager
    def transaction(self) -> Iterator["LocalStore"]:
        """Run the enclosed block atomically."""
        outermost = self._transaction_depth == 0
        if outermost:
            self.begin_transaction()
        self._transaction_depth += 1
        try:
            yield self
        except BaseException:
            self._transaction_depth -= 1
            if outermost:
                self.rollback()
            raise
        self._transaction_depth -= 1
        if outermost:
            self.commit()

    @property
    def in_transaction(self) -> bool:
        return self._transaction_depth > 0

    @abstractmethod
    def initialize_schema(self) -> None:
        """Create tables and seed the transaction types."""

    @abstractmethod
    def list_categories(self) -> list[CategoryRecord]:
        """Return all categories ordered by id."""

    @abstractmethod
    def get_category(self, category_id: int) -> CategoryRecord:
        """Return one category or raise NotFoundError."""

    @abstractmethod
    def insert_category(self, category: CategoryDTO) -> CategoryRecord:
        """Insert a category and return the record."""

    @abstractmethod
    def update_category(self, category_id: int, category: CategoryDTO) -> CategoryRecord:
        """Update a category and return the record."""

    @abstractmethod
    def delete_category(self, category_id: int) -> None:
        """Delete a category and its transaction links."""

    @abstractmethod
    def list_transactions(self) -> list[TransactionRecord]:
        """Return all transactions with their category ids."""

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> TransactionRecord:
        """Return one transaction or raise NotFoundError."""

    @abstractmethod
    def insert_transaction(self, transaction: TransactionDTO) -> TransactionRecord:
        """Insert a transaction with its category links."""

    @abstractmethod
    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction and its category links."""

    @abstractmethod
    def list_transaction_types(self) -> list[TransactionTypeRecord]:
        """Return the transaction types."""

    @abstractmethod
    def ensure_transaction_type(self, name: str) -> TransactionTypeRecord:
        """Return the named type, creating it when missing."""

    @abstractmethod
    def list_transaction_category_links(self) -> list[TransactionCategoryLink]:
        """Return every transaction/category link."""

    @abstractmethod
    def count_categories(self) -> int:
        """Return the number of categories."""

    @abstractmethod
    def count_transactions(self) -> int:
        """Return the number of transactions."""

    @abstractmethod
    def clear_all_data(self) -> None:
        """Delete links, transactions and categories."""

    @abstractmethod
    def insert_categories(self, categories: Sequence[CategoryInsert]) -> list[CategoryRecord]:
        """Bulk insert categories and return the records in input order."""

    @abstractmethod
    def insert_transactions(self, transactions: Sequence[TransactionInsert]) -> list[int]:
        """Bulk insert transactions and return their ids in input order."""

    @abstractmethod
    def insert_links(self, links: Sequence[tuple[int, int]]) -> None:
        """Bulk insert ``(transaction_id, category_id)`` links."""
