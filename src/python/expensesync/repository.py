"""SQLite repository implementation for ExpenseSync."""

from __future__ import annotations

from pathlib import Path
from decimal import Decimal
import logging
import sqlite3
from typing import Sequence

from expensesync.exceptions import DuplicateError, NotFoundError
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
from expensesync.persistence import LocalStore
from expensesync.schema import (
    SCHEMA_STATEMENTS,
    TABLES_DELETE_ORDER,
    TRANSACTION_TYPE_NAMES,
)

logger = logging.getLogger(__name__)


class Repository(LocalStore):
    """SQLite-backed local store."""

    def __init__(self, db_path: str | Path) -> None:
        """Create a repository for the given database path."""
        self.db_path = Path(db_path)
        self.connection: sqlite3.Connection | None = None
        self._transaction_depth = 0

    def connect(self) -> None:
        """Open the database connection.

        The connection runs in autocommit mode; multi-statement writes use
        explicit transactions.
        """
        if self.connection is None:
            if self.db_path.parent and not self.db_path.parent.exists():
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.connection = sqlite3.connect(
                self.db_path, isolation_level=None, check_same_thread=False
            )
            self.connection.row_factory = sqlite3.Row
            self.connection.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        """Close the database connection."""
        if self.connection is not None:
            self.connection.close()
            self.connection = None

    def begin_transaction(self) -> None:
        """Begin a database transaction."""
        self._ensure_connection()
        self.connection.execute("BEGIN")

    def commit(self) -> None:
        """Commit the current transaction."""
        self._ensure_connection()
        self.connection.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self._ensure_connection()
        self.connection.rollback()

    def initialize_schema(self) -> None:
        """Create missing tables and seed the income and expense types."""
        self._ensure_connection()
        with self.transaction():
            for statement in SCHEMA_STATEMENTS:
                self.connection.execute(statement)
            for name in TRANSACTION_TYPE_NAMES:
                self.ensure_transaction_type(name)

    # Categories

    def list_categories(self) -> list[CategoryRecord]:
        """Return all categories ordered by id."""
        self._ensure_connection()
        rows = self.connection.execute(
            "SELECT id, name, color FROM categories ORDER BY id"
        ).fetchall()
        return [self._category_from_row(row) for row in rows]

    def get_category(self, category_id: int) -> CategoryRecord:
        """Return a category by id."""
        self._ensure_connection()
        row = self.connection.execute(
            "SELECT id, name, color FROM categories WHERE id = ?", (category_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Category not found: {category_id}")
        return self._category_from_row(row)

    def insert_category(self, category: CategoryDTO) -> CategoryRecord:
        """Insert a new category row and return the record."""
        self._ensure_connection()
        self._check_duplicate_category(category.name)
        cursor = self.connection.execute(
            "INSERT INTO categories (name, color) VALUES (?, ?)",
            (category.name, category.color),
        )
        return CategoryRecord(id=cursor.lastrowid, name=category.name, color=category.color)

    def update_category(self, category_id: int, category: CategoryDTO) -> CategoryRecord:
        """Rename or recolor a category."""
        self._ensure_connection()
        self.get_category(category_id)
        self._check_duplicate_category(category.name, exclude_id=category_id)
        self.connection.execute(
            "UPDATE categories SET name = ?, color = ? WHERE id = ?",
            (category.name, category.color, category_id),
        )
        return CategoryRecord(id=category_id, name=category.name, color=category.color)

    def delete_category(self, category_id: int) -> None:
        """Delete a category after removing its transaction links."""
        self._ensure_connection()
        self.get_category(category_id)
        with self.transaction():
            self.connection.execute(
                "DELETE FROM transaction_categories WHERE categoryId = ?", (category_id,)
            )
            self.connection.execute("DELETE FROM categories WHERE id = ?", (category_id,))

    def _check_duplicate_category(self, name: str, exclude_id: int | None = None) -> None:
        row = self.connection.execute(
            "SELECT id FROM categories WHERE lower(name) = lower(?) AND id != ?",
            (name, exclude_id if exclude_id is not None else -1),
        ).fetchone()
        if row is not None:
            raise DuplicateError(
                "Duplicate category detected",
                {"name": name, "existing_id": row["id"]},
            )

    # Transactions

    def list_transactions(self) -> list[TransactionRecord]:
        """Return all transactions ordered by date, newest first."""
        self._ensure_connection()
        rows = self.connection.execute(
            "SELECT id, typeId, amount, date, description FROM transactions "
            "ORDER BY date DESC, id DESC"
        ).fetchall()
        links = self._links_by_transaction()
        return [self._transaction_from_row(row, links.get(row["id"], ())) for row in rows]

    def get_transaction(self, transaction_id: int) -> TransactionRecord:
        """Return a transaction by id."""
        self._ensure_connection()
        row = self.connection.execute(
            "SELECT id, typeId, amount, date, description FROM transactions WHERE id = ?",
            (transaction_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        category_ids = tuple(
            link["categoryId"]
            for link in self.connection.execute(
                "SELECT categoryId FROM transaction_categories WHERE transactionId = ? "
                "ORDER BY id",
                (transaction_id,),
            ).fetchall()
        )
        return self._transaction_from_row(row, category_ids)

    def insert_transaction(self, transaction: TransactionDTO) -> TransactionRecord:
        """Insert a transaction and its category links atomically."""
        self._ensure_connection()
        with self.transaction():
            type_record = self.ensure_transaction_type(transaction.type)
            for category_id in transaction.category_ids:
                self.get_category(category_id)
            cursor = self.connection.execute(
                "INSERT INTO transactions (typeId, amount, date, description) "
                "VALUES (?, ?, ?, ?)",
                (
                    type_record.id,
                    float(transaction.amount),
                    transaction.date,
                    transaction.description or "",
                ),
            )
            transaction_id = cursor.lastrowid
            self.insert_links(
                [(transaction_id, category_id) for category_id in transaction.category_ids]
            )
        return TransactionRecord(
            id=transaction_id,
            type_id=type_record.id,
            amount=transaction.amount,
            date=transaction.date,
            description=transaction.description or "",
            category_ids=transaction.category_ids,
        )

    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction and its category links atomically."""
        self._ensure_connection()
        self.get_transaction(transaction_id)
        with self.transaction():
            self.connection.execute(
                "DELETE FROM transaction_categories WHERE transactionId = ?",
                (transaction_id,),
            )
            self.connection.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))

    # Transaction types

    def list_transaction_types(self) -> list[TransactionTypeRecord]:
        """Return transaction types ordered by id."""
        self._ensure_connection()
        rows = self.connection.execute(
            "SELECT id, name FROM transaction_types ORDER BY id"
        ).fetchall()
        return [TransactionTypeRecord(id=row["id"], name=row["name"]) for row in rows]

    def ensure_transaction_type(self, name: str) -> TransactionTypeRecord:
        """Return the type with ``name``, inserting it when absent."""
        self._ensure_connection()
        row = self.connection.execute(
            "SELECT id, name FROM transaction_types WHERE lower(name) = lower(?)", (name,)
        ).fetchone()
        if row is not None:
            return TransactionTypeRecord(id=row["id"], name=row["name"])
        cursor = self.connection.execute(
            "INSERT INTO transaction_types (name) VALUES (?)", (name,)
        )
        logger.debug("Created transaction type %s (id=%s)", name, cursor.lastrowid)
        return TransactionTypeRecord(id=cursor.lastrowid, name=name)

    # Links and counts

    def list_transaction_category_links(self) -> list[TransactionCategoryLink]:
        self._ensure_connection()
        rows = self.connection.execute(
            "SELECT id, transactionId, categoryId FROM transaction_categories ORDER BY id"
        ).fetchall()
        return [
            TransactionCategoryLink(
                id=row["id"],
                transaction_id=row["transactionId"],
                category_id=row["categoryId"],
            )
            for row in rows
        ]

    def count_categories(self) -> int:
        self._ensure_connection()
        return self.connection.execute("SELECT COUNT(*) FROM categories").fetchone()[0]

    def count_transactions(self) -> int:
        self._ensure_connection()
        return self.connection.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]

    # Bulk replacement

    def clear_all_data(self) -> None:
        """Delete links, then transactions, then categories."""
        self._ensure_connection()
        with self.transaction():
            for table in TABLES_DELETE_ORDER:
                self.connection.execute(f"DELETE FROM {table}")

    def insert_categories(self, categories: Sequence[CategoryInsert]) -> list[CategoryRecord]:
        """Insert categories in order and return their records."""
        self._ensure_connection()
        records = []
        with self.transaction():
            for category in categories:
                cursor = self.connection.execute(
                    "INSERT INTO categories (name, color) VALUES (?, ?)",
                    (category.name, category.color),
                )
                records.append(
                    CategoryRecord(id=cursor.lastrowid, name=category.name, color=category.color)
                )
        return records

    def insert_transactions(self, transactions: Sequence[TransactionInsert]) -> list[int]:
        """Insert transactions in order and return their ids."""
        self._ensure_connection()
        ids = []
        with self.transaction():
            for transaction in transactions:
                cursor = self.connection.execute(
                    "INSERT INTO transactions (typeId, amount, date, description) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        transaction.type_id,
                        float(transaction.amount),
                        transaction.date,
                        transaction.description,
                    ),
                )
                ids.append(cursor.lastrowid)
        return ids

    def insert_links(self, links: Sequence[tuple[int, int]]) -> None:
        """Insert transaction/category links."""
        self._ensure_connection()
        if not links:
            return
        self.connection.executemany(
            "INSERT INTO transaction_categories (transactionId, categoryId) VALUES (?, ?)",
            list(links),
        )

    # Helpers

    def _links_by_transaction(self) -> dict[int, tuple[int, ...]]:
        grouped: dict[int, list[int]] = {}
        for link in self.list_transaction_category_links():
            grouped.setdefault(link.transaction_id, []).append(link.category_id)
        return {key: tuple(value) for key, value in grouped.items()}

    @staticmethod
    def _category_from_row(row: sqlite3.Row) -> CategoryRecord:
        return CategoryRecord(id=row["id"], name=row["name"], color=row["color"])

    @staticmethod
    def _transaction_from_row(
        row: sqlite3.Row, category_ids: tuple[int, ...]
    ) -> TransactionRecord:
        return TransactionRecord(
            id=row["id"],
            type_id=row["typeId"],
            amount=Decimal(str(row["amount"])),
            date=row["date"],
            description=row["description"],
            category_ids=category_ids,
        )

    def _ensure_connection(self) -> None:
        if self.connection is None:
            raise RuntimeError("Database connection is not open")
