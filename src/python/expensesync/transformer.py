"""Conversion between local store rows and the remote wire schema.

Every function here is pure: no I/O, no retries. Conversion failures raise
:class:`ValidationError` for malformed input collections and
:class:`DataIntegrityError` for individual bad records.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation
import json
import logging
from numbers import Real
from typing import Any, Iterable, Mapping, Sequence

from expensesync.config import ValidationRules
from expensesync.exceptions import DataIntegrityError, ValidationError
from expensesync.models import (
    CategoryInsert,
    CategoryLinkInsert,
    CategoryRecord,
    CloudCategory,
    CloudTransaction,
    DownloadedData,
    LocalData,
    LocalInserts,
    TransactionCategoryLink,
    TransactionInsert,
    TransactionRecord,
    TransactionTypeRecord,
    is_valid_date,
    utc_now_iso,
)
from expensesync.schema import (
    DATE_FORMAT_HINT,
    DEFAULT_CATEGORY_COLOR,
    EXPENSE_TYPE,
    INCOME_TYPE,
    TRANSACTION_TYPE_NAMES,
)

logger = logging.getLogger(__name__)

DEFAULT_RULES = ValidationRules()

__all__ = [
    "categories_to_cloud",
    "transactions_to_cloud",
    "prepare_local_data_for_sync",
    "validate_downloaded_data",
    "parse_downloaded_data",
    "category_inserts_from_download",
    "prepare_downloaded_data_for_local",
    "create_category_lookup_maps",
    "create_transaction_type_maps",
    "get_data_summary",
    "is_valid_date",
    "payload_size",
]


def categories_to_cloud(
    categories: Sequence[CategoryRecord],
    rules: ValidationRules = DEFAULT_RULES,
) -> list[CloudCategory]:
    """Convert local categories to their wire form.

    Raises on the first invalid category; ``details`` carries its index.
    """
    if not isinstance(categories, (list, tuple)):
        raise ValidationError("Categories must be a list")

    now = utc_now_iso()
    converted = []
    for index, category in enumerate(categories):
        name = getattr(category, "name", None)
        if not isinstance(name, str) or not name.strip():
            raise DataIntegrityError(
                f"Category at index {index} has no name",
                details={"index": index, "category": category},
            )
        name = name.strip()
        if len(name) > rules.category_name_max_length:
            raise DataIntegrityError(
                f"Category name exceeds {rules.category_name_max_length} characters: {name[:20]}...",
                details={"index": index, "category": category},
            )
        converted.append(
            CloudCategory(
                name=name,
                color=getattr(category, "color", None) or DEFAULT_CATEGORY_COLOR,
                created_at=now,
                updated_at=now,
            )
        )
    return converted


def _parse_amount(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        raise ValueError("amount is not a number")
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount {value!r}") from exc


def _transaction_error(index: int, transaction: Any, reason: str) -> DataIntegrityError:
    return DataIntegrityError(
        f"Transaction at index {index}: {reason}",
        details={"index": index, "transaction": transaction},
    )


def transactions_to_cloud(
    transactions: Sequence[TransactionRecord],
    links: Iterable[TransactionCategoryLink],
    category_id_to_name: Mapping[int, str],
    type_map: Mapping[int, TransactionTypeRecord],
    rules: ValidationRules = DEFAULT_RULES,
) -> list[CloudTransaction]:
    """Convert local transactions to their wire form.

    Category ids are resolved through the link rows; ids with no matching
    category are dropped. The transaction type must resolve.
    """
    if not isinstance(transactions, (list, tuple)):
        raise ValidationError("Transactions must be a list")

    links_by_transaction: dict[int, list[int]] = {}
    for link in links:
        links_by_transaction.setdefault(link.transaction_id, []).append(link.category_id)

    now = utc_now_iso()
    max_amount = Decimal(str(rules.transaction_amount_max))
    converted = []
    for index, transaction in enumerate(transactions):
        try:
            amount = _parse_amount(transaction.amount)
        except ValueError as exc:
            raise _transaction_error(index, transaction, str(exc)) from exc
        if not amount.is_finite() or amount < 0:
            raise _transaction_error(index, transaction, f"invalid amount {transaction.amount!r}")
        if amount > max_amount:
            raise _transaction_error(
                index, transaction, f"amount exceeds maximum of {rules.transaction_amount_max}"
            )

        type_record = type_map.get(transaction.type_id)
        if type_record is None:
            raise _transaction_error(
                index, transaction, f"unknown transaction type id {transaction.type_id}"
            )
        type_name = INCOME_TYPE if type_record.name.lower() == INCOME_TYPE else EXPENSE_TYPE

        category_names = tuple(
            category_id_to_name[category_id]
            for category_id in links_by_transaction.get(transaction.id, [])
            if category_id in category_id_to_name
        )

        description = (transaction.description or "").strip()
        if len(description) > rules.transaction_description_max_length:
            raise _transaction_error(
                index,
                transaction,
                f"description exceeds {rules.transaction_description_max_length} characters",
            )

        date = transaction.date or dt.date.today().isoformat()
        if not is_valid_date(date):
            raise _transaction_error(index, transaction, f"invalid date {date!r}, {DATE_FORMAT_HINT}")

        converted.append(
            CloudTransaction(
                amount=amount,
                description=description,
                date=date,
                type=type_name,
                categories=category_names,
                created_at=now,
                updated_at=now,
            )
        )
    return converted


def payload_size(data: LocalData | Mapping[str, Any]) -> int:
    """Size in bytes of the JSON-serialized payload."""
    payload = data.to_dict() if isinstance(data, LocalData) else data
    return len(json.dumps(payload, default=str).encode("utf-8"))


def prepare_local_data_for_sync(
    categories: Sequence[CategoryRecord],
    transactions: Sequence[TransactionRecord],
    links: Iterable[TransactionCategoryLink],
    type_map: Mapping[int, TransactionTypeRecord],
    category_id_to_name: Mapping[int, str],
    rules: ValidationRules = DEFAULT_RULES,
) -> LocalData:
    """Build the upload payload, enforcing count and size limits."""
    if not isinstance(categories, (list, tuple)) or not isinstance(transactions, (list, tuple)):
        raise ValidationError("Categories and transactions must be lists")
    if len(categories) > rules.max_categories_per_sync:
        raise ValidationError(
            f"Too many categories: {len(categories)} exceeds {rules.max_categories_per_sync}",
            details={"count": len(categories), "limit": rules.max_categories_per_sync},
        )
    if len(transactions) > rules.max_transactions_per_sync:
        raise ValidationError(
            f"Too many transactions: {len(transactions)} exceeds {rules.max_transactions_per_sync}",
            details={"count": len(transactions), "limit": rules.max_transactions_per_sync},
        )

    data = LocalData(
        categories=tuple(categories_to_cloud(categories, rules)),
        transactions=tuple(
            transactions_to_cloud(transactions, links, category_id_to_name, type_map, rules)
        ),
    )

    size = payload_size(data)
    logger.debug("Prepared sync payload of %d bytes", size)
    if size > rules.max_sync_payload_size:
        raise ValidationError(
            f"Payload too large: {size} bytes exceeds {rules.max_sync_payload_size}",
            details={"size": size, "limit": rules.max_sync_payload_size},
        )
    return data


def _is_number(value: Any) -> bool:
    return isinstance(value, (Real, Decimal)) and not isinstance(value, bool)


def validate_downloaded_data(data: Any) -> bool:
    """Return True when ``data`` has the shape of a download payload.

    Never raises.
    """
    if not isinstance(data, Mapping):
        return False
    categories = data.get("categories")
    transactions = data.get("transactions")
    if not isinstance(categories, list) or not isinstance(transactions, list):
        return False
    for category in categories:
        if not isinstance(category, Mapping):
            return False
        name = category.get("name")
        if not isinstance(name, str) or not name.strip():
            return False
    for transaction in transactions:
        if not isinstance(transaction, Mapping):
            return False
        if not _is_number(transaction.get("amount")):
            return False
        if transaction.get("type") not in TRANSACTION_TYPE_NAMES:
            return False
        if not isinstance(transaction.get("categories"), list):
            return False
    return True


def parse_downloaded_data(data: Mapping[str, Any]) -> DownloadedData:
    """Convert a download payload into typed records."""
    if not validate_downloaded_data(data):
        raise ValidationError("Invalid data format received from server")
    return DownloadedData(
        categories=tuple(CloudCategory.from_dict(item) for item in data["categories"]),
        transactions=tuple(CloudTransaction.from_dict(item) for item in data["transactions"]),
    )


def category_inserts_from_download(downloaded: DownloadedData) -> tuple[CategoryInsert, ...]:
    return tuple(
        CategoryInsert(name=category.name, color=category.color or DEFAULT_CATEGORY_COLOR)
        for category in downloaded.categories
    )


def prepare_downloaded_data_for_local(
    downloaded: DownloadedData,
    income_type_id: int | None,
    expense_type_id: int | None,
    category_name_to_id: Mapping[str, int],
) -> LocalInserts:
    """Turn downloaded records into local insert rows.

    ``category_name_to_id`` maps names of categories already inserted to their
    new ids. Names it does not contain are dropped from the links.
    """
    if income_type_id is None or expense_type_id is None:
        raise ValueError("Income and expense transaction types are required")

    category_inserts = category_inserts_from_download(downloaded)
    transaction_inserts = []
    category_links = []
    for index, transaction in enumerate(downloaded.transactions):
        transaction_inserts.append(
            TransactionInsert(
                type_id=income_type_id if transaction.type == INCOME_TYPE else expense_type_id,
                amount=transaction.amount,
                date=transaction.date,
                description=transaction.description,
            )
        )
        category_ids = tuple(
            category_name_to_id[name]
            for name in transaction.categories
            if name in category_name_to_id
        )
        if category_ids:
            category_links.append(
                CategoryLinkInsert(transaction_index=index, category_ids=category_ids)
            )
    return LocalInserts(
        category_inserts=category_inserts,
        transaction_inserts=tuple(transaction_inserts),
        category_links=tuple(category_links),
    )


def create_category_lookup_maps(
    categories: Iterable[CategoryRecord],
) -> tuple[dict[int, str], dict[str, int]]:
    """Return ``(id_to_name, name_to_id)`` lookups for categories."""
    id_to_name = {}
    name_to_id = {}
    for category in categories:
        id_to_name[category.id] = category.name
        name_to_id[category.name] = category.id
    return id_to_name, name_to_id


def create_transaction_type_maps(
    types: Iterable[TransactionTypeRecord],
) -> tuple[dict[int, TransactionTypeRecord], TransactionTypeRecord | None, TransactionTypeRecord | None]:
    """Return ``(type_map, income_type, expense_type)``."""
    type_map = {}
    income_type = None
    expense_type = None
    for type_record in types:
        type_map[type_record.id] = type_record
        name = type_record.name.lower()
        if name == INCOME_TYPE:
            income_type = type_record
        elif name == EXPENSE_TYPE:
            expense_type = type_record
    return type_map, income_type, expense_type


def get_data_summary(data: LocalData | DownloadedData) -> dict[str, Any]:
    """Counts and income/expense totals for logging."""
    income_total = Decimal("0")
    expense_total = Decimal("0")
    for transaction in data.transactions:
        if transaction.type == INCOME_TYPE:
            income_total += transaction.amount
        else:
            expense_total += transaction.amount
    return {
        "categories_count": len(data.categories),
        "transactions_count": len(data.transactions),
        "income_total": str(income_total),
        "expense_total": str(expense_total),
    }
