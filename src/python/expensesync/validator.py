"""Whole-payload validation run before anything is sent to the server."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from numbers import Real
from typing import Any, Mapping

from expensesync.config import ValidationRules
from expensesync.exceptions import ValidationError
from expensesync.models import LocalData, is_valid_color, is_valid_date
from expensesync.schema import DATE_FORMAT_HINT, PAYLOAD_WARNING_RATIO, TRANSACTION_TYPE_NAMES
from expensesync.transformer import payload_size

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    value: Any = None
    index: int | None = None

    def format(self) -> str:
        if self.index is None:
            return self.message
        return f"Item {self.index + 1}: {self.message}"


@dataclass
class ValidationReport:
    """Errors block a sync; warnings are only logged."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def extend(self, other: "ValidationReport") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def summary(self) -> str:
        if self.is_valid:
            if self.warnings:
                return f"Validation passed with {len(self.warnings)} warning(s)"
            return "Validation passed"
        text = f"Validation failed with {len(self.errors)} error(s)"
        if self.warnings:
            text += f" and {len(self.warnings)} warning(s)"
        return text


def _is_number(value: Any) -> bool:
    return isinstance(value, (Real, Decimal)) and not isinstance(value, bool) and value == value


class SyncValidator:
    """Collects every problem in a sync payload instead of stopping at the first."""

    def __init__(self, rules: ValidationRules | None = None) -> None:
        self.rules = rules or ValidationRules()

    def validate_sync_payload(self, payload: LocalData | Mapping[str, Any]) -> ValidationReport:
        report = ValidationReport()
        if isinstance(payload, LocalData):
            payload = payload.to_dict()
        if not isinstance(payload, Mapping):
            report.errors.append(
                ValidationIssue("payload", "Sync payload must be an object", payload)
            )
            return report

        if "categories" in payload:
            report.extend(self.validate_categories(payload["categories"]))
        if "transactions" in payload:
            report.extend(self.validate_transactions(payload["transactions"]))

        size = payload_size(payload)
        limit = self.rules.max_sync_payload_size
        if size > limit:
            report.errors.append(
                ValidationIssue("payload", f"Payload too large: {size} bytes (max: {limit})", size)
            )
        elif size > limit * PAYLOAD_WARNING_RATIO:
            report.warnings.append(
                ValidationIssue("payload", f"Payload approaching size limit: {size} bytes", size)
            )
        return report

    def validate_categories(self, categories: Any) -> ValidationReport:
        report = ValidationReport()
        if not isinstance(categories, list):
            report.errors.append(
                ValidationIssue("categories", "Categories must be a list", type(categories).__name__)
            )
            return report
        if len(categories) > self.rules.max_categories_per_sync:
            report.errors.append(
                ValidationIssue(
                    "categories",
                    f"Too many categories: {len(categories)} "
                    f"(max: {self.rules.max_categories_per_sync})",
                    len(categories),
                )
            )

        seen_names: set[str] = set()
        for index, category in enumerate(categories):
            report.errors.extend(self.validate_category(category, index))
            name = category.get("name") if isinstance(category, Mapping) else None
            if isinstance(name, str) and name.strip():
                normalized = name.strip().lower()
                if normalized in seen_names:
                    report.warnings.append(
                        ValidationIssue(
                            "categories", f'Duplicate category name: "{name}"', name, index
                        )
                    )
                else:
                    seen_names.add(normalized)
        return report

    def validate_category(self, category: Any, index: int | None = None) -> list[ValidationIssue]:
        if not isinstance(category, Mapping):
            return [ValidationIssue("category", "Category must be an object", category, index)]

        errors = []
        name = category.get("name")
        if not name:
            errors.append(
                ValidationIssue("category.name", "Category name is required", name, index)
            )
        elif not isinstance(name, str):
            errors.append(
                ValidationIssue("category.name", "Category name must be a string", name, index)
            )
        elif not name.strip():
            errors.append(
                ValidationIssue("category.name", "Category name cannot be blank", name, index)
            )
        elif len(name) > self.rules.category_name_max_length:
            errors.append(
                ValidationIssue(
                    "category.name",
                    f"Category name too long: {len(name)} characters "
                    f"(max: {self.rules.category_name_max_length})",
                    name,
                    index,
                )
            )

        color = category.get("color")
        if color is not None and not is_valid_color(color):
            errors.append(
                ValidationIssue(
                    "category.color", "Category color must be a valid hex color", color, index
                )
            )
        return errors

    def validate_transactions(self, transactions: Any) -> ValidationReport:
        report = ValidationReport()
        if not isinstance(transactions, list):
            report.errors.append(
                ValidationIssue(
                    "transactions", "Transactions must be a list", type(transactions).__name__
                )
            )
            return report
        if len(transactions) > self.rules.max_transactions_per_sync:
            report.errors.append(
                ValidationIssue(
                    "transactions",
                    f"Too many transactions: {len(transactions)} "
                    f"(max: {self.rules.max_transactions_per_sync})",
                    len(transactions),
                )
            )

        seen: set[tuple[Any, ...]] = set()
        for index, transaction in enumerate(transactions):
            report.errors.extend(self.validate_transaction(transaction, index))
            if not isinstance(transaction, Mapping):
                continue
            if transaction.get("amount") and transaction.get("date") and transaction.get("description"):
                key = (
                    transaction["amount"],
                    transaction["date"],
                    transaction["description"],
                    transaction.get("type"),
                )
                if key in seen:
                    report.warnings.append(
                        ValidationIssue(
                            "transactions",
                            "Potential duplicate transaction detected",
                            f"Amount: {transaction['amount']}, Date: {transaction['date']}",
                            index,
                        )
                    )
                else:
                    seen.add(key)
        return report

    def validate_transaction(
        self, transaction: Any, index: int | None = None
    ) -> list[ValidationIssue]:
        if not isinstance(transaction, Mapping):
            return [
                ValidationIssue("transaction", "Transaction must be an object", transaction, index)
            ]

        errors = []
        rules = self.rules
        amount = transaction.get("amount")
        if amount is None:
            errors.append(
                ValidationIssue("transaction.amount", "Transaction amount is required", amount, index)
            )
        elif not _is_number(amount):
            errors.append(
                ValidationIssue(
                    "transaction.amount", "Transaction amount must be a valid number", amount, index
                )
            )
        elif amount < rules.transaction_amount_min:
            errors.append(
                ValidationIssue(
                    "transaction.amount",
                    f"Transaction amount too small: {amount} (min: {rules.transaction_amount_min})",
                    amount,
                    index,
                )
            )
        elif amount > rules.transaction_amount_max:
            errors.append(
                ValidationIssue(
                    "transaction.amount",
                    f"Transaction amount too large: {amount} (max: {rules.transaction_amount_max})",
                    amount,
                    index,
                )
            )

        type_name = transaction.get("type")
        if not type_name:
            errors.append(
                ValidationIssue("transaction.type", "Transaction type is required", type_name, index)
            )
        elif type_name not in TRANSACTION_TYPE_NAMES:
            errors.append(
                ValidationIssue(
                    "transaction.type",
                    'Transaction type must be "income" or "expense"',
                    type_name,
                    index,
                )
            )

        date = transaction.get("date")
        if not date:
            errors.append(
                ValidationIssue("transaction.date", "Transaction date is required", date, index)
            )
        elif not is_valid_date(date):
            errors.append(
                ValidationIssue(
                    "transaction.date", f"Transaction date invalid, {DATE_FORMAT_HINT}", date, index
                )
            )

        description = transaction.get("description")
        if description is not None:
            if not isinstance(description, str):
                errors.append(
                    ValidationIssue(
                        "transaction.description",
                        "Transaction description must be a string",
                        description,
                        index,
                    )
                )
            elif len(description) > rules.transaction_description_max_length:
                errors.append(
                    ValidationIssue(
                        "transaction.description",
                        f"Transaction description too long: {len(description)} characters "
                        f"(max: {rules.transaction_description_max_length})",
                        description,
                        index,
                    )
                )

        categories = transaction.get("categories")
        if categories is not None:
            if not isinstance(categories, list):
                errors.append(
                    ValidationIssue(
                        "transaction.categories",
                        "Transaction categories must be a list",
                        categories,
                        index,
                    )
                )
            else:
                for position, name in enumerate(categories):
                    if not isinstance(name, str) or not name.strip():
                        errors.append(
                            ValidationIssue(
                                "transaction.categories",
                                f"Invalid category at index {position}: must be a non-empty string",
                                name,
                                index,
                            )
                        )
        return errors


def validate_or_raise(
    payload: LocalData | Mapping[str, Any],
    validator: SyncValidator,
    context: str,
) -> ValidationReport:
    """Validate ``payload`` and raise ValidationError when it has errors.

    Warnings are logged and the report is returned.
    """
    report = validator.validate_sync_payload(payload)
    if not report.is_valid:
        messages = [issue.format() for issue in report.errors]
        logger.error("Validation failed for %s: %s", context, report.summary())
        raise ValidationError(
            f"{context} validation failed: {'; '.join(messages[:5])}",
            details={
                "errors": messages,
                "warnings": [issue.format() for issue in report.warnings],
                "summary": report.summary(),
            },
        )
    if report.warnings:
        logger.warning(
            "Validation warnings for %s: %s",
            context,
            "; ".join(issue.format() for issue in report.warnings),
        )
    return report
