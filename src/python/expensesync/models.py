"""Domain models, wire records and result objects."""

from __future__ import annotations

from dataclasses import dataclass, field
import datetime as dt
from decimal import Decimal, InvalidOperation
import re
from typing import Any

from expensesync.schema import (
    DEFAULT_CATEGORY_COLOR,
    JOB_TERMINAL_STATUSES,
    TRANSACTION_TYPE_NAMES,
)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")
DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
HEX_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def is_valid_date(value: Any) -> bool:
    """Return True for ``YYYY-MM-DD`` or ``YYYY-MM-DD HH:MM:SS`` calendar dates."""
    if not isinstance(value, str):
        return False
    if DATE_PATTERN.match(value):
        fmt = DATE_FORMAT
    elif DATETIME_PATTERN.match(value):
        fmt = DATETIME_FORMAT
    else:
        return False
    try:
        dt.datetime.strptime(value, fmt)
    except ValueError:
        return False
    return True


def is_valid_color(value: Any) -> bool:
    return isinstance(value, str) and bool(HEX_COLOR_PATTERN.match(value))


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def parse_timestamp(value: Any) -> dt.datetime | None:
    """Parse an ISO timestamp from the server, assuming UTC when naive."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        parsed = value
    else:
        try:
            parsed = dt.datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _ensure_non_empty(value: str, field_name: str) -> str:
    """Validate required text fields."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} is required")
    return value.strip()


def _ensure_amount(value: Decimal | str | int | float, field_name: str) -> Decimal:
    """Parse and validate non-negative decimal amounts."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{field_name} must be a decimal") from exc
    if not amount.is_finite():
        raise ValueError(f"{field_name} must be finite")
    if amount < Decimal("0"):
        raise ValueError(f"{field_name} must not be negative")
    return amount


def _ensure_date_text(value: dt.date | dt.datetime | str, field_name: str) -> str:
    """Normalize a date input to its stored text form."""
    if isinstance(value, dt.datetime):
        return value.strftime(DATETIME_FORMAT)
    if isinstance(value, dt.date):
        return value.strftime(DATE_FORMAT)
    if is_valid_date(value):
        return value
    raise ValueError(f"{field_name} must be YYYY-MM-DD or YYYY-MM-DD HH:MM:SS")


def _ensure_type_name(value: str) -> str:
    name = _ensure_non_empty(value, "Type").lower()
    if name not in TRANSACTION_TYPE_NAMES:
        raise ValueError("Type must be income or expense")
    return name


# Local store records


@dataclass(frozen=True)
class CategoryDTO:
    """Validated category input for persistence."""

    name: str
    color: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _ensure_non_empty(self.name, "Name"))
        color = self.color or DEFAULT_CATEGORY_COLOR
        if not is_valid_color(color):
            raise ValueError("Color must be a hex value such as #1a2b3c")
        object.__setattr__(self, "color", color)


@dataclass(frozen=True)
class CategoryRecord:
    """Category row from the local store."""

    id: int
    name: str
    color: str


@dataclass(frozen=True)
class TransactionTypeRecord:
    id: int
    name: str


@dataclass(frozen=True)
class TransactionDTO:
    """Validated transaction input for persistence."""

    type: str
    amount: Decimal
    date: dt.date | str
    description: str | None = None
    category_ids: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _ensure_type_name(self.type))
        object.__setattr__(self, "amount", _ensure_amount(self.amount, "Amount"))
        object.__setattr__(self, "date", _ensure_date_text(self.date, "Date"))
        if self.description is not None:
            object.__setattr__(self, "description", self.description.strip())
        object.__setattr__(self, "category_ids", tuple(int(i) for i in self.category_ids))


@dataclass(frozen=True)
class TransactionRecord:
    """Transaction row from the local store, with its linked categories."""

    id: int
    type_id: int
    amount: Decimal
    date: str
    description: str | None
    category_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class TransactionCategoryLink:
    id: int
    transaction_id: int
    category_id: int


# Wire records


@dataclass(frozen=True)
class CloudCategory:
    """Category as exchanged with the remote store."""

    name: str
    color: str
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "color": self.color,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CloudCategory":
        return cls(
            name=str(payload["name"]).strip(),
            color=payload.get("color") or DEFAULT_CATEGORY_COLOR,
            created_at=payload.get("created_at") or "",
            updated_at=payload.get("updated_at") or "",
        )


@dataclass(frozen=True)
class CloudTransaction:
    """Transaction as exchanged with the remote store."""

    amount: Decimal
    description: str
    date: str
    type: str
    categories: tuple[str, ...]
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": float(self.amount),
            "description": self.description,
            "date": self.date,
            "type": self.type,
            "categories": list(self.categories),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CloudTransaction":
        return cls(
            amount=Decimal(str(payload["amount"])),
            description=payload.get("description") or "",
            date=payload.get("date") or "",
            type=str(payload["type"]).lower(),
            categories=tuple(str(name).strip() for name in payload.get("categories") or []),
            created_at=payload.get("created_at") or "",
            updated_at=payload.get("updated_at") or "",
        )


@dataclass(frozen=True)
class LocalData:
    """Upload payload built from the local store."""

    categories: tuple[CloudCategory, ...]
    transactions: tuple[CloudTransaction, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": [category.to_dict() for category in self.categories],
            "transactions": [transaction.to_dict() for transaction in self.transactions],
        }


@dataclass(frozen=True)
class DownloadedData:
    """Validated download payload from the remote store."""

    categories: tuple[CloudCategory, ...]
    transactions: tuple[CloudTransaction, ...]

    @property
    def is_empty(self) -> bool:
        return not self.categories and not self.transactions


@dataclass(frozen=True)
class CategoryInsert:
    name: str
    color: str


@dataclass(frozen=True)
class TransactionInsert:
    type_id: int
    amount: Decimal
    date: str
    description: str


@dataclass(frozen=True)
class CategoryLinkInsert:
    """Category ids for the transaction at ``transaction_index`` in the insert list."""

    transaction_index: int
    category_ids: tuple[int, ...]


@dataclass(frozen=True)
class LocalInserts:
    """Rows ready for insertion into the local store after a download."""

    category_inserts: tuple[CategoryInsert, ...]
    transaction_inserts: tuple[TransactionInsert, ...]
    category_links: tuple[CategoryLinkInsert, ...]


# Status and results


@dataclass(frozen=True)
class SyncStatus:
    """Cloud-side counts reported by the status endpoint."""

    categories_count: int
    transactions_count: int
    last_sync: dt.datetime | None = None
    server_time: str | None = None

    @property
    def total_count(self) -> int:
        return self.categories_count + self.transactions_count

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SyncStatus":
        return cls(
            categories_count=int(payload.get("categoriesCount") or 0),
            transactions_count=int(payload.get("transactionsCount") or 0),
            last_sync=parse_timestamp(payload.get("lastSync")),
            server_time=payload.get("serverTime"),
        )


@dataclass(frozen=True)
class LocalStats:
    categories_count: int
    transactions_count: int
    last_modified: str | None = None

    @property
    def total_count(self) -> int:
        return self.categories_count + self.transactions_count


@dataclass(frozen=True)
class SyncJob:
    """Server-side background job snapshot."""

    id: str
    type: str
    status: str
    progress: int = 0
    total_items: int = 0
    processed_items: int = 0
    error_message: str | None = None
    results: dict[str, Any] | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in JOB_TERMINAL_STATUSES

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SyncJob":
        return cls(
            id=str(payload["id"]),
            type=payload.get("type") or "",
            status=payload.get("status") or "",
            progress=int(payload.get("progress") or 0),
            total_items=int(payload.get("total_items") or 0),
            processed_items=int(payload.get("processed_items") or 0),
            error_message=payload.get("error_message"),
            results=payload.get("results"),
            created_at=payload.get("created_at"),
            updated_at=payload.get("updated_at"),
        )


@dataclass(frozen=True)
class SyncResult:
    """Outcome of an upload, download or full sync."""

    success: bool
    message: str
    error: str | None = None
    error_kind: str | None = None
    retryable: bool = False
    results: dict[str, Any] | None = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            payload["error"] = self.error
            payload["errorType"] = self.error_kind
            payload["retryable"] = self.retryable
        if self.results is not None:
            payload["results"] = self.results
        return payload


@dataclass(frozen=True)
class StatusResult:
    success: bool
    status: SyncStatus | None = None
    error: str | None = None
    needs_auth: bool = False


@dataclass(frozen=True)
class SyncStateInfo:
    """Divergence classification between local and cloud data."""

    state: str
    message: str
    local_count: int
    cloud_count: int
    last_sync: dt.datetime | None = None
    is_recent: bool = False


@dataclass(frozen=True)
class AuthSession:
    """Authenticated user session persisted between runs."""

    user_id: str
    email: str
    token: str
    refresh_token: str | None = None
    expires_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.user_id,
            "email": self.email,
            "token": self.token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AuthSession":
        return cls(
            user_id=str(payload.get("id") or ""),
            email=payload.get("email") or "",
            token=payload["token"],
            refresh_token=payload.get("refreshToken"),
            expires_at=payload.get("expiresAt"),
        )
