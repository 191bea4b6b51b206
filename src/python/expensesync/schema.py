"""Database schema, wire constants and status messages."""

from __future__ import annotations

DEFAULT_CATEGORY_COLOR = "#000000"
DATE_FORMAT_HINT = "expected YYYY-MM-DD or YYYY-MM-DD HH:MM:SS"

INCOME_TYPE = "income"
EXPENSE_TYPE = "expense"
TRANSACTION_TYPE_NAMES = (INCOME_TYPE, EXPENSE_TYPE)

CATEGORY_COLUMNS = ["id", "name", "color"]
TRANSACTION_TYPE_COLUMNS = ["id", "name"]
TRANSACTION_COLUMNS = ["id", "typeId", "amount", "date", "description"]
TRANSACTION_CATEGORY_COLUMNS = ["id", "transactionId", "categoryId"]

# Child tables first so deletes respect foreign keys.
TABLES_DELETE_ORDER = ["transaction_categories", "transactions", "categories"]

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        color TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transaction_types (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        typeId INTEGER NOT NULL REFERENCES transaction_types(id),
        amount REAL NOT NULL,
        date TEXT NOT NULL,
        description TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transaction_categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        transactionId INTEGER NOT NULL REFERENCES transactions(id),
        categoryId INTEGER NOT NULL REFERENCES categories(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_txcat_transaction ON transaction_categories(transactionId)",
    "CREATE INDEX IF NOT EXISTS idx_txcat_category ON transaction_categories(categoryId)",
]

# API endpoints relative to the configured base URL.
ENDPOINT_LOGIN = "/auth/login"
ENDPOINT_REGISTER = "/auth/register"
ENDPOINT_FORGOT_PASSWORD = "/auth/forgot-password"
ENDPOINT_REFRESH = "/auth/refresh"
ENDPOINT_SYNC_UPLOAD = "/api/sync/upload"
ENDPOINT_SYNC_DOWNLOAD = "/api/sync/download"
ENDPOINT_SYNC_FULL = "/api/sync/full"
ENDPOINT_SYNC_STATUS = "/api/sync/status"
ENDPOINT_JOB_CREATE = "/api/jobs/sync"
ENDPOINT_JOB_HISTORY = "/api/jobs"
ENDPOINT_JOB_STATUS = "/jobs/{job_id}/status"

JOB_TYPE_UPLOAD = "upload"
JOB_TYPE_DOWNLOAD = "download"
JOB_TYPE_FULL_SYNC = "full_sync"
JOB_TYPES = (JOB_TYPE_UPLOAD, JOB_TYPE_DOWNLOAD, JOB_TYPE_FULL_SYNC)

JOB_PENDING = "pending"
JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
JOB_TERMINAL_STATUSES = frozenset({JOB_COMPLETED, JOB_FAILED})

# Progress phases reported by full sync, with their percentages.
PHASE_STARTING = "starting"
PHASE_UPLOADING = "uploading"
PHASE_PROCESSING = "processing"
PHASE_DOWNLOADING = "downloading"
PHASE_COMPLETED = "completed"
PHASE_FAILED = "failed"
PHASE_PROGRESS = {
    PHASE_STARTING: 0,
    PHASE_UPLOADING: 20,
    PHASE_PROCESSING: 60,
    PHASE_DOWNLOADING: 80,
    PHASE_COMPLETED: 100,
}

STATE_SYNCED = "synced"
STATE_PENDING = "pending"
STATE_UNKNOWN = "unknown"

SYNC_STATE_MESSAGES = {
    "ready_to_upload": "Ready to sync to cloud",
    "no_data": "No data to sync",
    "up_to_date": "Everything is up to date",
    "stale": "Synced (may need refresh)",
    "differ": "Local and cloud data differ",
    "backup": "Ready to backup to cloud",
    "cloud_only": "Cloud data available to download",
    "never_synced": "Data has not been synced yet",
    "checking": "Checking sync status...",
}

SUCCESS_MESSAGES = {
    "upload": "Data uploaded successfully",
    "download": "Data downloaded successfully",
    "download_empty": "No cloud data to download; local data kept",
    "full_sync": "Sync completed successfully",
    "job_started": "Sync job started",
}

RECENT_SYNC_HOURS = 24
PAYLOAD_WARNING_RATIO = 0.8
