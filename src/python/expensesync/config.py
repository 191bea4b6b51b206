"""Configuration loading for ExpenseSync."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Any

CONFIG_ENV_VAR = "EXPENSESYNC_CONFIG"
API_URL_ENV_VAR = "EXPENSESYNC_API_URL"
DB_ENV_VAR = "EXPENSESYNC_DB"

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_REQUEST_TIMEOUT = 15
DEFAULT_DATA_DIR = Path.home() / ".expensesync"


@dataclass(frozen=True)
class ValidationRules:
    """Limits applied to records and payloads before upload."""

    category_name_max_length: int = 100
    transaction_description_max_length: int = 500
    transaction_amount_min: float = 0.01
    transaction_amount_max: float = 999999999.99
    max_categories_per_sync: int = 1000
    max_transactions_per_sync: int = 10000
    max_sync_payload_size: int = 50 * 1024 * 1024


@dataclass(frozen=True)
class SyncSettings:
    max_retry_attempts: int = 3
    retry_delay_base: float = 1.0
    retry_delay_max: float = 30.0
    status_cache_seconds: float = 30.0
    use_background_jobs: bool = False


@dataclass(frozen=True)
class PollingSettings:
    """Background job polling cadence and limits, in seconds."""

    interval_seconds: float = 3.0
    min_interval_seconds: float = 0.5
    timeout_seconds: float = 360.0
    max_consecutive_errors: int = 10


@dataclass(frozen=True)
class AppConfig:
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    db_path: Path = DEFAULT_DATA_DIR / "expenses.db"
    session_path: Path = DEFAULT_DATA_DIR / "session.json"
    job_status_endpoint: str | None = None
    sync: SyncSettings = field(default_factory=SyncSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)
    rules: ValidationRules = field(default_factory=ValidationRules)


def _section(payload: dict[str, Any], name: str) -> dict[str, Any]:
    value = payload.get(name, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{name}' must be an object")
    return value


def _build(cls: type, values: dict[str, Any]):
    """Instantiate a settings dataclass, keeping defaults for unknown keys."""
    known = {key: value for key, value in values.items() if key in cls.__dataclass_fields__}
    return cls(**known)


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Resolve the config file path from arguments or environment."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_DATA_DIR / "config.json"


def config_from_dict(payload: dict[str, Any]) -> AppConfig:
    """Build an AppConfig from a parsed config mapping."""
    defaults = AppConfig()
    return AppConfig(
        base_url=str(payload.get("base_url", defaults.base_url)).rstrip("/"),
        request_timeout=float(payload.get("request_timeout", defaults.request_timeout)),
        db_path=Path(payload.get("db_path", defaults.db_path)).expanduser(),
        session_path=Path(payload.get("session_path", defaults.session_path)).expanduser(),
        job_status_endpoint=payload.get("job_status_endpoint"),
        sync=_build(SyncSettings, _section(payload, "sync")),
        polling=_build(PollingSettings, _section(payload, "polling")),
        rules=_build(ValidationRules, _section(payload, "rules")),
    )


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config file if present, else return defaults.

    Environment variables override the file for the API URL and database path.
    """
    config_path = resolve_config_path(path)
    payload: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object")
    api_url = os.environ.get(API_URL_ENV_VAR)
    if api_url:
        payload["base_url"] = api_url
    db_path = os.environ.get(DB_ENV_VAR)
    if db_path:
        payload["db_path"] = db_path
    return config_from_dict(payload)
