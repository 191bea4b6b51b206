"""Shared CLI helpers."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation

import click

from expensesync.client import ExpenseSyncClient
from expensesync.config import load_config
from expensesync.models import SyncResult, is_valid_date


def parse_date(value: str | None, field_name: str) -> str | None:
    """Validate a ``YYYY-MM-DD`` or ``YYYY-MM-DD HH:MM:SS`` date string."""
    if value is None:
        return None
    if not is_valid_date(value):
        raise click.BadParameter(
            "Use YYYY-MM-DD or YYYY-MM-DD HH:MM:SS format.", param_hint=field_name
        )
    return value


def parse_decimal(value: str | None, field_name: str) -> Decimal | None:
    """Parse a decimal string into a Decimal."""
    if value is None:
        return None
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise click.BadParameter("Use a valid decimal value.", param_hint=field_name) from exc


def today() -> str:
    return dt.date.today().isoformat()


def get_client(ctx: click.Context) -> ExpenseSyncClient:
    """Build an ExpenseSync client from Click context."""
    payload = ctx.obj or {}
    config = load_config(payload.get("config_path"))
    return ExpenseSyncClient(db_path=payload.get("db_path"), config=config)


def echo_progress(progress: int, status: str, message: str | None) -> None:
    """Progress callback that prints one line per update."""
    suffix = f": {message}" if message else ""
    click.echo(f"[{progress:>3}%] {status}{suffix}")


def report_result(result: SyncResult) -> None:
    """Print a sync result, raising ClickException on failure."""
    if not result.success:
        detail = f" ({result.error})" if result.error else ""
        raise click.ClickException(f"{result.message}{detail}")
    click.echo(result.message)
