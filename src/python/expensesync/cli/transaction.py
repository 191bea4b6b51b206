"""Transaction CLI commands."""

from __future__ import annotations

import click

from expensesync.cli.common import get_client, parse_date, parse_decimal, today
from expensesync.exceptions import NotFoundError
from expensesync.models import TransactionDTO
from expensesync.schema import TRANSACTION_TYPE_NAMES


@click.group()
def transaction() -> None:
    """Transaction commands."""


@transaction.command("add")
@click.option(
    "--type",
    "type_name",
    required=True,
    type=click.Choice(TRANSACTION_TYPE_NAMES, case_sensitive=False),
    help="Transaction type.",
)
@click.option("--amount", "amount_value", required=True, help="Transaction amount.")
@click.option("--date", "date_value", default=None, help="Date in YYYY-MM-DD, defaults to today.")
@click.option("--description", default=None, help="Free text description.")
@click.option(
    "--category-id",
    "category_ids",
    type=int,
    multiple=True,
    help="Category id; repeat for several categories.",
)
@click.pass_context
def add_transaction(
    ctx: click.Context,
    type_name: str,
    amount_value: str,
    date_value: str | None,
    description: str | None,
    category_ids: tuple[int, ...],
) -> None:
    """Add an income or expense transaction.

    Examples:
        expensesync transaction add --type expense --amount 12.50 --category-id 1
    """
    amount = parse_decimal(amount_value, "--amount")
    date = parse_date(date_value, "--date") or today()
    try:
        dto = TransactionDTO(
            type=type_name,
            amount=amount,
            date=date,
            description=description,
            category_ids=category_ids,
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc

    with get_client(ctx) as client:
        try:
            record = client.add_transaction(dto)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Added transaction {record.id}: {dto.type} {record.amount} on {record.date}")


@transaction.command("list")
@click.option("--limit", type=int, default=None, help="Show at most this many rows.")
@click.pass_context
def list_transactions(ctx: click.Context, limit: int | None) -> None:
    """List transactions, newest first."""
    with get_client(ctx) as client:
        transactions = client.list_transactions()
        types = {record.id: record.name for record in client.list_transaction_types()}
        categories = {record.id: record.name for record in client.list_categories()}

    if limit is not None:
        transactions = transactions[:limit]
    if not transactions:
        click.echo("No transactions found.")
        return

    click.echo("\nTransactions:")
    click.echo("-" * 90)
    click.echo(f"{'ID':<6} {'Date':<20} {'Type':<8} {'Amount':>12}  {'Description':<20} Categories")
    click.echo("-" * 90)
    for record in transactions:
        names = ", ".join(categories.get(cid, str(cid)) for cid in record.category_ids)
        click.echo(
            f"{record.id:<6} {record.date:<20} {types.get(record.type_id, '?'):<8} "
            f"{record.amount:>12}  {(record.description or '')[:20]:<20} {names}"
        )
    click.echo("-" * 90)


@transaction.command("delete")
@click.option("--id", "transaction_id", required=True, type=int, help="Transaction id.")
@click.option("--yes", is_flag=True, help="Skip confirmation.")
@click.pass_context
def delete_transaction(ctx: click.Context, transaction_id: int, yes: bool) -> None:
    """Delete a transaction and its category links."""
    if not yes:
        click.confirm(f"Delete transaction {transaction_id}?", abort=True)
    with get_client(ctx) as client:
        try:
            client.delete_transaction(transaction_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted transaction {transaction_id}")
