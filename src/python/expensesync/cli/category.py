"""Category CLI commands."""

from __future__ import annotations

import click

from expensesync.cli.common import get_client
from expensesync.exceptions import DuplicateError, NotFoundError
from expensesync.models import CategoryDTO


@click.group()
def category() -> None:
    """Category commands."""


@category.command("list")
@click.pass_context
def list_categories(ctx: click.Context) -> None:
    """List all categories.

    Examples:
        expensesync category list
    """
    with get_client(ctx) as client:
        categories = client.list_categories()

        if not categories:
            click.echo("No categories found.")
            return

        click.echo("\nCategories:")
        click.echo("-" * 60)
        click.echo(f"{'ID':<6} {'Name':<40} {'Color':<10}")
        click.echo("-" * 60)

        for record in categories:
            click.echo(f"{record.id:<6} {record.name:<40} {record.color:<10}")

        click.echo("-" * 60)


@category.command("add")
@click.option("--name", required=True, help="Category name.")
@click.option("--color", default=None, help="Hex color, defaults to #000000.")
@click.pass_context
def add_category(ctx: click.Context, name: str, color: str | None) -> None:
    """Add a category.

    Examples:
        expensesync category add --name Groceries --color "#4caf50"
    """
    try:
        dto = CategoryDTO(name=name, color=color)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    with get_client(ctx) as client:
        try:
            record = client.add_category(dto)
        except DuplicateError as exc:
            raise click.ClickException(f"{exc}: {exc.details['name']}") from exc
    click.echo(f"Added category {record.id}: {record.name}")


@category.command("delete")
@click.option("--id", "category_id", required=True, type=int, help="Category id.")
@click.option("--yes", is_flag=True, help="Skip confirmation.")
@click.pass_context
def delete_category(ctx: click.Context, category_id: int, yes: bool) -> None:
    """Delete a category and unlink it from transactions."""
    if not yes:
        click.confirm(f"Delete category {category_id}?", abort=True)
    with get_client(ctx) as client:
        try:
            client.delete_category(category_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted category {category_id}")
