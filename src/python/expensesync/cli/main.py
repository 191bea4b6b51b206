"""ExpenseSync CLI entry point."""

from __future__ import annotations

from pathlib import Path

import click

from expensesync.__version__ import __version__
from expensesync.cli.auth import auth
from expensesync.cli.category import category
from expensesync.cli.sync import sync
from expensesync.cli.transaction import transaction


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="expensesync")
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    help="Path to the local ExpenseSync database.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help="Path to the JSON config file.",
)
@click.pass_context
def main(ctx: click.Context, db_path: Path | None, config_path: Path | None) -> None:
    """ExpenseSync CLI entry point."""
    ctx.obj = {
        "db_path": db_path,
        "config_path": config_path,
    }


main.add_command(auth)
main.add_command(category)
main.add_command(transaction)
main.add_command(sync)


if __name__ == "__main__":
    main()
