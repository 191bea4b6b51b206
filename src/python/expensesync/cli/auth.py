"""Authentication CLI commands."""

from __future__ import annotations

import click

from expensesync.cli.common import get_client
from expensesync.exceptions import SyncError


@click.group()
def auth() -> None:
    """Account and session commands."""


@auth.command("login")
@click.option("--email", default=None, help="Account email, defaults to the last used one.")
@click.option("--password", prompt=True, hide_input=True, help="Account password.")
@click.pass_context
def login(ctx: click.Context, email: str | None, password: str) -> None:
    """Sign in and store the session."""
    with get_client(ctx) as client:
        email = email or client.last_email() or click.prompt("Email")
        try:
            session = client.login(email, password)
        except SyncError as exc:
            raise click.ClickException(f"Login failed: {exc.message}") from exc
    click.echo(f"Signed in as {session.email}")


@auth.command("register")
@click.option("--email", required=True, help="Account email.")
@click.option(
    "--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Account password."
)
@click.pass_context
def register(ctx: click.Context, email: str, password: str) -> None:
    """Create an account."""
    with get_client(ctx) as client:
        try:
            body = client.register(email, password)
        except SyncError as exc:
            raise click.ClickException(f"Registration failed: {exc.message}") from exc
    click.echo(body.get("message") or f"Registered {email}")


@auth.command("forgot-password")
@click.option("--email", required=True, help="Account email.")
@click.pass_context
def forgot_password(ctx: click.Context, email: str) -> None:
    """Send a password reset email."""
    with get_client(ctx) as client:
        try:
            message = client.forgot_password(email)
        except SyncError as exc:
            raise click.ClickException(exc.message) from exc
    click.echo(message)


@auth.command("logout")
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Forget the stored session."""
    with get_client(ctx) as client:
        client.logout()
    click.echo("Signed out")


@auth.command("whoami")
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show the signed-in user."""
    with get_client(ctx) as client:
        session = client.current_session()
    if session is None:
        click.echo("Not signed in.")
        return
    click.echo(f"{session.email} ({session.user_id})")
