"""Sync CLI commands."""

from __future__ import annotations

import click

from expensesync.cli.common import echo_progress, get_client, report_result
from expensesync.exceptions import SyncError


@click.group()
def sync() -> None:
    """Sync commands."""


@sync.command("status")
@click.option("--refresh", is_flag=True, help="Bypass the cached cloud status.")
@click.pass_context
def status(ctx: click.Context, refresh: bool) -> None:
    """Compare local and cloud data."""
    with get_client(ctx) as client:
        local = client.local_stats()
        cloud = client.sync_status(force_refresh=refresh)
        state = client.sync_state()

    click.echo(f"Local: {local.categories_count} categories, {local.transactions_count} transactions")
    if cloud.success and cloud.status is not None:
        last_sync = cloud.status.last_sync.isoformat() if cloud.status.last_sync else "never"
        click.echo(
            f"Cloud: {cloud.status.categories_count} categories, "
            f"{cloud.status.transactions_count} transactions (last sync: {last_sync})"
        )
    else:
        click.echo(f"Cloud: unavailable ({cloud.error})")
        if cloud.needs_auth:
            click.echo("Run 'expensesync auth login' to sign in.")
    click.echo(f"State: {state.state} - {state.message}")


@sync.command("upload")
@click.option("--background", is_flag=True, help="Run as a server background job.")
@click.pass_context
def upload(ctx: click.Context, background: bool) -> None:
    """Upload local data to the cloud."""
    with get_client(ctx) as client:
        result = client.upload(echo_progress, background=True if background else None)
    report_result(result)


@sync.command("download")
@click.option("--yes", is_flag=True, help="Skip confirmation.")
@click.pass_context
def download(ctx: click.Context, yes: bool) -> None:
    """Replace local data with the cloud copy."""
    if not yes:
        click.confirm("This replaces all local categories and transactions. Continue?", abort=True)
    with get_client(ctx) as client:
        result = client.download(echo_progress)
    report_result(result)


@sync.command("full")
@click.option("--background", is_flag=True, help="Run as a server background job.")
@click.pass_context
def full(ctx: click.Context, background: bool) -> None:
    """Upload local data and apply the merged cloud copy."""
    with get_client(ctx) as client:
        result = client.full_sync(echo_progress, background=True if background else None)
    report_result(result)


@sync.command("jobs")
@click.option("--limit", type=int, default=10, show_default=True, help="Number of jobs.")
@click.pass_context
def jobs(ctx: click.Context, limit: int) -> None:
    """Show recent background sync jobs."""
    with get_client(ctx) as client:
        try:
            history = client.job_history(limit)
        except SyncError as exc:
            raise click.ClickException(exc.user_message) from exc

    if not history:
        click.echo("No sync jobs found.")
        return
    click.echo(f"{'ID':<38} {'Type':<10} {'Status':<11} {'Progress':>8}  Created")
    for job in history:
        click.echo(
            f"{job.id:<38} {job.type:<10} {job.status:<11} {job.progress:>7}%  {job.created_at or ''}"
        )
