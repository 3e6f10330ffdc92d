"""Rich tables for account status."""

from datetime import datetime, timedelta

from rich import box
from rich.table import Table

from oa_accounts.cli.helpers import sanitize_for_terminal
from oa_accounts.domain import Account, LimitSnapshot, compact_number


def _format_limit(
    snapshot: LimitSnapshot | None, now: datetime, stale_after: timedelta
) -> str:
    if snapshot is None:
        return "[dim]-[/dim]"
    percent = f"{snapshot.percent:.0f}%"
    if snapshot.percent >= 100:
        percent = f"[red]{percent}[/red]"
    elif snapshot.percent >= 80:
        percent = f"[yellow]{percent}[/yellow]"
    if snapshot.is_stale(now, stale_after):
        percent += " [dim](stale)[/dim]"
    return percent


def _format_reset(snapshot: LimitSnapshot | None) -> str:
    if snapshot is None or snapshot.resets_at is None:
        return "-"
    return snapshot.resets_at.astimezone().strftime("%Y-%m-%d %H:%M")


def accounts_table(
    accounts: list[Account],
    now: datetime,
    stale_after: timedelta,
    active_account_id: str = "",
) -> Table:
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Accounts",
        title_style="bold white",
    )
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Auth")
    table.add_column("Plan")
    table.add_column("Daily", justify="right")
    table.add_column("Weekly", justify="right")
    table.add_column("Weekly reset")
    table.add_column("Tokens", justify="right")

    for account in accounts:
        marker = " *" if account.id == active_account_id else ""
        table.add_row(
            account.id + marker,
            sanitize_for_terminal(account.name) or "-",
            str(account.auth.method) if account.auth.method else "-",
            account.metadata.plan_type or "-",
            _format_limit(account.limits.daily, now, stale_after),
            _format_limit(account.limits.weekly, now, stale_after),
            _format_reset(account.limits.weekly),
            compact_number(account.usage.blended_total),
        )
    return table
