"""Fetch rate-limit usage for accounts."""

import asyncio
import signal
from contextlib import suppress
from datetime import UTC, datetime
from typing import Annotated

import typer
from rich.markup import escape

from oa_accounts.cli.context import get_context
from oa_accounts.cli.helpers import console, err_console, run_async
from oa_accounts.cli.render import accounts_table
from oa_accounts.domain import DEFAULT_POOL_ID
from oa_accounts.services import UsageFetchReport


def usage(
    account_id: Annotated[
        str | None,
        typer.Option("--account", "-a", help="Only refresh this account"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Ignore recently captured snapshots"),
    ] = False,
) -> None:
    """Refresh and show daily and weekly usage limits."""
    ctx = get_context()

    async def _refresh() -> UsageFetchReport:
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        # Ctrl-C abandons pending fetches and keeps completed ones.
        with suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        try:
            with console.status("Fetching usage..."):
                return await ctx.usage_fetcher().refresh_all(
                    [account_id] if account_id else None,
                    force=force,
                    cancel_event=cancel_event,
                )
        finally:
            with suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)

    report = run_async(_refresh())

    for failed_id, error in report.failures:
        err_console.print(f"[yellow]Account {failed_id}: {escape(str(error))}[/yellow]")

    async def _load():
        accounts = await ctx.credentials.list_accounts()
        if account_id:
            accounts = [account for account in accounts if account.id == account_id]
        active = await ctx.continuity.get_active_account_id(DEFAULT_POOL_ID)
        return accounts, active

    accounts, active = run_async(_load())
    console.print(
        accounts_table(
            accounts,
            datetime.now(UTC),
            ctx.settings.usage.stale_after,
            active_account_id=active,
        )
    )
