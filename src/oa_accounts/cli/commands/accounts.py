"""Account management commands."""

from datetime import UTC, datetime
from typing import Annotated

import typer

from oa_accounts.cli.context import get_context
from oa_accounts.cli.helpers import console, run_async
from oa_accounts.cli.render import accounts_table
from oa_accounts.domain import DEFAULT_POOL_ID


app = typer.Typer(name="account", help="Manage accounts", no_args_is_help=True)


AccountOption = Annotated[str, typer.Option("--account", "-a", help="Account ID")]


@app.command(name="list")
def list_accounts() -> None:
    """List configured accounts with their latest limit snapshots."""
    ctx = get_context()

    async def _list() -> None:
        accounts = await ctx.credentials.list_accounts()
        if not accounts:
            console.print("[yellow]No accounts configured.[/yellow]")
            console.print("Run [cyan]oa login browser[/cyan] to add one.")
            return
        active = await ctx.continuity.get_active_account_id(DEFAULT_POOL_ID)
        console.print(
            accounts_table(
                accounts,
                datetime.now(UTC),
                ctx.settings.usage.stale_after,
                active_account_id=active,
            )
        )

    run_async(_list())


@app.command(name="rm")
def remove_account(
    account_id: AccountOption,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation")
    ] = False,
) -> None:
    """Remove an account and delete its stored secrets."""
    if not force and not typer.confirm(f"Remove account {account_id}?"):
        raise typer.Abort()

    run_async(get_context().credentials.remove_account(account_id))
    console.print(f"[green]Removed account {account_id}[/green]")


@app.command(name="name")
def rename_account(
    account_id: AccountOption,
    name: Annotated[str, typer.Argument(help="New display name")],
) -> None:
    """Set an account's display name."""
    account = run_async(get_context().credentials.set_account_name(account_id, name))
    console.print(f"[green]Account {account.id} is now named {account.name}[/green]")


@app.command(name="plan")
def set_plan(
    account_id: AccountOption,
    plan_type: Annotated[str, typer.Argument(help="Plan type, e.g. plus or team")],
) -> None:
    """Override an account's plan type."""
    account = run_async(
        get_context().credentials.set_account_plan_type(account_id, plan_type)
    )
    console.print(
        f"[green]Account {account.id} plan set to {account.metadata.plan_type} "
        f"({account.classification})[/green]"
    )
