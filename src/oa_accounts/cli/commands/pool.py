"""Pool commands: activation, status and manual account rotation."""

from typing import Annotated

import typer
from structlog import get_logger

from oa_accounts.cli.context import AppContext, get_context
from oa_accounts.cli.helpers import (
    console,
    print_error,
    run_async,
    sanitize_for_terminal,
)
from oa_accounts.domain import DEFAULT_POOL_ID, Account
from oa_accounts.exceptions import NoEligibleAccountsError, PoolNotFoundError


app = typer.Typer(
    name="pool", help="Manage pooled provider accounts", no_args_is_help=True
)

logger = get_logger(__name__)


PoolOption = Annotated[str, typer.Option("--pool", "-p", help="Pool ID")]


def display_name(account: Account) -> str:
    return sanitize_for_terminal(account.name.strip() or account.id)


async def make_active(ctx: AppContext, pool_id: str, account: Account) -> None:
    """Record the account as active and hand its tokens to opencode."""
    await ctx.continuity.set_active_account_id(pool_id, account.id)
    synced = await ctx.opencode.sync_account(account.id)
    logger.info(
        "pool_account_switched",
        pool_id=pool_id,
        account_id=account.id,
        opencode_synced=synced,
    )


@app.command(name="activate")
def activate() -> None:
    """Activate the default OpenAI pool."""
    pool = run_async(get_context().pool_service.activate_default_pool())
    console.print(
        f"[green]Activated pool {pool.id}[/green] (members: {len(pool.members)})"
    )


@app.command(name="deactivate")
def deactivate(pool_id: PoolOption = DEFAULT_POOL_ID) -> None:
    """Deactivate a pool."""
    pool = run_async(get_context().pool_service.deactivate_pool(pool_id))
    console.print(f"[yellow]Deactivated pool {pool.id}[/yellow]")


@app.command(name="status")
def status(pool_id: PoolOption = DEFAULT_POOL_ID) -> None:
    """Show pool state, members and the active account."""
    ctx = get_context()

    async def _status() -> None:
        try:
            pool = await ctx.pool_service.get_pool(pool_id)
        except PoolNotFoundError:
            console.print(f"pool: {pool_id}")
            console.print("active: false")
            console.print("members: none")
            return

        by_id = {
            account.id: account for account in await ctx.credentials.list_accounts()
        }
        active = await ctx.continuity.get_active_account_id(pool_id)

        console.print(f"pool: {pool.id}")
        console.print(f"active: {str(pool.active).lower()}")
        if not pool.members:
            console.print("members: none")
        else:
            names = [
                display_name(by_id[member]) if member in by_id else member
                for member in pool.members
            ]
            console.print(f"members: {', '.join(names)}", markup=False)
        if active:
            console.print(f"active account: {active}")

    run_async(_status())


@app.command(name="next")
def next_account(pool_id: PoolOption = DEFAULT_POOL_ID) -> None:
    """Switch to the next eligible account."""
    ctx = get_context()

    async def _next() -> Account:
        current = await ctx.continuity.get_active_account_id(pool_id)
        account = await ctx.pool_service.next_account(pool_id, current)
        await make_active(ctx, pool_id, account)
        return account

    account = run_async(_next())
    console.print(f"Switched to account {account.id}")


@app.command(name="switch")
def switch_account(
    pool_id: PoolOption = DEFAULT_POOL_ID,
    selector: Annotated[
        str,
        typer.Option("--account", "-a", help="Target account ID or name"),
    ] = "",
) -> None:
    """Switch to a specific eligible account, prompting when none is given."""
    ctx = get_context()

    async def _eligible() -> list[Account]:
        return await ctx.pool_service.eligible_accounts(pool_id)

    if not selector.strip():
        eligible = run_async(_eligible())
        if not eligible:
            print_error(str(NoEligibleAccountsError(pool_id)))
            raise typer.Exit(1)
        for index, account in enumerate(eligible, start=1):
            console.print(f"{index}) {display_name(account)}", markup=False)
        choice = typer.prompt(f"Select account [1-{len(eligible)}]", type=int)
        if not 1 <= choice <= len(eligible):
            print_error(f"selection out of range: {choice}")
            raise typer.Exit(1)
        selector = eligible[choice - 1].id

    async def _switch() -> Account:
        account = await ctx.pool_service.switch_account(pool_id, selector)
        await make_active(ctx, pool_id, account)
        return account

    account = run_async(_switch())
    console.print(f"Switched to account {account.id}")
