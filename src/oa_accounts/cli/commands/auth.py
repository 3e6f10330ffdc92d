"""Account authentication commands."""

from typing import Annotated

import typer

from oa_accounts.cli.context import get_context
from oa_accounts.cli.helpers import console, run_async
from oa_accounts.domain import AuthMethod


app = typer.Typer(
    name="auth", help="Manage account authentication", no_args_is_help=True
)


@app.command(name="set")
def set_auth(
    method: Annotated[
        AuthMethod, typer.Option("--method", "-m", help="Auth method")
    ],
    secret_key: Annotated[
        str, typer.Option("--secret-key", "-k", help="Secret store key")
    ],
    secret_value: Annotated[
        str,
        typer.Option(
            "--secret-value",
            help="Secret value",
            prompt=True,
            hide_input=True,
        ),
    ],
    account_id: Annotated[
        str,
        typer.Option(
            "--account",
            "-a",
            help="Account ID (0 or empty auto-assigns the next free id)",
        ),
    ] = "0",
) -> None:
    """Store auth material for an account and point the account at it."""
    ctx = get_context()

    async def _set() -> str:
        resolved = await ctx.credentials.resolve_account_id(account_id)
        await ctx.credentials.set_auth(resolved, method, secret_key, secret_value)
        return resolved

    resolved = run_async(_set())
    console.print(f"[green]Stored {method} auth for account {resolved}[/green]")


@app.command(name="rm")
def remove_auth(
    account_id: Annotated[str, typer.Option("--account", "-a", help="Account ID")],
) -> None:
    """Clear an account's auth and delete the secrets it referenced."""
    run_async(get_context().credentials.remove_auth(account_id))
    console.print(f"[green]Removed auth for account {account_id}[/green]")
