"""Interactive login flows that store ChatGPT OAuth tokens for an account."""

import webbrowser
from typing import Annotated

import typer
from structlog import get_logger

from oa_accounts.auth import BrowserLoginFlow, parse_token_claims
from oa_accounts.cli.context import AppContext, get_context
from oa_accounts.cli.helpers import console, run_async
from oa_accounts.domain import AuthMethod, OAuthTokens, oauth_secret_key


app = typer.Typer(name="login", help="Start account login flows", no_args_is_help=True)

logger = get_logger(__name__)


AccountOption = Annotated[
    str,
    typer.Option(
        "--account",
        "-a",
        help="Account ID (0 or empty auto-assigns the next free id)",
    ),
]


async def store_login(ctx: AppContext, account_id: str, tokens: OAuthTokens) -> None:
    """Save tokens for an account and adopt the name and plan from its id token."""
    await ctx.credentials.set_auth(
        account_id,
        AuthMethod.CHATGPT,
        oauth_secret_key(account_id),
        tokens.to_secret(),
    )

    claims = parse_token_claims(tokens.id_token)
    if claims.email:
        await ctx.credentials.set_account_name(account_id, claims.email)
    if claims.plan_type:
        await ctx.credentials.set_account_plan_type(account_id, claims.plan_type)
    logger.info("account_logged_in", account_id=account_id)


@app.command(name="browser")
def login_browser(
    account_id: AccountOption = "0",
    no_browser: Annotated[
        bool,
        typer.Option("--no-browser", help="Print the URL without opening a browser"),
    ] = False,
) -> None:
    """Sign in through the browser using the authorization code flow."""
    ctx = get_context()

    def _show_url(url: str) -> None:
        console.print("Open this URL to authenticate:")
        console.print(f"[cyan]{url}[/cyan]", soft_wrap=True)

    async def _login() -> str:
        resolved = await ctx.credentials.resolve_account_id(account_id)
        flow = BrowserLoginFlow(
            ctx.oauth_client,
            open_browser=(lambda _url: False) if no_browser else webbrowser.open,
        )
        console.print(f"Signing in account [bold]{resolved}[/bold]...")
        tokens = await flow.run(on_url=_show_url)
        await store_login(ctx, resolved, tokens)
        return resolved

    resolved = run_async(_login())
    console.print(f"[green]Authenticated account {resolved}[/green]")


@app.command(name="device")
def login_device(account_id: AccountOption = "0") -> None:
    """Sign in from another device using a one-time user code."""
    ctx = get_context()

    async def _login() -> str:
        resolved = await ctx.credentials.resolve_account_id(account_id)
        client = ctx.device_flow()
        device = await client.request_device_code()
        console.print(f"Open [cyan]{device.verification_url}[/cyan]")
        console.print(
            f"and enter the code [bold yellow]{device.user_code}[/bold yellow]"
        )
        with console.status("Waiting for authorization..."):
            tokens = await client.poll_token(device.device_code, device.poll_interval)
        await store_login(ctx, resolved, tokens)
        return resolved

    resolved = run_async(_login())
    console.print(f"[green]Authenticated account {resolved}[/green]")
