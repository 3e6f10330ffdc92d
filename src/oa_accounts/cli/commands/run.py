"""Run a command under the pool's active account and a stable session id."""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer
from structlog import get_logger

from oa_accounts.cli.context import AppContext, get_context
from oa_accounts.cli.helpers import print_error, run_async
from oa_accounts.domain import DEFAULT_POOL_ID
from oa_accounts.services.opencode_sync import should_sync_opencode_auth


logger = get_logger(__name__)

DEFAULT_WINDOW_FINGERPRINT = "default"


@dataclass
class RunEnvironment:
    pool_id: str
    account_id: str
    logical_session_id: str
    provider_session_id: str
    bootstrapped: bool

    def as_env(self) -> dict[str, str]:
        return {
            "OA_POOL_ID": self.pool_id,
            "OA_ACTIVE_ACCOUNT": self.account_id,
            "OA_LOGICAL_SESSION_ID": self.logical_session_id,
            "OA_PROVIDER_SESSION_ID": self.provider_session_id,
        }


async def prepare_run(
    ctx: AppContext,
    pool_id: str,
    workspace_root: str,
    window_fingerprint: str,
) -> RunEnvironment:
    """Pick the account and provider session a child command runs under.

    The recorded active account is kept while it stays eligible; otherwise
    the pool picks the least weekly-used one.
    """
    picked = ""
    active = await ctx.continuity.get_active_account_id(pool_id)
    if active and await ctx.pool_service.is_eligible_account(pool_id, active):
        picked = active
    if not picked:
        account, _ = await ctx.pool_service.pick_account(pool_id)
        picked = account.id

    await ctx.continuity.set_active_account_id(pool_id, picked)

    logical_session_id = ctx.continuity.resolve_logical_session_id(
        workspace_root, window_fingerprint
    )
    provider_session_id, bootstrapped = (
        await ctx.continuity.get_or_attach_account_session(
            pool_id, logical_session_id, picked
        )
    )
    return RunEnvironment(
        pool_id=pool_id,
        account_id=picked,
        logical_session_id=logical_session_id,
        provider_session_id=provider_session_id,
        bootstrapped=bootstrapped,
    )


def run(
    command: Annotated[
        list[str], typer.Argument(help="Command and arguments, after '--'")
    ],
    pool_id: Annotated[
        str, typer.Option("--pool", "-p", help="Pool ID")
    ] = DEFAULT_POOL_ID,
) -> None:
    """Run a command with pool-selected account environment variables."""
    ctx = get_context()
    workspace_root = os.path.normpath(os.getcwd())
    window_fingerprint = (
        os.environ.get("OA_WINDOW_FINGERPRINT") or DEFAULT_WINDOW_FINGERPRINT
    )

    async def _prepare() -> RunEnvironment:
        environment = await prepare_run(
            ctx, pool_id, workspace_root, window_fingerprint
        )
        if should_sync_opencode_auth(command[0]):
            await ctx.opencode.sync_account(environment.account_id)
        return environment

    environment = run_async(_prepare())
    logger.info(
        "run_command_starting",
        command=Path(command[0]).name,
        pool_id=pool_id,
        account_id=environment.account_id,
        bootstrapped=environment.bootstrapped,
    )

    try:
        result = subprocess.run(
            command, env={**os.environ, **environment.as_env()}, check=False
        )
    except FileNotFoundError as e:
        print_error(f"command not found: {command[0]}")
        raise typer.Exit(127) from e
    except KeyboardInterrupt:
        raise typer.Exit(130) from None
    raise typer.Exit(result.returncode)
