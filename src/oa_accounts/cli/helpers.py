"""Shared console and error handling for CLI commands."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from structlog import get_logger

from oa_accounts.exceptions import OAAccountsError


T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


def print_error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {escape(message)}")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a command coroutine, turning domain errors into exit status 1."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Cancelled by user.[/yellow]")
        raise typer.Exit(130) from None
    except OAAccountsError as e:
        logger.debug("command_failed", error=str(e), error_type=str(e.error_type))
        print_error(str(e))
        raise typer.Exit(1) from e


def sanitize_for_terminal(value: str) -> str:
    """Drop control characters from user-supplied text."""
    return "".join(ch for ch in value if ch.isprintable())
