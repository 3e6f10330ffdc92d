"""Entry point for the ``oa`` command line."""

from typing import Annotated

import typer

from oa_accounts._version import __version__
from oa_accounts.cli.commands import accounts, auth, login, pool, run, usage
from oa_accounts.cli.helpers import console, print_error
from oa_accounts.config import ConfigurationError, get_settings
from oa_accounts.core.logging import setup_logging


app = typer.Typer(
    name="oa",
    help="Manage OpenAI accounts, credentials and account pools.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(accounts.app, name="account")
app.add_typer(auth.app, name="auth")
app.add_typer(login.app, name="login")
app.add_typer(pool.app, name="pool")
app.command(name="usage")(usage.usage)
app.command(
    name="run",
    context_settings={"allow_interspersed_args": False, "ignore_unknown_options": True},
)(run.run)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"oa {__version__}")
        raise typer.Exit()


@app.callback()
def app_main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log debug events to stderr")
    ] = False,
    json_logs: Annotated[
        bool, typer.Option("--json-logs", help="Render logs as JSON lines")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Configure logging from settings before any command runs."""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    setup_logging(
        level="DEBUG" if verbose else settings.logging.level,
        json_logs=json_logs or settings.logging.json_logs,
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
