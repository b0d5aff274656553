"""Entry point for the ``credpool`` command."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from credpool import __version__
from credpool.cli.commands import accounts
from credpool.config.settings import config_manager
from credpool.core.logging import setup_logging
from credpool.exceptions import ConfigurationError


app = typer.Typer(
    name="credpool",
    help="Credential pool and resilient dispatcher for rotating upstream API accounts",
    no_args_is_help=True,
)
app.add_typer(accounts.app, name="accounts")

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"credpool {__version__}")
        raise typer.Exit()


@app.callback()
def app_main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a TOML configuration file",
            envvar="CREDPOOL_CONFIG_FILE",
        ),
    ] = None,
    debug: Annotated[
        bool, typer.Option("--debug", help="Enable debug logging")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Load configuration and logging before any subcommand runs."""
    try:
        settings = config_manager.load_settings(config_path=config)
    except ConfigurationError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1) from e

    setup_logging(
        level="DEBUG" if debug else settings.log_level,
        json_logs=settings.json_logs,
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
