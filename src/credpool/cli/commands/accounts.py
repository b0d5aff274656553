"""Account pool management commands."""

import asyncio
from typing import Annotated

import httpx
import orjson
import typer
from rich.console import Console

from credpool.auth.apikey import validate_api_key
from credpool.cli.commands.display_helpers import (
    build_accounts_table,
    display_pool_status,
)
from credpool.config.settings import Settings, get_settings
from credpool.core.system import now_ms
from credpool.exceptions import (
    AccountNotFoundError,
    ApiKeyValidationError,
    ConfigurationError,
)
from credpool.rotation.accounts import Account
from credpool.rotation.constants import DEFAULT_HTTP_TIMEOUT_SECONDS
from credpool.rotation.pool import AccountPool
from credpool.rotation.startup import create_pool


app = typer.Typer(name="accounts", help="Manage the upstream account pool")

console = Console()


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ConfigurationError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1) from e


def get_pool(settings: Settings | None = None) -> AccountPool:
    """Load the account pool described by the active settings."""
    if settings is None:
        settings = _load_settings()

    try:
        return create_pool(settings)
    except (ValueError, orjson.JSONDecodeError, OSError) as e:
        console.print(
            f"[red]Cannot read accounts from {settings.accounts_path}: {e}[/red]"
        )
        raise typer.Exit(1) from e


def _validation_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT_SECONDS)


async def _validate_key(api_key: str, settings: Settings) -> None:
    async with _validation_client() as client:
        await validate_api_key(
            api_key,
            base_url=settings.base_url,
            user_agent=settings.user_agent,
            client=client,
        )


def _resolve(pool: AccountPool, ref: str) -> Account:
    account = pool.find(ref)
    if account is None:
        console.print(f"[red]{AccountNotFoundError(ref).message}[/red]")
        raise typer.Exit(1)
    return account


def _save(pool: AccountPool) -> None:
    try:
        pool.save()
    except OSError as e:
        console.print(f"[red]Failed to save accounts: {e}[/red]")
        raise typer.Exit(1) from e


@app.command("list")
def list_accounts() -> None:
    """List all accounts in pool order."""
    pool = get_pool()
    accounts = pool.list_accounts()

    if not accounts:
        console.print("[yellow]No accounts configured.[/yellow]")
        console.print("Add one with: credpool accounts add-key --key <API_KEY>")
        return

    console.print(build_accounts_table(accounts, now_ms()))


@app.command("status")
def status() -> None:
    """Show a summary of pool health."""
    pool = get_pool()
    display_pool_status(console, pool.get_status(), pool.store.get_location())


@app.command("add-key")
def add_key(
    key: Annotated[str, typer.Option("--key", "-k", help="Upstream API key")],
    label: Annotated[
        str, typer.Option("--label", "-l", help="Display name for the account")
    ] = "",
    validate: Annotated[
        bool,
        typer.Option(
            "--validate/--no-validate",
            help="Check the key against the upstream API before storing it",
        ),
    ] = True,
) -> None:
    """Add a static API-key account."""
    settings = _load_settings()
    pool = get_pool(settings)

    try:
        account = Account.from_api_key(key.strip(), label=label)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    if validate:
        try:
            asyncio.run(_validate_key(account.static_key, settings))
        except ApiKeyValidationError as e:
            console.print(f"[red]{e.message}[/red]")
            if not e.rejected:
                console.print(
                    "Re-run with --no-validate to store the key without checking it."
                )
            raise typer.Exit(1) from e

    pool.add(account)
    _save(pool)

    console.print(
        f"[green]Added account[/green] [bold]{account.display_name}[/bold] "
        f"([cyan]{account.id}[/cyan]). Pool now has {len(pool)} account(s)."
    )


@app.command("remove")
def remove(
    ref: Annotated[str, typer.Argument(help="Account id or label")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation")
    ] = False,
) -> None:
    """Remove an account from the pool."""
    pool = get_pool()
    account = _resolve(pool, ref)

    if not force and not typer.confirm(f"Remove account {account.display_name}?"):
        raise typer.Abort()

    pool.remove(account)
    _save(pool)
    console.print(f"[green]Account {account.display_name} has been removed.[/green]")


@app.command("reset")
def reset(
    ref: Annotated[str, typer.Argument(help="Account id or label")],
) -> None:
    """Clear an account's health and rate-limit state."""
    pool = get_pool()
    account = _resolve(pool, ref)

    pool.mark_available(account)
    _save(pool)
    console.print(f"[green]Account {account.display_name} is available again.[/green]")
