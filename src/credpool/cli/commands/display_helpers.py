"""Display helpers for account commands.

Formats pool state for rich tables and summaries.
"""

from datetime import UTC, datetime
from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table

from credpool.rotation.accounts import Account


def format_time_remaining(expires_at: datetime, now: datetime | None = None) -> str:
    """Format time remaining until expiration.

    Args:
        expires_at: Expiration datetime
        now: Reference time, defaults to the current time

    Returns:
        Formatted string with time remaining or "Expired"
    """
    if now is None:
        now = datetime.now(UTC)
    time_diff = expires_at - now

    if time_diff.total_seconds() <= 0:
        return "[red]Expired[/red]"

    days = time_diff.days
    hours = (time_diff.seconds % 86400) // 3600
    minutes = (time_diff.seconds % 3600) // 60

    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _from_ms(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


def format_health(account: Account, now_ms: int) -> str:
    if account.is_healthy:
        return "[green]Healthy[/green]"
    if account.recovery_time is not None and now_ms >= account.recovery_time:
        return "[yellow]Recovering[/yellow]"
    reason = account.unhealthy_reason or "unhealthy"
    if account.recovery_time is None:
        return f"[red]{reason}[/red]"
    remaining = format_time_remaining(
        _from_ms(account.recovery_time), _from_ms(now_ms)
    )
    return f"[red]{reason}[/red] ({remaining})"


def format_rate_limit(account: Account, now_ms: int) -> str:
    if not account.is_rate_limited(now_ms):
        return "-"
    remaining = format_time_remaining(
        _from_ms(account.rate_limit_reset_time), _from_ms(now_ms)
    )
    return f"[yellow]{remaining}[/yellow]"


def format_token_expiry(account: Account, now_ms: int) -> str:
    if account.expires_at is None:
        return "[dim]n/a[/dim]"
    return format_time_remaining(_from_ms(account.expires_at), _from_ms(now_ms))


def build_accounts_table(accounts: list[Account], now_ms: int) -> Table:
    """Build the table shown by ``credpool accounts list``."""
    table = Table(title="Accounts", box=box.SIMPLE_HEAVY)
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Label", style="green")
    table.add_column("Method")
    table.add_column("Health")
    table.add_column("Rate limit")
    table.add_column("Token expires")

    for index, account in enumerate(accounts):
        table.add_row(
            str(index),
            account.id[:8],
            account.label or "-",
            str(account.auth_method),
            format_health(account, now_ms),
            format_rate_limit(account, now_ms),
            format_token_expiry(account, now_ms),
        )

    return table


def display_pool_status(console: Console, status: dict[str, Any], location: str) -> None:
    """Print the pool summary shown by ``credpool accounts status``."""
    console.print("\n[bold]Account pool[/bold]")
    console.print(f"  L Location: {location}")
    console.print(f"  L Strategy: {status['strategy']}")
    console.print(f"  L Total: {status['totalAccounts']}")
    console.print(f"  L Available: [green]{status['availableAccounts']}[/green]")
    console.print(f"  L Rate limited: [yellow]{status['rateLimitedAccounts']}[/yellow]")
    console.print(f"  L Unhealthy: [red]{status['unhealthyAccounts']}[/red]")
    if status["minWaitMs"]:
        console.print(f"  L Next rate limit clears in {status['minWaitMs'] / 1000:.1f}s")
    console.print()
