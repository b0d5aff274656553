"""Construction helpers wiring settings into rotation components."""

import httpx
from structlog import get_logger

from credpool.auth.oauth.token_exchange import OAuthTokenExchange
from credpool.config.settings import Settings
from credpool.rotation.dispatcher import RequestDispatcher
from credpool.rotation.pool import AccountPool
from credpool.rotation.storage import JsonFileAccountStore
from credpool.rotation.token import TokenLifecycle


logger = get_logger(__name__)


def create_pool(settings: Settings, *, load: bool = True) -> AccountPool:
    """Create the account pool backed by the configured accounts file."""
    store = JsonFileAccountStore(settings.accounts_path)
    pool = AccountPool(store, strategy=settings.account_selection_strategy)
    if load:
        pool.load()
    return pool


def create_dispatcher(
    settings: Settings,
    client: httpx.AsyncClient,
    pool: AccountPool | None = None,
) -> RequestDispatcher:
    """Wire pool, token lifecycle and dispatcher around a shared HTTP client.

    The caller owns ``client`` and is responsible for closing it.
    """
    if pool is None:
        pool = create_pool(settings)

    exchanger = OAuthTokenExchange(
        settings.oauth.to_oauth_config(settings.user_agent), client=client
    )
    lifecycle = TokenLifecycle(pool, exchanger)
    dispatcher = RequestDispatcher.from_settings(settings, pool, lifecycle, client)

    logger.info(
        "dispatcher_created",
        accounts=len(pool),
        strategy=str(pool.strategy),
        max_iterations=dispatcher.max_iterations,
        timeout_ms=dispatcher.timeout_ms,
    )
    return dispatcher
