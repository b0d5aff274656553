"""Token lifecycle for token-based accounts.

Decides when an account's access credential is stale and refreshes it
through a :class:`~credpool.auth.oauth.token_exchange.TokenExchanger`,
writing the result back into the pool.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx
from structlog import get_logger

from credpool.core.system import now_ms
from credpool.exceptions import TokenExchangeError, TokenRefreshError
from credpool.rotation.accounts import Account, AuthMethod, TokenGrant
from credpool.rotation.constants import TOKEN_EXPIRY_SKEW_MS
from credpool.rotation.pool import AccountPool


if TYPE_CHECKING:
    from credpool.auth.oauth.token_exchange import TokenExchanger


logger = get_logger(__name__)

EXPIRY_SKEW_MS = TOKEN_EXPIRY_SKEW_MS


def is_expired(expires_at: int, now: int | None = None) -> bool:
    """True once ``now`` is within the expiry skew of ``expires_at``."""
    if now is None:
        now = now_ms()
    return now >= expires_at - EXPIRY_SKEW_MS


class TokenLifecycle:
    """Refreshes expired credentials and records them in the pool."""

    def __init__(
        self,
        pool: AccountPool,
        exchanger: "TokenExchanger",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.pool = pool
        self.exchanger = exchanger
        self._clock = clock

    def needs_refresh(self, account: Account) -> bool:
        if account.auth_method != AuthMethod.OAUTH or account.expires_at is None:
            return False
        return is_expired(account.expires_at, self._clock())

    async def refresh(self, account: Account) -> TokenGrant:
        """Obtain a fresh credential for ``account`` without touching the pool.

        Static-key accounts have nothing to refresh and get their current
        credential back unchanged.

        Raises:
            TokenRefreshError: If the account has no refresh token or the
                exchange fails
        """
        if account.auth_method == AuthMethod.API_KEY:
            return TokenGrant(static_key=account.static_key, label=account.label or None)

        if not account.refresh_token:
            raise TokenRefreshError("No refresh token available", account_id=account.id)

        logger.info("token_refresh_started", account_id=account.id, label=account.label)
        try:
            grant = await self.exchanger.exchange(account.refresh_token)
        except (TokenExchangeError, httpx.HTTPError) as e:
            logger.warning(
                "token_refresh_failed",
                account_id=account.id,
                label=account.label,
                error=str(e),
            )
            raise TokenRefreshError(
                f"Token refresh failed for account '{account.display_name}': {e}",
                account_id=account.id,
            ) from e
        except Exception as e:
            # Exchangers are pluggable; any failure still only costs this account
            logger.error(
                "token_refresh_unexpected_error",
                account_id=account.id,
                label=account.label,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=e,
            )
            raise TokenRefreshError(
                f"Token refresh failed for account '{account.display_name}': "
                f"{type(e).__name__}: {e}",
                account_id=account.id,
            ) from e

        logger.info(
            "token_refresh_succeeded",
            account_id=account.id,
            label=grant.label or account.label,
            expires_at=grant.expires_at,
        )
        return grant

    async def refresh_account(self, account: Account) -> TokenGrant:
        """Refresh ``account`` and persist the new credential."""
        grant = await self.refresh(account)
        self.pool.update_credential(account, grant)
        self.pool.save()
        return grant
