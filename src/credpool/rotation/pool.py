"""Credential pool for rotating upstream accounts.

Provides sticky or round-robin account selection, lazy recovery of
unhealthy accounts, rate-limit bookkeeping and persistence of the whole
pool through an :class:`~credpool.rotation.storage.AccountStore`.

Every method is synchronous, so each one is atomic with respect to other
coroutines on the same event loop. No locks are taken.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from structlog import get_logger

from credpool.core.system import now_ms
from credpool.rotation.accounts import Account, AccountsFile, AuthMethod, TokenGrant
from credpool.rotation.storage import AccountStore


logger = get_logger(__name__)


class SelectionStrategy(StrEnum):
    """Account selection policies."""

    STICKY = "sticky"
    ROUND_ROBIN = "round-robin"


def _iso(timestamp_ms: int | None) -> str | None:
    if not timestamp_ms:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC).isoformat()


class AccountPool:
    """Ordered pool of accounts plus a selection cursor.

    The cursor is an index into the full account list and is always valid
    (``0 <= cursor < len(pool)``) while the pool is non-empty.
    """

    def __init__(
        self,
        store: AccountStore,
        strategy: SelectionStrategy | str = SelectionStrategy.ROUND_ROBIN,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._strategy = SelectionStrategy(strategy)
        self._clock = clock
        self._accounts: list[Account] = []
        self._cursor = 0

    @property
    def strategy(self) -> SelectionStrategy:
        return self._strategy

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def store(self) -> AccountStore:
        return self._store

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory pool with the stored snapshot."""
        accounts_file = self._store.load()
        self._accounts = list(accounts_file.accounts)
        if self._accounts:
            self._cursor = min(max(accounts_file.active_index, 0), len(self._accounts) - 1)
        else:
            self._cursor = 0

        logger.info(
            "account_pool_loaded",
            location=self._store.get_location(),
            count=len(self._accounts),
            cursor=self._cursor,
            strategy=str(self._strategy),
        )

    def save(self) -> None:
        """Persist every account and the cursor. Last writer wins."""
        accounts_file = AccountsFile(
            accounts=list(self._accounts),
            active_index=self._cursor,
        )
        self._store.save(accounts_file)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def count(self) -> int:
        return len(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def list_accounts(self) -> list[Account]:
        """Copies of all accounts in pool order."""
        return [account.snapshot() for account in self._accounts]

    def get(self, account_id: str) -> Account | None:
        account = self._find_live(account_id)
        return account.snapshot() if account else None

    def find(self, ref: str) -> Account | None:
        """Look up a copy of an account by id, falling back to an exact label match."""
        account = self._find_live(ref)
        if account is None:
            account = next((a for a in self._accounts if a.label == ref), None)
        return account.snapshot() if account else None

    def _find_live(self, account_id: str) -> Account | None:
        return next((a for a in self._accounts if a.id == account_id), None)

    def _index_of(self, account_id: str) -> int:
        for index, account in enumerate(self._accounts):
            if account.id == account_id:
                return index
        return -1

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @staticmethod
    def _has_recovered(account: Account, now: int) -> bool:
        return (
            not account.is_healthy
            and account.recovery_time is not None
            and now >= account.recovery_time
        )

    def _is_available(self, account: Account, now: int) -> bool:
        healthy = account.is_healthy or self._has_recovered(account, now)
        return healthy and not account.is_rate_limited(now)

    def _recover(self, account: Account, now: int) -> None:
        if self._has_recovered(account, now):
            logger.info(
                "account_recovered",
                account_id=account.id,
                label=account.label,
                reason=account.unhealthy_reason,
            )
            account.is_healthy = True
            account.unhealthy_reason = None
            account.recovery_time = None

    def _candidate_order(self) -> list[int]:
        size = len(self._accounts)
        if self._strategy == SelectionStrategy.STICKY:
            return [self._cursor, *range(size)]
        return [(self._cursor + offset) % size for offset in range(size)]

    def select_account(self) -> Account | None:
        """Pick the next available account according to the strategy.

        Unhealthy accounts whose recovery time has passed are restored as a
        side effect. Returns the live account record, or ``None`` when no
        account is currently available.
        """
        if not self._accounts:
            return None

        now = self._clock()
        for index in self._candidate_order():
            account = self._accounts[index]
            self._recover(account, now)
            if account.is_rate_limited(now) or not account.is_healthy:
                continue

            if self._strategy == SelectionStrategy.STICKY:
                self._cursor = index
            else:
                self._cursor = (index + 1) % len(self._accounts)
            account.last_used = now
            logger.debug(
                "account_selected",
                account_id=account.id,
                label=account.label,
                strategy=str(self._strategy),
                cursor=self._cursor,
            )
            return account

        logger.warning(
            "no_account_available",
            total=len(self._accounts),
            rate_limited=sum(1 for a in self._accounts if a.is_rate_limited(now)),
            unhealthy=sum(1 for a in self._accounts if not a.is_healthy),
        )
        return None

    def min_wait_time(self) -> int:
        """Milliseconds until the earliest rate limit expires, or 0 if none is pending."""
        now = self._clock()
        waits = [
            account.rate_limit_reset_time - now
            for account in self._accounts
            if account.rate_limit_reset_time - now > 0
        ]
        return min(waits, default=0)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add(self, account: Account) -> None:
        """Add an account, or replace the one with the same id in place."""
        index = self._index_of(account.id)
        if index >= 0:
            self._accounts[index] = account
            logger.info("account_replaced", account_id=account.id, label=account.label)
        else:
            self._accounts.append(account)
            logger.info("account_added", account_id=account.id, label=account.label)

    def remove(self, account_or_id: Account | str) -> bool:
        """Remove an account by id.

        Returns:
            True if removed (False if not found)
        """
        account_id = (
            account_or_id.id if isinstance(account_or_id, Account) else account_or_id
        )
        index = self._index_of(account_id)
        if index < 0:
            logger.warning("account_not_found", account_id=account_id)
            return False

        del self._accounts[index]

        if not self._accounts:
            self._cursor = 0
        elif self._cursor >= len(self._accounts):
            self._cursor = len(self._accounts) - 1
        elif index <= self._cursor and self._cursor > 0:
            self._cursor -= 1

        logger.info("account_removed", account_id=account_id, cursor=self._cursor)
        return True

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _live(self, account: Account, event: str) -> Account | None:
        live = self._find_live(account.id)
        if live is None:
            logger.warning(event, account_id=account.id)
        return live

    def mark_rate_limited(self, account: Account, duration_ms: int) -> None:
        live = self._live(account, "unknown_account_rate_limited")
        if live is None:
            return
        live.rate_limit_reset_time = self._clock() + duration_ms
        logger.info(
            "account_rate_limited",
            account_id=live.id,
            label=live.label,
            reset_at=_iso(live.rate_limit_reset_time),
            duration_ms=duration_ms,
        )

    def mark_unhealthy(self, account: Account, reason: str, recovery_at: int) -> None:
        live = self._live(account, "unknown_account_marked_unhealthy")
        if live is None:
            return
        live.is_healthy = False
        live.unhealthy_reason = reason
        live.recovery_time = recovery_at
        logger.warning(
            "account_marked_unhealthy",
            account_id=live.id,
            label=live.label,
            reason=reason,
            recovery_at=_iso(recovery_at),
        )

    def mark_available(self, account: Account) -> None:
        """Clear health and rate-limit state, e.g. after a manual reset."""
        live = self._live(account, "unknown_account_mark_available")
        if live is None:
            return
        live.is_healthy = True
        live.unhealthy_reason = None
        live.recovery_time = None
        live.rate_limit_reset_time = 0
        logger.info("account_marked_available", account_id=live.id, label=live.label)

    def update_credential(self, account: Account, grant: TokenGrant) -> None:
        """Apply a refreshed credential to the live account record."""
        live = self._live(account, "unknown_account_credential_update")
        if live is None:
            return

        live.static_key = grant.static_key
        if live.auth_method == AuthMethod.OAUTH:
            live.access_token = grant.access_token or live.access_token
            live.expires_at = grant.expires_at
            if grant.refresh_token:
                live.refresh_token = grant.refresh_token
        if grant.label:
            live.label = grant.label
        live.last_used = self._clock()

        logger.info(
            "account_credential_updated",
            account_id=live.id,
            label=live.label,
            expires_at=_iso(live.expires_at),
            refresh_token_rotated=bool(grant.refresh_token),
        )

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        """Get pool status for monitoring.

        Returns:
            Status dictionary with counts and account details
        """
        now = self._clock()
        return {
            "strategy": str(self._strategy),
            "cursor": self._cursor,
            "totalAccounts": len(self._accounts),
            "availableAccounts": sum(
                1 for a in self._accounts if self._is_available(a, now)
            ),
            "rateLimitedAccounts": sum(
                1 for a in self._accounts if a.is_rate_limited(now)
            ),
            "unhealthyAccounts": sum(
                1
                for a in self._accounts
                if not a.is_healthy and not self._has_recovered(a, now)
            ),
            "minWaitMs": self.min_wait_time(),
            "accounts": [self._account_status(a, now) for a in self._accounts],
        }

    def _account_status(self, account: Account, now: int) -> dict[str, Any]:
        return {
            "id": account.id,
            "label": account.label,
            "authMethod": str(account.auth_method),
            "available": self._is_available(account, now),
            "isHealthy": account.is_healthy,
            "unhealthyReason": account.unhealthy_reason,
            "recoveryTime": _iso(account.recovery_time),
            "rateLimitedUntil": (
                _iso(account.rate_limit_reset_time)
                if account.is_rate_limited(now)
                else None
            ),
            "tokenExpiresAt": _iso(account.expires_at),
            "lastUsed": _iso(account.last_used),
        }
