"""Multi-account rotation for credpool.

Provides the credential pool, token lifecycle and the resilient dispatcher
that fails over between accounts on rate limits, auth failures and server
errors.
"""

from credpool.rotation.accounts import (
    Account,
    AccountsFile,
    AuthMethod,
    TokenGrant,
    load_accounts,
    new_account_id,
    save_accounts,
)
from credpool.rotation.dispatcher import (
    DispatchState,
    OutboundRequest,
    Phase,
    RequestDispatcher,
    is_transient_network_error,
    parse_retry_after,
)
from credpool.rotation.pool import AccountPool, SelectionStrategy
from credpool.rotation.storage import AccountStore, JsonFileAccountStore
from credpool.rotation.token import TokenLifecycle, is_expired


__all__ = [
    "Account",
    "AccountPool",
    "AccountStore",
    "AccountsFile",
    "AuthMethod",
    "DispatchState",
    "JsonFileAccountStore",
    "OutboundRequest",
    "Phase",
    "RequestDispatcher",
    "SelectionStrategy",
    "TokenGrant",
    "TokenLifecycle",
    "is_expired",
    "is_transient_network_error",
    "load_accounts",
    "new_account_id",
    "parse_retry_after",
    "save_accounts",
]
