"""credpool: credential pool and resilient dispatcher for upstream API accounts."""

from credpool.exceptions import (
    BudgetExceededError,
    CredPoolError,
    NetworkError,
    NoAccountsError,
    NoHealthyAccountError,
    TokenRefreshError,
    UpstreamError,
)
from credpool.rotation import (
    Account,
    AccountPool,
    JsonFileAccountStore,
    OutboundRequest,
    RequestDispatcher,
    SelectionStrategy,
    TokenLifecycle,
)


__version__ = "0.1.0"

__all__ = [
    "Account",
    "AccountPool",
    "BudgetExceededError",
    "CredPoolError",
    "JsonFileAccountStore",
    "NetworkError",
    "NoAccountsError",
    "NoHealthyAccountError",
    "OutboundRequest",
    "RequestDispatcher",
    "SelectionStrategy",
    "TokenLifecycle",
    "TokenRefreshError",
    "UpstreamError",
    "__version__",
]
