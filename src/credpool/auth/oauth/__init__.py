"""OAuth refresh support for token-based accounts."""

from credpool.auth.oauth.token_exchange import (
    OAuthConfig,
    OAuthTokenExchange,
    TokenExchanger,
    fetch_user_info_async,
    refresh_token_async,
)


__all__ = [
    "OAuthConfig",
    "OAuthTokenExchange",
    "TokenExchanger",
    "fetch_user_info_async",
    "refresh_token_async",
]
