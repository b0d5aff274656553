"""OAuth refresh-grant exchange.

The token endpoint takes the standard OAuth 2.0 form-encoded body with the
client credentials sent both as HTTP Basic auth and as form fields. When a
user-info endpoint is configured, the fresh access token is traded for the
account's long-lived API key and email; otherwise the access token itself is
the key sent upstream.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from structlog import get_logger

from credpool.core.system import now_ms
from credpool.exceptions import TokenExchangeError
from credpool.rotation.accounts import TokenGrant
from credpool.rotation.constants import DEFAULT_TOKEN_EXPIRY_SECONDS

from .constants import (
    OAUTH_CLIENT_ID,
    OAUTH_CLIENT_SECRET,
    OAUTH_TIMEOUT_SECONDS,
    OAUTH_TOKEN_URL,
    OAUTH_USER_AGENT,
    OAUTH_USER_INFO_URL,
)


logger = get_logger(__name__)


@dataclass
class OAuthConfig:
    """OAuth configuration with sensible defaults."""

    token_url: str = OAUTH_TOKEN_URL
    user_info_url: str | None = OAUTH_USER_INFO_URL
    client_id: str = OAUTH_CLIENT_ID
    client_secret: str = OAUTH_CLIENT_SECRET
    user_agent: str = OAUTH_USER_AGENT
    timeout: float = OAUTH_TIMEOUT_SECONDS


class TokenExchanger(Protocol):
    """Anything that can trade a refresh token for a fresh credential."""

    async def exchange(self, refresh_token: str) -> TokenGrant: ...


def _handle_error_response(response: httpx.Response, operation: str) -> None:
    """Handle error response and raise TokenExchangeError."""
    error_text = response.text[:500]
    logger.error(
        f"oauth_{operation}_failed",
        status=response.status_code,
        error=error_text,
    )
    raise TokenExchangeError(
        f"{operation} failed: {error_text}",
        status_code=response.status_code,
        response_text=error_text,
    )


def _parse_json(response: httpx.Response, operation: str) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as e:
        raise TokenExchangeError(
            f"{operation} returned invalid JSON",
            status_code=response.status_code,
            response_text=response.text[:500],
        ) from e
    if not isinstance(payload, dict):
        raise TokenExchangeError(
            f"{operation} returned unexpected payload type: {type(payload).__name__}",
            status_code=response.status_code,
        )
    return payload


def _expires_in_seconds(payload: dict[str, Any]) -> int:
    expires_in = payload.get("expires_in")
    if expires_in is None:
        return DEFAULT_TOKEN_EXPIRY_SECONDS
    # bool is an int subclass
    if (
        isinstance(expires_in, bool)
        or not isinstance(expires_in, int | float)
        or not math.isfinite(expires_in)
        or expires_in <= 0
    ):
        raise TokenExchangeError(
            f"token_refresh returned invalid expires_in: {expires_in!r}"
        )
    return int(expires_in)


async def _send(
    client: httpx.AsyncClient | None,
    config: OAuthConfig,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    headers = {"Accept": "application/json", "User-Agent": config.user_agent}
    if client is None:
        async with httpx.AsyncClient(timeout=config.timeout) as owned:
            return await owned.request(method, url, headers=headers, **kwargs)
    return await client.request(
        method, url, headers=headers, timeout=config.timeout, **kwargs
    )


async def refresh_token_async(
    refresh_token: str,
    config: OAuthConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Refresh access token (async).

    Args:
        refresh_token: Refresh token from previous token response
        config: OAuth configuration (uses defaults if not provided)
        client: Shared HTTP client; a short-lived one is created if omitted

    Returns:
        Token response dict with access_token, and optionally refresh_token
        and expires_in

    Raises:
        TokenExchangeError: If token refresh fails
    """
    if config is None:
        config = OAuthConfig()

    token_data = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": config.client_id,
        "client_secret": config.client_secret,
    }

    response = await _send(
        client,
        config,
        "POST",
        config.token_url,
        data=token_data,
        auth=httpx.BasicAuth(config.client_id, config.client_secret),
    )

    if response.status_code != 200:
        _handle_error_response(response, "token_refresh")

    payload = _parse_json(response, "token_refresh")
    if not payload.get("access_token"):
        raise TokenExchangeError(
            "token_refresh response missing access_token",
            status_code=response.status_code,
        )
    return payload


async def fetch_user_info_async(
    access_token: str,
    config: OAuthConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Look up the API key and identity bound to an access token.

    Returns:
        The ``data`` object of the user-info response, containing at least ``apiKey``

    Raises:
        TokenExchangeError: If the lookup fails or carries no API key
    """
    if config is None:
        config = OAuthConfig()
    if not config.user_info_url:
        raise TokenExchangeError("No user info URL configured")

    response = await _send(
        client,
        config,
        "GET",
        config.user_info_url,
        params={"accessToken": access_token},
    )

    if response.status_code != 200:
        _handle_error_response(response, "user_info")

    payload = _parse_json(response, "user_info")
    data = payload.get("data")
    if not payload.get("success", True) or not isinstance(data, dict):
        raise TokenExchangeError(
            "user_info request was not successful",
            status_code=response.status_code,
            response_text=response.text[:500],
        )
    if not data.get("apiKey"):
        raise TokenExchangeError(
            "user_info response missing apiKey", status_code=response.status_code
        )
    return data


class OAuthTokenExchange:
    """Trades refresh tokens for fresh credentials against an OAuth provider."""

    def __init__(
        self,
        config: OAuthConfig | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config or OAuthConfig()
        self._client = client
        self._clock = clock

    async def exchange(self, refresh_token: str) -> TokenGrant:
        payload = await refresh_token_async(refresh_token, self.config, self._client)

        access_token: str = payload["access_token"]
        expires_in = _expires_in_seconds(payload)
        expires_at = self._clock() + expires_in * 1000

        static_key = access_token
        label: str | None = None
        if self.config.user_info_url:
            info = await fetch_user_info_async(access_token, self.config, self._client)
            static_key = info["apiKey"]
            label = info.get("email") or info.get("phone") or None

        logger.debug(
            "oauth_token_exchanged",
            expires_in=expires_in,
            refresh_token_rotated=bool(payload.get("refresh_token")),
            has_user_info=label is not None,
        )

        return TokenGrant(
            static_key=static_key,
            expires_at=expires_at,
            refresh_token=payload.get("refresh_token"),
            access_token=access_token,
            label=label,
        )
