"""Tests for the OAuth refresh-grant exchange."""

import base64
from urllib.parse import parse_qs

import httpx
import pytest

from credpool.auth.oauth.token_exchange import (
    OAuthConfig,
    OAuthTokenExchange,
    refresh_token_async,
)
from credpool.exceptions import TokenExchangeError


TOKEN_URL = "https://auth.test/oauth/token"
USER_INFO_URL = "https://auth.test/api/oauth/getUserInfo"


def _config(**overrides) -> OAuthConfig:
    fields = {
        "token_url": TOKEN_URL,
        "user_info_url": USER_INFO_URL,
        "client_id": "client-1",
        "client_secret": "secret-1",
        "user_agent": "credpool-test",
    }
    fields.update(overrides)
    return OAuthConfig(**fields)


def _client(token_response: httpx.Response, user_info: httpx.Response | None = None):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/oauth/token":
            return token_response
        assert user_info is not None
        return user_info

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), seen


@pytest.mark.unit
class TestOAuthTokenExchange:
    @pytest.mark.asyncio
    async def test_refresh_with_user_info(self, clock) -> None:
        client, seen = _client(
            httpx.Response(
                200,
                json={
                    "access_token": "at-new",
                    "refresh_token": "rt-new",
                    "expires_in": 7200,
                },
            ),
            httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {"apiKey": "sk-from-info", "email": "me@example.com"},
                },
            ),
        )
        exchange = OAuthTokenExchange(_config(), client=client, clock=clock)

        grant = await exchange.exchange("rt-old")

        assert grant.static_key == "sk-from-info"
        assert grant.access_token == "at-new"
        assert grant.refresh_token == "rt-new"
        assert grant.label == "me@example.com"
        assert grant.expires_at == clock.now + 7_200_000

        token_request, info_request = seen
        assert token_request.method == "POST"
        assert token_request.headers["content-type"] == "application/x-www-form-urlencoded"
        form = parse_qs(token_request.content.decode())
        assert form == {
            "grant_type": ["refresh_token"],
            "refresh_token": ["rt-old"],
            "client_id": ["client-1"],
            "client_secret": ["secret-1"],
        }
        expected_auth = base64.b64encode(b"client-1:secret-1").decode()
        assert token_request.headers["authorization"] == f"Basic {expected_auth}"
        assert token_request.headers["user-agent"] == "credpool-test"
        assert info_request.url.params["accessToken"] == "at-new"

    @pytest.mark.asyncio
    async def test_access_token_is_key_without_user_info(self, clock) -> None:
        client, seen = _client(httpx.Response(200, json={"access_token": "at-new"}))
        exchange = OAuthTokenExchange(
            _config(user_info_url=None), client=client, clock=clock
        )

        grant = await exchange.exchange("rt-old")

        assert grant.static_key == "at-new"
        assert grant.refresh_token is None
        assert grant.label is None
        assert grant.expires_at == clock.now + 3_600_000
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        client, _ = _client(httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(TokenExchangeError) as exc_info:
            await refresh_token_async("rt-old", _config(), client)

        assert exc_info.value.status_code == 400
        assert "invalid_grant" in exc_info.value.response_text

    @pytest.mark.asyncio
    async def test_missing_access_token_raises(self) -> None:
        client, _ = _client(httpx.Response(200, json={"token_type": "bearer"}))

        with pytest.raises(TokenExchangeError, match="missing access_token"):
            await refresh_token_async("rt-old", _config(), client)

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self) -> None:
        client, _ = _client(httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(TokenExchangeError, match="invalid JSON"):
            await refresh_token_async("rt-old", _config(), client)

    @pytest.mark.asyncio
    async def test_unsuccessful_user_info_raises(self, clock) -> None:
        client, _ = _client(
            httpx.Response(200, json={"access_token": "at-new"}),
            httpx.Response(200, json={"success": False, "message": "token invalid"}),
        )
        exchange = OAuthTokenExchange(_config(), client=client, clock=clock)

        with pytest.raises(TokenExchangeError, match="not successful"):
            await exchange.exchange("rt-old")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expires_in", ["3600s", -5, 0, True, [3600]])
    async def test_malformed_expires_in_raises(self, clock, expires_in) -> None:
        client, _ = _client(
            httpx.Response(200, json={"access_token": "at-new", "expires_in": expires_in})
        )
        exchange = OAuthTokenExchange(
            _config(user_info_url=None), client=client, clock=clock
        )

        with pytest.raises(TokenExchangeError, match="invalid expires_in"):
            await exchange.exchange("rt-old")

    @pytest.mark.asyncio
    async def test_fractional_expires_in_is_truncated(self, clock) -> None:
        client, _ = _client(
            httpx.Response(200, json={"access_token": "at-new", "expires_in": 90.5})
        )
        exchange = OAuthTokenExchange(
            _config(user_info_url=None), client=client, clock=clock
        )

        grant = await exchange.exchange("rt-old")

        assert grant.expires_at == clock.now + 90_000
