"""Tests for upstream API key validation."""

import httpx
import pytest

from credpool.auth.apikey import validate_api_key
from credpool.exceptions import ApiKeyValidationError


BASE_URL = "https://upstream.test/v1/"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestValidateApiKey:
    @pytest.mark.asyncio
    async def test_accepted_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": [{"id": "qwen3-max"}]})

        async with _client(handler) as client:
            await validate_api_key(
                "sk-good", base_url=BASE_URL, user_agent="agent/1", client=client
            )

        (request,) = seen
        assert request.method == "GET"
        assert str(request.url) == "https://upstream.test/v1/models"
        assert request.headers["authorization"] == "Bearer sk-good"
        assert request.headers["user-agent"] == "agent/1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_rejected_key(self, status_code: int) -> None:
        async with _client(lambda request: httpx.Response(status_code)) as client:
            with pytest.raises(ApiKeyValidationError, match="rejected") as exc_info:
                await validate_api_key("sk-bad", base_url=BASE_URL, client=client)

        assert exc_info.value.rejected is True
        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_other_status_is_not_a_rejection(self) -> None:
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(ApiKeyValidationError) as exc_info:
                await validate_api_key("sk-maybe", base_url=BASE_URL, client=client)

        assert exc_info.value.rejected is False
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_unreachable_upstream(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        async with _client(handler) as client:
            with pytest.raises(ApiKeyValidationError, match="Could not reach") as exc_info:
                await validate_api_key("sk-maybe", base_url=BASE_URL, client=client)

        assert exc_info.value.rejected is False
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
