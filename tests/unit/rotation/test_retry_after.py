"""Tests for retry-after parsing and transport error classification."""

import httpx
import pytest

from credpool.rotation.dispatcher import is_transient_network_error, parse_retry_after


# 2023-11-14T22:13:20Z
NOW_MS = 1_700_000_000_000


@pytest.mark.unit
class TestParseRetryAfter:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("5", 5),
            ("0", 0),
            (" 12 ", 12),
            ("1.2", 2),
        ],
    )
    def test_delta_seconds(self, value: str, expected: int) -> None:
        assert parse_retry_after({"retry-after": value}, NOW_MS) == expected

    def test_header_lookup_is_case_insensitive(self) -> None:
        assert parse_retry_after({"Retry-After": "7"}, NOW_MS) == 7
        assert parse_retry_after(httpx.Headers({"RETRY-AFTER": "8"}), NOW_MS) == 8

    def test_http_date(self) -> None:
        headers = {"retry-after": "Tue, 14 Nov 2023 22:13:30 GMT"}
        assert parse_retry_after(headers, NOW_MS) == 10

    def test_http_date_in_past_is_zero(self) -> None:
        headers = {"retry-after": "Tue, 14 Nov 2023 22:00:00 GMT"}
        assert parse_retry_after(headers, NOW_MS) == 0

    @pytest.mark.parametrize("headers", [{}, {"retry-after": ""}, {"retry-after": "soon"}, {"retry-after": "-3"}])
    def test_falls_back_to_default(self, headers: dict[str, str]) -> None:
        assert parse_retry_after(headers, NOW_MS) == 60
        assert parse_retry_after(headers, NOW_MS, default=15) == 15


@pytest.mark.unit
class TestTransientNetworkError:
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("read timed out"),
            httpx.PoolTimeout("pool exhausted"),
            httpx.RemoteProtocolError("server disconnected"),
            httpx.ReadError("ECONNRESET"),
        ],
    )
    def test_transport_failures_are_transient(self, error: Exception) -> None:
        assert is_transient_network_error(error) is True

    def test_message_patterns_are_transient(self) -> None:
        assert is_transient_network_error(RuntimeError("fetch failed")) is True
        assert is_transient_network_error(OSError("ETIMEDOUT while dialing")) is True
        assert (
            is_transient_network_error(OSError("getaddrinfo ENOTFOUND api.example"))
            is True
        )

    def test_other_errors_are_not_transient(self) -> None:
        assert is_transient_network_error(httpx.UnsupportedProtocol("bad scheme")) is False
        assert is_transient_network_error(ValueError("invalid header value")) is False
