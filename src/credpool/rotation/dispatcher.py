"""Resilient request dispatcher.

Turns one logical outbound call into a bounded sequence of attempts across
the account pool. Each attempt walks an explicit phase machine::

    SELECT_ACCOUNT -> [REFRESH_TOKEN] -> SEND -> CLASSIFY -> DONE
           ^                  |            |         |
           +---- BACKOFF <----+------------+---------+

A budget guard runs before every phase: entering SELECT_ACCOUNT consumes one
iteration, and every phase checks the wall-clock budget.
"""

import asyncio
import math
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import httpx
import orjson
from dateutil import parser as dateutil_parser
from structlog import get_logger

from credpool.core.system import now_ms
from credpool.exceptions import (
    BudgetCause,
    BudgetExceededError,
    NetworkError,
    NoAccountsError,
    NoHealthyAccountError,
    TokenRefreshError,
    UpstreamError,
)
from credpool.rotation.accounts import Account
from credpool.rotation.constants import (
    BACKOFF_BASE_MS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MODEL,
    DEFAULT_REQUEST_TIMEOUT_MS,
    DEFAULT_RETRY_AFTER_SECONDS,
    DEFAULT_USER_AGENT,
    MAX_NETWORK_ERROR_RETRIES,
    MAX_RATE_LIMIT_WAIT_MS,
    MAX_SERVER_ERROR_RETRIES,
    RATE_LIMIT_PAUSE_MS,
    REASON_AUTH_FAILED,
    REASON_REFRESH_FAILED,
    REASON_SERVER_ERROR,
    UNHEALTHY_COOLDOWN_MS,
)
from credpool.rotation.pool import AccountPool
from credpool.rotation.token import TokenLifecycle


if TYPE_CHECKING:
    from credpool.config.settings import Settings


logger = get_logger(__name__)

BodyTransform = Callable[[dict[str, Any], str], dict[str, Any]]
Sleep = Callable[[float], Awaitable[None]]

TRANSIENT_ERROR_PATTERN = re.compile(
    r"econnreset|etimedout|enotfound|connection reset|timed out|timeout"
    r"|name or service not known|temporary failure in name resolution"
    r"|nodename nor servname|network|fetch failed",
    re.IGNORECASE,
)


class Phase(StrEnum):
    """Phases of a single dispatch."""

    SELECT_ACCOUNT = "select_account"
    REFRESH_TOKEN = "refresh_token"
    SEND = "send"
    CLASSIFY = "classify"
    BACKOFF = "backoff"
    DONE = "done"


@dataclass
class OutboundRequest:
    """Description of the upstream call to make."""

    url: str
    method: str = "POST"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None


@dataclass
class DispatchState:
    """Mutable per-request bookkeeping for one logical call."""

    started_at: int
    phase: Phase = Phase.SELECT_ACCOUNT
    attempt: int = 0
    server_error_retries: int = 0
    network_error_retries: int = 0
    account: Account | None = None
    response: httpx.Response | None = None
    delay_ms: int = 0


def is_transient_network_error(error: BaseException) -> bool:
    """Whether a transport failure is worth retrying after a backoff."""
    if isinstance(
        error,
        (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError),
    ):
        return True
    return bool(TRANSIENT_ERROR_PATTERN.search(str(error)))


def parse_retry_after(
    headers: Mapping[str, str],
    now: int,
    default: int = DEFAULT_RETRY_AFTER_SECONDS,
) -> int:
    """Parse a ``retry-after`` header into whole seconds from ``now``.

    Accepts delta-seconds or an HTTP/ISO date. Returns ``default`` when the
    header is absent or unparseable.

    Args:
        headers: Response headers (case-insensitive lookup)
        now: Current time as a Unix timestamp in milliseconds
        default: Seconds to use when no usable value is present
    """
    headers_lower = {k.lower(): v for k, v in headers.items()}
    retry_after = headers_lower.get("retry-after")
    if retry_after is None or not retry_after.strip():
        return default

    retry_after = retry_after.strip()
    try:
        seconds = float(retry_after)
    except ValueError:
        pass
    else:
        if math.isfinite(seconds) and seconds >= 0:
            return math.ceil(seconds)
        logger.warning("retry_after_invalid", value=retry_after)
        return default

    try:
        # HTTP date (RFC 7231) or ISO8601
        dt = dateutil_parser.parse(retry_after)
    except (ValueError, OverflowError, dateutil_parser.ParserError):
        logger.warning("retry_after_unparseable", value=retry_after)
        return default

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    delta_ms = int(dt.timestamp() * 1000) - now
    return max(0, math.ceil(delta_ms / 1000))


class RequestDispatcher:
    """Dispatches outbound requests through the account pool with failover."""

    def __init__(
        self,
        pool: AccountPool,
        lifecycle: TokenLifecycle,
        client: httpx.AsyncClient,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        user_agent: str = DEFAULT_USER_AGENT,
        base_url: str | None = None,
        body_transform: BodyTransform | None = None,
        default_model: str = DEFAULT_MODEL,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.pool = pool
        self.lifecycle = lifecycle
        self.client = client
        self.max_iterations = max_iterations
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent
        self.base_url = base_url
        self.body_transform = body_transform
        self.default_model = default_model
        self._sleep = sleep
        self._clock = clock
        self._handlers: dict[
            Phase, Callable[[OutboundRequest, DispatchState], Awaitable[Phase]]
        ] = {
            Phase.SELECT_ACCOUNT: self._select_account,
            Phase.REFRESH_TOKEN: self._refresh_token,
            Phase.SEND: self._send,
            Phase.CLASSIFY: self._classify,
            Phase.BACKOFF: self._backoff,
        }

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        pool: AccountPool,
        lifecycle: TokenLifecycle,
        client: httpx.AsyncClient,
        **kwargs: Any,
    ) -> "RequestDispatcher":
        """Build a dispatcher using the budgets and identity from settings."""
        from credpool.transforms import apply_thinking_config

        kwargs.setdefault("body_transform", apply_thinking_config)
        return cls(
            pool,
            lifecycle,
            client,
            max_iterations=settings.max_request_iterations,
            timeout_ms=settings.request_timeout_ms,
            user_agent=settings.user_agent,
            base_url=settings.base_url,
            default_model=settings.default_model,
            **kwargs,
        )

    async def fetch(self, request: OutboundRequest) -> httpx.Response:
        """Send ``request`` through the pool until it succeeds or a terminal error occurs.

        Returns:
            The first 2xx upstream response

        Raises:
            NoAccountsError: The pool is empty
            NoHealthyAccountError: No account is available and none will become so by waiting
            BudgetExceededError: The iteration or wall-clock budget ran out
            NetworkError: Transport failures persisted past the retry cap
            UpstreamError: A non-2xx status that is not retried
        """
        state = DispatchState(started_at=self._clock())
        while state.phase != Phase.DONE:
            self._check_budget(state)
            state.phase = await self._handlers[state.phase](request, state)

        logger.debug(
            "dispatch_completed",
            url=request.url,
            attempts=state.attempt,
            elapsed_ms=self._clock() - state.started_at,
        )
        assert state.response is not None
        return state.response

    def _check_budget(self, state: DispatchState) -> None:
        if state.phase == Phase.SELECT_ACCOUNT:
            state.attempt += 1
            if state.attempt > self.max_iterations:
                raise BudgetExceededError(
                    BudgetCause.ITERATIONS,
                    limit=self.max_iterations,
                    attempts=state.attempt - 1,
                    elapsed_ms=self._clock() - state.started_at,
                )

        elapsed = self._clock() - state.started_at
        if elapsed > self.timeout_ms:
            raise BudgetExceededError(
                BudgetCause.TIME,
                limit=self.timeout_ms,
                attempts=state.attempt,
                elapsed_ms=elapsed,
            )

    async def _select_account(
        self, request: OutboundRequest, state: DispatchState
    ) -> Phase:
        if len(self.pool) == 0:
            raise NoAccountsError()

        account = self.pool.select_account()
        if account is None:
            wait = self.pool.min_wait_time()
            if wait > 0:
                state.delay_ms = min(wait, MAX_RATE_LIMIT_WAIT_MS)
                logger.info(
                    "all_accounts_rate_limited_waiting",
                    wait_ms=state.delay_ms,
                    attempt=state.attempt,
                )
                return Phase.BACKOFF
            raise NoHealthyAccountError(details={"total_accounts": len(self.pool)})

        state.account = account
        if self.lifecycle.needs_refresh(account):
            return Phase.REFRESH_TOKEN
        return Phase.SEND

    async def _refresh_token(
        self, request: OutboundRequest, state: DispatchState
    ) -> Phase:
        account = self._current_account(state)
        try:
            await self.lifecycle.refresh_account(account)
        except TokenRefreshError as e:
            logger.warning(
                "dispatch_token_refresh_failed",
                account_id=account.id,
                label=account.label,
                error=str(e),
            )
            self.pool.mark_unhealthy(
                account, REASON_REFRESH_FAILED, self._clock() + UNHEALTHY_COOLDOWN_MS
            )
            return Phase.SELECT_ACCOUNT
        return Phase.SEND

    def resolve_url(self, url: str) -> str:
        """Resolve a relative request URL against ``base_url``.

        Absolute URLs, and any URL when no base is configured, pass through
        unchanged. The base path is always kept, so ``chat/completions`` and
        ``/chat/completions`` both land under ``.../v1/``.
        """
        if self.base_url is None or httpx.URL(url).is_absolute_url:
            return url
        return f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"

    def _build_headers(self, request: OutboundRequest, account: Account) -> httpx.Headers:
        headers = httpx.Headers(request.headers)
        headers["Authorization"] = f"Bearer {account.static_key}"
        headers["User-Agent"] = self.user_agent
        headers["Content-Type"] = "application/json"
        return headers

    def _build_body(self, request: OutboundRequest) -> bytes:
        body = dict(request.body or {})
        model = body.get("model") or self.default_model
        if self.body_transform is not None:
            body = self.body_transform(body, model)
        return orjson.dumps(body)

    async def _send(self, request: OutboundRequest, state: DispatchState) -> Phase:
        account = self._current_account(state)
        try:
            response = await self.client.request(
                request.method,
                self.resolve_url(request.url),
                headers=self._build_headers(request, account),
                content=self._build_body(request),
            )
        except httpx.HTTPError as e:
            if not is_transient_network_error(e):
                logger.error(
                    "dispatch_network_error",
                    account_id=account.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise NetworkError(
                    f"Request to {request.url} failed: {e}",
                    attempts=state.network_error_retries,
                ) from e

            if state.network_error_retries < MAX_NETWORK_ERROR_RETRIES:
                state.network_error_retries += 1
                state.delay_ms = BACKOFF_BASE_MS * 2**state.network_error_retries
                logger.warning(
                    "dispatch_network_error_retrying",
                    account_id=account.id,
                    error=str(e),
                    retry=state.network_error_retries,
                    delay_ms=state.delay_ms,
                )
                return Phase.BACKOFF

            raise NetworkError(
                f"Request to {request.url} failed after "
                f"{state.network_error_retries} retries: {e}",
                attempts=state.network_error_retries,
            ) from e

        state.response = response
        return Phase.CLASSIFY

    async def _classify(self, request: OutboundRequest, state: DispatchState) -> Phase:
        account = self._current_account(state)
        response = state.response
        assert response is not None
        status_code = response.status_code

        if response.is_success:
            return Phase.DONE

        if status_code == 429:
            seconds = parse_retry_after(response.headers, self._clock())
            self.pool.mark_rate_limited(account, seconds * 1000)
            state.delay_ms = RATE_LIMIT_PAUSE_MS
            return Phase.BACKOFF

        if status_code in (401, 403):
            self.pool.mark_unhealthy(
                account, REASON_AUTH_FAILED, self._clock() + UNHEALTHY_COOLDOWN_MS
            )
            return Phase.SELECT_ACCOUNT

        if status_code >= 500:
            if state.server_error_retries < MAX_SERVER_ERROR_RETRIES:
                state.server_error_retries += 1
                state.delay_ms = BACKOFF_BASE_MS * 2**state.server_error_retries
                logger.warning(
                    "dispatch_server_error_retrying",
                    account_id=account.id,
                    status=status_code,
                    retry=state.server_error_retries,
                    delay_ms=state.delay_ms,
                )
                return Phase.BACKOFF
            self.pool.mark_unhealthy(
                account, REASON_SERVER_ERROR, self._clock() + UNHEALTHY_COOLDOWN_MS
            )
            return Phase.SELECT_ACCOUNT

        body = response.text
        logger.error(
            "dispatch_upstream_error",
            account_id=account.id,
            status=status_code,
            body=body[:500],
        )
        raise UpstreamError(status_code, body)

    async def _backoff(self, request: OutboundRequest, state: DispatchState) -> Phase:
        delay_ms, state.delay_ms = state.delay_ms, 0
        await self._sleep(delay_ms / 1000)
        return Phase.SELECT_ACCOUNT

    @staticmethod
    def _current_account(state: DispatchState) -> Account:
        assert state.account is not None
        return state.account
