"""Consolidated exception hierarchy for credpool.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum for type safety and autocompletion.
"""

import math
from enum import StrEnum
from typing import Any


class ErrorType(StrEnum):
    """Error type codes attached to every credpool error."""

    NO_ACCOUNTS = "no_accounts_error"
    NO_HEALTHY_ACCOUNT = "no_healthy_account_error"
    BUDGET_EXCEEDED = "budget_exceeded_error"
    TOKEN_REFRESH = "token_refresh_error"
    TOKEN_EXCHANGE = "token_exchange_error"
    API_KEY_VALIDATION = "api_key_validation_error"
    NETWORK = "network_error"
    UPSTREAM = "upstream_error"
    NOT_FOUND = "not_found_error"
    CONFIGURATION = "configuration_error"
    INTERNAL = "internal_error"


class BudgetCause(StrEnum):
    """Which dispatch budget ran out."""

    ITERATIONS = "iterations"
    TIME = "time"


# ============================================================================
# Base Exception
# ============================================================================


class CredPoolError(Exception):
    """Base exception for all credpool errors.

    Supports a machine-readable error type and structured error details.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType = ErrorType.INTERNAL,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}


# ============================================================================
# Dispatch Errors (surface to the caller of RequestDispatcher.fetch)
# ============================================================================


class NoAccountsError(CredPoolError):
    """The pool holds no accounts at all."""

    def __init__(self, message: str = "No accounts configured. Add an account first.") -> None:
        super().__init__(message, error_type=ErrorType.NO_ACCOUNTS)


class NoHealthyAccountError(CredPoolError):
    """Accounts exist but none is selectable and none will become selectable by waiting."""

    def __init__(
        self,
        message: str = "No healthy accounts available",
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message, error_type=ErrorType.NO_HEALTHY_ACCOUNT, details=details
        )


class BudgetExceededError(CredPoolError):
    """A logical request ran out of iterations or wall-clock time."""

    def __init__(
        self,
        cause: BudgetCause,
        *,
        limit: int,
        attempts: int,
        elapsed_ms: int,
    ) -> None:
        if cause == BudgetCause.ITERATIONS:
            message = (
                f"Request exceeded max iterations ({limit}). "
                "All accounts may be unhealthy or rate-limited."
            )
        else:
            message = (
                f"Request timeout after {math.ceil(elapsed_ms / 1000)}s. "
                f"Max timeout: {math.ceil(limit / 1000)}s."
            )
        super().__init__(
            message,
            error_type=ErrorType.BUDGET_EXCEEDED,
            details={
                "cause": str(cause),
                "limit": limit,
                "attempts": attempts,
                "elapsed_ms": elapsed_ms,
            },
        )
        self.cause = cause
        self.limit = limit
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms


class NetworkError(CredPoolError):
    """Transport-level failure after transient-network retries were exhausted."""

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(
            message, error_type=ErrorType.NETWORK, details={"attempts": attempts}
        )
        self.attempts = attempts


class UpstreamError(CredPoolError):
    """Terminal non-2xx response from the upstream API."""

    def __init__(self, status_code: int, body: str) -> None:
        preview = body[:500]
        super().__init__(
            f"Upstream request failed with status {status_code}: {preview}",
            error_type=ErrorType.UPSTREAM,
            details={"status_code": status_code},
        )
        self.status_code = status_code
        self.body = body


# ============================================================================
# Credential & OAuth Errors
# ============================================================================


class TokenRefreshError(CredPoolError):
    """Refreshing an account's access credential failed."""

    def __init__(self, message: str, *, account_id: str | None = None) -> None:
        super().__init__(
            message,
            error_type=ErrorType.TOKEN_REFRESH,
            details={"account_id": account_id} if account_id else None,
        )
        self.account_id = account_id


class TokenExchangeError(CredPoolError):
    """The OAuth token endpoint rejected or failed a request."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(
            message,
            error_type=ErrorType.TOKEN_EXCHANGE,
            details={"status_code": status_code} if status_code is not None else None,
        )
        self.status_code = status_code
        self.response_text = response_text


class ApiKeyValidationError(CredPoolError):
    """A static API key could not be confirmed against the upstream API.

    ``rejected`` is True when the upstream answered 401/403, as opposed to
    being unreachable or failing for another reason.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        rejected: bool = False,
    ) -> None:
        super().__init__(
            message,
            error_type=ErrorType.API_KEY_VALIDATION,
            details={"status_code": status_code, "rejected": rejected},
        )
        self.status_code = status_code
        self.rejected = rejected


class AccountNotFoundError(CredPoolError):
    """No account matches the given id or label."""

    def __init__(self, account_ref: str) -> None:
        super().__init__(
            f"Account '{account_ref}' not found", error_type=ErrorType.NOT_FOUND
        )
        self.account_ref = account_ref


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(CredPoolError):
    """Raised when configuration loading or validation fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_type=ErrorType.CONFIGURATION)
