"""Account model and file operations for multi-account rotation.

Handles loading, validating, and persisting the accounts snapshot
(``accounts.json``) that backs the rotation pool.
"""

import secrets
from dataclasses import dataclass, field, replace
from enum import StrEnum
from pathlib import Path
from typing import Any

import orjson
from structlog import get_logger

from credpool.core.system import get_credpool_config_dir
from credpool.rotation.constants import ACCOUNTS_FILE_VERSION


logger = get_logger(__name__)

# Default accounts file path
DEFAULT_ACCOUNTS_PATH = get_credpool_config_dir() / "accounts.json"


class AuthMethod(StrEnum):
    """How an account obtains the key it sends upstream."""

    OAUTH = "oauth"
    API_KEY = "apikey"


def new_account_id() -> str:
    """Generate an opaque, unique account identifier."""
    return secrets.token_hex(16)


@dataclass(frozen=True)
class TokenGrant:
    """Result of a token refresh, applied to an account by the pool."""

    static_key: str
    expires_at: int | None = None  # Unix timestamp in milliseconds
    refresh_token: str | None = None
    access_token: str | None = None
    label: str | None = None


def _check_timestamp(account: "Account", name: str, *, optional: bool) -> None:
    value = getattr(account, name)
    if value is None and optional:
        return
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(
            f"Account '{account.id}' {name} must be a non-negative integer "
            f"timestamp in milliseconds, got {value!r}"
        )


@dataclass
class Account:
    """An upstream account in the rotation pool.

    Combines credentials with health and rate-limit tracking. Everything except
    ``last_used`` is persisted.
    """

    id: str
    label: str
    auth_method: AuthMethod
    static_key: str

    # OAuth-only credential fields
    refresh_token: str | None = None
    access_token: str | None = None
    expires_at: int | None = None  # Unix timestamp ms

    # Health and rate-limit state (self-heals in place)
    is_healthy: bool = True
    unhealthy_reason: str | None = None
    recovery_time: int | None = None  # Unix timestamp ms
    rate_limit_reset_time: int = 0  # Unix timestamp ms, 0 = not limited

    # Runtime only (never persisted)
    last_used: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        """Validate account after initialization."""
        self.auth_method = AuthMethod(self.auth_method)
        self._validate()
        if self.auth_method == AuthMethod.API_KEY:
            self.refresh_token = None
            self.access_token = None
            self.expires_at = None

    def _validate(self) -> None:
        """Validate account fields."""
        if not isinstance(self.id, str) or not self.id:
            raise ValueError("Account id must be a non-empty string")
        if not isinstance(self.static_key, str) or not self.static_key:
            raise ValueError(f"Account '{self.label or self.id}' has no static key")
        if not isinstance(self.label, str):
            raise ValueError(f"Account '{self.id}' label must be a string")
        if not isinstance(self.is_healthy, bool):
            raise ValueError(
                f"Account '{self.id}' isHealthy must be a boolean, "
                f"got {self.is_healthy!r}"
            )
        _check_timestamp(self, "expires_at", optional=True)
        _check_timestamp(self, "recovery_time", optional=True)
        _check_timestamp(self, "rate_limit_reset_time", optional=False)

    @classmethod
    def from_api_key(cls, api_key: str, label: str = "") -> "Account":
        """Create a static-key account with a fresh id."""
        return cls(
            id=new_account_id(),
            label=label,
            auth_method=AuthMethod.API_KEY,
            static_key=api_key,
        )

    @classmethod
    def from_oauth(
        cls,
        *,
        static_key: str,
        refresh_token: str,
        access_token: str | None,
        expires_at: int,
        label: str = "",
    ) -> "Account":
        """Create a token-based account from a completed OAuth login."""
        return cls(
            id=new_account_id(),
            label=label,
            auth_method=AuthMethod.OAUTH,
            static_key=static_key,
            refresh_token=refresh_token,
            access_token=access_token,
            expires_at=expires_at,
        )

    @property
    def display_name(self) -> str:
        """Human-facing name: the label, or a shortened id."""
        return self.label or self.id[:8]

    @property
    def is_token_based(self) -> bool:
        return self.auth_method == AuthMethod.OAUTH

    def is_rate_limited(self, now: int) -> bool:
        return bool(self.rate_limit_reset_time) and now < self.rate_limit_reset_time

    def snapshot(self) -> "Account":
        """Detached copy for read-only callers."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization.

        Note: ``last_used`` is runtime state and is never written.
        """
        data: dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "authMethod": str(self.auth_method),
            "staticKey": self.static_key,
        }
        if self.auth_method == AuthMethod.OAUTH:
            if self.refresh_token is not None:
                data["refreshCredential"] = self.refresh_token
            if self.access_token is not None:
                data["accessToken"] = self.access_token
            if self.expires_at is not None:
                data["expiresAt"] = self.expires_at
        data["rateLimitResetTime"] = self.rate_limit_reset_time
        data["isHealthy"] = self.is_healthy
        if self.unhealthy_reason is not None:
            data["unhealthyReason"] = self.unhealthy_reason
        if self.recovery_time is not None:
            data["recoveryTime"] = self.recovery_time
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        """Create from dictionary.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field has an invalid value
        """
        return cls(
            id=data["id"],
            label=data.get("label") or "",
            auth_method=AuthMethod(data["authMethod"]),
            static_key=data["staticKey"],
            refresh_token=data.get("refreshCredential"),
            access_token=data.get("accessToken"),
            expires_at=data.get("expiresAt"),
            is_healthy=data.get("isHealthy", True),
            unhealthy_reason=data.get("unhealthyReason"),
            recovery_time=data.get("recoveryTime"),
            rate_limit_reset_time=data.get("rateLimitResetTime") or 0,
        )


@dataclass
class AccountsFile:
    """Represents the accounts.json file structure."""

    version: int = ACCOUNTS_FILE_VERSION
    accounts: list[Account] = field(default_factory=list)
    active_index: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "accounts": [account.to_dict() for account in self.accounts],
            "activeIndex": self.active_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccountsFile":
        """Create from dictionary loaded from JSON.

        Invalid account records are skipped with a warning.
        """
        version = data.get("version", ACCOUNTS_FILE_VERSION)
        if version != ACCOUNTS_FILE_VERSION:
            raise ValueError(f"Unsupported accounts file version: {version!r}")

        accounts_data = data.get("accounts", [])
        if not isinstance(accounts_data, list):
            raise ValueError(
                f"Invalid accounts file: 'accounts' must be a list, got {type(accounts_data).__name__}"
            )

        accounts: list[Account] = []
        seen_ids: set[str] = set()
        for index, record in enumerate(accounts_data):
            try:
                account = Account.from_dict(record)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("invalid_account_skipped", index=index, error=str(e))
                continue
            if account.id in seen_ids:
                logger.warning("duplicate_account_skipped", account_id=account.id)
                continue
            seen_ids.add(account.id)
            accounts.append(account)

        active_index = data.get("activeIndex", 0)
        if not isinstance(active_index, int):
            active_index = 0

        return cls(version=version, accounts=accounts, active_index=active_index)


def load_accounts(path: Path | None = None) -> AccountsFile:
    """Load accounts from JSON file.

    Args:
        path: Path to accounts.json. Defaults to the credpool config directory

    Returns:
        AccountsFile with loaded accounts

    Raises:
        FileNotFoundError: If file doesn't exist
        orjson.JSONDecodeError: If file is invalid JSON
        ValueError: If file structure is invalid
    """
    if path is None:
        path = DEFAULT_ACCOUNTS_PATH

    path = Path(path).expanduser()

    if not path.exists():
        raise FileNotFoundError(f"Accounts file not found: {path}")

    logger.debug("loading_accounts", path=str(path))

    with path.open("rb") as f:
        data = orjson.loads(f.read())

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid accounts file format: expected object, got {type(data).__name__}"
        )

    if "accounts" not in data:
        raise ValueError("Invalid accounts file: missing 'accounts' field")

    accounts_file = AccountsFile.from_dict(data)

    logger.info(
        "accounts_loaded",
        path=str(path),
        count=len(accounts_file.accounts),
    )

    return accounts_file


def save_accounts(accounts_file: AccountsFile, path: Path | None = None) -> None:
    """Save accounts to JSON file.

    Writes to a temporary file first and renames it into place.

    Args:
        accounts_file: AccountsFile to save
        path: Path to save to. Defaults to the credpool config directory

    Raises:
        OSError: If the file cannot be written
    """
    if path is None:
        path = DEFAULT_ACCOUNTS_PATH

    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = path.with_suffix(".json.tmp")
    with temp_path.open("wb") as f:
        f.write(orjson.dumps(accounts_file.to_dict(), option=orjson.OPT_INDENT_2))

    temp_path.replace(path)

    logger.debug(
        "accounts_saved",
        path=str(path),
        count=len(accounts_file.accounts),
    )
