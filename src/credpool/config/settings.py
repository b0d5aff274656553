"""Settings configuration for credpool."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from credpool.core.system import get_credpool_config_dir
from credpool.exceptions import ConfigurationError
from credpool.rotation.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MODEL,
    DEFAULT_REQUEST_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
)
from credpool.rotation.pool import SelectionStrategy

from .oauth import OAuthSettings


__all__ = [
    "ConfigurationManager",
    "Settings",
    "config_manager",
    "find_toml_config_file",
    "get_settings",
]

CONFIG_FILE_ENV = "CREDPOOL_CONFIG_FILE"


def find_toml_config_file() -> Path | None:
    """Return the user-level ``config.toml`` if one exists."""
    candidate = get_credpool_config_dir() / "config.toml"
    return candidate if candidate.exists() else None


def _coerce_settings(value: Any, settings_class: type) -> Any:
    """Coerce value to settings class instance.

    Handles: None → default, dict → instance, passthrough existing instances.
    """
    if value is None:
        return settings_class()
    if isinstance(value, settings_class):
        return value
    if isinstance(value, dict):
        return settings_class(**value)
    return value


class Settings(BaseSettings):
    """
    Configuration settings for credpool.

    Settings are loaded from environment variables (``CREDPOOL_`` prefix),
    .env files, and a TOML configuration file. Explicit keyword overrides win
    over the TOML file, which wins over the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="CREDPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    accounts_path: Path = Field(
        default_factory=lambda: get_credpool_config_dir() / "accounts.json",
        description="Location of the accounts.json snapshot",
    )

    account_selection_strategy: SelectionStrategy = Field(
        default=SelectionStrategy.ROUND_ROBIN,
        description="Account selection policy: 'sticky' or 'round-robin'",
    )

    max_request_iterations: int = Field(
        default=DEFAULT_MAX_ITERATIONS,
        ge=10,
        le=1000,
        description="Upper bound on attempts per logical request (10-1000)",
    )

    request_timeout_ms: int = Field(
        default=DEFAULT_REQUEST_TIMEOUT_MS,
        ge=60_000,
        le=600_000,
        description="Wall-clock budget per logical request in milliseconds (60000-600000)",
    )

    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Base URL of the upstream API",
    )

    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent sent on every upstream request",
    )

    default_model: str = Field(
        default=DEFAULT_MODEL,
        description="Model assumed when a request body names none",
    )

    enable_debug_logging: bool = Field(
        default=False,
        description="Emit debug-level logs",
    )

    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON lines",
    )

    oauth: OAuthSettings = Field(
        default_factory=OAuthSettings,
        description="OAuth refresh configuration",
    )

    @field_validator("oauth", mode="before")
    @classmethod
    def validate_oauth(cls, v: Any) -> Any:
        return _coerce_settings(v, OAuthSettings)

    @field_validator("accounts_path", mode="after")
    @classmethod
    def expand_accounts_path(cls, v: Path) -> Path:
        return v.expanduser()

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.enable_debug_logging else "INFO"

    def model_dump_safe(self) -> dict[str, Any]:
        """
        Dump model data with sensitive information masked.

        Returns:
            dict: Configuration with sensitive data masked
        """
        data = self.model_dump(mode="json")
        if data.get("oauth", {}).get("client_secret"):
            data["oauth"]["client_secret"] = "***"
        return data

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Args:
            toml_path: Path to the TOML configuration file

        Returns:
            dict: Configuration data from the TOML file

        Raises:
            ValueError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ValueError(f"Cannot read TOML config file {toml_path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings instance from configuration file.

        Args:
            config_path: Path to configuration file. Can be:
                - None: Use CREDPOOL_CONFIG_FILE, else the user config.toml if present
                - Path or str: Use this specific config file
            **kwargs: Additional keyword arguments to override config values

        Returns:
            Settings: Configured Settings instance

        Raises:
            ValueError: If an explicitly requested config file is missing or invalid
        """
        explicit = config_path is not None
        if config_path is None:
            config_path_env = os.environ.get(CONFIG_FILE_ENV)
            if config_path_env:
                config_path = Path(config_path_env)
                explicit = True

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        config_data: dict[str, Any] = {}
        if config_path is not None:
            config_path = config_path.expanduser()
            if config_path.exists():
                if config_path.suffix.lower() != ".toml":
                    raise ValueError(
                        f"Unsupported config file format: {config_path.suffix}. "
                        "Only TOML (.toml) files are supported."
                    )
                config_data = cls.load_toml_config(config_path)
            elif explicit:
                raise ValueError(f"Config file not found: {config_path}")

        merged_config = {**config_data, **kwargs}
        return cls(**merged_config)


class ConfigurationManager:
    """Centralized configuration management for the CLI."""

    def __init__(self) -> None:
        self._settings: Settings | None = None
        self._config_path: Path | None = None

    def load_settings(
        self,
        config_path: Path | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> Settings:
        """Load settings with overrides and caching."""
        path_changed = config_path is not None and config_path != self._config_path
        if self._settings is None or path_changed or overrides:
            try:
                self._settings = Settings.from_config(
                    config_path=config_path, **(overrides or {})
                )
                self._config_path = config_path
            except (OSError, ValueError) as e:
                # pydantic's ValidationError is a ValueError
                raise ConfigurationError(f"Failed to load configuration: {e}") from e

        return self._settings

    def reset(self) -> None:
        self._settings = None
        self._config_path = None


config_manager = ConfigurationManager()


def get_settings(config_path: Path | None = None) -> Settings:
    """Get the cached settings instance, loading it on first use."""
    return config_manager.load_settings(config_path)
