"""Configuration module for credpool."""

from .oauth import OAuthSettings
from .settings import (
    ConfigurationManager,
    Settings,
    config_manager,
    get_settings,
)


__all__ = [
    "ConfigurationManager",
    "OAuthSettings",
    "Settings",
    "config_manager",
    "get_settings",
]
