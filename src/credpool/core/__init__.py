"""Core utilities shared across credpool."""

from .logging import setup_logging
from .system import get_credpool_config_dir, get_xdg_config_home, now_ms


__all__ = [
    "get_credpool_config_dir",
    "get_xdg_config_home",
    "now_ms",
    "setup_logging",
]
