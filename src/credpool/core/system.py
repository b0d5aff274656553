from datetime import UTC, datetime
from pathlib import Path

import platformdirs


APP_NAME = "credpool"


def get_xdg_config_home() -> Path:
    """Get the XDG_CONFIG_HOME directory using platformdirs.

    Returns:
        Path to the user config directory (cross-platform).
    """
    return Path(platformdirs.user_config_dir())


def get_credpool_config_dir() -> Path:
    """Get the credpool configuration directory.

    Returns:
        Path to the credpool directory within the user config directory.
    """
    return get_xdg_config_home() / APP_NAME


def now_ms() -> int:
    """Current wall-clock time as a Unix timestamp in milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)
