"""Constants for the rotation module.

This module centralizes configuration values used across the rotation package.
Durations are in milliseconds unless the name says otherwise.
"""

# Accounts file format
ACCOUNTS_FILE_VERSION = 1

# Token lifecycle
TOKEN_EXPIRY_SKEW_MS = 60_000
DEFAULT_TOKEN_EXPIRY_SECONDS = 3600  # 1 hour
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

# Health bookkeeping
UNHEALTHY_COOLDOWN_MS = 5 * 60 * 1000
REASON_REFRESH_FAILED = "refresh failed"
REASON_AUTH_FAILED = "authentication failed"
REASON_SERVER_ERROR = "server error"

# Dispatch budget defaults
DEFAULT_MAX_ITERATIONS = 50
DEFAULT_REQUEST_TIMEOUT_MS = 300_000

# Retry and backoff
MAX_SERVER_ERROR_RETRIES = 3
MAX_NETWORK_ERROR_RETRIES = 3
BACKOFF_BASE_MS = 1000
RATE_LIMIT_PAUSE_MS = 1000
MAX_RATE_LIMIT_WAIT_MS = 5000
DEFAULT_RETRY_AFTER_SECONDS = 60

# Outbound request identity
DEFAULT_BASE_URL = "https://apis.iflow.cn/v1"
DEFAULT_USER_AGENT = "credpool"
DEFAULT_MODEL = "qwen3-max"
