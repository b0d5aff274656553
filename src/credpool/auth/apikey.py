"""Upstream check for static API keys before they join the pool."""

import httpx
from structlog import get_logger

from credpool.exceptions import ApiKeyValidationError
from credpool.rotation.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)


logger = get_logger(__name__)


async def validate_api_key(
    api_key: str,
    *,
    base_url: str = DEFAULT_BASE_URL,
    user_agent: str = DEFAULT_USER_AGENT,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
) -> None:
    """Confirm ``api_key`` with an authenticated ``GET {base_url}/models``.

    Args:
        api_key: Key to check; never logged
        base_url: Upstream API base URL
        user_agent: User-Agent header for the request
        client: Shared HTTP client; a short-lived one is created when omitted
        timeout: Request timeout in seconds

    Raises:
        ApiKeyValidationError: The key was rejected (401/403), the upstream
            answered another non-2xx status, or it could not be reached
    """
    url = f"{base_url.rstrip('/')}/models"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "User-Agent": user_agent,
        "Accept": "application/json",
    }

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                response = await owned.get(url, headers=headers)
        else:
            response = await client.get(url, headers=headers, timeout=timeout)
    except httpx.HTTPError as e:
        logger.warning("api_key_validation_unreachable", url=url, error=str(e))
        raise ApiKeyValidationError(f"Could not reach {url}: {e}") from e

    if response.status_code in (401, 403):
        logger.warning("api_key_rejected", url=url, status=response.status_code)
        raise ApiKeyValidationError(
            f"API key was rejected by the upstream API (status {response.status_code})",
            status_code=response.status_code,
            rejected=True,
        )

    if not response.is_success:
        logger.warning(
            "api_key_validation_failed", url=url, status=response.status_code
        )
        raise ApiKeyValidationError(
            f"API key validation failed with status {response.status_code}",
            status_code=response.status_code,
        )

    logger.debug("api_key_validated", url=url)
