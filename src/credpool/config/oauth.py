"""OAuth refresh configuration settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from credpool.auth.oauth.constants import (
    OAUTH_CLIENT_ID,
    OAUTH_CLIENT_SECRET,
    OAUTH_TIMEOUT_SECONDS,
    OAUTH_TOKEN_URL,
    OAUTH_USER_INFO_URL,
)
from credpool.auth.oauth.token_exchange import OAuthConfig


class OAuthSettings(BaseSettings):
    """Endpoints and client credentials used to refresh token-based accounts."""

    model_config = SettingsConfigDict(
        env_prefix="CREDPOOL_OAUTH_",
        case_sensitive=False,
        extra="ignore",
    )

    token_url: str = Field(
        default=OAUTH_TOKEN_URL,
        description="OAuth token endpoint used for the refresh grant",
    )

    user_info_url: str | None = Field(
        default=OAUTH_USER_INFO_URL,
        description="Endpoint returning the API key and email for an access token (unset to use the access token directly)",
    )

    client_id: str = Field(
        default=OAUTH_CLIENT_ID,
        description="OAuth client identifier",
    )

    client_secret: str = Field(
        default=OAUTH_CLIENT_SECRET,
        description="OAuth client secret",
    )

    timeout: float = Field(
        default=OAUTH_TIMEOUT_SECONDS,
        gt=0,
        le=300,
        description="Timeout in seconds for token endpoint calls",
    )

    def to_oauth_config(self, user_agent: str) -> OAuthConfig:
        return OAuthConfig(
            token_url=self.token_url,
            user_info_url=self.user_info_url or None,
            client_id=self.client_id,
            client_secret=self.client_secret,
            user_agent=user_agent,
            timeout=self.timeout,
        )
