"""OAuth constants for the default upstream provider.

The authorization-code login itself happens outside credpool. Only the
refresh grant and the user-info lookup are performed here, so only the
endpoints and client credentials those two calls need are kept.
"""

# OAuth Authorization Server
OAUTH_TOKEN_URL = "https://iflow.cn/oauth/token"
OAUTH_USER_INFO_URL = "https://iflow.cn/api/oauth/getUserInfo"

# Client Configuration (public desktop client)
OAUTH_CLIENT_ID = "10009311001"
OAUTH_CLIENT_SECRET = "4Z3YjXycVsQvyGF1etiNlIBB4RsqSDtW"

OAUTH_USER_AGENT = "credpool"
OAUTH_TIMEOUT_SECONDS = 30.0
