"""Runtime configuration for the authorization proxy.

Settings come from environment variables (optionally loaded from a .env file).
The GitHub OAuth app credentials and the cookie signing key are required;
everything else has a default suitable for GitHub.com.
"""

import os

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field

from authproxy.errors import ConfigurationError
from authproxy.models import ServerInfo

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"

# read:user for the profile, user:email for the private email list
UPSTREAM_SCOPES = ["read:user", "user:email"]

REQUIRED_ENV_VARS = {
    "github_client_id": "GITHUB_CLIENT_ID",
    "github_client_secret": "GITHUB_CLIENT_SECRET",
    "cookie_encryption_key": "COOKIE_ENCRYPTION_KEY",
}


class ProxyConfig(BaseModel):
    """Settings for one proxy deployment."""

    github_client_id: str
    github_client_secret: str
    cookie_encryption_key: str

    public_base_url: str | None = None
    upstream_authorize_url: str = GITHUB_AUTHORIZE_URL
    upstream_token_url: str = GITHUB_TOKEN_URL
    upstream_api_url: str = GITHUB_API_URL
    upstream_scopes: list[str] = Field(default_factory=lambda: list(UPSTREAM_SCOPES))
    http_timeout: float = 10.0
    approval_ttl_days: int = 30

    # Handles allowed to use optional, privileged capabilities
    privileged_handles: frozenset[str] = frozenset()

    server_name: str = "GitHub OAuth MCP Proxy"
    server_description: str | None = "This MCP server uses GitHub for authentication."
    server_logo: str | None = "https://avatars.githubusercontent.com/u/314135?s=200&v=4"

    port: int = 8788
    log_level: str = "INFO"

    @property
    def server_info(self) -> ServerInfo:
        return ServerInfo(name=self.server_name, description=self.server_description, logo=self.server_logo)

    @property
    def approval_ttl_seconds(self) -> int:
        return self.approval_ttl_days * 24 * 60 * 60

    def callback_url(self, request_base_url: str) -> str:
        """Absolute URL of /callback, preferring the configured public base URL.

        Behind a reverse proxy the request's own base URL is the internal one,
        so deployments set AUTHPROXY_PUBLIC_BASE_URL.
        """
        base_url = self.public_base_url or request_base_url
        return f"{base_url.rstrip('/')}/callback"

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "ProxyConfig":
        """Build the configuration from environment variables.

        Args:
            env_file: Optional .env path; defaults to python-dotenv's lookup.

        Returns:
            ProxyConfig instance

        Raises:
            ConfigurationError: If a required variable is missing or a value is invalid.
        """
        load_dotenv(env_file)

        missing = [env_name for env_name in REQUIRED_ENV_VARS.values() if not os.getenv(env_name)]
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

        values: dict = {field: os.environ[env_name] for field, env_name in REQUIRED_ENV_VARS.items()}

        optional = {
            "public_base_url": "AUTHPROXY_PUBLIC_BASE_URL",
            "upstream_authorize_url": "AUTHPROXY_UPSTREAM_AUTHORIZE_URL",
            "upstream_token_url": "AUTHPROXY_UPSTREAM_TOKEN_URL",
            "upstream_api_url": "AUTHPROXY_UPSTREAM_API_URL",
            "http_timeout": "AUTHPROXY_HTTP_TIMEOUT",
            "approval_ttl_days": "AUTHPROXY_APPROVAL_TTL_DAYS",
            "server_name": "AUTHPROXY_SERVER_NAME",
            "server_description": "AUTHPROXY_SERVER_DESCRIPTION",
            "server_logo": "AUTHPROXY_SERVER_LOGO",
            "port": "AUTHPROXY_PORT",
            "log_level": "AUTHPROXY_LOG_LEVEL",
        }
        for field, env_name in optional.items():
            value = os.getenv(env_name)
            if value:
                values[field] = value

        handles = os.getenv("AUTHPROXY_PRIVILEGED_HANDLES", "")
        values["privileged_handles"] = frozenset(h.strip() for h in handles.split(",") if h.strip())

        try:
            config = cls(**values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid proxy configuration: {e}") from e

        logger.debug(f"Loaded proxy configuration (upstream: {config.upstream_api_url})")
        if not config.privileged_handles:
            logger.info("No privileged handles configured")
        return config
