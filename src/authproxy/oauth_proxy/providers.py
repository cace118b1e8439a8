"""Upstream (GitHub-shaped) identity provider integration.

UpstreamAuthorizer sends the user agent to the provider's authorize endpoint
and exchanges the returned code for an access token. IdentityResolver turns
that token into a ResolvedIdentity.
"""

from urllib.parse import parse_qsl, urlencode

import requests
from loguru import logger
from pydantic import ValidationError

from authproxy import state_codec
from authproxy.config import ProxyConfig
from authproxy.errors import BadRequestError, EmailFallbackError, IdentityFetchError, UpstreamExchangeError
from authproxy.models import AuthorizationRequest, EmailEntry, ResolvedIdentity

GITHUB_API_ACCEPT = "application/vnd.github+json"


class UpstreamAuthorizer:
    """Authorize redirect and code exchange against the upstream provider."""

    def __init__(self, config: ProxyConfig):
        """Initialize the authorizer.

        Args:
            config: Proxy configuration with the upstream OAuth app credentials
        """
        self._client_id = config.github_client_id
        self._client_secret = config.github_client_secret
        self._authorize_url = config.upstream_authorize_url
        self._token_url = config.upstream_token_url
        self._scopes = config.upstream_scopes
        self._timeout = config.http_timeout

    def is_configured(self) -> bool:
        """Check if upstream OAuth credentials are configured."""
        return bool(self._client_id and self._client_secret)

    def build_redirect(self, request: AuthorizationRequest, callback_url: str) -> str:
        """Build the upstream authorize URL for a caller's request.

        The whole request rides along in `state`, so nothing is kept server-side.

        Args:
            request: The caller's original authorization request
            callback_url: Absolute URL of this proxy's /callback

        Returns:
            URL to redirect the user agent to
        """
        params = {
            "client_id": self._client_id,
            "redirect_uri": callback_url,
            "scope": " ".join(self._scopes),
            "state": state_codec.encode(request),
        }
        url = f"{self._authorize_url}?{urlencode(params)}"
        logger.debug(f"Upstream authorize URL for client {request.client_id}: {self._authorize_url}")
        return url

    def exchange_code_for_token(self, code: str | None, callback_url: str) -> str:
        """Exchange the upstream authorization code for an access token.

        Codes are single-use, so a failure is final and never retried.

        Args:
            code: Authorization code from the upstream callback
            callback_url: The redirect URI used in the authorize step

        Returns:
            The upstream access token

        Raises:
            BadRequestError: If no code was supplied
            UpstreamExchangeError: If the upstream did not return a token
        """
        if not code:
            raise BadRequestError("Missing code")

        logger.info("Exchanging upstream authorization code for access token")
        try:
            response = requests.post(
                self._token_url,
                headers={"Accept": "application/json"},
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "code": code,
                    "redirect_uri": callback_url,
                },
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Upstream token endpoint unreachable: {e}")
            raise UpstreamExchangeError(502, "Failed to fetch access token") from e

        content_type = response.headers.get("Content-Type", "text/plain")
        if not response.ok:
            logger.error(f"Upstream token endpoint returned {response.status_code}")
            raise UpstreamExchangeError(response.status_code, response.text, content_type)

        token_data = _parse_token_response(response)

        if "error" in token_data:
            logger.error(f"Upstream OAuth error: {token_data.get('error_description') or token_data['error']}")
            raise UpstreamExchangeError(400, response.text, content_type)

        access_token = token_data.get("access_token")
        if not access_token:
            logger.error("No access token in upstream token response")
            raise UpstreamExchangeError(400, "Missing access token")

        logger.info(f"Obtained upstream access token (scopes: {token_data.get('scope', 'default')})")
        return access_token


def _parse_token_response(response: requests.Response) -> dict:
    # GitHub answers form-encoded unless asked for JSON; accept both.
    try:
        data = response.json()
    except ValueError:
        return dict(parse_qsl(response.text))
    return data if isinstance(data, dict) else {}


class IdentityResolver:
    """Resolves an upstream access token to a minimal identity.

    The profile endpoint returns a null email for accounts with a private email
    setting. In that case the email list is consulted, preferring a primary
    verified address, then any verified one, then the first listed. The email
    lookup is best-effort and never fails the flow.
    """

    def __init__(self, api_url: str, timeout: float = 10.0):
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    def resolve(self, token: str) -> ResolvedIdentity:
        """Fetch the authenticated user's identity.

        Raises:
            IdentityFetchError: If the profile itself cannot be fetched
        """
        profile = self.fetch_profile(token)
        handle = profile["login"]
        display_name = profile.get("name") or None
        email = profile.get("email") or None

        if not email:
            try:
                email = select_email(self.fetch_emails(token))
            except EmailFallbackError as e:
                logger.warning(f"Email lookup failed for {handle}, continuing without email: {e}")
                email = None

        logger.info(f"Resolved upstream identity: {handle} (email: {'yes' if email else 'no'})")
        return ResolvedIdentity(handle=handle, display_name=display_name, email=email)

    def fetch_profile(self, token: str) -> dict:
        """GET /user for the token's owner."""
        try:
            response = requests.get(f"{self._api_url}/user", headers=self._headers(token), timeout=self._timeout)
            response.raise_for_status()
            profile = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to fetch upstream profile: {e}")
            raise IdentityFetchError("Failed to fetch user profile") from e

        if not isinstance(profile, dict) or not profile.get("login"):
            logger.error("Upstream profile has no login")
            raise IdentityFetchError("Upstream profile has no login")
        return profile

    def fetch_emails(self, token: str) -> list[EmailEntry]:
        """GET /user/emails for the token's owner.

        Raises:
            EmailFallbackError: On any transport, HTTP or payload error.
                Individual malformed entries are skipped instead.
        """
        try:
            response = requests.get(
                f"{self._api_url}/user/emails", headers=self._headers(token), timeout=self._timeout
            )
            response.raise_for_status()
            entries = response.json()
        except (requests.RequestException, ValueError) as e:
            raise EmailFallbackError(str(e)) from e

        if not isinstance(entries, list):
            raise EmailFallbackError("Email list is not a list")

        parsed = []
        for entry in entries:
            try:
                parsed.append(EmailEntry.model_validate(entry))
            except ValidationError:
                logger.debug("Skipping malformed email list entry")
        return parsed

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": GITHUB_API_ACCEPT,
        }


def select_email(entries: list[EmailEntry]) -> str | None:
    """Pick an address: primary and verified, then verified, then first."""
    for entry in entries:
        if entry.primary and entry.verified:
            return entry.email
    for entry in entries:
        if entry.verified:
            return entry.email
    if entries:
        return entries[0].email
    return None
