"""Signed cookie remembering which clients a browser has already approved.

The cookie value is an itsdangerous timestamped signature over the sorted
list of approved client ids. Verification recomputes the HMAC with the
server's key and enforces the TTL against the signed timestamp, so a
tampered, foreign-key or stale cookie simply counts as "not approved".
"""

from itsdangerous import BadData, URLSafeTimedSerializer
from loguru import logger
from starlette.requests import cookie_parser
from starlette.responses import Response

COOKIE_NAME = "mcp-approved-clients"
DEFAULT_TTL_SECONDS = 30 * 24 * 60 * 60
SALT = "authproxy.approved-clients"


class ApprovalCookieManager:
    """Issues and verifies the approved-clients cookie."""

    def __init__(self, key: str, ttl_seconds: int = DEFAULT_TTL_SECONDS, cookie_name: str = COOKIE_NAME):
        """Initialize the manager.

        Args:
            key: Secret used to sign the cookie (COOKIE_ENCRYPTION_KEY)
            ttl_seconds: How long an approval is honored
            cookie_name: Name of the cookie
        """
        if not key:
            raise ValueError("A signing key is required for approval cookies")
        self._serializer = URLSafeTimedSerializer(key, salt=SALT)
        self._ttl_seconds = ttl_seconds
        self.cookie_name = cookie_name

    def approved_clients(self, cookie_header: str | None) -> set[str]:
        """Return the client ids approved by a valid cookie, or an empty set.

        Args:
            cookie_header: Raw `Cookie` request header (may be None)
        """
        value = self._cookie_value(cookie_header)
        if not value:
            return set()

        try:
            clients = self._serializer.loads(value, max_age=self._ttl_seconds)
        except BadData as e:
            # covers bad signatures, expiry and malformed payloads
            logger.debug(f"Ignoring approval cookie: {type(e).__name__}")
            return set()

        if not isinstance(clients, list) or not all(isinstance(c, str) for c in clients):
            logger.debug("Ignoring approval cookie with unexpected payload")
            return set()
        return set(clients)

    def has_approved(self, cookie_header: str | None, client_id: str) -> bool:
        """Check whether this browser already approved `client_id`."""
        if not client_id:
            return False
        return client_id in self.approved_clients(cookie_header)

    def dumps(self, clients: set[str]) -> str:
        """Sign a set of approved client ids into a cookie value."""
        return self._serializer.dumps(sorted(clients))

    def build_approval_headers(self, cookie_header: str | None, client_id: str) -> dict[str, str]:
        """Build the Set-Cookie header recording a new approval.

        Existing valid approvals are kept; the whole set is re-signed with a fresh
        timestamp.

        Args:
            cookie_header: Raw `Cookie` request header carrying prior approvals
            client_id: Newly approved client id

        Returns:
            Response headers to attach to the redirect
        """
        clients = self.approved_clients(cookie_header) | {client_id}
        response = Response()
        response.set_cookie(
            self.cookie_name,
            self.dumps(clients),
            max_age=self._ttl_seconds,
            path="/",
            secure=True,
            httponly=True,
            samesite="lax",
        )
        logger.debug(f"Recording approval for client {client_id} ({len(clients)} approved in total)")
        return {"Set-Cookie": response.headers["set-cookie"]}

    def _cookie_value(self, cookie_header: str | None) -> str | None:
        if not cookie_header:
            return None
        # lenient parser: other non-RFC cookies in the header are skipped, not fatal
        return cookie_parser(cookie_header).get(self.cookie_name)
