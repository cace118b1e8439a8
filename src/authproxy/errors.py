"""Error taxonomy for the authorization proxy.

Every failure that can terminate an authorization flow is one of these.
The FastAPI app maps each to a minimal response body; nothing here ever
carries a stack trace or an upstream secret to the caller.
"""


class AuthProxyError(Exception):
    """Base class for all proxy errors."""


class ConfigurationError(AuthProxyError):
    """Raised at startup when a required setting is missing or invalid."""


class BadRequestError(AuthProxyError):
    """The inbound request cannot be trusted (missing/unknown client, bad params).

    Always a terminal 400. Never treated as an upstream fault.
    """

    status_code = 400

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message)
        self.message = message


class StateDecodeError(BadRequestError):
    """The `state` value is malformed, truncated, oversized or tampered."""

    def __init__(self, message: str = "Invalid state"):
        super().__init__(message)


class RequestTooLargeError(BadRequestError):
    """The authorization request is too large to carry through `state`."""

    def __init__(self, message: str = "Request too large"):
        super().__init__(message)


class UpstreamExchangeError(AuthProxyError):
    """The upstream token endpoint did not hand back an access token.

    Carries the response to surface to the caller as-is. Authorization codes
    are single-use, so this is never retried.
    """

    def __init__(self, status_code: int, body: str, content_type: str = "text/plain"):
        super().__init__(f"Upstream token exchange failed with status {status_code}")
        self.status_code = status_code
        self.body = body
        self.content_type = content_type


class IdentityFetchError(AuthProxyError):
    """The upstream profile could not be fetched; the flow is aborted."""


class EmailFallbackError(AuthProxyError):
    """The best-effort email list lookup failed.

    Internal only: IdentityResolver catches it and continues without an email.
    """
