"""Carries the caller's authorization request across the upstream redirect.

The request is serialized into the OAuth `state` parameter instead of a
server-side session, so /callback can run on any replica.
"""

import base64
import binascii

from pydantic import ValidationError

from authproxy.errors import RequestTooLargeError, StateDecodeError
from authproxy.models import AuthorizationRequest

# Upstream providers and browsers both cap URL length.
MAX_STATE_LENGTH = 8192


def encode(request: AuthorizationRequest) -> str:
    """Encode an authorization request as a URL-safe string.

    Raises:
        RequestTooLargeError: If the encoded request exceeds MAX_STATE_LENGTH.
    """
    payload = request.model_dump_json().encode("utf-8")
    value = base64.urlsafe_b64encode(payload).decode("ascii")
    if len(value) > MAX_STATE_LENGTH:
        raise RequestTooLargeError()
    return value


def decode(value: str | None) -> AuthorizationRequest:
    """Decode a value produced by `encode`.

    Raises:
        StateDecodeError: On empty, oversized, truncated or otherwise malformed input.
    """
    if not value:
        raise StateDecodeError("Missing state")
    if len(value) > MAX_STATE_LENGTH:
        raise StateDecodeError("State too long")

    try:
        payload = base64.urlsafe_b64decode(value.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise StateDecodeError() from e

    try:
        return AuthorizationRequest.model_validate_json(payload)
    except ValidationError as e:
        raise StateDecodeError() from e
