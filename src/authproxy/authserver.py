"""Authorization-server collaborator.

The proxy does not own clients, grants or issued tokens. It talks to an
authorization server through the narrow `AuthorizationServer` contract below.
`InMemoryAuthorizationServer` implements it for local runs and tests.
"""

import secrets
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

from loguru import logger
from pydantic import ValidationError

from authproxy.errors import BadRequestError
from authproxy.models import AuthorizationRequest, ClientMetadata, Grant, Props


class AuthorizationServer(ABC):
    """Contract the proxy needs from the authorization server."""

    @abstractmethod
    def parse_auth_request(self, params: Mapping[str, str]) -> AuthorizationRequest:
        """Parse the query parameters of an inbound /authorize request.

        Raises:
            BadRequestError: If the request is malformed
        """

    @abstractmethod
    def lookup_client(self, client_id: str) -> ClientMetadata | None:
        """Get a registered client, or None if unknown."""

    @abstractmethod
    def complete_authorization(
        self,
        *,
        metadata: dict[str, Any],
        props: Props,
        request: AuthorizationRequest,
        scope: list[str],
        user_id: str,
    ) -> str:
        """Mint the grant for a completed flow.

        Returns:
            The URL to redirect the user agent back to
        """


def append_query(url: str, params: dict[str, str]) -> str:
    """Append query parameters to a URL that may already carry some."""
    parts = urlsplit(url)
    query = urlencode(params)
    if parts.query:
        query = f"{parts.query}&{query}"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


class InMemoryAuthorizationServer(AuthorizationServer):
    """Process-local authorization server.

    Keeps registered clients and issued grants in dictionaries. Suitable for a
    single process only; real deployments plug in a shared store.
    """

    def __init__(self, clients: list[ClientMetadata] | None = None):
        self._lock = threading.Lock()
        self._clients: dict[str, ClientMetadata] = {}
        self._grants: dict[str, Grant] = {}
        for client in clients or []:
            self.register_client(client)

    def register_client(self, client: ClientMetadata) -> ClientMetadata:
        """Register (or replace) a client."""
        with self._lock:
            self._clients[client.client_id] = client
        logger.debug(f"Registered client {client.client_id} ({client.display_name})")
        return client

    def lookup_client(self, client_id: str) -> ClientMetadata | None:
        with self._lock:
            return self._clients.get(client_id)

    def parse_auth_request(self, params: Mapping[str, str]) -> AuthorizationRequest:
        client_id = params.get("client_id")
        if not client_id:
            raise BadRequestError("Missing client_id")

        response_type = params.get("response_type", "code")
        if response_type != "code":
            raise BadRequestError(f"Unsupported response_type: {response_type}")

        client = self.lookup_client(client_id)
        redirect_uri = params.get("redirect_uri")
        if client is not None:
            if not redirect_uri and len(client.redirect_uris) == 1:
                redirect_uri = client.redirect_uris[0]
            if redirect_uri not in client.redirect_uris:
                raise BadRequestError("Invalid redirect_uri")
        if not redirect_uri:
            raise BadRequestError("Missing redirect_uri")

        try:
            return AuthorizationRequest(
                response_type=response_type,
                client_id=client_id,
                redirect_uri=redirect_uri,
                scope=params.get("scope", "").split(),
                state=params.get("state", ""),
                code_challenge=params.get("code_challenge"),
                code_challenge_method=params.get("code_challenge_method"),
            )
        except ValidationError as e:
            raise BadRequestError() from e

    def complete_authorization(
        self,
        *,
        metadata: dict[str, Any],
        props: Props,
        request: AuthorizationRequest,
        scope: list[str],
        user_id: str,
    ) -> str:
        if self.lookup_client(request.client_id) is None:
            raise BadRequestError("Unknown client")

        code = secrets.token_urlsafe(32)
        grant = Grant(
            code=code,
            client_id=request.client_id,
            user_id=user_id,
            scope=scope,
            metadata=metadata,
            props=props,
            request=request,
        )
        with self._lock:
            self._grants[code] = grant

        logger.info(f"Issued grant for user {user_id} to client {request.client_id}")
        params = {"code": code}
        if request.state:
            params["state"] = request.state
        return append_query(request.redirect_uri, params)

    def get_grant(self, code: str) -> Grant | None:
        """Get a previously issued grant by its code."""
        with self._lock:
            return self._grants.get(code)

    def grants_for_user(self, user_id: str) -> list[Grant]:
        """List the grants issued to one user."""
        with self._lock:
            return [grant for grant in self._grants.values() if grant.user_id == user_id]
