"""Hands a resolved identity back to the authorization server."""

from loguru import logger

from authproxy.authserver import AuthorizationServer
from authproxy.models import AuthorizationRequest, Props, ResolvedIdentity


class AuthorizationCompleter:
    """Builds the grant payload and asks the authorization server to mint the grant."""

    def __init__(self, auth_server: AuthorizationServer, privileged_handles: frozenset[str] = frozenset()):
        self._auth_server = auth_server
        self._privileged_handles = privileged_handles

    def finish(self, identity: ResolvedIdentity, request: AuthorizationRequest, upstream_token: str) -> str:
        """Complete the caller's authorization.

        Args:
            identity: Identity resolved from the upstream provider
            request: The caller's original authorization request
            upstream_token: Upstream access token, forwarded inside the props

        Returns:
            The redirect target computed by the authorization server, unchanged
        """
        props = Props(
            login=identity.handle,
            name=identity.display_name,
            email=identity.email,
            access_token=upstream_token,
        )
        privileged = identity.handle in self._privileged_handles
        if privileged:
            logger.info(f"{identity.handle} is a privileged user")
        metadata = {
            "label": identity.label,
            "privileged": privileged,
        }

        redirect_to = self._auth_server.complete_authorization(
            metadata=metadata,
            props=props,
            request=request,
            scope=request.scope,
            user_id=identity.handle,
        )
        logger.info(f"Completed authorization for {identity.handle} (client: {request.client_id})")
        return redirect_to
