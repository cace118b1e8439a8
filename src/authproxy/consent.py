"""Consent gate: prompt the user, or go straight to the upstream provider.

A browser that already approved a client (signed approval cookie) is sent
upstream directly. Otherwise a consent page is rendered; submitting it posts
the encoded request back to /authorize, which records the approval.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from html import escape

from loguru import logger

from authproxy import state_codec
from authproxy.approval import ApprovalCookieManager
from authproxy.authserver import AuthorizationServer, append_query
from authproxy.errors import BadRequestError
from authproxy.models import AuthorizationRequest, ClientMetadata, ServerInfo
from authproxy.oauth_proxy.providers import UpstreamAuthorizer


@dataclass(frozen=True)
class ConsentContext:
    """Everything the consent page needs."""

    client: ClientMetadata
    server: ServerInfo
    request: AuthorizationRequest

    @property
    def encoded_state(self) -> str:
        return state_codec.encode(self.request)


@dataclass(frozen=True)
class ConsentDecision:
    """Outcome of the consent gate.

    `skip` means no prompt is needed and the user agent goes to `target`
    with `headers` attached. Otherwise `render_context` describes the prompt.
    """

    skip: bool
    request: AuthorizationRequest
    target: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    render_context: ConsentContext | None = None


class ConsentGate:
    """Decides whether an authorization request needs the user's consent."""

    def __init__(
        self,
        auth_server: AuthorizationServer,
        approvals: ApprovalCookieManager,
        authorizer: UpstreamAuthorizer,
        server_info: ServerInfo,
    ):
        self._auth_server = auth_server
        self._approvals = approvals
        self._authorizer = authorizer
        self._server_info = server_info

    def decide(self, params: Mapping[str, str], cookie_header: str | None, callback_url: str) -> ConsentDecision:
        """Handle GET /authorize.

        Raises:
            BadRequestError: If the request is invalid, too large or the client is unknown
        """
        request = self._auth_server.parse_auth_request(params)
        client = self.require_client(request)
        # both outcomes carry the request in `state`; oversized ones stop here
        state_codec.encode(request)

        if self._approvals.has_approved(cookie_header, request.client_id):
            logger.info(f"Client {request.client_id} already approved, skipping consent")
            return ConsentDecision(
                skip=True,
                request=request,
                target=self._authorizer.build_redirect(request, callback_url),
            )

        logger.info(f"Requesting consent for client {request.client_id}")
        return ConsentDecision(
            skip=False,
            request=request,
            render_context=ConsentContext(client=client, server=self._server_info, request=request),
        )

    def approve(self, form_state: str | None, cookie_header: str | None, callback_url: str) -> ConsentDecision:
        """Handle the consent form being accepted (POST /authorize).

        Raises:
            BadRequestError: If the posted state is invalid or names an unknown client
        """
        request = state_codec.decode(form_state)
        self.require_client(request)

        logger.info(f"User approved client {request.client_id}")
        return ConsentDecision(
            skip=True,
            request=request,
            target=self._authorizer.build_redirect(request, callback_url),
            headers=self._approvals.build_approval_headers(cookie_header, request.client_id),
        )

    def deny(self, form_state: str | None) -> ConsentDecision:
        """Handle the consent form being declined.

        The caller gets an `access_denied` error on its redirect URI and no
        approval is recorded.
        """
        request = state_codec.decode(form_state)
        self.require_client(request)

        logger.info(f"User declined client {request.client_id}")
        params = {"error": "access_denied"}
        if request.state:
            params["state"] = request.state
        return ConsentDecision(skip=True, request=request, target=append_query(request.redirect_uri, params))

    def require_client(self, request: AuthorizationRequest) -> ClientMetadata:
        """Get the request's client, insisting it is registered with that redirect URI."""
        client = self._auth_server.lookup_client(request.client_id)
        if client is None:
            logger.warning(f"Rejecting authorization request for unknown client {request.client_id}")
            raise BadRequestError("Unknown client")
        # state is unsigned; the redirect target must still be registered
        if request.redirect_uri not in client.redirect_uris:
            logger.warning(f"Rejecting unregistered redirect_uri for client {request.client_id}")
            raise BadRequestError("Invalid redirect_uri")
        return client


def render_approval_dialog(context: ConsentContext) -> str:
    """Render the consent page for a client."""
    client = context.client
    server = context.server
    client_name = escape(client.display_name)
    server_name = escape(server.name)

    server_logo = f'<img src="{escape(server.logo)}" alt="" style="width: 48px; height: 48px;">' if server.logo else ""
    server_description = (
        f'<p style="color: #6c757d;">{escape(server.description)}</p>' if server.description else ""
    )
    client_logo = (
        f'<img src="{escape(client.logo_uri)}" alt="" style="width: 32px; height: 32px;">' if client.logo_uri else ""
    )

    details = []
    if client.client_uri:
        details.append(f'<li>Website: <a href="{escape(client.client_uri)}">{escape(client.client_uri)}</a></li>')
    if context.request.redirect_uri:
        details.append(f"<li>Redirects to: <code>{escape(context.request.redirect_uri)}</code></li>")
    if client.policy_uri:
        details.append(f'<li><a href="{escape(client.policy_uri)}">Privacy policy</a></li>')
    if client.tos_uri:
        details.append(f'<li><a href="{escape(client.tos_uri)}">Terms of service</a></li>')
    if client.contacts:
        details.append(f"<li>Contact: {escape(', '.join(client.contacts))}</li>")

    details_html = "".join(details)

    return f"""
    <html>
        <head>
            <title>{client_name} | Authorization Request</title>
            <meta name="viewport" content="width=device-width, initial-scale=1">
        </head>
        <body style="font-family: Arial, sans-serif; padding: 50px; text-align: center; max-width: 600px; margin: 0 auto;">
            {server_logo}
            <h1>{server_name}</h1>
            {server_description}
            <h2>{client_logo} {client_name} is requesting access</h2>
            <ul style="list-style: none; padding: 0; color: #6c757d;">
                {details_html}
            </ul>
            <p>This MCP client is requesting to be authorized on {server_name}.
               If you approve, you will be redirected to complete authentication.</p>
            <form method="post" action="/authorize">
                <input type="hidden" name="state" value="{escape(context.encoded_state)}">
                <button type="submit" name="action" value="deny">Cancel</button>
                <button type="submit" name="action" value="approve">Approve</button>
            </form>
        </body>
    </html>
    """
