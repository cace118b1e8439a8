"""OAuth proxy server.

This FastAPI app sits between an MCP client and GitHub. /authorize validates
the client's request and either shows a consent page or sends the browser to
GitHub; /callback exchanges GitHub's code, resolves the user and hands control
back to the authorization server, which redirects to the client.

Both requests are stateless: the client's request rides in the OAuth `state`
parameter and prior approvals live in a signed browser cookie.
"""

from dataclasses import dataclass

from fastapi import APIRouter, FastAPI, Form, Query, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from loguru import logger

from authproxy import state_codec
from authproxy.approval import ApprovalCookieManager
from authproxy.authserver import AuthorizationServer, InMemoryAuthorizationServer
from authproxy.completion import AuthorizationCompleter
from authproxy.config import ProxyConfig
from authproxy.consent import ConsentDecision, ConsentGate, render_approval_dialog
from authproxy.errors import BadRequestError, IdentityFetchError, UpstreamExchangeError
from authproxy.flow import FlowState, FlowTracker
from authproxy.oauth_proxy.providers import IdentityResolver, UpstreamAuthorizer


@dataclass
class ProxyServices:
    """Components wired together for one app instance."""

    config: ProxyConfig
    auth_server: AuthorizationServer
    authorizer: UpstreamAuthorizer
    resolver: IdentityResolver
    gate: ConsentGate
    completer: AuthorizationCompleter


router = APIRouter()


def _services(request: Request) -> ProxyServices:
    return request.app.state.services


def _callback_url(request: Request) -> str:
    return _services(request).config.callback_url(str(request.base_url))


def _redirect(decision: ConsentDecision) -> RedirectResponse:
    return RedirectResponse(decision.target, status_code=302, headers=decision.headers)


@router.get("/")
def root(request: Request):
    """Root endpoint with server status and available endpoints."""
    services = _services(request)
    return {
        "service": services.config.server_name,
        "status": "running",
        "upstream": services.config.upstream_api_url,
        "endpoints": {
            "health": "/health",
            "authorize": "/authorize",
            "callback": "/callback",
        },
    }


@router.get("/health")
def health_check(request: Request):
    """Health check endpoint for Kubernetes probes."""
    return {
        "status": "healthy",
        "upstream_configured": _services(request).authorizer.is_configured(),
    }


@router.get("/authorize")
def authorize(request: Request):
    """Entry point of the flow: consent page, or straight to GitHub."""
    services = _services(request)
    flow = FlowTracker(client_id=request.query_params.get("client_id"))

    try:
        decision = services.gate.decide(
            request.query_params,
            request.headers.get("cookie"),
            _callback_url(request),
        )
    except BadRequestError:
        flow.advance(FlowState.REJECTED_BAD_REQUEST)
        raise

    if not decision.skip:
        flow.advance(FlowState.CONSENT_PENDING)
        return HTMLResponse(content=render_approval_dialog(decision.render_context))

    flow.advance(FlowState.CONSENT_SKIPPED)
    flow.advance(FlowState.REDIRECTED_UPSTREAM)
    return _redirect(decision)


@router.post("/authorize")
def submit_consent(
    request: Request,
    state: str | None = Form(None, description="Encoded authorization request"),
    action: str = Form("approve", description="approve or deny"),
):
    """Consent form submission."""
    services = _services(request)

    if action == "deny":
        return _redirect(services.gate.deny(state))
    if action != "approve":
        raise BadRequestError("Invalid action")

    decision = services.gate.approve(state, request.headers.get("cookie"), _callback_url(request))
    flow = FlowTracker(client_id=decision.request.client_id, state=FlowState.CONSENT_PENDING)
    flow.advance(FlowState.CONSENT_SKIPPED)
    flow.advance(FlowState.REDIRECTED_UPSTREAM)
    return _redirect(decision)


@router.get("/callback")
def oauth_callback(
    request: Request,
    state: str | None = Query(None, description="Encoded authorization request"),
    code: str | None = Query(None, description="Upstream authorization code"),
    error: str | None = Query(None, description="Upstream OAuth error"),
):
    """GitHub redirect target: exchange the code, resolve the user, complete."""
    services = _services(request)
    flow = FlowTracker(state=FlowState.REDIRECTED_UPSTREAM)
    flow.advance(FlowState.UPSTREAM_CALLBACK_RECEIVED)

    try:
        oauth_request = state_codec.decode(state)
        flow.client_id = oauth_request.client_id
        services.gate.require_client(oauth_request)
        if error:
            logger.warning(f"Upstream authorization failed for client {oauth_request.client_id}: {error}")
            raise BadRequestError("Upstream authorization failed")
    except BadRequestError:
        flow.advance(FlowState.REJECTED_BAD_REQUEST)
        raise

    logger.info(f"🔔 OAuth callback received for client {oauth_request.client_id}")
    callback_url = _callback_url(request)

    try:
        access_token = services.authorizer.exchange_code_for_token(code, callback_url)
    except BadRequestError:
        flow.advance(FlowState.REJECTED_BAD_REQUEST)
        raise
    except UpstreamExchangeError:
        flow.advance(FlowState.REJECTED_UPSTREAM_ERROR)
        raise
    flow.advance(FlowState.TOKEN_EXCHANGED)

    try:
        identity = services.resolver.resolve(access_token)
    except IdentityFetchError:
        flow.advance(FlowState.REJECTED_IDENTITY_ERROR)
        raise
    flow.advance(FlowState.IDENTITY_RESOLVED)

    redirect_to = services.completer.finish(identity, oauth_request, access_token)
    flow.advance(FlowState.COMPLETED)
    return RedirectResponse(redirect_to, status_code=302)


async def bad_request_handler(request: Request, exc: BadRequestError):
    logger.warning(f"Bad request on {request.url.path}: {exc.message}")
    return PlainTextResponse(exc.message, status_code=400)


async def upstream_exchange_handler(request: Request, exc: UpstreamExchangeError):
    return Response(content=exc.body, status_code=exc.status_code, media_type=exc.content_type)


async def identity_fetch_handler(request: Request, exc: IdentityFetchError):
    return PlainTextResponse("Failed to fetch user identity", status_code=502)


def create_app(config: ProxyConfig | None = None, auth_server: AuthorizationServer | None = None) -> FastAPI:
    """Build the proxy app.

    Args:
        config: Proxy configuration; read from the environment if omitted
        auth_server: Authorization-server collaborator; an in-memory one if omitted

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = ProxyConfig.from_env()
    if auth_server is None:
        logger.warning("No authorization server supplied, using the in-memory one (single process only)")
        auth_server = InMemoryAuthorizationServer()

    authorizer = UpstreamAuthorizer(config)
    approvals = ApprovalCookieManager(config.cookie_encryption_key, ttl_seconds=config.approval_ttl_seconds)
    services = ProxyServices(
        config=config,
        auth_server=auth_server,
        authorizer=authorizer,
        resolver=IdentityResolver(config.upstream_api_url, timeout=config.http_timeout),
        gate=ConsentGate(auth_server, approvals, authorizer, config.server_info),
        completer=AuthorizationCompleter(auth_server, privileged_handles=config.privileged_handles),
    )

    app = FastAPI(
        title="GitHub OAuth Proxy",
        description="Brokers GitHub sign-in for MCP clients and re-issues authorization",
        version="1.0.0",
    )
    app.state.services = services
    app.include_router(router)
    app.add_exception_handler(BadRequestError, bad_request_handler)
    app.add_exception_handler(UpstreamExchangeError, upstream_exchange_handler)
    app.add_exception_handler(IdentityFetchError, identity_fetch_handler)

    logger.info(f"OAuth proxy initialized (upstream: {config.upstream_authorize_url})")
    return app


if __name__ == "__main__":
    from authproxy.cli import cli

    cli(["serve"])
