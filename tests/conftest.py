"""Root conftest.py for authproxy tests.

This module provides pytest configuration and fixtures that are available
to all test modules.
"""

import os
from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient

from authproxy.approval import ApprovalCookieManager
from authproxy.authserver import InMemoryAuthorizationServer
from authproxy.config import ProxyConfig
from authproxy.models import AuthorizationRequest, ClientMetadata

TEST_COOKIE_KEY = "test_cookie_signing_key_12345678901234567890123456789012"
CLIENT_ID = "mcp-client-123"
CLIENT_REDIRECT_URI = "http://localhost:6274/oauth/callback"


def pytest_configure(config):
    """Pytest configuration hook called before test collection.

    Sets up the environment variables the proxy requires so that code reading
    the environment behaves predictably in tests.

    Args:
        config: pytest Config object
    """
    # Use a consistent test key (not random) for predictable test behavior
    os.environ.setdefault("COOKIE_ENCRYPTION_KEY", TEST_COOKIE_KEY)
    os.environ.setdefault("GITHUB_CLIENT_ID", "test-github-client-id")
    os.environ.setdefault("GITHUB_CLIENT_SECRET", "test-github-client-secret")


@pytest.fixture
def proxy_config() -> ProxyConfig:
    """Proxy configuration pointing at GitHub.com with test credentials."""
    return ProxyConfig(
        github_client_id="test-github-client-id",
        github_client_secret="test-github-client-secret",
        cookie_encryption_key=TEST_COOKIE_KEY,
        privileged_handles=frozenset({"octocat"}),
    )


@pytest.fixture
def client_metadata() -> ClientMetadata:
    """A registered MCP client."""
    return ClientMetadata(
        client_id=CLIENT_ID,
        client_name="MCP Inspector",
        redirect_uris=[CLIENT_REDIRECT_URI],
        logo_uri="https://example.com/logo.png",
        client_uri="https://example.com",
    )


@pytest.fixture
def auth_server(client_metadata) -> InMemoryAuthorizationServer:
    """In-memory authorization server with one registered client."""
    return InMemoryAuthorizationServer(clients=[client_metadata])


@pytest.fixture
def auth_request() -> AuthorizationRequest:
    """The MCP client's authorization request."""
    return AuthorizationRequest(
        client_id=CLIENT_ID,
        redirect_uri=CLIENT_REDIRECT_URI,
        scope=["mcp"],
        state="client-state-xyz",
        code_challenge="E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM",
        code_challenge_method="S256",
    )


@pytest.fixture
def auth_params(auth_request) -> dict[str, str]:
    """Query parameters of a GET /authorize for `auth_request`."""
    return {
        "response_type": "code",
        "client_id": auth_request.client_id,
        "redirect_uri": auth_request.redirect_uri,
        "scope": "mcp",
        "state": auth_request.state,
        "code_challenge": auth_request.code_challenge,
        "code_challenge_method": auth_request.code_challenge_method,
    }


@pytest.fixture
def approvals() -> ApprovalCookieManager:
    return ApprovalCookieManager(TEST_COOKIE_KEY)


@pytest.fixture
def approved_cookie(approvals) -> str:
    """A Cookie header approving the test client."""
    return cookie_header_from(approvals.build_approval_headers(None, CLIENT_ID))


@pytest.fixture
def app(proxy_config, auth_server):
    from authproxy.oauth_proxy.main import create_app

    return create_app(proxy_config, auth_server)


@pytest.fixture
def test_client(app) -> TestClient:
    """FastAPI test client that does not follow redirects."""
    return TestClient(app, follow_redirects=False)


def cookie_header_from(headers: dict[str, str]) -> str:
    """Turn the Set-Cookie header from build_approval_headers into a Cookie header."""
    return headers["Set-Cookie"].split(";", 1)[0]


def mock_response(status_code: int = 200, json_data=None, text: str | None = None, content_type: str | None = None):
    """Build a stand-in for a requests.Response.

    Args:
        status_code: HTTP status
        json_data: Value returned by .json(); if None, .json() raises ValueError
        text: Response body; defaults to the JSON-ish repr of json_data
        content_type: Content-Type header

    Returns:
        MagicMock behaving like requests.Response
    """
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text if text is not None else ("" if json_data is None else str(json_data))
    response.headers = {"Content-Type": content_type or ("application/json" if json_data is not None else "text/plain")}

    if json_data is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = json_data

    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error", response=response)
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def github_profile() -> dict:
    """GitHub /user payload for an account with a private email."""
    return {"login": "octocat", "id": 583231, "name": "The Octocat", "email": None}


@pytest.fixture
def github_emails() -> list[dict]:
    """GitHub /user/emails payload."""
    return [
        {"email": "a@x", "primary": False, "verified": True, "visibility": None},
        {"email": "b@x", "primary": True, "verified": True, "visibility": "private"},
    ]
