"""Command line interface for the OAuth proxy.

Usage:
    authproxy serve                     # Run the proxy server
    authproxy decode-state STATE        # Show the request carried in a state value
    authproxy inspect-cookie VALUE      # Check an approval cookie against the signing key
"""

import json
import sys

import click
from loguru import logger

from authproxy import state_codec
from authproxy.approval import COOKIE_NAME, DEFAULT_TTL_SECONDS, ApprovalCookieManager
from authproxy.config import ProxyConfig
from authproxy.errors import ConfigurationError, StateDecodeError


@click.group()
def cli():
    """GitHub OAuth proxy for MCP clients."""
    pass


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind")
@click.option("--port", type=int, default=None, help="Port (default: AUTHPROXY_PORT or 8788)")
@click.option("--env-file", default=None, help="Path to a .env file")
def serve(host: str, port: int | None, env_file: str | None):
    """Run the proxy server."""
    import uvicorn

    from authproxy.oauth_proxy.main import create_app

    try:
        config = ProxyConfig.from_env(env_file)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    logger.remove()
    logger.add(sys.stderr, level=config.log_level.upper())

    port = port or config.port
    logger.info(f"Starting OAuth proxy on {host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port, log_level=config.log_level.lower())


@cli.command("decode-state")
@click.argument("state")
def decode_state(state: str):
    """Show the authorization request carried in a STATE value."""
    try:
        request = state_codec.decode(state)
    except StateDecodeError as e:
        raise click.ClickException(f"Cannot decode state: {e}") from e

    click.echo(json.dumps(request.model_dump(), indent=2))


@cli.command("inspect-cookie")
@click.argument("value")
@click.option("--key", envvar="COOKIE_ENCRYPTION_KEY", default=None, help="Signing key (default: COOKIE_ENCRYPTION_KEY)")
@click.option("--ttl-days", type=int, default=DEFAULT_TTL_SECONDS // 86400, show_default=True, help="Approval lifetime")
def inspect_cookie(value: str, key: str | None, ttl_days: int):
    """Check whether an approval cookie VALUE verifies and list its clients."""
    if not key:
        raise click.ClickException("No signing key: pass --key or set COOKIE_ENCRYPTION_KEY")

    manager = ApprovalCookieManager(key, ttl_seconds=ttl_days * 86400)
    clients = manager.approved_clients(f"{COOKIE_NAME}={value}")

    if not clients:
        click.echo("❌ Cookie is invalid, expired or empty")
        sys.exit(1)

    click.echo(f"✅ Cookie is valid and approves {len(clients)} client(s):")
    for client_id in sorted(clients):
        click.echo(f"  - {client_id}")


if __name__ == "__main__":
    cli()
