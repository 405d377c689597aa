import asyncio
import logging
import sys

import click

from .client.register import RegistrationError, register_tunnel
from .server.app import run_server
from .server.config import DEFAULT_AUTH_TOKEN


@click.group()
@click.option("--log-level", default="INFO", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
              envvar="TUNNELRELAY_LOG_LEVEL", help="Log level (can be set via TUNNELRELAY_LOG_LEVEL)")
@click.pass_context
def cli(ctx, log_level):
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Suppress httpx request logs to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--host", default="0.0.0.0", envvar="TUNNELRELAY_HOST",
              help="Host to bind (default: 0.0.0.0, env: TUNNELRELAY_HOST)")
@click.option("--port", default=3000, type=int, envvar="PORT",
              help="Port to bind (default: 3000, env: PORT)")
@click.option("--redis-url", default=None, envvar="REDIS_URL",
              help="Redis connection URL (default: redis://localhost:6379/0, env: REDIS_URL)")
@click.pass_context
def serve(ctx, host, port, redis_url):
    """Start the proxy server."""
    run_server(host=host, port=port, redis_url=redis_url, log_level=ctx.obj["log_level"])


@cli.command()
@click.option("--proxy-url", required=True, envvar="TUNNELRELAY_PROXY_URL",
              help="Public address of the proxy (env: TUNNELRELAY_PROXY_URL)")
@click.option("--url", "tunnel_url", required=True, envvar="TUNNELRELAY_TUNNEL_URL",
              help="Public address of the tunnel to register (env: TUNNELRELAY_TUNNEL_URL)")
@click.option("--token", default=DEFAULT_AUTH_TOKEN, envvar="PROXY_AUTH_TOKEN",
              help="Registration secret (env: PROXY_AUTH_TOKEN)")
def register(proxy_url, tunnel_url, token):
    """Point a running proxy at a tunnel address."""
    try:
        result = asyncio.run(register_tunnel(proxy_url, tunnel_url, token))
    except RegistrationError as e:
        status = f" ({e.status_code})" if e.status_code else ""
        click.echo(f"Registration failed{status}: {e}", err=True)
        if e.help:
            click.echo(e.help, err=True)
        sys.exit(1)

    click.echo(f"Registered {result['registeredUrl']} at {result['timestamp']}")


if __name__ == "__main__":
    cli()
