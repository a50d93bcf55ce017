"""Command line interface: run the server and manage secrets and test tokens."""

import asyncio
import base64
import logging
import re
import secrets
import signal
from pathlib import Path

import click

from cdnservices.auth.tokens import create_signed_token

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(package_name="cdnservices")
def cli():
    """CDN Services - image upload, storage and on-the-fly variants."""


def _hypercorn_config(host: str, port: int, workers: int, log_level: str, reload: bool):
    from hypercorn.config import Config

    config = Config()
    config.application_path = "cdnservices.asgi:app"
    config.bind = [f"{host}:{port}"]
    config.workers = workers
    config.loglevel = log_level.upper()
    config.use_reloader = reload
    config.include_server_header = False
    return config


async def _serve_until_signalled(config) -> None:
    from hypercorn.asyncio import serve as hypercorn_serve

    from cdnservices.asgi import app

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await hypercorn_serve(app, config, shutdown_trigger=stop.wait)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=3000, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", default=1, type=int, help="Number of worker processes")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, reload, workers, log_level):
    """Run the image service with Hypercorn."""
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)
    config = _hypercorn_config(host, port, 1 if reload else workers, log_level, reload)

    if reload or config.workers > 1:
        # Hypercorn's runner owns the reloader and worker processes
        from hypercorn.run import run

        run(config)
        return

    asyncio.run(_serve_until_signalled(config))


def _generate_key(fmt: str, length: int) -> str:
    if fmt == "hex":
        return secrets.token_hex(length)
    if fmt == "base64":
        return base64.b64encode(secrets.token_bytes(length)).decode("ascii")
    return secrets.token_urlsafe(length)


def _set_env_var(env_path: Path, name: str, value: str) -> None:
    """Replace ``name=...`` in an env file, or append it."""
    content = env_path.read_text() if env_path.exists() else ""
    line = f"{name}={value}"
    pattern = re.compile(rf"^{re.escape(name)}=.*$", re.MULTILINE)

    if pattern.search(content):
        content = pattern.sub(lambda _: line, content)
    else:
        if content and not content.endswith("\n"):
            content += "\n"
        content += line + "\n"
    env_path.write_text(content)


@cli.command()
@click.option("--write", type=click.Path(), default=None, help="Write SECRET_KEY to a .env file")
@click.option(
    "--format",
    "fmt",
    default="urlsafe",
    type=click.Choice(["urlsafe", "hex", "base64"]),
    help="Output format for the secret key",
)
@click.option("--length", default=32, type=int, help="Number of random bytes")
def secret(write, fmt, length):
    """Generate the key that signs bearer tokens."""
    key = _generate_key(fmt, length)
    if write:
        _set_env_var(Path(write), "SECRET_KEY", key)
        click.echo(f"SECRET_KEY written to {write}")
    else:
        click.echo(key)


@cli.command()
@click.argument("subject")
@click.option("--expires-in", default=7 * 24 * 3600, type=int, help="Lifetime in seconds")
@click.option("--claim", "claims", multiple=True, help="Extra claim as key=value (repeatable)")
@click.option("--secret-key", envvar="SECRET_KEY", default=None, help="Signing key (defaults to settings)")
def token(subject, expires_in, claims, secret_key):
    """Issue a bearer token for SUBJECT, for testing upload and delete."""
    payload = {"sub": subject}
    for claim in claims:
        key, sep, value = claim.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got {claim!r}", param_hint="--claim")
        payload[key] = value

    if secret_key is None:
        from cdnservices.config import get_settings

        secret_key = get_settings().secret_key

    click.echo(create_signed_token(payload, secret_key, expires_in))


if __name__ == "__main__":
    cli()
