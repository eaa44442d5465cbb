"""
Main entry point for the Jumpgate application.

This module provides the command-line interface: running the gate,
managing its configuration and the key helpers used to populate the
credential store.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import asyncssh
import typer
from loguru import logger

from .application.startup import ApplicationStartup
from .core.domain.session import split_target
from .core.exceptions import DialError
from .infrastructure.config.loader import ConfigLoader
from .infrastructure.config.models import ApplicationConfig
from .infrastructure.logging.setup import setup_logging

# Create CLI application
cli = typer.Typer(
    name="jumpgate",
    help="SSH bastion that mediates per-target credentials and relays channels"
)


@cli.command()
def start(
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    ),
    host: Optional[str] = typer.Option(
        None, "--host", help="Listen address"
    ),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="Listen port"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level"
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Enable debug mode"
    )
) -> None:
    """Start the jump gate."""

    try:
        config = ConfigLoader().load_config(config_file)
    except (OSError, ValueError) as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    # Override with command line arguments
    if host:
        config.server.host = host
    if port:
        config.server.port = port
    if log_level:
        config.logging.level = log_level.upper()
    if debug:
        config.debug = True
        config.logging.level = "DEBUG"

    setup_logging(config.logging)

    logger.info(f"Starting {config.name} v{config.version}")
    logger.info(f"Environment: {config.environment}")
    logger.info(f"Debug mode: {config.debug}")

    try:
        asyncio.run(run_application(config))
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error(f"Application failed: {e}")
        sys.exit(1)


@cli.command()
def init_config(
    output: str = typer.Option(
        "config.yaml", "--output", "-o", help="Output configuration file"
    ),
    format: str = typer.Option(
        "yaml", "--format", "-f", help="Configuration format (yaml/json)"
    )
) -> None:
    """Generate a default configuration file."""

    config = ApplicationConfig()
    config_loader = ConfigLoader()

    try:
        config_loader.save_config(config, output, format)
        typer.echo(f"Default configuration saved to {output}")
    except ValueError as e:
        typer.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
def validate_config(
    config_file: str = typer.Argument(...,
                                      help="Configuration file to validate")
) -> None:
    """Validate a configuration file."""

    config_loader = ConfigLoader()

    try:
        config = config_loader.load_config(config_file)
        typer.echo(f"Configuration file {config_file} is valid")
        typer.echo(f"Application: {config.name} v{config.version}")
        typer.echo(f"Listen: {config.server.host}:{config.server.port}")
        typer.echo(f"Credential store: {config.credentials.backend}")
    except (OSError, ValueError, TypeError) as e:
        typer.echo(f"Configuration validation failed: {e}", err=True)
        sys.exit(1)


@cli.command()
def fingerprint(
    key_file: str = typer.Argument(...,
                                   help="Public or private key file")
) -> None:
    """Print the SHA256 fingerprint of a key, as used by the ACL."""

    try:
        key = asyncssh.read_public_key(key_file)
    except (OSError, asyncssh.KeyImportError):
        try:
            key = asyncssh.read_private_key(key_file)
        except (OSError, asyncssh.KeyImportError) as e:
            typer.echo(f"Cannot read key {key_file}: {e}", err=True)
            sys.exit(1)

    typer.echo(key.get_fingerprint())


@cli.command()
def scan_host_key(
    target: str = typer.Argument(..., help="Target as host:port"),
    timeout: float = typer.Option(10.0, "--timeout", help="Connect timeout")
) -> None:
    """Print the host key fingerprint a target offers, for pinning."""

    try:
        host, port = split_target(target)
    except DialError as e:
        typer.echo(str(e), err=True)
        sys.exit(1)

    async def scan() -> Optional[asyncssh.SSHKey]:
        return await asyncssh.get_server_host_key(
            host, port, connect_timeout=timeout)

    try:
        key = asyncio.run(scan())
    except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
        typer.echo(f"Cannot reach {target}: {e}", err=True)
        sys.exit(1)

    if key is None:
        typer.echo(f"{target} did not offer a host key", err=True)
        sys.exit(1)

    typer.echo(f"{target} {key.get_algorithm()} {key.get_fingerprint()}")


@cli.command()
def generate_host_key(
    path: str = typer.Argument("ssh_host_ed25519_key",
                               help="Where to write the private key"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing key")
) -> None:
    """Generate an ed25519 server host key."""

    key_path = Path(path)
    if key_path.exists() and not force:
        typer.echo(f"{path} already exists, use --force to overwrite", err=True)
        sys.exit(1)

    key = asyncssh.generate_private_key('ssh-ed25519')
    key.write_private_key(str(key_path))
    key.write_public_key(str(key_path) + '.pub')
    key_path.chmod(0o600)

    typer.echo(f"Host key written to {path}")
    typer.echo(key.get_fingerprint())


async def run_application(config: ApplicationConfig) -> None:
    """
    Run the gate until SIGINT or SIGTERM.

    Args:
        config: Application configuration
    """
    startup = ApplicationStartup(config)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _request_shutdown, signum, stop_event)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(
                _request_shutdown, s, stop_event))

    try:
        await startup.start_application()
        await stop_event.wait()
    finally:
        await startup.stop_application()


def _request_shutdown(signum: int, stop_event: asyncio.Event) -> None:
    logger.info(f"Received signal {signum}, initiating shutdown...")
    stop_event.set()


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
