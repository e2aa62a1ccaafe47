"""
Geofence command-line interface.

Commands:
- validate-config: Load and validate the configuration, print the result
- check ADDRESS: Run one admission decision for a peer address
"""

import asyncio
from typing import Optional

import click

from geofence.src import __version__
from geofence.src.config.settings import load_settings
from geofence.src.config.validation import GeofenceConfig, RadiusMode, validate_config
from geofence.src.services.engine import GeofenceEngine
from geofence.src.services.exceptions import ConfigurationError, GeofenceError
from geofence.src.utils.logging_config import init_logging


# Exit codes
EXIT_DENIED = 1
EXIT_ERROR = 2


class GeofenceCliError(click.ClickException):
    exit_code = EXIT_ERROR


def _load_config(config_path: Optional[str]) -> GeofenceConfig:
    try:
        return validate_config(load_settings(config_path))
    except ConfigurationError as e:
        raise GeofenceCliError(f"Invalid configuration: {e}")


def _describe_mode(config: GeofenceConfig) -> str:
    if isinstance(config.proximity_mode, RadiusMode):
        return f"radius {config.proximity_mode.kilometers} km"
    return f"sensitivity {config.proximity_mode.level}"


@click.group()
@click.version_option(version=__version__, prog_name="geofence")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML configuration file (default: GEOFENCE_CONFIG_PATH or environment only)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str]) -> None:
    """
    Geofence - admit only nearby clients.

    Use 'geofence COMMAND --help' for more information on a command.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    init_logging()


@cli.command("validate-config")
@click.pass_context
def validate_config_command(ctx: click.Context) -> None:
    """Validate the configuration and print the effective values."""
    config = _load_config(ctx.obj["config_path"])

    cache_ttl = str(config.cache_ttl) if config.cache_ttl is not None else "never expires"
    cache_backend = f"redis {config.redis.address} db {config.redis.db_index}" if config.redis else "in-process"

    click.echo(click.style("Configuration is valid", fg="green", bold=True))
    click.echo(f"  Provider:          {config.provider.value}")
    click.echo(f"  Reference address: {config.reference_address or 'this host'}")
    click.echo(f"  Proximity:         {_describe_mode(config)}")
    click.echo(f"  Cache TTL:         {cache_ttl}")
    click.echo(f"  Cache backend:     {cache_backend}")
    click.echo(f"  Private addresses: {'allowed' if config.allow_private_addresses else 'checked'}")
    click.echo(f"  Allowlist:         {', '.join(sorted(config.allowlist)) or '(empty)'}")
    click.echo(f"  Denial status:     {config.deny_status_code}")


async def _decide(config: GeofenceConfig, address: str):
    engine = GeofenceEngine.from_config(config)
    try:
        return await engine.decide(address)
    finally:
        await engine.aclose()


@cli.command("check")
@click.argument("address")
@click.pass_context
def check(ctx: click.Context, address: str) -> None:
    """
    Run the admission decision for ADDRESS (host:port, e.g. 203.0.113.9:443).

    Exits with 0 when allowed, 1 when denied and 2 on errors.
    """
    config = _load_config(ctx.obj["config_path"])

    try:
        result = asyncio.run(_decide(config, address))
    except GeofenceError as e:
        raise GeofenceCliError(str(e))

    if result.allowed:
        click.echo(click.style(f"ALLOWED {result.address} ({result.reason.value})", fg="green"))
        return

    click.echo(click.style(
        f"DENIED {result.address} ({result.reason.value}, status {result.status_code})",
        fg="red",
    ))
    ctx.exit(EXIT_DENIED)


if __name__ == "__main__":
    cli()
