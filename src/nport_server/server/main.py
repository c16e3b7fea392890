"""NPort Server - Main entry point."""

from __future__ import annotations

import asyncio
import logging
import os

import click
import dotenv
import structlog
from rich.console import Console

from nport_server import __version__
from nport_server.core.config import Env, ServerSettings, get_settings, resolve_config
from nport_server.core.exceptions import NPortError
from nport_server.providers.base import ProviderFactory
from nport_server.providers.cloudflare import cloudflare_provider_factory
from nport_server.server.app import NPortServer
from nport_server.tasks.cleanup import find_expired_tunnels, run_cleanup
from nport_server.tunnels.lifetime import MS_PER_HOUR, get_tunnel_max_age_ms
from nport_server.tunnels.models import Tunnel

console = Console()

BANNER = """
███╗   ██╗██████╗  ██████╗ ██████╗ ████████╗
████╗  ██║██╔══██╗██╔═══██╗██╔══██╗╚══██╔══╝
██╔██╗ ██║██████╔╝██║   ██║██████╔╝   ██║
██║╚██╗██║██╔═══╝ ██║   ██║██╔══██╗   ██║
██║ ╚████║██║     ╚██████╔╝██║  ██║   ██║
╚═╝  ╚═══╝╚═╝      ╚═════╝ ╚═╝  ╚═╝   ╚═╝
                TUNNEL SERVER
"""

LOG_LEVELS = ["debug", "info", "warning", "error"]


def configure_logging(log_level: str) -> None:
    """Configure structlog to drop events below ``log_level``."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
    )


def load_env() -> Env:
    """Read provider bindings from the process environment."""
    return Env.from_mapping(os.environ)


@click.group()
@click.version_option(__version__, prog_name="nport-server")
def main() -> None:
    """NPort tunnel provisioning server."""
    dotenv.load_dotenv()


@main.command()
@click.option("--host", help="Bind host (default: NPORT_HOST or 0.0.0.0)")
@click.option("--port", "-p", type=int, help="Bind port (default: NPORT_PORT or 8787)")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    help="Log level (default: NPORT_LOG_LEVEL or info)",
)
@click.option(
    "--no-cleanup",
    is_flag=True,
    default=False,
    help="Disable the background expired-tunnel sweep",
)
def serve(host: str | None, port: int | None, log_level: str | None, no_cleanup: bool) -> None:
    """Run the tunnel provisioning server."""
    settings = get_settings()
    overrides = {
        key: value
        for key, value in {"host": host, "port": port, "log_level": log_level}.items()
        if value is not None
    }
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(settings.log_level)
    console.print(BANNER, style="cyan")

    env = load_env()
    try:
        config = resolve_config(env)
    except NPortError as e:
        # Still serve: POST requests answer with the same message.
        console.print(f"Warning: {e.message}", style="yellow")
    else:
        console.print(f"Domain: {config.domain}", style="dim")

    max_age_hours = get_tunnel_max_age_ms(env) / MS_PER_HOUR
    console.print(f"Listening on {settings.host}:{settings.port}", style="yellow")
    console.print(f"Tunnel max age: {max_age_hours:g}h", style="dim")
    if no_cleanup or settings.cleanup_interval <= 0:
        console.print("Expired-tunnel sweep: disabled", style="dim")
    else:
        console.print(
            f"Expired-tunnel sweep: every {settings.cleanup_interval:g}s", style="dim"
        )

    asyncio.run(run_server(env, settings, cleanup_enabled=not no_cleanup))


async def run_server(env: Env, settings: ServerSettings, cleanup_enabled: bool = True) -> None:
    """Run the server until interrupted."""
    server = NPortServer(env, settings, cleanup_enabled=cleanup_enabled)

    try:
        await server.start()
        console.print("Server started, press Ctrl+C to stop", style="green")

        await asyncio.Event().wait()
    except KeyboardInterrupt:
        console.print("\nShutting down...", style="yellow")
    finally:
        await server.stop()


@main.command()
@click.option("--dry-run", is_flag=True, default=False, help="List expired tunnels only")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default="warning",
    show_default=True,
    help="Log level",
)
def cleanup(dry_run: bool, log_level: str) -> None:
    """Delete tunnels older than the configured max age."""
    configure_logging(log_level)
    settings = get_settings()
    env = load_env()
    factory = cloudflare_provider_factory(
        base_url=settings.api_base_url,
        timeout=settings.provider_timeout,
    )

    try:
        if dry_run:
            tunnels = asyncio.run(_find_expired(env, factory))
            verb = "Expired"
        else:
            tunnels = asyncio.run(run_cleanup(env, factory))
            verb = "Deleted"
    except NPortError as e:
        console.print(f"Error: {e.message}", style="red")
        raise SystemExit(1) from e

    for tunnel in tunnels:
        console.print(f"  {tunnel.name} ({tunnel.id}) created {tunnel.created_at}", style="dim")
    console.print(f"{verb} {len(tunnels)} tunnel(s)", style="green")


async def _find_expired(env: Env, factory: ProviderFactory) -> list[Tunnel]:
    config = resolve_config(env)
    async with factory(config) as provider:
        return await find_expired_tunnels(env, provider)


@main.command("max-age")
def max_age() -> None:
    """Show the effective tunnel max age."""
    max_age_ms = get_tunnel_max_age_ms(load_env())
    console.print(f"{max_age_ms / MS_PER_HOUR:g} hours ({max_age_ms:.0f} ms)")


if __name__ == "__main__":
    main()
