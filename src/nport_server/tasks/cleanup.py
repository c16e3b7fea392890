"""Scheduled task to delete expired tunnels.

Tunnels older than the configured max age (TUNNEL_MAX_AGE_HOURS, default
DEFAULT_TUNNEL_MAX_AGE_HOURS) are deleted together with their DNS records.
Tunnels without a creation time are left alone.
"""

from __future__ import annotations

import asyncio

import structlog

from nport_server.core.config import Env, resolve_config
from nport_server.core.exceptions import NPortError, ProviderError
from nport_server.providers.base import ProviderFactory, TunnelProvider
from nport_server.tunnels.lifetime import Clock, get_tunnel_max_age_ms, is_tunnel_expired, utc_now
from nport_server.tunnels.models import Tunnel

logger = structlog.get_logger()


async def find_expired_tunnels(
    env: Env,
    provider: TunnelProvider,
    now: Clock = utc_now,
) -> list[Tunnel]:
    """List tunnels that have outlived the configured max age."""
    max_age_ms = get_tunnel_max_age_ms(env)
    tunnels = await provider.list_tunnels()
    return [tunnel for tunnel in tunnels if is_tunnel_expired(tunnel, max_age_ms, now)]


async def cleanup_expired_tunnels(
    env: Env,
    provider: TunnelProvider,
    now: Clock = utc_now,
) -> list[Tunnel]:
    """Delete expired tunnels.

    A failed deletion is logged and does not stop the sweep.

    Args:
        env: Provider bindings (for the max age).
        provider: An entered provider.
        now: Clock used for expiry checks.

    Returns:
        Tunnels that were deleted.
    """
    expired = await find_expired_tunnels(env, provider, now)
    deleted: list[Tunnel] = []

    for tunnel in expired:
        try:
            await provider.delete_tunnel(tunnel)
        except ProviderError as e:
            logger.error(
                "Failed to delete expired tunnel",
                tunnel_id=tunnel.id,
                name=tunnel.name,
                error=str(e),
            )
            continue
        deleted.append(tunnel)

    if deleted:
        logger.info("Cleaned up expired tunnels", count=len(deleted), found=len(expired))

    return deleted


async def run_cleanup(
    env: Env,
    provider_factory: ProviderFactory,
    now: Clock = utc_now,
) -> list[Tunnel]:
    """Resolve configuration, open a provider and run one sweep.

    Raises:
        ConfigError: Required bindings are missing.
        ProviderError: Tunnels could not be listed.
    """
    config = resolve_config(env)
    async with provider_factory(config) as provider:
        return await cleanup_expired_tunnels(env, provider, now)


async def run_cleanup_loop(
    env: Env,
    provider_factory: ProviderFactory,
    interval_seconds: float = 3600.0,
) -> None:
    """Run the sweep in a loop.

    Args:
        env: Provider bindings.
        provider_factory: Builds a provider per sweep.
        interval_seconds: Seconds between sweeps.
    """
    logger.info("Starting tunnel cleanup loop", interval_seconds=interval_seconds)

    while True:
        try:
            await run_cleanup(env, provider_factory)
        except NPortError as e:
            logger.error("Tunnel cleanup failed", error=e.message)
        except Exception:
            logger.exception("Tunnel cleanup error")

        await asyncio.sleep(interval_seconds)


def start_cleanup_task(
    env: Env,
    provider_factory: ProviderFactory,
    interval_seconds: float = 3600.0,
) -> asyncio.Task[None]:
    """Start the cleanup loop in the background.

    Returns:
        asyncio Task that can be cancelled.
    """
    return asyncio.create_task(run_cleanup_loop(env, provider_factory, interval_seconds))
