"""Tunnel time-to-live.

Two pure functions decide how long a tunnel may live:

- ``get_tunnel_max_age_ms`` derives the max age from the TUNNEL_MAX_AGE_HOURS
  binding, falling back to DEFAULT_TUNNEL_MAX_AGE_HOURS.
- ``is_tunnel_expired`` compares a tunnel's age against that max age using an
  injectable clock.

Usage:
    max_age_ms = get_tunnel_max_age_ms(env)
    if is_tunnel_expired(tunnel, max_age_ms):
        await provider.delete_tunnel(tunnel)
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from nport_server.core.config import Env
from nport_server.tunnels.models import Tunnel

logger = structlog.get_logger()

DEFAULT_TUNNEL_MAX_AGE_HOURS = 4
MS_PER_HOUR = 60 * 60 * 1000

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def get_tunnel_max_age_ms(env: Env) -> float:
    """Get the tunnel max age in milliseconds.

    Zero, negative, non-numeric and non-finite overrides all fall back to
    the default without raising.

    Args:
        env: Provider bindings carrying the optional TUNNEL_MAX_AGE_HOURS value.

    Returns:
        Max age in milliseconds, always positive.
    """
    default_ms = DEFAULT_TUNNEL_MAX_AGE_HOURS * MS_PER_HOUR
    raw = env.tunnel_max_age_hours
    if raw is None or not raw.strip():
        return default_ms

    try:
        hours = float(raw)
    except ValueError:
        logger.debug("Ignoring unparseable tunnel max age", value=raw)
        return default_ms

    if not math.isfinite(hours) or hours <= 0:
        logger.debug("Ignoring non-positive tunnel max age", value=raw)
        return default_ms

    return hours * MS_PER_HOUR


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp, treating naive values as UTC.

    Returns:
        Aware datetime, or None if the value cannot be parsed.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def is_tunnel_expired(tunnel: Tunnel, max_age_ms: float, now: Clock = utc_now) -> bool:
    """Check whether a tunnel has outlived its max age.

    A tunnel exactly max_age_ms old is still valid. Tunnels whose creation
    time is absent or unreadable are never expired.

    Args:
        tunnel: Tunnel record from the provider.
        max_age_ms: Max age in milliseconds.
        now: Clock returning the current aware datetime.

    Returns:
        True if the tunnel is strictly older than max_age_ms.
    """
    if not tunnel.created_at:
        return False

    created_at = parse_timestamp(tunnel.created_at)
    if created_at is None:
        logger.warning(
            "Unreadable tunnel creation time",
            tunnel_id=tunnel.id,
            created_at=tunnel.created_at,
        )
        return False

    try:
        max_age = timedelta(milliseconds=max_age_ms)
    except OverflowError:
        # Beyond timedelta range, so nothing can be that old.
        return False

    age = now() - created_at
    return age > max_age
