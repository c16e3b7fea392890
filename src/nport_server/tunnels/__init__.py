"""Tunnel lifecycle: records, time-to-live, subdomain policy and provisioning."""

from nport_server.tunnels.lifetime import (
    DEFAULT_TUNNEL_MAX_AGE_HOURS,
    MS_PER_HOUR,
    Clock,
    get_tunnel_max_age_ms,
    is_tunnel_expired,
    parse_timestamp,
    utc_now,
)
from nport_server.tunnels.models import ACTIVE_STATUSES, CreatedTunnel, Tunnel
from nport_server.tunnels.policy import (
    PROTECTED_SUBDOMAINS,
    check_subdomain,
    is_protected_subdomain,
    normalize_subdomain,
    validate_subdomain,
)
from nport_server.tunnels.provisioning import TunnelProvisioner

__all__ = [
    "Tunnel",
    "CreatedTunnel",
    "ACTIVE_STATUSES",
    "DEFAULT_TUNNEL_MAX_AGE_HOURS",
    "MS_PER_HOUR",
    "Clock",
    "utc_now",
    "parse_timestamp",
    "get_tunnel_max_age_ms",
    "is_tunnel_expired",
    "PROTECTED_SUBDOMAINS",
    "normalize_subdomain",
    "is_protected_subdomain",
    "validate_subdomain",
    "check_subdomain",
    "TunnelProvisioner",
]
