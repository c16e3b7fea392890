"""Tunnel providers.

A provider owns the remote tunnel and DNS resources. The request path only
depends on the TunnelProvider protocol; CloudflareTunnelProvider is the
production implementation.
"""

from nport_server.providers.base import ProviderFactory, TunnelProvider
from nport_server.providers.cloudflare import (
    CloudflareTunnelProvider,
    cloudflare_provider_factory,
    tunnel_cname_target,
)

__all__ = [
    "TunnelProvider",
    "ProviderFactory",
    "CloudflareTunnelProvider",
    "cloudflare_provider_factory",
    "tunnel_cname_target",
]
