"""NPort Server - provisions and expires Cloudflare tunnels over HTTP.

Usage:
    from nport_server import Env, create_app

    app = create_app(Env.from_mapping(os.environ))
    web.run_app(app)
"""

__version__ = "2.0.0"

from nport_server.core.config import Env, ServerSettings, TunnelConfig, resolve_config
from nport_server.core.exceptions import (
    ConfigError,
    NPortError,
    ProviderError,
    SubdomainProtectedError,
)
from nport_server.server.app import NPortServer, create_app
from nport_server.tunnels import (
    DEFAULT_TUNNEL_MAX_AGE_HOURS,
    CreatedTunnel,
    Tunnel,
    get_tunnel_max_age_ms,
    is_tunnel_expired,
)

__all__ = [
    "__version__",
    "Env",
    "ServerSettings",
    "TunnelConfig",
    "resolve_config",
    "NPortError",
    "ConfigError",
    "ProviderError",
    "SubdomainProtectedError",
    "NPortServer",
    "create_app",
    "Tunnel",
    "CreatedTunnel",
    "DEFAULT_TUNNEL_MAX_AGE_HOURS",
    "get_tunnel_max_age_ms",
    "is_tunnel_expired",
]
