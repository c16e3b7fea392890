"""Core."""

from .config import (
    CLOUDFLARE_API_BASE,
    REDIRECT_URL,
    Env,
    ServerSettings,
    TunnelConfig,
    clear_settings,
    get_settings,
    resolve_config,
)
from .exceptions import (
    ConfigError,
    InvalidRequestError,
    InvalidSubdomainError,
    NPortError,
    ProviderError,
    ProviderTimeoutError,
    SubdomainInUseError,
    SubdomainProtectedError,
)

__all__ = [
    # Config
    "CLOUDFLARE_API_BASE",
    "REDIRECT_URL",
    "Env",
    "ServerSettings",
    "TunnelConfig",
    "clear_settings",
    "get_settings",
    "resolve_config",
    # Errors
    "NPortError",
    "ConfigError",
    "InvalidRequestError",
    "InvalidSubdomainError",
    "SubdomainProtectedError",
    "SubdomainInUseError",
    "ProviderError",
    "ProviderTimeoutError",
]
