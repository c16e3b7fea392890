"""Configuration types.

Two layers of configuration exist:

- ``Env``: the provider bindings (Cloudflare account, zone, domain, token and
  the tunnel max age override). It is built from an explicit mapping and
  passed into every function that needs it; nothing below the CLI reads the
  process environment for these values.
- ``ServerSettings``: how the HTTP process itself runs. All settings can be
  configured via environment variables with the NPORT_ prefix.
  Example: NPORT_PORT=9000 binds the server to port 9000.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from nport_server.core.exceptions import ConfigError

REDIRECT_URL = "https://nport.link/"
CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"

REQUIRED_BINDINGS = ("CF_ACCOUNT_ID", "CF_ZONE_ID", "CF_DOMAIN")


class Env(BaseModel):
    """Raw provider bindings as supplied by the deployment.

    Every field is optional here; ``resolve_config`` decides what is missing.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    cf_account_id: str | None = Field(default=None, alias="CF_ACCOUNT_ID")
    cf_zone_id: str | None = Field(default=None, alias="CF_ZONE_ID")
    cf_domain: str | None = Field(default=None, alias="CF_DOMAIN")
    cf_api_token: str | None = Field(default=None, alias="CF_API_TOKEN", repr=False)
    tunnel_max_age_hours: str | None = Field(default=None, alias="TUNNEL_MAX_AGE_HOURS")

    @classmethod
    def from_mapping(cls, source: Mapping[str, object]) -> Env:
        """Build bindings from a mapping keyed by environment variable name."""
        fields = {
            field.alias: source[field.alias]
            for field in cls.model_fields.values()
            if field.alias and source.get(field.alias) is not None
        }
        return cls.model_validate({key: str(value) for key, value in fields.items()})


class TunnelConfig(BaseModel):
    """Validated provider configuration for a single request."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    zone_id: str
    domain: str
    api_token: str | None = Field(default=None, repr=False)


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


def resolve_config(env: Env) -> TunnelConfig:
    """Validate the bindings needed before any provider call.

    Args:
        env: Provider bindings.

    Returns:
        TunnelConfig with required values stripped of surrounding whitespace.

    Raises:
        ConfigError: Naming every missing required binding.
    """
    values = {
        "CF_ACCOUNT_ID": env.cf_account_id,
        "CF_ZONE_ID": env.cf_zone_id,
        "CF_DOMAIN": env.cf_domain,
    }
    missing = [name for name in REQUIRED_BINDINGS if not _present(values[name])]
    if missing:
        raise ConfigError(missing)

    token = env.cf_api_token.strip() if _present(env.cf_api_token) else None
    return TunnelConfig(
        account_id=values["CF_ACCOUNT_ID"].strip(),
        zone_id=values["CF_ZONE_ID"].strip(),
        domain=values["CF_DOMAIN"].strip().lower(),
        api_token=token,
    )


class ServerSettings(BaseSettings):
    """HTTP server configuration.

    Environment Variables:
        NPORT_HOST: Bind host
        NPORT_PORT: Bind port
        NPORT_LOG_LEVEL: debug, info, warning or error
        NPORT_PROVIDER_TIMEOUT: Deadline for the provider phase of a request (seconds)
        NPORT_CLEANUP_INTERVAL: Seconds between expired-tunnel sweeps (0 disables)
        NPORT_API_BASE_URL: Cloudflare API base URL
    """

    model_config = SettingsConfigDict(
        env_prefix="NPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8787, description="Bind port")
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info", description="Log level"
    )
    provider_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Deadline in seconds for provider calls made while serving a request.",
    )
    cleanup_interval: float = Field(
        default=3600.0,
        ge=0,
        description="Seconds between expired-tunnel sweeps. 0 disables the background sweep.",
    )
    api_base_url: str = Field(
        default=CLOUDFLARE_API_BASE,
        description="Base URL of the Cloudflare v4 API.",
    )


_settings: ServerSettings | None = None


def get_settings() -> ServerSettings:
    """Get the cached server settings.

    To reload settings (e.g., in tests), call clear_settings() first.
    """
    global _settings
    if _settings is None:
        _settings = ServerSettings()
    return _settings


def clear_settings() -> None:
    """Clear the cached settings so the next get_settings() call re-reads the environment."""
    global _settings
    _settings = None
