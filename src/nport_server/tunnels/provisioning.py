"""Tunnel provisioning flow.

Orchestrates a tunnel creation request:

1. Resolve provider configuration (ConfigError, 400).
2. Apply the subdomain policy (InvalidSubdomainError 400,
   SubdomainProtectedError 500). The provider is never contacted when
   either check fails.
3. Look up an existing tunnel with the same name. A live, unexpired tunnel
   blocks the request (SubdomainInUseError); anything else is deleted so
   the name can be reused.
4. Create the tunnel through the provider.

The provider phase runs under a deadline. Cancelling the calling task
abandons the in-flight provider call; no state is shared between requests.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from nport_server.core.config import Env, resolve_config
from nport_server.core.exceptions import ProviderTimeoutError, SubdomainInUseError
from nport_server.tunnels.lifetime import Clock, get_tunnel_max_age_ms, is_tunnel_expired, utc_now
from nport_server.tunnels.models import CreatedTunnel
from nport_server.tunnels.policy import check_subdomain

if TYPE_CHECKING:
    from nport_server.providers.base import ProviderFactory, TunnelProvider

logger = structlog.get_logger()


class TunnelProvisioner:
    """Creates tunnels on behalf of HTTP clients."""

    def __init__(
        self,
        provider_factory: ProviderFactory,
        *,
        timeout: float | None = 30.0,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the provisioner.

        Args:
            provider_factory: Builds a provider for a resolved TunnelConfig.
            timeout: Deadline in seconds for the provider phase (None disables).
            clock: Current-time source used for expiry checks.
        """
        self.provider_factory = provider_factory
        self.timeout = timeout
        self.clock = clock

    async def provision(self, env: Env, subdomain: str) -> CreatedTunnel:
        """Create a tunnel for ``subdomain``.

        Raises:
            ConfigError: Required bindings are missing.
            InvalidSubdomainError: Subdomain is not a valid DNS label.
            SubdomainProtectedError: Subdomain is reserved.
            SubdomainInUseError: A live tunnel already serves the subdomain.
            ProviderError: The provider call failed.
            ProviderTimeoutError: The provider phase exceeded the deadline.
        """
        config = resolve_config(env)
        name = check_subdomain(subdomain)
        max_age_ms = get_tunnel_max_age_ms(env)

        try:
            async with asyncio.timeout(self.timeout):
                async with self.provider_factory(config) as provider:
                    return await self._create(provider, name, max_age_ms)
        except TimeoutError as e:
            logger.warning("Provider deadline exceeded", subdomain=name, timeout=self.timeout)
            raise ProviderTimeoutError(self.timeout) from e

    async def _create(
        self, provider: TunnelProvider, name: str, max_age_ms: float
    ) -> CreatedTunnel:
        existing = await provider.find_tunnel(name)
        if existing is not None:
            expired = is_tunnel_expired(existing, max_age_ms, self.clock)
            if existing.is_active and not expired:
                logger.info(
                    "Subdomain in use",
                    subdomain=name,
                    tunnel_id=existing.id,
                    status=existing.status,
                )
                raise SubdomainInUseError(name)

            logger.info(
                "Replacing stale tunnel",
                subdomain=name,
                tunnel_id=existing.id,
                status=existing.status,
                expired=expired,
            )
            await provider.delete_tunnel(existing)

        created = await provider.create_tunnel(name)
        logger.info("Tunnel provisioned", subdomain=name, tunnel_id=created.id, url=created.url)
        return created
