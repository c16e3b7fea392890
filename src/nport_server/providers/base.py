"""Tunnel provider interface."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, Self

from nport_server.core.config import TunnelConfig
from nport_server.tunnels.models import CreatedTunnel, Tunnel


class TunnelProvider(Protocol):
    """Remote service that owns tunnel and DNS resources.

    Implementations raise ProviderError for every failed call.
    """

    async def __aenter__(self) -> Self: ...

    async def __aexit__(self, *exc_info: object) -> None: ...

    async def find_tunnel(self, name: str) -> Tunnel | None:
        """Return the live tunnel with this name, if any."""
        ...

    async def create_tunnel(self, name: str) -> CreatedTunnel:
        """Create a tunnel and publish it as ``<name>.<domain>``."""
        ...

    async def list_tunnels(self) -> list[Tunnel]:
        """Return every tunnel that has not been deleted."""
        ...

    async def delete_tunnel(self, tunnel: Tunnel) -> None:
        """Delete a tunnel together with its DNS records."""
        ...


ProviderFactory = Callable[[TunnelConfig], TunnelProvider]
