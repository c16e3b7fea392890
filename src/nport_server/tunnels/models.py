"""Tunnel records as reported by the provider."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

# Statuses Cloudflare reports for a tunnel with at least one live connector.
ACTIVE_STATUSES = frozenset({"healthy", "degraded"})


class Tunnel(BaseModel):
    """A provisioned tunnel.

    Fields the provider returns beyond the ones declared here are kept, so a
    record passes through to clients without losing data.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    status: str | None = None
    created_at: str | None = None

    @property
    def is_active(self) -> bool:
        """Whether the provider reports live connectors for this tunnel."""
        return (self.status or "").lower() in ACTIVE_STATUSES

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Tunnel:
        """Create a Tunnel from a provider API result object."""
        return cls.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return self.model_dump(mode="json")


class CreatedTunnel(Tunnel):
    """A newly created tunnel with everything a client needs to connect."""

    token: str
    hostname: str
    url: str
