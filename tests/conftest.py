"""Shared fixtures for NPort server tests."""

from __future__ import annotations

import pytest

from nport_server.core.config import Env, ServerSettings, TunnelConfig
from nport_server.core.exceptions import ProviderError
from nport_server.tunnels.models import CreatedTunnel, Tunnel


class FakeProvider:
    """In-memory TunnelProvider recording every call."""

    def __init__(
        self,
        tunnels: list[Tunnel] | None = None,
        *,
        fail_with: ProviderError | None = None,
        fail_delete_for: set[str] | None = None,
    ) -> None:
        self.tunnels = list(tunnels or [])
        self.fail_with = fail_with
        self.fail_delete_for = fail_delete_for or set()
        self.calls: list[tuple[str, object]] = []
        self.configs: list[TunnelConfig] = []
        self.entered = 0
        self.exited = 0

    def factory(self, config: TunnelConfig) -> FakeProvider:
        self.configs.append(config)
        return self

    async def __aenter__(self) -> FakeProvider:
        self.entered += 1
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.exited += 1

    async def find_tunnel(self, name: str) -> Tunnel | None:
        self.calls.append(("find_tunnel", name))
        if self.fail_with:
            raise self.fail_with
        return next((t for t in self.tunnels if t.name == name), None)

    async def create_tunnel(self, name: str) -> CreatedTunnel:
        self.calls.append(("create_tunnel", name))
        if self.fail_with:
            raise self.fail_with
        domain = self.configs[-1].domain if self.configs else "nport.link"
        hostname = f"{name}.{domain}"
        created = CreatedTunnel(
            id=f"tunnel-{name}",
            name=name,
            status="inactive",
            created_at="2025-01-30T12:00:00Z",
            token="connector-token",
            hostname=hostname,
            url=f"https://{hostname}",
            connections=[],
            account_tag="test-account",
        )
        self.tunnels.append(created)
        return created

    async def list_tunnels(self) -> list[Tunnel]:
        self.calls.append(("list_tunnels", None))
        if self.fail_with:
            raise self.fail_with
        return list(self.tunnels)

    async def delete_tunnel(self, tunnel: Tunnel) -> None:
        self.calls.append(("delete_tunnel", tunnel.id))
        if tunnel.id in self.fail_delete_for:
            raise ProviderError(f"cannot delete {tunnel.id}")
        self.tunnels = [t for t in self.tunnels if t.id != tunnel.id]

    def called(self, method: str) -> list[object]:
        return [arg for name, arg in self.calls if name == method]


@pytest.fixture
def base_env() -> Env:
    """Fully configured provider bindings."""
    return Env(
        CF_ACCOUNT_ID="test-account",
        CF_ZONE_ID="test-zone",
        CF_DOMAIN="nport.link",
        CF_API_TOKEN="test-token",
    )


@pytest.fixture
def empty_env() -> Env:
    """Bindings with nothing configured."""
    return Env()


@pytest.fixture
def settings() -> ServerSettings:
    """Server settings with the background sweep disabled."""
    return ServerSettings(cleanup_interval=0, provider_timeout=5.0)


@pytest.fixture
def fake_provider() -> FakeProvider:
    """Empty in-memory provider."""
    return FakeProvider()


@pytest.fixture
def make_provider() -> type[FakeProvider]:
    """The FakeProvider class, for tests that need a pre-populated provider."""
    return FakeProvider
