"""Tests for the Cloudflare tunnel provider."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from nport_server.core.config import Env, TunnelConfig
from nport_server.core.exceptions import ProviderError, ProviderTimeoutError
from nport_server.providers.cloudflare import (
    CloudflareTunnelProvider,
    cloudflare_provider_factory,
    tunnel_cname_target,
)
from nport_server.tunnels.models import Tunnel
from nport_server.tunnels.provisioning import TunnelProvisioner

ACCOUNT = "/client/v4/accounts/acct/cfd_tunnel"
DNS = "/client/v4/zones/zone/dns_records"


def _ok(result, **extra) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "errors": [], "result": result, **extra})


class FakeCloudflare:
    """Minimal stand-in for the Cloudflare v4 API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.tunnels: list[dict] = []
        self.dns_records: list[dict] = []
        self.fail: dict[tuple[str, str], httpx.Response] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def seen(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self.fail:
            return self.fail[key]

        path = request.url.path
        params = request.url.params

        if path == ACCOUNT and request.method == "GET":
            results = [t for t in self.tunnels if not params.get("name") or t["name"] == params["name"]]
            if "page" in params:
                page = int(params["page"])
                per_page = int(params["per_page"])
                total_pages = max(1, -(-len(results) // per_page))
                chunk = results[(page - 1) * per_page : page * per_page]
                return _ok(chunk, result_info={"page": page, "total_pages": total_pages})
            return _ok(results)

        if path == ACCOUNT and request.method == "POST":
            body = json.loads(request.content)
            tunnel = {
                "id": f"id-{body['name']}",
                "name": body["name"],
                "status": "inactive",
                "created_at": "2025-01-30T12:00:00Z",
                "account_tag": "acct",
                "connections": [],
            }
            self.tunnels.append(tunnel)
            return _ok(tunnel)

        if path.startswith(ACCOUNT + "/"):
            rest = path[len(ACCOUNT) + 1 :]
            tunnel_id, _, action = rest.partition("/")
            if action == "token":
                return _ok(f"token-for-{tunnel_id}")
            if action == "configurations":
                return _ok({"config": json.loads(request.content)["config"]})
            if action == "connections":
                return _ok(None)
            if request.method == "DELETE":
                self.tunnels = [t for t in self.tunnels if t["id"] != tunnel_id]
                return _ok({"id": tunnel_id})

        if path == DNS and request.method == "GET":
            results = [
                r
                for r in self.dns_records
                if (not params.get("name") or r["name"] == params["name"])
                and (not params.get("content") or r["content"] == params["content"])
            ]
            return _ok(results)

        if path == DNS and request.method == "POST":
            body = json.loads(request.content)
            record = {"id": f"rec-{len(self.dns_records) + 1}", **body}
            self.dns_records.append(record)
            return _ok(record)

        if path.startswith(DNS + "/") and request.method == "DELETE":
            record_id = path.rsplit("/", 1)[-1]
            self.dns_records = [r for r in self.dns_records if r["id"] != record_id]
            return _ok({"id": record_id})

        return httpx.Response(404, json={"success": False, "errors": [{"message": "not found"}]})


@pytest.fixture
def cloudflare() -> FakeCloudflare:
    return FakeCloudflare()


@pytest.fixture
def config() -> TunnelConfig:
    return TunnelConfig(account_id="acct", zone_id="zone", domain="nport.link", api_token="tok")


def _provider(config: TunnelConfig, cloudflare: FakeCloudflare) -> CloudflareTunnelProvider:
    return CloudflareTunnelProvider(
        config,
        base_url="https://api.cloudflare.test/client/v4",
        transport=cloudflare.transport,
    )


class TestCreateTunnel:
    """Tests for create_tunnel."""

    @pytest.mark.asyncio
    async def test_creates_tunnel_dns_and_token(self, config, cloudflare) -> None:
        """Test the full creation sequence."""
        async with _provider(config, cloudflare) as provider:
            created = await provider.create_tunnel("myapp")

        assert created.id == "id-myapp"
        assert created.name == "myapp"
        assert created.token == "token-for-id-myapp"
        assert created.hostname == "myapp.nport.link"
        assert created.url == "https://myapp.nport.link"
        # Provider fields beyond the declared ones survive.
        assert created.to_dict()["account_tag"] == "acct"

        create_body = json.loads(cloudflare.seen("POST", ACCOUNT)[0].content)
        assert create_body["name"] == "myapp"
        assert create_body["config_src"] == "cloudflare"
        assert create_body["tunnel_secret"]

        ingress = json.loads(
            cloudflare.seen("PUT", f"{ACCOUNT}/id-myapp/configurations")[0].content
        )["config"]["ingress"]
        assert ingress[0] == {"hostname": "myapp.nport.link", "service": "http://localhost:8080"}
        assert ingress[-1] == {"service": "http_status:404"}

        assert cloudflare.dns_records == [
            {
                "id": "rec-1",
                "type": "CNAME",
                "name": "myapp.nport.link",
                "content": "id-myapp.cfargotunnel.com",
                "proxied": True,
                "ttl": 1,
            }
        ]

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self, config, cloudflare) -> None:
        async with _provider(config, cloudflare) as provider:
            await provider.create_tunnel("myapp")

        assert all(r.headers["Authorization"] == "Bearer tok" for r in cloudflare.requests)

    @pytest.mark.asyncio
    async def test_replaces_stale_dns_record(self, config, cloudflare) -> None:
        """Test a leftover CNAME for the hostname is removed first."""
        cloudflare.dns_records.append(
            {"id": "old", "type": "CNAME", "name": "myapp.nport.link", "content": "gone.cfargotunnel.com"}
        )

        async with _provider(config, cloudflare) as provider:
            await provider.create_tunnel("myapp")

        assert [r["content"] for r in cloudflare.dns_records] == ["id-myapp.cfargotunnel.com"]
        assert cloudflare.seen("DELETE", f"{DNS}/old")

    @pytest.mark.asyncio
    async def test_rolls_back_on_dns_failure(self, config, cloudflare) -> None:
        """Test the tunnel is deleted when the DNS record cannot be created."""
        cloudflare.fail[("POST", DNS)] = httpx.Response(
            400,
            json={"success": False, "errors": [{"code": 81053, "message": "Record already exists"}]},
        )

        async with _provider(config, cloudflare) as provider:
            with pytest.raises(ProviderError) as exc_info:
                await provider.create_tunnel("myapp")

        assert "Record already exists" in exc_info.value.message
        assert exc_info.value.errors[0]["code"] == 81053
        assert cloudflare.seen("DELETE", f"{ACCOUNT}/id-myapp")
        assert cloudflare.tunnels == []

    @pytest.mark.asyncio
    async def test_rolls_back_on_missing_token(self, config, cloudflare) -> None:
        """Test an empty token answer removes the tunnel and its DNS record."""
        cloudflare.fail[("GET", f"{ACCOUNT}/id-myapp/token")] = _ok(None)

        async with _provider(config, cloudflare) as provider:
            with pytest.raises(ProviderError, match="tunnel token"):
                await provider.create_tunnel("myapp")

        assert cloudflare.tunnels == []
        assert cloudflare.dns_records == []

    @pytest.mark.asyncio
    async def test_rolls_back_on_deadline(self, cloudflare) -> None:
        """Test a request deadline hit mid-creation still removes the tunnel."""

        async def slow_configurations(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/configurations"):
                await asyncio.sleep(1)
            return cloudflare.handle(request)

        factory = cloudflare_provider_factory(
            base_url="https://api.cloudflare.test/client/v4",
            transport=httpx.MockTransport(slow_configurations),
        )
        provisioner = TunnelProvisioner(factory, timeout=0.1)
        env = Env(
            CF_ACCOUNT_ID="acct", CF_ZONE_ID="zone", CF_DOMAIN="nport.link", CF_API_TOKEN="tok"
        )

        with pytest.raises(ProviderTimeoutError):
            await provisioner.provision(env, "myapp")

        assert cloudflare.seen("DELETE", f"{ACCOUNT}/id-myapp")
        assert cloudflare.tunnels == []
        assert cloudflare.dns_records == []


class TestLookup:
    """Tests for find_tunnel and list_tunnels."""

    @pytest.mark.asyncio
    async def test_find_tunnel(self, config, cloudflare) -> None:
        cloudflare.tunnels = [
            {"id": "1", "name": "other", "status": "healthy"},
            {"id": "2", "name": "myapp", "status": "down", "created_at": "2025-01-30T06:00:00Z"},
        ]

        async with _provider(config, cloudflare) as provider:
            found = await provider.find_tunnel("myapp")
            missing = await provider.find_tunnel("nope")

        assert found == Tunnel(
            id="2", name="myapp", status="down", created_at="2025-01-30T06:00:00Z"
        )
        assert missing is None
        request = cloudflare.seen("GET", ACCOUNT)[0]
        assert request.url.params["is_deleted"] == "false"

    @pytest.mark.asyncio
    async def test_list_tunnels_paginates(self, config, cloudflare) -> None:
        """Test every page is fetched."""
        cloudflare.tunnels = [{"id": str(i), "name": f"t{i}"} for i in range(120)]

        async with _provider(config, cloudflare) as provider:
            tunnels = await provider.list_tunnels()

        assert [t.id for t in tunnels] == [str(i) for i in range(120)]
        assert len(cloudflare.seen("GET", ACCOUNT)) == 3


class TestDeleteTunnel:
    """Tests for delete_tunnel."""

    @pytest.mark.asyncio
    async def test_deletes_dns_connections_and_tunnel(self, config, cloudflare) -> None:
        cloudflare.tunnels = [{"id": "abc", "name": "myapp"}]
        cloudflare.dns_records = [
            {"id": "r1", "type": "CNAME", "name": "myapp.nport.link", "content": tunnel_cname_target("abc")},
            {"id": "r2", "type": "CNAME", "name": "keep.nport.link", "content": "other.cfargotunnel.com"},
        ]

        async with _provider(config, cloudflare) as provider:
            await provider.delete_tunnel(Tunnel(id="abc", name="myapp"))

        assert [r["id"] for r in cloudflare.dns_records] == ["r2"]
        assert cloudflare.seen("DELETE", f"{ACCOUNT}/abc/connections")
        assert cloudflare.tunnels == []


class TestErrors:
    """Tests for error mapping."""

    @pytest.mark.asyncio
    async def test_missing_token(self, cloudflare) -> None:
        """Test calls fail without contacting the API when no token is set."""
        config = TunnelConfig(account_id="acct", zone_id="zone", domain="nport.link")

        async with _provider(config, cloudflare) as provider:
            with pytest.raises(ProviderError) as exc_info:
                await provider.list_tunnels()

        assert "CF_API_TOKEN" in exc_info.value.message
        assert cloudflare.requests == []

    @pytest.mark.asyncio
    async def test_api_error_envelope(self, config, cloudflare) -> None:
        cloudflare.fail[("GET", ACCOUNT)] = httpx.Response(
            403,
            json={"success": False, "errors": [{"code": 10000, "message": "Authentication error"}]},
        )

        async with _provider(config, cloudflare) as provider:
            with pytest.raises(ProviderError) as exc_info:
                await provider.find_tunnel("myapp")

        assert exc_info.value.message == "Cloudflare API error (HTTP 403): Authentication error"
        assert exc_info.value.status == 502

    @pytest.mark.asyncio
    async def test_non_json_response(self, config, cloudflare) -> None:
        cloudflare.fail[("GET", ACCOUNT)] = httpx.Response(502, text="<html>Bad gateway</html>")

        async with _provider(config, cloudflare) as provider:
            with pytest.raises(ProviderError, match="non-JSON"):
                await provider.list_tunnels()

    @pytest.mark.asyncio
    async def test_network_error(self, config) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = CloudflareTunnelProvider(config, transport=httpx.MockTransport(handler))
        async with provider:
            with pytest.raises(ProviderError, match="unreachable"):
                await provider.find_tunnel("myapp")

    @pytest.mark.asyncio
    async def test_requires_context_manager(self, config) -> None:
        provider = CloudflareTunnelProvider(config)
        with pytest.raises(RuntimeError):
            await provider.find_tunnel("myapp")


def test_factory_builds_provider(config) -> None:
    factory = cloudflare_provider_factory(base_url="https://example.test/v4/", timeout=3.0)
    provider = factory(config)
    assert isinstance(provider, CloudflareTunnelProvider)
    assert provider.base_url == "https://example.test/v4"
    assert provider.timeout == 3.0
