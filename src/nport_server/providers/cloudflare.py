"""Cloudflare Tunnel provider.

Creates remotely-managed Cloudflare tunnels and publishes them under the
configured zone with a proxied CNAME record:

    <subdomain>.<domain>  CNAME  <tunnel-id>.cfargotunnel.com

Usage:
    async with CloudflareTunnelProvider(config) as provider:
        created = await provider.create_tunnel("myapp")
        print(created.url, created.token)
"""

from __future__ import annotations

import asyncio
import base64
import secrets
from typing import Any, Self

import httpx
import structlog

from nport_server.core.config import CLOUDFLARE_API_BASE, TunnelConfig
from nport_server.core.exceptions import ProviderError
from nport_server.providers.base import ProviderFactory
from nport_server.tunnels.models import CreatedTunnel, Tunnel

logger = structlog.get_logger()

TUNNEL_CNAME_SUFFIX = "cfargotunnel.com"
DEFAULT_ORIGIN_SERVICE = "http://localhost:8080"
PAGE_SIZE = 50


def tunnel_cname_target(tunnel_id: str) -> str:
    """DNS target that routes traffic into a tunnel."""
    return f"{tunnel_id}.{TUNNEL_CNAME_SUFFIX}"


class CloudflareTunnelProvider:
    """Tunnel provider backed by the Cloudflare v4 API."""

    def __init__(
        self,
        config: TunnelConfig,
        *,
        base_url: str = CLOUDFLARE_API_BASE,
        timeout: float = 30.0,
        origin_service: str = DEFAULT_ORIGIN_SERVICE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            config: Validated account, zone, domain and token.
            base_url: Cloudflare API base URL.
            timeout: Per-call HTTP timeout in seconds.
            origin_service: Ingress service the tunnel hostname routes to.
            transport: Optional httpx transport (used by tests).
        """
        self.config = config
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.origin_service = origin_service
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
            follow_redirects=False,
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def _account_path(self) -> str:
        return f"/accounts/{self.config.account_id}/cfd_tunnel"

    @property
    def _dns_path(self) -> str:
        return f"/zones/{self.config.zone_id}/dns_records"

    def hostname_for(self, name: str) -> str:
        """Public hostname a tunnel named ``name`` is published under."""
        return f"{name}.{self.config.domain}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call the Cloudflare API and unwrap its response envelope.

        Raises:
            ProviderError: On transport failures, non-JSON answers, HTTP
                errors or ``success: false`` envelopes.
        """
        if not self.config.api_token:
            raise ProviderError("Cloudflare API token is not configured (CF_API_TOKEN)")
        if self._client is None:
            raise RuntimeError("CloudflareTunnelProvider must be used as an async context manager")

        headers = {"Authorization": f"Bearer {self.config.api_token}"}
        try:
            response = await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            raise ProviderError(f"Cloudflare API timed out: {method} {path}") from e
        except httpx.RequestError as e:
            raise ProviderError(f"Cloudflare API unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(
                f"Cloudflare API returned a non-JSON response (HTTP {response.status_code})"
            ) from e

        if not isinstance(payload, dict):
            raise ProviderError("Cloudflare API returned an unexpected response")

        if response.is_error or not payload.get("success", False):
            errors = payload.get("errors") or []
            detail = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            logger.warning(
                "Cloudflare API error",
                method=method,
                path=path,
                status=response.status_code,
                errors=errors,
            )
            raise ProviderError(
                f"Cloudflare API error (HTTP {response.status_code}): {detail or 'unknown error'}",
                errors=errors,
            )

        return payload

    async def find_tunnel(self, name: str) -> Tunnel | None:
        data = await self._request(
            "GET", self._account_path, params={"name": name, "is_deleted": "false"}
        )
        results = data.get("result") or []
        for item in results:
            if item.get("name") == name:
                return Tunnel.from_api(item)
        return None

    async def list_tunnels(self) -> list[Tunnel]:
        tunnels: list[Tunnel] = []
        page = 1
        while True:
            data = await self._request(
                "GET",
                self._account_path,
                params={"is_deleted": "false", "page": page, "per_page": PAGE_SIZE},
            )
            results = data.get("result") or []
            tunnels.extend(Tunnel.from_api(item) for item in results)

            total_pages = (data.get("result_info") or {}).get("total_pages")
            if total_pages is not None:
                if page >= total_pages:
                    break
            elif len(results) < PAGE_SIZE:
                break
            page += 1
        return tunnels

    async def create_tunnel(self, name: str) -> CreatedTunnel:
        hostname = self.hostname_for(name)
        tunnel_secret = base64.b64encode(secrets.token_bytes(32)).decode("ascii")

        data = await self._request(
            "POST",
            self._account_path,
            json={"name": name, "tunnel_secret": tunnel_secret, "config_src": "cloudflare"},
        )
        result = data.get("result") or {}
        tunnel_id = result.get("id")
        if not tunnel_id:
            raise ProviderError("Cloudflare API did not return a tunnel id")
        logger.info("Tunnel created", tunnel_id=tunnel_id, name=name)

        try:
            await self._configure_ingress(tunnel_id, hostname)
            await self._publish_dns(tunnel_id, hostname)
            token = await self._fetch_token(tunnel_id)
        except BaseException:
            # Includes cancellation by the request deadline.
            logger.warning("Rolling back partially created tunnel", tunnel_id=tunnel_id)
            await asyncio.shield(self._rollback(Tunnel(id=tunnel_id, name=name)))
            raise

        return CreatedTunnel.model_validate(
            {
                **result,
                "token": token,
                "hostname": hostname,
                "url": f"https://{hostname}",
            }
        )

    async def _fetch_token(self, tunnel_id: str) -> str:
        data = await self._request("GET", f"{self._account_path}/{tunnel_id}/token")
        token = data.get("result")
        if not isinstance(token, str) or not token:
            raise ProviderError("Cloudflare API did not return a tunnel token")
        return token

    async def _rollback(self, tunnel: Tunnel) -> None:
        try:
            await self.delete_tunnel(tunnel)
        except ProviderError as e:
            logger.error("Rollback failed", tunnel_id=tunnel.id, error=str(e))

    async def _configure_ingress(self, tunnel_id: str, hostname: str) -> None:
        await self._request(
            "PUT",
            f"{self._account_path}/{tunnel_id}/configurations",
            json={
                "config": {
                    "ingress": [
                        {"hostname": hostname, "service": self.origin_service},
                        {"service": "http_status:404"},
                    ]
                }
            },
        )

    async def _publish_dns(self, tunnel_id: str, hostname: str) -> None:
        # A record left behind by an earlier tunnel would block the new one.
        stale = await self._request(
            "GET", self._dns_path, params={"type": "CNAME", "name": hostname}
        )
        for record in stale.get("result") or []:
            await self._request("DELETE", f"{self._dns_path}/{record['id']}")
            logger.info("Removed stale DNS record", hostname=hostname, record_id=record["id"])

        await self._request(
            "POST",
            self._dns_path,
            json={
                "type": "CNAME",
                "name": hostname,
                "content": tunnel_cname_target(tunnel_id),
                "proxied": True,
                "ttl": 1,
            },
        )
        logger.info("DNS record created", hostname=hostname, tunnel_id=tunnel_id)

    async def delete_tunnel(self, tunnel: Tunnel) -> None:
        records = await self._request(
            "GET",
            self._dns_path,
            params={"type": "CNAME", "content": tunnel_cname_target(tunnel.id)},
        )
        for record in records.get("result") or []:
            await self._request("DELETE", f"{self._dns_path}/{record['id']}")

        # Connectors must be dropped before Cloudflare allows the delete.
        await self._request("DELETE", f"{self._account_path}/{tunnel.id}/connections")
        await self._request("DELETE", f"{self._account_path}/{tunnel.id}")
        logger.info("Tunnel deleted", tunnel_id=tunnel.id, name=tunnel.name)


def cloudflare_provider_factory(
    *,
    base_url: str = CLOUDFLARE_API_BASE,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderFactory:
    """Build a ProviderFactory producing CloudflareTunnelProvider instances."""

    def factory(config: TunnelConfig) -> CloudflareTunnelProvider:
        return CloudflareTunnelProvider(
            config, base_url=base_url, timeout=timeout, transport=transport
        )

    return factory
