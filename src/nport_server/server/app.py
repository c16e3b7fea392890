"""HTTP front end for tunnel provisioning.

Routes every path through a single handler that dispatches on method:

- GET: 301 redirect to the NPort landing page
- POST: create a tunnel from a JSON body ``{"subdomain": "..."}``
- anything else: 405 Method Not Allowed
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

import structlog
from aiohttp import web

from nport_server.core.config import (
    REDIRECT_URL,
    Env,
    ServerSettings,
    get_settings,
    resolve_config,
)
from nport_server.core.exceptions import InvalidRequestError, NPortError
from nport_server.providers.base import ProviderFactory
from nport_server.providers.cloudflare import cloudflare_provider_factory
from nport_server.tasks.cleanup import start_cleanup_task
from nport_server.tunnels.lifetime import Clock, utc_now
from nport_server.tunnels.provisioning import TunnelProvisioner

logger = structlog.get_logger()


def error_response(error: NPortError) -> web.Response:
    """Render an NPortError as the JSON error envelope."""
    return web.json_response(error.to_dict(), status=error.status)


class NPortServer:
    """Serves tunnel creation requests."""

    def __init__(
        self,
        env: Env,
        settings: ServerSettings | None = None,
        *,
        provider_factory: ProviderFactory | None = None,
        clock: Clock = utc_now,
        cleanup_enabled: bool = True,
    ) -> None:
        self.env = env
        self.settings = settings or get_settings()
        self.provider_factory = provider_factory or cloudflare_provider_factory(
            base_url=self.settings.api_base_url,
            timeout=self.settings.provider_timeout,
        )
        self.provisioner = TunnelProvisioner(
            self.provider_factory,
            timeout=self.settings.provider_timeout,
            clock=clock,
        )
        self.cleanup_enabled = cleanup_enabled and self.settings.cleanup_interval > 0
        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application."""
        app = web.Application()
        app.router.add_route("*", "/{path:.*}", self.handle_request)
        if self.cleanup_enabled:
            app.cleanup_ctx.append(self._cleanup_context)
        return app

    async def _cleanup_context(self, app: web.Application) -> AsyncIterator[None]:
        task = start_cleanup_task(
            self.env,
            self.provider_factory,
            interval_seconds=self.settings.cleanup_interval,
        )
        yield
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def handle_request(self, request: web.Request) -> web.StreamResponse:
        """Dispatch on HTTP method."""
        if request.method == "GET":
            redirect = web.HTTPMovedPermanently(location=REDIRECT_URL)
            logger.info(
                "Request handled",
                method=request.method,
                path=request.path,
                status=redirect.status,
            )
            raise redirect

        if request.method == "POST":
            response = await self._handle_create(request)
        else:
            response = web.Response(text="Method Not Allowed", status=405)

        logger.info(
            "Request handled",
            method=request.method,
            path=request.path,
            status=response.status,
        )
        return response

    async def _handle_create(self, request: web.Request) -> web.Response:
        """Create a tunnel and return it in the success envelope."""
        try:
            # Configuration problems are reported before anything about the body.
            resolve_config(self.env)
            subdomain = await self._read_subdomain(request)
            tunnel = await self.provisioner.provision(self.env, subdomain)
        except NPortError as e:
            logger.warning(
                "Tunnel creation rejected",
                error=e.message,
                status=e.status,
                code=e.code,
            )
            return error_response(e)
        except Exception:
            logger.exception("Unexpected error while creating tunnel")
            return web.json_response(
                {"success": False, "error": "Internal server error"}, status=500
            )

        return web.json_response({"success": True, "tunnel": tunnel.to_dict()})

    async def _read_subdomain(self, request: web.Request) -> str:
        try:
            body = await request.json()
        except ValueError as e:
            raise InvalidRequestError("Invalid JSON body") from e

        if not isinstance(body, dict):
            raise InvalidRequestError("Invalid JSON body")

        subdomain = body.get("subdomain")
        if not isinstance(subdomain, str) or not subdomain.strip():
            raise InvalidRequestError("Missing subdomain")
        return subdomain

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.settings.host, self.settings.port)
        await site.start()
        logger.info(
            "NPort server started",
            host=self.settings.host,
            port=self.settings.port,
            cleanup_interval=self.settings.cleanup_interval if self.cleanup_enabled else None,
        )

    async def stop(self) -> None:
        """Stop serving and cancel background work."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("NPort server stopped")


def create_app(
    env: Env,
    settings: ServerSettings | None = None,
    *,
    provider_factory: ProviderFactory | None = None,
    clock: Clock = utc_now,
    cleanup_enabled: bool = True,
) -> web.Application:
    """Build an application serving tunnel requests for ``env``."""
    server = NPortServer(
        env,
        settings,
        provider_factory=provider_factory,
        clock=clock,
        cleanup_enabled=cleanup_enabled,
    )
    return server.create_app()
