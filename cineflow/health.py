from __future__ import annotations

"""
Liveness endpoint for the hosting platform.

Two routes, both boring on purpose: ``GET /`` and ``GET /health``.
"""

import logging
from typing import Optional

from aiohttp import web

LOGGER = logging.getLogger(__name__)


async def handle_root(_: web.Request) -> web.Response:
    return web.Response(text="Cineflow Bot is running!")


async def handle_health(_: web.Request) -> web.Response:
    return web.Response(text="OK")


def build_health_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", handle_root)
    app.router.add_get("/health", handle_health)
    return app


class HealthServer:
    """Runs the liveness app on the bot's event loop."""

    def __init__(self, host: str = "0.0.0.0", port: int = 3000) -> None:
        """
        Parameters
        ----------
        host : str
            Interface to bind.
        port : int
            TCP port, usually whatever ``PORT`` the platform handed us.
        """

        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        if self._runner is not None:
            return
        runner = web.AppRunner(build_health_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        LOGGER.info("Health server listening on %s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        LOGGER.info("Health server stopped")
