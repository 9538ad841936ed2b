from aiohttp import web
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from typing import Optional

from . import settings

import time


class HealthServerMixin:
    health_app_runner: Optional[web.AppRunner] = None
    health_site: Optional[web.TCPSite] = None

    def health_status(self) -> dict:
        """Fields reported by the health endpoint; overridden by the host."""
        return {}

    def _build_health_app(self) -> web.Application:
        app = web.Application()

        async def health_handler(request):
            return web.json_response({"status": "healthy", "timestamp": time.time(), **self.health_status()})

        async def metrics_handler(request):
            return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})

        app.router.add_get(settings.WALLBOARD_HEALTH_ENDPOINT, health_handler)
        app.router.add_get("/metrics", metrics_handler)
        return app

    async def _start_health_server(self):
        """Starts the aiohttp web server for healthchecks and metrics."""
        if not settings.LAUNCH_HEALTH:
            return

        self.health_app_runner = web.AppRunner(self._build_health_app())
        await self.health_app_runner.setup()
        self.health_site = web.TCPSite(
            self.health_app_runner, settings.WALLBOARD_HEALTH_HOST, settings.WALLBOARD_HEALTH_PORT
        )
        try:
            await self.health_site.start()
        except OSError as e:
            # the board itself must keep running without its health endpoint
            logger.warning(f"Wallboard health API could not bind: {e}")
            await self.health_app_runner.cleanup()
            self.health_app_runner = None
            self.health_site = None
            return
        logger.info(
            f"Wallboard healthcheck API started on "
            f"http://{settings.WALLBOARD_HEALTH_HOST}:{settings.WALLBOARD_HEALTH_PORT}{settings.WALLBOARD_HEALTH_ENDPOINT}"
        )

    async def _stop_health_server(self):
        """Stops the aiohttp web server for healthchecks."""
        if self.health_site:
            await self.health_site.stop()
            logger.info("Wallboard healthcheck API site stopped.")
            self.health_site = None
        if self.health_app_runner:
            await self.health_app_runner.cleanup()
            logger.info("Wallboard healthcheck API runner cleaned up.")
            self.health_app_runner = None
