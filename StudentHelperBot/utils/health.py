"""
HTTP health check.

Небольшой aiohttp-сервер для проверки живости бота хостингом:
- GET /health - статус, аптайм и состояние БД (JSON)
- GET /ping - "pong"
- GET / - название сервиса
"""

import time
from datetime import datetime
from typing import Optional

from aiohttp import web
import structlog

from database.database import db_stats, health_check


logger = structlog.get_logger()

SERVICE_NAME = "Student Helper Bot"


class HealthServer:
    """
    Сервер health check.

    Запускается рядом с polling и останавливается при выключении бота.
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.started_at = time.time()
        self._runner: Optional[web.AppRunner] = None

    @property
    def uptime_seconds(self) -> float:
        return round(time.time() - self.started_at, 1)

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/ping", self.handle_ping)
        app.router.add_get("/", self.handle_root)
        return app

    async def handle_health(self, request: web.Request) -> web.Response:
        """Статус сервиса; 503 если БД недоступна."""
        database = await health_check()
        healthy = database["status"] == "healthy"

        return web.json_response(
            {
                "status": "ok" if healthy else "degraded",
                "timestamp": datetime.now().isoformat(),
                "uptime_seconds": self.uptime_seconds,
                "database": database,
                "queries": db_stats.get_stats(),
            },
            status=200 if healthy else 503,
        )

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def handle_root(self, request: web.Request) -> web.Response:
        return web.Response(text=f"{SERVICE_NAME} is running")

    async def start(self) -> None:
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("health_server_started", host=self.host, port=self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("health_server_stopped")
