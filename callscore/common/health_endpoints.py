"""Liveness and readiness routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from callscore.common.health import HealthManager


class HealthEndpoints:
    """``/health/live`` and ``/health/ready`` for one service."""

    def __init__(self, service_name: str, health_manager: HealthManager) -> None:
        self.service_name = service_name
        self.health_manager = health_manager
        self.router = APIRouter(prefix="/health", tags=["health"])
        self.router.add_api_route("/live", self.live, methods=["GET"])
        self.router.add_api_route("/ready", self.ready, methods=["GET"])

    async def live(self) -> dict[str, str]:
        return {"status": "alive", "service": self.service_name}

    async def ready(self) -> Any:
        """503 with the reason while not ready, otherwise the dependency report."""
        health = await self.health_manager.get_health_status()
        body = {"service": self.service_name, **health.details}
        if health.ready:
            return {"status": health.status.value, **body}
        return JSONResponse(status_code=503, content={"status": "not_ready", **body})


__all__ = ["HealthEndpoints"]
