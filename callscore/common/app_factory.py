"""FastAPI application factory shared by callscore services."""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from callscore.common.health import HealthManager
from callscore.common.health_endpoints import HealthEndpoints
from callscore.common.middleware import ObservabilityMiddleware
from callscore.common.structured_logging import get_logger

logger = get_logger(__name__)

LifecycleHook = Callable[[], Any] | Callable[[], Awaitable[Any]]


async def _invoke(hook: LifecycleHook) -> None:
    result = hook()
    if inspect.isawaitable(result):
        await result


def create_service_app(
    service_name: str,
    service_version: str = "1.0.0",
    title: str | None = None,
    *,
    startup_callback: LifecycleHook | None = None,
    shutdown_callback: LifecycleHook | None = None,
    health_manager: HealthManager | None = None,
) -> FastAPI:
    """Build an app with lifecycle hooks, health routes and request logging.

    A failing ``startup_callback`` does not stop the process: the exception is
    recorded on ``health_manager`` as a critical startup failure, so
    ``/health/ready`` answers 503 and the error stays visible to operators.
    Shutdown errors are logged and swallowed so the remaining cleanup runs.
    """
    health = health_manager or HealthManager(service_name)
    log = logger.bind(service=service_name)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if startup_callback is not None:
            try:
                await _invoke(startup_callback)
            except Exception as exc:
                log.error("service.startup_failed", error=str(exc), error_type=type(exc).__name__)
                health.record_startup_failure(exc, component="startup_callback")
            else:
                log.info("service.started", version=service_version)

        yield

        if shutdown_callback is not None:
            try:
                await _invoke(shutdown_callback)
            except Exception as exc:
                log.error("service.shutdown_failed", error=str(exc), error_type=type(exc).__name__)
        log.info("service.stopped")

    app = FastAPI(title=title or service_name, version=service_version, lifespan=lifespan)
    app.state.service_name = service_name
    app.state.health_manager = health
    app.include_router(HealthEndpoints(service_name, health).router)
    app.add_middleware(ObservabilityMiddleware)
    return app


__all__ = ["create_service_app"]
