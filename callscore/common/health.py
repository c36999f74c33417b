"""Readiness bookkeeping for a service: startup outcome plus dependency probes."""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from callscore.common.structured_logging import get_logger

PROBE_TIMEOUT = 2.0


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(slots=True)
class HealthCheck:
    """Outcome of one readiness evaluation."""

    status: HealthStatus
    ready: bool
    details: dict[str, Any]


@dataclass(slots=True)
class _Dependency:
    probe: Callable[[], Any]
    critical: bool


@dataclass(slots=True)
class _StartupFailure:
    error: str
    error_type: str
    component: str | None
    critical: bool

    def summary(self) -> dict[str, Any]:
        return {"component": self.component, "error_type": self.error_type, "error": self.error}


async def _run_probe(probe: Callable[[], Any]) -> bool:
    if inspect.iscoroutinefunction(probe):
        outcome = probe()
    else:
        outcome = asyncio.to_thread(probe)
    return bool(await asyncio.wait_for(outcome, timeout=PROBE_TIMEOUT))


class HealthManager:
    """Decides whether one service is ready to take work.

    A probe registered as critical makes the service unready when it fails;
    an optional one only marks it degraded. The pipeline registers the audio
    tool as optional, since without it every call still runs mono.
    """

    def __init__(self, service_name: str) -> None:
        self._service_name = service_name
        self._dependencies: dict[str, _Dependency] = {}
        self._started_at = time.time()
        self._startup_complete = False
        self._failure: _StartupFailure | None = None
        self._logger = get_logger(__name__, service_name=service_name)

    @property
    def startup_complete(self) -> bool:
        return self._startup_complete

    def uptime_seconds(self) -> float:
        return round(time.time() - self._started_at, 1)

    def register_dependency(
        self, name: str, check: Callable[[], Any], *, critical: bool = True
    ) -> None:
        """Add a probe; ``check`` may be a plain callable or a coroutine function."""
        self._dependencies[name] = _Dependency(check, critical)

    def record_startup_failure(
        self,
        error: Exception,
        component: str | None = None,
        is_critical: bool = True,
    ) -> None:
        self._failure = _StartupFailure(
            error=str(error),
            error_type=type(error).__name__,
            component=component,
            critical=is_critical,
        )
        emit = self._logger.error if is_critical else self._logger.warning
        emit(
            "health.startup_failed",
            component=component,
            error=str(error),
            error_type=type(error).__name__,
        )

    def has_startup_failure(self) -> bool:
        return self._failure is not None and self._failure.critical

    def mark_startup_complete(self) -> None:
        """No-op while a critical startup failure is on record."""
        if self.has_startup_failure():
            self._logger.warning("health.startup_blocked", **self._failure.summary())
            return
        self._startup_complete = True
        self._logger.info("health.ready")

    async def _probe(self, name: str, dependency: _Dependency) -> dict[str, Any]:
        try:
            available = await _run_probe(dependency.probe)
        except TimeoutError:
            result: dict[str, Any] = {
                "available": False,
                "error": "Timeout",
                "error_type": "TimeoutError",
            }
        except Exception as exc:
            self._logger.warning(
                "health.probe_failed", dependency=name, error=str(exc), error_type=type(exc).__name__
            )
            result = {
                "available": False,
                "error": f"{type(exc).__name__}: {exc}",
                "error_type": type(exc).__name__,
            }
        else:
            result = {"available": available}
        result["critical"] = dependency.critical
        return result

    async def get_health_status(self) -> HealthCheck:
        details: dict[str, Any] = {
            "service": self._service_name,
            "uptime_seconds": self.uptime_seconds(),
        }
        if self.has_startup_failure():
            details.update(reason="startup_failed", startup_failure=self._failure.summary())
            return HealthCheck(HealthStatus.UNHEALTHY, False, details)
        if not self._startup_complete:
            details["reason"] = "startup_not_complete"
            return HealthCheck(HealthStatus.UNHEALTHY, False, details)

        names = list(self._dependencies)
        results = await asyncio.gather(
            *(self._probe(name, self._dependencies[name]) for name in names)
        )
        details["dependencies"] = dict(zip(names, results))

        failing = [result for result in results if not result["available"]]
        if any(result["critical"] for result in failing):
            return HealthCheck(HealthStatus.UNHEALTHY, False, details)
        status = HealthStatus.DEGRADED if failing else HealthStatus.HEALTHY
        return HealthCheck(status, True, details)


__all__ = ["HealthCheck", "HealthManager", "HealthStatus"]
