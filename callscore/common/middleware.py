"""Request middleware: correlation ids and access logging."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from callscore.common.structured_logging import _correlation_id, get_correlation_id, get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
_QUIET_PATHS = frozenset({"/health/live", "/health/ready"})


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Adopt or mint a correlation id per request and log its outcome.

    The id comes from the ``X-Correlation-ID`` header, then the
    ``correlation_id`` query parameter, and is echoed back on the response.
    Probe endpoints are not access-logged.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = (
            request.headers.get(CORRELATION_HEADER)
            or request.query_params.get("correlation_id")
            or uuid.uuid4().hex
        )
        log = logger.bind(
            correlation_id=correlation_id, method=request.method, path=request.url.path
        )
        quiet = request.url.path in _QUIET_PATHS
        started = time.perf_counter()

        token = _correlation_id.set(correlation_id)
        try:
            response = await call_next(request)
        except Exception as exc:
            log.error(
                "http.request_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise
        finally:
            _correlation_id.reset(token)

        if not quiet:
            log.info(
                "http.request",
                status_code=response.status_code,
                duration_ms=_elapsed_ms(started),
            )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


__all__ = ["CORRELATION_HEADER", "ObservabilityMiddleware", "get_correlation_id"]
