"""structlog setup shared by every callscore process.

Both structlog loggers and plain ``logging`` records (uvicorn, httpx) are
rendered by one ``ProcessorFormatter`` on a single root handler, so a log line
looks the same whichever API produced it.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Any

import structlog

# Set per request by ObservabilityMiddleware.
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_QUIET_LIBRARIES = ("httpx", "httpcore", "multipart", "multipart.multipart")
_TRUTHY = {"1", "true", "yes"}
_FALSY = {"0", "false", "no"}


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def _level_number(level: str) -> int:
    number = logging.getLevelNamesMapping().get((level or "").upper())
    return number if isinstance(number, int) and number > 0 else logging.INFO


def _wants_dict_tracebacks(explicit: bool | None, level: int) -> bool:
    if explicit is not None:
        return explicit
    flag = os.getenv("LOG_FULL_TRACEBACKS", "").strip().lower()
    if flag in _TRUTHY:
        return True
    if flag in _FALSY:
        return False
    return level <= logging.DEBUG


class _ServiceStamp:
    """Processor adding ``service`` unless the event already names one."""

    def __init__(self, service_name: str | None) -> None:
        self.service_name = service_name

    def __call__(self, _logger: Any, _method: str, event: dict[str, Any]) -> dict[str, Any]:
        if self.service_name:
            event.setdefault("service", self.service_name)
        return event


def configure_logging(
    level: str = "INFO",
    *,
    json_logs: bool = True,
    service_name: str | None = None,
    stream: IO[str] | None = None,
    full_tracebacks: bool | None = None,
) -> None:
    """Install the process-wide logging pipeline.

    ``stream`` defaults to stdout; tests pass a ``StringIO``. With
    ``full_tracebacks`` left as ``None`` the ``LOG_FULL_TRACEBACKS`` variable
    decides, falling back to structured tracebacks only at DEBUG.
    """
    threshold = _level_number(level)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        _ServiceStamp(service_name),
        structlog.processors.dict_tracebacks
        if _wants_dict_tracebacks(full_tracebacks, threshold)
        else structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(threshold)
    logging.captureWarnings(True)
    for library in _QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(
    name: str,
    *,
    correlation_id: str | None = None,
    service_name: str | None = None,
) -> structlog.stdlib.BoundLogger:
    """Named logger, pre-bound with the request correlation id when one is active."""
    bound: dict[str, Any] = {}
    correlation_id = correlation_id or get_correlation_id()
    if correlation_id:
        bound["correlation_id"] = correlation_id
    if service_name:
        bound["service"] = service_name
    logger = structlog.stdlib.get_logger(name)
    return logger.bind(**bound) if bound else logger


@contextmanager
def correlation_context(
    correlation_id: str | None,
    **extra: Any,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Bind ``correlation_id`` and ``extra`` to every log line inside the block.

    Keys shadowed by the block get their outer values back on exit, so nested
    blocks for different calls do not clobber one another.

        with correlation_context("call-42", call_id="42") as log:
            log.info("pipeline.started")
    """
    keys = dict(extra)
    if correlation_id:
        keys["correlation_id"] = correlation_id

    outer = structlog.contextvars.get_contextvars()
    shadowed = {key: outer[key] for key in keys if key in outer}
    structlog.contextvars.bind_contextvars(**keys)
    try:
        yield structlog.stdlib.get_logger()
    finally:
        structlog.contextvars.unbind_contextvars(*keys)
        structlog.contextvars.bind_contextvars(**shadowed)


__all__ = [
    "configure_logging",
    "correlation_context",
    "get_correlation_id",
    "get_logger",
]
