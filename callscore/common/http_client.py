"""Shared HTTP helpers for async clients."""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping, MutableMapping
from typing import Any

import httpx
from structlog.stdlib import BoundLogger

from callscore.common.middleware import CORRELATION_HEADER, get_correlation_id
from callscore.common.retry import RetryPolicy
from callscore.common.structured_logging import get_logger


def inject_correlation_id(headers: Mapping[str, str] | None = None) -> dict[str, str]:
    """Copy ``headers`` and add the context correlation ID if not already set."""
    result = dict(headers or {})
    if CORRELATION_HEADER in result:
        return result
    correlation_id = get_correlation_id()
    if correlation_id:
        result[CORRELATION_HEADER] = correlation_id
    return result


def _payload_size(
    files: Mapping[str, tuple[str, bytes, str]] | None,
    json: Any | None,
) -> int:
    if files:
        return sum(len(f[1]) if isinstance(f[1], bytes) else 0 for f in files.values())
    if json is not None:
        return len(json_module.dumps(json, ensure_ascii=False).encode())
    return 0


async def post_with_retries(
    client: httpx.AsyncClient,
    url: str,
    *,
    policy: RetryPolicy,
    operation: str = "http",
    files: Mapping[str, tuple[str, bytes, str]] | None = None,
    data: Mapping[str, Any] | None = None,
    json: Any | None = None,
    headers: Mapping[str, str] | None = None,
    log_fields: MutableMapping[str, Any] | None = None,
    logger: BoundLogger | None = None,
    timeout: float | httpx.Timeout | None = None,
) -> httpx.Response:
    """POST helper that retries transient failures under ``policy``.

    Non-2xx responses are raised as ``httpx.HTTPStatusError``. The last error
    is re-raised once the policy gives up.
    """

    log = logger or get_logger(__name__)
    extra = dict(log_fields or {})
    request_headers = inject_correlation_id(headers)

    log.info(
        "http.post_attempt",
        url=url,
        max_attempts=policy.max_attempts,
        payload_size=_payload_size(files, json),
        timeout=timeout if not isinstance(timeout, httpx.Timeout) else timeout.read,
        **extra,
    )

    attempts = 0

    async def _send() -> httpx.Response:
        nonlocal attempts
        attempts += 1
        response = await client.post(
            url,
            files=files,
            data=data,
            json=json,
            headers=request_headers,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        response.raise_for_status()
        return response

    try:
        response = await policy.run(_send, operation=operation, log=log, url=url, **extra)
    except Exception as exc:
        log.error(
            "http.post_failed",
            url=url,
            attempt=attempts,
            max_attempts=policy.max_attempts,
            error=str(exc),
            error_type=type(exc).__name__,
            **extra,
        )
        raise

    log.info(
        "http.post_success",
        url=url,
        attempt=attempts,
        status_code=response.status_code,
        **extra,
    )
    return response


__all__ = ["CORRELATION_HEADER", "inject_correlation_id", "post_with_retries"]
