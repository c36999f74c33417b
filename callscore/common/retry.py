"""Retry policy for outbound network calls.

One policy object covers every call that crosses the ASR/LLM boundary: a
retryability predicate, a bounded attempt count and two exponential backoff
schedules (a longer one after rate-limit responses).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx
from structlog.stdlib import BoundLogger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from callscore.common.structured_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS = 429


def is_rate_limited(exc: BaseException) -> bool:
    """Return True for an HTTP 429 response."""
    return (
        isinstance(exc, httpx.HTTPStatusError)
        and exc.response.status_code == RATE_LIMIT_STATUS
    )


def is_retryable(exc: BaseException) -> bool:
    """Classify an exception as transient.

    Timeouts, DNS and connection failures, dropped connections, HTTP 429 and
    HTTP 5xx are transient. Everything else (4xx, malformed input, local
    errors) is permanent.
    """
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == RATE_LIMIT_STATUS or status >= 500
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff keyed on the kind of failure.

    ``max_attempts`` counts the first call, so a policy of 3 makes at most
    three requests. Generic failures wait ``base_delay * 2**(n-1)`` capped at
    ``max_delay``; rate-limit responses wait ``rate_limit_delay * 2**n`` capped
    at ``rate_limit_max_delay``. Within one call the delay never shrinks.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    rate_limit_delay: float = 2.0
    rate_limit_max_delay: float = 30.0
    predicate: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    @classmethod
    def from_config(cls, config: Any, **overrides: Any) -> RetryPolicy:
        """Build a policy from an ``HttpConfig`` section."""
        values = {
            "max_attempts": config.max_retries,
            "base_delay": config.retry_delay,
            "max_delay": config.max_delay,
            "rate_limit_delay": config.rate_limit_delay,
            "rate_limit_max_delay": config.rate_limit_max_delay,
        }
        values.update(overrides)
        return cls(**values)

    def backoff(self, attempt: int, exc: BaseException | None = None) -> float:
        """Delay in seconds after failed attempt number ``attempt`` (1-based)."""
        attempt = max(attempt, 1)
        if exc is not None and is_rate_limited(exc):
            return min(self.rate_limit_delay * (2**attempt), self.rate_limit_max_delay)
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def _wait(self) -> Callable[[RetryCallState], float]:
        last_delay = 0.0

        def wait(retry_state: RetryCallState) -> float:
            nonlocal last_delay
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            last_delay = max(last_delay, self.backoff(retry_state.attempt_number, exc))
            return last_delay

        return wait

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        *,
        operation: str = "http",
        log: BoundLogger | None = None,
        **log_fields: Any,
    ) -> T:
        """Await ``func`` until it succeeds, fails permanently or runs out of attempts.

        The last exception is re-raised unchanged so callers can wrap it in
        their own error type.
        """
        log = log or logger

        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            log.warning(
                f"{operation}.retry",
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                backoff=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(exc),
                error_type=type(exc).__name__,
                rate_limited=bool(exc is not None and is_rate_limited(exc)),
                **log_fields,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=retry_if_exception(self.predicate),
            before_sleep=before_sleep,
            sleep=self.sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                return await func()
        raise AssertionError("retry loop exited without a result")


__all__ = ["RetryPolicy", "is_rate_limited", "is_retryable"]
