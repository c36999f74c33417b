"""Test fixtures for common service tests."""

from collections.abc import Generator
from unittest.mock import AsyncMock

import httpx
import pytest
import structlog


@pytest.fixture
def isolated_structlog() -> Generator[None, None, None]:
    """Reset structlog configuration between tests."""
    original_config = structlog.get_config()
    yield
    structlog.configure(**original_config)
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Async sleep replacement that records requested delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def make_status_error():
    """Build an httpx.HTTPStatusError with the given status code."""

    def _make(status_code: int) -> httpx.HTTPStatusError:
        request = httpx.Request("POST", "https://asr.example.com/v1/audio/transcriptions")
        response = httpx.Response(status_code, request=request)
        return httpx.HTTPStatusError(
            f"HTTP {status_code}", request=request, response=response
        )

    return _make
