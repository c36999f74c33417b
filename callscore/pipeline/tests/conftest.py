"""Test fixtures for pipeline tests."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock

import httpx
import pytest
import structlog

from callscore.common.retry import RetryPolicy
from callscore.pipeline.fetcher import AudioFetcher
from callscore.pipeline.orchestrator import PipelineOrchestrator
from callscore.pipeline.persistence import InMemoryResultSink
from callscore.pipeline.repair import Repairer
from callscore.pipeline.rubric import DEFAULT_RUBRIC
from callscore.pipeline.scoring import Scorer
from callscore.pipeline.separation import ChannelSeparator
from callscore.pipeline.tests.fakes import ASR_BASE, CallService, FakeAudioTool, ScriptedChat
from callscore.pipeline.transcription import Transcriber


@pytest.fixture(autouse=True)
def reset_log_context():
    """Keep bound context from leaking across tests."""
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def fast_policy(no_sleep) -> RetryPolicy:
    """Three attempts, no real waiting."""
    return RetryPolicy(max_attempts=3, sleep=no_sleep)


@pytest.fixture
def call_service() -> CallService:
    return CallService()


@pytest.fixture
def make_orchestrator(fast_policy) -> Callable[..., tuple[PipelineOrchestrator, InMemoryResultSink]]:
    """Build an orchestrator over a CallService, a FakeAudioTool and a ScriptedChat."""

    def _make(
        service: CallService,
        chat: ScriptedChat,
        *,
        tool: FakeAudioTool | None = None,
        separation: bool = True,
        sink: InMemoryResultSink | None = None,
        short_call_min_chars: int = 15,
    ) -> tuple[PipelineOrchestrator, InMemoryResultSink]:
        client = httpx.AsyncClient(transport=service.transport())
        if sink is None:
            sink = InMemoryResultSink()
        separator = None
        if separation:
            separator = ChannelSeparator(tool or FakeAudioTool())
        orchestrator = PipelineOrchestrator(
            fetcher=AudioFetcher(client, user_agent="test-agent"),
            separator=separator,
            transcriber=Transcriber(
                client,
                base_url=ASR_BASE,
                api_key="sk-test",
                model="whisper-1",
                policy=fast_policy,
            ),
            repairer=Repairer(chat),
            scorer=Scorer(chat, DEFAULT_RUBRIC),
            sink=sink,
            short_call_min_chars=short_call_min_chars,
        )
        return orchestrator, sink

    return _make
