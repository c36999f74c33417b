"""Result sinks: where finished pipeline results are handed off."""

from __future__ import annotations

import asyncio
from typing import Protocol

from callscore.common.structured_logging import get_logger
from callscore.pipeline.types import ScoreReport, TranslatedTranscript

logger = get_logger(__name__)


class ResultSinkProtocol(Protocol):
    async def save(
        self,
        call_id: str,
        raw_transcript: str,
        transcript: TranslatedTranscript,
        report: ScoreReport,
    ) -> None:
        """Store the three documents for ``call_id``, replacing any earlier ones."""
        ...

    async def exists(self, call_id: str) -> bool:
        """Return True when a result for ``call_id`` is already stored."""
        ...


class InMemoryResultSink:
    """Keeps the latest result per call id in process memory."""

    def __init__(self) -> None:
        self._results: dict[str, tuple[str, TranslatedTranscript, ScoreReport]] = {}
        self._lock = asyncio.Lock()

    async def save(
        self,
        call_id: str,
        raw_transcript: str,
        transcript: TranslatedTranscript,
        report: ScoreReport,
    ) -> None:
        async with self._lock:
            replaced = call_id in self._results
            self._results[call_id] = (raw_transcript, transcript, report)
        logger.info("persistence.saved", call_id=call_id, replaced=replaced)

    async def exists(self, call_id: str) -> bool:
        return call_id in self._results

    def get(self, call_id: str) -> tuple[str, TranslatedTranscript, ScoreReport] | None:
        return self._results.get(call_id)

    def __len__(self) -> int:
        return len(self._results)

