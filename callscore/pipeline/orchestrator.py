"""Pipeline orchestration: fetch, separate, transcribe, repair, score.

The flow is an explicit state machine. The one backward edge is
TRANSCRIBING_STEREO -> TRANSCRIBING_MONO, taken when transcription of the
separated channels fails and the undivided recording is transcribed instead.
"""

from __future__ import annotations

import asyncio
import mimetypes
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from urllib.parse import urlparse

from callscore.common.middleware import get_correlation_id
from callscore.common.structured_logging import correlation_context, get_logger
from callscore.pipeline.errors import (
    AlreadyAnalyzedError,
    DuplicateInvocationError,
    InvalidTransitionError,
    PipelineAbortedError,
    SeparationError,
    root_cause,
)
from callscore.pipeline.fetcher import AudioFetcher
from callscore.pipeline.persistence import ResultSinkProtocol
from callscore.pipeline.repair import Repairer
from callscore.pipeline.scoring import Scorer
from callscore.pipeline.separation import ChannelSeparator
from callscore.pipeline.transcription import Transcriber
from callscore.pipeline.types import (
    AudioAsset,
    CallDirection,
    ChannelPair,
    PipelineResult,
    ProcessingMode,
    Role,
    TranscriptBlock,
    TranslatedBlock,
    TranslatedTranscript,
)

logger = get_logger(__name__)


class PipelineState(str, Enum):
    FETCHING = "fetching"
    SEPARATING = "separating"
    TRANSCRIBING_STEREO = "transcribing_stereo"
    TRANSCRIBING_MONO = "transcribing_mono"
    REPAIRING = "repairing"
    SCORING = "scoring"
    DONE = "done"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({PipelineState.DONE, PipelineState.ABORTED})

# Short calls go straight from transcription to DONE.
ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.FETCHING: frozenset({PipelineState.SEPARATING}),
    PipelineState.SEPARATING: frozenset(
        {PipelineState.TRANSCRIBING_STEREO, PipelineState.TRANSCRIBING_MONO}
    ),
    PipelineState.TRANSCRIBING_STEREO: frozenset(
        {PipelineState.TRANSCRIBING_MONO, PipelineState.REPAIRING, PipelineState.DONE}
    ),
    PipelineState.TRANSCRIBING_MONO: frozenset({PipelineState.REPAIRING, PipelineState.DONE}),
    PipelineState.REPAIRING: frozenset({PipelineState.SCORING}),
    PipelineState.SCORING: frozenset({PipelineState.DONE}),
    PipelineState.DONE: frozenset(),
    PipelineState.ABORTED: frozenset(),
}


class PipelineStateMachine:
    """Current state plus history for one invocation."""

    def __init__(self, call_id: str) -> None:
        self.call_id = call_id
        self.state = PipelineState.FETCHING
        self.history: list[PipelineState] = [PipelineState.FETCHING]

    def can_transition(self, target: PipelineState) -> bool:
        if target is PipelineState.ABORTED:
            return self.state not in TERMINAL_STATES
        return target in ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: PipelineState, **log_fields: object) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"Illegal transition {self.state.value} -> {target.value}"
            )
        logger.info(
            "pipeline.stage_enter",
            from_state=self.state.value,
            to_state=target.value,
            **log_fields,
        )
        self.state = target
        self.history.append(target)


class InFlightRegistry:
    """Call ids currently being processed, guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._active: set[str] = set()

    async def acquire(self, call_id: str) -> None:
        async with self._lock:
            if call_id in self._active:
                raise DuplicateInvocationError(call_id)
            self._active.add(call_id)

    async def release(self, call_id: str) -> None:
        async with self._lock:
            self._active.discard(call_id)

    def is_active(self, call_id: str) -> bool:
        return call_id in self._active

    @asynccontextmanager
    async def claim(self, call_id: str) -> AsyncIterator[None]:
        await self.acquire(call_id)
        try:
            yield
        finally:
            await self.release(call_id)


@dataclass(frozen=True)
class AnalyzeRequest:
    call_id: str
    audio_url: str
    direction: CallDirection = CallDirection.INBOUND


def guess_upload_name(url: str) -> tuple[str, str]:
    """Filename and content type for uploading the undivided recording."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower() or ".mp3"
    content_type = mimetypes.types_map.get(suffix, "audio/mpeg")
    if not content_type.startswith("audio/"):
        suffix, content_type = ".mp3", "audio/mpeg"
    return f"audio{suffix}", content_type


class PipelineOrchestrator:
    """Runs one call through every stage and decides between fallback and abort.

    Stages raise typed errors; this class is the only place that turns an
    error into a mono fallback or into ``PipelineAbortedError``. A ``None``
    separator means the audio tool is unavailable and every call runs mono.
    """

    def __init__(
        self,
        *,
        fetcher: AudioFetcher,
        separator: ChannelSeparator | None,
        transcriber: Transcriber,
        repairer: Repairer,
        scorer: Scorer,
        sink: ResultSinkProtocol,
        registry: InFlightRegistry | None = None,
        short_call_min_chars: int = 15,
    ) -> None:
        self._fetcher = fetcher
        self._separator = separator
        self._transcriber = transcriber
        self._repairer = repairer
        self._scorer = scorer
        self._sink = sink
        self._registry = registry or InFlightRegistry()
        self._short_call_min_chars = short_call_min_chars

    @property
    def registry(self) -> InFlightRegistry:
        return self._registry

    @property
    def separation_enabled(self) -> bool:
        return self._separator is not None

    async def run(self, request: AnalyzeRequest, *, force: bool = False) -> PipelineResult:
        """Analyze one call.

        Raises:
            DuplicateInvocationError: the call is already being processed.
            AlreadyAnalyzedError: a stored result exists and ``force`` is False.
            PipelineAbortedError: a stage failed with no fallback left.
        """
        async with self._registry.claim(request.call_id):
            correlation_id = get_correlation_id() or f"call-{request.call_id}"
            with correlation_context(correlation_id, call_id=request.call_id):
                if not force and await self._sink.exists(request.call_id):
                    raise AlreadyAnalyzedError(request.call_id)
                if force:
                    logger.info("pipeline.reanalysis_forced")
                return await self._run(request)

    async def _run(self, request: AnalyzeRequest) -> PipelineResult:
        machine = PipelineStateMachine(request.call_id)
        logger.info(
            "pipeline.started",
            audio_url=request.audio_url,
            direction=request.direction.value,
        )
        try:
            return await self._execute(request, machine)
        except Exception as exc:
            failed_state = machine.state
            reason = root_cause(exc)
            if machine.can_transition(PipelineState.ABORTED):
                machine.transition(PipelineState.ABORTED, reason=reason)
            logger.error(
                "pipeline.aborted",
                state=failed_state.value,
                reason=reason,
                error_type=type(exc).__name__,
            )
            raise PipelineAbortedError(request.call_id, failed_state.value, reason) from exc

    async def _execute(
        self, request: AnalyzeRequest, machine: PipelineStateMachine
    ) -> PipelineResult:
        asset = await self._fetcher.fetch(request.audio_url, request.direction)

        machine.transition(PipelineState.SEPARATING)
        pair, fallback_reason = await self._separate(asset)

        if pair is not None:
            machine.transition(PipelineState.TRANSCRIBING_STEREO)
            try:
                agent_raw, counterpart_raw = await self._transcribe_channels(pair)
            except Exception as exc:
                fallback_reason = f"stereo transcription failed: {root_cause(exc)}"
                logger.warning("pipeline.stereo_fallback", reason=fallback_reason)
            else:
                return await self._finish_stereo(
                    request, machine, agent_raw.strip(), counterpart_raw.strip()
                )

        machine.transition(PipelineState.TRANSCRIBING_MONO, reason=fallback_reason)
        filename, content_type = guess_upload_name(asset.source_url)
        raw_text = (
            await self._transcriber.transcribe(
                asset.data, None, filename=filename, content_type=content_type
            )
        ).strip()
        return await self._finish_mono(request, machine, raw_text, fallback_reason)

    async def _transcribe_channels(self, pair: ChannelPair) -> tuple[str, str]:
        """Transcribe both channels concurrently.

        The first failure cancels the other upload and is re-raised on its own.
        """
        failure: Exception | None = None
        try:
            async with asyncio.TaskGroup() as group:
                agent = group.create_task(
                    self._transcriber.transcribe(
                        pair.agent, Role.AGENT, filename="agent.wav", content_type="audio/wav"
                    )
                )
                counterpart = group.create_task(
                    self._transcriber.transcribe(
                        pair.counterpart,
                        Role.COUNTERPART,
                        filename="counterpart.wav",
                        content_type="audio/wav",
                    )
                )
        except ExceptionGroup as group_error:
            failure = group_error.exceptions[0]
        if failure is not None:
            raise failure
        return agent.result(), counterpart.result()

    async def _separate(self, asset: AudioAsset) -> tuple[ChannelPair | None, str | None]:
        if self._separator is None:
            return None, "audio tool unavailable"
        try:
            pair = await self._separator.separate(asset.data, asset.direction)
        except SeparationError as exc:
            logger.warning("pipeline.separation_failed", error=str(exc))
            return None, f"separation failed: {exc}"
        if pair is None:
            return None, "recording is not stereo"
        return pair, None

    async def _finish_stereo(
        self,
        request: AnalyzeRequest,
        machine: PipelineStateMachine,
        agent_raw: str,
        counterpart_raw: str,
    ) -> PipelineResult:
        raw_blocks = (
            TranscriptBlock(Role.AGENT, agent_raw),
            TranscriptBlock(Role.COUNTERPART, counterpart_raw),
        )
        raw_transcript = "\n\n".join(block.render() for block in raw_blocks if block.raw_text)
        if len(agent_raw) + len(counterpart_raw) < self._short_call_min_chars:
            return await self._short_circuit(
                request, machine, raw_transcript, ProcessingMode.STEREO, None
            )

        machine.transition(PipelineState.REPAIRING)
        transcript = await self._repairer.repair_stereo(agent_raw, counterpart_raw)
        return await self._score_and_save(
            request, machine, raw_transcript, transcript, ProcessingMode.STEREO, None
        )

    async def _finish_mono(
        self,
        request: AnalyzeRequest,
        machine: PipelineStateMachine,
        raw_text: str,
        fallback_reason: str | None,
    ) -> PipelineResult:
        if len(raw_text) < self._short_call_min_chars:
            return await self._short_circuit(
                request, machine, raw_text, ProcessingMode.MONO, fallback_reason
            )

        machine.transition(PipelineState.REPAIRING)
        transcript = await self._repairer.repair_mono(raw_text)
        return await self._score_and_save(
            request, machine, raw_text, transcript, ProcessingMode.MONO, fallback_reason
        )

    async def _short_circuit(
        self,
        request: AnalyzeRequest,
        machine: PipelineStateMachine,
        raw_text: str,
        mode: ProcessingMode,
        fallback_reason: str | None,
    ) -> PipelineResult:
        logger.info("pipeline.short_call", chars=len(raw_text), mode=mode.value)
        transcript = TranslatedTranscript((TranslatedBlock(Role.AGENT, raw_text),))
        report = self._scorer.short_call_report(raw_text)
        await self._sink.save(request.call_id, raw_text, transcript, report)
        machine.transition(PipelineState.DONE)
        return PipelineResult(
            call_id=request.call_id,
            raw_transcript=raw_text,
            transcript=transcript,
            report=report,
            mode=mode,
            fallback_reason=fallback_reason,
        )

    async def _score_and_save(
        self,
        request: AnalyzeRequest,
        machine: PipelineStateMachine,
        raw_transcript: str,
        transcript: TranslatedTranscript,
        mode: ProcessingMode,
        fallback_reason: str | None,
    ) -> PipelineResult:
        machine.transition(PipelineState.SCORING)
        report = await self._scorer.score(transcript)
        await self._sink.save(request.call_id, raw_transcript, transcript, report)
        machine.transition(PipelineState.DONE, overall_score=report.overall_score)

        logger.info(
            "pipeline.complete",
            mode=mode.value,
            fallback_reason=fallback_reason,
            overall_score=report.overall_score,
            call_type=report.call_type.value,
            degraded_transcript=transcript.degraded,
        )
        return PipelineResult(
            call_id=request.call_id,
            raw_transcript=raw_transcript,
            transcript=transcript,
            report=report,
            mode=mode,
            fallback_reason=fallback_reason,
        )
