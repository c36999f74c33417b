"""HTTP surface of the call scoring pipeline."""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request

from callscore.common.app_factory import create_service_app
from callscore.common.health import HealthManager
from callscore.common.retry import RetryPolicy
from callscore.common.structured_logging import get_logger
from callscore.pipeline.config import PipelineSettings, load_settings
from callscore.pipeline.errors import (
    AlreadyAnalyzedError,
    DuplicateInvocationError,
    PipelineAbortedError,
)
from callscore.pipeline.fetcher import AudioFetcher
from callscore.pipeline.llm_client import ChatClient
from callscore.pipeline.models import (
    AnalyzeCallRequest,
    AnalyzeCallResponse,
    CallResultResponse,
    ScoreReportModel,
    TranscriptModel,
)
from callscore.pipeline.orchestrator import AnalyzeRequest, PipelineOrchestrator
from callscore.pipeline.persistence import InMemoryResultSink
from callscore.pipeline.repair import Repairer
from callscore.pipeline.rubric import load_rubric
from callscore.pipeline.scoring import Scorer
from callscore.pipeline.separation import ChannelSeparator, FFmpegAudioTool
from callscore.pipeline.transcription import Transcriber

SERVICE_NAME = "callscore"
SERVICE_VERSION = "1.0.0"

logger = get_logger(__name__, service_name=SERVICE_NAME)


def build_orchestrator(
    settings: PipelineSettings,
    client: httpx.AsyncClient,
    *,
    sink: InMemoryResultSink,
    audio_tool: FFmpegAudioTool | None = None,
) -> PipelineOrchestrator:
    """Wire every stage from ``settings``.

    Separation is disabled (every call runs mono) when the audio tool is not
    installed.
    """
    cfg = settings.pipeline
    policy = RetryPolicy.from_config(settings.http)
    rubric = load_rubric(cfg.rubric_path)

    tool = audio_tool or FFmpegAudioTool(cfg.ffmpeg_binary, cfg.ffprobe_binary)
    separator: ChannelSeparator | None = None
    if tool.is_available():
        separator = ChannelSeparator(tool, sample_rate=cfg.channel_sample_rate)
    else:
        logger.warning(
            "pipeline.audio_tool_unavailable",
            ffmpeg=cfg.ffmpeg_binary,
            ffprobe=cfg.ffprobe_binary,
            consequence="all calls use mono transcription",
        )

    chat = ChatClient(
        client,
        base_url=cfg.llm_base_url,
        api_key=cfg.api_key,
        model=cfg.llm_model,
        temperature=cfg.llm_temperature,
        max_tokens=cfg.llm_max_tokens,
        timeout=cfg.llm_timeout,
        policy=policy,
    )

    return PipelineOrchestrator(
        fetcher=AudioFetcher(
            client, user_agent=cfg.fetch_user_agent, timeout=cfg.fetch_timeout
        ),
        separator=separator,
        transcriber=Transcriber(
            client,
            base_url=cfg.asr_base_url,
            api_key=cfg.api_key,
            model=cfg.asr_model,
            prompt=cfg.asr_prompt,
            language=cfg.asr_language,
            timeout=cfg.asr_timeout,
            policy=policy,
            min_segment_chars=cfg.dedup_min_segment_chars,
            near_duplicate_threshold=cfg.dedup_near_duplicate_delta,
        ),
        repairer=Repairer(
            chat,
            output_language=cfg.output_language,
            glossary=rubric.glossary,
            business_context=rubric.business_context,
        ),
        scorer=Scorer(
            chat,
            rubric,
            output_language=cfg.output_language,
            max_tokens=min(3000, cfg.llm_max_tokens),
        ),
        sink=sink,
        short_call_min_chars=cfg.short_call_min_chars,
    )


def create_app(
    settings: PipelineSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    audio_tool: FFmpegAudioTool | None = None,
) -> FastAPI:
    """Build the service app.

    ``transport`` and ``audio_tool`` replace the network and ffmpeg for tests.
    """
    health_manager = HealthManager(SERVICE_NAME)
    sink = InMemoryResultSink()

    async def _startup() -> None:
        resolved = settings or load_settings()
        app.state.settings = resolved
        app.state.sink = sink
        app.state.orchestrator = None

        resolved.validate_required()

        client = httpx.AsyncClient(transport=transport)
        app.state.http_client = client
        orchestrator = build_orchestrator(resolved, client, sink=sink, audio_tool=audio_tool)
        app.state.orchestrator = orchestrator

        health_manager.register_dependency(
            "credentials", lambda: bool(resolved.pipeline.api_key), critical=True
        )
        health_manager.register_dependency(
            "audio_tool",
            lambda: orchestrator.separation_enabled,
            critical=False,
        )
        health_manager.mark_startup_complete()
        logger.info("pipeline.configured", settings=resolved.to_dict())

    async def _shutdown() -> None:
        client = getattr(app.state, "http_client", None)
        if client is not None:
            await client.aclose()

    app = create_service_app(
        SERVICE_NAME,
        SERVICE_VERSION,
        title="Call Quality Scoring",
        startup_callback=_startup,
        shutdown_callback=_shutdown,
        health_manager=health_manager,
    )

    @app.post("/v1/calls/{call_id}/analyze", response_model=AnalyzeCallResponse)
    async def analyze_call(
        call_id: str, body: AnalyzeCallRequest, request: Request
    ) -> AnalyzeCallResponse:
        orchestrator = _get_orchestrator(request)
        try:
            result = await orchestrator.run(
                AnalyzeRequest(call_id=call_id, audio_url=body.audio_url, direction=body.direction),
                force=body.force,
            )
        except (DuplicateInvocationError, AlreadyAnalyzedError) as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except PipelineAbortedError as exc:
            raise HTTPException(
                status_code=502,
                detail={"state": exc.state, "reason": exc.reason},
            ) from exc
        return AnalyzeCallResponse.from_result(result)

    @app.get("/v1/calls/{call_id}", response_model=CallResultResponse)
    async def get_call_result(call_id: str) -> CallResultResponse:
        stored = sink.get(call_id)
        if stored is None:
            raise HTTPException(status_code=404, detail=f"No result for call {call_id}")
        raw_transcript, transcript, report = stored
        return CallResultResponse(
            call_id=call_id,
            raw_transcript=raw_transcript,
            transcript=TranscriptModel.from_transcript(transcript),
            report=ScoreReportModel.from_report(report),
        )

    return app


def _get_orchestrator(request: Request) -> PipelineOrchestrator:
    orchestrator: Any = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Pipeline is not configured")
    return orchestrator


app = create_app()
