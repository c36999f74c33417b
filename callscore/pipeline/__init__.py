"""Call processing pipeline: fetch, separate, transcribe, repair, score."""

from callscore.pipeline.orchestrator import (
    AnalyzeRequest,
    InFlightRegistry,
    PipelineOrchestrator,
    PipelineState,
)
from callscore.pipeline.types import (
    CallDirection,
    PipelineResult,
    Role,
    ScoreReport,
    TranslatedTranscript,
)

__all__ = [
    "AnalyzeRequest",
    "CallDirection",
    "InFlightRegistry",
    "PipelineOrchestrator",
    "PipelineResult",
    "PipelineState",
    "Role",
    "ScoreReport",
    "TranslatedTranscript",
]
