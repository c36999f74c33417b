"""Pydantic models for REST API endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from callscore.pipeline.types import (
    CallDirection,
    PipelineResult,
    ScoreReport,
    TranslatedTranscript,
)


class AnalyzeCallRequest(BaseModel):
    """Request model for analyzing one call recording."""

    audio_url: str = Field(..., min_length=1, description="URL of the call recording")
    direction: CallDirection = Field(
        CallDirection.INBOUND,
        description="inbound/outbound; incoming/outgoing and CRM codes 1/2 are accepted",
    )
    force: bool = Field(False, description="Re-analyze a call that already has a result")

    @field_validator("direction", mode="before")
    @classmethod
    def _parse_direction(cls, value: object) -> CallDirection:
        return CallDirection.parse(value)

    @field_validator("audio_url")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("audio_url must be an http(s) URL")
        return value


class CriterionScoreModel(BaseModel):
    key: str
    title: str
    score: int = Field(..., ge=0, le=100)
    explanation: str = ""


class CallerProfileModel(BaseModel):
    facts: list[str] = Field(default_factory=list)
    needs: list[str] = Field(default_factory=list)
    pains: list[str] = Field(default_factory=list)
    objections: list[str] = Field(default_factory=list)


class ScoreReportModel(BaseModel):
    """Rubric scores for one call."""

    criteria: list[CriterionScoreModel]
    overall_score: int = Field(..., description="Rounded mean of criterion scores")
    model_overall_score: int | None = Field(
        None, description="Overall score as reported by the model"
    )
    call_type: str
    caller_profile: CallerProfileModel
    is_successful: bool
    summary: str
    red_flags: list[str] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ScoreReport) -> ScoreReportModel:
        return cls.model_validate(report.to_dict())


class TranscriptBlockModel(BaseModel):
    role: str
    text: str


class TranscriptModel(BaseModel):
    layout: str
    degraded: bool = Field(False, description="Raw ASR text passed through untranslated")
    blocks: list[TranscriptBlockModel]

    @classmethod
    def from_transcript(cls, transcript: TranslatedTranscript) -> TranscriptModel:
        return cls.model_validate(transcript.to_dict())


class CallResultResponse(BaseModel):
    """Stored result for one call."""

    call_id: str
    raw_transcript: str
    transcript: TranscriptModel
    report: ScoreReportModel


class AnalyzeCallResponse(CallResultResponse):
    """Response model for a finished analysis."""

    mode: str = Field(..., description="stereo or mono")
    fallback_reason: str | None = Field(None, description="Why the mono path was taken")

    @classmethod
    def from_result(cls, result: PipelineResult) -> AnalyzeCallResponse:
        return cls(
            call_id=result.call_id,
            raw_transcript=result.raw_transcript,
            transcript=TranscriptModel.from_transcript(result.transcript),
            report=ScoreReportModel.from_report(result.report),
            mode=result.mode.value,
            fallback_reason=result.fallback_reason,
        )
