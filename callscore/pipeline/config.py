"""Pipeline configuration sections and the frozen settings bundle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from callscore.common.config import (
    BaseConfig,
    FieldDefinition,
    HttpConfig,
    LoggingConfig,
    ServiceConfig,
    validate_language_code,
    validate_sample_rate,
    validate_url,
)
from callscore.pipeline.errors import ConfigurationError

DEFAULT_ASR_PROMPT = (
    "Hello, thank you for calling, this is the sales department, how can I help you? "
    "Hi, I saw your offer online and wanted to ask a couple of questions."
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class PipelineConfig(BaseConfig):
    """ASR, LLM, fetch and audio settings for the call pipeline."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="asr_base_url",
                field_type=str,
                default="https://api.openai.com",
                description="Base URL of the OpenAI-compatible transcription API",
                env_var="ASR_BASE_URL",
                validator=validate_url,
            ),
            FieldDefinition(
                name="asr_model",
                field_type=str,
                default="gpt-4o-transcribe",
                description="Transcription model name",
                env_var="ASR_MODEL",
            ),
            FieldDefinition(
                name="asr_prompt",
                field_type=str,
                default=DEFAULT_ASR_PROMPT,
                description="Dialogue opener used to prime the transcription style",
                env_var="ASR_PROMPT",
            ),
            FieldDefinition(
                name="asr_language",
                field_type=str,
                default="",
                description="ISO 639-1 language hint; empty for auto-detect",
                env_var="ASR_LANGUAGE",
                validator=validate_language_code,
            ),
            FieldDefinition(
                name="asr_timeout",
                field_type=float,
                default=300.0,
                description="Transcription request timeout in seconds",
                env_var="ASR_TIMEOUT",
                min_value=1.0,
                max_value=3600.0,
            ),
            FieldDefinition(
                name="llm_base_url",
                field_type=str,
                default="https://api.openai.com",
                description="Base URL of the OpenAI-compatible chat completions API",
                env_var="LLM_BASE_URL",
                validator=validate_url,
            ),
            FieldDefinition(
                name="llm_model",
                field_type=str,
                default="gpt-4o",
                description="Chat model used for repair and scoring",
                env_var="LLM_MODEL",
            ),
            FieldDefinition(
                name="llm_temperature",
                field_type=float,
                default=0.0,
                description="Sampling temperature for repair and scoring",
                env_var="LLM_TEMPERATURE",
                min_value=0.0,
                max_value=2.0,
            ),
            FieldDefinition(
                name="llm_max_tokens",
                field_type=int,
                default=4000,
                description="Completion token limit",
                env_var="LLM_MAX_TOKENS",
                min_value=256,
                max_value=32000,
            ),
            FieldDefinition(
                name="llm_timeout",
                field_type=float,
                default=180.0,
                description="Chat completion timeout in seconds",
                env_var="LLM_TIMEOUT",
                min_value=1.0,
                max_value=1800.0,
            ),
            FieldDefinition(
                name="api_key",
                field_type=str,
                default="",
                description="Bearer token for the ASR and LLM APIs",
                env_var="OPENAI_API_KEY",
                secret=True,
            ),
            FieldDefinition(
                name="fetch_timeout",
                field_type=float,
                default=180.0,
                description="Recording download timeout in seconds",
                env_var="FETCH_TIMEOUT",
                min_value=1.0,
                max_value=1800.0,
            ),
            FieldDefinition(
                name="fetch_user_agent",
                field_type=str,
                default=DEFAULT_USER_AGENT,
                description="User-Agent sent when downloading recordings",
                env_var="FETCH_USER_AGENT",
            ),
            FieldDefinition(
                name="channel_sample_rate",
                field_type=int,
                default=16000,
                description="Sample rate of extracted mono channels",
                env_var="CHANNEL_SAMPLE_RATE",
                validator=validate_sample_rate,
            ),
            FieldDefinition(
                name="short_call_min_chars",
                field_type=int,
                default=15,
                description="Raw transcripts shorter than this are scored as short calls",
                env_var="SHORT_CALL_MIN_CHARS",
                min_value=0,
                max_value=1000,
            ),
            FieldDefinition(
                name="dedup_min_segment_chars",
                field_type=int,
                default=3,
                description="ASR segments shorter than this are dropped",
                env_var="DEDUP_MIN_SEGMENT_CHARS",
                min_value=0,
                max_value=100,
            ),
            FieldDefinition(
                name="dedup_near_duplicate_delta",
                field_type=int,
                default=10,
                description="Length difference below which nested segments are near-duplicates",
                env_var="DEDUP_NEAR_DUPLICATE_DELTA",
                min_value=0,
                max_value=1000,
            ),
            FieldDefinition(
                name="rubric_path",
                field_type=str,
                default="",
                description="JSON rubric file; empty for the built-in rubric",
                env_var="RUBRIC_PATH",
            ),
            FieldDefinition(
                name="output_language",
                field_type=str,
                default="English",
                description="Language of translated transcripts and score explanations",
                env_var="OUTPUT_LANGUAGE",
            ),
            FieldDefinition(
                name="ffmpeg_binary",
                field_type=str,
                default="ffmpeg",
                description="ffmpeg executable",
                env_var="FFMPEG_BINARY",
            ),
            FieldDefinition(
                name="ffprobe_binary",
                field_type=str,
                default="ffprobe",
                description="ffprobe executable",
                env_var="FFPROBE_BINARY",
            ),
        ]


@dataclass(frozen=True)
class PipelineSettings:
    """Every configuration section the service needs, resolved once at startup."""

    logging: LoggingConfig
    http: HttpConfig
    service: ServiceConfig
    pipeline: PipelineConfig

    def validate_required(self) -> None:
        """Fail fast on settings that make every invocation fail.

        Raises:
            ConfigurationError: when the API key is missing.
        """
        if not self.pipeline.api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY is not set; transcription and scoring cannot run"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "logging": self.logging.to_dict(),
            "http": self.http.to_dict(),
            "service": self.service.to_dict(),
            "pipeline": self.pipeline.to_dict(),
        }


def load_settings(**overrides: dict[str, Any]) -> PipelineSettings:
    """Resolve all sections from defaults, ``overrides`` and the environment.

    Example:
        settings = load_settings(pipeline={"api_key": "sk-test"})
    """
    return PipelineSettings(
        logging=LoggingConfig(**overrides.get("logging", {})),
        http=HttpConfig(**overrides.get("http", {})),
        service=ServiceConfig(**overrides.get("service", {})),
        pipeline=PipelineConfig(**overrides.get("pipeline", {})),
    )


__all__ = ["PipelineConfig", "PipelineSettings", "load_settings"]
