"""Speech-to-text against an OpenAI-compatible transcription endpoint."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import httpx

from callscore.common.http_client import post_with_retries
from callscore.common.retry import RetryPolicy
from callscore.common.structured_logging import get_logger
from callscore.pipeline.errors import TranscriptionError
from callscore.pipeline.types import Role, TranscriptSegment

logger = get_logger(__name__)


def deduplicate_segments(
    segments: Iterable[TranscriptSegment],
    *,
    min_chars: int = 3,
    near_duplicate_threshold: int = 10,
) -> list[TranscriptSegment]:
    """Remove ASR looping artifacts from a segment sequence.

    Drops segments shorter than ``min_chars`` (after stripping), segments
    that exactly repeat the previously kept one, and collapses consecutive
    segments where one contains the other and their lengths differ by less
    than ``near_duplicate_threshold``; the longer one is kept.
    """
    kept: list[TranscriptSegment] = []
    for segment in segments:
        text = segment.text.strip()
        if len(text) < min_chars:
            continue
        if kept:
            previous = kept[-1].text.strip()
            if text == previous:
                continue
            nested = text in previous or previous in text
            if nested and abs(len(text) - len(previous)) < near_duplicate_threshold:
                if len(text) > len(previous):
                    kept[-1] = segment
                continue
        kept.append(segment)
    return kept


def _parse_segments(raw: Sequence[Any]) -> list[TranscriptSegment]:
    segments = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if not isinstance(text, str):
            continue
        segments.append(
            TranscriptSegment(text=text, start=item.get("start"), end=item.get("end"))
        )
    return segments


class Transcriber:
    """Posts audio buffers to ``{base_url}/v1/audio/transcriptions``.

    The ``prompt`` is a context primer: a realistic opening of a call in the
    source language. The service continues its style rather than obeying it.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str,
        model: str,
        prompt: str = "",
        language: str = "",
        response_format: str = "json",
        timeout: float = 300.0,
        policy: RetryPolicy | None = None,
        min_segment_chars: int = 3,
        near_duplicate_threshold: int = 10,
    ) -> None:
        self._client = client
        self._url = f"{base_url.rstrip('/')}/v1/audio/transcriptions"
        self._api_key = api_key
        self._model = model
        self._prompt = prompt
        self._language = language
        self._response_format = response_format
        self._timeout = timeout
        self._policy = policy or RetryPolicy()
        self._min_segment_chars = min_segment_chars
        self._near_duplicate_threshold = near_duplicate_threshold

    async def transcribe(
        self,
        audio: bytes,
        role: Role | None = None,
        *,
        filename: str = "audio.wav",
        content_type: str = "audio/wav",
    ) -> str:
        """Return the recognized text for ``audio``.

        ``role`` only labels log events. Raises TranscriptionError once the
        retry policy gives up or on a non-retryable failure.
        """
        role_label = role.value if role else "mixed"
        data: dict[str, str] = {
            "model": self._model,
            "response_format": self._response_format,
        }
        if self._prompt:
            data["prompt"] = self._prompt
        if self._language:
            data["language"] = self._language

        try:
            response = await post_with_retries(
                self._client,
                self._url,
                policy=self._policy,
                operation="transcription",
                files={"file": (filename, audio, content_type)},
                data=data,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
                log_fields={"role": role_label, "audio_bytes": len(audio)},
                logger=logger,
            )
        except httpx.HTTPError as exc:
            raise TranscriptionError(
                f"Transcription failed for {role_label} channel: {exc}",
                role=role_label,
            ) from exc

        text = self._extract_text(response, role_label)
        logger.info("transcription.complete", role=role_label, chars=len(text))
        return text

    def _extract_text(self, response: httpx.Response, role_label: str) -> str:
        if self._response_format == "text":
            return response.text.strip()
        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionError(
                "Transcription response is not valid JSON", role=role_label
            ) from exc
        if not isinstance(payload, dict):
            raise TranscriptionError(
                "Transcription response has an unexpected shape", role=role_label
            )

        raw_segments = payload.get("segments")
        if isinstance(raw_segments, list) and raw_segments:
            segments = _parse_segments(raw_segments)
            kept = deduplicate_segments(
                segments,
                min_chars=self._min_segment_chars,
                near_duplicate_threshold=self._near_duplicate_threshold,
            )
            if len(kept) != len(segments):
                logger.info(
                    "transcription.segments_deduplicated",
                    role=role_label,
                    before=len(segments),
                    after=len(kept),
                )
            return " ".join(segment.text.strip() for segment in kept)

        text = payload.get("text")
        return text.strip() if isinstance(text, str) else ""
