"""Tests for the transcriber and segment deduplication."""

import httpx
import pytest

from callscore.pipeline.errors import TranscriptionError
from callscore.pipeline.transcription import Transcriber, deduplicate_segments
from callscore.pipeline.types import Role, TranscriptSegment


def _segments(*texts: str) -> list[TranscriptSegment]:
    return [TranscriptSegment(text) for text in texts]


def _texts(segments: list[TranscriptSegment]) -> list[str]:
    return [segment.text for segment in segments]


class TestDeduplicateSegments:
    """Test removal of ASR looping artifacts."""

    @pytest.mark.unit
    def test_drops_short_segments(self):
        kept = deduplicate_segments(_segments("ok", "  a ", "Hello there"))
        assert _texts(kept) == ["Hello there"]

    @pytest.mark.unit
    def test_drops_exact_consecutive_repeats(self):
        kept = deduplicate_segments(_segments("Thank you.", "Thank you.", "Thank you.", "Bye now."))
        assert _texts(kept) == ["Thank you.", "Bye now."]

    @pytest.mark.unit
    def test_keeps_longer_near_duplicate(self):
        kept = deduplicate_segments(_segments("I want to book", "I want to book a visit"))
        assert _texts(kept) == ["I want to book a visit"]

    @pytest.mark.unit
    def test_keeps_nested_segments_with_large_length_gap(self):
        short = "I want to book"
        long = "I want to book a visit for next Tuesday morning please"
        kept = deduplicate_segments(_segments(short, long))
        assert _texts(kept) == [short, long]

    @pytest.mark.unit
    def test_non_consecutive_repeats_survive(self):
        kept = deduplicate_segments(_segments("Hello there", "How are you?", "Hello there"))
        assert _texts(kept) == ["Hello there", "How are you?", "Hello there"]

    @pytest.mark.unit
    def test_never_grows_and_is_idempotent(self):
        segments = _segments("Yes.", "Yes.", "ok", "Yes, Tuesday", "Yes, Tuesday works", "Fine.")
        once = deduplicate_segments(segments)
        assert len(once) <= len(segments)
        assert deduplicate_segments(once) == once

    @pytest.mark.unit
    def test_no_consecutive_duplicates_in_output(self):
        once = deduplicate_segments(_segments("Hello.", "Hello.", "Hi there", "Hi there", "Hello."))
        for previous, current in zip(once, once[1:]):
            assert previous.text.strip() != current.text.strip()


class TestTranscriber:
    """Test requests to the transcription endpoint."""

    @staticmethod
    def _transcriber(handler, policy, **kwargs) -> Transcriber:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return Transcriber(
            client,
            base_url="https://asr.example.com/",
            api_key="sk-test",
            model="whisper-1",
            policy=policy,
            **kwargs,
        )

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_posts_multipart_with_model_and_prompt(self, fast_policy):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"text": "  Hello, clinic front desk.  "})

        transcriber = self._transcriber(handler, fast_policy, prompt="Hello, thanks for calling", language="en")
        text = await transcriber.transcribe(b"RIFF", Role.AGENT, filename="agent.wav")

        assert text == "Hello, clinic front desk."
        request = seen[0]
        assert request.url == "https://asr.example.com/v1/audio/transcriptions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = request.read()
        assert b'filename="agent.wav"' in body
        assert b"whisper-1" in body
        assert b"Hello, thanks for calling" in body
        assert b'name="language"' in body

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_segments_are_deduplicated(self, fast_policy):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "text": "ignored",
                    "segments": [
                        {"text": "Thank you.", "start": 0.0, "end": 1.0},
                        {"text": "Thank you.", "start": 1.0, "end": 2.0},
                        {"text": "Goodbye now.", "start": 2.0, "end": 3.0},
                    ],
                },
            )

        text = await self._transcriber(handler, fast_policy).transcribe(b"RIFF")
        assert text == "Thank you. Goodbye now."

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, fast_policy, no_sleep):
        statuses = [503, 429, 200]

        def handler(request: httpx.Request) -> httpx.Response:
            status = statuses.pop(0)
            return httpx.Response(status, json={"text": "recovered"})

        text = await self._transcriber(handler, fast_policy).transcribe(b"RIFF", Role.COUNTERPART)
        assert text == "recovered"
        assert no_sleep.await_count == 2

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_transcription_error(self, fast_policy):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500, json={"error": "overloaded"})

        with pytest.raises(TranscriptionError) as exc_info:
            await self._transcriber(handler, fast_policy).transcribe(b"RIFF", Role.AGENT)

        assert calls == 3
        assert exc_info.value.role == "agent"
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self, fast_policy):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(401, json={"error": "bad key"})

        with pytest.raises(TranscriptionError):
            await self._transcriber(handler, fast_policy).transcribe(b"RIFF")
        assert calls == 1

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_non_json_body(self, fast_policy):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(TranscriptionError, match="not valid JSON"):
            await self._transcriber(handler, fast_policy).transcribe(b"RIFF")

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_text_response_format(self, fast_policy):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=" plain transcript \n")

        transcriber = self._transcriber(handler, fast_policy, response_format="text")
        assert await transcriber.transcribe(b"RIFF") == "plain transcript"
