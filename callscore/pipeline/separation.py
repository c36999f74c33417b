"""Split a stereo call recording into per-speaker mono channels."""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Protocol

import ffmpeg

from callscore.common.structured_logging import get_logger
from callscore.pipeline.errors import SeparationError
from callscore.pipeline.types import CallDirection, ChannelPair

logger = get_logger(__name__)

LEFT = 0
RIGHT = 1


class AudioToolProtocol(Protocol):
    """The two audio operations separation needs."""

    def probe_channels(self, path: str) -> int:
        """Return the channel count of the first audio stream in ``path``."""
        ...

    def extract_channel(
        self, path: str, index: int, output_path: str, sample_rate: int
    ) -> str:
        """Write channel ``index`` of ``path`` as mono PCM WAV and return its path."""
        ...


class FFmpegAudioTool:
    """AudioToolProtocol backed by ffmpeg/ffprobe through ffmpeg-python."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", ffprobe_binary: str = "ffprobe") -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary

    def is_available(self) -> bool:
        return bool(shutil.which(self.ffmpeg_binary) and shutil.which(self.ffprobe_binary))

    def probe_channels(self, path: str) -> int:
        try:
            probe = ffmpeg.probe(path, cmd=self.ffprobe_binary)
        except ffmpeg.Error as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
            raise SeparationError(f"ffprobe failed: {stderr or exc}") from exc
        except OSError as exc:
            raise SeparationError(f"ffprobe could not run: {exc}") from exc

        audio_streams = [
            stream for stream in probe.get("streams", []) if stream.get("codec_type") == "audio"
        ]
        if not audio_streams:
            raise SeparationError("ffprobe found no audio stream")
        try:
            return int(audio_streams[0]["channels"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SeparationError("ffprobe output has no channel count") from exc

    def extract_channel(
        self, path: str, index: int, output_path: str, sample_rate: int
    ) -> str:
        try:
            (
                ffmpeg.input(path)
                .output(
                    output_path,
                    af=f"pan=mono|c0=c{index}",
                    ar=sample_rate,
                    ac=1,
                    acodec="pcm_s16le",
                    format="wav",
                )
                .overwrite_output()
                .run(cmd=self.ffmpeg_binary, quiet=True)
            )
        except ffmpeg.Error as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
            raise SeparationError(f"ffmpeg channel {index} extraction failed: {stderr or exc}") from exc
        except OSError as exc:
            raise SeparationError(f"ffmpeg could not run: {exc}") from exc
        return output_path


def assign_roles(left: bytes, right: bytes, direction: CallDirection) -> ChannelPair:
    """Map stereo channels to speakers.

    Inbound calls put the counterpart on the left channel and the agent on the
    right; outbound calls are the other way round.
    """
    if direction is CallDirection.INBOUND:
        return ChannelPair(agent=right, counterpart=left)
    return ChannelPair(agent=left, counterpart=right)


class ChannelSeparator:
    """Probe a recording and, when it is stereo, extract one buffer per speaker."""

    def __init__(self, tool: AudioToolProtocol, *, sample_rate: int = 16000) -> None:
        self._tool = tool
        self._sample_rate = sample_rate

    async def separate(self, data: bytes, direction: CallDirection) -> ChannelPair | None:
        """Return the speaker channels, or None when the recording is not stereo.

        Raises:
            SeparationError: the audio tool failed.
        """
        return await asyncio.to_thread(self._separate, data, direction)

    def _separate(self, data: bytes, direction: CallDirection) -> ChannelPair | None:
        with tempfile.TemporaryDirectory(prefix="callscore-") as workdir:
            source = Path(workdir) / "source.audio"
            source.write_bytes(data)

            channels = self._tool.probe_channels(str(source))
            if channels < 2:
                logger.info("separation.mono_source", channels=channels)
                return None

            left_path = self._tool.extract_channel(
                str(source), LEFT, str(Path(workdir) / "left.wav"), self._sample_rate
            )
            right_path = self._tool.extract_channel(
                str(source), RIGHT, str(Path(workdir) / "right.wav"), self._sample_rate
            )
            try:
                left = Path(left_path).read_bytes()
                right = Path(right_path).read_bytes()
            except OSError as exc:
                raise SeparationError(f"Extracted channel is unreadable: {exc}") from exc

        logger.info(
            "separation.complete",
            channels=channels,
            direction=direction.value,
            left_bytes=len(left),
            right_bytes=len(right),
        )
        return assign_roles(left, right, direction)
