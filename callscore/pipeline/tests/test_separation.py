"""Tests for channel separation and role assignment."""

import os
from unittest import mock

import ffmpeg
import pytest

from callscore.pipeline.errors import SeparationError
from callscore.pipeline.separation import ChannelSeparator, FFmpegAudioTool, assign_roles
from callscore.pipeline.tests.fakes import FakeAudioTool
from callscore.pipeline.types import CallDirection


class TestAssignRoles:
    """Test channel to speaker mapping."""

    @pytest.mark.unit
    def test_inbound_agent_is_right(self):
        pair = assign_roles(b"left", b"right", CallDirection.INBOUND)
        assert pair.agent == b"right"
        assert pair.counterpart == b"left"

    @pytest.mark.unit
    def test_outbound_agent_is_left(self):
        pair = assign_roles(b"left", b"right", CallDirection.OUTBOUND)
        assert pair.agent == b"left"
        assert pair.counterpart == b"right"

    @pytest.mark.unit
    def test_directions_are_mirror_images(self):
        inbound = assign_roles(b"L", b"R", CallDirection.INBOUND)
        outbound = assign_roles(b"L", b"R", CallDirection.OUTBOUND)
        assert inbound.agent == outbound.counterpart
        assert inbound.counterpart == outbound.agent


class TestChannelSeparator:
    """Test separation over a fake audio tool."""

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_stereo_produces_pair(self):
        tool = FakeAudioTool(channels=2)
        pair = await ChannelSeparator(tool, sample_rate=16000).separate(
            b"stereo", CallDirection.INBOUND
        )

        assert pair is not None
        assert pair.agent == b"channel-1@16000"
        assert pair.counterpart == b"channel-0@16000"

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_mono_returns_none(self):
        pair = await ChannelSeparator(FakeAudioTool(channels=1)).separate(
            b"mono", CallDirection.OUTBOUND
        )
        assert pair is None

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_temporary_files_removed(self):
        tool = FakeAudioTool(channels=2)
        await ChannelSeparator(tool).separate(b"stereo", CallDirection.INBOUND)

        assert tool.paths
        assert not any(os.path.exists(path) for path in tool.paths)

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_temporary_files_removed_on_failure(self):
        tool = FakeAudioTool(channels=2, fail_extract=True)
        with pytest.raises(SeparationError):
            await ChannelSeparator(tool).separate(b"stereo", CallDirection.INBOUND)

        assert not any(os.path.exists(path) for path in tool.paths)

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_probe_failure_propagates(self):
        with pytest.raises(SeparationError, match="ffprobe"):
            await ChannelSeparator(FakeAudioTool(fail_probe=True)).separate(
                b"junk", CallDirection.INBOUND
            )


class TestFFmpegAudioTool:
    """Test ffprobe output handling without running ffmpeg."""

    @pytest.mark.unit
    def test_probe_reads_first_audio_stream(self):
        probe = {
            "streams": [
                {"codec_type": "video"},
                {"codec_type": "audio", "channels": 2},
            ]
        }
        with mock.patch("callscore.pipeline.separation.ffmpeg.probe", return_value=probe):
            assert FFmpegAudioTool().probe_channels("/tmp/x") == 2

    @pytest.mark.unit
    def test_probe_without_audio_stream(self):
        with mock.patch(
            "callscore.pipeline.separation.ffmpeg.probe", return_value={"streams": []}
        ):
            with pytest.raises(SeparationError, match="no audio stream"):
                FFmpegAudioTool().probe_channels("/tmp/x")

    @pytest.mark.unit
    def test_probe_tool_error(self):
        error = ffmpeg.Error("ffprobe", b"", b"Invalid data found when processing input")
        with mock.patch("callscore.pipeline.separation.ffmpeg.probe", side_effect=error):
            with pytest.raises(SeparationError, match="Invalid data"):
                FFmpegAudioTool().probe_channels("/tmp/x")

    @pytest.mark.unit
    def test_missing_binary(self):
        with mock.patch("callscore.pipeline.separation.shutil.which", return_value=None):
            assert not FFmpegAudioTool().is_available()
