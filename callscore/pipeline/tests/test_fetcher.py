"""Tests for recording download."""

import httpx
import pytest

from callscore.pipeline.errors import FetchError
from callscore.pipeline.fetcher import AudioFetcher
from callscore.pipeline.types import CallDirection


def _fetcher(handler) -> AudioFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AudioFetcher(client, user_agent="Mozilla/5.0 test", timeout=5.0)


class TestAudioFetcher:
    """Test AudioFetcher.fetch outcomes."""

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_downloads_with_user_agent(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"ID3audio")

        asset = await _fetcher(handler).fetch(
            "https://records.example.com/1.mp3", CallDirection.OUTBOUND
        )

        assert asset.data == b"ID3audio"
        assert asset.direction is CallDirection.OUTBOUND
        assert asset.source_url == "https://records.example.com/1.mp3"
        assert seen[0].headers["User-Agent"] == "Mozilla/5.0 test"

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_follows_redirects(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old.mp3":
                return httpx.Response(302, headers={"Location": "https://cdn.example.com/new.mp3"})
            return httpx.Response(200, content=b"moved")

        asset = await _fetcher(handler).fetch(
            "https://records.example.com/old.mp3", CallDirection.INBOUND
        )
        assert asset.data == b"moved"

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        with pytest.raises(FetchError, match="HTTP 404"):
            await _fetcher(handler).fetch("https://records.example.com/x.mp3", CallDirection.INBOUND)

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FetchError, match="timed out"):
            await _fetcher(handler).fetch("https://records.example.com/x.mp3", CallDirection.INBOUND)

    @pytest.mark.component
    @pytest.mark.asyncio
    async def test_empty_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"")

        with pytest.raises(FetchError, match="empty"):
            await _fetcher(handler).fetch("https://records.example.com/x.mp3", CallDirection.INBOUND)
