"""Download call recordings."""

from __future__ import annotations

import httpx

from callscore.common.structured_logging import get_logger
from callscore.pipeline.errors import FetchError
from callscore.pipeline.types import AudioAsset, CallDirection

logger = get_logger(__name__)


class AudioFetcher:
    """GETs a recording URL with a browser User-Agent.

    Some telephony hosts reject default HTTP clients, hence the browser
    header. There is no retry here; a failed download fails the invocation.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        user_agent: str,
        timeout: float = 180.0,
    ) -> None:
        self._client = client
        self._user_agent = user_agent
        self._timeout = timeout

    async def fetch(self, url: str, direction: CallDirection) -> AudioAsset:
        logger.info("fetch.start", url=url, direction=direction.value)
        try:
            response = await self._client.get(
                url,
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"Recording download returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.TimeoutException as exc:
            raise FetchError(f"Recording download timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Recording download failed: {exc}") from exc

        data = response.content
        if not data:
            raise FetchError("Recording download returned an empty body")

        logger.info("fetch.complete", url=url, size_bytes=len(data))
        return AudioAsset(data=data, source_url=url, direction=direction)
