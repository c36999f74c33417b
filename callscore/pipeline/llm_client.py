"""Client for an OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from callscore.common.http_client import post_with_retries
from callscore.common.retry import RetryPolicy
from callscore.common.structured_logging import get_logger
from callscore.pipeline.errors import CompletionError

logger = get_logger(__name__)


class ChatCompleter(Protocol):
    """Anything that can answer a system+user prompt pair with text."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        operation: str = ...,
        max_tokens: int | None = ...,
        json_mode: bool = ...,
    ) -> str: ...


class ChatClient:
    """Sends an instruction block plus a data block and returns the reply text."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str,
        model: str,
        temperature: float = 0.0,
        max_tokens: int = 4000,
        timeout: float = 180.0,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._url = f"{base_url.rstrip('/')}/v1/chat/completions"
        self._api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._timeout = timeout
        self._policy = policy or RetryPolicy()

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        operation: str = "llm",
        max_tokens: int | None = None,
        json_mode: bool = True,
    ) -> str:
        """Return ``choices[0].message.content`` for the two-message conversation.

        Raises:
            httpx.HTTPError: transport or status failure after retries.
            CompletionError: the response carries no content.
        """
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        response = await post_with_retries(
            self._client,
            self._url,
            policy=self._policy,
            operation=operation,
            json=body,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self._timeout,
            log_fields={"model": self.model},
            logger=logger,
        )

        try:
            result = response.json()
            content = result["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise CompletionError("Invalid response from chat completions endpoint") from exc
        if not isinstance(content, str) or not content.strip():
            raise CompletionError("Chat completion returned empty content")
        return content.strip()
