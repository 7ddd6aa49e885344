"""Ollama chat adapter (newline-delimited JSON over ``POST /api/chat``)."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from services.llm.base import BaseStreamAdapter, PromptTurn
from services.llm.exceptions import (
    UpstreamConnectionError,
    UpstreamIncompleteError,
    UpstreamProtocolError,
    UpstreamProviderError,
    UpstreamStatusError,
)
from services.streaming import Chunk, Thinking


logger = logging.getLogger(__name__)

_MAX_ERROR_BODY_CHARS = 500


class OllamaStreamAdapter(BaseStreamAdapter):
    """Streams from an Ollama server.

    Ollama has no native reasoning segmentation in this protocol, so this
    adapter never emits ``Thinking``; a ``<think>`` preamble arrives as plain
    chunks and is hidden by the text scanner.
    """

    provider = "ollama"

    def __init__(
        self,
        base_url: str,
        *,
        connect_timeout: float = 10.0,
        read_timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._chat_url = f"{base_url.rstrip('/')}/api/chat"
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._transport = transport

    def _build_request_body(
        self, model: str, turns: Sequence[PromptTurn], system_prompt: str
    ) -> dict[str, Any]:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": t.role, "content": t.content} for t in turns)
        return {"model": model, "messages": messages, "stream": True}

    def _parse_line(self, line: str) -> dict[str, Any]:
        try:
            frame = json.loads(line)
        except json.JSONDecodeError as exc:
            raise UpstreamProtocolError(
                self.provider, f"Invalid JSON line in stream: {line[:80]!r}"
            ) from exc
        if not isinstance(frame, dict):
            raise UpstreamProtocolError(
                self.provider, "Stream line is not a JSON object"
            )
        if frame.get("error"):
            raise UpstreamProviderError(self.provider, str(frame["error"]))
        return frame

    async def _stream_native(
        self, model: str, turns: Sequence[PromptTurn], system_prompt: str
    ) -> AsyncIterator[Thinking | Chunk]:
        body = self._build_request_body(model, turns, system_prompt)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                async with client.stream("POST", self._chat_url, json=body) as response:
                    if not response.is_success:
                        raw = await response.aread()
                        raise UpstreamStatusError(
                            self.provider,
                            response.status_code,
                            raw.decode("utf-8", errors="replace")[
                                :_MAX_ERROR_BODY_CHARS
                            ],
                        )

                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        frame = self._parse_line(line)
                        message = frame.get("message")
                        content = (
                            message.get("content") if isinstance(message, dict) else None
                        )
                        if isinstance(content, str) and content:
                            yield Chunk(content)
                        if frame.get("done") is True:
                            return

            raise UpstreamIncompleteError(self.provider)
        except httpx.HTTPError as exc:
            logger.warning("Ollama transport error for model %s: %s", model, exc)
            raise UpstreamConnectionError(
                self.provider, str(exc) or type(exc).__name__
            ) from exc
