"""Schemas for chat SSE streaming and the chat/artifact endpoints."""

from __future__ import annotations

import json
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# Assistant messages carry the full visible answer, which on the build level
# is a whole HTML document.
MAX_SSE_EVENT_BYTES: int = 1_048_576

SseEventName = Literal[
    "moderation_info",
    "assistant_chunk",
    "deliverable_signal",
    "assistant_message",
    "error",
    "done",
]


class ChatSseEvent(BaseModel):
    """One outward SSE event of the chat stream."""

    event: SseEventName
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def to_sse(self) -> str:
        """Serialize as an ``event:``/``data:`` frame with size validation."""
        payload = json.dumps(self.data, ensure_ascii=False, default=str)
        if len(payload.encode("utf-8")) > MAX_SSE_EVENT_BYTES:
            raise ValueError("SSE payload exceeded MAX_SSE_EVENT_BYTES")
        return f"event: {self.event}\ndata: {payload}\n\n"


class ChatStreamRequest(BaseModel):
    """Request payload for streaming an assistant response."""

    session_id: UUID
    content: str = Field(..., min_length=1, max_length=20_000)
    model: str | None = Field(
        default=None,
        max_length=120,
        description="Optional model override; otherwise selected from content.",
    )

    model_config = ConfigDict(extra="forbid")


# -----------------------------------------------------------------------------
# History
# -----------------------------------------------------------------------------


class TurnSummary(BaseModel):
    """A persisted turn as returned by the history endpoint."""

    id: UUID
    role: str
    content: str
    agent: str | None = None
    created_at: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessageHistoryResponse(BaseModel):
    session_id: UUID
    messages: list[TurnSummary]

    model_config = ConfigDict(extra="forbid")


# -----------------------------------------------------------------------------
# Code artifacts
# -----------------------------------------------------------------------------


class CodeArtifactSchema(BaseModel):
    relative_path: str
    content: str
    language_tag: str

    model_config = ConfigDict(from_attributes=True)


class ArtifactParseRequest(BaseModel):
    """Arbitrary model output to run the code artifact extractor on."""

    content: str = Field(..., min_length=1, max_length=500_000)

    model_config = ConfigDict(extra="forbid")


class ArtifactListResponse(BaseModel):
    artifacts: list[CodeArtifactSchema]
    total: int
