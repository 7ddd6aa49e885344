"""Chat endpoints: SSE answer streaming, history and code artifacts."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from core.exceptions import ArtifactsNotFoundError, SessionNotFoundError
from crud.chat_messages import list_turns
from dependencies.db import DbSession
from dependencies.orchestrator import ArtifactCacheDep, OrchestratorDep
from schemas.api import ApiResponse
from schemas.chat_streaming import (
    ArtifactListResponse,
    ArtifactParseRequest,
    ChatStreamRequest,
    CodeArtifactSchema,
    MessageHistoryResponse,
    TurnSummary,
)
from services.streaming import extract_code_artifacts


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    # Disable proxy buffering so chunks reach the client as they are produced
    "X-Accel-Buffering": "no",
}


@router.post(
    "/messages/stream",
    response_class=StreamingResponse,
    summary="Stream an assistant answer",
    description=(
        "Persists the user message and streams the answer as Server-Sent Events: "
        "moderation_info, assistant_chunk*, deliverable_signal?, "
        "assistant_message | error, done."
    ),
)
async def stream_chat_message(
    payload: ChatStreamRequest,
    request: Request,
    orchestrator: OrchestratorDep,
) -> StreamingResponse:
    """Stream the assistant's answer to one user message."""
    event_stream = orchestrator.handle_message(
        payload.session_id,
        payload.content,
        explicit_model=payload.model,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        event_stream, media_type="text/event-stream", headers=SSE_HEADERS
    )


@router.get(
    "/sessions/{session_id}/messages",
    response_model=ApiResponse[MessageHistoryResponse],
    summary="Get message history",
)
async def get_message_history(
    session_id: UUID,
    db: DbSession,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> ApiResponse[MessageHistoryResponse]:
    """Persisted turns of a session, oldest first. Content is stored raw."""
    turns = await list_turns(db, session_id, limit=limit)
    if not turns:
        raise SessionNotFoundError(f"No messages found for session {session_id}")

    messages = [
        TurnSummary(
            id=turn.id,
            role=turn.role,
            content=turn.content,
            agent=turn.agent_label,
            created_at=turn.created_at.isoformat(),
            metadata=turn.message_metadata or {},
        )
        for turn in turns
    ]
    return ApiResponse(
        data=MessageHistoryResponse(session_id=session_id, messages=messages),
        message=f"Retrieved {len(messages)} messages",
    )


@router.get(
    "/sessions/{session_id}/artifacts",
    response_model=ApiResponse[ArtifactListResponse],
    summary="Get the latest code artifacts of a session",
)
async def get_session_artifacts(
    session_id: UUID, cache: ArtifactCacheDep
) -> ApiResponse[ArtifactListResponse]:
    artifacts = cache.get(session_id)
    if not artifacts:
        raise ArtifactsNotFoundError(
            f"No code artifacts cached for session {session_id}"
        )

    items = [CodeArtifactSchema.model_validate(a) for a in artifacts]
    return ApiResponse(data=ArtifactListResponse(artifacts=items, total=len(items)))


@router.post(
    "/artifacts/parse",
    response_model=ApiResponse[ArtifactListResponse],
    summary="Extract code artifacts from arbitrary model output",
)
async def parse_artifacts(
    payload: ArtifactParseRequest,
) -> ApiResponse[ArtifactListResponse]:
    artifacts = extract_code_artifacts(payload.content)
    logger.debug("Parsed %d code artifacts from submitted text", len(artifacts))
    items = [CodeArtifactSchema.model_validate(a) for a in artifacts]
    return ApiResponse(
        data=ArtifactListResponse(artifacts=items, total=len(items)),
        message=f"Extracted {len(items)} artifacts",
    )
