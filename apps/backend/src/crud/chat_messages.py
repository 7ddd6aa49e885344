"""CRUD operations for chat sessions and their turns."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.chat_messages import ChatMessage
from models.chat_sessions import ChatSession


async def get_or_create_session(
    db: AsyncSession, session_id: UUID, title: str | None = None
) -> ChatSession:
    """Return the chat session, creating it when the client chose a new id."""
    session = await db.get(ChatSession, session_id)
    if session is None:
        session = ChatSession(id=session_id, title=title)
        db.add(session)
        await db.flush()
    return session


async def insert_turn(
    db: AsyncSession,
    *,
    session_id: UUID,
    role: str,
    content: str,
    turn_id: UUID | None = None,
    agent_label: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ChatMessage:
    """Append one turn to a session and bump the session activity timestamp.

    Args:
        db: Database session
        session_id: Chat session the turn belongs to
        role: ``user`` or ``assistant``
        content: Raw turn text
        turn_id: Client-visible id to persist the turn under, if pre-assigned
        agent_label: Model/agent that produced an assistant turn
        metadata: Audit flags and extraction results

    Returns:
        The persisted ChatMessage
    """
    await get_or_create_session(db, session_id)

    turn = ChatMessage(
        id=turn_id or uuid4(),
        session_id=session_id,
        role=role,
        content=content,
        agent_label=agent_label,
        message_metadata=metadata or {},
    )
    db.add(turn)
    await db.execute(
        update(ChatSession)
        .where(ChatSession.id == session_id)
        .values(last_activity_at=datetime.now(UTC))
    )
    await db.commit()
    await db.refresh(turn)
    return turn


async def list_turns(
    db: AsyncSession, session_id: UUID, limit: int | None = None
) -> list[ChatMessage]:
    """List a session's turns oldest first.

    With ``limit`` the newest ``limit`` turns are returned, still in
    chronological order.
    """
    query = select(ChatMessage).where(ChatMessage.session_id == session_id)
    if limit is None:
        result = await db.execute(query.order_by(ChatMessage.created_at.asc()))
        return list(result.scalars().all())

    result = await db.execute(
        query.order_by(ChatMessage.created_at.desc()).limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def last_assistant_turn(
    db: AsyncSession, session_id: UUID
) -> ChatMessage | None:
    """Get the most recent assistant turn of a session, if any."""
    result = await db.execute(
        select(ChatMessage)
        .where(
            ChatMessage.session_id == session_id,
            ChatMessage.role == "assistant",
        )
        .order_by(ChatMessage.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
