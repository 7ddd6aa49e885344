from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


if TYPE_CHECKING:  # pragma: no cover
    from .chat_sessions import ChatSession


class ChatMessage(Base):
    """One persisted conversation turn. Rows are never updated after insert."""

    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    session_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Turn role: user|assistant",
    )
    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Raw text, including hidden preamble and payload spans",
    )
    agent_label: Mapped[str | None] = mapped_column(
        String(120),
        nullable=True,
        comment="Model/agent that produced an assistant turn",
    )
    message_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        nullable=False,
        default=dict,
        comment="Audit flags (error, partial) and extracted deliverable/artifacts",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=sa.func.now(),
        index=True,
    )

    session: Mapped[ChatSession] = relationship(
        "ChatSession", back_populates="messages"
    )
