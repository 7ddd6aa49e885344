"""Collaborator protocols consumed by the conversation orchestrator.

The orchestrator's stream outlives the request-scoped database session, so
the SQL-backed stores open a short session per operation from a session
factory instead of holding one.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crud import chat_messages as turns_crud
from crud import project_steps as steps_crud
from models.chat_messages import ChatMessage
from models.project_steps import ProjectStep
from services.streaming import DeliverablePayload


# (title, markdown_content) -> PDF bytes
PdfRenderer = Callable[[str, str], bytes]


@dataclass(frozen=True, slots=True)
class TurnRecord:
    id: UUID
    session_id: UUID
    role: str
    content: str
    agent_label: str | None
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, message: ChatMessage) -> TurnRecord:
        return cls(
            id=message.id,
            session_id=message.session_id,
            role=message.role,
            content=message.content,
            agent_label=message.agent_label,
            created_at=message.created_at,
            metadata=dict(message.message_metadata or {}),
        )


@dataclass(frozen=True, slots=True)
class StepRecord:
    id: UUID
    project_id: UUID
    step_number: int
    eden_level: str
    session_id: UUID | None
    status: str

    @classmethod
    def from_model(cls, step: ProjectStep) -> StepRecord:
        return cls(
            id=step.id,
            project_id=step.project_id,
            step_number=step.step_number,
            eden_level=step.eden_level,
            session_id=step.session_id,
            status=step.status,
        )


class TurnStore(Protocol):
    """Append-only persistence of conversation turns."""

    async def append(
        self,
        session_id: UUID,
        role: str,
        content: str,
        *,
        turn_id: UUID | None = None,
        agent_label: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TurnRecord:
        """Persist one turn; creates the session on first use."""
        ...

    async def list_recent(self, session_id: UUID, limit: int) -> list[TurnRecord]:
        """Newest ``limit`` turns of a session in chronological order."""
        ...

    async def last_assistant_content(self, session_id: UUID) -> str | None:
        """Raw content of the session's latest assistant turn."""
        ...


class StepStore(Protocol):
    """Read/complete access to the project step bookkeeping."""

    async def get_by_session(self, session_id: UUID) -> StepRecord | None: ...

    async def completed_prior_steps(
        self, project_id: UUID, before_step_number: int
    ) -> list[StepRecord]: ...

    async def mark_completed(
        self, session_id: UUID, deliverable_file: str | None = None
    ) -> bool:
        """Idempotently complete the step linked to ``session_id``."""
        ...


class DeliverableSink(Protocol):
    async def on_deliverable_detected(
        self, session_id: UUID, payload: DeliverablePayload
    ) -> None:
        """Run deliverable side effects. Must not raise."""
        ...


class SqlTurnStore:
    """TurnStore over the ``chat_messages`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(
        self,
        session_id: UUID,
        role: str,
        content: str,
        *,
        turn_id: UUID | None = None,
        agent_label: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TurnRecord:
        async with self._session_factory() as db:
            message = await turns_crud.insert_turn(
                db,
                session_id=session_id,
                role=role,
                content=content,
                turn_id=turn_id,
                agent_label=agent_label,
                metadata=metadata,
            )
            return TurnRecord.from_model(message)

    async def list_recent(self, session_id: UUID, limit: int) -> list[TurnRecord]:
        async with self._session_factory() as db:
            messages = await turns_crud.list_turns(db, session_id, limit=limit)
            return [TurnRecord.from_model(m) for m in messages]

    async def last_assistant_content(self, session_id: UUID) -> str | None:
        async with self._session_factory() as db:
            message = await turns_crud.last_assistant_turn(db, session_id)
            return message.content if message is not None else None


class SqlStepStore:
    """StepStore over the ``project_steps`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_session(self, session_id: UUID) -> StepRecord | None:
        async with self._session_factory() as db:
            step = await steps_crud.get_step_by_session(db, session_id)
            return StepRecord.from_model(step) if step is not None else None

    async def completed_prior_steps(
        self, project_id: UUID, before_step_number: int
    ) -> list[StepRecord]:
        async with self._session_factory() as db:
            steps = await steps_crud.get_completed_prior_steps(
                db, project_id, before_step_number
            )
            return [StepRecord.from_model(s) for s in steps]

    async def mark_completed(
        self, session_id: UUID, deliverable_file: str | None = None
    ) -> bool:
        async with self._session_factory() as db:
            return await steps_crud.mark_step_completed(
                db, session_id, deliverable_file=deliverable_file
            )
