"""Tests for chat turn and project step persistence on SQLite."""

from uuid import uuid4

import pytest

from crud import chat_messages as turns_crud
from crud import project_steps as steps_crud
from models.chat_sessions import ChatSession
from models.project_steps import (
    STEP_STATUS_COMPLETED,
    STEP_STATUS_IN_PROGRESS,
    ProjectStep,
)
from services.chat import SqlStepStore, SqlTurnStore


async def _add_step(db, **overrides) -> ProjectStep:
    values = {
        "project_id": uuid4(),
        "step_number": 1,
        "eden_level": "Nivel 1 - Exploración",
        "session_id": uuid4(),
        "status": STEP_STATUS_IN_PROGRESS,
    }
    values.update(overrides)
    step = ProjectStep(**values)
    db.add(step)
    await db.commit()
    return step


@pytest.mark.asyncio
class TestTurnCrud:
    async def test_insert_creates_session_and_keeps_turn_id(self, db_session):
        session_id, turn_id = uuid4(), uuid4()

        turn = await turns_crud.insert_turn(
            db_session,
            session_id=session_id,
            role="assistant",
            content="<think>x</think>Hola",
            turn_id=turn_id,
            agent_label="gpt-oss",
            metadata={"eden_level": "E - Exploración"},
        )

        assert turn.id == turn_id
        assert turn.message_metadata == {"eden_level": "E - Exploración"}
        assert await db_session.get(ChatSession, session_id) is not None

    async def test_list_turns_is_chronological_and_limited(self, db_session):
        session_id = uuid4()
        for content in ("uno", "dos", "tres"):
            await turns_crud.insert_turn(
                db_session, session_id=session_id, role="user", content=content
            )

        everything = await turns_crud.list_turns(db_session, session_id)
        newest = await turns_crud.list_turns(db_session, session_id, limit=2)

        assert [t.content for t in everything] == ["uno", "dos", "tres"]
        assert [t.content for t in newest] == ["dos", "tres"]
        assert await turns_crud.list_turns(db_session, uuid4()) == []

    async def test_last_assistant_turn(self, db_session):
        session_id = uuid4()
        assert await turns_crud.last_assistant_turn(db_session, session_id) is None

        for role, content in (
            ("user", "pregunta"),
            ("assistant", "primera"),
            ("assistant", "segunda"),
            ("user", "otra"),
        ):
            await turns_crud.insert_turn(
                db_session, session_id=session_id, role=role, content=content
            )

        last = await turns_crud.last_assistant_turn(db_session, session_id)
        assert last.content == "segunda"


@pytest.mark.asyncio
class TestStepCrud:
    async def test_mark_completed_is_idempotent(self, db_session):
        step = await _add_step(db_session)

        first = await steps_crud.mark_step_completed(
            db_session, step.session_id, deliverable_file="plan.pdf"
        )
        second = await steps_crud.mark_step_completed(
            db_session, step.session_id, deliverable_file="otro.pdf"
        )

        assert (first, second) == (True, False)
        await db_session.refresh(step)
        assert step.status == STEP_STATUS_COMPLETED
        assert step.deliverable_file == "plan.pdf"
        assert step.completed_at is not None

    async def test_late_file_name_is_recorded_once(self, db_session):
        step = await _add_step(db_session)

        await steps_crud.mark_step_completed(db_session, step.session_id)
        transitioned = await steps_crud.mark_step_completed(
            db_session, step.session_id, deliverable_file="plan.pdf"
        )

        assert transitioned is False
        await db_session.refresh(step)
        assert step.deliverable_file == "plan.pdf"

    async def test_unknown_session_marks_nothing(self, db_session):
        assert await steps_crud.mark_step_completed(db_session, uuid4()) is False

    async def test_completed_prior_steps_are_ordered(self, db_session):
        project_id = uuid4()
        await _add_step(
            db_session,
            project_id=project_id,
            step_number=2,
            status=STEP_STATUS_COMPLETED,
        )
        await _add_step(
            db_session,
            project_id=project_id,
            step_number=1,
            status=STEP_STATUS_COMPLETED,
        )
        await _add_step(db_session, project_id=project_id, step_number=3)
        await _add_step(
            db_session, step_number=1, status=STEP_STATUS_COMPLETED
        )

        prior = await steps_crud.get_completed_prior_steps(db_session, project_id, 4)

        assert [s.step_number for s in prior] == [1, 2]


@pytest.mark.asyncio
class TestSqlStores:
    async def test_turn_store_round_trip(self, session_factory):
        store = SqlTurnStore(session_factory)
        session_id = uuid4()

        await store.append(session_id, "user", "Hola")
        record = await store.append(
            session_id,
            "assistant",
            "Respuesta",
            agent_label="gpt-oss",
            metadata={"partial": True},
        )

        assert record.metadata == {"partial": True}
        recent = await store.list_recent(session_id, limit=10)
        assert [(t.role, t.content) for t in recent] == [
            ("user", "Hola"),
            ("assistant", "Respuesta"),
        ]
        assert await store.last_assistant_content(session_id) == "Respuesta"

    async def test_step_store_reads_and_completes(self, session_factory):
        async with session_factory() as db:
            step = await _add_step(db, step_number=2)
        store = SqlStepStore(session_factory)

        record = await store.get_by_session(step.session_id)
        assert record is not None
        assert (record.step_number, record.status) == (2, STEP_STATUS_IN_PROGRESS)

        assert await store.mark_completed(step.session_id, "plan.pdf") is True
        record = await store.get_by_session(step.session_id)
        assert record.status == STEP_STATUS_COMPLETED
        assert await store.get_by_session(uuid4()) is None
