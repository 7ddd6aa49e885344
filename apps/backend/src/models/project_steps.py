from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


STEP_STATUS_PENDING = "pending"
STEP_STATUS_IN_PROGRESS = "in_progress"
STEP_STATUS_COMPLETED = "completed"


class ProjectStep(Base):
    """A methodology phase of a user project.

    Projects and their steps are created by the project bookkeeping service;
    the chat pipeline only reads them and flips ``status`` to completed.
    """

    __tablename__ = "project_steps"
    __table_args__ = (
        sa.UniqueConstraint("project_id", "step_number", name="uq_project_step"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False, index=True)
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    eden_level: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        comment='Stored level label, e.g. "Nivel 4 - MVP Funcional"',
    )
    session_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid,
        nullable=True,
        unique=True,
        comment="Chat session driving this step",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=STEP_STATUS_PENDING,
        server_default=STEP_STATUS_PENDING,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deliverable_file: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="File name of the rendered deliverable PDF, when it rendered",
    )
