"""CRUD operations for project steps linked to chat sessions."""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.project_steps import STEP_STATUS_COMPLETED, ProjectStep


async def get_step_by_session(
    db: AsyncSession, session_id: UUID
) -> ProjectStep | None:
    """Get the project step driven by a chat session."""
    result = await db.execute(
        select(ProjectStep).where(ProjectStep.session_id == session_id)
    )
    return result.scalar_one_or_none()


async def get_completed_prior_steps(
    db: AsyncSession, project_id: UUID, before_step_number: int
) -> list[ProjectStep]:
    """Completed steps of a project that precede ``before_step_number``.

    Ordered by step number so context summaries read in methodology order.
    """
    result = await db.execute(
        select(ProjectStep)
        .where(
            ProjectStep.project_id == project_id,
            ProjectStep.step_number < before_step_number,
            ProjectStep.status == STEP_STATUS_COMPLETED,
        )
        .order_by(ProjectStep.step_number.asc())
    )
    return list(result.scalars().all())


async def mark_step_completed(
    db: AsyncSession, session_id: UUID, deliverable_file: str | None = None
) -> bool:
    """Mark the step linked to ``session_id`` completed.

    Idempotent: an already completed step keeps its original ``completed_at``.
    A deliverable file name is still recorded if the step has none yet.

    Returns:
        True if a step transitioned to completed by this call.
    """
    result = await db.execute(
        update(ProjectStep)
        .where(
            ProjectStep.session_id == session_id,
            ProjectStep.status != STEP_STATUS_COMPLETED,
        )
        .values(
            status=STEP_STATUS_COMPLETED,
            completed_at=datetime.now(UTC),
            deliverable_file=deliverable_file,
        )
    )
    transitioned = result.rowcount > 0

    if not transitioned and deliverable_file is not None:
        await db.execute(
            update(ProjectStep)
            .where(
                ProjectStep.session_id == session_id,
                ProjectStep.deliverable_file.is_(None),
            )
            .values(deliverable_file=deliverable_file)
        )

    await db.commit()
    return transitioned
