"""Side effects run once a completed deliverable was detected in a response."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from uuid import UUID

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from core.error_handler import structured_logger
from services.chat.interfaces import PdfRenderer, StepStore
from services.deliverables.pdf import render_markdown_pdf
from services.streaming import DeliverablePayload, deliverable_filename


logger = logging.getLogger(__name__)

STEP_UPDATE_ATTEMPTS = 3


class DeliverableDispatcher:
    """Renders the deliverable PDF and completes the linked project step.

    ``on_deliverable_detected`` never raises. A rendering or storage failure
    degrades to "deliverable text kept in the transcript, no file" and the
    step is still marked completed.
    """

    def __init__(
        self,
        steps: StepStore,
        output_dir: str | Path,
        renderer: PdfRenderer = render_markdown_pdf,
    ) -> None:
        self._steps = steps
        self._output_dir = Path(output_dir)
        self._renderer = renderer

    async def on_deliverable_detected(
        self, session_id: UUID, payload: DeliverablePayload
    ) -> None:
        file_name = await self._render(session_id, payload)
        await self._complete_step(session_id, file_name)

    async def _render(
        self, session_id: UUID, payload: DeliverablePayload
    ) -> str | None:
        """Write the PDF and return its file name, or None on failure."""
        file_name = deliverable_filename(payload.title)
        try:
            pdf_bytes = await asyncio.to_thread(
                self._renderer, payload.title, payload.content
            )
            target = self._output_dir / file_name
            await asyncio.to_thread(self._write, target, pdf_bytes)
        except Exception as exc:
            structured_logger.error(
                "Deliverable PDF rendering failed",
                error=str(exc),
                error_type=type(exc).__name__,
                session_id=str(session_id),
                deliverable_title=payload.title,
            )
            return None

        structured_logger.info(
            "Deliverable PDF written",
            session_id=str(session_id),
            file_name=file_name,
            size_bytes=len(pdf_bytes),
        )
        return file_name

    async def _complete_step(self, session_id: UUID, file_name: str | None) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(STEP_UPDATE_ATTEMPTS),
                wait=wait_exponential(multiplier=0.2, max=2),
                reraise=True,
            ):
                with attempt:
                    transitioned = await self._steps.mark_completed(
                        session_id, deliverable_file=file_name
                    )
        except Exception as exc:
            structured_logger.error(
                "Failed to mark project step completed",
                error=str(exc),
                error_type=type(exc).__name__,
                session_id=str(session_id),
            )
            return

        if transitioned:
            logger.info("Project step for session %s marked completed", session_id)
        else:
            logger.debug("No pending project step for session %s", session_id)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
