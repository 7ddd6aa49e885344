"""Conversation orchestrator: one user message in, one SSE event stream out.

Per request the orchestrator persists the user turn, resolves the model and
methodology level, drives the selected adapter through a fresh
:class:`TextScanner`, forwards visible text as soon as it is released, and
once the upstream stream completed persists the raw assistant turn and runs
deliverable side effects. ``done`` is always the last event, including after
errors; nothing is emitted after the client went away.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, assert_never
from uuid import UUID, uuid4

from core.error_handler import structured_logger
from schemas.chat_streaming import ChatSseEvent, SseEventName
from services.artifacts import ArtifactCache
from services.chat.context import DEFAULT_SUMMARY_MAX_CHARS, build_context_summary
from services.chat.interfaces import DeliverableSink, StepRecord, StepStore, TurnStore
from services.eden import (
    AgentSelection,
    is_build_level,
    normalize_level,
    select_agents,
)
from services.eden.levels import BUILD_AGENT, DEFAULT_AGENT
from services.llm import AdapterRegistry, PromptTurn, UpstreamError
from services.streaming import (
    GENERATING_NOTICE,
    Chunk,
    DeliverablePayload,
    ScanMode,
    Signal,
    TextScanner,
    Thinking,
    VisibleOutput,
    contains_artifact_code,
    deliverable_filename,
    extract_code_artifacts,
    filter_think_tags,
)


logger = logging.getLogger(__name__)

ERROR_EVENT_CONTENT = "Error al procesar tu mensaje. Por favor, intenta nuevamente."

# Side effects that must outlive a disconnected client stay referenced here
_background_tasks: set[asyncio.Task[Any]] = set()


def _run_detached(coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


@dataclass(frozen=True, slots=True)
class ResolvedRoute:
    """Model and level chosen for one message."""

    selection: AgentSelection
    model: str
    level: str
    step: StepRecord | None


@dataclass(slots=True)
class _TurnProgress:
    """Mutable per-request accumulation shared by the relay and its caller."""

    message_id: UUID
    scanner: TextScanner = field(default_factory=TextScanner)
    raw_parts: list[str] = field(default_factory=list)
    payload: DeliverablePayload | None = None
    thinking_announced: bool = False
    disconnected: bool = False
    persisted: bool = False

    @property
    def raw_text(self) -> str:
        return "".join(self.raw_parts)

    @property
    def visible_text(self) -> str:
        return self.scanner.state.visible_so_far


def _sse(event: SseEventName, data: dict[str, Any] | None = None) -> str:
    return ChatSseEvent(event=event, data=data or {}).to_sse()


def user_friendly_error(exc: Exception) -> str:
    """Spanish, user-facing description of a failure while answering."""
    if isinstance(exc, UpstreamError):
        if exc.status_code == 429:
            return (
                "Has enviado demasiadas solicitudes. Espera un minuto antes de "
                "volver a intentarlo."
            )
        if exc.status_code in (502, 503, 504, 529):
            return (
                "El servicio de IA está saturado en este momento. Espera un "
                "momento e inténtalo de nuevo."
            )
        if exc.error_code == "upstream_connection":
            if "timeout" in exc.message.lower() or "timed out" in exc.message.lower():
                return (
                    "La respuesta tardó demasiado. Intenta con una pregunta más "
                    "concreta o vuelve a intentarlo más tarde."
                )
            return (
                "Hubo un problema de red al conectar con el servicio de IA. "
                "Revisa tu conexión e inténtalo de nuevo."
            )
        if exc.error_code in ("upstream_protocol", "upstream_incomplete"):
            return "La respuesta del modelo llegó incompleta. Inténtalo de nuevo."
        return "El servicio de IA devolvió un error. Inténtalo de nuevo."

    logger.error("Unhandled chat error: %s", exc)
    return "Algo salió mal. Inténtalo de nuevo."


class ConversationOrchestrator:
    """Runs the streaming pipeline for one message at a time.

    The instance holds only injected collaborators and configuration; all
    per-request state lives in locals, so one instance serves concurrent
    requests.
    """

    def __init__(
        self,
        *,
        adapters: AdapterRegistry,
        turns: TurnStore,
        steps: StepStore,
        deliverables: DeliverableSink,
        artifact_cache: ArtifactCache,
        default_model: str = DEFAULT_AGENT,
        build_model: str = BUILD_AGENT,
        max_history_messages: int = 50,
        context_summary_max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    ) -> None:
        self._adapters = adapters
        self._turns = turns
        self._steps = steps
        self._deliverables = deliverables
        self._artifact_cache = artifact_cache
        self._default_model = default_model
        self._build_model = build_model
        self._max_history_messages = max_history_messages
        self._context_summary_max_chars = context_summary_max_chars

    # ------------------------------------------------------------------
    # Routing and prompt assembly
    # ------------------------------------------------------------------

    async def resolve_route(
        self, session_id: UUID, user_text: str, explicit_model: str | None = None
    ) -> ResolvedRoute:
        """Pick ``(model, level)`` for a message.

        The keyword policy proposes a level; the level stored on the linked
        project step overrides it unless the message itself asked for the
        build level. The build level always runs on the build model.
        """
        selection = select_agents(
            user_text,
            default_agent=self._default_model,
            build_agent=self._build_model,
        )
        step = await self._steps.get_by_session(session_id)

        level = selection.eden_level
        if step is not None and not is_build_level(selection.eden_level):
            level = normalize_level(step.eden_level).value

        model = explicit_model or selection.primary_agent
        if is_build_level(level):
            model = self._build_model

        selection = selection.model_copy(
            update={"eden_level": level, "primary_agent": model}
        )
        return ResolvedRoute(selection=selection, model=model, level=level, step=step)

    async def build_prompt_turns(
        self, session_id: UUID, step: StepRecord | None
    ) -> list[PromptTurn]:
        """History for the model, led by a summary of completed prior phases."""
        history = await self._turns.list_recent(session_id, self._max_history_messages)

        turns: list[PromptTurn] = []
        for record in history:
            if record.role == "assistant":
                content = filter_think_tags(record.content)
            elif record.role == "user":
                content = record.content
            else:
                continue
            if content:
                turns.append(PromptTurn(role=record.role, content=content))

        summary = await self._context_summary(step)
        if summary is not None:
            turns.insert(0, PromptTurn(role="user", content=summary))
        return turns

    async def _context_summary(self, step: StepRecord | None) -> str | None:
        if step is None or step.step_number <= 1:
            return None
        prior_steps = await self._steps.completed_prior_steps(
            step.project_id, step.step_number
        )
        phases: list[tuple[str, str | None]] = []
        for prior in prior_steps:
            if prior.session_id is None:
                continue
            content = await self._turns.last_assistant_content(prior.session_id)
            phases.append((normalize_level(prior.eden_level).value, content))
        return build_context_summary(phases, self._context_summary_max_chars)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def handle_message(
        self,
        session_id: UUID,
        user_text: str,
        explicit_model: str | None = None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[str]:
        """Answer one user message as a sequence of SSE frames.

        Event order: ``moderation_info``, ``assistant_chunk``*,
        ``deliverable_signal``?, then ``assistant_message`` or ``error``, and
        finally ``done``.
        """
        progress = _TurnProgress(message_id=uuid4())
        route: ResolvedRoute | None = None

        try:
            await self._turns.append(session_id, "user", user_text)
            route = await self.resolve_route(session_id, user_text, explicit_model)
            yield _sse("moderation_info", route.selection.model_dump())

            prompt_turns = await self.build_prompt_turns(session_id, route.step)
            structured_logger.info(
                "Streaming assistant response",
                session_id=str(session_id),
                model=route.model,
                eden_level=route.level,
                history_turns=len(prompt_turns),
            )

            async with contextlib.aclosing(
                self._relay(route, prompt_turns, progress, is_disconnected)
            ) as relay:
                async for frame in relay:
                    yield frame

            if progress.disconnected:
                await self._persist_partial(session_id, route, progress)
                return

            async for frame in self._complete(session_id, route, progress):
                yield frame
        except asyncio.CancelledError:
            if route is not None and progress.raw_parts:
                task = _run_detached(
                    self._persist_partial(session_id, route, progress)
                )
                with contextlib.suppress(asyncio.CancelledError):
                    await asyncio.shield(task)
            raise
        except Exception as exc:
            self._log_failure(exc, session_id, route)
            if route is not None:
                error_code = getattr(exc, "error_code", "internal_error")
                await self._persist_partial(
                    session_id, route, progress, error=error_code
                )
            yield _sse(
                "error",
                {"content": ERROR_EVENT_CONTENT, "error": user_friendly_error(exc)},
            )

        yield _sse("done")

    async def _relay(
        self,
        route: ResolvedRoute,
        prompt_turns: list[PromptTurn],
        progress: _TurnProgress,
        is_disconnected: Callable[[], Awaitable[bool]] | None,
    ) -> AsyncIterator[str]:
        adapter = self._adapters.for_model(route.model)
        scanner = progress.scanner

        async with contextlib.aclosing(
            adapter.stream(route.model, prompt_turns, route.level)
        ) as events:
            async for event in events:
                if is_disconnected is not None and await is_disconnected():
                    progress.disconnected = True
                    logger.info(
                        "Client disconnected mid-stream (message %s)",
                        progress.message_id,
                    )
                    return

                match event:
                    case Thinking():
                        if not progress.thinking_announced:
                            progress.thinking_announced = True
                            yield self._chunk(progress, route, "", thinking=True)
                    case Chunk(text=text):
                        progress.raw_parts.append(text)
                        was_in_preamble = scanner.mode is ScanMode.IN_PREAMBLE
                        output = scanner.feed(text)
                        if scanner.mode is ScanMode.IN_PREAMBLE and not was_in_preamble:
                            # Text-side reasoning preamble counts as thinking
                            if not progress.thinking_announced:
                                progress.thinking_announced = True
                                yield self._chunk(progress, route, "", thinking=True)
                        for frame in self._visible_frames(progress, route, output):
                            yield frame
                    case Signal(payload=payload):
                        progress.payload = payload
                    case _:
                        assert_never(event)

        for frame in self._visible_frames(progress, route, scanner.finalize()):
            yield frame

    async def _complete(
        self, session_id: UUID, route: ResolvedRoute, progress: _TurnProgress
    ) -> AsyncIterator[str]:
        raw_text = progress.raw_text
        metadata: dict[str, Any] = {"eden_level": route.level}

        if is_build_level(route.level) and contains_artifact_code(raw_text):
            artifacts = extract_code_artifacts(filter_think_tags(raw_text))
            if artifacts:
                self._artifact_cache.put(session_id, artifacts)
                metadata["artifacts"] = [a.relative_path for a in artifacts]
                logger.info(
                    "Extracted %d code artifacts for session %s",
                    len(artifacts),
                    session_id,
                )

        payload = progress.payload
        if payload is not None:
            metadata["deliverable"] = {
                "title": payload.title,
                "file_name": deliverable_filename(payload.title),
            }

        stored = await self._turns.append(
            session_id,
            "assistant",
            raw_text,
            turn_id=progress.message_id,
            agent_label=route.model,
            metadata=metadata,
        )
        progress.persisted = True

        dispatch: asyncio.Task[None] | None = None
        if payload is not None:
            # Runs to completion even if the client leaves after this point
            dispatch = _run_detached(
                self._deliverables.on_deliverable_detected(session_id, payload)
            )
            yield _sse(
                "deliverable_signal",
                {
                    "ready": payload.ready,
                    "title": payload.title,
                    "content": payload.content,
                    "file_name": deliverable_filename(payload.title),
                },
            )

        yield _sse(
            "assistant_message",
            {
                "id": str(stored.id),
                "role": "assistant",
                "agent": route.model,
                "content": progress.visible_text,
                "moderationInfo": route.selection.model_dump(),
                "created_at": stored.created_at.isoformat(),
                "metadata": metadata,
            },
        )

        if dispatch is not None:
            await asyncio.shield(dispatch)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _chunk(
        self,
        progress: _TurnProgress,
        route: ResolvedRoute,
        content: str,
        *,
        thinking: bool = False,
        generating_deliverable: bool = False,
    ) -> str:
        data: dict[str, Any] = {
            "id": str(progress.message_id),
            "agent": route.model,
            "content": content,
            "isThinking": thinking,
        }
        if generating_deliverable:
            data["isGeneratingDeliverable"] = True
        return _sse("assistant_chunk", data)

    def _visible_frames(
        self,
        progress: _TurnProgress,
        route: ResolvedRoute,
        output: VisibleOutput | None,
    ) -> list[str]:
        if output is None:
            return []
        frames = []
        if output.text:
            progress.thinking_announced = False
            frames.append(self._chunk(progress, route, output.text))
        if output.generating_notice:
            frames.append(
                self._chunk(
                    progress, route, GENERATING_NOTICE, generating_deliverable=True
                )
            )
        return frames

    async def _persist_partial(
        self,
        session_id: UUID,
        route: ResolvedRoute,
        progress: _TurnProgress,
        **flags: Any,
    ) -> None:
        """Best-effort save of an aborted or failed answer; never dispatches."""
        if progress.persisted or not progress.raw_parts:
            return
        try:
            await self._turns.append(
                session_id,
                "assistant",
                progress.raw_text,
                turn_id=progress.message_id,
                agent_label=route.model,
                metadata={
                    "eden_level": route.level,
                    "partial": True,
                    "aborted_at": datetime.now(UTC).isoformat(),
                    **flags,
                },
            )
        except Exception:
            logger.exception(
                "Failed to persist partial assistant turn for session %s", session_id
            )

    def _log_failure(
        self, exc: Exception, session_id: UUID, route: ResolvedRoute | None
    ) -> None:
        context = {
            "session_id": str(session_id),
            "model": route.model if route else None,
            "eden_level": route.level if route else None,
        }
        if isinstance(exc, UpstreamError):
            structured_logger.warning(
                "Upstream model stream failed",
                error_code=exc.error_code,
                provider=exc.provider,
                status_code=exc.status_code,
                error=exc.message,
                **context,
            )
        else:
            structured_logger.exception("Chat pipeline failed", **context)
