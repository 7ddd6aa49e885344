"""Provider-neutral contract shared by the model stream adapters."""

from __future__ import annotations

import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import ClassVar, Literal, Protocol, assert_never

from opentelemetry.trace import StatusCode

from core.observability import get_tracer
from services.eden import get_system_prompt_for_level
from services.llm.exceptions import UpstreamError
from services.streaming import (
    Chunk,
    Signal,
    StreamEvent,
    Thinking,
    extract_deliverable,
    filter_think_tags,
)


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


@dataclass(frozen=True, slots=True)
class PromptTurn:
    role: Literal["user", "assistant"]
    content: str


class ModelStreamAdapter(Protocol):
    """Streams one model response as normalized events."""

    provider: str

    def stream(
        self, model: str, prior_turns: Sequence[PromptTurn], level: str | None
    ) -> AsyncIterator[StreamEvent]:
        """Yield ``Thinking``/``Chunk`` events, then at most one ``Signal``.

        Raises:
            UpstreamError: on non-success status, transport failure, malformed
                framing, or a stream that ends without its terminal frame.
        """
        ...


class BaseStreamAdapter(ABC):
    """Adds the system prompt, tracing and post-hoc deliverable detection.

    Subclasses only translate their provider's native stream. The ``Signal``
    is computed once over the complete text after the native stream finished
    successfully, because a deliverable object can straddle any number of
    fragments and is only decodable once whole.
    """

    provider: ClassVar[str]

    async def stream(
        self, model: str, prior_turns: Sequence[PromptTurn], level: str | None
    ) -> AsyncIterator[StreamEvent]:
        system_prompt = get_system_prompt_for_level(level)
        parts: list[str] = []

        # start_span rather than start_as_current_span: this generator may be
        # closed from another task when the client disconnects.
        span = tracer.start_span(
            "llm.stream",
            attributes={
                "llm.provider": self.provider,
                "llm.model": model,
                "llm.history_turns": len(prior_turns),
            },
        )
        try:
            async with contextlib.aclosing(
                self._stream_native(model, prior_turns, system_prompt)
            ) as native:
                async for event in native:
                    match event:
                        case Chunk(text=text):
                            parts.append(text)
                        case Thinking():
                            pass
                        case _:
                            assert_never(event)
                    yield event
        except UpstreamError as exc:
            span.record_exception(exc)
            span.set_status(StatusCode.ERROR, exc.error_code)
            raise
        finally:
            span.set_attribute("llm.response_chars", sum(len(p) for p in parts))
            span.end()

        payload = extract_deliverable(filter_think_tags("".join(parts)))
        if payload is not None:
            logger.info(
                "Deliverable detected in %s response (model=%s)", self.provider, model
            )
            yield Signal(payload)

    @abstractmethod
    def _stream_native(
        self, model: str, turns: Sequence[PromptTurn], system_prompt: str
    ) -> AsyncIterator[Thinking | Chunk]:
        """Translate the provider's native stream; must end only on success."""
