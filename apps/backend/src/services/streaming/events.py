"""Normalized events produced by every model stream adapter.

The union is closed; consumers dispatch with ``match`` and
``typing.assert_never``.
"""

from __future__ import annotations

from dataclasses import dataclass

from services.streaming.extraction import DeliverablePayload


@dataclass(frozen=True, slots=True)
class Thinking:
    """The provider is in a native hidden-reasoning phase. Carries no text."""


@dataclass(frozen=True, slots=True)
class Chunk:
    text: str


@dataclass(frozen=True, slots=True)
class Signal:
    """A deliverable found in the complete response; emitted at most once, last."""

    payload: DeliverablePayload


type StreamEvent = Thinking | Chunk | Signal
