"""Incremental classification of streamed model text.

The scanner decides, fragment by fragment, which parts of a response are a
hidden reasoning preamble (``<think>...</think>``), user-visible prose, or an
embedded structured payload (a fenced JSON deliverable). Only prose is ever
returned from :meth:`TextScanner.feed`.

Fragment boundaries are arbitrary: a marker may be split across any number of
calls. Whenever the tail of the unreleased text could still grow into a
marker it is held back until the next fragment (or :meth:`finalize`)
disambiguates it, so the concatenated visible output depends only on the full
text and never on how it was chunked.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass


PREAMBLE_BEGIN = "<think>"
PREAMBLE_END = "</think>"

# Literal payload openers. The object opener below is matched separately
# because it tolerates whitespace between the brace and the first key.
PAYLOAD_MARKERS: tuple[str, ...] = ("```json", '"deliverable_ready"')
_DELIVERABLE_KEY_PREFIX = '"deliverable_'
_PAYLOAD_OBJECT_RE = re.compile(r'\{\s*"deliverable_')

_THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)

GENERATING_NOTICE = "\n\n_Generando entregable..._"


class ScanMode(enum.Enum):
    AWAITING_PREAMBLE_DECISION = "awaiting_preamble_decision"
    IN_PREAMBLE = "in_preamble"
    VISIBLE = "visible"
    IN_EMBEDDED_PAYLOAD = "in_embedded_payload"


@dataclass(slots=True)
class ScanState:
    accumulated_raw: str = ""
    mode: ScanMode = ScanMode.AWAITING_PREAMBLE_DECISION
    visible_so_far: str = ""


@dataclass(frozen=True, slots=True)
class VisibleOutput:
    """Text released to the user.

    ``generating_notice`` is set exactly once, on the output that closes the
    visible region because a payload started. The notice itself is UI
    affordance and is not part of ``text`` nor of ``visible_so_far``.
    """

    text: str
    generating_notice: bool = False


def filter_think_tags(content: str) -> str:
    """Remove every complete ``<think>...</think>`` block and trim the result."""
    return _THINK_BLOCK_RE.sub("", content).strip()


def find_payload_start(text: str) -> int | None:
    """Index of the earliest payload marker in ``text``, or None."""
    positions = [idx for marker in PAYLOAD_MARKERS if (idx := text.find(marker)) != -1]
    match = _PAYLOAD_OBJECT_RE.search(text)
    if match is not None:
        positions.append(match.start())
    return min(positions) if positions else None


def _partial_marker_length(text: str) -> int:
    """Length of the longest suffix of ``text`` that could still become a marker."""
    longest = 0
    for marker in PAYLOAD_MARKERS:
        for size in range(min(len(marker) - 1, len(text)), 0, -1):
            if text.endswith(marker[:size]):
                longest = max(longest, size)
                break

    # Only the last brace can open a partial object marker; any earlier one is
    # followed by that brace, which is not whitespace or part of the key.
    brace = text.rfind("{")
    if brace != -1:
        after = text[brace + 1 :].lstrip()
        prefix = _DELIVERABLE_KEY_PREFIX
        if len(after) < len(prefix) and prefix.startswith(after):
            longest = max(longest, len(text) - brace)
    return longest


def _strip_partial_suffix(text: str, marker: str) -> str:
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:size]):
            return text[:-size]
    return text


class TextScanner:
    """Single-request scanner over a stream of text fragments.

    Example::

        scanner = TextScanner()
        for fragment in fragments:
            if (out := scanner.feed(fragment)) is not None:
                send(out.text)
        if (out := scanner.finalize()) is not None:
            send(out.text)
    """

    def __init__(self) -> None:
        self.state = ScanState()
        # Visible-region text received but not yet released
        self._pending = ""
        self._after_preamble = False
        self._preamble_body_start = 0
        self._end_search_from = 0
        self._finalized = False

    @property
    def mode(self) -> ScanMode:
        return self.state.mode

    def feed(self, fragment: str) -> VisibleOutput | None:
        if self._finalized:
            raise RuntimeError("feed() called after finalize()")
        if not fragment:
            return None

        self.state.accumulated_raw += fragment

        match self.state.mode:
            case ScanMode.AWAITING_PREAMBLE_DECISION:
                return self._decide_preamble()
            case ScanMode.IN_PREAMBLE:
                return self._scan_preamble()
            case ScanMode.VISIBLE:
                self._pending += fragment
                return self._release_visible()
            case ScanMode.IN_EMBEDDED_PAYLOAD:
                return None

    def finalize(self) -> VisibleOutput | None:
        """Flush whatever is still held back once the stream has ended."""
        if self._finalized:
            return None
        self._finalized = True

        match self.state.mode:
            case ScanMode.AWAITING_PREAMBLE_DECISION:
                # Too short to be a preamble; whatever arrived is prose.
                self.state.mode = ScanMode.VISIBLE
                self._pending = self.state.accumulated_raw
                return self._release_visible(final=True)
            case ScanMode.IN_PREAMBLE:
                # Truncated preamble: show the reasoning rather than nothing.
                body = self.state.accumulated_raw[self._preamble_body_start :]
                body = _strip_partial_suffix(body, PREAMBLE_END)
                self.state.mode = ScanMode.VISIBLE
                self._after_preamble = True
                self._pending = body
                return self._release_visible(final=True)
            case ScanMode.VISIBLE:
                return self._release_visible(final=True)
            case ScanMode.IN_EMBEDDED_PAYLOAD:
                return None

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    def _decide_preamble(self) -> VisibleOutput | None:
        raw = self.state.accumulated_raw
        head = raw.lstrip()

        if head.startswith(PREAMBLE_BEGIN):
            self.state.mode = ScanMode.IN_PREAMBLE
            self._preamble_body_start = len(raw) - len(head) + len(PREAMBLE_BEGIN)
            self._end_search_from = self._preamble_body_start
            return self._scan_preamble()

        if PREAMBLE_BEGIN.startswith(head):
            # Empty or a proper prefix of the begin marker: undecided.
            return None

        self.state.mode = ScanMode.VISIBLE
        self._pending = raw
        return self._release_visible()

    def _scan_preamble(self) -> VisibleOutput | None:
        raw = self.state.accumulated_raw
        end = raw.find(PREAMBLE_END, self._end_search_from)
        if end == -1:
            # The end marker may straddle the next fragment boundary
            self._end_search_from = max(
                self._preamble_body_start, len(raw) - len(PREAMBLE_END) + 1
            )
            return None

        self.state.mode = ScanMode.VISIBLE
        self._after_preamble = True
        self._pending = raw[end + len(PREAMBLE_END) :]
        return self._release_visible()

    def _release_visible(self, *, final: bool = False) -> VisibleOutput | None:
        if self._after_preamble and not self.state.visible_so_far:
            # Whitespace separating the preamble from the answer is dropped
            self._pending = self._pending.lstrip()

        start = find_payload_start(self._pending)
        if start is not None:
            text = self._pending[:start]
            self._pending = ""
            self.state.visible_so_far += text
            self.state.mode = ScanMode.IN_EMBEDDED_PAYLOAD
            return VisibleOutput(text=text, generating_notice=True)

        held = 0 if final else _partial_marker_length(self._pending)
        cut = len(self._pending) - held
        text = self._pending[:cut]
        self._pending = self._pending[cut:]
        if not text:
            return None
        self.state.visible_so_far += text
        return VisibleOutput(text=text)
