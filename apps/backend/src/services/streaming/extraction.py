"""Recovery of the JSON deliverable a model embeds at the end of a response.

The object is produced by a language model, so it is frequently almost-JSON:
raw newlines or unescaped quotes inside the markdown body are common. The
extractor therefore tries a strict decode first and falls back to matching
the two string fields it needs independently. Both tiers are heuristics over
untrusted text; neither validates more than the fields used downstream.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass


logger = logging.getLogger(__name__)

_READY_RE = re.compile(r'"deliverable_ready"\s*:\s*true')
_OBJECT_OPENER_RE = re.compile(r'\{\s*"deliverable_')

# A string value that tolerates unescaped quotes: a quote only terminates the
# value when what follows looks like the next member or the end of the object.
_TOLERANT_STRING = r'"((?:[^"\\]|\\.|"(?!\s*(?:,\s*"\w+"\s*:|\}|\Z)))*)"'
_TITLE_RE = re.compile(r'"deliverable_title"\s*:\s*' + _TOLERANT_STRING)
_CONTENT_RE = re.compile(r'"deliverable_content"\s*:\s*' + _TOLERANT_STRING)

_ESCAPE_RE = re.compile(r'\\(u[0-9a-fA-F]{4}|["\\/bfnrt])')
_SIMPLE_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class DeliverablePayload:
    ready: bool
    title: str
    content: str


def _unescape(value: str) -> str:
    """Undo JSON string escapes in a single pass; unknown escapes are kept."""

    def _replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if token.startswith("u"):
            return chr(int(token[1:], 16))
        return _SIMPLE_ESCAPES[token]

    return _ESCAPE_RE.sub(_replace, value)


def _locate_opener(text: str, marker_pos: int, marker_end: int) -> int | None:
    """Opening brace of the object that owns the ready marker.

    Prefers the last ``{"deliverable_...`` opener before the marker and falls
    back to the nearest preceding brace.
    """
    opener = None
    for match in _OBJECT_OPENER_RE.finditer(text, 0, marker_end):
        opener = match.start()
    if opener is not None:
        return opener
    brace = text.rfind("{", 0, marker_pos)
    return brace if brace != -1 else None


def _strict_parse(text: str, opener: int) -> DeliverablePayload | None:
    try:
        obj, _end = json.JSONDecoder().raw_decode(text, opener)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict) or obj.get("deliverable_ready") is not True:
        return None
    title = obj.get("deliverable_title")
    content = obj.get("deliverable_content", "")
    if not isinstance(title, str) or not title or not isinstance(content, str):
        return None
    return DeliverablePayload(ready=True, title=title, content=content)


def _fallback_parse(region: str) -> DeliverablePayload | None:
    title_match = _TITLE_RE.search(region)
    if title_match is None:
        return None
    title = _unescape(title_match.group(1)).strip()
    if not title:
        return None
    content_match = _CONTENT_RE.search(region)
    content = _unescape(content_match.group(1)) if content_match else ""
    # The ready marker matched, so readiness is implied even though the
    # object itself could not be decoded.
    return DeliverablePayload(ready=True, title=title, content=content)


def extract_deliverable(full_text: str) -> DeliverablePayload | None:
    """Find the deliverable object embedded in a complete model response.

    Returns None when the text carries no ``"deliverable_ready": true``
    marker (the normal case for intermediate turns) or when neither the
    strict nor the lenient tier can recover a title.
    """
    marker = _READY_RE.search(full_text)
    if marker is None:
        return None

    opener = _locate_opener(full_text, marker.start(), marker.end())
    if opener is not None:
        payload = _strict_parse(full_text, opener)
        if payload is not None:
            return payload
        region = full_text[opener:]
    else:
        region = full_text

    payload = _fallback_parse(region)
    if payload is None:
        logger.warning(
            "Deliverable marker found but no title could be recovered "
            "(text length %d)",
            len(full_text),
        )
        return None
    logger.info("Deliverable recovered via lenient parsing: %r", payload.title)
    return payload


def deliverable_filename(title: str) -> str:
    """PDF file name for a title: ``"Plan Ágil"`` becomes ``plan__gil.pdf``."""
    return _UNSAFE_FILENAME_CHARS.sub("_", title).lower() + ".pdf"
