"""Context summary carried from completed phases into a later phase's chat."""

from __future__ import annotations

from collections.abc import Iterable

from services.streaming.scanner import find_payload_start


CONTEXT_SUMMARY_HEADER = "📋 **CONTEXTO IMPORTANTE - Resumen de fases anteriores:**"
CONTEXT_SUMMARY_FOOTER = (
    "Por favor, usa este contexto para continuar con la fase actual "
    "sin repetir preguntas."
)
SUMMARY_SEPARATOR = "\n\n---\n\n"
DEFAULT_SUMMARY_MAX_CHARS = 800


def summarize_phase_output(
    content: str, max_chars: int = DEFAULT_SUMMARY_MAX_CHARS
) -> str:
    """Bounded prefix of a phase's final assistant turn.

    Cut at the first payload marker when the marker is not the very first
    thing in the text, then truncate to ``max_chars``.
    """
    marker = find_payload_start(content)
    if marker is not None and marker > 0:
        content = content[:marker]
    return content[:max_chars].strip()


def build_context_summary(
    phases: Iterable[tuple[str, str | None]],
    max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
) -> str | None:
    """Synthetic user turn summarizing earlier phases.

    Args:
        phases: ``(eden_level, last_assistant_content)`` per completed prior
            step, in step order. Steps without an assistant turn are skipped.
        max_chars: Per-phase character budget when no marker cuts the text.

    Returns:
        The turn text, or None when no phase contributed anything.
    """
    summaries = []
    for level, content in phases:
        if not content:
            continue
        summary = summarize_phase_output(content, max_chars)
        if summary:
            summaries.append(f"[{level}]: {summary}")

    if not summaries:
        return None
    return (
        f"{CONTEXT_SUMMARY_HEADER}\n\n"
        f"{SUMMARY_SEPARATOR.join(summaries)}"
        f"{SUMMARY_SEPARATOR}{CONTEXT_SUMMARY_FOOTER}"
    )
