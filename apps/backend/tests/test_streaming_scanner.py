"""Tests for the incremental text scanner."""

from __future__ import annotations

from itertools import combinations

import pytest

from services.streaming import (
    GENERATING_NOTICE,
    ScanMode,
    TextScanner,
    filter_think_tags,
)
from services.streaming.scanner import find_payload_start


def _scan(fragments: list[str]) -> tuple[str, int, TextScanner]:
    """Feed fragments, finalize, and return (visible text, notices, scanner)."""
    scanner = TextScanner()
    visible: list[str] = []
    notices = 0
    for fragment in fragments:
        out = scanner.feed(fragment)
        if out is not None:
            visible.append(out.text)
            notices += out.generating_notice
    out = scanner.finalize()
    if out is not None:
        visible.append(out.text)
        notices += out.generating_notice
    return "".join(visible), notices, scanner


def _split(text: str, cuts: tuple[int, ...]) -> list[str]:
    bounds = (0, *cuts, len(text))
    return [text[a:b] for a, b in zip(bounds, bounds[1:], strict=False)]


PLAIN = "Hola, soy tu consultor. ¿En qué problema quieres trabajar hoy?"
WITH_PREAMBLE = "<think>El usuario quiere validar</think>\n\nPerfecto, empecemos."
WITH_PAYLOAD = (
    'Listo. {ver nota} Aquí va:\n```json\n{"deliverable_ready": true, '
    '"deliverable_title": "Plan"}\n```'
)
WITH_BOTH = (
    "<think>a</think> Texto previo `code` y {x}\n"
    '{ "deliverable_title": "T", "deliverable_ready": true}'
)


class TestScannerBasics:
    def test_plain_text_is_released_as_it_arrives(self) -> None:
        scanner = TextScanner()

        first = scanner.feed("Hola ")
        second = scanner.feed("mundo")

        assert first is not None and first.text == "Hola "
        assert second is not None and second.text == "mundo"
        assert scanner.mode is ScanMode.VISIBLE
        assert scanner.finalize() is None

    def test_preamble_is_hidden_and_leading_whitespace_dropped(self) -> None:
        visible, notices, scanner = _scan([WITH_PREAMBLE])

        assert visible == "Perfecto, empecemos."
        assert notices == 0
        assert scanner.state.visible_so_far == visible

    def test_preamble_prefix_is_held_back(self) -> None:
        scanner = TextScanner()

        assert scanner.feed("  <thi") is None
        assert scanner.mode is ScanMode.AWAITING_PREAMBLE_DECISION

        scanner.feed("nk>oculto")
        assert scanner.mode is ScanMode.IN_PREAMBLE

    def test_diverging_prefix_flushes_everything(self) -> None:
        scanner = TextScanner()

        assert scanner.feed("<t") is None
        out = scanner.feed("abla>")

        assert out is not None and out.text == "<tabla>"
        assert scanner.mode is ScanMode.VISIBLE

    def test_unclosed_preamble_is_flushed_on_finalize(self) -> None:
        scanner = TextScanner()

        assert scanner.feed("<think>Analizando el ") is None
        assert scanner.feed("mercado objetivo</thi") is None
        out = scanner.finalize()

        assert out is not None
        assert out.text == "Analizando el mercado objetivo"

    def test_short_undecided_text_is_flushed_on_finalize(self) -> None:
        scanner = TextScanner()

        assert scanner.feed("<th") is None
        out = scanner.finalize()

        assert out is not None and out.text == "<th"

    def test_payload_closes_visible_region_with_notice(self) -> None:
        scanner = TextScanner()

        out = scanner.feed('Aquí tienes:\n```json\n{"deliverable_ready": true')

        assert out is not None
        assert out.text == "Aquí tienes:\n"
        assert out.generating_notice is True
        assert scanner.mode is ScanMode.IN_EMBEDDED_PAYLOAD

    def test_payload_mode_is_terminal(self) -> None:
        scanner = TextScanner()
        scanner.feed('Texto {"deliverable_title": "X"')

        assert scanner.feed("\n\nMás prosa que nunca debe verse") is None
        assert scanner.feed("```") is None
        assert scanner.finalize() is None
        assert scanner.state.visible_so_far == "Texto "

    def test_bare_ready_key_starts_payload(self) -> None:
        visible, notices, _ = _scan(['Resumen final "deliverable_ready": true'])

        assert visible == "Resumen final "
        assert notices == 1

    def test_partial_marker_is_released_when_disambiguated(self) -> None:
        scanner = TextScanner()

        out = scanner.feed("Ejemplo ``")
        assert out is not None and out.text == "Ejemplo "

        out = scanner.feed("`python")
        assert out is not None and out.text == "```python"

    def test_feed_after_finalize_raises(self) -> None:
        scanner = TextScanner()
        scanner.feed("hola")
        scanner.finalize()

        with pytest.raises(RuntimeError):
            scanner.feed("más")

    def test_finalize_is_idempotent(self) -> None:
        scanner = TextScanner()
        scanner.feed("hola {")

        first = scanner.finalize()

        assert first is not None and first.text == "{"
        assert scanner.finalize() is None

    def test_generating_notice_text(self) -> None:
        assert "Generando entregable" in GENERATING_NOTICE


class TestFragmentationInvariance:
    """Visible output depends only on the full text, never on chunking."""

    @pytest.mark.parametrize("text", [PLAIN, WITH_PREAMBLE, WITH_PAYLOAD, WITH_BOTH])
    def test_every_two_way_split(self, text: str) -> None:
        expected = _scan([text])

        for cut in range(1, len(text)):
            visible, notices, scanner = _scan(_split(text, (cut,)))
            assert (visible, notices) == expected[:2], f"split at {cut}"
            assert scanner.state.visible_so_far == visible

    @pytest.mark.parametrize("text", [WITH_PREAMBLE, WITH_PAYLOAD, WITH_BOTH])
    def test_every_three_way_split(self, text: str) -> None:
        expected = _scan([text])[:2]

        for cuts in combinations(range(1, len(text)), 2):
            assert _scan(_split(text, cuts))[:2] == expected, f"splits at {cuts}"

    @pytest.mark.parametrize("text", [PLAIN, WITH_PREAMBLE, WITH_PAYLOAD, WITH_BOTH])
    def test_character_by_character(self, text: str) -> None:
        assert _scan(list(text))[:2] == _scan([text])[:2]

    def test_expected_visible_output_of_fixtures(self) -> None:
        assert _scan([WITH_PAYLOAD])[0] == "Listo. {ver nota} Aquí va:\n"
        assert _scan([WITH_BOTH])[0] == "Texto previo `code` y {x}\n"


class TestHelpers:
    def test_filter_think_tags_removes_complete_blocks(self) -> None:
        text = "<think>uno</think>Hola <think>dos\nlíneas</think>mundo  "

        assert filter_think_tags(text) == "Hola mundo"

    def test_filter_think_tags_keeps_unclosed_block(self) -> None:
        assert filter_think_tags("<think>sin cerrar") == "<think>sin cerrar"

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("sin marcador", None),
            ('a ```json {"deliverable_ready": true}', 2),
            ('ab {\n  "deliverable_title": "x"}', 3),
            ('"deliverable_ready": true', 0),
        ],
    )
    def test_find_payload_start(self, text: str, expected: int | None) -> None:
        assert find_payload_start(text) == expected
