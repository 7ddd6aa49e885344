"""Tests for deliverable extraction from complete model responses."""

from __future__ import annotations

import logging

import pytest

from services.streaming import (
    DeliverablePayload,
    deliverable_filename,
    extract_deliverable,
)


WELL_FORMED = (
    "Aquí tienes tu plan.\n```json\n"
    '{"deliverable_title": "Plan", '
    '"deliverable_content": "# Plan\\n\\nBody", '
    '"deliverable_ready": true}\n```'
)


def test_no_marker_returns_none() -> None:
    assert extract_deliverable("Sigamos conversando sobre tu cliente ideal.") is None


def test_ready_false_is_not_a_deliverable() -> None:
    text = '{"deliverable_ready": false, "deliverable_title": "Borrador"}'

    assert extract_deliverable(text) is None


def test_strict_parse_of_fenced_object() -> None:
    payload = extract_deliverable(WELL_FORMED)

    assert payload == DeliverablePayload(
        ready=True, title="Plan", content="# Plan\n\nBody"
    )


def test_extraction_is_idempotent() -> None:
    assert extract_deliverable(WELL_FORMED) == extract_deliverable(WELL_FORMED)
    assert extract_deliverable("nada") is None
    assert extract_deliverable("nada") is None


def test_strict_parse_keeps_escaped_quotes() -> None:
    text = (
        'Listo.\n{"deliverable_ready": true, "deliverable_title": "Canvas", '
        '"deliverable_content": "Dijo \\"hola\\" y\\tsiguió"}'
    )

    payload = extract_deliverable(text)

    assert payload is not None
    assert payload.content == 'Dijo "hola" y\tsiguió'


def test_braces_in_preceding_prose_are_ignored() -> None:
    text = (
        "Usa {llaves} así. "
        '{"deliverable_ready": true, "deliverable_title": "X", '
        '"deliverable_content": "c"}'
    )

    payload = extract_deliverable(text)

    assert payload is not None
    assert (payload.title, payload.content) == ("X", "c")


def test_object_with_other_leading_key_uses_nearest_brace() -> None:
    text = '{"tipo": "doc", "deliverable_ready": true, "deliverable_title": "Y"}'

    payload = extract_deliverable(text)

    assert payload == DeliverablePayload(ready=True, title="Y", content="")


def test_fallback_recovers_unescaped_internal_quote() -> None:
    text = (
        "Aquí está el informe.\n```json\n"
        '{"deliverable_ready": true, "deliverable_title": "Informe", '
        '"deliverable_content": "# Informe\\n\\nEl cliente dijo "basta" ayer."}'
        "\n```"
    )

    payload = extract_deliverable(text)

    assert payload is not None
    assert payload.ready is True
    assert payload.title == "Informe"
    assert payload.content == '# Informe\n\nEl cliente dijo "basta" ayer.'


def test_fallback_recovers_raw_newlines_and_unicode_escapes() -> None:
    text = (
        '{"deliverable_ready": true, "deliverable_title": "Diagn\\u00f3stico", '
        '"deliverable_content": "# Dolor\nLínea cruda\n## Cliente"}'
    )

    payload = extract_deliverable(text)

    assert payload is not None
    assert payload.title == "Diagnóstico"
    assert payload.content == "# Dolor\nLínea cruda\n## Cliente"


def test_fallback_without_content_yields_empty_content() -> None:
    text = '{"deliverable_ready": true, "deliverable_title": "Solo título" ,,}'

    payload = extract_deliverable(text)

    assert payload == DeliverablePayload(ready=True, title="Solo título", content="")


def test_marker_without_title_is_dropped_and_logged(
    caplog: pytest.LogCaptureFixture,
) -> None:
    text = '{"deliverable_ready": true, "deliverable_content": "sin título"'

    with caplog.at_level(logging.WARNING, logger="services.streaming.extraction"):
        assert extract_deliverable(text) is None

    assert "no title could be recovered" in caplog.text


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Plan", "plan.pdf"),
        ("Plan Ágil", "plan__gil.pdf"),
        ("MODELO DE NEGOCIO 2025", "modelo_de_negocio_2025.pdf"),
    ],
)
def test_deliverable_filename(title: str, expected: str) -> None:
    assert deliverable_filename(title) == expected
