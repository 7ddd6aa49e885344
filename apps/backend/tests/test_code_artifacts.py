"""Tests for source-file extraction from build-level responses."""

import logging

import pytest

from services.streaming import (
    CodeArtifact,
    contains_artifact_code,
    extract_code_artifacts,
)


def test_html_document_becomes_index_html() -> None:
    text = (
        "Aquí está tu landing:\n```html\n<!DOCTYPE html>\n"
        "<html><body>Hola</body></html>\n```"
    )

    assert extract_code_artifacts(text) == [
        CodeArtifact(
            relative_path="index.html",
            content="<!DOCTYPE html>\n<html><body>Hola</body></html>",
            language_tag="html",
        )
    ]


def test_path_comment_inside_fence_is_stripped_from_content() -> None:
    text = (
        "```tsx\n// src/components/Button.tsx\n"
        "export const Button = () => null;\n```"
    )

    [artifact] = extract_code_artifacts(text)

    assert artifact.relative_path == "src/components/Button.tsx"
    assert artifact.content == "export const Button = () => null;"
    assert artifact.language_tag == "tsx"


def test_markdown_file_header_names_the_next_fence() -> None:
    text = (
        "#### client/src/pages/Home.tsx\n```tsx\n"
        "export default function Home() { return null }\n```"
    )

    [artifact] = extract_code_artifacts(text)

    assert artifact.relative_path == "client/src/pages/Home.tsx"


def test_bare_component_header_is_placed_under_client_src() -> None:
    text = "### [NEW] `Navbar.tsx`\n```tsx\nexport const Navbar = 1;\n```"

    [artifact] = extract_code_artifacts(text)

    assert artifact.relative_path == "client/src/Navbar.tsx"


def test_prisma_fence_gets_schema_header() -> None:
    text = "Modelo:\n```prisma\nmodel User {\n  id Int @id\n}\n```"

    [artifact] = extract_code_artifacts(text)

    assert artifact.relative_path == "server/prisma/schema.prisma"
    assert artifact.language_tag == "prisma"
    assert artifact.content.startswith("// Auto-generated Prisma schema")
    assert "datasource db" in artifact.content
    assert artifact.content.endswith("model User {\n  id Int @id\n}")


def test_complete_prisma_schema_is_kept_as_is() -> None:
    schema = (
        'generator client {\n  provider = "prisma-client-js"\n}\n'
        'datasource db {\n  provider = "postgresql"\n}'
    )

    [artifact] = extract_code_artifacts(f"```prisma\n{schema}\n```")

    assert artifact.content == schema


def test_path_comment_before_fence() -> None:
    text = "// server/src/index.ts\n```ts\nconsole.log('hi');\n```"

    [artifact] = extract_code_artifacts(text)

    assert artifact.relative_path == "server/src/index.ts"
    assert artifact.content == "console.log('hi');"


@pytest.mark.parametrize(
    ("component", "expected_path"),
    [
        ("Dashboard", "client/src/pages/Dashboard.tsx"),
        ("PricingCard", "client/src/components/PricingCard.tsx"),
    ],
)
def test_default_exported_component_path_is_inferred(
    component: str, expected_path: str
) -> None:
    text = (
        f"```tsx\nexport default function {component}() {{\n"
        "  return <div>Panel de control</div>;\n}\n```"
    )

    [artifact] = extract_code_artifacts(text)

    assert artifact.relative_path == expected_path


def test_express_router_path_is_inferred_from_first_route() -> None:
    text = (
        "```ts\nconst router = express.Router();\n"
        "router.get('/products', list);\nexport default router;\n```"
    )

    [artifact] = extract_code_artifacts(text)

    assert artifact.relative_path == "server/src/routes/products.ts"


def test_short_unlabeled_snippet_is_ignored() -> None:
    assert extract_code_artifacts("```tsx\nexport default function A() {}\n```") == []


def test_unsafe_path_is_rejected(caplog: pytest.LogCaptureFixture) -> None:
    text = "```ts\n// ../secrets.ts\nconst x = 1;\n```"

    with caplog.at_level(logging.WARNING):
        assert extract_code_artifacts(text) == []

    assert "unsafe artifact path" in caplog.text


def test_first_claim_of_a_path_wins() -> None:
    text = (
        "```ts\n// src/a.ts\nexport const a = 1;\n```\n"
        "Versión alternativa:\n```ts\n// src/a.ts\nexport const a = 2;\n```"
    )

    [artifact] = extract_code_artifacts(text)

    assert artifact.content == "export const a = 1;"


def test_artifacts_follow_fence_order_across_layers() -> None:
    text = (
        "```html\n<!DOCTYPE html>\n<html></html>\n```\n"
        "```css\n/* styles/main.css */\nbody { margin: 0; }\n```"
    )

    paths = [a.relative_path for a in extract_code_artifacts(text)]

    assert paths == ["index.html", "styles/main.css"]


def test_language_falls_back_to_extension() -> None:
    [artifact] = extract_code_artifacts("```\n// styles/main.css\nbody {}\n```")

    assert artifact.language_tag == "css"


def test_prose_without_fences_yields_nothing() -> None:
    assert extract_code_artifacts("Primero define tu cliente ideal.") == []


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("```tsx\nconst a = 1;\n```", True),
        ("import React from 'react';", True),
        ("export function App() {}", True),
        ("<!DOCTYPE html>", True),
        ("Solo prosa sobre el mercado.", False),
        ("```python\nprint(1)\n```", False),
    ],
)
def test_contains_artifact_code(text: str, expected: bool) -> None:
    assert contains_artifact_code(text) is expected
