"""Extraction of source files from free-form model output.

Models on the build level answer with markdown containing fenced code blocks
but annotate file paths inconsistently. Extraction applies layered pattern
families in a fixed order; every fence yields at most one artifact and a path
claimed by an earlier layer is never overwritten by a later one:

1. a path comment on the first line inside the fence (``// src/App.tsx``)
2. a markdown heading naming the file right before the fence
3. schema fences (``prisma``) which always map to one well-known path
4. a path comment on the line right before the fence
5. structural inference from the code itself (HTML documents, default
   exported components, express routers)

All of it is best-effort: zero artifacts is a valid result.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import PurePosixPath


logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```([\w+#.-]*)[^\n]*\n(.*?)```", re.DOTALL)

_PATH = r"[\w@.-]+(?:/[\w@.-]+)*\.[A-Za-z0-9]+"
_PATH_COMMENT_RE = re.compile(
    r"^\s*(?://|#|/\*|<!--)\s*(?:file(?:name)?:\s*)?"
    rf"`?(?P<path>{_PATH})`?\s*(?:\*/|-->)?\s*$",
    re.IGNORECASE,
)
_HEADER_RE = re.compile(
    rf"^\s*#{{2,6}}\s*(?:\[(?:NEW|MODIFY)\]\s*)?[`\[]?(?P<path>{_PATH})[`\]]?"
    r"(?:\([^)]*\))?\s*$",
    re.IGNORECASE,
)

_HTML_DOC_RE = re.compile(r"<!DOCTYPE\s+html|<html[\s>]", re.IGNORECASE)
_DEFAULT_EXPORT_RE = re.compile(r"export\s+default\s+function\s+(\w+)")
_ROUTER_DEF_RE = re.compile(r"const\s+router\s*=\s*(?:express\.)?Router\s*\(\s*\)")
_ROUTE_RE = re.compile(r"router\.(?:get|post|put|delete|patch)\s*\(\s*['\"]/([\w-]*)")

_SCRIPT_LANGS = {"", "typescript", "tsx", "ts", "javascript", "jsx", "js"}
_PAGE_COMPONENTS = {
    "Dashboard",
    "Home",
    "Inventory",
    "Movements",
    "Products",
    "Profile",
    "Reports",
    "Settings",
}
# Inference ignores snippets this short; they are almost always examples
_MIN_INFERRED_CODE_CHARS = 50

PRISMA_SCHEMA_PATH = "server/prisma/schema.prisma"
PRISMA_HEADER = """\
// Auto-generated Prisma schema
generator client {
  provider = "prisma-client-js"
}

datasource db {
  provider = "sqlite"
  url      = "file:./dev.db"
}

"""

_EXTENSION_LANGS = {
    "ts": "typescript",
    "tsx": "tsx",
    "js": "javascript",
    "jsx": "jsx",
    "html": "html",
    "css": "css",
    "json": "json",
    "prisma": "prisma",
    "py": "python",
    "md": "markdown",
}

_ARTIFACT_INDICATORS = (
    re.compile(r"```(?:typescript|tsx|javascript|jsx|html)\b", re.IGNORECASE),
    re.compile(r"import.*from\s+['\"]react['\"]"),
    re.compile(r"export\s+(?:default\s+)?function\s+\w+"),
    _HTML_DOC_RE,
)


@dataclass(frozen=True, slots=True)
class CodeArtifact:
    relative_path: str
    content: str
    language_tag: str


@dataclass(slots=True)
class _Fence:
    start: int
    language: str
    body: str
    claimed: bool = False


def _fences(text: str) -> list[_Fence]:
    return [
        _Fence(start=m.start(), language=m.group(1).lower(), body=m.group(2))
        for m in _FENCE_RE.finditer(text)
    ]


def _normalize_path(raw: str) -> str | None:
    """Relative POSIX path, or None for anything escaping the project root."""
    cleaned = raw.strip().replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    if not cleaned:
        return None
    path = PurePosixPath(cleaned)
    if path.is_absolute() or ".." in path.parts:
        return None
    return str(path)


def _language_for(path: str, fence_language: str) -> str:
    if fence_language:
        return fence_language
    return _EXTENSION_LANGS.get(PurePosixPath(path).suffix.lstrip("."), "text")


def _preceding_lines(text: str, fence_start: int) -> Iterator[str]:
    """Non-blank lines before a fence, nearest first."""
    for line in reversed(text[:fence_start].splitlines()):
        if line.strip():
            yield line


def _nearest_line_before(text: str, fence_start: int) -> str | None:
    return next(_preceding_lines(text, fence_start), None)


# ---------------------------------------------------------------------------
# Layers: each returns (path, content) for a fence or None
# ---------------------------------------------------------------------------


def _from_inner_comment(text: str, fence: _Fence) -> tuple[str, str] | None:
    first, _, rest = fence.body.lstrip("\n").partition("\n")
    match = _PATH_COMMENT_RE.match(first)
    if match is None:
        return None
    return match.group("path"), rest


def _from_file_header(text: str, fence: _Fence) -> tuple[str, str] | None:
    line = _nearest_line_before(text, fence.start)
    if line is None:
        return None
    match = _HEADER_RE.match(line)
    if match is None:
        return None
    path = match.group("path")
    if path.endswith((".tsx", ".jsx")) and not path.startswith(("client/", "server/")):
        path = f"client/src/{path}"
    return path, fence.body


def _from_schema_fence(text: str, fence: _Fence) -> tuple[str, str] | None:
    if fence.language != "prisma":
        return None
    schema = fence.body.strip()
    if "generator client" not in schema or "datasource db" not in schema:
        schema = PRISMA_HEADER + schema
    return PRISMA_SCHEMA_PATH, schema


def _from_outer_comment(text: str, fence: _Fence) -> tuple[str, str] | None:
    line = _nearest_line_before(text, fence.start)
    if line is None or line.lstrip().startswith("#"):
        # Markdown headings are handled by the file header layer
        return None
    match = _PATH_COMMENT_RE.match(line)
    if match is None:
        return None
    return match.group("path"), fence.body


def _from_code_shape(text: str, fence: _Fence) -> tuple[str, str] | None:
    code = fence.body.strip()
    if fence.language in {"", "html", "htm"} and _HTML_DOC_RE.search(code):
        return "index.html", code

    if fence.language not in _SCRIPT_LANGS or len(code) < _MIN_INFERRED_CODE_CHARS:
        return None

    component = _DEFAULT_EXPORT_RE.search(code)
    if component is not None:
        name = component.group(1)
        folder = "pages" if name in _PAGE_COMPONENTS else "components"
        return f"client/src/{folder}/{name}.tsx", code

    if _ROUTER_DEF_RE.search(code):
        segments = [seg for seg in _ROUTE_RE.findall(code) if seg]
        if segments:
            return f"server/src/routes/{segments[0]}.ts", code
    return None


_LAYERS: tuple[Callable[[str, _Fence], tuple[str, str] | None], ...] = (
    _from_inner_comment,
    _from_file_header,
    _from_schema_fence,
    _from_outer_comment,
    _from_code_shape,
)


def extract_code_artifacts(full_text: str) -> list[CodeArtifact]:
    """Pull labeled source files out of a complete model response.

    Artifacts are returned in the order their fences appear in the text.
    """
    fences = _fences(full_text)
    found: dict[str, tuple[int, CodeArtifact]] = {}

    for layer in _LAYERS:
        for fence in fences:
            if fence.claimed:
                continue
            candidate = layer(full_text, fence)
            if candidate is None:
                continue
            raw_path, content = candidate
            path = _normalize_path(raw_path)
            content = content.strip()
            if path is None:
                logger.warning("Ignoring unsafe artifact path %r", raw_path)
                continue
            if not content or path in found:
                continue
            fence.claimed = True
            found[path] = (
                fence.start,
                CodeArtifact(
                    relative_path=path,
                    content=content,
                    language_tag=_language_for(path, fence.language),
                ),
            )

    ordered = sorted(found.values(), key=lambda item: item[0])
    return [artifact for _, artifact in ordered]


def contains_artifact_code(text: str) -> bool:
    """Cheap check for code worth running :func:`extract_code_artifacts` on."""
    return any(indicator.search(text) for indicator in _ARTIFACT_INDICATORS)
