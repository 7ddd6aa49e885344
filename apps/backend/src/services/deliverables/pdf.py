"""Render a deliverable's markdown body into a branded PDF document."""

from __future__ import annotations

import io
import re
from datetime import UTC, datetime
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    Flowable,
    HRFlowable,
    Paragraph,
    Preformatted,
    SimpleDocTemplate,
    Spacer,
)


BRAND_COLOR = colors.HexColor("#0f172a")
ACCENT_COLOR = colors.HexColor("#6366f1")

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_CODE_RE = re.compile(r"`([^`]+)`")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
_NUMBERED_RE = re.compile(r"^\s*(\d+)[.)]\s+(.*)$")
_TABLE_SEPARATOR_RE = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$")


def _inline(text: str) -> str:
    """Escape for reportlab's mini-markup, then apply bold and inline code."""
    markup = escape(text)
    markup = _BOLD_RE.sub(r"<b>\1</b>", markup)
    return _CODE_RE.sub(r'<font face="Courier">\1</font>', markup)


def _styles() -> dict[str, ParagraphStyle]:
    sheet = getSampleStyleSheet()
    return {
        "brand": ParagraphStyle(
            "Brand",
            parent=sheet["Normal"],
            fontName="Helvetica-Bold",
            fontSize=10,
            textColor=ACCENT_COLOR,
        ),
        "title": ParagraphStyle(
            "DeliverableTitle",
            parent=sheet["Title"],
            alignment=0,
            textColor=BRAND_COLOR,
        ),
        "date": ParagraphStyle(
            "Date", parent=sheet["Normal"], fontSize=9, textColor=colors.grey
        ),
        "h1": sheet["Heading1"],
        "h2": sheet["Heading2"],
        "h3": sheet["Heading3"],
        "body": sheet["BodyText"],
        "bullet": ParagraphStyle(
            "Bullet", parent=sheet["BodyText"], leftIndent=12, bulletIndent=2
        ),
        "code": sheet["Code"],
    }


def _markdown_flowables(
    content: str, styles: dict[str, ParagraphStyle]
) -> list[Flowable]:
    story: list[Flowable] = []
    code_lines: list[str] | None = None

    for raw in content.splitlines():
        line = raw.rstrip()

        if line.lstrip().startswith("```"):
            if code_lines is None:
                code_lines = []
            else:
                story.append(Preformatted("\n".join(code_lines), styles["code"]))
                code_lines = None
            continue
        if code_lines is not None:
            code_lines.append(line)
            continue

        if not line.strip():
            story.append(Spacer(1, 6))
            continue
        if _TABLE_SEPARATOR_RE.match(line):
            continue

        if heading := _HEADING_RE.match(line):
            level = min(len(heading.group(1)), 3)
            story.append(Paragraph(_inline(heading.group(2)), styles[f"h{level}"]))
        elif bullet := _BULLET_RE.match(line):
            story.append(
                Paragraph(_inline(bullet.group(1)), styles["bullet"], bulletText="•")
            )
        elif numbered := _NUMBERED_RE.match(line):
            story.append(
                Paragraph(
                    _inline(numbered.group(2)),
                    styles["bullet"],
                    bulletText=f"{numbered.group(1)}.",
                )
            )
        elif line.lstrip().startswith("|"):
            cells = [cell.strip() for cell in line.strip().strip("|").split("|")]
            story.append(Paragraph(_inline("  |  ".join(cells)), styles["body"]))
        else:
            story.append(Paragraph(_inline(line), styles["body"]))

    if code_lines:
        # Unterminated fence
        story.append(Preformatted("\n".join(code_lines), styles["code"]))
    return story


def render_markdown_pdf(
    title: str,
    content: str,
    *,
    brand: str = "EDEN Framework",
    generated_at: datetime | None = None,
) -> bytes:
    """Render a deliverable to PDF bytes.

    The first page starts with the brand line, the upper-cased title and the
    generation date, followed by the markdown body (headings, bullet and
    numbered lists, bold and inline code, fenced code, table rows).
    """
    styles = _styles()
    generated_at = generated_at or datetime.now(UTC)

    story: list[Flowable] = [
        Paragraph(escape(brand.upper()), styles["brand"]),
        Spacer(1, 4 * mm),
        Paragraph(escape(title.upper()), styles["title"]),
        Paragraph(f"Generado el {generated_at:%d/%m/%Y}", styles["date"]),
        HRFlowable(width="100%", thickness=1, color=ACCENT_COLOR, spaceAfter=6 * mm),
    ]
    story.extend(_markdown_flowables(content, styles))

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        title=title,
        author=brand,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=18 * mm,
        bottomMargin=18 * mm,
    )
    doc.build(story)
    return buffer.getvalue()
