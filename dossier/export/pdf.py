"""PDF article generator.

Renders a case's markdown articles to branded PDFs. Navy/gold default
branding with configurable colors.

Usage:
    from dossier.export.pdf import ArticlePDF, PDFBranding

    pdf = ArticlePDF()
    pdf.generate("cases/my-case/articles/full.md")

    # Custom branding
    branding = PDFBranding(org_name="Newsroom", footer_text="DRAFT")
    pdf = ArticlePDF(branding=branding)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen.canvas import Canvas

logger = logging.getLogger(__name__)

ARTICLE_NAMES = ("short", "medium", "full")


# ---------------------------------------------------------------------------
# Branding configuration
# ---------------------------------------------------------------------------


@dataclass
class PDFBranding:
    """Branding configuration for PDF articles.

    Colors are RGB tuples (0-255).
    """
    # Navy/gold defaults
    primary_color: tuple[int, int, int] = (0, 51, 102)      # Navy
    accent_color: tuple[int, int, int] = (212, 175, 55)      # Gold
    text_color: tuple[int, int, int] = (33, 33, 33)          # Dark gray
    muted_color: tuple[int, int, int] = (110, 110, 110)
    light_bg: tuple[int, int, int] = (245, 245, 250)         # Light gray-blue
    white: tuple[int, int, int] = (255, 255, 255)

    org_name: str = "Dossier"
    subtitle: str = "Investigation"
    footer_text: str = "Every [S###] citation refers to captured evidence in the case file"

    # Fonts (built-in reportlab fonts)
    title_font: str = "Helvetica-Bold"
    heading_font: str = "Helvetica-Bold"
    body_font: str = "Helvetica"
    italic_font: str = "Helvetica-Oblique"
    mono_font: str = "Courier"

    # Sizing
    page_margin: float = 50.0  # points
    title_size: float = 22.0
    heading_size: float = 14.0
    subheading_size: float = 11.0
    body_size: float = 10.0
    small_size: float = 8.0


def _color(rgb: tuple[int, int, int]) -> Color:
    return Color(rgb[0] / 255, rgb[1] / 255, rgb[2] / 255)


# ---------------------------------------------------------------------------
# Markdown blocks
# ---------------------------------------------------------------------------


@dataclass
class Block:
    kind: str          # heading | paragraph | bullet | quote | code | rule
    text: str
    level: int = 0


_LINK = re.compile(r"\[([^\]]+)\]\((https?://[^)]+)\)")
_SOURCE_REF = re.compile(r"S\d{3,4}")
_EMPHASIS = re.compile(r"(\*\*|__|\*|_|`)(.+?)\1")
_BULLET = re.compile(r"^(\s*)(?:[-*+]|\d+[.)])\s+(.*)$")
_HEADING = re.compile(r"^(#{1,6})\s+(.*?)\s*#*$")


def strip_inline(text: str) -> str:
    """Drop inline markdown, keeping link text and ``[S###]`` citations."""
    text = _LINK.sub(
        lambda m: f"[{m.group(1)}]" if _SOURCE_REF.fullmatch(m.group(1)) else m.group(1),
        text,
    )
    return _EMPHASIS.sub(r"\2", text)


def parse_markdown(text: str) -> list[Block]:
    """Split markdown into the block types the renderer draws."""
    lines = text.split("\n")
    if lines and lines[0].strip() == "---":
        # Frontmatter
        end = next((i for i, line in enumerate(lines[1:], start=1) if line.strip() == "---"), None)
        if end is not None:
            lines = lines[end + 1:]

    blocks: list[Block] = []
    paragraph: list[str] = []
    code: list[str] | None = None

    def flush() -> None:
        if paragraph:
            blocks.append(Block("paragraph", strip_inline(" ".join(paragraph))))
            paragraph.clear()

    for line in lines:
        if line.strip().startswith("```"):
            if code is None:
                flush()
                code = []
            else:
                blocks.append(Block("code", "\n".join(code)))
                code = None
            continue
        if code is not None:
            code.append(line)
            continue

        stripped = line.strip()
        if not stripped:
            flush()
            continue
        heading = _HEADING.match(stripped)
        if heading:
            flush()
            blocks.append(Block("heading", strip_inline(heading.group(2)), len(heading.group(1))))
            continue
        if re.fullmatch(r"(-{3,}|\*{3,}|_{3,})", stripped):
            flush()
            blocks.append(Block("rule", ""))
            continue
        if stripped.startswith(">"):
            flush()
            blocks.append(Block("quote", strip_inline(stripped.lstrip("> ").strip())))
            continue
        bullet = _BULLET.match(line)
        if bullet:
            flush()
            blocks.append(Block("bullet", strip_inline(bullet.group(2)), len(bullet.group(1)) // 2))
            continue
        paragraph.append(stripped)

    if code is not None:
        blocks.append(Block("code", "\n".join(code)))
    flush()
    return blocks


# ---------------------------------------------------------------------------
# PDF generator
# ---------------------------------------------------------------------------


class ArticlePDF:
    """Generate branded PDFs from markdown articles.

    Parameters
    ----------
    branding:
        Visual branding configuration. Defaults to navy/gold.
    """

    def __init__(self, branding: PDFBranding | None = None) -> None:
        self._brand = branding or PDFBranding()

    def generate(
        self,
        markdown_path: str | Path,
        output_path: str | Path | None = None,
    ) -> Path:
        """Render *markdown_path* to PDF.

        Returns path to generated PDF (``<name>.pdf`` beside the source
        unless *output_path* is given).
        """
        source = Path(markdown_path)
        output = Path(output_path) if output_path else source.with_suffix(".pdf")
        blocks = parse_markdown(source.read_text(encoding="utf-8"))

        title = source.stem.replace("-", " ").replace("_", " ").title()
        if blocks and blocks[0].kind == "heading" and blocks[0].level == 1:
            title = blocks.pop(0).text

        b = self._brand
        c = Canvas(str(output), pagesize=A4)
        c.setTitle(title)
        width, height = A4
        margin = b.page_margin
        usable_w = width - 2 * margin

        def _new_page() -> float:
            """Start a new page with footer, return y position."""
            _draw_footer(c, width, b)
            c.showPage()
            return height - margin

        def _check_space(needed: float, current_y: float) -> float:
            """If not enough space, start new page."""
            if current_y - needed < margin + 40:
                return _new_page()
            return current_y

        # ===== HEADER =====

        # Navy header band
        c.setFillColor(_color(b.primary_color))
        c.rect(0, height - 120, width, 120, fill=True, stroke=False)

        # Gold accent line
        c.setFillColor(_color(b.accent_color))
        c.rect(0, height - 124, width, 4, fill=True, stroke=False)

        c.setFillColor(_color(b.white))
        c.setFont(b.title_font, b.title_size)
        title_lines = _wrap(c, title, b.title_font, b.title_size, usable_w)[:2]
        title_y = height - 50
        for line in title_lines:
            c.drawString(margin, title_y, line)
            title_y -= b.title_size + 2

        c.setFont(b.body_font, b.small_size)
        now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        c.drawString(margin, height - 105, f"{b.org_name}  •  {b.subtitle}  •  {now}")

        y = height - 150

        # ===== BODY =====
        for block in blocks:
            if block.kind == "heading":
                y = _check_space(50, y)
                if block.level <= 2:
                    y = self._draw_section_header(c, block.text, margin, y, b)
                else:
                    c.setFont(b.heading_font, b.subheading_size)
                    c.setFillColor(_color(b.primary_color))
                    c.drawString(margin, y, block.text[:90])
                    y -= b.subheading_size + 6

            elif block.kind == "paragraph":
                for line in _wrap(c, block.text, b.body_font, b.body_size, usable_w):
                    y = _check_space(b.body_size + 3, y)
                    self._draw_line(c, line, margin, y, b, b.body_font, b.body_size)
                    y -= b.body_size + 3
                y -= 6

            elif block.kind == "bullet":
                indent = 12 + 14 * block.level
                lines = _wrap(c, block.text, b.body_font, b.body_size, usable_w - indent)
                for i, line in enumerate(lines):
                    y = _check_space(b.body_size + 3, y)
                    if i == 0:
                        c.setFillColor(_color(b.accent_color))
                        c.setFont(b.body_font, b.body_size)
                        c.drawString(margin + indent - 10, y, "•")
                    self._draw_line(c, line, margin + indent, y, b, b.body_font, b.body_size)
                    y -= b.body_size + 3
                y -= 2

            elif block.kind == "quote":
                lines = _wrap(c, block.text, b.italic_font, b.body_size, usable_w - 16)
                box_h = len(lines) * (b.body_size + 3) + 8
                y = _check_space(box_h, y)
                # Gold left border
                c.setFillColor(_color(b.accent_color))
                c.rect(margin, y - box_h + b.body_size, 3, box_h, fill=True, stroke=False)
                for line in lines:
                    self._draw_line(c, line, margin + 12, y, b, b.italic_font, b.body_size,
                                    color=b.muted_color)
                    y -= b.body_size + 3
                y -= 10

            elif block.kind == "code":
                for line in block.text.split("\n") or [""]:
                    y = _check_space(b.small_size + 4, y)
                    c.setFillColor(_color(b.light_bg))
                    c.rect(margin, y - 3, usable_w, b.small_size + 4, fill=True, stroke=False)
                    self._draw_line(c, line[:100], margin + 6, y, b, b.mono_font, b.small_size)
                    y -= b.small_size + 4
                y -= 8

            elif block.kind == "rule":
                y = _check_space(16, y)
                c.setStrokeColor(_color(b.accent_color))
                c.setLineWidth(0.5)
                c.line(margin, y, width - margin, y)
                y -= 16

        # Final footer
        _draw_footer(c, width, b)
        c.save()

        logger.info("PDF article generated: %s", output)
        return output

    # -----------------------------------------------------------------------
    # Drawing helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _draw_section_header(
        c: Any,
        title: str,
        x: float,
        y: float,
        b: PDFBranding,
    ) -> float:
        """Draw a section heading with gold underline. Returns new y."""
        c.setFont(b.heading_font, b.heading_size)
        c.setFillColor(_color(b.primary_color))
        c.drawString(x, y, title[:80])
        y -= 4

        # Gold underline
        c.setStrokeColor(_color(b.accent_color))
        c.setLineWidth(1.5)
        c.line(x, y, x + 200, y)
        y -= 16
        return y

    @staticmethod
    def _draw_line(
        c: Any,
        text: str,
        x: float,
        y: float,
        b: PDFBranding,
        font: str,
        size: float,
        color: tuple[int, int, int] | None = None,
    ) -> None:
        c.setFont(font, size)
        c.setFillColor(_color(color or b.text_color))
        c.drawString(x, y, text)


def _wrap(c: Any, text: str, font: str, size: float, max_width: float) -> list[str]:
    """Word-wrap *text*; words wider than a line are split by character."""
    lines: list[str] = []
    line = ""
    for word in text.split():
        while c.stringWidth(word, font, size) > max_width and len(word) > 1:
            cut = len(word)
            while cut > 1 and c.stringWidth(word[:cut], font, size) > max_width:
                cut -= 1
            if line:
                lines.append(line)
                line = ""
            lines.append(word[:cut])
            word = word[cut:]
        test = f"{line} {word}".strip()
        if c.stringWidth(test, font, size) > max_width:
            lines.append(line)
            line = word
        else:
            line = test
    if line:
        lines.append(line)
    return lines


def _draw_footer(c: Any, page_width: float, b: PDFBranding) -> None:
    """Draw page footer with page number."""
    c.setFont(b.body_font, 7)
    c.setFillColor(Color(0.6, 0.6, 0.6))
    c.drawCentredString(page_width / 2, 25, f"{b.footer_text}  •  {c.getPageNumber()}")

    # Gold bottom line
    c.setStrokeColor(_color(b.accent_color))
    c.setLineWidth(1)
    c.line(b.page_margin, 35, page_width - b.page_margin, 35)


# ---------------------------------------------------------------------------
# Case articles
# ---------------------------------------------------------------------------


def generate_case_pdfs(
    case_dir: str | Path,
    branding: PDFBranding | None = None,
) -> list[dict[str, Any]]:
    """Convert ``articles/{short,medium,full}.md`` to PDF where present."""
    articles = Path(case_dir) / "articles"
    pdf = ArticlePDF(branding)
    results: list[dict[str, Any]] = []
    for name in ARTICLE_NAMES:
        source = articles / f"{name}.md"
        if not source.exists():
            logger.debug("%s not found, skipping", source)
            continue
        try:
            output = pdf.generate(source)
        except (OSError, ValueError) as e:
            logger.error("Failed to convert %s: %s", source.name, e)
            results.append({"file": f"{name}.pdf", "success": False, "error": str(e)})
            continue
        results.append({"file": output.name, "success": True, "path": str(output)})
    return results
