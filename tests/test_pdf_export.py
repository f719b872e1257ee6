"""Tests for PDF article generation."""

from __future__ import annotations

from pathlib import Path

import pytest

from dossier.export.pdf import (
    ArticlePDF,
    PDFBranding,
    generate_case_pdfs,
    parse_markdown,
    strip_inline,
)

SAMPLE_ARTICLE = """---
title: ignored frontmatter
---
# Water Board Contracts Split to Avoid Tender

The board approved a budget of **$12 million** in 2025 [S001].
Seven contracts went to one bidder [S002](https://example.org/awards).

## What the Records Show

- Awards fell just under the tender threshold [S003]
  - Two were signed on the same day [S003]
1. Invoices rose 40% [S004]

> "We followed the rules," a spokesperson said [S005].

```
S001  board-minutes-2025.pdf
```

---

## Sources

- [S001] Board minutes
"""


@pytest.fixture
def article(tmp_path: Path) -> Path:
    path = tmp_path / "full.md"
    path.write_text(SAMPLE_ARTICLE)
    return path


class TestPDFBranding:
    def test_defaults_are_navy_gold(self):
        b = PDFBranding()
        assert b.primary_color == (0, 51, 102)   # Navy
        assert b.accent_color == (212, 175, 55)    # Gold
        assert b.org_name == "Dossier"

    def test_custom_branding(self):
        b = PDFBranding(
            primary_color=(0, 0, 0),
            accent_color=(255, 0, 0),
            org_name="My Org",
        )
        assert b.primary_color == (0, 0, 0)
        assert b.org_name == "My Org"


class TestParseMarkdown:
    def test_strip_inline_keeps_citations(self):
        assert strip_inline("**Bold** fact [S001]") == "Bold fact [S001]"
        assert strip_inline("See [the awards](https://example.org/a) [S002]") == "See the awards [S002]"

    def test_block_kinds(self):
        blocks = parse_markdown(SAMPLE_ARTICLE)
        kinds = [b.kind for b in blocks]
        assert kinds == [
            "heading", "paragraph", "heading", "bullet", "bullet", "bullet",
            "quote", "code", "rule", "heading", "bullet",
        ]
        assert blocks[0].level == 1
        assert blocks[1].text.startswith("The board approved a budget of $12 million in 2025 [S001].")
        assert "one bidder [S002]" in blocks[1].text
        assert blocks[4].level == 1
        assert blocks[7].text == "S001  board-minutes-2025.pdf"

    def test_unterminated_code_block(self):
        blocks = parse_markdown("```\nline one\nline two")
        assert [(b.kind, b.text) for b in blocks] == [("code", "line one\nline two")]


class TestArticlePDF:
    def test_generate_beside_source(self, article: Path):
        result = ArticlePDF().generate(article)
        assert result == article.with_suffix(".pdf")
        assert result.stat().st_size > 0

    def test_generate_custom_branding(self, article: Path, tmp_path: Path):
        output = tmp_path / "branded.pdf"
        branding = PDFBranding(
            primary_color=(50, 50, 50),
            accent_color=(0, 128, 255),
            org_name="Custom Org",
            footer_text="DRAFT",
        )
        result = ArticlePDF(branding=branding).generate(article, output_path=output)
        assert result == output
        assert output.exists()

    def test_long_article_paginates(self, tmp_path: Path):
        path = tmp_path / "medium.md"
        paragraph = "Contract awarded without competitive tender [S001]. " * 30
        path.write_text("\n\n".join(paragraph for _ in range(20)) + "\n" + "x" * 400 + "\n")
        data = ArticlePDF().generate(path).read_bytes()
        assert data.count(b"/Type /Page") - data.count(b"/Type /Pages") > 1

    def test_pdf_is_valid_header(self, article: Path):
        output = ArticlePDF().generate(article)
        with open(output, "rb") as f:
            header = f.read(5)
        assert header == b"%PDF-"

    def test_import_from_package(self):
        from dossier.export import ArticlePDF as AP, PDFBranding as PB
        assert AP is ArticlePDF
        assert PB is PDFBranding


class TestGenerateCasePdfs:
    def test_converts_present_articles(self, case_dir: Path):
        (case_dir / "articles" / "short.md").write_text("# Short\n\nBrief [S001].\n")
        (case_dir / "articles" / "full.md").write_text(SAMPLE_ARTICLE)

        results = generate_case_pdfs(case_dir)
        assert [r["file"] for r in results] == ["short.pdf", "full.pdf"]
        assert all(r["success"] for r in results)
        assert (case_dir / "articles" / "full.pdf").exists()

    def test_no_articles(self, case_dir: Path):
        assert generate_case_pdfs(case_dir) == []
