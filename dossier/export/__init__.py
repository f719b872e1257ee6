"""Article export: markdown articles to branded PDFs."""

from dossier.export.pdf import ArticlePDF, PDFBranding, generate_case_pdfs

__all__ = ["ArticlePDF", "PDFBranding", "generate_case_pdfs"]
