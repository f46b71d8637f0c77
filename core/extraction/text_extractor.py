"""Native text-layer extraction from PDFs using PyMuPDF."""

from __future__ import annotations

import logging
from typing import Optional

import fitz

from api.models import ExtractionMethod, PageExtractionResult

logger = logging.getLogger(__name__)

# Sufficiency policy: below either threshold the PDF is treated as a scan.
MIN_TEXT_CHARS = 100
MIN_MEANINGFUL_WORDS = 10
MIN_WORD_LENGTH = 3


def has_sufficient_text(text: Optional[str]) -> bool:
    """Return True when extracted text looks like a real text-bearing document.

    Rejects header/footer-only extractions (< 100 chars after trimming, or
    fewer than 10 words longer than two characters).
    """
    if not text:
        return False

    clean = text.strip()
    if len(clean) < MIN_TEXT_CHARS:
        return False

    words = [w for w in clean.split() if len(w) >= MIN_WORD_LENGTH]
    return len(words) >= MIN_MEANINGFUL_WORDS


def join_pages(pages: list[PageExtractionResult]) -> str:
    return "\n\n".join(p.text for p in pages)


class TextExtractor:
    """Read the embedded text layer of a PDF.

    Raises on a missing, corrupt or otherwise unreadable file; the caller
    decides what that means.
    """

    def __init__(self, file_path: str):
        self.file_path = file_path

    def extract_pages(self) -> list[PageExtractionResult]:
        with fitz.open(self.file_path, filetype="pdf") as doc:
            if doc.needs_pass:
                raise ValueError("PDF is encrypted")
            pages: list[PageExtractionResult] = []
            for index, page in enumerate(doc):
                text = page.get_text("text")
                pages.append(PageExtractionResult(
                    page_number=index + 1,
                    text=text,
                    extraction_method=ExtractionMethod.NATIVE,
                    char_count=len(text),
                ))
        return pages

    def extract_text(self) -> tuple[str, int]:
        """Return (full_text, page_count)."""
        pages = self.extract_pages()
        full_text = join_pages(pages)
        logger.info(
            "Native extraction: %d pages, %d chars", len(pages), len(full_text),
        )
        return full_text, len(pages)
