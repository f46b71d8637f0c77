from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

from api.models import DocumentExtraction, ExtractionMethod
from api.settings_store import OCRSettings
from .ocr_extractor import EngineFactory, OCRExtractor, TesseractEngine
from .text_extractor import TextExtractor, has_sufficient_text, join_pages

logger = logging.getLogger(__name__)


class ExtractionPipeline:
    """Native text first, OCR only when the text layer is insufficient."""

    def __init__(
        self,
        ocr_settings: Optional[OCRSettings] = None,
        engine_factory: EngineFactory = TesseractEngine,
    ):
        self.ocr_settings = ocr_settings
        self.engine_factory = engine_factory

    async def extract_from_pdf(self, file_path: str) -> DocumentExtraction:
        result = DocumentExtraction(filename=os.path.basename(file_path))

        # Step 1: Native text layer. An unreadable file is the only hard failure.
        try:
            native_pages = await asyncio.to_thread(
                TextExtractor(file_path).extract_pages
            )
        except Exception:
            logger.exception("PDF extraction failed for %s", result.filename)
            result.warnings.append("The PDF could not be read.")
            return result

        native_text = join_pages(native_pages)
        result.total_pages = len(native_pages)
        result.pages = native_pages
        logger.info(
            "Native extraction: %d pages, %d chars", len(native_pages), len(native_text),
        )

        # Step 2: Sufficiency check
        if has_sufficient_text(native_text):
            logger.info("PDF text extracted using standard extraction")
            result.text = native_text
            result.method = ExtractionMethod.NATIVE
            return result

        # Step 3: OCR fallback
        logger.info("Insufficient text from standard extraction, attempting OCR")
        ocr_text = ""
        ocr_pages = []
        try:
            ocr = await OCRExtractor(
                file_path,
                settings=self.ocr_settings,
                engine_factory=self.engine_factory,
            ).extract()
            ocr_text = ocr.text
            ocr_pages = ocr.pages
            result.pages_ocr = ocr.pages_processed
            result.pages_skipped = ocr.pages_skipped
            result.warnings.extend(ocr.warnings)
        except Exception as e:
            logger.exception("OCR fallback failed for %s", result.filename)
            result.warnings.append(f"OCR failed: {e}")

        # Step 4: Re-check; degrade to whatever text exists
        if has_sufficient_text(ocr_text):
            logger.info("PDF text extracted using OCR")
            result.text = ocr_text
            result.method = ExtractionMethod.OCR
            result.pages = ocr_pages
            return result

        logger.warning("Unable to extract sufficient text from PDF")
        result.warnings.append("Extracted text is below the sufficiency threshold.")
        if native_text.strip():
            result.text = native_text
            result.method = ExtractionMethod.NATIVE
        elif ocr_text.strip():
            result.text = ocr_text
            result.method = ExtractionMethod.OCR
            result.pages = ocr_pages
        else:
            result.text = ""
        return result


async def extract(file_path: str) -> Optional[str]:
    """Best-effort plain text of a PDF, or None when the file cannot be read."""
    extraction = await ExtractionPipeline().extract_from_pdf(file_path)
    return extraction.text
