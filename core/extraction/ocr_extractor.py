"""
OCR fallback for scanned PDFs.

Pages are rasterized with PyMuPDF into a per-call temporary directory and
recognized with Tesseract. One engine handle serves every page of a call
and is released, together with the directory, on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Callable, Optional

import fitz
import pytesseract

from api.models import ExtractionMethod, PageExtractionResult
from api.settings_store import OCRSettings, get_ocr_settings

logger = logging.getLogger(__name__)


def page_marker(page_number: int) -> str:
    return f"--- Page {page_number} ---"


class TesseractEngine:
    """A Tesseract handle scoped to one extraction call.

    Use as ``async with TesseractEngine(...) as engine``.
    """

    def __init__(self, language: str = "eng", page_timeout: float = 60.0):
        self.language = language
        self.page_timeout = page_timeout
        self._started = False

    async def start(self) -> None:
        # Fails fast with TesseractNotFoundError when the binary is missing
        version = await asyncio.to_thread(pytesseract.get_tesseract_version)
        logger.info("Tesseract %s ready (lang=%s)", version, self.language)
        self._started = True

    async def recognize(self, image_path: str) -> str:
        if not self._started:
            raise RuntimeError("OCR engine used before start() or after close()")
        # A page exceeding the timeout raises RuntimeError from pytesseract
        return await asyncio.to_thread(
            pytesseract.image_to_string,
            image_path,
            lang=self.language,
            timeout=self.page_timeout,
        )

    async def close(self) -> None:
        self._started = False

    async def __aenter__(self) -> TesseractEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


EngineFactory = Callable[..., TesseractEngine]


@dataclass
class OCRExtractionResult:
    text: str = ""
    total_pages: int = 0
    pages_processed: list[int] = field(default_factory=list)
    pages_failed: list[int] = field(default_factory=list)
    pages_skipped: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    pages: list[PageExtractionResult] = field(default_factory=list)


class OCRExtractor:
    def __init__(
        self,
        file_path: str,
        settings: Optional[OCRSettings] = None,
        engine_factory: EngineFactory = TesseractEngine,
    ):
        self.file_path = file_path
        self.settings = settings or get_ocr_settings()
        self.engine_factory = engine_factory

    async def extract(self) -> OCRExtractionResult:
        """OCR the first ``max_pages`` pages, in page order.

        A failing page is logged and skipped. Errors opening the document,
        creating the temp directory or starting the engine propagate after
        cleanup.
        """
        result = OCRExtractionResult()
        temp_dir: Optional[str] = None
        doc = None
        engine: Optional[TesseractEngine] = None

        try:
            doc = await asyncio.to_thread(fitz.open, self.file_path, filetype="pdf")
            result.total_pages = doc.page_count

            last_page = min(result.total_pages, self.settings.max_pages)
            result.pages_skipped = list(range(last_page + 1, result.total_pages + 1))
            if result.pages_skipped:
                logger.info(
                    "OCR limited to %d of %d pages", last_page, result.total_pages,
                )

            temp_dir = tempfile.mkdtemp(prefix="pdf-ocr-")
            engine = self.engine_factory(
                language=self.settings.language,
                page_timeout=self.settings.page_timeout_seconds,
            )
            await engine.start()

            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.settings.total_timeout_seconds
            parts: list[str] = []

            for page_number in range(1, last_page + 1):
                if loop.time() > deadline:
                    remaining = list(range(page_number, last_page + 1))
                    result.pages_skipped = remaining + result.pages_skipped
                    result.warnings.append(
                        f"OCR deadline reached; pages {page_number}-{last_page} "
                        "were not processed."
                    )
                    logger.warning(
                        "OCR deadline reached before page %d/%d", page_number, last_page,
                    )
                    break

                image_path: Optional[str] = None
                try:
                    image_path = await asyncio.to_thread(
                        self._render_page, doc, page_number, temp_dir,
                    )
                    text = await engine.recognize(image_path)
                    parts.append(f"\n{page_marker(page_number)}\n{text}\n")
                    result.pages_processed.append(page_number)
                    result.pages.append(PageExtractionResult(
                        page_number=page_number,
                        text=text,
                        extraction_method=ExtractionMethod.OCR,
                        char_count=len(text),
                    ))
                    logger.info("OCR completed for page %d/%d", page_number, last_page)
                except Exception:
                    logger.exception("OCR failed for page %d", page_number)
                    result.pages_failed.append(page_number)
                    result.warnings.append(f"Page {page_number}: OCR failed.")
                finally:
                    if image_path:
                        self._remove_file(image_path)

            result.text = "".join(parts).strip()
            return result

        finally:
            if engine is not None:
                await engine.close()
            if doc is not None:
                doc.close()
            if temp_dir is not None:
                self._remove_dir(temp_dir)

    def _render_page(self, doc, page_number: int, temp_dir: str) -> str:
        """Rasterize one page to PNG and return the image path."""
        page = doc[page_number - 1]  # 0-indexed
        pix = page.get_pixmap(dpi=self.settings.dpi)
        image_path = os.path.join(temp_dir, f"page-{page_number}.png")
        pix.save(image_path)
        return image_path

    @staticmethod
    def _remove_file(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("Failed to remove OCR image %s", path)

    @staticmethod
    def _remove_dir(path: str) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("Failed to remove OCR temp directory %s", path)
