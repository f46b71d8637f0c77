from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ExtractionMethod(str, Enum):
    NATIVE = "native"
    OCR = "ocr"
    NONE = "none"


class PageExtractionResult(BaseModel):
    page_number: int
    text: str
    extraction_method: ExtractionMethod
    char_count: int


class DocumentExtraction(BaseModel):
    # None only when the source file could not be read at all
    text: Optional[str] = None
    method: ExtractionMethod = ExtractionMethod.NONE
    total_pages: int = 0
    pages: list[PageExtractionResult] = Field(default_factory=list)
    pages_ocr: list[int] = Field(default_factory=list)
    pages_skipped: list[int] = Field(default_factory=list)
    filename: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.text is None

    @property
    def total_chars(self) -> int:
        return len(self.text or "")
