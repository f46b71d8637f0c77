"""Shared fixtures: sample reports, PDF builders and fake collaborators."""

import os
import re
from pathlib import Path

import fitz
import pytest

SAMPLE_REPORT = """\
BILATERAL SCREENING MAMMOGRAM
Comparison: Prior exam dated 03/14/2023.
Breast composition: heterogeneously dense (C).
Findings: There is a 6 mm oval circumscribed mass
in the right breast at 10 o'clock, middle depth.
No suspicious calcifications in either breast.
Impression: Probably benign finding in the right breast.
BI-RADS Category 3: Probably Benign.
Recommendation: Short-interval follow-up diagnostic
mammogram of the right breast in 6 months."""


def make_pdf(path: Path, pages: list[str]) -> Path:
    """Write a PDF with one page per entry; empty strings give blank (scan-like) pages."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=10)
    doc.save(str(path))
    doc.close()
    return path


class FakeEngine:
    """Stand-in for TesseractEngine recording its lifecycle."""

    def __init__(self, language="eng", page_timeout=60.0, fail_pages=(), text=None):
        self.language = language
        self.page_timeout = page_timeout
        self.fail_pages = set(fail_pages)
        self.text = text
        self.started = False
        self.closed = False
        self.recognized: list[int] = []

    async def start(self):
        self.started = True

    async def recognize(self, image_path):
        assert os.path.exists(image_path)
        page_number = int(re.search(r"page-(\d+)\.png$", image_path).group(1))
        if page_number in self.fail_pages:
            raise RuntimeError(f"tesseract crashed on page {page_number}")
        self.recognized.append(page_number)
        if self.text is not None:
            return self.text
        return (
            f"Scanned page {page_number}: bilateral mammogram shows scattered "
            "fibroglandular tissue without suspicious masses or calcifications."
        )

    async def close(self):
        self.closed = True


class FakeEngineFactory:
    def __init__(self, **engine_kwargs):
        self.engine_kwargs = engine_kwargs
        self.engines: list[FakeEngine] = []

    def __call__(self, language="eng", page_timeout=60.0):
        engine = FakeEngine(language, page_timeout, **self.engine_kwargs)
        self.engines.append(engine)
        return engine


class FakeCompletionClient:
    """Returns queued JSON payloads (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def call_json(self, system_prompt, user_prompt, max_tokens=4096, temperature=0.3):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def analysis_payload(**overrides) -> dict:
    payload = {
        "birads": {
            "value": 3,
            "confidence": "high",
            "evidence": ["BI-RADS Category 3: Probably Benign."],
        },
        "breast_density": {
            "value": "C",
            "evidence": ["heterogeneously dense (C)"],
        },
        "exam": {
            "type": "Screening mammogram",
            "laterality": "bilateral",
            "evidence": ["BILATERAL SCREENING MAMMOGRAM"],
        },
        "comparison": {
            "prior_exam_date": "03/14/2023",
            "evidence": ["Prior exam dated 03/14/2023."],
        },
        "findings": [
            {
                "laterality": "right",
                "location": "10 o'clock, middle depth",
                "description": "6 mm oval circumscribed mass",
                "assessment": "Probably benign",
                "evidence": ["There is a 6 mm oval circumscribed mass"],
            }
        ],
        "recommendations": [
            {
                "action": "Diagnostic mammogram of the right breast",
                "timeframe": "6 months",
                "evidence": ["mammogram of the right breast in 6 months"],
            }
        ],
        "red_flags": [],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def sample_report_text():
    return SAMPLE_REPORT


@pytest.fixture
def text_pdf(tmp_path):
    return make_pdf(tmp_path / "report.pdf", [SAMPLE_REPORT])


@pytest.fixture
def no_api_keys(monkeypatch):
    for var in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "LLM_PROVIDER"):
        monkeypatch.delenv(var, raising=False)
