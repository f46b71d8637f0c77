"""
Report-processing workflow: the caller side of extraction and analysis.

Owns the contracts the core itself does not enforce: a report is processed
as extract -> analyze with a terminal status, consolidation needs at least
two completed reports in date order, and treatment comparison takes one to
five options. Persistence and transport stay with the application.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from api.analysis_models import (
    BiradsAssessment,
    ConsolidationResult,
    Finding,
    PatientProfile,
    PriorReport,
    StructuredAnalysis,
    TreatmentComparison,
)
from api.errors import CompletionError, ReportProcessingError
from api.models import DocumentExtraction
from extraction.pipeline import ExtractionPipeline
from llm.orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)

MIN_REPORTS_FOR_CONSOLIDATION = 2
MAX_TREATMENT_OPTIONS = 5
_DAYS_PER_YEAR = 365.25


class ReportStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReportRecord(BaseModel):
    """A stored report as handed over by the data-access layer."""

    created_date: datetime
    status: ReportStatus = ReportStatus.PENDING
    birads: Optional[BiradsAssessment] = None
    findings: list[Finding] = Field(default_factory=list)
    summary: Optional[str] = None


class PatientRecord(BaseModel):
    date_of_birth: Optional[date] = None
    cancer_stage: Optional[str] = None
    cancer_type: Optional[str] = None
    er_status: Optional[str] = None
    pr_status: Optional[str] = None
    her2_status: Optional[str] = None
    tumor_size_cm: Optional[float] = None
    lymph_node_positive: Optional[bool] = None
    menopausal_status: Optional[str] = None


class ProcessedReport(BaseModel):
    status: ReportStatus
    extracted_text: Optional[str] = None
    analysis: Optional[StructuredAnalysis] = None
    extraction: Optional[DocumentExtraction] = None
    error: Optional[str] = None


class DateRange(BaseModel):
    first: datetime
    last: datetime


class ConsolidationSummary(ConsolidationResult):
    report_count: int
    date_range: DateRange


def calculate_age(date_of_birth: date, today: Optional[date] = None) -> int:
    """Whole years elapsed, counting a year as 365.25 days."""
    today = today or date.today()
    return math.floor((today - date_of_birth).days / _DAYS_PER_YEAR)


def build_patient_profile(
    patient: PatientRecord, today: Optional[date] = None,
) -> PatientProfile:
    age = (
        calculate_age(patient.date_of_birth, today)
        if patient.date_of_birth
        else None
    )
    return PatientProfile(
        **patient.model_dump(exclude={"date_of_birth"}),
        age=age,
    )


class ReportProcessor:
    def __init__(
        self,
        orchestrator: Optional[AnalysisOrchestrator] = None,
        pipeline: Optional[ExtractionPipeline] = None,
    ):
        self.orchestrator = orchestrator or AnalysisOrchestrator()
        self.pipeline = pipeline or ExtractionPipeline()

    async def process_report(self, file_path: str) -> ProcessedReport:
        """Extract and analyze one uploaded PDF.

        Never raises for extraction or completion failures; they come back
        as ``status=failed`` with a short error message.
        """
        extraction = await self.pipeline.extract_from_pdf(file_path)
        if not (extraction.text or "").strip():
            logger.warning("Report extraction failed for %s", extraction.filename)
            return ProcessedReport(
                status=ReportStatus.FAILED,
                extraction=extraction,
                error="Failed to extract text from PDF",
            )

        try:
            analysis = await self.orchestrator.analyze_report(extraction.text)
        except CompletionError as e:
            logger.error("Report analysis failed for %s: %s", extraction.filename, e)
            return ProcessedReport(
                status=ReportStatus.FAILED,
                extracted_text=extraction.text,
                extraction=extraction,
                error=str(e),
            )

        return ProcessedReport(
            status=ReportStatus.COMPLETED,
            extracted_text=extraction.text,
            analysis=analysis,
            extraction=extraction,
        )

    async def consolidate_patient_reports(
        self, reports: list[ReportRecord],
    ) -> ConsolidationSummary:
        completed = sorted(
            (r for r in reports if r.status == ReportStatus.COMPLETED),
            key=lambda r: r.created_date,
        )
        if len(completed) < MIN_REPORTS_FOR_CONSOLIDATION:
            raise ReportProcessingError(
                f"At least {MIN_REPORTS_FOR_CONSOLIDATION} completed reports are required"
            )

        prior = [
            PriorReport(
                created_date=r.created_date,
                birads=r.birads,
                findings=r.findings,
                summary=r.summary,
            )
            for r in completed
        ]
        result = await self.orchestrator.consolidate_reports(prior)
        return ConsolidationSummary(
            **result.model_dump(),
            report_count=len(completed),
            date_range=DateRange(
                first=completed[0].created_date,
                last=completed[-1].created_date,
            ),
        )

    async def compare_treatment_options(
        self,
        patient: PatientRecord,
        treatment_options: list[str],
        today: Optional[date] = None,
    ) -> TreatmentComparison:
        options = [o.strip() for o in treatment_options if o and o.strip()]
        if not 1 <= len(options) <= MAX_TREATMENT_OPTIONS or len(options) != len(treatment_options):
            raise ReportProcessingError(
                f"Between 1 and {MAX_TREATMENT_OPTIONS} non-empty treatment options are required"
            )
        profile = build_patient_profile(patient, today)
        return await self.orchestrator.compare_treatments(profile, options)
