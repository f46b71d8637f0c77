from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ACR BI-RADS 5th Edition assessment categories
BIRADS_CATEGORIES: dict[int, str] = {
    0: "Incomplete: additional imaging needed",
    1: "Negative",
    2: "Benign",
    3: "Probably benign",
    4: "Suspicious",
    5: "Highly suggestive of malignancy",
    6: "Known biopsy-proven malignancy",
}


def birads_label(value: Optional[int]) -> str:
    if value is None:
        return "Not stated"
    return BIRADS_CATEGORIES.get(value, "Unknown")


class _EvidenceSection(BaseModel):
    evidence: list[str] = Field(default_factory=list)

    @field_validator("evidence", mode="before")
    @classmethod
    def _null_evidence(cls, v):
        return [] if v is None else v


class BiradsAssessment(_EvidenceSection):
    value: Optional[int] = Field(default=None, ge=0, le=6)
    confidence: Optional[Confidence] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v):
        if isinstance(v, str):
            return v.strip().lower() or None
        return v


class BreastDensity(_EvidenceSection):
    value: Optional[str] = None  # "A".."D" or free-text description


class ExamInfo(_EvidenceSection):
    type: Optional[str] = None
    laterality: Optional[str] = None  # bilateral | left | right


class ComparisonInfo(_EvidenceSection):
    prior_exam_date: Optional[str] = None


class Finding(_EvidenceSection):
    laterality: Optional[str] = None
    location: Optional[str] = None
    description: str = ""
    assessment: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def _null_description(cls, v):
        return "" if v is None else v


class Recommendation(_EvidenceSection):
    action: str = ""
    timeframe: Optional[str] = None

    @field_validator("action", mode="before")
    @classmethod
    def _null_action(cls, v):
        return "" if v is None else v


class ExtractedReportData(BaseModel):
    """Structured data pulled from one report, before the patient summary is added."""

    birads: BiradsAssessment = Field(default_factory=BiradsAssessment)
    breast_density: BreastDensity = Field(default_factory=BreastDensity)
    exam: ExamInfo = Field(default_factory=ExamInfo)
    comparison: ComparisonInfo = Field(default_factory=ComparisonInfo)
    findings: list[Finding] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)

    # Models answer "nothing here" with null as often as with {} or []
    @field_validator("birads", "breast_density", "exam", "comparison", mode="before")
    @classmethod
    def _null_section(cls, v):
        return {} if v is None else v

    @field_validator("findings", "recommendations", "red_flags", mode="before")
    @classmethod
    def _null_list(cls, v):
        return [] if v is None else v


class StructuredAnalysis(ExtractedReportData):
    summary: str = Field(min_length=1)

    def extracted_data(self) -> ExtractedReportData:
        """The same record minus ``summary``, in the shape generate_summary accepts."""
        return ExtractedReportData(**self.model_dump(exclude={"summary"}))


class PriorReport(BaseModel):
    """One completed report as sent for consolidation."""

    created_date: datetime
    birads: Optional[BiradsAssessment] = None
    findings: list[Finding] = Field(default_factory=list)
    summary: Optional[str] = None


class ConsolidationResult(BaseModel):
    consolidated_summary: str = Field(min_length=1)
    overall_assessment: str = ""
    progression_notes: str = ""
    key_patterns: list[str] = Field(default_factory=list)


class PatientProfile(BaseModel):
    cancer_stage: Optional[str] = None
    cancer_type: Optional[str] = None
    er_status: Optional[str] = None
    pr_status: Optional[str] = None
    her2_status: Optional[str] = None
    tumor_size_cm: Optional[float] = None
    lymph_node_positive: Optional[bool] = None
    menopausal_status: Optional[str] = None
    age: Optional[int] = None


class TreatmentComparisonEntry(BaseModel):
    treatment: str
    score: int = Field(ge=1, le=10)
    efficacy_rate: str = ""
    benefits: list[str] = Field(default_factory=list)
    side_effects: list[str] = Field(default_factory=list)
    duration: str = ""
    considerations: list[str] = Field(default_factory=list)

    @field_validator("efficacy_rate", "duration", mode="before")
    @classmethod
    def _number_to_text(cls, v):
        # Models sometimes answer "85" as a bare number
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class TreatmentComparison(BaseModel):
    comparisons: list[TreatmentComparisonEntry]
    overall_recommendation: str = ""
    disclaimer: str = Field(min_length=1)
