"""
Parse and validate completion responses.

Post-response validation:
1. Schema validation (Pydantic): shape or range violations are rejected
2. Evidence quotes cross-checked against the source report text
3. Treatment comparisons matched to the requested options, in order
4. Mandatory free-text fields (summary, disclaimer) must be non-blank
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from api.analysis_models import (
    ConsolidationResult,
    ExtractedReportData,
    TreatmentComparison,
)
from api.errors import MalformedResponseError

logger = logging.getLogger(__name__)


@dataclass
class ValidationIssue:
    severity: str  # "warning" or "error"
    message: str


def _raw(payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(payload)


def _validate(model, payload: Any, what: str):
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"{what} response is not a JSON object", raw_response=_raw(payload),
        )
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponseError(
            f"Failed to parse {what} response into schema: {e}",
            raw_response=_raw(payload),
        )


# ---------------------------------------------------------------------------
# Evidence verification
# ---------------------------------------------------------------------------

_WS_RE = re.compile(r"\s+")
# Typographic quotes/dashes the model tends to normalize
_CHAR_MAP = str.maketrans({
    "‘": "'", "’": "'", "“": '"', "”": '"',
    "–": "-", "—": "-",
})


def _normalize(text: str) -> str:
    return _WS_RE.sub(" ", text.translate(_CHAR_MAP)).strip().lower()


def verify_evidence(
    quotes: list[str], source_text: str, field_name: str,
) -> tuple[list[str], list[ValidationIssue]]:
    """Keep only quotes that occur in the source (case/whitespace-insensitive)."""
    source = _normalize(source_text)
    kept: list[str] = []
    issues: list[ValidationIssue] = []
    for quote in quotes:
        needle = _normalize(quote.strip("\"' "))
        if needle and needle in source:
            kept.append(quote)
        else:
            issues.append(ValidationIssue(
                severity="warning",
                message=(
                    f"Evidence for '{field_name}' is not a quote from the "
                    f"report. Removing: {quote[:80]!r}"
                ),
            ))
    return kept, issues


# ---------------------------------------------------------------------------
# Per-operation parsers
# ---------------------------------------------------------------------------

def parse_analysis_response(
    payload: Any, source_text: str,
) -> tuple[ExtractedReportData, list[ValidationIssue]]:
    """Parse the structured-extraction response. Returns (data, issues)."""
    data = _validate(ExtractedReportData, payload, "analysis")
    issues: list[ValidationIssue] = []

    sections = [
        ("birads", data.birads),
        ("breast_density", data.breast_density),
        ("exam", data.exam),
        ("comparison", data.comparison),
    ]
    sections += [(f"findings[{i}]", f) for i, f in enumerate(data.findings)]
    sections += [
        (f"recommendations[{i}]", r) for i, r in enumerate(data.recommendations)
    ]

    for name, section in sections:
        section.evidence, section_issues = verify_evidence(
            section.evidence, source_text, name,
        )
        issues.extend(section_issues)

    return data, issues


def parse_summary_response(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            "summary response is not a JSON object", raw_response=_raw(payload),
        )
    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise MalformedResponseError(
            "Summary response has no 'summary' text", raw_response=_raw(payload),
        )
    return summary.strip()


def parse_consolidation_response(payload: Any) -> ConsolidationResult:
    result = _validate(ConsolidationResult, payload, "consolidation")
    if not result.consolidated_summary.strip():
        raise MalformedResponseError(
            "Consolidation response has an empty summary", raw_response=_raw(payload),
        )
    return result


def parse_treatment_response(
    payload: Any, treatment_options: list[str],
) -> tuple[TreatmentComparison, list[ValidationIssue]]:
    """Parse a treatment comparison. Returns (comparison, issues).

    The number of comparisons must equal the number of options. When the
    returned names are a permutation of the options they are put back in
    option order; otherwise order is taken as positional.
    """
    result = _validate(TreatmentComparison, payload, "treatment comparison")
    issues: list[ValidationIssue] = []

    if not result.disclaimer.strip():
        raise MalformedResponseError(
            "Treatment comparison is missing its disclaimer", raw_response=_raw(payload),
        )

    if len(result.comparisons) != len(treatment_options):
        raise MalformedResponseError(
            f"Expected {len(treatment_options)} treatment comparisons, "
            f"got {len(result.comparisons)}",
            raw_response=_raw(payload),
        )

    by_name = {_normalize(c.treatment): c for c in result.comparisons}
    wanted = [_normalize(o) for o in treatment_options]
    if len(by_name) == len(wanted) and set(by_name) == set(wanted):
        result.comparisons = [by_name[name] for name in wanted]
    else:
        for i, (entry, option) in enumerate(zip(result.comparisons, treatment_options)):
            if _normalize(entry.treatment) != _normalize(option):
                issues.append(ValidationIssue(
                    severity="warning",
                    message=(
                        f"Comparison {i + 1} is labelled '{entry.treatment}' "
                        f"but the option was '{option}'. Matching by position."
                    ),
                ))

    return result, issues
