"""
Prompt construction for breast radiology report analysis.

Each operation gets a system prompt fixing the persona and constraints, and
a user prompt embedding the input data plus the exact JSON shape expected
back. Extraction and patient communication use different personas: the
extractor optimizes for accuracy, the communicator for tone.
"""

from __future__ import annotations

import json
from typing import Any

from api.analysis_models import PatientProfile, PriorReport, birads_label

# ---------------------------------------------------------------------------
# Personas
# ---------------------------------------------------------------------------

_EXTRACTOR_ROLE = (
    "You are a medical AI assistant specialized in analyzing breast radiology "
    "reports. Extract structured data accurately and provide evidence as exact "
    "quotes from the report. Return only valid JSON."
)

_COMMUNICATOR_ROLE = (
    "You are a medical communicator who explains radiology results to patients "
    "in a clear, compassionate way. Return only valid JSON."
)

_CONSOLIDATION_ROLE = (
    "You are a medical AI assistant specialized in analyzing patterns across "
    "multiple breast radiology reports. Return only valid JSON."
)

_TREATMENT_ROLE = (
    "You are a medical AI assistant specialized in breast cancer treatment "
    "planning. You support, never replace, the treating clinician. "
    "Return only valid JSON."
)

# ---------------------------------------------------------------------------
# Target schemas
# ---------------------------------------------------------------------------

_ANALYSIS_SCHEMA = """\
{
  "birads": {
    "value": <integer 0-6, or null if not stated>,
    "confidence": "<low|medium|high>",
    "evidence": ["<exact quote>"]
  },
  "breast_density": {
    "value": "<A|B|C|D or description>",
    "evidence": ["<exact quote>"]
  },
  "exam": {
    "type": "<type of exam>",
    "laterality": "<bilateral|left|right>",
    "evidence": ["<exact quote>"]
  },
  "comparison": {
    "prior_exam_date": "<date if mentioned, else null>",
    "evidence": ["<exact quote>"]
  },
  "findings": [
    {
      "laterality": "<left|right|bilateral>",
      "location": "<anatomical location>",
      "description": "<finding description>",
      "assessment": "<assessment>",
      "evidence": ["<exact quote>"]
    }
  ],
  "recommendations": [
    {
      "action": "<recommended action>",
      "timeframe": "<timeframe>",
      "evidence": ["<exact quote>"]
    }
  ],
  "red_flags": ["<any concerning findings>"]
}"""

_ANALYSIS_RULES = """\
Rules:
- Evidence must be exact quotes copied character-for-character from the report.
- BI-RADS must be an integer from 0 to 6. Do not guess a category that is not stated.
- Use empty lists when a section has no content; never invent findings.
- Flag anything suspicious as a red flag."""

_SUMMARY_SCHEMA = '{ "summary": "<patient friendly summary>" }'

_CONSOLIDATION_SCHEMA = """\
{
  "consolidated_summary": "<comprehensive summary>",
  "overall_assessment": "<overall assessment>",
  "progression_notes": "<progression notes>",
  "key_patterns": ["<pattern 1>", "<pattern 2>"]
}"""

_TREATMENT_SCHEMA = """\
{
  "comparisons": [
    {
      "treatment": "<treatment name, exactly as given>",
      "score": <integer 1-10>,
      "efficacy_rate": "<percentage or description>",
      "benefits": ["<benefit 1>", "<benefit 2>"],
      "side_effects": ["<side effect 1>", "<side effect 2>"],
      "duration": "<typical duration>",
      "considerations": ["<consideration 1>", "<consideration 2>"]
    }
  ],
  "overall_recommendation": "<recommendation>",
  "disclaimer": "<medical disclaimer>"
}"""


def _to_json(data: Any) -> str:
    """Serialize prompt payloads; pydantic models are dumped in JSON mode."""
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [d.model_dump(mode="json") if hasattr(d, "model_dump") else d for d in data]
    return json.dumps(data, ensure_ascii=False, default=str)


class PromptEngine:
    """Constructs system and user prompts for each analysis operation."""

    def build_analysis_prompts(self, report_text: str) -> tuple[str, str]:
        user_prompt = (
            "Analyze this breast radiology report and extract structured data.\n\n"
            f"Report Text: {report_text}\n\n"
            f"Return JSON with the following structure:\n{_ANALYSIS_SCHEMA}\n\n"
            f"{_ANALYSIS_RULES}"
        )
        return _EXTRACTOR_ROLE, user_prompt

    def build_summary_prompts(self, extracted_data: Any) -> tuple[str, str]:
        payload = extracted_data.model_dump(mode="json") if hasattr(
            extracted_data, "model_dump"
        ) else dict(extracted_data)
        payload.pop("summary", None)

        birads_value = (payload.get("birads") or {}).get("value")
        category_line = ""
        if isinstance(birads_value, int):
            category_line = (
                f"BI-RADS {birads_value} means: {birads_label(birads_value)}.\n\n"
            )

        user_prompt = (
            "Create a patient-friendly 2-4 sentence summary of this radiology "
            "report explaining key findings, BI-RADS meaning, and what the "
            "patient should know. Be honest but reassuring. Do not add findings "
            "that are not in the data.\n\n"
            f"{category_line}"
            f"Data: {_to_json(payload)}\n\n"
            f"Return JSON with: {_SUMMARY_SCHEMA}"
        )
        return _COMMUNICATOR_ROLE, user_prompt

    def build_consolidation_prompts(
        self, reports: list[PriorReport],
    ) -> tuple[str, str]:
        reports_data = [
            {
                "date": r.created_date.isoformat(),
                "birads": r.birads.model_dump(mode="json") if r.birads else None,
                "findings": [f.model_dump(mode="json") for f in r.findings],
                "summary": r.summary,
            }
            for r in reports
        ]
        user_prompt = (
            "Analyze these multiple breast radiology reports for the same "
            "patient, listed oldest first. Create a 3-5 paragraph summary "
            "covering: overall assessment, progression over time, consistent "
            "findings, concerning patterns, key recommendations.\n\n"
            f"Reports: {_to_json(reports_data)}\n\n"
            f"Return JSON with: {_CONSOLIDATION_SCHEMA}"
        )
        return _CONSOLIDATION_ROLE, user_prompt

    def build_treatment_prompts(
        self,
        patient_profile: PatientProfile,
        treatment_options: list[str],
    ) -> tuple[str, str]:
        user_prompt = (
            "Compare these treatment options for this breast cancer patient. "
            "For each option provide: recommendation score (1-10), efficacy "
            "rate, benefits, side effects, duration, considerations. Include "
            "overall recommendation and disclaimer.\n\n"
            f"Patient: {_to_json(patient_profile)}\n"
            f"Options: {_to_json(treatment_options)}\n\n"
            f"Return exactly {len(treatment_options)} entries in \"comparisons\", "
            "one per option, in the same order as the options list.\n\n"
            f"Return JSON with:\n{_TREATMENT_SCHEMA}"
        )
        return _TREATMENT_ROLE, user_prompt
