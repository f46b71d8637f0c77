"""
Analysis orchestration over the completion service.

Every operation follows the same pattern: build (system, user) prompts,
request a single JSON object at low temperature, then parse and validate
the result into a typed model. Nothing is retried here; callers decide.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from api.analysis_models import (
    ConsolidationResult,
    ExtractedReportData,
    PatientProfile,
    PriorReport,
    StructuredAnalysis,
    TreatmentComparison,
)
from .prompt_engine import PromptEngine
from .response_parser import (
    ValidationIssue,
    parse_analysis_response,
    parse_consolidation_response,
    parse_summary_response,
    parse_treatment_response,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 4096


class CompletionClient(Protocol):
    async def call_json(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = ...,
        temperature: float = ...,
    ) -> dict[str, Any]: ...


def _log_issues(operation: str, issues: list[ValidationIssue]) -> None:
    for issue in issues:
        logger.warning("%s: %s", operation, issue.message)


class AnalysisOrchestrator:
    """Turns report text or prior results into structured clinical data."""

    def __init__(
        self,
        client: Optional[CompletionClient] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        prompt_engine: Optional[PromptEngine] = None,
    ):
        self._client = client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.prompts = prompt_engine or PromptEngine()

    @classmethod
    def from_environment(cls, http_client: Any = None) -> AnalysisOrchestrator:
        """Build an orchestrator from env settings; raises ConfigurationError."""
        from .client import build_client

        client, settings = build_client(http_client=http_client)
        return cls(
            client=client,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )

    @property
    def client(self) -> CompletionClient:
        # Resolved lazily so the credential is read at call time
        if self._client is None:
            from .client import build_client

            self._client, settings = build_client()
            # Environment settings apply unless given to the constructor
            if self.temperature is None:
                self.temperature = settings.temperature
            if self.max_tokens is None:
                self.max_tokens = settings.max_tokens
        return self._client

    async def _complete(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        client = self.client
        return await client.call_json(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=self.max_tokens or DEFAULT_MAX_TOKENS,
            temperature=(
                DEFAULT_TEMPERATURE if self.temperature is None else self.temperature
            ),
        )

    # -- analyze_report: extract -> summarize ------------------------------

    async def extract_structured_data(self, report_text: str) -> ExtractedReportData:
        """Step 1 of analyze_report: clinical extraction with evidence quotes."""
        system_prompt, user_prompt = self.prompts.build_analysis_prompts(report_text)
        payload = await self._complete(system_prompt, user_prompt)
        data, issues = parse_analysis_response(payload, report_text)
        _log_issues("analysis", issues)
        logger.info(
            "Extracted report data: birads=%s, %d findings, %d recommendations, %d red flags",
            data.birads.value,
            len(data.findings),
            len(data.recommendations),
            len(data.red_flags),
        )
        return data

    async def generate_summary(
        self, extracted_data: ExtractedReportData | dict[str, Any],
    ) -> str:
        """Patient-facing 2-4 sentence explanation of extracted report data."""
        system_prompt, user_prompt = self.prompts.build_summary_prompts(extracted_data)
        payload = await self._complete(system_prompt, user_prompt)
        return parse_summary_response(payload)

    async def analyze_report(self, report_text: str) -> StructuredAnalysis:
        data = await self.extract_structured_data(report_text)
        summary = await self.generate_summary(data)
        return StructuredAnalysis(**data.model_dump(), summary=summary)

    # -- multi-report and treatment operations -----------------------------

    async def consolidate_reports(
        self, reports: list[PriorReport],
    ) -> ConsolidationResult:
        """Progression narrative across reports already sorted oldest first."""
        system_prompt, user_prompt = self.prompts.build_consolidation_prompts(reports)
        payload = await self._complete(system_prompt, user_prompt)
        result = parse_consolidation_response(payload)
        logger.info(
            "Consolidated %d reports (%d key patterns)",
            len(reports), len(result.key_patterns),
        )
        return result

    async def compare_treatments(
        self,
        patient_profile: PatientProfile,
        treatment_options: list[str],
    ) -> TreatmentComparison:
        system_prompt, user_prompt = self.prompts.build_treatment_prompts(
            patient_profile, treatment_options,
        )
        payload = await self._complete(system_prompt, user_prompt)
        result, issues = parse_treatment_response(payload, treatment_options)
        _log_issues("treatment comparison", issues)
        return result
