"""Tests for AnalysisOrchestrator against a scripted completion client."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from api.analysis_models import (
    BiradsAssessment,
    PatientProfile,
    PriorReport,
    StructuredAnalysis,
)
from api.errors import ConfigurationError, MalformedResponseError, UpstreamServiceError
from conftest import SAMPLE_REPORT, FakeCompletionClient, analysis_payload
from llm.client import LLMClient
from llm.orchestrator import AnalysisOrchestrator

_SUMMARY = {"summary": "Your mammogram shows a small finding that is very likely benign."}


def _treatment_payload(names, disclaimer="Not a substitute for medical advice."):
    payload = {
        "comparisons": [
            {"treatment": name, "score": 6 + i, "benefits": [], "side_effects": []}
            for i, name in enumerate(names)
        ],
        "overall_recommendation": "Discuss with your oncologist.",
    }
    if disclaimer is not None:
        payload["disclaimer"] = disclaimer
    return payload


class TestAnalyzeReport:
    @pytest.mark.asyncio
    async def test_two_calls_with_distinct_personas(self):
        client = FakeCompletionClient(analysis_payload(), _SUMMARY)
        orchestrator = AnalysisOrchestrator(client=client)

        result = await orchestrator.analyze_report(SAMPLE_REPORT)

        assert isinstance(result, StructuredAnalysis)
        assert result.birads.value == 3
        assert result.summary == _SUMMARY["summary"]
        assert len(client.calls) == 2
        extract_call, summary_call = client.calls
        assert extract_call["system_prompt"] != summary_call["system_prompt"]
        assert SAMPLE_REPORT in extract_call["user_prompt"]
        assert all(call["temperature"] == 0.3 for call in client.calls)

    @pytest.mark.asyncio
    async def test_settings_forwarded(self):
        client = FakeCompletionClient(analysis_payload(), _SUMMARY)
        orchestrator = AnalysisOrchestrator(client=client, temperature=0.1, max_tokens=1000)

        await orchestrator.analyze_report(SAMPLE_REPORT)

        assert client.calls[0]["temperature"] == 0.1
        assert client.calls[0]["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_birads_out_of_range_stops_before_summary(self):
        payload = analysis_payload(birads={"value": 7, "evidence": []})
        client = FakeCompletionClient(payload, _SUMMARY)

        with pytest.raises(MalformedResponseError):
            await AnalysisOrchestrator(client=client).analyze_report(SAMPLE_REPORT)
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_summary_is_malformed(self):
        client = FakeCompletionClient(analysis_payload(), {"text": "wrong key"})
        with pytest.raises(MalformedResponseError):
            await AnalysisOrchestrator(client=client).analyze_report(SAMPLE_REPORT)

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self):
        client = FakeCompletionClient(UpstreamServiceError("rate limited", status_code=429))
        with pytest.raises(UpstreamServiceError) as exc:
            await AnalysisOrchestrator(client=client).analyze_report(SAMPLE_REPORT)
        assert exc.value.retryable

    @pytest.mark.asyncio
    async def test_fabricated_evidence_dropped(self):
        payload = analysis_payload()
        payload["birads"]["evidence"] = ["BI-RADS 4: Suspicious abnormality"]
        client = FakeCompletionClient(payload, _SUMMARY)

        result = await AnalysisOrchestrator(client=client).analyze_report(SAMPLE_REPORT)

        assert result.birads.evidence == []
        assert result.findings[0].evidence == ["There is a 6 mm oval circumscribed mass"]

    @pytest.mark.asyncio
    async def test_empty_sections_accepted(self):
        payload = analysis_payload(findings=[], recommendations=[], red_flags=[])
        client = FakeCompletionClient(payload, _SUMMARY)

        result = await AnalysisOrchestrator(client=client).analyze_report(SAMPLE_REPORT)

        assert result.findings == []
        assert result.recommendations == []


class TestGenerateSummary:
    @pytest.mark.asyncio
    async def test_accepts_analysis_minus_summary(self):
        client = FakeCompletionClient(analysis_payload(), _SUMMARY, {"summary": "Regenerated."})
        orchestrator = AnalysisOrchestrator(client=client)
        analysis = await orchestrator.analyze_report(SAMPLE_REPORT)

        summary = await orchestrator.generate_summary(analysis.extracted_data())

        assert summary == "Regenerated."
        assert _SUMMARY["summary"] not in client.calls[2]["user_prompt"]

    @pytest.mark.asyncio
    async def test_accepts_plain_dict(self):
        client = FakeCompletionClient({"summary": "All clear."})
        summary = await AnalysisOrchestrator(client=client).generate_summary(analysis_payload())
        assert summary == "All clear."


class TestConsolidateReports:
    @pytest.mark.asyncio
    async def test_reports_sent_in_caller_order(self):
        reports = [
            PriorReport(created_date=datetime(2022, 1, 5), birads=BiradsAssessment(value=1)),
            PriorReport(created_date=datetime(2023, 2, 6), birads=BiradsAssessment(value=2)),
            PriorReport(created_date=datetime(2024, 3, 7), birads=BiradsAssessment(value=3)),
        ]
        client = FakeCompletionClient({
            "consolidated_summary": "Gradual change over three years.",
            "key_patterns": ["Increasing BI-RADS category"],
        })

        result = await AnalysisOrchestrator(client=client).consolidate_reports(reports)

        assert result.consolidated_summary == "Gradual change over three years."
        prompt = client.calls[0]["user_prompt"]
        assert prompt.index("2022-01-05") < prompt.index("2023-02-06") < prompt.index("2024-03-07")

    @pytest.mark.asyncio
    async def test_missing_summary_is_malformed(self):
        reports = [
            PriorReport(created_date=datetime(2023, 1, 1)),
            PriorReport(created_date=datetime(2024, 1, 1)),
        ]
        client = FakeCompletionClient({"overall_assessment": "Stable"})
        with pytest.raises(MalformedResponseError):
            await AnalysisOrchestrator(client=client).consolidate_reports(reports)


class TestCompareTreatments:
    @pytest.mark.asyncio
    async def test_one_entry_per_option_in_order(self):
        options = ["Lumpectomy with radiation", "Mastectomy", "Neoadjuvant chemotherapy"]
        client = FakeCompletionClient(_treatment_payload(options))

        result = await AnalysisOrchestrator(client=client).compare_treatments(
            PatientProfile(cancer_stage="IIA", age=54), options,
        )

        assert [c.treatment for c in result.comparisons] == options
        assert result.disclaimer

    @pytest.mark.asyncio
    async def test_out_of_order_response_reordered(self):
        options = ["Lumpectomy", "Mastectomy"]
        client = FakeCompletionClient(_treatment_payload(["Mastectomy", "Lumpectomy"]))

        result = await AnalysisOrchestrator(client=client).compare_treatments(
            PatientProfile(), options,
        )

        assert [c.treatment for c in result.comparisons] == options

    @pytest.mark.asyncio
    async def test_wrong_count_is_malformed(self):
        client = FakeCompletionClient(_treatment_payload(["Lumpectomy"]))
        with pytest.raises(MalformedResponseError):
            await AnalysisOrchestrator(client=client).compare_treatments(
                PatientProfile(), ["Lumpectomy", "Mastectomy"],
            )

    @pytest.mark.asyncio
    async def test_missing_disclaimer_is_malformed(self):
        client = FakeCompletionClient(_treatment_payload(["Lumpectomy"], disclaimer=None))
        with pytest.raises(MalformedResponseError):
            await AnalysisOrchestrator(client=client).compare_treatments(
                PatientProfile(), ["Lumpectomy"],
            )


class TestCredentials:
    @pytest.mark.asyncio
    async def test_missing_key_raises_configuration_error_at_call_time(self, no_api_keys):
        orchestrator = AnalysisOrchestrator()
        with pytest.raises(ConfigurationError):
            await orchestrator.analyze_report(SAMPLE_REPORT)

    def test_from_environment_without_key(self, no_api_keys):
        with pytest.raises(ConfigurationError):
            AnalysisOrchestrator.from_environment()

    def test_from_environment_reads_settings(self, no_api_keys, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        monkeypatch.setenv("LLM_PROVIDER", "claude")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.2")

        orchestrator = AnalysisOrchestrator.from_environment()

        assert orchestrator.temperature == 0.2
        assert orchestrator.client.provider.value == "claude"

    @pytest.mark.asyncio
    async def test_lazy_client_applies_environment_settings(self, no_api_keys, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.0")
        monkeypatch.setenv("LLM_MAX_TOKENS", "512")

        call_json = AsyncMock(return_value={"summary": "All clear."})
        with patch.object(LLMClient, "call_json", new=call_json):
            await AnalysisOrchestrator().generate_summary(analysis_payload())

        kwargs = call_json.await_args.kwargs
        assert (kwargs["max_tokens"], kwargs["temperature"]) == (512, 0.0)

    @pytest.mark.asyncio
    async def test_constructor_settings_win_over_environment(self, no_api_keys, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.0")
        monkeypatch.setenv("LLM_MAX_TOKENS", "512")

        call_json = AsyncMock(return_value={"summary": "All clear."})
        with patch.object(LLMClient, "call_json", new=call_json):
            orchestrator = AnalysisOrchestrator(temperature=0.5, max_tokens=2000)
            await orchestrator.generate_summary(analysis_payload())

        kwargs = call_json.await_args.kwargs
        assert (kwargs["max_tokens"], kwargs["temperature"]) == (2000, 0.5)
