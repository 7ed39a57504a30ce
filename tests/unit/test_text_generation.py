"""
Unit tests for the text-generation collaborator and its fallbacks.
"""
import asyncio

import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_core.runnables import RunnableLambda

from voxmation.core import Lead, Opportunity
from voxmation.intelligence import (
    FOLLOW_UP_FALLBACK,
    LEAD_INSIGHTS_FALLBACK,
    OBJECTION_FALLBACK,
    SALES_INSIGHTS_FALLBACK,
    AccountEnrichment,
    LeadSignal,
    LeadSignalList,
    ProbabilityAnalysis,
    TextGenerationService,
)


class FakeProvider:
    """Stands in for LLMProvider with canned chat and structured outputs."""

    def __init__(self, responses=None, structured=None, error=None):
        self.responses = responses or ["ok"]
        self.structured = structured
        self.error = error
        self.prompts = []

    def get_chat_model(self):
        if self.error:
            raise self.error
        return FakeListChatModel(responses=self.responses)

    def with_structured_output(self, schema):
        if self.error:
            raise self.error

        def respond(prompt_value):
            self.prompts.append(prompt_value.to_string())
            return self.structured

        return RunnableLambda(respond)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def deal():
    return Opportunity(name="Acme — AI Implementation", amount=5000, probability=20)


# =============================================================================
# Structured calls
# =============================================================================

def test_probability_analysis_success(deal):
    expected = ProbabilityAnalysis(probability=72, reasoning="Strong champion", recommendation="Send proposal")
    provider = FakeProvider(structured=expected)
    lead = Lead(name="Alex", dna_score=88, pain_points=["Missed calls", "No CRM"])

    result = run(TextGenerationService(provider=provider).analyze_opportunity_probability(deal, lead))

    assert result == expected
    assert "Lead Score: 88" in provider.prompts[0]
    assert "Missed calls, No CRM" in provider.prompts[0]


def test_probability_prompt_without_lead(deal):
    provider = FakeProvider(structured={"probability": 140, "reasoning": "r", "recommendation": "x"})
    result = run(TextGenerationService(provider=provider).analyze_opportunity_probability(deal))
    assert result.probability == 100
    assert "Lead Score: N/A" in provider.prompts[0]
    assert "None stated" in provider.prompts[0]


def test_probability_fallback_on_provider_error(deal):
    provider = FakeProvider(error=RuntimeError("rate limited"))
    result = run(TextGenerationService(provider=provider).analyze_opportunity_probability(deal))
    assert result.probability == 50
    assert result.reasoning == "Analysis Engine Offline"
    assert result.recommendation == "Manual audit required"


def test_probability_fallback_on_missing_package(deal):
    provider = FakeProvider(error=ImportError("Install langchain-groq"))
    result = run(TextGenerationService(provider=provider).analyze_opportunity_probability(deal))
    assert result.reasoning == "Analysis Engine Offline"


def test_probability_fallback_on_invalid_output(deal):
    provider = FakeProvider(structured={"unexpected": True})
    result = run(TextGenerationService(provider=provider).analyze_opportunity_probability(deal))
    assert result.probability == 50


def test_enrichment_success_and_fallback():
    enriched = AccountEnrichment(industry="Dental", size="11-50", revenue=2_000_000, description="Clinics")
    ok = run(TextGenerationService(provider=FakeProvider(structured=enriched)).enrich_account_data("Apex", "apex.com"))
    assert ok == enriched

    failed = run(TextGenerationService(provider=FakeProvider(error=TimeoutError())).enrich_account_data("Apex", ""))
    assert failed is None


def test_scan_new_leads():
    signals = LeadSignalList(leads=[
        LeadSignal(company="Initech", contact="Peter", signal="New clinic opened", dna_score=81),
    ])
    result = run(TextGenerationService(provider=FakeProvider(structured=signals)).scan_new_leads("Dental"))
    assert [s.company for s in result] == ["Initech"]

    assert run(TextGenerationService(provider=FakeProvider(error=RuntimeError())).scan_new_leads("Dental")) == []


def test_lead_signal_accepts_camel_case_score():
    signal = LeadSignal.model_validate({"company": "A", "contact": "B", "signal": "C", "dnaScore": 250})
    assert signal.dna_score == 100


# =============================================================================
# Text drafts
# =============================================================================

def test_text_draft_is_returned_stripped():
    provider = FakeProvider(responses=["  Subject: Stop missing calls\n"])
    result = run(TextGenerationService(provider=provider).generate_lead_insights("Alex", "Acme", ["Missed calls"]))
    assert result == "Subject: Stop missing calls"


@pytest.mark.parametrize("method,args,fallback", [
    ("generate_lead_insights", ("Alex", "Acme", []), LEAD_INSIGHTS_FALLBACK),
    ("generate_objection_handling", ("Alex", "Acme", []), OBJECTION_FALLBACK),
    ("generate_sales_insights", ("Alex", "Acme", []), SALES_INSIGHTS_FALLBACK),
    ("generate_automated_follow_up", ("Alex", "Acme", "Engaged", "2 days ago", []), FOLLOW_UP_FALLBACK),
])
def test_text_fallbacks(method, args, fallback):
    service = TextGenerationService(provider=FakeProvider(error=ConnectionError("offline")))
    assert run(getattr(service, method)(*args)) == fallback


def test_empty_draft_uses_fallback():
    provider = FakeProvider(responses=["   "])
    result = run(TextGenerationService(provider=provider).generate_automated_follow_up(
        "Alex", "Acme", "Engaged", "yesterday", ["Missed calls"]
    ))
    assert result == FOLLOW_UP_FALLBACK


def test_follow_up_prompt_defaults_pain_point():
    captured = []

    class CapturingProvider(FakeProvider):
        def get_chat_model(self):
            return RunnableLambda(lambda prompt_value: captured.append(prompt_value.to_string()) or "Draft")

    service = TextGenerationService(provider=CapturingProvider())
    result = run(service.generate_automated_follow_up("Alex", "Acme", "Engaged", "yesterday", []))

    assert result == "Draft"
    assert "operational efficiency" in captured[0]
    assert "Status: Engaged, Last touch: yesterday" in captured[0]


def test_fallback_is_logged(caplog, deal):
    service = TextGenerationService(provider=FakeProvider(error=RuntimeError("boom")))
    run(service.analyze_opportunity_probability(deal))
    assert "opportunity_probability failed" in caplog.text
