"""
LangChain-based Text Generation

Advisory text and structured analyses for the sales UI, built as LCEL
chains over the configured chat model:
- Opportunity closing probability (structured)
- Account enrichment (structured)
- Outreach drafts, objection handling, strategic sales audits
- Automated follow-up drafts
- Lead discovery scans (structured)

Every call degrades to a static fallback when the provider is
unavailable or fails; nothing here raises to the caller and no
automation rule depends on these results.
"""

from enum import Enum
from typing import Any, Callable, Dict, Optional, Type
import logging

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel

from ..core.entities import Lead, Opportunity
from .schemas import AccountEnrichment, LeadSignal, LeadSignalList, ProbabilityAnalysis

logger = logging.getLogger(__name__)


class TextTask(str, Enum):
    """Text-generation tasks."""
    OPPORTUNITY_PROBABILITY = "opportunity_probability"
    ACCOUNT_ENRICHMENT = "account_enrichment"
    LEAD_INSIGHTS = "lead_insights"
    OBJECTION_HANDLING = "objection_handling"
    SALES_INSIGHTS = "sales_insights"
    FOLLOW_UP = "follow_up"
    LEAD_SCAN = "lead_scan"


# =============================================================================
# Prompts
# =============================================================================

PROBABILITY_SYSTEM_PROMPT = """You are a sales analytics engine for an AI automation agency.
Assess deals objectively from the facts given. Do not invent history."""

PROBABILITY_USER_TEMPLATE = """Analyze the closing probability of this sales opportunity:
Deal Name: {name}
Amount: ${amount}
Stage: {stage}
Lead Score: {lead_score}
Lead Pain Points: {pain_points}

Return:
1. probability (0-100)
2. reasoning (short summary)
3. recommendation (one key action)"""


ENRICHMENT_SYSTEM_PROMPT = """You are a B2B research analyst.
Answer from public knowledge only and give your best estimate when unsure."""

ENRICHMENT_USER_TEMPLATE = """Enrich company data for {company} ({website}).
Provide:
1. Industry
2. Size (employee range)
3. Estimated Annual Revenue
4. Core Product/Service description"""


LEAD_INSIGHTS_SYSTEM_PROMPT = """You are a world-class sales strategist and elite copywriter.
Your goal is to generate high-intent outreach drafts."""

LEAD_INSIGHTS_USER_TEMPLATE = """Analyze this sales lead: Name: {name}, Company: {company}, Stated Pain Points: {pain_points}.
Generate a personalized cold outreach email using the 'AIDA' (Attention, Interest, Desire, Action) framework.
Focus on how our AI solutions solve their specific pain points."""


OBJECTION_SYSTEM_PROMPT = """You are an expert in sales psychology and high-stakes negotiation."""

OBJECTION_USER_TEMPLATE = """You are a master sales closer. Lead: {name} at {company}. Pain Points: {pain_points}.
Identify 3 major objections this lead might have regarding price, integration, or status quo.
Provide a concise, empathetic and powerful handling strategy for each.
Format as: OBJECTION, THE PSYCHOLOGY, and THE REBUTTAL."""


SALES_INSIGHTS_SYSTEM_PROMPT = """You are a Senior Strategic Sales Consultant.
Your recommendations must be professional, insightful and actionable."""

SALES_INSIGHTS_USER_TEMPLATE = """Perform a Strategic Sales Audit for {name} at {company}.
Based on their known pain points ({pain_points}), generate a strategic sales playbook including:
1. A 'Trojan Horse' Entry: A low-risk product or feature to win the initial contract.
2. Expansion Strategy: How to grow this account over the next 12-24 months.
3. Stakeholder Mapping: Which departments (IT, HR, Finance) need to be involved and why.
4. Competitive Edge: Why our specific solution beats the status quo for their specific needs.
5. High-Value Conversation Starter: A specific insight about their industry to use in the next call."""


FOLLOW_UP_SYSTEM_PROMPT = """You are an elite Sales Development Representative."""

FOLLOW_UP_USER_TEMPLATE = """Generate a personalized follow-up for {name} ({company}).
Status: {status}, Last touch: {last_touch}.
Mention their pain point: {pain_point}.
Propose a low-friction 10-minute check-in."""


LEAD_SCAN_SYSTEM_PROMPT = """You are a market intelligence analyst who spots buying signals."""

LEAD_SCAN_USER_TEMPLATE = """Generate a list of 5 potential high-value sales leads for the {industry} industry.
For each lead, provide a company name, a contact person name, a potential 'signal'
(recent news/event), and a DNA score (1-100)."""


# =============================================================================
# Fallbacks
# =============================================================================

PROBABILITY_FALLBACK = ProbabilityAnalysis(
    probability=50,
    reasoning="Analysis Engine Offline",
    recommendation="Manual audit required"
)
LEAD_INSIGHTS_FALLBACK = "Unable to generate outreach draft at this time."
OBJECTION_FALLBACK = "Error generating objection strategies."
SALES_INSIGHTS_FALLBACK = "Error generating strategic insights."
FOLLOW_UP_FALLBACK = "Error generating AI follow-up."


def _join(items) -> str:
    return ", ".join(items or [])


# =============================================================================
# Text Generation Service
# =============================================================================

class TextGenerationService:
    """
    Advisory text generation over a LangChain chat model.

    Features:
    - Multiple LLM provider support via LLMProvider
    - Structured outputs with Pydantic validation
    - Static fallback per call on any provider error
    """

    TASK_PROMPTS: Dict[TextTask, tuple] = {
        TextTask.OPPORTUNITY_PROBABILITY: (PROBABILITY_SYSTEM_PROMPT, PROBABILITY_USER_TEMPLATE),
        TextTask.ACCOUNT_ENRICHMENT: (ENRICHMENT_SYSTEM_PROMPT, ENRICHMENT_USER_TEMPLATE),
        TextTask.LEAD_INSIGHTS: (LEAD_INSIGHTS_SYSTEM_PROMPT, LEAD_INSIGHTS_USER_TEMPLATE),
        TextTask.OBJECTION_HANDLING: (OBJECTION_SYSTEM_PROMPT, OBJECTION_USER_TEMPLATE),
        TextTask.SALES_INSIGHTS: (SALES_INSIGHTS_SYSTEM_PROMPT, SALES_INSIGHTS_USER_TEMPLATE),
        TextTask.FOLLOW_UP: (FOLLOW_UP_SYSTEM_PROMPT, FOLLOW_UP_USER_TEMPLATE),
        TextTask.LEAD_SCAN: (LEAD_SCAN_SYSTEM_PROMPT, LEAD_SCAN_USER_TEMPLATE),
    }

    def __init__(self, provider=None, settings=None):
        """
        Initialize the service.

        Args:
            provider: LLMProvider instance (optional, will create default)
            settings: Settings instance (optional)
        """
        self._provider = provider
        self._settings = settings

    def _get_provider(self):
        """Lazy load LLM provider."""
        if self._provider is None:
            from ..config.providers import LLMProvider
            self._provider = LLMProvider(self._settings.llm if self._settings else None)
        return self._provider

    def _prompt(self, task: TextTask) -> ChatPromptTemplate:
        system_prompt, user_template = self.TASK_PROMPTS[task]
        return ChatPromptTemplate.from_messages([
            ("system", system_prompt),
            ("human", user_template)
        ])

    def _text_chain(self, task: TextTask):
        return self._prompt(task) | self._get_provider().get_chat_model() | StrOutputParser()

    def _structured_chain(self, task: TextTask, schema: Type[BaseModel]):
        return self._prompt(task) | self._get_provider().with_structured_output(schema)

    async def _run(self, task: TextTask, build_chain: Callable[[], Any], inputs: dict) -> Any:
        """Build and invoke a chain; returns None on any provider failure."""
        try:
            chain = build_chain()
            return await chain.ainvoke(inputs)
        except Exception as e:
            logger.warning("Text generation %s failed, using fallback: %s", task.value, e)
            return None

    async def _generate_text(self, task: TextTask, inputs: dict, fallback: str) -> str:
        output = await self._run(task, lambda: self._text_chain(task), inputs)
        if not output or not str(output).strip():
            return fallback
        return str(output).strip()

    async def _generate_structured(
        self,
        task: TextTask,
        schema: Type[BaseModel],
        inputs: dict
    ) -> Optional[BaseModel]:
        output = await self._run(task, lambda: self._structured_chain(task, schema), inputs)
        if output is None or isinstance(output, schema):
            return output
        try:
            return schema.model_validate(output)
        except Exception as e:
            logger.warning("Text generation %s returned invalid output: %s", task.value, e)
            return None

    # ------------------------------------------------------------------
    # Structured analyses
    # ------------------------------------------------------------------

    async def analyze_opportunity_probability(
        self,
        opportunity: Opportunity,
        lead: Lead = None
    ) -> ProbabilityAnalysis:
        """Estimate the closing probability of a deal."""
        inputs = {
            "name": opportunity.name,
            "amount": opportunity.amount,
            "stage": opportunity.stage.value,
            "lead_score": lead.dna_score if lead and lead.dna_score else "N/A",
            "pain_points": _join(lead.pain_points) if lead and lead.pain_points else "None stated",
        }
        result = await self._generate_structured(
            TextTask.OPPORTUNITY_PROBABILITY, ProbabilityAnalysis, inputs
        )
        return result or PROBABILITY_FALLBACK.model_copy()

    async def enrich_account_data(self, company_name: str, website: str) -> Optional[AccountEnrichment]:
        """Firmographic enrichment for a company; None when unavailable."""
        return await self._generate_structured(
            TextTask.ACCOUNT_ENRICHMENT,
            AccountEnrichment,
            {"company": company_name, "website": website or "no website"}
        )

    async def scan_new_leads(self, industry: str) -> list[LeadSignal]:
        """Surface potential leads for an industry; empty on failure."""
        result = await self._generate_structured(
            TextTask.LEAD_SCAN, LeadSignalList, {"industry": industry}
        )
        return list(result.leads) if result else []

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def generate_lead_insights(self, lead_name: str, company: str, pain_points: list[str]) -> str:
        """AIDA outreach email draft."""
        return await self._generate_text(
            TextTask.LEAD_INSIGHTS,
            {"name": lead_name, "company": company, "pain_points": _join(pain_points)},
            LEAD_INSIGHTS_FALLBACK
        )

    async def generate_objection_handling(self, lead_name: str, company: str, pain_points: list[str]) -> str:
        return await self._generate_text(
            TextTask.OBJECTION_HANDLING,
            {"name": lead_name, "company": company, "pain_points": _join(pain_points)},
            OBJECTION_FALLBACK
        )

    async def generate_sales_insights(self, lead_name: str, company: str, pain_points: list[str]) -> str:
        return await self._generate_text(
            TextTask.SALES_INSIGHTS,
            {"name": lead_name, "company": company, "pain_points": _join(pain_points)},
            SALES_INSIGHTS_FALLBACK
        )

    async def generate_automated_follow_up(
        self,
        lead_name: str,
        company: str,
        status: str,
        last_touch: str,
        pain_points: list[str]
    ) -> str:
        """Follow-up draft proposing a short check-in."""
        return await self._generate_text(
            TextTask.FOLLOW_UP,
            {
                "name": lead_name,
                "company": company,
                "status": status,
                "last_touch": last_touch,
                "pain_point": pain_points[0] if pain_points else "operational efficiency",
            },
            FOLLOW_UP_FALLBACK
        )
