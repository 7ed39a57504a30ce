"""
Pydantic Schemas for Structured LLM Outputs

These schemas define the expected output structure for the structured
text-generation calls, enabling validated LLM responses using
LangChain's structured output.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Opportunity Analysis
# =============================================================================

class ProbabilityAnalysis(BaseModel):
    """Closing probability assessment for an opportunity."""
    probability: int = Field(
        description="Estimated probability of closing the deal, 0-100"
    )
    reasoning: str = Field(
        description="Short summary of why the deal sits at this probability"
    )
    recommendation: str = Field(
        description="The single most important next action"
    )

    @field_validator("probability", mode="before")
    @classmethod
    def clamp_probability(cls, value):
        return max(0, min(100, int(round(float(value)))))


# =============================================================================
# Account Enrichment
# =============================================================================

class AccountEnrichment(BaseModel):
    """Public firmographic data for a company."""
    industry: str = Field(description="Industry the company operates in")
    size: str = Field(description="Employee range, e.g. '50-200'")
    revenue: float = Field(
        description="Estimated annual revenue in USD",
        default=0.0
    )
    description: str = Field(
        description="Core product or service description",
        default=""
    )


# =============================================================================
# Lead Discovery
# =============================================================================

class LeadSignal(BaseModel):
    """A prospective lead surfaced by a market scan."""
    company: str = Field(description="Company name")
    contact: str = Field(description="Contact person name")
    signal: str = Field(description="Recent news or event suggesting buying intent")
    dna_score: int = Field(
        description="Estimated lead quality score, 1-100",
        alias="dnaScore"
    )

    model_config = {"populate_by_name": True}

    @field_validator("dna_score", mode="before")
    @classmethod
    def clamp_score(cls, value):
        return max(1, min(100, int(round(float(value)))))


class LeadSignalList(BaseModel):
    """Wrapper so list output can be requested as a structured object."""
    leads: List[LeadSignal] = Field(
        description="Potential high-value leads",
        default_factory=list
    )
