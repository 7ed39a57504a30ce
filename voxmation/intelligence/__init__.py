"""
Intelligence Layer

Advisory text generation consumed by the sales UI. Results never feed
the automation rules.
"""

from .schemas import (
    AccountEnrichment,
    LeadSignal,
    LeadSignalList,
    ProbabilityAnalysis,
)
from .text_generation import (
    FOLLOW_UP_FALLBACK,
    LEAD_INSIGHTS_FALLBACK,
    OBJECTION_FALLBACK,
    PROBABILITY_FALLBACK,
    SALES_INSIGHTS_FALLBACK,
    TextGenerationService,
    TextTask,
)

__all__ = [
    # Schemas
    "AccountEnrichment",
    "LeadSignal",
    "LeadSignalList",
    "ProbabilityAnalysis",
    # Service
    "TextGenerationService",
    "TextTask",
    # Fallbacks
    "FOLLOW_UP_FALLBACK",
    "LEAD_INSIGHTS_FALLBACK",
    "OBJECTION_FALLBACK",
    "PROBABILITY_FALLBACK",
    "SALES_INSIGHTS_FALLBACK",
]
