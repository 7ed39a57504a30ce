"""
Lead Scoring - DNA Score

Deterministic quality score for a lead, accumulated across four
dimensions and then clamped and mapped to a temperature and stage:

- Fit (max 40): ICP tier, company size, lead volume
- Intent & urgency (max 30): urgency timeline, pain clarity
- Authority & budget (max 30): authority, budget range
- Behavioural boost (max 10): "Hot Lead" tag, high-touch channel

Unrecognised attribute values contribute zero; scoring never raises.
"""

from dataclasses import dataclass
from typing import Mapping, Optional, Union
import logging

from .entities import (
    Collection,
    ICPTier,
    Lead,
    LeadChannel,
    LeadStatus,
    LeadTemperature,
    clamp,
)
from .store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeadScore:
    """Result of scoring a lead."""
    score: int
    temperature: LeadTemperature
    stage: LeadStatus


def _dashed(value: Optional[str]) -> Optional[str]:
    # Range labels use an en dash ("11–50"); accept a plain hyphen too
    if value is None:
        return None
    return value.strip().replace("-", "–")


class LeadScorer:
    """
    Weighted point accumulation over a lead's qualification attributes.

    The point tables are class attributes so they can be inspected; the
    scorer itself holds no state.
    """

    ICP_FIT_POINTS = {ICPTier.A: 25, ICPTier.B: 15, ICPTier.C: 5}
    COMPANY_SIZE_POINTS = {"50+": 10, "11–50": 7, "2–10": 4, "Solo": 2}
    LEAD_VOLUME_POINTS = {"100+/day": 5, "31–100/day": 4, "11–30/day": 3, "0–10/day": 1}
    URGENCY_POINTS = {"Now (0–7 days)": 20, "30 days": 15, "60–90 days": 5}
    AUTHORITY_POINTS = {"Decision maker": 15, "Influencer": 10, "Researcher": 5}
    BUDGET_POINTS = {"$10k+": 15, "$2k–10k": 12, "$500–2k": 8, "<$500": 4}

    PAIN_CLARITY_POINTS = 10
    PAIN_NOTES_MIN_LENGTH = 20
    HOT_TAG = "Hot Lead"
    HOT_TAG_POINTS = 5
    HIGH_TOUCH_CHANNELS = (LeadChannel.WHATSAPP, LeadChannel.PHONE)
    HIGH_TOUCH_POINTS = 5

    # Qualification decisions already taken are never re-staged
    SETTLED_STATUSES = (LeadStatus.QUALIFIED, LeadStatus.DISQUALIFIED)

    HOT_THRESHOLD = 80
    WARM_THRESHOLD = 50
    NURTURE_THRESHOLD = 20

    def fit_points(self, lead: Lead) -> int:
        return (
            self.ICP_FIT_POINTS.get(lead.icp_fit, 0)
            + self.COMPANY_SIZE_POINTS.get(_dashed(lead.company_size), 0)
            + self.LEAD_VOLUME_POINTS.get(_dashed(lead.lead_volume), 0)
        )

    def intent_points(self, lead: Lead) -> int:
        points = self.URGENCY_POINTS.get(_dashed(lead.urgency), 0)
        has_pain_points = bool(lead.pain_points)
        has_notes = len(lead.notes or "") > self.PAIN_NOTES_MIN_LENGTH
        if has_pain_points or has_notes:
            points += self.PAIN_CLARITY_POINTS
        return points

    def authority_points(self, lead: Lead) -> int:
        return (
            self.AUTHORITY_POINTS.get((lead.authority or "").strip(), 0)
            + self.BUDGET_POINTS.get(_dashed(lead.budget_range), 0)
        )

    def behavioral_points(self, lead: Lead) -> int:
        points = 0
        if self.HOT_TAG in lead.tags:
            points += self.HOT_TAG_POINTS
        if lead.channel in self.HIGH_TOUCH_CHANNELS:
            points += self.HIGH_TOUCH_POINTS
        return points

    def temperature_for(self, score: int) -> LeadTemperature:
        if score >= self.HOT_THRESHOLD:
            return LeadTemperature.HOT
        if score >= self.WARM_THRESHOLD:
            return LeadTemperature.WARM
        return LeadTemperature.COLD

    def stage_for(self, score: int) -> LeadStatus:
        if score >= self.HOT_THRESHOLD:
            return LeadStatus.QUALIFIED
        if score >= self.WARM_THRESHOLD:
            return LeadStatus.ENGAGED
        if score >= self.NURTURE_THRESHOLD:
            return LeadStatus.NURTURE
        return LeadStatus.DISQUALIFIED

    def score(self, lead: Union[Lead, Mapping]) -> LeadScore:
        """Score a lead or a partial lead record."""
        if not isinstance(lead, Lead):
            lead = Lead.from_record(lead)

        total = (
            self.fit_points(lead)
            + self.intent_points(lead)
            + self.authority_points(lead)
            + self.behavioral_points(lead)
        )
        final = int(clamp(total))
        return LeadScore(
            score=final,
            temperature=self.temperature_for(final),
            stage=self.stage_for(final)
        )

    def apply(self, store: DocumentStore, lead_id: str) -> Optional[LeadScore]:
        """
        Score a stored lead and write dna_score, temperature and status back.

        A lead that is already Qualified or Disqualified keeps its status;
        only the score and temperature are refreshed. Returns None when
        the lead does not exist.
        """
        with store.transaction():
            lead = store.get_by_id(Collection.LEADS, lead_id)
            if lead is None:
                logger.debug("Scoring skipped: lead %s not found", lead_id)
                return None

            result = self.score(lead)
            updates = {"dna_score": result.score, "temperature": result.temperature}
            if lead.status not in self.SETTLED_STATUSES:
                updates["status"] = result.stage
            store.update_by_id(Collection.LEADS, lead_id, updates)

        logger.info("Lead %s scored %d (%s)", lead_id, result.score, result.temperature.value)
        return result


_default_scorer = LeadScorer()


def score_lead(lead: Union[Lead, Mapping]) -> LeadScore:
    """Score a lead with the standard weighting."""
    return _default_scorer.score(lead)
