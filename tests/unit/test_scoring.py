"""
Unit tests for the lead scoring function.
"""
import itertools

import pytest

from voxmation.core import (
    Collection,
    Lead,
    LeadScorer,
    LeadStatus,
    LeadTemperature,
    score_lead,
)


def best_lead(**overrides):
    record = {
        "icpFit": "A",
        "companySize": "50+",
        "leadVolume": "100+/day",
        "urgency": "Now (0–7 days)",
        "painPoints": ["Missed calls"],
        "authority": "Decision maker",
        "budgetRange": "$10k+",
        "tags": ["Hot Lead"],
        "channel": "WhatsApp",
    }
    record.update(overrides)
    return record


def test_empty_lead_scores_zero():
    result = score_lead({})
    assert result.score == 0
    assert result.temperature == LeadTemperature.COLD
    assert result.stage == LeadStatus.DISQUALIFIED


def test_best_lead_is_clamped_to_100():
    # Raw sum is 125
    result = score_lead(best_lead())
    assert result.score == 100
    assert result.temperature == LeadTemperature.HOT
    assert result.stage == LeadStatus.QUALIFIED


def test_mid_range_lead_exact_score():
    result = score_lead({
        "icpFit": "B",           # 15
        "companySize": "2–10",   # 4
        "urgency": "30 days",    # 15
        "authority": "Influencer",  # 10
        "budgetRange": "$500–2k",   # 8
    })
    assert result.score == 52
    assert result.temperature == LeadTemperature.WARM
    assert result.stage == LeadStatus.ENGAGED


def test_hot_threshold_is_inclusive():
    result = score_lead({
        "icpFit": "A", "companySize": "50+", "urgency": "Now (0–7 days)",
        "painPoints": ["x"], "authority": "Decision maker",
    })
    assert result.score == 80
    assert result.temperature == LeadTemperature.HOT
    assert result.stage == LeadStatus.QUALIFIED


def test_warm_threshold_is_inclusive():
    result = score_lead({
        "icpFit": "A", "urgency": "Now (0–7 days)", "leadVolume": "0–10/day", "budgetRange": "<$500",
    })
    assert result.score == 50
    assert result.temperature == LeadTemperature.WARM
    assert result.stage == LeadStatus.ENGAGED


def test_nurture_band():
    assert score_lead({"urgency": "Now (0–7 days)"}).stage == LeadStatus.NURTURE
    assert score_lead({"icpFit": "B", "companySize": "2–10"}).stage == LeadStatus.DISQUALIFIED


def test_plain_hyphen_ranges_match_en_dash_ranges():
    hyphen = score_lead({"companySize": "11-50", "budgetRange": "$2k-10k", "urgency": "60-90 days"})
    dash = score_lead({"companySize": "11–50", "budgetRange": "$2k–10k", "urgency": "60–90 days"})
    assert hyphen == dash
    assert hyphen.score == 7 + 12 + 5


def test_pain_clarity_from_notes_requires_more_than_20_chars():
    assert score_lead({"notes": "x" * 20}).score == 0
    assert score_lead({"notes": "x" * 21}).score == 10


def test_pain_clarity_counted_once():
    assert score_lead({"notes": "x" * 50, "painPoints": ["a", "b"]}).score == 10


def test_behavioural_boost():
    assert score_lead({"tags": ["Hot Lead"]}).score == 5
    assert score_lead({"channel": "Phone"}).score == 5
    assert score_lead({"channel": "Email"}).score == 0


def test_unrecognised_values_contribute_zero():
    result = score_lead({
        "icpFit": "Z",
        "companySize": "enormous",
        "urgency": "someday",
        "authority": "Intern",
        "budgetRange": "lots",
        "channel": "Carrier pigeon",
    })
    assert result.score == 0


def test_scoring_is_deterministic():
    lead = Lead.from_record(best_lead(icpFit="B"))
    assert score_lead(lead) == score_lead(lead)
    assert LeadScorer().score(lead) == LeadScorer().score(lead)


@pytest.mark.parametrize("icp,size,urgency,authority,budget", list(itertools.product(
    [None, "A", "C"],
    [None, "50+", "Solo"],
    [None, "Now (0–7 days)", "60–90 days"],
    [None, "Decision maker", "Researcher"],
    [None, "$10k+", "<$500"],
)))
def test_score_stays_in_bounds(icp, size, urgency, authority, budget):
    result = score_lead(best_lead(
        icpFit=icp, companySize=size, urgency=urgency, authority=authority, budgetRange=budget
    ))
    assert 0 <= result.score <= 100


RANKED_ATTRIBUTES = {
    "icpFit": [None, "C", "B", "A"],
    "companySize": [None, "Solo", "2–10", "11–50", "50+"],
    "leadVolume": [None, "0–10/day", "11–30/day", "31–100/day", "100+/day"],
    "urgency": [None, "60–90 days", "30 days", "Now (0–7 days)"],
    "authority": [None, "Researcher", "Influencer", "Decision maker"],
    "budgetRange": [None, "<$500", "$500–2k", "$2k–10k", "$10k+"],
}


@pytest.mark.parametrize("attribute", sorted(RANKED_ATTRIBUTES))
def test_score_is_monotonic_in_each_attribute(attribute):
    base = {"icpFit": "C", "urgency": "30 days"}
    scores = [
        score_lead({**base, attribute: value}).score
        for value in RANKED_ATTRIBUTES[attribute]
    ]
    assert scores == sorted(scores)


def test_apply_writes_score_back(store, changes):
    lead = store.insert(Collection.LEADS, best_lead(name="Sarah"))
    changes.clear()

    result = LeadScorer().apply(store, lead.id)

    stored = store.get_by_id(Collection.LEADS, lead.id)
    assert result.score == 100
    assert stored.dna_score == 100
    assert stored.temperature == LeadTemperature.HOT
    assert stored.status == LeadStatus.QUALIFIED
    assert len(changes) == 1


def test_apply_missing_lead_is_noop(store, changes):
    assert LeadScorer().apply(store, "lead-missing") is None
    assert changes == []


@pytest.mark.parametrize("status", [LeadStatus.QUALIFIED, LeadStatus.DISQUALIFIED])
def test_apply_keeps_settled_status(store, status):
    lead = store.insert(Collection.LEADS, {"name": "Sam", "status": status.value})

    result = LeadScorer().apply(store, lead.id)

    stored = store.get_by_id(Collection.LEADS, lead.id)
    assert result.score == 0
    assert stored.dna_score == 0
    assert stored.temperature == LeadTemperature.COLD
    assert stored.status == status
