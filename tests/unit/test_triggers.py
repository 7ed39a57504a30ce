"""
Unit tests for the trigger engine.
"""
import logging
from datetime import datetime, timedelta

import pytest

from voxmation.automation import (
    AutomationTrigger,
    DomainEvent,
    EventType,
    ScheduledTrigger,
    TriggerEngine,
    TriggerStatus,
)
from voxmation.core import AccountLifecycle, Collection, DeliveryStage, LeadStatus


@pytest.fixture
def engine(service, now):
    return TriggerEngine.create_default(service, start=now)


def fired(results):
    return [r.trigger_name for r in results]


def test_default_catalog(engine):
    assert engine.trigger_names == [
        "lead_scoring",
        "lead_account_link",
        "lead_to_deal",
        "follow_up_log",
        "deal_stage_log",
        "closed_won_fulfillment",
        "delivery_live",
        "critical_ticket_penalty",
        "billing_block",
        "health_audit",
        "renewal_check",
        "daily_health_audit",
        "daily_renewal_check",
    ]


def test_event_type_accepts_strings():
    event = DomainEvent("lead_created", "lead-1")
    assert event.event_type == EventType.LEAD_CREATED


def test_lead_created_scores_then_links(store, engine, acme):
    lead = store.insert(Collection.LEADS, {
        "name": "Alex", "email": "alex@acme.com", "icpFit": "A", "urgency": "30 days",
    })

    results = engine.dispatch(DomainEvent(EventType.LEAD_CREATED, lead.id))

    assert fired(results) == ["lead_scoring", "lead_account_link"]
    assert all(r.succeeded for r in results)
    stored = store.get_by_id(Collection.LEADS, lead.id)
    assert stored.dna_score == 40
    assert stored.status == LeadStatus.NURTURE
    assert stored.linked_account_id == acme.id


def test_qualified_lead_converts(store, engine):
    lead = store.insert(Collection.LEADS, {"name": "Alex", "status": "Qualified"})
    results = engine.dispatch(DomainEvent(EventType.LEAD_QUALIFIED, lead.id))
    assert fired(results) == ["lead_to_deal"]
    assert results[0].outcome.fired
    assert len(store.get_collection(Collection.OPPORTUNITIES)) == 1


def test_closed_won_stage_change_logs_and_fulfils(store, engine, acme):
    deal = store.insert(Collection.OPPORTUNITIES, {"name": "Acme deal", "accountId": acme.id, "mrr": 800})

    results = engine.dispatch(DomainEvent(EventType.DEAL_STAGE_CHANGED, deal.id, {"stage": "Closed Won"}))

    assert fired(results) == ["deal_stage_log", "closed_won_fulfillment"]
    assert len(store.get_collection(Collection.DELIVERIES)) == 1
    assert len(store.get_collection(Collection.ACTIVITIES)) == 1


def test_other_stage_change_only_logs(store, engine):
    deal = store.insert(Collection.OPPORTUNITIES, {"name": "Deal"})
    results = engine.dispatch(DomainEvent(EventType.DEAL_STAGE_CHANGED, deal.id, {"stage": "Proposal"}))
    assert fired(results) == ["deal_stage_log"]
    assert store.get_collection(Collection.DELIVERIES) == []


def test_delivery_live_event(store, engine, acme):
    delivery = store.insert(Collection.DELIVERIES, {"accountId": acme.id, "stage": "Live"})
    engine.dispatch(DomainEvent(EventType.DELIVERY_STAGE_CHANGED, delivery.id, {"stage": DeliveryStage.LIVE}))
    assert store.get_by_id(Collection.ACCOUNTS, acme.id).lifecycle == AccountLifecycle.CUSTOMER_ACTIVE


def test_ticket_filter_requires_critical_severity(store, engine, acme):
    ticket = store.insert(Collection.TICKETS, {"accountId": acme.id, "severity": "High"})
    assert engine.dispatch(DomainEvent(EventType.TICKET_UPDATED, ticket.id, {"severity": "High"})) == []
    assert engine.dispatch(DomainEvent(EventType.TICKET_UPDATED, ticket.id, {"severity": "bogus"})) == []


def test_past_due_event_uses_payload_account(store, engine, acme):
    delivery = store.insert(Collection.DELIVERIES, {"accountId": acme.id})
    engine.dispatch(DomainEvent(EventType.SUBSCRIPTION_PAST_DUE, "sub-1", {"account_id": acme.id}))
    assert store.get_by_id(Collection.DELIVERIES, delivery.id).status == DeliveryStage.BLOCKED


def test_follow_up_event_passes_content(store, engine):
    lead = store.insert(Collection.LEADS, {"name": "Alex"})
    engine.dispatch(DomainEvent(EventType.FOLLOW_UP_SENT, lead.id, {"content": "Quick check-in?"}))
    assert store.get_collection(Collection.ACTIVITIES)[0].notes == "AI Follow-up: Quick check-in?..."


def test_paused_trigger_is_skipped(store, engine, acme):
    deal = store.insert(Collection.OPPORTUNITIES, {"name": "Deal", "accountId": acme.id})

    assert engine.pause("closed_won_fulfillment")
    results = engine.dispatch(DomainEvent(EventType.DEAL_STAGE_CHANGED, deal.id, {"stage": "Closed Won"}))
    assert fired(results) == ["deal_stage_log"]
    assert engine.get_trigger("closed_won_fulfillment").status == TriggerStatus.PAUSED

    assert engine.resume("closed_won_fulfillment")
    results = engine.dispatch(DomainEvent(EventType.DEAL_STAGE_CHANGED, deal.id, {"stage": "Closed Won"}))
    assert "closed_won_fulfillment" in fired(results)
    assert not engine.pause("no_such_trigger")


def test_failing_rule_is_reported_and_others_still_run(caplog):
    engine = TriggerEngine()
    calls = []

    def explode(event):
        raise RuntimeError("store offline")

    engine.register(AutomationTrigger("explode", [EventType.LEAD_CREATED], explode))
    engine.register(AutomationTrigger("record", [EventType.LEAD_CREATED], calls.append))

    with caplog.at_level(logging.ERROR):
        results = engine.dispatch(DomainEvent(EventType.LEAD_CREATED, "lead-1"))

    assert fired(results) == ["explode", "record"]
    assert not results[0].succeeded
    assert results[0].error == "store offline"
    assert results[1].succeeded
    assert len(calls) == 1
    assert "Trigger explode failed" in caplog.text


def test_duplicate_trigger_names_rejected():
    engine = TriggerEngine()
    engine.register(AutomationTrigger("t", [EventType.LEAD_CREATED], lambda e: None))
    with pytest.raises(ValueError):
        engine.register(AutomationTrigger("t", [EventType.LEAD_UPDATED], lambda e: None))


# =============================================================================
# Schedules
# =============================================================================

@pytest.mark.parametrize("schedule,start,expected", [
    ("hourly", datetime(2026, 3, 2, 10, 15), datetime(2026, 3, 2, 11, 0)),
    ("daily", datetime(2026, 3, 2, 7, 0), datetime(2026, 3, 2, 8, 0)),
    ("daily", datetime(2026, 3, 2, 10, 0), datetime(2026, 3, 3, 8, 0)),
    ("weekly", datetime(2026, 3, 2, 7, 0), datetime(2026, 3, 2, 8, 0)),
    ("weekly", datetime(2026, 3, 2, 10, 0), datetime(2026, 3, 9, 8, 0)),
    ("weekly", datetime(2026, 3, 4, 10, 0), datetime(2026, 3, 9, 8, 0)),
])
def test_next_run(schedule, start, expected):
    trigger = ScheduledTrigger("t", schedule, lambda e: None, start=start)
    assert trigger.next_run == expected


def test_unknown_schedule_rejected():
    with pytest.raises(ValueError):
        ScheduledTrigger("t", "fortnightly", lambda e: None)


def test_run_due_fires_daily_sweeps_once(store, engine, now):
    store.insert(Collection.ACCOUNTS, {
        "name": "Globex", "mrr": 100, "renewalDate": (now.date() + timedelta(days=10)).isoformat(),
    })

    assert engine.run_due(now) == []

    due = datetime(2026, 3, 3, 8, 0)
    results = engine.run_due(due)
    assert fired(results) == ["daily_health_audit", "daily_renewal_check"]
    assert len(store.get_collection(Collection.OPPORTUNITIES)) == 1

    assert engine.run_due(due + timedelta(minutes=5)) == []
    assert engine.get_trigger("daily_health_audit").next_run == datetime(2026, 3, 4, 8, 0)


def test_scheduled_triggers_ignore_domain_events(engine):
    results = engine.dispatch(DomainEvent(EventType.SCHEDULED_CHECK, timestamp=datetime(2030, 1, 1)))
    assert results == []


def test_on_demand_sweeps(store, engine, acme):
    store.insert(Collection.SUBSCRIPTIONS, {"accountId": acme.id, "status": "Past Due"})
    results = engine.dispatch(DomainEvent(EventType.HEALTH_AUDIT_REQUESTED))
    assert fired(results) == ["health_audit"]
    assert store.get_by_id(Collection.ACCOUNTS, acme.id).lifecycle == AccountLifecycle.AT_RISK


# =============================================================================
# Events without payload values
# =============================================================================

def test_qualified_lead_survives_update_then_converts(store, engine):
    lead = store.insert(Collection.LEADS, {"name": "Alex", "company": "Initech"})
    engine.dispatch(DomainEvent(EventType.LEAD_CREATED, lead.id))
    store.update_by_id(Collection.LEADS, lead.id, {"status": LeadStatus.QUALIFIED})

    engine.dispatch(DomainEvent(EventType.LEAD_UPDATED, lead.id))
    assert store.get_by_id(Collection.LEADS, lead.id).status == LeadStatus.QUALIFIED

    results = engine.dispatch(DomainEvent(EventType.LEAD_QUALIFIED, lead.id))
    assert results[0].outcome.fired
    assert store.get_by_id(Collection.LEADS, lead.id).converted_deal_id is not None


def test_past_due_event_resolves_account_from_subscription(store, engine, acme):
    delivery = store.insert(Collection.DELIVERIES, {"accountId": acme.id})
    subscription = store.insert(Collection.SUBSCRIPTIONS, {"accountId": acme.id, "status": "Past Due"})

    engine.dispatch(DomainEvent(EventType.SUBSCRIPTION_PAST_DUE, subscription.id))

    assert store.get_by_id(Collection.DELIVERIES, delivery.id).status == DeliveryStage.BLOCKED


def test_critical_ticket_without_payload(store, engine, acme):
    ticket = store.insert(Collection.TICKETS, {"accountId": acme.id, "severity": "Critical"})

    results = engine.dispatch(DomainEvent(EventType.TICKET_CREATED, ticket.id))

    assert fired(results) == ["critical_ticket_penalty"]
    assert store.get_by_id(Collection.ACCOUNTS, acme.id).health_score == 65


def test_high_ticket_without_payload_is_ignored(store, engine, acme):
    ticket = store.insert(Collection.TICKETS, {"accountId": acme.id, "severity": "High"})
    assert engine.dispatch(DomainEvent(EventType.TICKET_CREATED, ticket.id)) == []
    assert store.get_by_id(Collection.ACCOUNTS, acme.id).health_score == 90


def test_live_delivery_without_payload(store, engine, acme):
    delivery = store.insert(Collection.DELIVERIES, {"accountId": acme.id, "stage": "Live"})
    engine.dispatch(DomainEvent(EventType.DELIVERY_STAGE_CHANGED, delivery.id))
    assert store.get_by_id(Collection.ACCOUNTS, acme.id).lifecycle == AccountLifecycle.CUSTOMER_ACTIVE
