#!/usr/bin/env python3
"""
Voxmation OS Automation Core - Main Demo

This script walks one lead through the revenue lifecycle on an
in-memory store, driving every step through the trigger engine:

1. Lead intake: scoring and account linking
2. Qualification: Lead -> Deal conversion
3. Closed Won: delivery and milestones
4. Delivery Live: account activation
5. Support and billing: critical ticket, past-due block
6. Daily sweep: health audit and renewals
7. Text generation (falls back to static text without an API key)
"""

from datetime import date, datetime, timedelta
import asyncio

from voxmation.automation import AutomationService, DomainEvent, EventType, TriggerEngine
from voxmation.config import configure_logging, get_settings
from voxmation.core import Collection, InMemoryDocumentStore
from voxmation.intelligence import TextGenerationService


def seed_store(today: date) -> InMemoryDocumentStore:
    """Seed an in-memory store with a small demo data set."""
    return InMemoryDocumentStore({
        "accounts": [
            {
                "id": "acc-1", "name": "Apex Dental", "domain": "apexdental.com",
                "industry": "Healthcare", "lifecycle": "Qualified", "status": "Prospect",
                "healthScore": 85, "mrr": 0, "salesOwner": "usr-1",
            },
            {
                "id": "acc-2", "name": "Summit Realty", "domain": "summitrealty.io",
                "industry": "Real Estate", "lifecycle": "Customer-Active", "status": "Active",
                "healthScore": 90, "mrr": 2500, "salesOwner": "usr-2",
                "renewalDate": (today + timedelta(days=30)).isoformat(),
            },
        ],
        "leads": [
            {
                "id": "lead-1", "name": "Sarah Lin", "email": "sarah@apexdental.com",
                "company": "Apex Dental", "source": "Website", "channel": "WhatsApp",
                "icpFit": "A", "companySize": "11-50", "leadVolume": "31-100/day",
                "urgency": "Now (0-7 days)", "painPoints": ["Missed calls after hours"],
                "authority": "Decision maker", "budgetRange": "$2k-10k",
                "tags": ["Hot Lead"], "ownerId": "usr-1",
            },
        ],
        "subscriptions": [
            {"id": "sub-1", "accountId": "acc-2", "plan": "Growth", "mrr": 2500, "status": "Active"},
        ],
    })


def print_header(title: str) -> None:
    print("=" * 60)
    print(title)
    print("=" * 60)


def print_results(results) -> None:
    for result in results:
        outcome = result.outcome
        detail = getattr(outcome, "reason", None) or outcome
        status = "ok" if result.succeeded else f"FAILED ({result.error})"
        print(f"  - {result.trigger_name}: {status} {detail or ''}")
    print()


def run_lifecycle_demo(store, engine: TriggerEngine) -> None:
    """Drive the demo lead from intake to an active customer."""
    print_header("1. LEAD INTAKE")
    print_results(engine.dispatch(DomainEvent(EventType.LEAD_CREATED, "lead-1")))
    lead = store.get_by_id(Collection.LEADS, "lead-1")
    print(f"  DNA score: {lead.dna_score} ({lead.temperature.value}), status {lead.status.value}")
    print(f"  Linked account: {lead.linked_account_id}")
    print()

    print_header("2. QUALIFICATION")
    print_results(engine.dispatch(DomainEvent(EventType.LEAD_QUALIFIED, "lead-1")))
    deal_id = store.get_by_id(Collection.LEADS, "lead-1").converted_deal_id
    deal = store.get_by_id(Collection.OPPORTUNITIES, deal_id)
    print(f"  Deal: {deal.name} ${deal.amount:,.0f}, close by {deal.close_date_target}")
    print()

    print_header("3. CLOSED WON")
    print_results(engine.dispatch(DomainEvent(
        EventType.DEAL_STAGE_CHANGED, deal_id, {"stage": "Closed Won"}
    )))
    delivery = store.get_collection(Collection.DELIVERIES)[0]
    milestones = [m for m in store.get_collection(Collection.MILESTONES) if m.delivery_id == delivery.id]
    print(f"  Delivery: {delivery.name}, go-live {delivery.go_live_target_date}")
    for milestone in milestones:
        print(f"    * {milestone.name} due {milestone.due_date}")
    print()

    print_header("4. DELIVERY LIVE")
    store.update_by_id(Collection.DELIVERIES, delivery.id, {"stage": "Live"})
    print_results(engine.dispatch(DomainEvent(
        EventType.DELIVERY_STAGE_CHANGED, delivery.id, {"stage": "Live"}
    )))
    account = store.get_by_id(Collection.ACCOUNTS, "acc-1")
    print(f"  {account.name}: {account.lifecycle.value}, MRR ${account.mrr:,.0f}")
    print()

    print_header("5. SUPPORT AND BILLING")
    ticket = store.insert(Collection.TICKETS, {
        "accountId": "acc-1", "severity": "Critical", "summary": "Voice agent not answering"
    })
    print_results(engine.dispatch(DomainEvent(
        EventType.TICKET_CREATED, ticket.id, {"severity": "Critical"}
    )))
    account = store.get_by_id(Collection.ACCOUNTS, "acc-1")
    print(f"  {account.name}: health {account.health_score} ({account.health_status.value})")

    store.update_by_id(Collection.SUBSCRIPTIONS, "sub-1", {"status": "Past Due"})
    print_results(engine.dispatch(DomainEvent(
        EventType.SUBSCRIPTION_PAST_DUE, "sub-1", {"account_id": "acc-2"}
    )))


def run_daily_sweep(store, engine: TriggerEngine, now: datetime) -> None:
    print_header("6. DAILY SWEEP")
    print_results(engine.run_due(now + timedelta(days=1)))
    for account in store.get_collection(Collection.ACCOUNTS):
        print(
            f"  {account.name}: health {account.health_score} "
            f"({account.health_status.value}), {account.lifecycle.value}"
        )
    renewals = [o for o in store.get_collection(Collection.OPPORTUNITIES) if "Renewal" in o.name]
    for deal in renewals:
        print(f"  Renewal deal: {deal.name}, close by {deal.close_date_target}")
    print()


async def run_text_generation_demo(store) -> None:
    print_header("7. TEXT GENERATION")
    settings = get_settings()
    print(f"  LLM Provider: {settings.llm.provider.value} ({settings.llm.model_name})")

    text = TextGenerationService(settings=settings)
    lead = store.get_by_id(Collection.LEADS, "lead-1")
    deal = store.get_by_id(Collection.OPPORTUNITIES, lead.converted_deal_id)

    analysis = await text.analyze_opportunity_probability(deal, lead)
    print(f"  Probability: {analysis.probability}% - {analysis.reasoning}")
    print(f"  Recommendation: {analysis.recommendation}")

    draft = await text.generate_automated_follow_up(
        lead.name, lead.company, lead.status.value, "2 days ago", lead.pain_points
    )
    print(f"  Follow-up draft: {draft[:80]}")
    print()


def main():
    """Main entry point."""
    configure_logging()

    now = datetime.now()
    store = seed_store(now.date())
    service = AutomationService(store, clock=lambda: now)
    engine = TriggerEngine.create_default(service)

    changes = []
    store.subscribe(changes.append)

    print()
    print("+" + "=" * 58 + "+")
    print("|           VOXMATION OS AUTOMATION DEMONSTRATION          |")
    print("+" + "=" * 58 + "+")
    print()

    run_lifecycle_demo(store, engine)
    run_daily_sweep(store, engine, now)
    asyncio.run(run_text_generation_demo(store))

    print_header("DEMONSTRATION COMPLETE")
    print(f"  Store notifications: {len(changes)}")
    print(f"  Activities logged: {len(store.get_collection(Collection.ACTIVITIES))}")
    print()


if __name__ == "__main__":
    main()
