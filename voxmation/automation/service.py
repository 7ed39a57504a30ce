"""
Automation Service - Account, Deal and Delivery Rules

Each public method is one stateless rule reacting to one domain event.
A rule reads what it needs from the injected document store, computes
derived updates and writes them back inside a single store transaction,
so observers see all of its writes together and receive one change
notification.

Rules:
- Lead-Account Link: lead email domain matches an account domain
- Lead -> Deal Conversion: qualified lead becomes a Discovery deal
- Deal Stage Change Log: stage transitions are logged as activities
- Closed-Won Fulfillment: delivery, standard milestones, onboarding
- Delivery Live -> Account Active
- Critical Ticket Penalty: health score -25, status Red
- Billing Block: past-due account blocks its deliveries
- Health Audit: full recompute of every account's health
- Renewal Proximity: renewal deal for accounts renewing soon
- Universal Pulse: account last-activity timestamp
- Follow-up Log: AI follow-up sent to a lead

Missing entities are not errors: a rule whose input is absent returns
an unfired result and writes nothing. Lead -> Deal and Closed-Won are
not naturally idempotent and carry explicit guards (converted_deal_id,
an existing delivery for the deal); the critical-ticket penalty is
charged once per ticket.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional
import logging

from ..config.settings import AutomationConfig, get_settings
from ..core.entities import (
    Account,
    AccountLifecycle,
    AccountStatus,
    Activity,
    ActivityType,
    Collection,
    Delivery,
    DeliveryStage,
    Entity,
    HealthStatus,
    LeadStatus,
    Milestone,
    MilestoneStatus,
    Opportunity,
    OpportunityStage,
    RiskLevel,
    Subscription,
    SubscriptionStatus,
    SupportTicket,
    TicketSeverity,
    clamp,
)
from ..core.store import DocumentStore

logger = logging.getLogger(__name__)


class Rule(str, Enum):
    """Names of the automation rules."""
    LEAD_ACCOUNT_LINK = "lead_account_link"
    LEAD_TO_DEAL = "lead_to_deal"
    DEAL_STAGE_LOG = "deal_stage_log"
    CLOSED_WON_FULFILLMENT = "closed_won_fulfillment"
    DELIVERY_LIVE = "delivery_live"
    CRITICAL_TICKET_PENALTY = "critical_ticket_penalty"
    BILLING_BLOCK = "billing_block"
    HEALTH_AUDIT = "health_audit"
    RENEWAL_PROXIMITY = "renewal_proximity"
    UNIVERSAL_PULSE = "universal_pulse"
    FOLLOW_UP_LOG = "follow_up_log"


@dataclass
class AutomationResult:
    """Outcome of one rule invocation."""
    rule: Rule
    fired: bool = False
    reason: str = ""

    # collection name -> ids
    created: dict = field(default_factory=dict)
    updated: dict = field(default_factory=dict)

    def record_created(self, entity: Entity) -> None:
        self.created.setdefault(entity.collection.value, []).append(entity.id)

    def record_updated(self, collection: Collection, entity_id: str) -> None:
        ids = self.updated.setdefault(collection.value, [])
        if entity_id not in ids:
            ids.append(entity_id)

    def created_ids(self, collection: Collection) -> list:
        return self.created.get(collection.value, [])

    def updated_ids(self, collection: Collection) -> list:
        return self.updated.get(collection.value, [])

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated)


def email_domain(email: Optional[str]) -> Optional[str]:
    """Domain part of an email address, lower-cased."""
    if not email or "@" not in email:
        return None
    domain = email.rsplit("@", 1)[1].strip().lower()
    return domain or None


def normalize_domain(domain: Optional[str]) -> Optional[str]:
    if not domain:
        return None
    domain = domain.strip().lower()
    if domain.startswith("www."):
        domain = domain[4:]
    return domain or None


class AutomationService:
    """
    Catalog of automation rules over an injected document store.

    The service holds no state between calls. `clock` returns the
    current time and can be replaced for deterministic runs.
    """

    MILESTONE_PLAN = (
        ("Kickoff Sync", 0),
        ("Prompt Engineering", 3),
        ("Final QA & Go-Live", 14),
    )
    RENEWAL_MARKER = "Renewal"

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = None,
        config: AutomationConfig = None
    ):
        self.store = store
        self.config = config or get_settings().automation
        self._clock = clock or datetime.now

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self.now().date()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _skip(self, rule: Rule, reason: str) -> AutomationResult:
        logger.debug("%s skipped: %s", rule.value, reason)
        return AutomationResult(rule=rule, fired=False, reason=reason)

    def _log_activity(self, result: AutomationResult, **fields) -> Activity:
        fields.setdefault("date_time", self.now())
        activity = self.store.insert(Collection.ACTIVITIES, Activity(**fields))
        result.record_created(activity)
        return activity

    def _touch_account(self, result: AutomationResult, account_id: Optional[str]) -> bool:
        if not account_id:
            return False
        updated = self.store.update_by_id(
            Collection.ACCOUNTS, account_id, {"last_activity_at": self.now()}
        )
        if updated is None:
            logger.debug("Pulse skipped: account %s not found", account_id)
            return False
        result.record_updated(Collection.ACCOUNTS, account_id)
        return True

    def _finish(self, result: AutomationResult) -> AutomationResult:
        if result.changed:
            logger.info("%s: %s", result.rule.value, result.reason)
        return result

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    def link_lead_to_account(self, lead_id: str) -> AutomationResult:
        """Link a lead to the account whose domain matches its email."""
        rule = Rule.LEAD_ACCOUNT_LINK
        with self.store.transaction():
            lead = self.store.get_by_id(Collection.LEADS, lead_id)
            if lead is None:
                return self._skip(rule, f"lead {lead_id} not found")

            domain = email_domain(lead.email)
            if domain is None:
                return self._skip(rule, f"lead {lead_id} has no email domain")

            account = next(
                (a for a in self.store.get_collection(Collection.ACCOUNTS)
                 if normalize_domain(a.domain) == domain),
                None
            )
            if account is None:
                return self._skip(rule, f"no account with domain {domain}")

            result = AutomationResult(rule=rule, fired=True)
            if lead.linked_account_id == account.id:
                result.reason = f"lead {lead_id} already linked to {account.id}"
                return result

            self.store.update_by_id(Collection.LEADS, lead_id, {"linked_account_id": account.id})
            result.record_updated(Collection.LEADS, lead_id)
            self._log_activity(
                result,
                type=ActivityType.TASK,
                owner_id=self.config.system_owner_id,
                account_id=account.id,
                outcome="Auto-Link",
                notes=f"Lead {lead.name} auto-linked to Account {account.name} via domain match."
            )
            result.reason = f"lead {lead_id} linked to account {account.id}"

        return self._finish(result)

    def convert_lead_to_deal(self, lead_id: str) -> AutomationResult:
        """Create a Discovery deal for a qualified, not yet converted lead."""
        rule = Rule.LEAD_TO_DEAL
        with self.store.transaction():
            lead = self.store.get_by_id(Collection.LEADS, lead_id)
            if lead is None:
                return self._skip(rule, f"lead {lead_id} not found")
            if lead.status != LeadStatus.QUALIFIED:
                return self._skip(rule, f"lead {lead_id} is {lead.status.value}, not Qualified")
            if lead.converted_deal_id:
                return self._skip(rule, f"lead {lead_id} already converted to {lead.converted_deal_id}")

            now = self.now()
            label = lead.company or lead.name
            deal = self.store.insert(Collection.OPPORTUNITIES, Opportunity(
                name=f"{label} — AI Implementation",
                account_id=lead.linked_account_id,
                account_name=label,
                stage=OpportunityStage.DISCOVERY,
                amount=self.config.deal_default_amount,
                mrr=self.config.deal_default_mrr,
                probability=self.config.deal_default_probability,
                close_date_target=now.date() + timedelta(days=self.config.deal_close_target_days),
                owner_id=lead.owner_id,
                next_step="Discovery Call",
                created_at=now,
                last_activity_at=now
            ))

            result = AutomationResult(rule=rule, fired=True)
            result.record_created(deal)
            self.store.update_by_id(Collection.LEADS, lead_id, {"converted_deal_id": deal.id})
            result.record_updated(Collection.LEADS, lead_id)
            self._touch_account(result, lead.linked_account_id)
            result.reason = f"lead {lead_id} converted to deal {deal.id}"

        return self._finish(result)

    def log_follow_up(self, lead_id: str, content: str) -> AutomationResult:
        """Record an AI-drafted follow-up sent to a lead."""
        rule = Rule.FOLLOW_UP_LOG
        with self.store.transaction():
            lead = self.store.get_by_id(Collection.LEADS, lead_id)
            if lead is None:
                return self._skip(rule, f"lead {lead_id} not found")

            result = AutomationResult(rule=rule, fired=True)
            self._log_activity(
                result,
                type=ActivityType.EMAIL,
                owner_id=lead.owner_id,
                account_id=lead.linked_account_id,
                outcome="Follow-up Sent",
                notes=f"AI Follow-up: {(content or '')[:50]}..."
            )
            self.store.update_by_id(Collection.LEADS, lead_id, {"last_interaction": self.now()})
            result.record_updated(Collection.LEADS, lead_id)
            self._touch_account(result, lead.linked_account_id)
            result.reason = f"follow-up logged for lead {lead_id}"

        return self._finish(result)

    # ------------------------------------------------------------------
    # Deals
    # ------------------------------------------------------------------

    def log_deal_stage_change(self, deal_id: str, new_stage) -> AutomationResult:
        """Log a deal stage transition as an activity and record the stage."""
        rule = Rule.DEAL_STAGE_LOG
        try:
            stage = OpportunityStage(new_stage)
        except ValueError:
            return self._skip(rule, f"unrecognised stage {new_stage!r}")

        with self.store.transaction():
            deal = self.store.get_by_id(Collection.OPPORTUNITIES, deal_id)
            if deal is None:
                return self._skip(rule, f"deal {deal_id} not found")

            now = self.now()
            result = AutomationResult(rule=rule, fired=True)
            self._log_activity(
                result,
                type=ActivityType.TASK,
                owner_id=deal.owner_id,
                account_id=deal.account_id,
                deal_id=deal.id,
                outcome="Stage Update",
                notes=f"Deal stage advanced to: {stage.value}"
            )

            changes = {"stage": stage, "last_activity_at": now}
            if stage.is_terminal and deal.closed_at is None:
                changes["closed_at"] = now
            self.store.update_by_id(Collection.OPPORTUNITIES, deal_id, changes)
            result.record_updated(Collection.OPPORTUNITIES, deal_id)
            self._touch_account(result, deal.account_id)
            result.reason = f"deal {deal_id} moved to {stage.value}"

        return self._finish(result)

    def fulfill_closed_won(self, deal_id: str) -> AutomationResult:
        """
        Start delivery for a won deal.

        Creates one Delivery with the three standard milestones and moves
        the owning account into onboarding, adding the deal's MRR. Refuses
        to run twice for the same deal.
        """
        rule = Rule.CLOSED_WON_FULFILLMENT
        with self.store.transaction():
            deal = self.store.get_by_id(Collection.OPPORTUNITIES, deal_id)
            if deal is None:
                return self._skip(rule, f"deal {deal_id} not found")

            existing = [
                d for d in self.store.get_collection(Collection.DELIVERIES)
                if d.deal_id == deal_id
            ]
            if existing:
                return self._skip(rule, f"deal {deal_id} already has delivery {existing[0].id}")

            now = self.now()
            today = now.date()
            go_live = today + timedelta(days=self.config.delivery_go_live_days)
            account = (
                self.store.get_by_id(Collection.ACCOUNTS, deal.account_id)
                if deal.account_id else None
            )
            account_name = deal.account_name or (account.name if account else "")

            result = AutomationResult(rule=rule, fired=True)
            delivery = self.store.insert(Collection.DELIVERIES, Delivery(
                name=f"{account_name} — Neural Deployment",
                account_id=deal.account_id,
                account_name=account_name,
                deal_id=deal.id,
                package_tier=self.config.delivery_package_tier,
                stage=DeliveryStage.PLANNING,
                status=DeliveryStage.PLANNING,
                owner_id=self.config.default_owner_id,
                start_date=today,
                go_live_target_date=go_live,
                due_date=go_live,
                risk_level=RiskLevel.LOW,
                promised_timeline=f"{self.config.delivery_go_live_days}d"
            ))
            result.record_created(delivery)

            for name, offset in self.MILESTONE_PLAN:
                milestone = self.store.insert(Collection.MILESTONES, Milestone(
                    delivery_id=delivery.id,
                    name=name,
                    owner_id=self.config.default_owner_id,
                    due_date=today + timedelta(days=offset),
                    status=MilestoneStatus.NOT_STARTED
                ))
                result.record_created(milestone)

            if deal.stage != OpportunityStage.CLOSED_WON or deal.closed_at is None:
                self.store.update_by_id(Collection.OPPORTUNITIES, deal_id, {
                    "stage": OpportunityStage.CLOSED_WON,
                    "closed_at": deal.closed_at or now
                })
                result.record_updated(Collection.OPPORTUNITIES, deal_id)

            if account is not None:
                self.store.update_by_id(Collection.ACCOUNTS, account.id, {
                    "lifecycle": AccountLifecycle.CUSTOMER_ONBOARDING,
                    "status": AccountStatus.ACTIVE,
                    "mrr": account.mrr + deal.mrr,
                    "next_best_action": "Schedule Project Kickoff",
                    "last_activity_at": now
                })
                result.record_updated(Collection.ACCOUNTS, account.id)
            else:
                logger.debug("Closed won %s: account %s not found", deal_id, deal.account_id)

            result.reason = f"deal {deal_id} fulfilled by delivery {delivery.id}"

        return self._finish(result)

    # ------------------------------------------------------------------
    # Deliveries, tickets, billing
    # ------------------------------------------------------------------

    def activate_account_on_delivery_live(self, delivery_id: str) -> AutomationResult:
        """Move the owning account to Customer-Active once a delivery is Live."""
        rule = Rule.DELIVERY_LIVE
        with self.store.transaction():
            delivery = self.store.get_by_id(Collection.DELIVERIES, delivery_id)
            if delivery is None:
                return self._skip(rule, f"delivery {delivery_id} not found")
            if delivery.stage != DeliveryStage.LIVE:
                return self._skip(rule, f"delivery {delivery_id} is {delivery.stage.value}, not Live")

            account = (
                self.store.get_by_id(Collection.ACCOUNTS, delivery.account_id)
                if delivery.account_id else None
            )
            if account is None:
                return self._skip(rule, f"account {delivery.account_id} not found")

            result = AutomationResult(rule=rule, fired=True)
            if account.lifecycle == AccountLifecycle.CUSTOMER_ACTIVE:
                result.reason = f"account {account.id} already active"
                return result

            self.store.update_by_id(Collection.ACCOUNTS, account.id, {
                "lifecycle": AccountLifecycle.CUSTOMER_ACTIVE
            })
            result.record_updated(Collection.ACCOUNTS, account.id)
            result.reason = f"account {account.id} active after delivery {delivery_id} went live"

        return self._finish(result)

    def apply_critical_ticket_penalty(self, ticket_id: str) -> AutomationResult:
        """Charge the health penalty for a critical ticket, once per ticket."""
        rule = Rule.CRITICAL_TICKET_PENALTY
        with self.store.transaction():
            ticket = self.store.get_by_id(Collection.TICKETS, ticket_id)
            if ticket is None:
                return self._skip(rule, f"ticket {ticket_id} not found")
            if ticket.severity != TicketSeverity.CRITICAL:
                return self._skip(rule, f"ticket {ticket_id} is {ticket.severity.value}, not Critical")
            if ticket.penalty_applied:
                return self._skip(rule, f"ticket {ticket_id} already penalised")

            account = (
                self.store.get_by_id(Collection.ACCOUNTS, ticket.account_id)
                if ticket.account_id else None
            )
            if account is None:
                return self._skip(rule, f"account {ticket.account_id} not found")

            score = max(0, account.health_score - self.config.critical_ticket_penalty)
            result = AutomationResult(rule=rule, fired=True)
            self.store.update_by_id(Collection.ACCOUNTS, account.id, {
                "health_score": score,
                "health_flag": HealthStatus.RED
            })
            result.record_updated(Collection.ACCOUNTS, account.id)
            self.store.update_by_id(Collection.TICKETS, ticket_id, {"penalty_applied": True})
            result.record_updated(Collection.TICKETS, ticket_id)
            result.reason = f"account {account.id} health {account.health_score} -> {score}"

        return self._finish(result)

    def block_deliveries_for_past_due(self, account_id: str) -> AutomationResult:
        """Block every delivery of an account whose subscription is past due."""
        rule = Rule.BILLING_BLOCK
        with self.store.transaction():
            account = self.store.get_by_id(Collection.ACCOUNTS, account_id)
            if account is None:
                return self._skip(rule, f"account {account_id} not found")

            result = AutomationResult(rule=rule, fired=True)
            for delivery in self.store.get_collection(Collection.DELIVERIES):
                if delivery.account_id != account_id:
                    continue
                if delivery.status == DeliveryStage.BLOCKED and delivery.risk_level == RiskLevel.HIGH:
                    continue
                self.store.update_by_id(Collection.DELIVERIES, delivery.id, {
                    "status": DeliveryStage.BLOCKED,
                    "risk_level": RiskLevel.HIGH,
                    "blocker_type": "Billing"
                })
                result.record_updated(Collection.DELIVERIES, delivery.id)

            blocked = len(result.updated_ids(Collection.DELIVERIES))
            result.reason = f"{blocked} deliveries blocked for account {account_id}"

        return self._finish(result)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def compute_health_score(
        self,
        account_id: str,
        tickets: Iterable[SupportTicket],
        deliveries: Iterable[Delivery],
        subscriptions: Iterable[Subscription]
    ) -> int:
        """Health score for one account from the current facts."""
        score = self.config.health_base_score

        if any(s.account_id == account_id and s.status == SubscriptionStatus.PAST_DUE
               for s in subscriptions):
            score -= self.config.past_due_penalty

        for ticket in tickets:
            if ticket.account_id != account_id or not ticket.is_open:
                continue
            if ticket.severity == TicketSeverity.CRITICAL:
                score -= self.config.open_critical_ticket_penalty
            elif ticket.severity == TicketSeverity.HIGH:
                score -= self.config.open_high_ticket_penalty

        if any(d.account_id == account_id and d.risk_level == RiskLevel.HIGH
               for d in deliveries):
            score -= self.config.high_risk_delivery_penalty

        return int(clamp(score))

    def run_health_audit(self) -> AutomationResult:
        """Recompute health for every account. Safe to rerun at any time."""
        result = AutomationResult(rule=Rule.HEALTH_AUDIT, fired=True)
        with self.store.transaction():
            tickets = self.store.get_collection(Collection.TICKETS)
            deliveries = self.store.get_collection(Collection.DELIVERIES)
            subscriptions = self.store.get_collection(Collection.SUBSCRIPTIONS)

            accounts = self.store.get_collection(Collection.ACCOUNTS)
            for account in accounts:
                score = self.compute_health_score(account.id, tickets, deliveries, subscriptions)
                lifecycle = (
                    AccountLifecycle.AT_RISK
                    if score < self.config.at_risk_threshold
                    else account.lifecycle
                )
                if (score, lifecycle) == (account.health_score, account.lifecycle) \
                        and account.health_flag is None:
                    continue

                self.store.update_by_id(Collection.ACCOUNTS, account.id, {
                    "health_score": score,
                    "health_flag": None,
                    "lifecycle": lifecycle
                })
                result.record_updated(Collection.ACCOUNTS, account.id)

            changed = len(result.updated_ids(Collection.ACCOUNTS))
            result.reason = f"{changed} of {len(accounts)} accounts rescored"

        return self._finish(result)

    def check_renewals(self) -> AutomationResult:
        """Open a renewal deal for accounts renewing inside the window."""
        result = AutomationResult(rule=Rule.RENEWAL_PROXIMITY)
        with self.store.transaction():
            horizon = self.today() + timedelta(days=self.config.renewal_window_days)
            opportunities = self.store.get_collection(Collection.OPPORTUNITIES)

            for account in self.store.get_collection(Collection.ACCOUNTS):
                if account.renewal_date is None or account.renewal_date > horizon:
                    continue
                if any(o.account_id == account.id and self.RENEWAL_MARKER in o.name
                       for o in opportunities):
                    continue

                deal = self.store.insert(Collection.OPPORTUNITIES, Opportunity(
                    name=f"{account.name} — Annual {self.RENEWAL_MARKER}",
                    account_id=account.id,
                    account_name=account.name,
                    stage=OpportunityStage.QUALIFIED,
                    amount=account.mrr * 12,
                    mrr=account.mrr,
                    probability=self.config.renewal_probability,
                    close_date_target=account.renewal_date,
                    owner_id=account.sales_owner or self.config.default_owner_id,
                    next_step="Renewal Discussion",
                    created_at=self.now()
                ))
                opportunities.append(deal)
                result.record_created(deal)

            created = len(result.created_ids(Collection.OPPORTUNITIES))
            result.fired = created > 0
            result.reason = f"{created} renewal deals opened"

        return self._finish(result)

    def pulse_account(self, account_id: str) -> AutomationResult:
        """Stamp an account's last activity time."""
        rule = Rule.UNIVERSAL_PULSE
        with self.store.transaction():
            result = AutomationResult(rule=rule, fired=True)
            if not self._touch_account(result, account_id):
                return self._skip(rule, f"account {account_id} not found")
            result.reason = f"account {account_id} pulsed"
        return self._finish(result)
