"""
Core CRM Entities - System of Record

This module defines the closed set of typed entities stored in the
document store. Records arriving at the store boundary (from the UI,
a JSON file or a test) are normalised through `from_record`:

- camelCase and snake_case keys are both accepted
- unknown fields are dropped
- enum strings are coerced to members; unrecognised values fall back
  to the field default (None for optional enums)
- bounded scores are clamped to [0, 100]

Entities:
- Lead: prospect captured on intake and qualified by scoring
- Account: customer or prospect organisation
- Opportunity: sales pipeline record (deal)
- Delivery: post-sale implementation project
- Milestone: dated sub-task of a delivery
- Activity: append-only touchpoint log entry
- SupportTicket: customer issue record
- Subscription: billing record
- Contact: individual stakeholder within an account
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from functools import lru_cache
from typing import Any, ClassVar, Mapping, Optional, Union, get_args, get_origin, get_type_hints
import logging

from .exceptions import InvalidRecordError, UnknownCollectionError

logger = logging.getLogger(__name__)


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def _normalize_key(key: str) -> str:
    return key.replace("_", "").lower()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _normalize_dashes(value: str) -> str:
    return value.replace("—", "-").replace("–", "-")


# =============================================================================
# Enumerations
# =============================================================================

class LeadStatus(str, Enum):
    NEW = "New"
    ENGAGED = "Engaged"
    QUALIFIED = "Qualified"
    DISQUALIFIED = "Disqualified"
    NURTURE = "Nurture"


class LeadTemperature(str, Enum):
    HOT = "Hot"
    WARM = "Warm"
    COLD = "Cold"


class LeadChannel(str, Enum):
    WHATSAPP = "WhatsApp"
    INSTAGRAM = "Instagram"
    WEBCHAT = "Webchat"
    PHONE = "Phone"
    EMAIL = "Email"
    LINKEDIN = "LinkedIn"
    REFERRAL = "Referral"


class ICPTier(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class AccountLifecycle(str, Enum):
    """Account progression from prospect to customer to churn."""
    TARGET = "Target"
    ENGAGED = "Engaged"
    QUALIFIED = "Qualified"
    PROPOSAL_SENT = "Proposal Sent"
    CUSTOMER_ONBOARDING = "Customer-Onboarding"
    CUSTOMER_ACTIVE = "Customer-Active"
    CUSTOMER_EXPANSION = "Customer-Expansion"
    AT_RISK = "At Risk"
    CHURNED = "Churned"
    PARTNER = "Partner"

    @classmethod
    def _missing_(cls, value):
        # Older data sets separate "Customer" and the phase with an em dash
        if isinstance(value, str):
            normalized = _normalize_dashes(value)
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class AccountStatus(str, Enum):
    PROSPECT = "Prospect"
    ACTIVE = "Active"
    PAUSED = "Paused"
    CHURNED = "Churned"
    PARTNER = "Partner"


class HealthStatus(str, Enum):
    """Threshold-derived account health tier."""
    GREEN = "Green"
    YELLOW = "Yellow"
    RED = "Red"

    @classmethod
    def from_score(cls, score: float) -> "HealthStatus":
        if score >= 80:
            return cls.GREEN
        if score >= 55:
            return cls.YELLOW
        return cls.RED

    @property
    def severity(self) -> int:
        return list(HealthStatus).index(self)


class OpportunityStage(str, Enum):
    DISCOVERY = "Discovery"
    QUALIFIED = "Qualified"
    PROPOSAL = "Proposal"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"

    @property
    def is_terminal(self) -> bool:
        return self in (OpportunityStage.CLOSED_WON, OpportunityStage.CLOSED_LOST)


class DeliveryStage(str, Enum):
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    QA = "QA"
    LIVE = "Live"
    MONITORING = "Monitoring"
    COMPLETED = "Completed"
    BLOCKED = "Blocked"

    @classmethod
    def _missing_(cls, value):
        # "Monitoring (7d)" in legacy records
        if isinstance(value, str) and value.startswith("Monitoring"):
            return cls.MONITORING
        return None


class RiskLevel(str, Enum):
    LOW = "Low"
    MED = "Med"
    HIGH = "High"


class MilestoneStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    WAITING = "Waiting"
    DONE = "Done"


class ActivityType(str, Enum):
    CALL = "Call"
    MEETING = "Meeting"
    EMAIL = "Email"
    WHATSAPP = "WhatsApp"
    TASK = "Task"


class TicketSeverity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class TicketStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    WAITING_ON_CLIENT = "Waiting on Client"
    RESOLVED = "Resolved"


class SubscriptionStatus(str, Enum):
    ACTIVE = "Active"
    PAST_DUE = "Past Due"
    CANCELED = "Canceled"


class Collection(str, Enum):
    """Collection names understood by the document store."""
    LEADS = "leads"
    ACCOUNTS = "accounts"
    OPPORTUNITIES = "opportunities"
    DELIVERIES = "deliveries"
    MILESTONES = "milestones"
    ACTIVITIES = "activities"
    TICKETS = "tickets"
    SUBSCRIPTIONS = "subscriptions"
    CONTACTS = "contacts"


# =============================================================================
# Record coercion
# =============================================================================

def _coerce(hint: Any, value: Any) -> Any:
    """Coerce a raw record value to the annotated field type.

    Raises ValueError/TypeError when the value cannot be represented;
    the caller then keeps the field default.
    """
    optional = False
    if get_origin(hint) is Union:
        args = [a for a in get_args(hint) if a is not type(None)]
        hint = args[0]
        optional = True

    if value is None or (optional and value == ""):
        if optional:
            return None
        raise ValueError("field is not optional")

    if get_origin(hint) is list:
        if isinstance(value, (list, tuple, set)):
            return [item for item in value if item is not None]
        return [value]

    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(value)
    if hint is bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)
    if hint is int:
        return int(round(float(value)))
    if hint is float:
        return float(value)
    if hint is datetime:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if hint is date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value)[:10])
    if hint is str:
        return str(value)
    return value


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    return value


@lru_cache(maxsize=None)
def _field_index(cls: type) -> dict:
    hints = get_type_hints(cls)
    return {
        _normalize_key(f.name): (f.name, hints[f.name])
        for f in fields(cls)
    }


class Entity:
    """
    Mixin shared by all stored entities.

    Subclasses are dataclasses declaring `collection` and `id_prefix`.
    """
    collection: ClassVar[Collection]
    id_prefix: ClassVar[str]

    @classmethod
    def from_record(cls, record: Union[Mapping, "Entity"]) -> "Entity":
        """Build a validated entity from a loosely-typed record."""
        if isinstance(record, Entity):
            if not isinstance(record, cls):
                raise InvalidRecordError(
                    cls.collection.value,
                    f"expected {cls.__name__}, got {type(record).__name__}"
                )
            record = record.as_fields()
        if not isinstance(record, Mapping):
            raise InvalidRecordError(
                cls.collection.value,
                f"expected a mapping, got {type(record).__name__}"
            )

        index = _field_index(cls)
        values = {}
        for key, raw in record.items():
            entry = index.get(_normalize_key(str(key)))
            if entry is None:
                continue
            name, hint = entry
            try:
                values[name] = _coerce(hint, raw)
            except (TypeError, ValueError):
                logger.debug("Dropping %s.%s=%r: not coercible", cls.__name__, name, raw)
        return cls(**values)

    def as_fields(self) -> dict:
        """Field name to value mapping, without serialisation."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def to_record(self) -> dict:
        """JSON-safe record with camelCase keys."""
        return {_camel(f.name): _serialize(getattr(self, f.name)) for f in fields(self)}


# =============================================================================
# Entities
# =============================================================================

@dataclass
class Lead(Entity):
    """
    Prospect record created on intake.

    Mutated by scoring, account linking, qualification and follow-up
    logging; never hard-deleted in normal flow.
    """
    collection: ClassVar[Collection] = Collection.LEADS
    id_prefix: ClassVar[str] = "lead"

    id: str = ""
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    source: str = ""
    channel: Optional[LeadChannel] = None
    campaign_utm: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW
    temperature: LeadTemperature = LeadTemperature.COLD
    notes: str = ""
    created_at: Optional[datetime] = None
    owner_id: Optional[str] = None

    # Weak references
    linked_account_id: Optional[str] = None
    linked_contact_id: Optional[str] = None
    converted_deal_id: Optional[str] = None

    # Qualification attributes
    dna_score: int = 0
    icp_fit: Optional[ICPTier] = None
    company_size: Optional[str] = None
    lead_volume: Optional[str] = None
    urgency: Optional[str] = None
    pain_points: list[str] = field(default_factory=list)
    authority: Optional[str] = None
    budget_range: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    niche: Optional[str] = None
    main_pain: Optional[str] = None

    last_interaction: Optional[datetime] = None

    def __post_init__(self):
        self.dna_score = int(clamp(self.dna_score))


@dataclass
class Account(Entity):
    """
    Customer or prospect organisation.

    `health_status` is derived from `health_score`; `health_flag` is
    raised only by the critical-ticket penalty and cleared by the
    health audit.
    """
    collection: ClassVar[Collection] = Collection.ACCOUNTS
    id_prefix: ClassVar[str] = "acc"

    id: str = ""
    name: str = ""
    domain: Optional[str] = None
    website: Optional[str] = None
    industry: str = ""
    size: Optional[str] = None
    lifecycle: AccountLifecycle = AccountLifecycle.TARGET
    status: AccountStatus = AccountStatus.PROSPECT
    icp_tier: Optional[ICPTier] = None
    health_score: int = 85
    health_flag: Optional[HealthStatus] = None
    mrr: float = 0.0
    plan: Optional[str] = None
    renewal_date: Optional[date] = None

    # Owners
    sales_owner: Optional[str] = None
    delivery_owner: Optional[str] = None
    cs_owner: Optional[str] = None

    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    next_best_action: Optional[str] = None

    def __post_init__(self):
        self.health_score = int(clamp(self.health_score))

    @property
    def health_status(self) -> HealthStatus:
        derived = HealthStatus.from_score(self.health_score)
        if self.health_flag is not None and self.health_flag.severity > derived.severity:
            return self.health_flag
        return derived

    def to_record(self) -> dict:
        record = super().to_record()
        record["healthStatus"] = self.health_status.value
        return record


@dataclass
class Opportunity(Entity):
    """Sales pipeline record; Closed Won and Closed Lost are terminal."""
    collection: ClassVar[Collection] = Collection.OPPORTUNITIES
    id_prefix: ClassVar[str] = "opp"

    id: str = ""
    name: str = ""
    account_id: Optional[str] = None
    account_name: str = ""
    primary_contact_id: Optional[str] = None
    stage: OpportunityStage = OpportunityStage.DISCOVERY
    amount: float = 0.0
    mrr: float = 0.0
    probability: int = 0
    close_date_target: Optional[date] = None
    owner_id: Optional[str] = None
    next_step: str = ""
    loss_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    def __post_init__(self):
        self.probability = int(clamp(self.probability))


@dataclass
class Delivery(Entity):
    """Post-sale implementation project created by a Closed Won deal."""
    collection: ClassVar[Collection] = Collection.DELIVERIES
    id_prefix: ClassVar[str] = "del"

    id: str = ""
    name: str = ""
    account_id: Optional[str] = None
    account_name: str = ""
    deal_id: Optional[str] = None
    package_tier: str = "Pro"
    stage: DeliveryStage = DeliveryStage.PLANNING
    status: DeliveryStage = DeliveryStage.PLANNING
    priority: str = "Standard"
    owner_id: Optional[str] = None
    start_date: Optional[date] = None
    go_live_target_date: Optional[date] = None
    due_date: Optional[date] = None
    completed_date: Optional[date] = None
    risk_level: RiskLevel = RiskLevel.LOW
    blocker_type: Optional[str] = None
    escalation_flag: bool = False
    handoff_to_cs_done: bool = False
    checklist_progress: int = 0
    on_time: bool = True
    qa_status: str = "Pending"
    promised_timeline: Optional[str] = None

    # Access status
    wa_access: Optional[str] = None
    ig_access: Optional[str] = None
    twilio_access: Optional[str] = None
    crm_access: Optional[str] = None
    gcal_access: Optional[str] = None

    def __post_init__(self):
        self.checklist_progress = int(clamp(self.checklist_progress))


@dataclass
class Milestone(Entity):
    collection: ClassVar[Collection] = Collection.MILESTONES
    id_prefix: ClassVar[str] = "mil"

    id: str = ""
    delivery_id: Optional[str] = None
    name: str = ""
    owner_id: Optional[str] = None
    due_date: Optional[date] = None
    status: MilestoneStatus = MilestoneStatus.NOT_STARTED
    acceptance_criteria: Optional[str] = None
    blocker: Optional[str] = None


@dataclass
class Activity(Entity):
    """Touchpoint log entry. Append-only."""
    collection: ClassVar[Collection] = Collection.ACTIVITIES
    id_prefix: ClassVar[str] = "act"

    id: str = ""
    type: ActivityType = ActivityType.TASK
    date_time: Optional[datetime] = None
    owner_id: Optional[str] = None
    account_id: Optional[str] = None
    contact_id: Optional[str] = None
    deal_id: Optional[str] = None
    delivery_id: Optional[str] = None
    outcome: str = ""
    notes: str = ""
    next_action_date: Optional[date] = None


@dataclass
class SupportTicket(Entity):
    collection: ClassVar[Collection] = Collection.TICKETS
    id_prefix: ClassVar[str] = "tix"

    id: str = ""
    account_id: Optional[str] = None
    delivery_id: Optional[str] = None
    severity: TicketSeverity = TicketSeverity.LOW
    status: TicketStatus = TicketStatus.OPEN
    category: Optional[str] = None
    summary: str = ""
    owner_id: Optional[str] = None
    opened_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    sla_due_at: Optional[datetime] = None

    # Set once the critical-ticket health penalty has been charged
    penalty_applied: bool = False

    @property
    def is_open(self) -> bool:
        return self.status != TicketStatus.RESOLVED


@dataclass
class Subscription(Entity):
    collection: ClassVar[Collection] = Collection.SUBSCRIPTIONS
    id_prefix: ClassVar[str] = "sub"

    id: str = ""
    account_id: Optional[str] = None
    plan: str = ""
    mrr: float = 0.0
    billing_cycle: str = "Monthly"
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    start_date: Optional[date] = None
    renewal_date: Optional[date] = None
    last_payment_date: Optional[date] = None
    next_invoice_date: Optional[date] = None


@dataclass
class Contact(Entity):
    collection: ClassVar[Collection] = Collection.CONTACTS
    id_prefix: ClassVar[str] = "con"

    id: str = ""
    account_id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    role_title: str = ""
    department: str = ""
    is_primary: bool = False
    last_contacted_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


ENTITY_TYPES: dict[Collection, type] = {
    entity.collection: entity
    for entity in (
        Lead, Account, Opportunity, Delivery, Milestone,
        Activity, SupportTicket, Subscription, Contact
    )
}


def entity_type(name: Union[str, Collection]) -> type:
    """Resolve a collection name to its entity class."""
    try:
        return ENTITY_TYPES[Collection(name)]
    except ValueError:
        raise UnknownCollectionError(str(name)) from None
