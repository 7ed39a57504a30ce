"""
Domain Events

State transitions reported by the CRUD layer that the automation
rules react to. Events are plain records; the trigger engine maps
each event type to the rules it fires.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Domain events understood by the default trigger catalog."""
    LEAD_CREATED = "lead_created"
    LEAD_UPDATED = "lead_updated"
    LEAD_QUALIFIED = "lead_qualified"
    DEAL_STAGE_CHANGED = "deal_stage_changed"
    DELIVERY_STAGE_CHANGED = "delivery_stage_changed"
    TICKET_CREATED = "ticket_created"
    TICKET_UPDATED = "ticket_updated"
    SUBSCRIPTION_PAST_DUE = "subscription_past_due"
    FOLLOW_UP_SENT = "follow_up_sent"
    HEALTH_AUDIT_REQUESTED = "health_audit_requested"
    RENEWAL_CHECK_REQUESTED = "renewal_check_requested"
    SCHEDULED_CHECK = "scheduled_check"


@dataclass
class DomainEvent:
    """
    An event that can fire automation rules.

    `entity_id` names the entity whose state changed (lead, deal,
    delivery, ticket, subscription or account); `payload` carries the
    new values the rule filters look at, e.g. {"stage": "Closed Won"}.
    Filters fall back to the stored entity when a value is absent.
    """
    event_type: EventType = EventType.SCHEDULED_CHECK
    entity_id: Optional[str] = None
    payload: dict = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if isinstance(self.event_type, str):
            self.event_type = EventType(self.event_type)
