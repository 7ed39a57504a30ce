"""
Automation Engine

Rules that keep leads, deals, deliveries and accounts consistent as
they move through the revenue lifecycle, and the trigger engine that
binds them to domain events and schedules.
"""

from .events import DomainEvent, EventType
from .service import (
    AutomationResult,
    AutomationService,
    Rule,
    email_domain,
    normalize_domain,
)
from .triggers import (
    AutomationTrigger,
    ScheduledTrigger,
    Trigger,
    TriggerEngine,
    TriggerResult,
    TriggerStatus,
    TriggerType,
)

__all__ = [
    # Events
    "DomainEvent",
    "EventType",
    # Rules
    "AutomationResult",
    "AutomationService",
    "Rule",
    "email_domain",
    "normalize_domain",
    # Triggers
    "AutomationTrigger",
    "ScheduledTrigger",
    "Trigger",
    "TriggerEngine",
    "TriggerResult",
    "TriggerStatus",
    "TriggerType",
]
