"""
Trigger Engine - Event and Schedule-driven Automation

Triggers bind the automation rules to the moments that fire them:
- Event-driven (lead created, deal stage changed, ticket raised)
- Schedule-driven (daily health audit, daily renewal sweep)

A trigger that matches runs its rule action; a rule that raises is
logged and reported as a failed TriggerResult so the remaining
triggers for the same event still run. The rule's own store
transaction has already rolled back at that point.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional
import logging

from ..core.entities import Collection, DeliveryStage, OpportunityStage, TicketSeverity
from ..core.scoring import LeadScorer
from .events import DomainEvent, EventType
from .service import AutomationService

logger = logging.getLogger(__name__)

RuleAction = Callable[[DomainEvent], Any]


class TriggerType(Enum):
    """Types of triggers."""
    EVENT = "event"
    SCHEDULE = "schedule"


class TriggerStatus(Enum):
    """Status of a trigger."""
    ACTIVE = "active"
    PAUSED = "paused"


@dataclass
class TriggerResult:
    """Result of offering one event to one trigger."""
    trigger_name: str = ""
    triggered: bool = False
    succeeded: bool = True
    event: Optional[DomainEvent] = None
    outcome: Any = None
    error: Optional[str] = None
    reason: str = ""


def payload_is(
    event: DomainEvent,
    key: str,
    member: Enum,
    load: Callable[[str], Any] = None
) -> bool:
    """
    True when the event carries `member` (or its value) under `key`.

    When the payload has no `key` and `load` is given, the value is read
    from the stored entity `load(event.entity_id)` instead.
    """
    raw = event.payload.get(key)
    if raw is None and load is not None and event.entity_id:
        entity = load(event.entity_id)
        raw = getattr(entity, key, None) if entity is not None else None
    if raw is None:
        return False
    try:
        return type(member)(raw) == member
    except ValueError:
        return False


class Trigger(ABC):
    """
    Abstract base class for triggers.

    A trigger decides whether an event concerns it and, if so, runs
    its rule action.
    """

    def __init__(self, name: str, action: RuleAction, description: str = ""):
        self.name = name
        self.action = action
        self.description = description
        self.status = TriggerStatus.ACTIVE
        self.last_fired_at: Optional[datetime] = None
        self.fire_count = 0

    @property
    @abstractmethod
    def trigger_type(self) -> TriggerType:
        """Type of this trigger."""
        pass

    @abstractmethod
    def matches(self, event: DomainEvent) -> tuple[bool, str]:
        """Whether the event should fire this trigger, with a reason."""
        pass

    def is_active(self) -> bool:
        return self.status == TriggerStatus.ACTIVE

    def fire(self, event: DomainEvent) -> TriggerResult:
        """Evaluate the event and run the action when it matches."""
        if not self.is_active():
            return TriggerResult(
                trigger_name=self.name,
                reason="Trigger is not active"
            )

        matched, reason = self.matches(event)
        if not matched:
            return TriggerResult(trigger_name=self.name, reason=reason)

        self.last_fired_at = event.timestamp
        self.fire_count += 1
        try:
            outcome = self.action(event)
        except Exception as e:
            logger.exception("Trigger %s failed on %s", self.name, event.event_type.value)
            return TriggerResult(
                trigger_name=self.name,
                triggered=True,
                succeeded=False,
                event=event,
                error=str(e),
                reason=f"Rule failed: {e}"
            )

        return TriggerResult(
            trigger_name=self.name,
            triggered=True,
            event=event,
            outcome=outcome,
            reason=reason
        )


class AutomationTrigger(Trigger):
    """
    Event-driven trigger.

    Fires when one of `event_types` occurs and the optional filter
    accepts the event, e.g. a deal stage change whose new stage is
    Closed Won.
    """

    def __init__(
        self,
        name: str,
        event_types: list[EventType],
        action: RuleAction,
        filter_fn: Callable[[DomainEvent], bool] = None,
        description: str = ""
    ):
        super().__init__(name, action, description)
        self.event_types = [EventType(t) for t in event_types]
        self.filter_fn = filter_fn

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.EVENT

    def matches(self, event: DomainEvent) -> tuple[bool, str]:
        if event.event_type not in self.event_types:
            return False, f"Event type {event.event_type.value} not handled by {self.name}"

        if self.filter_fn and not self.filter_fn(event):
            return False, "Custom filter returned False"

        return True, f"Event {event.event_type.value} matched trigger {self.name}"


class ScheduledTrigger(Trigger):
    """
    Schedule-driven trigger.

    Fires on a schedule:
    - hourly, on the hour
    - daily, at 08:00
    - weekly, Monday at 08:00
    """

    SCHEDULES = ("hourly", "daily", "weekly")

    def __init__(
        self,
        name: str,
        schedule: str,
        action: RuleAction,
        start: datetime = None,
        description: str = ""
    ):
        if schedule not in self.SCHEDULES:
            raise ValueError(f"Unsupported schedule: {schedule}")
        super().__init__(name, action, description)
        self.schedule = schedule
        self.next_run = self._next_run_after(start or datetime.now())

    @property
    def trigger_type(self) -> TriggerType:
        return TriggerType.SCHEDULE

    def _next_run_after(self, moment: datetime) -> datetime:
        """First scheduled time strictly after `moment`."""
        if self.schedule == "hourly":
            return moment.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)

        next_run = moment.replace(hour=8, minute=0, second=0, microsecond=0)
        if self.schedule == "daily":
            if next_run <= moment:
                next_run += timedelta(days=1)
            return next_run

        days_ahead = -moment.weekday()  # Monday
        if days_ahead < 0 or next_run <= moment:
            days_ahead += 7
        return next_run + timedelta(days=days_ahead)

    def is_due(self, now: datetime) -> bool:
        return now >= self.next_run

    def matches(self, event: DomainEvent) -> tuple[bool, str]:
        if event.event_type != EventType.SCHEDULED_CHECK:
            return False, f"{self.name} only fires on scheduled checks"
        if not self.is_due(event.timestamp):
            return False, f"Next run at {self.next_run}"
        return True, f"Schedule {self.schedule} reached"

    def fire(self, event: DomainEvent) -> TriggerResult:
        result = super().fire(event)
        if result.triggered:
            self.next_run = self._next_run_after(event.timestamp)
        return result


class TriggerEngine:
    """
    Engine for managing and evaluating triggers.

    Responsibilities:
    - Register triggers
    - Dispatch domain events to matching triggers, in registration order
    - Run due scheduled triggers
    - Pause and resume individual triggers
    """

    def __init__(self, clock: Callable[[], datetime] = None):
        self._clock = clock or datetime.now
        self._triggers: dict[str, Trigger] = {}
        self._event_triggers: dict[EventType, list[str]] = {}
        self._schedule_triggers: list[str] = []

    def register(self, trigger: Trigger) -> None:
        """Register a trigger. Names are unique."""
        if trigger.name in self._triggers:
            raise ValueError(f"Trigger already registered: {trigger.name}")
        self._triggers[trigger.name] = trigger

        if isinstance(trigger, AutomationTrigger):
            for event_type in trigger.event_types:
                self._event_triggers.setdefault(event_type, []).append(trigger.name)
        elif trigger.trigger_type == TriggerType.SCHEDULE:
            self._schedule_triggers.append(trigger.name)

    def dispatch(self, event: DomainEvent) -> list[TriggerResult]:
        """Offer an event to its triggers; returns results of those that fired."""
        results = []
        for name in self._event_triggers.get(event.event_type, []):
            trigger = self._triggers[name]
            if not trigger.is_active():
                continue
            result = trigger.fire(event)
            if result.triggered:
                results.append(result)

        logger.debug(
            "Dispatched %s(%s): %d triggers fired",
            event.event_type.value, event.entity_id, len(results)
        )
        return results

    def run_due(self, now: datetime = None) -> list[TriggerResult]:
        """Fire every scheduled trigger that is due at `now`."""
        event = DomainEvent(
            event_type=EventType.SCHEDULED_CHECK,
            timestamp=now or self._clock()
        )

        results = []
        for name in self._schedule_triggers:
            trigger = self._triggers[name]
            if trigger.is_active():
                result = trigger.fire(event)
                if result.triggered:
                    results.append(result)
        return results

    def get_trigger(self, name: str) -> Optional[Trigger]:
        return self._triggers.get(name)

    @property
    def trigger_names(self) -> list[str]:
        return list(self._triggers)

    def pause(self, name: str) -> bool:
        """Pause a trigger."""
        trigger = self._triggers.get(name)
        if trigger:
            trigger.status = TriggerStatus.PAUSED
            return True
        return False

    def resume(self, name: str) -> bool:
        """Resume a paused trigger."""
        trigger = self._triggers.get(name)
        if trigger:
            trigger.status = TriggerStatus.ACTIVE
            return True
        return False

    @classmethod
    def create_default(
        cls,
        service: AutomationService,
        scorer: LeadScorer = None,
        start: datetime = None
    ) -> "TriggerEngine":
        """Create engine wired to the standard automation rules."""
        engine = cls(clock=service.now)
        scorer = scorer or LeadScorer()
        start = start or service.now()
        store = service.store

        def stored(collection: Collection) -> Callable[[str], Any]:
            return lambda entity_id: store.get_by_id(collection, entity_id)

        def past_due_account(event: DomainEvent) -> Optional[str]:
            # entity_id is the subscription; callers may name the account directly
            if event.payload.get("account_id"):
                return event.payload["account_id"]
            subscription = store.get_by_id(Collection.SUBSCRIPTIONS, event.entity_id)
            if subscription is not None:
                return subscription.account_id
            return event.entity_id

        # Lead intake: rescore, then link by email domain
        engine.register(AutomationTrigger(
            name="lead_scoring",
            event_types=[EventType.LEAD_CREATED, EventType.LEAD_UPDATED],
            action=lambda e: scorer.apply(service.store, e.entity_id)
        ))
        engine.register(AutomationTrigger(
            name="lead_account_link",
            event_types=[EventType.LEAD_CREATED, EventType.LEAD_UPDATED],
            action=lambda e: service.link_lead_to_account(e.entity_id)
        ))
        engine.register(AutomationTrigger(
            name="lead_to_deal",
            event_types=[EventType.LEAD_QUALIFIED],
            action=lambda e: service.convert_lead_to_deal(e.entity_id)
        ))
        engine.register(AutomationTrigger(
            name="follow_up_log",
            event_types=[EventType.FOLLOW_UP_SENT],
            action=lambda e: service.log_follow_up(e.entity_id, e.payload.get("content", ""))
        ))

        # Pipeline
        engine.register(AutomationTrigger(
            name="deal_stage_log",
            event_types=[EventType.DEAL_STAGE_CHANGED],
            action=lambda e: service.log_deal_stage_change(e.entity_id, e.payload["stage"]),
            filter_fn=lambda e: "stage" in e.payload
        ))
        engine.register(AutomationTrigger(
            name="closed_won_fulfillment",
            event_types=[EventType.DEAL_STAGE_CHANGED],
            action=lambda e: service.fulfill_closed_won(e.entity_id),
            filter_fn=lambda e: payload_is(
                e, "stage", OpportunityStage.CLOSED_WON, stored(Collection.OPPORTUNITIES)
            )
        ))

        # Delivery, support, billing
        engine.register(AutomationTrigger(
            name="delivery_live",
            event_types=[EventType.DELIVERY_STAGE_CHANGED],
            action=lambda e: service.activate_account_on_delivery_live(e.entity_id),
            filter_fn=lambda e: payload_is(e, "stage", DeliveryStage.LIVE, stored(Collection.DELIVERIES))
        ))
        engine.register(AutomationTrigger(
            name="critical_ticket_penalty",
            event_types=[EventType.TICKET_CREATED, EventType.TICKET_UPDATED],
            action=lambda e: service.apply_critical_ticket_penalty(e.entity_id),
            filter_fn=lambda e: payload_is(
                e, "severity", TicketSeverity.CRITICAL, stored(Collection.TICKETS)
            )
        ))
        engine.register(AutomationTrigger(
            name="billing_block",
            event_types=[EventType.SUBSCRIPTION_PAST_DUE],
            action=lambda e: service.block_deliveries_for_past_due(past_due_account(e))
        ))

        # Account sweeps, on request and daily
        engine.register(AutomationTrigger(
            name="health_audit",
            event_types=[EventType.HEALTH_AUDIT_REQUESTED],
            action=lambda e: service.run_health_audit()
        ))
        engine.register(AutomationTrigger(
            name="renewal_check",
            event_types=[EventType.RENEWAL_CHECK_REQUESTED],
            action=lambda e: service.check_renewals()
        ))
        engine.register(ScheduledTrigger(
            name="daily_health_audit",
            schedule="daily",
            action=lambda e: service.run_health_audit(),
            start=start
        ))
        engine.register(ScheduledTrigger(
            name="daily_renewal_check",
            schedule="daily",
            action=lambda e: service.check_renewals(),
            start=start
        ))

        return engine
