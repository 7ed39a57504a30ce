"""
Core domain: typed entities, the document store adapter and the
deterministic lead-scoring function.
"""

from .entities import (
    Account,
    AccountLifecycle,
    AccountStatus,
    Activity,
    ActivityType,
    Collection,
    Contact,
    Delivery,
    DeliveryStage,
    HealthStatus,
    ICPTier,
    Lead,
    LeadChannel,
    LeadStatus,
    LeadTemperature,
    Milestone,
    MilestoneStatus,
    Opportunity,
    OpportunityStage,
    RiskLevel,
    Subscription,
    SubscriptionStatus,
    SupportTicket,
    TicketSeverity,
    TicketStatus,
)
from .exceptions import (
    InvalidRecordError,
    StoreError,
    UnknownCollectionError,
    VoxmationError,
)
from .scoring import LeadScore, LeadScorer, score_lead
from .store import (
    DocumentStore,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    StoreChange,
)

__all__ = [
    # Entities
    "Account",
    "AccountLifecycle",
    "AccountStatus",
    "Activity",
    "ActivityType",
    "Collection",
    "Contact",
    "Delivery",
    "DeliveryStage",
    "HealthStatus",
    "ICPTier",
    "Lead",
    "LeadChannel",
    "LeadStatus",
    "LeadTemperature",
    "Milestone",
    "MilestoneStatus",
    "Opportunity",
    "OpportunityStage",
    "RiskLevel",
    "Subscription",
    "SubscriptionStatus",
    "SupportTicket",
    "TicketSeverity",
    "TicketStatus",
    # Errors
    "InvalidRecordError",
    "StoreError",
    "UnknownCollectionError",
    "VoxmationError",
    # Scoring
    "LeadScore",
    "LeadScorer",
    "score_lead",
    # Store
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "StoreChange",
]
