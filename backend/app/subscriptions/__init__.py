"""Subscription lifecycle management: validation, activation and expiry."""

from .catalog import (
    CATALOG_ENTRIES,
    MONTHLY_TO_YEARLY_UPGRADES,
    PRIMARY_PRIORITY,
    SUBSCRIPTION_FAMILIES,
    TIER_RANKS,
    Catalog,
    CatalogEntry,
    FamilyDefinition,
    catalog_from_config,
    default_catalog,
    load_catalog,
)
from .config import SubscriptionConfig, load_subscription_config
from .models import (
    ActivationOutcome,
    ActivationResult,
    Decision,
    DecisionOutcome,
    PaymentEvent,
    PendingActivation,
    Subscription,
    SubscriptionAuditEvent,
    SubscriptionAuditEventType,
    SubscriptionOverview,
    SubscriptionStatus,
    SubscriptionType,
    SweepSummary,
)
from .service import (
    ALLOWED_TRANSITIONS,
    InvalidTransitionError,
    SubscriptionEventLogger,
    SubscriptionService,
    can_transition,
)
from .store import (
    InMemorySubscriptionRecordStore,
    SubscriptionRecordStore,
    SubscriptionStore,
    generate_subscription_id,
)
from .validator import SubscriptionValidator

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ActivationOutcome",
    "ActivationResult",
    "CATALOG_ENTRIES",
    "Catalog",
    "CatalogEntry",
    "Decision",
    "DecisionOutcome",
    "FamilyDefinition",
    "InMemorySubscriptionRecordStore",
    "InvalidTransitionError",
    "MONTHLY_TO_YEARLY_UPGRADES",
    "PRIMARY_PRIORITY",
    "PaymentEvent",
    "PendingActivation",
    "SUBSCRIPTION_FAMILIES",
    "TIER_RANKS",
    "Subscription",
    "SubscriptionAuditEvent",
    "SubscriptionAuditEventType",
    "SubscriptionConfig",
    "SubscriptionEventLogger",
    "SubscriptionOverview",
    "SubscriptionRecordStore",
    "SubscriptionService",
    "SubscriptionStatus",
    "SubscriptionStore",
    "SubscriptionType",
    "SubscriptionValidator",
    "SweepSummary",
    "can_transition",
    "catalog_from_config",
    "default_catalog",
    "generate_subscription_id",
    "load_catalog",
    "load_subscription_config",
]
