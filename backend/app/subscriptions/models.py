"""Domain models for user subscriptions."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SubscriptionType(str, Enum):
    """Subscription types known to the built-in catalog."""

    BASIC = "basic"
    MONTHLY_BASIC = "monthly-basic-subscription"
    APPRENTICE_MONTHLY = "apprentice-monthly"
    APPRENTICE_YEARLY = "apprentice-yearly"
    TEAM_LEADER_MONTHLY = "team-leader-monthly"
    TEAM_LEADER_YEARLY = "team-leader-yearly"
    FREEDOM_BUILDER_MONTHLY = "freedom-builder-monthly"
    FREEDOM_BUILDER_YEARLY = "freedom-builder-yearly"
    ARTICLES_MONTHLY = "articles-monthly-subscription"
    ARTICLES_ANNUAL = "articles-annual-subscription"
    ORGANIZATION = "organization"
    MONTHLY_ORGANIZATION = "monthly-organization-subscription"


class SubscriptionStatus(str, Enum):
    """Lifecycle state for a subscription record."""

    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""

    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class Subscription(BaseModel):
    """A single subscription record owned by one user."""

    id: Optional[str] = None
    type: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    expires: datetime
    resources: Dict[str, object] = Field(
        default_factory=dict,
        description="Resource profile snapshot captured at creation, kept for audit only.",
    )
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    amount: Optional[str] = None
    payment_method: Optional[str] = None
    order_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> str:
        if isinstance(value, Enum):
            return str(value.value)
        return str(value)

    @field_validator("expires", "created", "updated", "deleted_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return ensure_aware(value)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Active means status ``active`` and not yet expired."""

        current = ensure_aware(now) if now else _utcnow()
        return self.status == SubscriptionStatus.ACTIVE and self.expires > current


class DecisionOutcome(str, Enum):
    """Possible answers to "may this user acquire this type?"."""

    ALLOW = "allow"
    ALLOW_WITH_PRORATION_NOTICE = "allow_with_proration_notice"
    REJECT_DUPLICATE = "reject_duplicate"
    REJECT_DOWNGRADE = "reject_downgrade"
    REJECT_INCOMPATIBLE = "reject_incompatible"


class Decision(BaseModel):
    """Outcome of validating a purchase candidate against current holdings."""

    outcome: DecisionOutcome
    candidate_type: str
    reason: Optional[str] = None
    conflicting_type: Optional[str] = None
    proration_days: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def allowed(self) -> bool:
        return self.outcome in {DecisionOutcome.ALLOW, DecisionOutcome.ALLOW_WITH_PRORATION_NOTICE}

    @classmethod
    def allow(cls, candidate_type: str) -> "Decision":
        return cls(outcome=DecisionOutcome.ALLOW, candidate_type=candidate_type)


class PaymentEvent(BaseModel):
    """Payment completion notification supplied by the host checkout."""

    user_id: str
    sku: str
    amount: Optional[str] = None
    payment_method: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    order_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("amount", mode="before")
    @classmethod
    def _stringify_amount(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        return str(value)


class PendingActivation(BaseModel):
    """A staged purchase carried by the host's checkout session."""

    user_id: str
    sku: str
    type: str
    staged_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)


class ActivationOutcome(str, Enum):
    """Result categories for an activation attempt."""

    ACTIVATED = "activated"
    ALREADY_ACTIVE = "already_active"
    GRANTED = "granted"
    REJECTED = "rejected"


class ActivationResult(BaseModel):
    """Return value of an activation request."""

    outcome: ActivationOutcome
    subscription: Optional[Subscription] = None
    decision: Optional[Decision] = None
    group_ids: Tuple[str, ...] = Field(
        default_factory=tuple,
        description="External group ids the host should grant membership for.",
    )
    prorated_from: Optional[str] = None
    transferred_days: int = 0

    model_config = ConfigDict(frozen=True)

    @property
    def activated(self) -> bool:
        return self.outcome == ActivationOutcome.ACTIVATED


class SubscriptionAuditEventType(str, Enum):
    """Audit event categories emitted by the subscription engine."""

    CREATED = "created"
    ACTIVATED = "activated"
    PRORATED = "prorated"
    DEACTIVATED = "deactivated"
    DELETED = "deleted"
    EXPIRED = "expired"
    GRANTED = "granted"


class SubscriptionAuditEvent(BaseModel):
    """Structured audit event for subscription changes."""

    event_type: SubscriptionAuditEventType
    user_id: str
    subscription_id: Optional[str] = None
    subscription_type: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)


class SubscriptionOverview(BaseModel):
    """Account-page view of a single subscription."""

    subscription: Subscription
    name: str
    days_until_expiry: int
    needs_renewal: bool
    expired: bool

    model_config = ConfigDict(frozen=True)


@dataclass
class SweepSummary:
    """Aggregated outcome of an expiry sweep."""

    users_processed: int = 0
    subscriptions_expired: int = 0
    failures: int = 0
    failed_user_ids: List[str] = field(default_factory=list)


__all__ = [
    "ActivationOutcome",
    "ActivationResult",
    "Decision",
    "DecisionOutcome",
    "PaymentEvent",
    "PendingActivation",
    "Subscription",
    "SubscriptionAuditEvent",
    "SubscriptionAuditEventType",
    "SubscriptionOverview",
    "SubscriptionStatus",
    "SubscriptionType",
    "SweepSummary",
    "ensure_aware",
]
