"""Core service coordinating subscription validation, activation and expiry."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..entitlements import EntitlementResolver, ResourceProfile, ResourceProfileRegistry
from .catalog import Catalog
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
    SweepSummary,
    ensure_aware,
)
from .store import SubscriptionStore
from .validator import SubscriptionValidator

logger = logging.getLogger(__name__)


class SubscriptionEventLogger(Protocol):
    """Captures structured subscription audit events."""

    def log(self, event: SubscriptionAuditEvent) -> None:
        ...


class InvalidTransitionError(ValueError):
    """Raised when a status change is not permitted by the lifecycle."""

    def __init__(self, current: SubscriptionStatus, target: SubscriptionStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move subscription from {current.value} to {target.value}")


ALLOWED_TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    SubscriptionStatus.PENDING: frozenset(
        {SubscriptionStatus.ACTIVE, SubscriptionStatus.INACTIVE, SubscriptionStatus.DELETED}
    ),
    SubscriptionStatus.ACTIVE: frozenset({SubscriptionStatus.INACTIVE, SubscriptionStatus.DELETED}),
    SubscriptionStatus.INACTIVE: frozenset({SubscriptionStatus.DELETED}),
    SubscriptionStatus.DELETED: frozenset(),
}


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass
class SubscriptionService:
    """Validates purchases, activates subscriptions and expires them."""

    catalog: Catalog
    registry: ResourceProfileRegistry
    store: SubscriptionStore
    event_logger: SubscriptionEventLogger
    validator: Optional[SubscriptionValidator] = None
    resolver: Optional[EntitlementResolver] = None
    clock: Optional[Callable[[], datetime]] = None
    sweep_max_workers: int = 4
    renewal_warning_days: int = 15
    _rules: SubscriptionValidator = field(init=False, repr=False)
    _entitlements: EntitlementResolver = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._rules = self.validator or SubscriptionValidator(self.catalog)
        self._entitlements = self.resolver or EntitlementResolver(self.registry)

    def _now(self) -> datetime:
        if self.clock is None:
            return datetime.now(timezone.utc)
        return ensure_aware(self.clock())

    # Validation

    def validate_candidate(
        self,
        existing_active: Sequence[Subscription],
        candidate_type: str,
    ) -> Decision:
        """Decide whether ``candidate_type`` may be acquired next to ``existing_active``."""

        return self._evaluate(
            [(subscription.type, self.store.remaining_days(subscription)) for subscription in existing_active],
            candidate_type,
            holdings=True,
        )

    def validate_purchase(
        self,
        user_id: Optional[str],
        candidate_type: str,
        staged_types: Iterable[str] = (),
    ) -> Decision:
        """Check a candidate against current holdings, then against staged items."""

        decision = Decision.allow(candidate_type)
        if user_id:
            decision = self.validate_candidate(self.store.list_active(user_id), candidate_type)
            if not decision.allowed:
                return decision

        staged_decision = self._evaluate(
            [(staged_type, 0) for staged_type in staged_types],
            candidate_type,
            holdings=False,
        )
        if not staged_decision.allowed:
            return staged_decision
        if decision.outcome == DecisionOutcome.ALLOW_WITH_PRORATION_NOTICE:
            return decision
        return staged_decision

    def _evaluate(
        self,
        existing: Sequence[tuple],
        candidate_type: str,
        *,
        holdings: bool,
    ) -> Decision:
        candidate_name = self.catalog.friendly_name(candidate_type)
        for existing_type, _ in existing:
            if existing_type == candidate_type:
                reason = (
                    f"You already have the {candidate_name} subscription active."
                    if holdings
                    else f"The {candidate_name} subscription is already in your cart."
                )
                return Decision(
                    outcome=DecisionOutcome.REJECT_DUPLICATE,
                    candidate_type=candidate_type,
                    conflicting_type=existing_type,
                    reason=reason,
                )

        notice: Optional[Decision] = None
        for existing_type, remaining_days in existing:
            if not self._rules.are_related(existing_type, candidate_type):
                continue
            existing_name = self.catalog.friendly_name(existing_type)
            if self._rules.is_downgrade(existing_type, candidate_type):
                return Decision(
                    outcome=DecisionOutcome.REJECT_DOWNGRADE,
                    candidate_type=candidate_type,
                    conflicting_type=existing_type,
                    reason=(
                        f"You cannot downgrade from {existing_name} to {candidate_name}. "
                        "Downgrades are not supported."
                    ),
                )
            if self._rules.is_monthly_to_yearly_upgrade(existing_type, candidate_type):
                reason = None
                if remaining_days > 0:
                    reason = (
                        f"The remaining {remaining_days} day(s) of your {existing_name} "
                        f"subscription will be added to {candidate_name}."
                    )
                notice = Decision(
                    outcome=DecisionOutcome.ALLOW_WITH_PRORATION_NOTICE,
                    candidate_type=candidate_type,
                    conflicting_type=existing_type,
                    proration_days=remaining_days,
                    reason=reason,
                )
                continue
            return Decision(
                outcome=DecisionOutcome.REJECT_INCOMPATIBLE,
                candidate_type=candidate_type,
                conflicting_type=existing_type,
                reason=f"{candidate_name} cannot be combined with your {existing_name} subscription.",
            )
        return notice or Decision.allow(candidate_type)

    # Host integration points

    def on_cart_add(
        self,
        user_id: Optional[str],
        sku: str,
        staged_skus: Iterable[str] = (),
    ) -> Decision:
        """Validate a product being added to the cart.

        Products that are not subscriptions are always allowed.
        """

        candidate_type = self.catalog.resolve_type(sku)
        if candidate_type is None:
            return Decision.allow(sku)
        return self.validate_purchase(user_id, candidate_type, self._types_for_skus(staged_skus))

    def on_checkout(self, user_id: Optional[str], skus: Sequence[str]) -> List[Decision]:
        """Validate every subscription in a checkout, each against the ones before it."""

        decisions: List[Decision] = []
        staged: List[str] = []
        for sku in skus:
            candidate_type = self.catalog.resolve_type(sku)
            if candidate_type is None:
                continue
            decisions.append(self.validate_purchase(user_id, candidate_type, staged))
            staged.append(candidate_type)
        return decisions

    def stage(self, user_id: str, sku: str) -> Optional[PendingActivation]:
        candidate_type = self.catalog.resolve_type(sku)
        if candidate_type is None:
            return None
        return PendingActivation(user_id=user_id, sku=sku, type=candidate_type, staged_at=self._now())

    def on_payment_complete(self, event: PaymentEvent) -> Optional[ActivationResult]:
        candidate_type = self.catalog.resolve_type(event.sku)
        if candidate_type is None:
            logger.debug("Ignoring payment for non-subscription sku %s", event.sku)
            return None
        return self.activate(event.user_id, candidate_type, event)

    def confirm_pending(
        self,
        pending: PendingActivation,
        payment: Optional[PaymentEvent] = None,
    ) -> ActivationResult:
        return self.activate(pending.user_id, pending.type, payment)

    def on_schedule_tick(self, *, now: Optional[datetime] = None) -> SweepSummary:
        return self.sweep_expirations(now=now)

    def _types_for_skus(self, skus: Iterable[str]) -> List[str]:
        types: List[str] = []
        for sku in skus:
            subscription_type = self.catalog.resolve_type(sku)
            if subscription_type is not None:
                types.append(subscription_type)
        return types

    # Activation

    def activate(
        self,
        user_id: str,
        candidate_type: str,
        payment: Optional[PaymentEvent] = None,
    ) -> ActivationResult:
        """Create an active subscription after payment, prorating sanctioned upgrades."""

        existing = self.store.get_by_type(user_id, candidate_type, active_only=True)
        if existing is not None:
            logger.info(
                "Subscription %s already active for user %s, skipping activation",
                candidate_type,
                user_id,
            )
            return ActivationResult(outcome=ActivationOutcome.ALREADY_ACTIVE, subscription=existing)

        now = self._now()
        subscription = Subscription(
            type=candidate_type,
            status=SubscriptionStatus.ACTIVE,
            expires=now + self.catalog.duration_of(candidate_type),
            resources=self._entitlements.profile_of(candidate_type).to_dict(),
            amount=payment.amount if payment else None,
            payment_method=payment.payment_method if payment else None,
            order_id=payment.order_id if payment else None,
        )
        stored = self.store.save(user_id, subscription)
        self._log(SubscriptionAuditEventType.ACTIVATED, user_id, stored)
        stored, prorated_from, transferred_days = self._prorate(user_id, stored)

        return ActivationResult(
            outcome=ActivationOutcome.ACTIVATED,
            subscription=stored,
            group_ids=self.catalog.group_ids_for(candidate_type),
            prorated_from=prorated_from,
            transferred_days=transferred_days,
        )

    def _prorate(self, user_id: str, target: Subscription) -> Tuple[Subscription, Optional[str], int]:
        """Move unused days of a sanctioned monthly source onto ``target``."""

        upgradable = [
            record
            for record in self.store.list_active(user_id)
            if record.id != target.id and self._rules.is_monthly_to_yearly_upgrade(record.type, target.type)
        ]
        if len(upgradable) > 1:
            logger.warning(
                "Multiple upgrade sources for %s on user %s, skipping proration",
                target.type,
                user_id,
            )
        if len(upgradable) != 1:
            return target, None, 0

        previous = upgradable[0]
        transferred_days = self.store.remaining_days(previous)
        if not self.store.transfer_remaining_days(user_id, previous.id or "", target.id or ""):
            return target, None, 0

        refreshed = self.store.get_by_id(user_id, target.id or "") or target
        self._log(
            SubscriptionAuditEventType.PRORATED,
            user_id,
            refreshed,
            {"source_id": previous.id or "", "transferred_days": str(transferred_days)},
        )
        return refreshed, previous.id, transferred_days

    def grant_subscription(
        self,
        user_id: str,
        subscription_type: str,
        *,
        expires: datetime,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        created: Optional[datetime] = None,
        amount: Optional[str] = None,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
        auto_renewal: bool = False,
    ) -> ActivationResult:
        """Record a subscription granted manually by an administrator.

        Active grants are validated like purchases and report ``activated``.
        Pending and inactive grants are stored as-is and report ``granted``;
        they are validated when they are later activated.
        """

        if status == SubscriptionStatus.DELETED:
            raise ValueError("Cannot grant a deleted subscription")

        if status == SubscriptionStatus.ACTIVE:
            decision = self.validate_candidate(self.store.list_active(user_id), subscription_type)
            if not decision.allowed:
                return ActivationResult(outcome=ActivationOutcome.REJECTED, decision=decision)

        metadata = {"auto_renewal": "1" if auto_renewal else "0"}
        if notes:
            metadata["notes"] = notes
        stored = self.store.save(
            user_id,
            Subscription(
                type=subscription_type,
                status=status,
                expires=expires,
                created=created,
                resources=self._entitlements.profile_of(subscription_type).to_dict(),
                amount=amount,
                payment_method=payment_method,
                metadata=metadata,
            ),
        )
        self._log(SubscriptionAuditEventType.GRANTED, user_id, stored, {"status": status.value})
        if status != SubscriptionStatus.ACTIVE:
            return ActivationResult(outcome=ActivationOutcome.GRANTED, subscription=stored)
        return ActivationResult(
            outcome=ActivationOutcome.ACTIVATED,
            subscription=stored,
            group_ids=self.catalog.group_ids_for(subscription_type),
        )

    # Lifecycle

    def transition(self, user_id: str, subscription_id: str, target: SubscriptionStatus) -> bool:
        """Move a record to ``target``.

        Returns ``False`` if the record is missing or, when activating, if the
        family rules reject it next to the user's other active subscriptions.
        """

        subscription = self.store.get_by_id(user_id, subscription_id)
        if subscription is None:
            return False
        if not can_transition(subscription.status, target):
            raise InvalidTransitionError(subscription.status, target)

        if target == SubscriptionStatus.DELETED:
            updated = self.store.soft_delete(user_id, subscription_id)
            event_type = SubscriptionAuditEventType.DELETED
        elif target == SubscriptionStatus.INACTIVE:
            updated = self.store.deactivate(user_id, subscription_id)
            event_type = SubscriptionAuditEventType.DEACTIVATED
        else:
            others = [record for record in self.store.list_active(user_id) if record.id != subscription_id]
            decision = self.validate_candidate(others, subscription.type)
            if not decision.allowed:
                logger.warning(
                    "Refusing to activate %s for user %s: %s (conflicts with %s)",
                    subscription_id,
                    user_id,
                    decision.outcome.value,
                    decision.conflicting_type,
                )
                return False
            updated = self.store.update(user_id, subscription_id, {"status": target})
            if updated:
                self._log(
                    SubscriptionAuditEventType.ACTIVATED,
                    user_id,
                    subscription.model_copy(update={"status": target}),
                )
                activated = self.store.get_by_id(user_id, subscription_id)
                if activated is not None:
                    self._prorate(user_id, activated)
            return updated

        if updated:
            self._log(event_type, user_id, subscription.model_copy(update={"status": target}))
        return updated

    def activate_pending(self, user_id: str, subscription_id: str) -> bool:
        return self._safe_transition(user_id, subscription_id, SubscriptionStatus.ACTIVE)

    def deactivate(self, user_id: str, subscription_id: str) -> bool:
        return self._safe_transition(user_id, subscription_id, SubscriptionStatus.INACTIVE)

    def delete_subscription(self, user_id: str, subscription_id: str) -> bool:
        return self._safe_transition(user_id, subscription_id, SubscriptionStatus.DELETED)

    def _safe_transition(self, user_id: str, subscription_id: str, target: SubscriptionStatus) -> bool:
        try:
            return self.transition(user_id, subscription_id, target)
        except InvalidTransitionError as exc:
            logger.info("Ignoring transition for %s on user %s: %s", subscription_id, user_id, exc)
            return False

    # Expiry

    def sweep_user(self, user_id: str, *, now: Optional[datetime] = None) -> int:
        """Mark expired-but-active records inactive with a single write.

        ``now`` overrides the service clock as the expiry cut-off.
        """

        now = ensure_aware(now) if now is not None else self._now()
        records = self.store.list_all(user_id)
        expired: List[Subscription] = []
        refreshed: List[Subscription] = []
        for record in records:
            if record.status == SubscriptionStatus.ACTIVE and record.expires <= now:
                record = record.model_copy(update={"status": SubscriptionStatus.INACTIVE, "updated": now})
                expired.append(record)
            refreshed.append(record)

        if not expired:
            return 0

        self.store.replace_all(user_id, refreshed)
        for record in expired:
            self._log(SubscriptionAuditEventType.EXPIRED, user_id, record)
        return len(expired)

    def sweep_expirations(
        self,
        user_ids: Optional[Iterable[str]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> SweepSummary:
        """Expire subscriptions for every user; one failing user never stops the rest."""

        targets = list(user_ids) if user_ids is not None else self.store.user_ids()
        summary = SweepSummary()
        if not targets:
            return summary

        workers = max(1, min(self.sweep_max_workers, len(targets)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="subscription-sweep") as executor:
            futures = {user_id: executor.submit(self.sweep_user, user_id, now=now) for user_id in targets}
            for user_id, future in futures.items():
                summary.users_processed += 1
                try:
                    summary.subscriptions_expired += future.result()
                except Exception:
                    summary.failures += 1
                    summary.failed_user_ids.append(user_id)
                    logger.exception("Expiry sweep failed for user %s", user_id)
        return summary

    # Entitlements and reporting

    def resolve_entitlements(self, user_id: Optional[str], *, is_administrator: bool = False) -> ResourceProfile:
        if is_administrator:
            return self._entitlements.resolve_for_administrator()
        if not user_id:
            return self._entitlements.resolve(())
        return self._entitlements.resolve(self.store.list_active(user_id))

    def has_resource_access(
        self,
        user_id: Optional[str],
        resource_key: str,
        *,
        is_administrator: bool = False,
    ) -> bool:
        return self.resolve_entitlements(user_id, is_administrator=is_administrator).allows(resource_key)

    def primary_subscription(self, user_id: str) -> Optional[Subscription]:
        return self._rules.primary_of(self.store.list_all(user_id), self._now())

    def highest_subscription_type(self, user_id: str) -> Optional[str]:
        return self._rules.highest_type_of(self.store.list_types(user_id))

    def subscription_overview(self, user_id: str) -> List[SubscriptionOverview]:
        """Summaries of records flagged active, including ones past their expiry."""

        overview: List[SubscriptionOverview] = []
        for record in self.store.list_all(user_id):
            if record.status != SubscriptionStatus.ACTIVE:
                continue
            days = self.store.remaining_days(record)
            expired = days <= 0
            overview.append(
                SubscriptionOverview(
                    subscription=record,
                    name=self.catalog.friendly_name(record.type),
                    days_until_expiry=days,
                    needs_renewal=not expired and days <= self.renewal_warning_days,
                    expired=expired,
                )
            )
        return overview

    def _log(
        self,
        event_type: SubscriptionAuditEventType,
        user_id: str,
        subscription: Subscription,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        self.event_logger.log(
            SubscriptionAuditEvent(
                event_type=event_type,
                user_id=user_id,
                subscription_id=subscription.id,
                subscription_type=subscription.type,
                metadata=metadata or {},
                occurred_at=self._now(),
            )
        )


__all__ = [
    "ALLOWED_TRANSITIONS",
    "InvalidTransitionError",
    "SubscriptionEventLogger",
    "SubscriptionService",
    "can_transition",
]
