"""Unit tests for the subscription lifecycle service."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Sequence

import pytest
from dateutil.relativedelta import relativedelta

from backend.app.entitlements import ResourceProfileRegistry
from backend.app.subscriptions import (
    ActivationOutcome,
    Catalog,
    CatalogEntry,
    DecisionOutcome,
    InMemorySubscriptionRecordStore,
    InvalidTransitionError,
    PaymentEvent,
    Subscription,
    SubscriptionAuditEvent,
    SubscriptionAuditEventType,
    SubscriptionEventLogger,
    SubscriptionService,
    SubscriptionStatus,
    SubscriptionStore,
)
from backend.app.subscriptions.catalog import YEARLY

NOW = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)
USER = "user-1"


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeEventLogger(SubscriptionEventLogger):
    def __init__(self) -> None:
        self.events: List[SubscriptionAuditEvent] = []

    def log(self, event: SubscriptionAuditEvent) -> None:
        self.events.append(event)

    def types(self) -> List[SubscriptionAuditEventType]:
        return [event.event_type for event in self.events]


class FlakyRecordStore(InMemorySubscriptionRecordStore):
    def __init__(self) -> None:
        super().__init__()
        self.failing_users: set[str] = set()

    def load(self, user_id: str) -> List[Subscription]:
        if user_id in self.failing_users:
            raise RuntimeError(f"storage unavailable for {user_id}")
        return super().load(user_id)


def _build(clock: FrozenClock, *, catalog: Catalog | None = None, record_store=None):
    record_store = record_store or InMemorySubscriptionRecordStore()
    store = SubscriptionStore(record_store, clock=clock)
    event_logger = FakeEventLogger()
    service = SubscriptionService(
        catalog=catalog or Catalog(),
        registry=ResourceProfileRegistry(),
        store=store,
        event_logger=event_logger,
        clock=clock,
        sweep_max_workers=2,
    )
    return store, event_logger, service


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def subscription_components(clock: FrozenClock):
    return _build(clock)


def _seed(
    store: SubscriptionStore,
    subscription_type: str,
    *,
    days: float = 30,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    user_id: str = USER,
) -> Subscription:
    return store.save(
        user_id,
        Subscription(type=subscription_type, status=status, expires=NOW + timedelta(days=days)),
    )


def _types(records: Sequence[Subscription]) -> List[str]:
    return sorted(record.type for record in records)


def test_exact_duplicate_is_rejected(subscription_components):
    store, _, service = subscription_components
    _seed(store, "apprentice-monthly")

    decision = service.validate_candidate(store.list_active(USER), "apprentice-monthly")

    assert decision.outcome == DecisionOutcome.REJECT_DUPLICATE
    assert decision.conflicting_type == "apprentice-monthly"
    assert "Apprentice (Monthly)" in decision.reason


def test_downgrade_is_rejected(subscription_components):
    store, _, service = subscription_components
    _seed(store, "team-leader-yearly", days=200)

    decision = service.validate_purchase(USER, "team-leader-monthly")

    assert decision.outcome == DecisionOutcome.REJECT_DOWNGRADE
    assert not decision.allowed
    assert decision.conflicting_type == "team-leader-yearly"


def test_related_type_without_sanctioned_upgrade_is_incompatible(subscription_components):
    store, _, service = subscription_components
    _seed(store, "basic", days=200)

    decision = service.validate_purchase(USER, "monthly-basic-subscription")

    assert decision.outcome == DecisionOutcome.REJECT_INCOMPATIBLE


def test_unrelated_type_is_allowed(subscription_components):
    store, _, service = subscription_components
    _seed(store, "basic", days=200)

    decision = service.validate_purchase(USER, "team-leader-yearly")

    assert decision.outcome == DecisionOutcome.ALLOW
    assert decision.reason is None


def test_monthly_to_yearly_upgrade_is_prorated(subscription_components):
    store, event_logger, service = subscription_components
    monthly = _seed(store, "apprentice-monthly", days=5)

    decision = service.validate_purchase(USER, "apprentice-yearly")
    assert decision.outcome == DecisionOutcome.ALLOW_WITH_PRORATION_NOTICE
    assert decision.proration_days == 5
    assert "5 day(s)" in decision.reason

    result = service.on_payment_complete(
        PaymentEvent(user_id=USER, sku="apprentice-yearly", amount=99, payment_method="card", order_id="1001")
    )

    assert result.activated
    assert result.prorated_from == monthly.id
    assert result.transferred_days == 5
    assert result.subscription.expires == NOW + relativedelta(years=1) + timedelta(days=5)
    assert result.subscription.expires == NOW + timedelta(days=370)
    assert result.subscription.amount == "99"
    assert result.subscription.order_id == "1001"

    assert _types(store.list_active(USER)) == ["apprentice-yearly"]
    assert store.get_by_id(USER, monthly.id).status == SubscriptionStatus.DELETED
    assert event_logger.types() == [SubscriptionAuditEventType.ACTIVATED, SubscriptionAuditEventType.PRORATED]
    assert event_logger.events[1].metadata["transferred_days"] == "5"


def test_activation_snapshots_resources_and_duration(subscription_components):
    store, _, service = subscription_components

    result = service.activate(USER, "team-leader-monthly")

    assert result.outcome == ActivationOutcome.ACTIVATED
    assert result.subscription.expires == datetime(2025, 4, 1, 12, tzinfo=timezone.utc)
    assert result.subscription.resources["max_groups"] == 5
    assert result.subscription.amount is None
    assert store.list_all(USER) == [result.subscription]


def test_repeated_payment_is_idempotent(subscription_components):
    store, event_logger, service = subscription_components
    event = PaymentEvent(user_id=USER, sku="team-leader-yearly", amount="199.00")

    first = service.on_payment_complete(event)
    second = service.on_payment_complete(event)

    assert first.outcome == ActivationOutcome.ACTIVATED
    assert second.outcome == ActivationOutcome.ALREADY_ACTIVE
    assert second.subscription.id == first.subscription.id
    assert len(store.list_all(USER)) == 1
    assert event_logger.types() == [SubscriptionAuditEventType.ACTIVATED]


def test_non_subscription_products_are_ignored(subscription_components):
    store, _, service = subscription_components

    assert service.on_cart_add(USER, "t-shirt").outcome == DecisionOutcome.ALLOW
    assert service.stage(USER, "t-shirt") is None
    assert service.on_payment_complete(PaymentEvent(user_id=USER, sku="t-shirt")) is None
    assert store.list_all(USER) == []


def test_activation_returns_configured_group_ids(clock: FrozenClock):
    catalog = Catalog(
        entries=[
            CatalogEntry(sku="tl-year", type="team-leader-yearly", duration=YEARLY, group_ids=("g-1", "g-2")),
        ]
    )
    _, _, service = _build(clock, catalog=catalog)

    pending = service.stage(USER, "tl-year")
    result = service.confirm_pending(pending)

    assert pending.type == "team-leader-yearly"
    assert result.group_ids == ("g-1", "g-2")


def test_staged_items_are_checked_against_each_other(subscription_components):
    _, _, service = subscription_components

    duplicate = service.on_checkout(USER, ["apprentice-monthly", "t-shirt", "apprentice-monthly"])
    assert [decision.outcome for decision in duplicate] == [DecisionOutcome.ALLOW, DecisionOutcome.REJECT_DUPLICATE]
    assert "cart" in duplicate[1].reason

    downgrade = service.on_checkout(None, ["team-leader-yearly", "team-leader-monthly"])
    assert downgrade[1].outcome == DecisionOutcome.REJECT_DOWNGRADE

    upgrade = service.on_cart_add(None, "apprentice-yearly", staged_skus=["apprentice-monthly"])
    assert upgrade.outcome == DecisionOutcome.ALLOW_WITH_PRORATION_NOTICE
    assert upgrade.proration_days == 0


def test_holdings_rejection_wins_over_cart(subscription_components):
    store, _, service = subscription_components
    _seed(store, "freedom-builder-yearly", days=100)

    decision = service.on_cart_add(USER, "freedom-builder-monthly", staged_skus=["basic-subscription"])

    assert decision.outcome == DecisionOutcome.REJECT_DOWNGRADE


def test_lifecycle_transitions(subscription_components):
    store, event_logger, service = subscription_components
    record = _seed(store, "apprentice-monthly")

    assert service.deactivate(USER, record.id) is True
    assert store.get_by_id(USER, record.id).status == SubscriptionStatus.INACTIVE
    assert service.deactivate(USER, record.id) is False
    assert service.delete_subscription(USER, record.id) is True
    assert store.get_by_id(USER, record.id).status == SubscriptionStatus.DELETED

    with pytest.raises(InvalidTransitionError):
        service.transition(USER, record.id, SubscriptionStatus.ACTIVE)

    assert service.transition(USER, "sub_missing", SubscriptionStatus.INACTIVE) is False
    assert event_logger.types() == [SubscriptionAuditEventType.DEACTIVATED, SubscriptionAuditEventType.DELETED]


def test_pending_record_can_be_activated(subscription_components):
    store, _, service = subscription_components
    record = _seed(store, "basic", status=SubscriptionStatus.PENDING, days=365)

    assert service.activate_pending(USER, record.id) is True
    assert store.get_by_id(USER, record.id).status == SubscriptionStatus.ACTIVE


def test_sweep_expires_records_once(subscription_components, clock: FrozenClock):
    store, event_logger, service = subscription_components
    _seed(store, "apprentice-monthly", days=1)
    keep = _seed(store, "basic", days=200)
    _seed(store, "team-leader-monthly", days=2, user_id="user-2")

    clock.advance(days=3)
    first = service.sweep_expirations()
    snapshot = {user_id: store.list_all(user_id) for user_id in (USER, "user-2")}
    second = service.on_schedule_tick()

    assert first.users_processed == 2
    assert first.subscriptions_expired == 2
    assert first.failures == 0
    assert second.subscriptions_expired == 0
    assert {user_id: store.list_all(user_id) for user_id in (USER, "user-2")} == snapshot
    assert store.list_active(USER) == [store.get_by_id(USER, keep.id)]
    assert event_logger.types().count(SubscriptionAuditEventType.EXPIRED) == 2


def test_sweep_isolates_failing_users(clock: FrozenClock):
    record_store = FlakyRecordStore()
    store, _, service = _build(clock, record_store=record_store)
    _seed(store, "apprentice-monthly", days=1)
    _seed(store, "basic", days=1, user_id="broken")
    record_store.failing_users.add("broken")

    clock.advance(days=2)
    summary = service.sweep_expirations()

    assert summary.users_processed == 2
    assert summary.subscriptions_expired == 1
    assert summary.failures == 1
    assert summary.failed_user_ids == ["broken"]
    assert store.list_all(USER)[0].status == SubscriptionStatus.INACTIVE


def test_entitlements_for_users_and_administrators(subscription_components):
    store, _, service = subscription_components
    _seed(store, "basic", days=300)
    _seed(store, "team-leader-yearly", days=300)

    profile = service.resolve_entitlements(USER)

    assert profile.group_creation is True
    assert profile.max_groups == 5
    assert service.has_resource_access(USER, "can_create_articles") is True
    assert service.has_resource_access(USER, "organization_access") is False
    assert service.has_resource_access(USER, "organization_access", is_administrator=True) is True
    assert service.resolve_entitlements(None).is_empty
    assert service.resolve_entitlements(None, is_administrator=True).organization_access is True


def test_primary_subscription_prefers_highest_tier(subscription_components):
    store, _, service = subscription_components
    assert service.primary_subscription(USER) is None

    _seed(store, "basic", days=300)
    _seed(store, "apprentice-monthly", days=20)

    assert service.primary_subscription(USER).type == "apprentice-monthly"


def test_subscription_overview_flags_renewals(subscription_components):
    store, _, service = subscription_components
    _seed(store, "apprentice-monthly", days=10)
    _seed(store, "basic", days=200)
    _seed(store, "team-leader-monthly", days=-1)
    _seed(store, "freedom-builder-monthly", status=SubscriptionStatus.INACTIVE)

    overview = {item.subscription.type: item for item in service.subscription_overview(USER)}

    assert set(overview) == {"apprentice-monthly", "basic", "team-leader-monthly"}
    assert overview["apprentice-monthly"].needs_renewal is True
    assert overview["apprentice-monthly"].days_until_expiry == 10
    assert overview["basic"].needs_renewal is False
    assert overview["basic"].name == "Basic"
    assert overview["team-leader-monthly"].expired is True
    assert overview["team-leader-monthly"].needs_renewal is False


def test_administrator_grant_records_manual_details(subscription_components):
    store, event_logger, service = subscription_components

    result = service.grant_subscription(
        USER,
        "freedom-builder-yearly",
        expires=NOW + timedelta(days=365),
        created=NOW - timedelta(days=1),
        amount="0",
        payment_method="manual",
        notes="Conference prize",
        auto_renewal=True,
    )

    assert result.activated
    assert result.subscription.created == NOW - timedelta(days=1)
    assert result.subscription.payment_method == "manual"
    assert result.subscription.metadata == {"auto_renewal": "1", "notes": "Conference prize"}
    assert event_logger.types() == [SubscriptionAuditEventType.GRANTED]


def test_administrator_grant_respects_validation(subscription_components):
    store, _, service = subscription_components
    _seed(store, "freedom-builder-yearly", days=100)

    rejected = service.grant_subscription(USER, "freedom-builder-monthly", expires=NOW + timedelta(days=30))
    inactive = service.grant_subscription(
        USER,
        "freedom-builder-monthly",
        expires=NOW + timedelta(days=30),
        status=SubscriptionStatus.INACTIVE,
    )

    assert rejected.outcome == ActivationOutcome.REJECTED
    assert rejected.subscription is None
    assert rejected.decision.outcome == DecisionOutcome.REJECT_DOWNGRADE
    assert inactive.outcome == ActivationOutcome.GRANTED
    assert not inactive.activated
    assert inactive.group_ids == ()
    assert len(store.list_all(USER)) == 2

    with pytest.raises(ValueError):
        service.grant_subscription(USER, "basic", expires=NOW, status=SubscriptionStatus.DELETED)


def test_activating_pending_downgrade_is_refused(subscription_components):
    store, event_logger, service = subscription_components
    _seed(store, "team-leader-yearly", days=200)

    granted = service.grant_subscription(
        USER,
        "team-leader-monthly",
        expires=NOW + timedelta(days=30),
        status=SubscriptionStatus.PENDING,
    )

    assert granted.outcome == ActivationOutcome.GRANTED
    assert service.activate_pending(USER, granted.subscription.id) is False
    assert _types(store.list_active(USER)) == ["team-leader-yearly"]
    assert store.get_by_id(USER, granted.subscription.id).status == SubscriptionStatus.PENDING
    assert SubscriptionAuditEventType.ACTIVATED not in event_logger.types()


def test_activating_pending_duplicate_is_refused(subscription_components):
    store, _, service = subscription_components
    _seed(store, "basic", days=200)
    pending = _seed(store, "basic", days=365, status=SubscriptionStatus.PENDING)

    assert service.transition(USER, pending.id, SubscriptionStatus.ACTIVE) is False
    assert len(store.list_active(USER)) == 1


def test_activating_pending_yearly_prorates_monthly(subscription_components):
    store, event_logger, service = subscription_components
    monthly = _seed(store, "apprentice-monthly", days=5)
    pending = _seed(store, "apprentice-yearly", days=365, status=SubscriptionStatus.PENDING)

    assert service.activate_pending(USER, pending.id) is True

    assert _types(store.list_active(USER)) == ["apprentice-yearly"]
    assert store.get_by_id(USER, pending.id).expires == NOW + timedelta(days=370)
    assert store.get_by_id(USER, monthly.id).status == SubscriptionStatus.DELETED
    assert event_logger.types() == [SubscriptionAuditEventType.ACTIVATED, SubscriptionAuditEventType.PRORATED]


def test_sweep_honours_explicit_cutoff(subscription_components):
    store, _, service = subscription_components
    soon = _seed(store, "apprentice-monthly", days=1)
    later = _seed(store, "basic", days=200)

    summary = service.on_schedule_tick(now=NOW + timedelta(days=2))

    assert summary.subscriptions_expired == 1
    assert store.get_by_id(USER, soon.id).status == SubscriptionStatus.INACTIVE
    assert store.get_by_id(USER, later.id).status == SubscriptionStatus.ACTIVE
    assert service.sweep_user(USER) == 0


def test_administrator_access_is_limited_to_known_resources(subscription_components):
    _, _, service = subscription_components

    assert service.has_resource_access(None, "organization_access", is_administrator=True) is True
    assert service.has_resource_access(None, "can_view_pre_release_articles", is_administrator=True) is True
    assert service.has_resource_access(None, "max_groups", is_administrator=True) is False
    assert service.has_resource_access(None, "no_such_resource", is_administrator=True) is False


def test_highest_subscription_type_uses_tier_ranks(subscription_components):
    store, _, service = subscription_components
    assert service.highest_subscription_type(USER) is None

    _seed(store, "articles-annual-subscription", days=300)
    assert service.highest_subscription_type(USER) is None

    _seed(store, "apprentice-yearly", days=300)
    _seed(store, "basic", days=300)
    assert service.highest_subscription_type(USER) == "apprentice-yearly"
