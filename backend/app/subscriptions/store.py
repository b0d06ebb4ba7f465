"""Per-user subscription record persistence and basic filtering."""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence
from uuid import uuid4

from .models import Subscription, SubscriptionStatus, ensure_aware

SECONDS_PER_DAY = 24 * 60 * 60


class SubscriptionRecordStore(Protocol):
    """Opaque get/set of a user's subscription list supplied by the host."""

    def load(self, user_id: str) -> List[Subscription]:
        ...

    def save(self, user_id: str, subscriptions: Sequence[Subscription]) -> None:
        ...

    def user_ids(self) -> Iterable[str]:
        ...


class InMemorySubscriptionRecordStore:
    """Simple in-memory record store suitable for tests and local development."""

    def __init__(self) -> None:
        self._records: Dict[str, List[Subscription]] = {}
        self._lock = Lock()

    def load(self, user_id: str) -> List[Subscription]:
        with self._lock:
            return list(self._records.get(user_id, ()))

    def save(self, user_id: str, subscriptions: Sequence[Subscription]) -> None:
        with self._lock:
            self._records[user_id] = list(subscriptions)

    def user_ids(self) -> Iterable[str]:
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def generate_subscription_id() -> str:
    return f"sub_{uuid4().hex}"


class SubscriptionStore:
    """CRUD over a user's subscription records.

    Operations never raise for missing records; they return ``None`` or
    ``False`` and leave stored data untouched.
    """

    def __init__(
        self,
        record_store: SubscriptionRecordStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._record_store = record_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return ensure_aware(self._clock())

    def list_all(self, user_id: str) -> List[Subscription]:
        return self._record_store.load(user_id)

    def list_active(self, user_id: str) -> List[Subscription]:
        now = self._now()
        return [subscription for subscription in self.list_all(user_id) if subscription.is_active(now)]

    def list_types(self, user_id: str) -> List[str]:
        return [subscription.type for subscription in self.list_active(user_id)]

    def user_ids(self) -> List[str]:
        return list(self._record_store.user_ids())

    def save(self, user_id: str, subscription: Subscription) -> Subscription:
        """Append a new record, assigning an id and timestamps."""

        now = self._now()
        stored = subscription.model_copy(
            update={
                "id": subscription.id or generate_subscription_id(),
                "created": subscription.created or now,
                "updated": now,
            }
        )
        records = self.list_all(user_id)
        records.append(stored)
        self._record_store.save(user_id, records)
        return stored

    def replace_all(self, user_id: str, subscriptions: Sequence[Subscription]) -> None:
        self._record_store.save(user_id, subscriptions)

    def update(self, user_id: str, subscription_id: str, patch: Mapping[str, object]) -> bool:
        """Merge ``patch`` into the matching record, keeping ``id`` and ``created``."""

        if not subscription_id:
            return False
        records = self.list_all(user_id)
        for index, subscription in enumerate(records):
            if subscription.id != subscription_id:
                continue
            changes = {key: value for key, value in patch.items() if key not in {"id", "created"}}
            changes["updated"] = self._now()
            merged = subscription.model_dump()
            merged.update(changes)
            records[index] = Subscription.model_validate(merged)
            self._record_store.save(user_id, records)
            return True
        return False

    def soft_delete(self, user_id: str, subscription_id: str) -> bool:
        now = self._now()
        return self.update(
            user_id,
            subscription_id,
            {"status": SubscriptionStatus.DELETED, "deleted_at": now},
        )

    def deactivate(self, user_id: str, subscription_id: str) -> bool:
        return self.update(user_id, subscription_id, {"status": SubscriptionStatus.INACTIVE})

    def get_by_id(self, user_id: str, subscription_id: str) -> Optional[Subscription]:
        for subscription in self.list_all(user_id):
            if subscription.id == subscription_id:
                return subscription
        return None

    def get_by_type(
        self,
        user_id: str,
        subscription_type: str,
        *,
        active_only: bool = False,
    ) -> Optional[Subscription]:
        records = self.list_active(user_id) if active_only else self.list_all(user_id)
        for subscription in records:
            if subscription.type == subscription_type:
                return subscription
        return None

    def remaining_days(self, subscription: Subscription) -> int:
        """Whole days left, rounded up; zero once inactive or expired."""

        if subscription.status != SubscriptionStatus.ACTIVE:
            return 0
        seconds_left = (subscription.expires - self._now()).total_seconds()
        if seconds_left <= 0:
            return 0
        return int(math.ceil(seconds_left / SECONDS_PER_DAY))

    def transfer_remaining_days(self, user_id: str, source_id: str, target_id: str) -> bool:
        """Move unused days from ``source`` onto ``target`` and soft-delete ``source``.

        The source is deleted even when nothing was left to transfer so two
        members of the same family never stay active together.
        """

        source = self.get_by_id(user_id, source_id)
        target = self.get_by_id(user_id, target_id)
        if source is None or target is None:
            return False

        remaining = self.remaining_days(source)
        if remaining > 0:
            extended = target.expires + timedelta(days=remaining)
            if not self.update(user_id, target_id, {"expires": extended}):
                return False

        self.soft_delete(user_id, source_id)
        return True


__all__ = [
    "InMemorySubscriptionRecordStore",
    "SubscriptionRecordStore",
    "SubscriptionStore",
    "generate_subscription_id",
]
