"""Merges resource profiles of active subscriptions into effective entitlements."""
from __future__ import annotations

from typing import Iterable, Protocol

from .models import EMPTY_PROFILE, ResourceProfile
from .registry import ResourceProfileRegistry


class TypedRecord(Protocol):
    """Anything exposing a subscription ``type``."""

    type: str


class EntitlementResolver:
    """Computes the effective capability set for a holder of subscriptions.

    Results are never cached or persisted; callers recompute on demand.
    """

    def __init__(self, registry: ResourceProfileRegistry) -> None:
        self._registry = registry

    def profile_of(self, subscription_type: str) -> ResourceProfile:
        return self._registry.profile_of(subscription_type)

    def resolve(self, active_subscriptions: Iterable[TypedRecord]) -> ResourceProfile:
        """Merge the profiles of the given (already active) subscriptions."""

        types = sorted(
            str(subscription.type)
            for subscription in active_subscriptions
            if getattr(subscription, "type", None)
        )
        return self._merge(self._registry.profile_of(subscription_type) for subscription_type in types)

    def resolve_types(self, subscription_types: Iterable[str]) -> ResourceProfile:
        return self._merge(
            self._registry.profile_of(subscription_type)
            for subscription_type in sorted(str(value) for value in subscription_types if value)
        )

    def resolve_for_administrator(self) -> ResourceProfile:
        """Union of every registered profile."""

        return self._merge(self._registry.all_profiles())

    @staticmethod
    def _merge(profiles: Iterable[ResourceProfile]) -> ResourceProfile:
        effective = EMPTY_PROFILE
        for profile in profiles:
            effective = effective.merge(profile)
        return effective


__all__ = ["EntitlementResolver"]
