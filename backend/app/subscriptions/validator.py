"""Stateless rules comparing subscription types."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from .catalog import Catalog
from .models import Subscription


class SubscriptionValidator:
    """Answers family, hierarchy and primary-selection questions.

    Two tables are consulted and never mixed: the family-local hierarchy level
    (monthly = 1, yearly = 2) decides upgrade/downgrade legality, while the
    cross-family priority table decides which active subscription is primary.
    """

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def are_related(self, first: str, second: str) -> bool:
        return self._catalog.are_related(first, second)

    def is_downgrade(self, existing: str, candidate: str) -> bool:
        if not self.are_related(existing, candidate):
            return False
        return self._catalog.level_of(candidate) < self._catalog.level_of(existing)

    def is_upgrade(self, existing: str, candidate: str) -> bool:
        if not self.are_related(existing, candidate):
            return False
        return self._catalog.level_of(candidate) > self._catalog.level_of(existing)

    def is_monthly_to_yearly_upgrade(self, existing: str, candidate: str) -> bool:
        """Only explicitly sanctioned pairs qualify for prorated upgrades."""

        if not self.are_related(existing, candidate):
            return False
        return self._catalog.upgrade_target_of(existing) == candidate

    def primary_of(
        self,
        subscriptions: Iterable[Subscription],
        now: Optional[datetime] = None,
    ) -> Optional[Subscription]:
        """Pick the highest priority active record, furthest expiry first on ties."""

        active = [subscription for subscription in subscriptions if subscription.is_active(now)]
        if not active:
            return None
        ranked = sorted(
            active,
            key=lambda subscription: (
                self._catalog.priority_of(subscription.type),
                subscription.expires,
            ),
            reverse=True,
        )
        return ranked[0]

    def has_only_basic(self, subscription_types: Sequence[str]) -> bool:
        if not subscription_types:
            return False
        return all("basic" in subscription_type for subscription_type in subscription_types)

    def has_multiple(self, subscription_types: Sequence[str]) -> bool:
        return len(subscription_types) > 1

    def highest_type_of(self, subscription_types: Iterable[str]) -> Optional[str]:
        """Return the first type with the highest tier rank.

        Unranked types never win, so a list of only unranked types yields ``None``.
        """

        highest_type: Optional[str] = None
        highest_rank = 0
        for subscription_type in subscription_types:
            rank = self._catalog.rank_of(subscription_type)
            if rank > highest_rank:
                highest_rank = rank
                highest_type = subscription_type
        return highest_type


__all__ = ["SubscriptionValidator"]
