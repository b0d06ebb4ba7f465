"""Static catalog definitions for purchasable subscriptions and their families."""
from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from .models import SubscriptionType

MONTHLY = relativedelta(months=1)
YEARLY = relativedelta(years=1)


@dataclass(frozen=True)
class CatalogEntry:
    """Describes a purchasable SKU and the subscription it grants."""

    sku: str
    type: str
    duration: relativedelta
    display_name: str = ""
    group_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FamilyDefinition:
    """Mutually exclusive subscription types ranked by hierarchy level."""

    name: str
    levels: Mapping[str, int]

    @property
    def members(self) -> Tuple[str, ...]:
        return tuple(self.levels)

    def __contains__(self, subscription_type: object) -> bool:
        return subscription_type in self.levels


def _entry(sku: str, subscription_type: SubscriptionType, duration: relativedelta, name: str) -> CatalogEntry:
    return CatalogEntry(sku=sku, type=subscription_type.value, duration=duration, display_name=name)


CATALOG_ENTRIES: Tuple[CatalogEntry, ...] = (
    _entry("basic-subscription", SubscriptionType.BASIC, YEARLY, "Basic"),
    _entry("monthly-basic-subscription", SubscriptionType.MONTHLY_BASIC, MONTHLY, "Basic (Monthly)"),
    _entry("organization-subscription", SubscriptionType.ORGANIZATION, YEARLY, "Organization"),
    _entry(
        "monthly-organization-subscription",
        SubscriptionType.MONTHLY_ORGANIZATION,
        MONTHLY,
        "Organization (Monthly)",
    ),
    _entry("apprentice-monthly", SubscriptionType.APPRENTICE_MONTHLY, MONTHLY, "Apprentice (Monthly)"),
    _entry("apprentice-yearly", SubscriptionType.APPRENTICE_YEARLY, YEARLY, "Apprentice (Yearly)"),
    _entry("team-leader-monthly", SubscriptionType.TEAM_LEADER_MONTHLY, MONTHLY, "Team Leader (Monthly)"),
    _entry("team-leader-yearly", SubscriptionType.TEAM_LEADER_YEARLY, YEARLY, "Team Leader (Yearly)"),
    _entry(
        "freedom-builder-monthly",
        SubscriptionType.FREEDOM_BUILDER_MONTHLY,
        MONTHLY,
        "Freedom Builder (Monthly)",
    ),
    _entry(
        "freedom-builder-yearly",
        SubscriptionType.FREEDOM_BUILDER_YEARLY,
        YEARLY,
        "Freedom Builder (Yearly)",
    ),
    _entry(
        "articles-monthly-subscription",
        SubscriptionType.ARTICLES_MONTHLY,
        MONTHLY,
        "Articles (Monthly)",
    ),
    _entry(
        "articles-annual-subscription",
        SubscriptionType.ARTICLES_ANNUAL,
        YEARLY,
        "Articles (Annual)",
    ),
)

SUBSCRIPTION_FAMILIES: Tuple[FamilyDefinition, ...] = (
    FamilyDefinition(
        name="basic-family",
        levels={SubscriptionType.BASIC.value: 1, SubscriptionType.MONTHLY_BASIC.value: 1},
    ),
    FamilyDefinition(
        name="apprentice-family",
        levels={SubscriptionType.APPRENTICE_YEARLY.value: 2, SubscriptionType.APPRENTICE_MONTHLY.value: 1},
    ),
    FamilyDefinition(
        name="team-leader-family",
        levels={SubscriptionType.TEAM_LEADER_YEARLY.value: 2, SubscriptionType.TEAM_LEADER_MONTHLY.value: 1},
    ),
    FamilyDefinition(
        name="freedom-builder-family",
        levels={
            SubscriptionType.FREEDOM_BUILDER_YEARLY.value: 2,
            SubscriptionType.FREEDOM_BUILDER_MONTHLY.value: 1,
        },
    ),
    FamilyDefinition(
        name="articles-family",
        levels={SubscriptionType.ARTICLES_ANNUAL.value: 2, SubscriptionType.ARTICLES_MONTHLY.value: 1},
    ),
)

# Only these pairs are accepted as prorated monthly -> yearly upgrades.
MONTHLY_TO_YEARLY_UPGRADES: Dict[str, str] = {
    SubscriptionType.MONTHLY_BASIC.value: SubscriptionType.BASIC.value,
    SubscriptionType.APPRENTICE_MONTHLY.value: SubscriptionType.APPRENTICE_YEARLY.value,
    SubscriptionType.TEAM_LEADER_MONTHLY.value: SubscriptionType.TEAM_LEADER_YEARLY.value,
    SubscriptionType.FREEDOM_BUILDER_MONTHLY.value: SubscriptionType.FREEDOM_BUILDER_YEARLY.value,
    SubscriptionType.ARTICLES_MONTHLY.value: SubscriptionType.ARTICLES_ANNUAL.value,
}

# Cross-family ranking used to pick the primary subscription. The gap at 4 and
# the missing articles family are kept as-is.
PRIMARY_PRIORITY: Dict[str, int] = {
    SubscriptionType.BASIC.value: 1,
    SubscriptionType.MONTHLY_BASIC.value: 1,
    SubscriptionType.APPRENTICE_YEARLY.value: 2,
    SubscriptionType.APPRENTICE_MONTHLY.value: 2,
    SubscriptionType.TEAM_LEADER_YEARLY.value: 3,
    SubscriptionType.TEAM_LEADER_MONTHLY.value: 3,
    SubscriptionType.FREEDOM_BUILDER_YEARLY.value: 5,
    SubscriptionType.FREEDOM_BUILDER_MONTHLY.value: 5,
}

# Tier ranking used to report the highest subscription a user holds. Yearly
# variants rank one above their monthly counterpart; articles are unranked.
TIER_RANKS: Dict[str, int] = {
    SubscriptionType.BASIC.value: 10,
    SubscriptionType.MONTHLY_BASIC.value: 10,
    SubscriptionType.APPRENTICE_MONTHLY.value: 20,
    SubscriptionType.APPRENTICE_YEARLY.value: 21,
    SubscriptionType.TEAM_LEADER_MONTHLY.value: 30,
    SubscriptionType.TEAM_LEADER_YEARLY.value: 31,
    SubscriptionType.FREEDOM_BUILDER_MONTHLY.value: 40,
    SubscriptionType.FREEDOM_BUILDER_YEARLY.value: 41,
}

_TIERS: Tuple[str, ...] = ("basic", "apprentice", "team-leader", "freedom-builder")


class Catalog:
    """Read-only lookups over SKUs, families and hierarchy tables."""

    def __init__(
        self,
        entries: Iterable[CatalogEntry] = CATALOG_ENTRIES,
        families: Iterable[FamilyDefinition] = SUBSCRIPTION_FAMILIES,
        upgrade_pairs: Optional[Mapping[str, str]] = None,
        primary_priority: Optional[Mapping[str, int]] = None,
        tier_ranks: Optional[Mapping[str, int]] = None,
    ) -> None:
        self._by_sku: Dict[str, CatalogEntry] = {}
        self._by_type: Dict[str, CatalogEntry] = {}
        for entry in entries:
            self._by_sku[entry.sku] = entry
            self._by_type.setdefault(entry.type, entry)
        self._families: Tuple[FamilyDefinition, ...] = tuple(families)
        self._levels: Dict[str, int] = {}
        for family in self._families:
            for subscription_type, level in family.levels.items():
                self._levels.setdefault(subscription_type, level)
        self._upgrade_pairs: Dict[str, str] = dict(
            MONTHLY_TO_YEARLY_UPGRADES if upgrade_pairs is None else upgrade_pairs
        )
        self._priority: Dict[str, int] = dict(
            PRIMARY_PRIORITY if primary_priority is None else primary_priority
        )
        self._ranks: Dict[str, int] = dict(TIER_RANKS if tier_ranks is None else tier_ranks)

    def resolve_type(self, sku: str) -> Optional[str]:
        """Return the subscription type sold under ``sku``, if any."""

        entry = self._by_sku.get(sku)
        return entry.type if entry else None

    def entry_for_sku(self, sku: str) -> Optional[CatalogEntry]:
        return self._by_sku.get(sku)

    def entry_for_type(self, subscription_type: str) -> Optional[CatalogEntry]:
        return self._by_type.get(subscription_type)

    def duration_of(self, subscription_type: str) -> relativedelta:
        """Return the purchase duration; unknown types default to one year."""

        entry = self._by_type.get(subscription_type)
        return entry.duration if entry else YEARLY

    def group_ids_for(self, subscription_type: str) -> Tuple[str, ...]:
        entry = self._by_type.get(subscription_type)
        return entry.group_ids if entry else ()

    def families(self) -> Tuple[FamilyDefinition, ...]:
        return self._families

    def family_of(self, subscription_type: str) -> Optional[FamilyDefinition]:
        for family in self._families:
            if subscription_type in family:
                return family
        return None

    def level_of(self, subscription_type: str) -> int:
        return self._levels.get(subscription_type, 0)

    def are_related(self, first: str, second: str) -> bool:
        return any(first in family and second in family for family in self._families)

    def upgrade_target_of(self, subscription_type: str) -> Optional[str]:
        return self._upgrade_pairs.get(subscription_type)

    def priority_of(self, subscription_type: str) -> int:
        return self._priority.get(subscription_type, 0)

    def rank_of(self, subscription_type: str) -> int:
        return self._ranks.get(subscription_type, 0)

    def friendly_name(self, subscription_type: str) -> str:
        entry = self._by_type.get(subscription_type)
        if entry and entry.display_name:
            return entry.display_name
        base_name = subscription_type.replace("monthly-", "").replace("yearly-", "")
        return base_name.replace("-", " ").title()

    def tier_of(self, subscription_type: str) -> str:
        for tier in _TIERS:
            if tier in subscription_type:
                return tier
        return "unknown"


def _parse_duration(value: Union[str, Mapping[str, int], None]) -> relativedelta:
    if value is None:
        return YEARLY
    if isinstance(value, Mapping):
        return relativedelta(**{str(key): int(amount) for key, amount in value.items()})
    normalized = str(value).strip().lower()
    if normalized in {"month", "monthly", "+1 month"}:
        return MONTHLY
    if normalized in {"year", "yearly", "annual", "+1 year"}:
        return YEARLY
    raise ValueError(f"Unsupported duration: {value!r}")


def catalog_from_config(payload: Mapping[str, object]) -> Catalog:
    """Build a :class:`Catalog` from a configuration mapping.

    Missing sections fall back to the built-in tables.
    """

    raw_entries = payload.get("entries")
    entries: Iterable[CatalogEntry] = CATALOG_ENTRIES
    if raw_entries is not None:
        entries = [
            CatalogEntry(
                sku=str(item["sku"]),
                type=str(item["type"]),
                duration=_parse_duration(item.get("duration")),
                display_name=str(item.get("display_name", "")),
                group_ids=tuple(str(group_id) for group_id in item.get("group_ids", ())),
            )
            for item in raw_entries  # type: ignore[union-attr]
        ]

    raw_families = payload.get("families")
    families: Iterable[FamilyDefinition] = SUBSCRIPTION_FAMILIES
    if raw_families is not None:
        families = [
            FamilyDefinition(name=str(name), levels={str(key): int(level) for key, level in levels.items()})
            for name, levels in raw_families.items()  # type: ignore[union-attr]
        ]

    upgrade_pairs = payload.get("upgrade_pairs")
    primary_priority = payload.get("primary_priority")
    tier_ranks = payload.get("tier_ranks")
    return Catalog(
        entries=entries,
        families=families,
        upgrade_pairs=dict(upgrade_pairs) if upgrade_pairs is not None else None,  # type: ignore[arg-type]
        primary_priority=dict(primary_priority) if primary_priority is not None else None,  # type: ignore[arg-type]
        tier_ranks=dict(tier_ranks) if tier_ranks is not None else None,  # type: ignore[arg-type]
    )


def load_catalog(path: Union[str, Path]) -> Catalog:
    """Load a catalog from a JSON configuration file."""

    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError("Catalog configuration must be a JSON object")
    return catalog_from_config(payload)


@lru_cache(maxsize=1)
def default_catalog() -> Catalog:
    return Catalog()


__all__ = [
    "CATALOG_ENTRIES",
    "MONTHLY_TO_YEARLY_UPGRADES",
    "PRIMARY_PRIORITY",
    "SUBSCRIPTION_FAMILIES",
    "TIER_RANKS",
    "Catalog",
    "CatalogEntry",
    "FamilyDefinition",
    "catalog_from_config",
    "default_catalog",
    "load_catalog",
]
