"""Domain models for subscription resource profiles."""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Dict, Iterable, Mapping, Tuple

BOOLEAN_RESOURCES: Tuple[str, ...] = (
    "group_creation",
    "organization_access",
    "advanced_features",
    "can_view_mlm_articles",
    "can_create_articles",
    "can_edit_articles",
    "can_filter_articles",
    "can_view_pre_release_articles",
)

NUMERIC_RESOURCES: Tuple[str, ...] = ("max_groups", "max_members_per_group")


def _union(left: Iterable[str], right: Iterable[str]) -> Tuple[str, ...]:
    merged = list(left)
    for item in right:
        if item not in merged:
            merged.append(item)
    return tuple(merged)


@dataclass(frozen=True)
class ResourceProfile:
    """Capability bundle granted by a subscription type."""

    group_creation: bool = False
    organization_access: bool = False
    advanced_features: bool = False
    can_view_mlm_articles: bool = False
    can_create_articles: bool = False
    can_edit_articles: bool = False
    can_filter_articles: bool = False
    can_view_pre_release_articles: bool = False
    max_groups: int = 0
    max_members_per_group: int = 0
    support_level: str = ""
    course_categories: Tuple[str, ...] = ()

    def merge(self, other: "ResourceProfile") -> "ResourceProfile":
        """Combine two profiles.

        Booleans are OR-ed, numeric limits take the maximum, course categories
        are unioned and ``support_level`` keeps the first non-empty value.
        """

        if other is self:
            return self
        data: Dict[str, object] = {}
        for name in BOOLEAN_RESOURCES:
            data[name] = getattr(self, name) or getattr(other, name)
        for name in NUMERIC_RESOURCES:
            data[name] = max(getattr(self, name), getattr(other, name))
        data["support_level"] = self.support_level or other.support_level
        data["course_categories"] = _union(self.course_categories, other.course_categories)
        return ResourceProfile(**data)

    @property
    def is_empty(self) -> bool:
        return self == EMPTY_PROFILE

    def allows(self, resource_key: str) -> bool:
        """Return whether a boolean resource is granted.

        Unknown keys and non-boolean resources are never granted.
        """

        if resource_key not in BOOLEAN_RESOURCES:
            return False
        return bool(getattr(self, resource_key))

    def to_dict(self) -> Dict[str, object]:
        """Serialize the profile for audit snapshots."""

        data = {field.name: getattr(self, field.name) for field in fields(self)}
        data["course_categories"] = list(self.course_categories)
        return data

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> "ResourceProfile":
        """Build a profile from a configuration mapping, ignoring unknown keys."""

        known = {field.name for field in fields(cls)}
        data: Dict[str, object] = {}
        for key, value in payload.items():
            if key not in known:
                continue
            if key == "course_categories":
                data[key] = tuple(str(item) for item in (value or ()))
            elif key in NUMERIC_RESOURCES:
                data[key] = int(value or 0)
            elif key in BOOLEAN_RESOURCES:
                data[key] = bool(value)
            else:
                data[key] = str(value or "")
        return cls(**data)


EMPTY_PROFILE = ResourceProfile()
