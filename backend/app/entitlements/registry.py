"""Static registry mapping subscription types to resource profiles."""
from __future__ import annotations

from typing import Dict, Mapping, Optional, Tuple

from .models import EMPTY_PROFILE, ResourceProfile

BASIC_PROFILE = ResourceProfile(
    support_level="basic",
    course_categories=("basic-courses",),
)

ORGANIZATION_PROFILE = ResourceProfile(
    group_creation=True,
    organization_access=True,
    advanced_features=True,
    can_view_mlm_articles=True,
    can_create_articles=True,
    can_edit_articles=True,
    can_filter_articles=True,
    max_groups=10,
    max_members_per_group=100,
    support_level="premium",
    course_categories=("basic-courses", "organization-courses", "advanced-courses"),
)

APPRENTICE_MONTHLY_PROFILE = ResourceProfile(
    can_view_mlm_articles=True,
    can_create_articles=True,
    can_edit_articles=True,
    can_filter_articles=True,
    support_level="standard",
    course_categories=("basic-courses", "advanced-courses"),
)

TEAM_LEADER_MONTHLY_PROFILE = ResourceProfile(
    group_creation=True,
    advanced_features=True,
    can_view_mlm_articles=True,
    can_create_articles=True,
    can_edit_articles=True,
    can_filter_articles=True,
    max_groups=5,
    max_members_per_group=50,
    support_level="premium",
    course_categories=("basic-courses", "advanced-courses", "team-leader-courses"),
)

FREEDOM_BUILDER_MONTHLY_PROFILE = ResourceProfile(
    group_creation=True,
    organization_access=True,
    advanced_features=True,
    can_view_mlm_articles=True,
    can_create_articles=True,
    can_edit_articles=True,
    can_filter_articles=True,
    max_groups=10,
    max_members_per_group=100,
    support_level="vip",
    course_categories=(
        "basic-courses",
        "advanced-courses",
        "team-leader-courses",
        "freedom-builder-courses",
    ),
)

# Yearly variants additionally unlock pre-release articles.
PRE_RELEASE_OVERRIDE = ResourceProfile(can_view_pre_release_articles=True)

RESOURCE_PROFILES: Dict[str, ResourceProfile] = {
    "basic": BASIC_PROFILE,
    "monthly-basic-subscription": BASIC_PROFILE,
    "organization": ORGANIZATION_PROFILE,
    "monthly-organization-subscription": ORGANIZATION_PROFILE,
    "apprentice-monthly": APPRENTICE_MONTHLY_PROFILE,
    "apprentice-yearly": APPRENTICE_MONTHLY_PROFILE.merge(PRE_RELEASE_OVERRIDE),
    "team-leader-monthly": TEAM_LEADER_MONTHLY_PROFILE,
    "team-leader-yearly": TEAM_LEADER_MONTHLY_PROFILE.merge(PRE_RELEASE_OVERRIDE),
    "freedom-builder-monthly": FREEDOM_BUILDER_MONTHLY_PROFILE,
    "freedom-builder-yearly": FREEDOM_BUILDER_MONTHLY_PROFILE.merge(PRE_RELEASE_OVERRIDE),
}


class ResourceProfileRegistry:
    """Read-only lookup of the capability bundle attached to each type."""

    def __init__(self, profiles: Optional[Mapping[str, ResourceProfile]] = None) -> None:
        self._profiles: Dict[str, ResourceProfile] = dict(
            RESOURCE_PROFILES if profiles is None else profiles
        )

    def profile_of(self, subscription_type: str) -> ResourceProfile:
        """Return the profile for a type, or the empty profile if unknown."""

        return self._profiles.get(str(subscription_type), EMPTY_PROFILE)

    def types(self) -> Tuple[str, ...]:
        return tuple(self._profiles)

    def all_profiles(self) -> Tuple[ResourceProfile, ...]:
        return tuple(self._profiles[key] for key in sorted(self._profiles))

    @classmethod
    def from_config(cls, payload: Mapping[str, Mapping[str, object]]) -> "ResourceProfileRegistry":
        return cls(
            {
                str(subscription_type): ResourceProfile.from_mapping(values)
                for subscription_type, values in payload.items()
            }
        )


__all__ = ["RESOURCE_PROFILES", "ResourceProfileRegistry"]
