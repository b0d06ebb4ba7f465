"""Convenience wrapper around resolved resource profiles for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ..entitlements import ResourceProfile
from .enforcement import require_resource
from .quota import GroupQuotaEvaluation, assert_group_quota, evaluate_group_quota


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for a user's effective profile."""

    profile: ResourceProfile

    @property
    def support_level(self) -> str:
        return self.profile.support_level

    @property
    def allowed_course_categories(self) -> Tuple[str, ...]:
        return self.profile.course_categories

    @property
    def can_create_groups(self) -> bool:
        return self.profile.group_creation and self.profile.max_groups > 0

    def has(self, resource_key: str) -> bool:
        """Return whether the provided boolean resource is granted."""

        return self.profile.allows(resource_key)

    def require(self, resource_key: str, *, error_code: str = "resource_access_required") -> None:
        require_resource(self.profile, resource_key, error_code=error_code)

    def can_access_course_category(self, category: str) -> bool:
        return category in self.profile.course_categories

    def evaluate_group_quota(
        self,
        *,
        current_groups: int = 0,
        new_groups: int = 1,
        requested_members: int = 0,
    ) -> GroupQuotaEvaluation:
        return evaluate_group_quota(
            max_groups=self.profile.max_groups,
            max_members_per_group=self.profile.max_members_per_group,
            current_groups=current_groups,
            new_groups=new_groups,
            requested_members=requested_members,
        )

    def assert_group_quota(
        self,
        *,
        current_groups: int = 0,
        new_groups: int = 1,
        requested_members: int = 0,
        error_code: str = "group_quota_exceeded",
    ) -> GroupQuotaEvaluation:
        """Raise when creating groups would violate the profile's limits."""

        self.require("group_creation")
        return assert_group_quota(
            max_groups=self.profile.max_groups,
            max_members_per_group=self.profile.max_members_per_group,
            current_groups=current_groups,
            new_groups=new_groups,
            requested_members=requested_members,
            error_code=error_code,
        )
