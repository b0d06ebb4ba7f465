"""Group quota evaluation utilities for feature gating."""
from __future__ import annotations

from dataclasses import dataclass

from .exceptions import FeatureGateError


@dataclass(frozen=True)
class GroupQuotaEvaluation:
    """Represents the outcome of a group creation or membership check."""

    max_groups: int
    current_groups: int
    max_members_per_group: int
    requested_members: int
    groups_allowed: bool
    members_allowed: bool

    @property
    def allowed(self) -> bool:
        return self.groups_allowed and self.members_allowed

    def to_dict(self) -> dict[str, int | bool]:
        """Serialize the evaluation for logging or telemetry."""

        return {
            "max_groups": self.max_groups,
            "current_groups": self.current_groups,
            "max_members_per_group": self.max_members_per_group,
            "requested_members": self.requested_members,
            "groups_allowed": self.groups_allowed,
            "members_allowed": self.members_allowed,
            "allowed": self.allowed,
        }


def evaluate_group_quota(
    *,
    max_groups: int,
    max_members_per_group: int,
    current_groups: int = 0,
    new_groups: int = 1,
    requested_members: int = 0,
) -> GroupQuotaEvaluation:
    """Determine whether creating groups of the requested size is permitted."""

    projected_groups = max(current_groups, 0) + max(new_groups, 0)
    members = max(requested_members, 0)
    return GroupQuotaEvaluation(
        max_groups=max_groups,
        current_groups=max(current_groups, 0),
        max_members_per_group=max_members_per_group,
        requested_members=members,
        groups_allowed=projected_groups <= max_groups,
        members_allowed=members <= max_members_per_group,
    )


def assert_group_quota(
    *,
    max_groups: int,
    max_members_per_group: int,
    current_groups: int = 0,
    new_groups: int = 1,
    requested_members: int = 0,
    error_code: str = "group_quota_exceeded",
) -> GroupQuotaEvaluation:
    """Raise when a group operation exceeds the subscription's limits."""

    evaluation = evaluate_group_quota(
        max_groups=max_groups,
        max_members_per_group=max_members_per_group,
        current_groups=current_groups,
        new_groups=new_groups,
        requested_members=requested_members,
    )

    if not evaluation.groups_allowed:
        raise FeatureGateError(
            code=error_code,
            message="Group limit reached for your subscription.",
            detail={"max_groups": max_groups, "current_groups": evaluation.current_groups},
        )
    if not evaluation.members_allowed:
        raise FeatureGateError(
            code=error_code,
            message="Group member limit exceeded for your subscription.",
            detail={
                "max_members_per_group": max_members_per_group,
                "requested_members": evaluation.requested_members,
            },
        )

    return evaluation
