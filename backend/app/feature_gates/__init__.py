"""Feature gating utilities enforcing resolved subscription resources."""
from .context import EntitlementContext
from .enforcement import require_resource
from .exceptions import FeatureGateError
from .quota import GroupQuotaEvaluation, assert_group_quota, evaluate_group_quota

__all__ = [
    "EntitlementContext",
    "FeatureGateError",
    "GroupQuotaEvaluation",
    "assert_group_quota",
    "evaluate_group_quota",
    "require_resource",
]
