"""Helpers for enforcing resource access on API and service layers."""
from __future__ import annotations

from ..entitlements import ResourceProfile
from .exceptions import FeatureGateError


def require_resource(
    profile: ResourceProfile,
    resource_key: str,
    *,
    error_code: str = "resource_access_required",
    message: str | None = None,
) -> None:
    """Ensure a boolean resource is granted before proceeding.

    Parameters
    ----------
    profile:
        Effective resource profile resolved for the current user.
    resource_key:
        Name of the boolean resource that must be granted. Unknown keys are
        treated as not granted.
    error_code:
        Optional override for the surfaced error code. Defaults to
        ``"resource_access_required"``.
    message:
        Optional human-friendly message explaining the failure. If omitted, a
        default message mentioning the missing resource is used.
    """

    if not profile.allows(resource_key):
        failure_message = message or f"Access to '{resource_key}' requires an eligible subscription."
        raise FeatureGateError(
            code=error_code,
            message=failure_message,
            detail={"missing_resource": resource_key},
        )
