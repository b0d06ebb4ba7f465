"""Entitlement profiles and the resolver combining them."""

from .models import BOOLEAN_RESOURCES, EMPTY_PROFILE, NUMERIC_RESOURCES, ResourceProfile
from .registry import RESOURCE_PROFILES, ResourceProfileRegistry
from .resolver import EntitlementResolver

__all__ = [
    "BOOLEAN_RESOURCES",
    "EMPTY_PROFILE",
    "NUMERIC_RESOURCES",
    "RESOURCE_PROFILES",
    "EntitlementResolver",
    "ResourceProfile",
    "ResourceProfileRegistry",
]
