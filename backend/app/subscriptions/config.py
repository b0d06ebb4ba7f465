"""Subscription engine configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os


@dataclass(frozen=True)
class SubscriptionConfig:
    """Runtime settings for the subscription engine."""

    catalog_path: Optional[str]
    sweep_max_workers: int
    sweep_hour_utc: int
    sweep_interval_hours: float
    renewal_warning_days: int


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_subscription_config(env: Optional[Mapping[str, str]] = None) -> SubscriptionConfig:
    """Load :class:`SubscriptionConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    catalog_path = (env_mapping.get("SUBSCRIPTION_CATALOG_PATH") or "").strip() or None
    sweep_max_workers = max(1, _to_int(env_mapping.get("SUBSCRIPTION_SWEEP_MAX_WORKERS"), default=4))
    sweep_hour_utc = _to_int(env_mapping.get("SUBSCRIPTION_SWEEP_HOUR_UTC"), default=3)
    if not 0 <= sweep_hour_utc <= 23:
        raise ValueError("SUBSCRIPTION_SWEEP_HOUR_UTC must be between 0 and 23")
    sweep_interval_hours = max(
        1.0, _to_float(env_mapping.get("SUBSCRIPTION_SWEEP_INTERVAL_HOURS"), default=24.0)
    )
    renewal_warning_days = max(
        0, _to_int(env_mapping.get("SUBSCRIPTION_RENEWAL_WARNING_DAYS"), default=15)
    )

    return SubscriptionConfig(
        catalog_path=catalog_path,
        sweep_max_workers=sweep_max_workers,
        sweep_hour_utc=sweep_hour_utc,
        sweep_interval_hours=sweep_interval_hours,
        renewal_warning_days=renewal_warning_days,
    )


__all__ = ["SubscriptionConfig", "load_subscription_config"]
