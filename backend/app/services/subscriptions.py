"""Application wiring for the subscription service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..entitlements import ResourceProfileRegistry
from ..subscriptions import (
    SubscriptionAuditEvent,
    SubscriptionEventLogger,
    SubscriptionService,
    SubscriptionStore,
    default_catalog,
    load_catalog,
    load_subscription_config,
)
from ..subscriptions.repository import PostgresSubscriptionRecordStore


logger = logging.getLogger("subscriptions")


class LoggingSubscriptionEventLogger(SubscriptionEventLogger):
    """Simple event logger forwarding subscription audit events to logging."""

    def log(self, event: SubscriptionAuditEvent) -> None:
        logger.info(
            "Subscription event %s user=%s subscription=%s type=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.subscription_id,
            event.subscription_type,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_subscription_service() -> SubscriptionService:
    config = load_subscription_config()
    catalog = load_catalog(config.catalog_path) if config.catalog_path else default_catalog()
    store = SubscriptionStore(PostgresSubscriptionRecordStore())
    service = SubscriptionService(
        catalog=catalog,
        registry=ResourceProfileRegistry(),
        store=store,
        event_logger=LoggingSubscriptionEventLogger(),
        sweep_max_workers=config.sweep_max_workers,
        renewal_warning_days=config.renewal_warning_days,
    )
    logger.debug("Subscription service configured catalog_path=%s", config.catalog_path)
    return service


__all__ = ["get_subscription_service", "LoggingSubscriptionEventLogger"]
