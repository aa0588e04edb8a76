"""ORM model package."""

from opsledger.models.entities import (
    Asset,
    AssetEvent,
    AssetEventKind,
    BillingCycle,
    Member,
    Subscription,
    SubscriptionEvent,
    SubscriptionEventKind,
    SubscriptionStatus,
    Tenant,
)

__all__ = [
    "Asset",
    "AssetEvent",
    "AssetEventKind",
    "BillingCycle",
    "Member",
    "Subscription",
    "SubscriptionEvent",
    "SubscriptionEventKind",
    "SubscriptionStatus",
    "Tenant",
]
