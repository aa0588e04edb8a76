"""Tenant-scoped persistence for tracked entities and their event logs."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from opsledger.core.clock import as_naive_utc, start_of_day
from opsledger.core.exceptions import EntityNotFoundError
from opsledger.lifecycle.types import EntitySnapshot, EventKindMapping, LifecycleEvent
from opsledger.models.entities import (
    Asset,
    AssetEvent,
    AssetEventKind,
    Member,
    Subscription,
    SubscriptionEvent,
    SubscriptionEventKind,
    SubscriptionStatus,
)

ASSET_EVENT_MAPPING = EventKindMapping(
    name="asset",
    start_kinds=frozenset({AssetEventKind.ASSIGNED.value}),
    end_kinds=frozenset({AssetEventKind.UNASSIGNED.value}),
)

SUBSCRIPTION_EVENT_MAPPING = EventKindMapping(
    name="subscription",
    start_kinds=frozenset({SubscriptionEventKind.ACTIVATED.value, SubscriptionEventKind.REACTIVATED.value}),
    end_kinds=frozenset({SubscriptionEventKind.CANCELLED.value}),
    handoff_kinds=frozenset({SubscriptionEventKind.REASSIGNED.value}),
    subject_required=False,
    origin_opens_interval=True,
)


def _to_event(
    row: AssetEvent | SubscriptionEvent,
    entity_id: UUID,
    *,
    cycle_anchor: date | None = None,
) -> LifecycleEvent:
    return LifecycleEvent(
        event_id=row.id,
        kind=row.kind.value,
        created_at=as_naive_utc(row.created_at),
        sequence=row.seq,
        effective_at=as_naive_utc(row.effective_at) if row.effective_at is not None else None,
        subject_id=row.member_id,
        prior_subject_id=row.prior_member_id,
        notes=row.notes,
        entity_id=entity_id,
        cycle_anchor=cycle_anchor,
    )


def _to_subscription_event(row: SubscriptionEvent) -> LifecycleEvent:
    # Only a reactivation restarts billing; a cancellation keeps the old renewal date for reference.
    anchor = row.renewal_date if row.kind is SubscriptionEventKind.REACTIVATED else None
    return _to_event(row, row.subscription_id, cycle_anchor=anchor)


class TenantScopedRepository:
    """Base for repositories bound to one tenant at construction."""

    def __init__(self, db: Session, *, tenant_id: UUID) -> None:
        self.db = db
        self.tenant_id = tenant_id

    def get_member(self, member_id: UUID) -> Member | None:
        return self.db.scalar(
            select(Member).where(and_(Member.id == member_id, Member.tenant_id == self.tenant_id))
        )


class AssetLifecycleRepository(TenantScopedRepository):
    entity_kind = "asset"
    mapping = ASSET_EVENT_MAPPING

    # ---------- Rows ----------
    def get_asset_row(self, asset_id: UUID, *, for_update: bool = False) -> Asset | None:
        stmt = select(Asset).where(
            and_(
                Asset.id == asset_id,
                Asset.tenant_id == self.tenant_id,
                Asset.deleted_at.is_(None),
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.scalar(stmt)

    def add_event(self, event: AssetEvent) -> AssetEvent:
        event.tenant_id = self.tenant_id
        self.db.add(event)
        self.db.flush()
        return event

    # ---------- Snapshots ----------
    def snapshot(self, asset: Asset) -> EntitySnapshot:
        return EntitySnapshot(
            entity_id=asset.id,
            tenant_id=asset.tenant_id,
            created_at=as_naive_utc(asset.created_at),
            is_active=asset.assigned_member_id is not None,
            origin_at=start_of_day(asset.purchase_date) if asset.purchase_date else None,
            current_subject_id=asset.assigned_member_id,
            inactive_since=as_naive_utc(asset.updated_at) if asset.updated_at else None,
            label=asset.asset_tag,
        )

    def get_entity(self, entity_id: UUID) -> EntitySnapshot:
        asset = self.get_asset_row(entity_id)
        if asset is None:
            raise EntityNotFoundError(self.entity_kind, entity_id)
        return self.snapshot(asset)

    def get_event_log(self, entity_id: UUID) -> list[LifecycleEvent]:
        rows = self.db.scalars(
            select(AssetEvent)
            .where(and_(AssetEvent.asset_id == entity_id, AssetEvent.tenant_id == self.tenant_id))
            .order_by(AssetEvent.seq.asc())
        ).all()
        return [_to_event(row, row.asset_id) for row in rows]

    def get_events_by_subject(self, subject_id: UUID) -> list[LifecycleEvent]:
        rows = self.db.scalars(
            select(AssetEvent)
            .where(
                and_(
                    AssetEvent.tenant_id == self.tenant_id,
                    or_(AssetEvent.member_id == subject_id, AssetEvent.prior_member_id == subject_id),
                )
            )
            .order_by(AssetEvent.seq.desc())
        ).all()
        return [_to_event(row, row.asset_id) for row in rows]

    def list_entities_held_by(self, subject_id: UUID) -> list[EntitySnapshot]:
        rows = self.db.scalars(
            select(Asset)
            .where(
                and_(
                    Asset.tenant_id == self.tenant_id,
                    Asset.assigned_member_id == subject_id,
                    Asset.deleted_at.is_(None),
                )
            )
            .order_by(Asset.asset_tag.asc())
        ).all()
        return [self.snapshot(row) for row in rows]


class SubscriptionLifecycleRepository(TenantScopedRepository):
    entity_kind = "subscription"
    mapping = SUBSCRIPTION_EVENT_MAPPING

    # ---------- Rows ----------
    def get_subscription_row(self, subscription_id: UUID, *, for_update: bool = False) -> Subscription | None:
        stmt = select(Subscription).where(
            and_(
                Subscription.id == subscription_id,
                Subscription.tenant_id == self.tenant_id,
                Subscription.deleted_at.is_(None),
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.scalar(stmt)

    def require_subscription_row(self, subscription_id: UUID) -> Subscription:
        subscription = self.get_subscription_row(subscription_id)
        if subscription is None:
            raise EntityNotFoundError(self.entity_kind, subscription_id)
        return subscription

    def add_event(self, event: SubscriptionEvent) -> SubscriptionEvent:
        event.tenant_id = self.tenant_id
        self.db.add(event)
        self.db.flush()
        return event

    # ---------- Snapshots ----------
    def snapshot(self, subscription: Subscription) -> EntitySnapshot:
        inactive_since = subscription.cancelled_at or subscription.updated_at
        return EntitySnapshot(
            entity_id=subscription.id,
            tenant_id=subscription.tenant_id,
            created_at=as_naive_utc(subscription.created_at),
            is_active=subscription.status is SubscriptionStatus.ACTIVE,
            origin_at=start_of_day(subscription.purchase_date) if subscription.purchase_date else None,
            current_subject_id=subscription.assigned_member_id,
            inactive_since=as_naive_utc(inactive_since) if inactive_since else None,
            label=subscription.service_name,
        )

    def get_entity(self, entity_id: UUID) -> EntitySnapshot:
        return self.snapshot(self.require_subscription_row(entity_id))

    def get_event_log(self, entity_id: UUID) -> list[LifecycleEvent]:
        rows = self.db.scalars(
            select(SubscriptionEvent)
            .where(
                and_(
                    SubscriptionEvent.subscription_id == entity_id,
                    SubscriptionEvent.tenant_id == self.tenant_id,
                )
            )
            .order_by(SubscriptionEvent.seq.asc())
        ).all()
        return [_to_subscription_event(row) for row in rows]

    def get_events_by_subject(self, subject_id: UUID) -> list[LifecycleEvent]:
        rows = self.db.scalars(
            select(SubscriptionEvent)
            .where(
                and_(
                    SubscriptionEvent.tenant_id == self.tenant_id,
                    or_(
                        SubscriptionEvent.member_id == subject_id,
                        SubscriptionEvent.prior_member_id == subject_id,
                    ),
                )
            )
            .order_by(SubscriptionEvent.seq.desc())
        ).all()
        return [_to_subscription_event(row) for row in rows]

    def list_entities_held_by(self, subject_id: UUID) -> list[EntitySnapshot]:
        rows = self.db.scalars(
            select(Subscription)
            .where(
                and_(
                    Subscription.tenant_id == self.tenant_id,
                    Subscription.assigned_member_id == subject_id,
                    Subscription.deleted_at.is_(None),
                )
            )
            .order_by(Subscription.created_at.desc())
        ).all()
        return [self.snapshot(row) for row in rows]
