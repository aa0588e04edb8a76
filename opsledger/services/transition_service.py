"""Write-side state transitions for assets and subscriptions.

Every transition appends its event and moves the entity's current-state
pointer in one transaction, and is rejected when the entity is not in the
state the transition expects.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from opsledger.core.clock import as_naive_utc, utcnow
from opsledger.core.exceptions import EntityNotFoundError, TransitionConflictError
from opsledger.models.entities import (
    Asset,
    AssetEvent,
    AssetEventKind,
    Subscription,
    SubscriptionEvent,
    SubscriptionEventKind,
    SubscriptionStatus,
)
from opsledger.repositories.lifecycle_repository import (
    AssetLifecycleRepository,
    SubscriptionLifecycleRepository,
    TenantScopedRepository,
)

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class TransitionData:
    effective_at: datetime | None = None
    notes: str | None = None


class LifecycleTransitionService:
    """Mutation boundary adjacent to the read-only lifecycle engine."""

    def __init__(self, db: Session, *, tenant_id: UUID, performed_by: str | None = None) -> None:
        self.db = db
        self.tenant_id = tenant_id
        self.performed_by = performed_by
        self.assets = AssetLifecycleRepository(db, tenant_id=tenant_id)
        self.subscriptions = SubscriptionLifecycleRepository(db, tenant_id=tenant_id)

    @staticmethod
    def _effective(data: TransitionData) -> datetime:
        return as_naive_utc(data.effective_at) if data.effective_at is not None else utcnow()

    def _require_member(self, repo: TenantScopedRepository, member_id: UUID) -> None:
        member = repo.get_member(member_id)
        if member is None:
            raise EntityNotFoundError("member", member_id)
        if not member.active:
            raise TransitionConflictError(
                "Member is inactive and cannot receive assignments.",
                context={"member_id": str(member_id)},
            )

    def _commit(self, entity_kind: str, entity_id: UUID, transition: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise TransitionConflictError(
                f"{entity_kind.capitalize()} changed concurrently; retry the {transition}.",
                context={"entity_id": str(entity_id)},
            ) from exc
        logger.info(
            "lifecycle_transition",
            transition=transition,
            entity_kind=entity_kind,
            entity_id=str(entity_id),
            tenant_id=str(self.tenant_id),
            performed_by=self.performed_by,
        )

    # ---------- Assets ----------
    def _locked_asset(self, asset_id: UUID) -> Asset:
        asset = self.assets.get_asset_row(asset_id, for_update=True)
        if asset is None:
            raise EntityNotFoundError("asset", asset_id)
        return asset

    def assign_asset(self, asset_id: UUID, member_id: UUID, data: TransitionData) -> Asset:
        asset = self._locked_asset(asset_id)
        self._require_member(self.assets, member_id)
        if asset.assigned_member_id == member_id:
            raise TransitionConflictError(
                "Asset is already assigned to this member.",
                context={"asset_id": str(asset_id), "member_id": str(member_id)},
            )

        effective_at = self._effective(data)
        prior_member_id = asset.assigned_member_id
        if prior_member_id is not None:
            self.assets.add_event(
                AssetEvent(
                    asset_id=asset.id,
                    kind=AssetEventKind.UNASSIGNED,
                    prior_member_id=prior_member_id,
                    effective_at=effective_at,
                    notes="Returned on reassignment",
                    performed_by=self.performed_by,
                )
            )
        self.assets.add_event(
            AssetEvent(
                asset_id=asset.id,
                kind=AssetEventKind.ASSIGNED,
                member_id=member_id,
                prior_member_id=prior_member_id,
                effective_at=effective_at,
                notes=data.notes,
                performed_by=self.performed_by,
            )
        )
        asset.assigned_member_id = member_id
        asset.updated_at = utcnow()
        self._commit("asset", asset.id, "assign")
        self.db.refresh(asset)
        return asset

    def unassign_asset(self, asset_id: UUID, data: TransitionData) -> Asset:
        asset = self._locked_asset(asset_id)
        if asset.assigned_member_id is None:
            raise TransitionConflictError(
                "Asset is not assigned.",
                context={"asset_id": str(asset_id)},
            )

        self.assets.add_event(
            AssetEvent(
                asset_id=asset.id,
                kind=AssetEventKind.UNASSIGNED,
                prior_member_id=asset.assigned_member_id,
                effective_at=self._effective(data),
                notes=data.notes,
                performed_by=self.performed_by,
            )
        )
        asset.assigned_member_id = None
        asset.updated_at = utcnow()
        self._commit("asset", asset.id, "unassign")
        self.db.refresh(asset)
        return asset

    # ---------- Subscriptions ----------
    def _locked_subscription(self, subscription_id: UUID) -> Subscription:
        subscription = self.subscriptions.get_subscription_row(subscription_id, for_update=True)
        if subscription is None:
            raise EntityNotFoundError("subscription", subscription_id)
        return subscription

    def cancel_subscription(self, subscription_id: UUID, data: TransitionData) -> Subscription:
        subscription = self._locked_subscription(subscription_id)
        if subscription.status is not SubscriptionStatus.ACTIVE:
            raise TransitionConflictError(
                "Only active subscriptions can be cancelled.",
                context={"subscription_id": str(subscription_id), "status": subscription.status.value},
            )

        effective_at = self._effective(data)
        self.subscriptions.add_event(
            SubscriptionEvent(
                subscription_id=subscription.id,
                kind=SubscriptionEventKind.CANCELLED,
                prior_member_id=subscription.assigned_member_id,
                effective_at=effective_at,
                renewal_date=subscription.renewal_date,
                notes=data.notes,
                performed_by=self.performed_by,
            )
        )
        subscription.status = SubscriptionStatus.CANCELLED
        subscription.cancelled_at = effective_at
        subscription.updated_at = utcnow()
        self._commit("subscription", subscription.id, "cancel")
        self.db.refresh(subscription)
        return subscription

    def reactivate_subscription(
        self,
        subscription_id: UUID,
        data: TransitionData,
        *,
        renewal_date: date | None = None,
    ) -> Subscription:
        subscription = self._locked_subscription(subscription_id)
        if subscription.status is not SubscriptionStatus.CANCELLED:
            raise TransitionConflictError(
                "Only cancelled subscriptions can be reactivated.",
                context={"subscription_id": str(subscription_id), "status": subscription.status.value},
            )

        effective_at = self._effective(data)
        self.subscriptions.add_event(
            SubscriptionEvent(
                subscription_id=subscription.id,
                kind=SubscriptionEventKind.REACTIVATED,
                member_id=subscription.assigned_member_id,
                effective_at=effective_at,
                renewal_date=renewal_date,
                notes=data.notes,
                performed_by=self.performed_by,
            )
        )
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.reactivated_at = effective_at
        if renewal_date is not None:
            subscription.renewal_date = renewal_date
        subscription.updated_at = utcnow()
        self._commit("subscription", subscription.id, "reactivate")
        self.db.refresh(subscription)
        return subscription

    def reassign_subscription(self, subscription_id: UUID, member_id: UUID, data: TransitionData) -> Subscription:
        subscription = self._locked_subscription(subscription_id)
        if subscription.status is not SubscriptionStatus.ACTIVE:
            raise TransitionConflictError(
                "Only active subscriptions can be reassigned.",
                context={"subscription_id": str(subscription_id), "status": subscription.status.value},
            )
        self._require_member(self.subscriptions, member_id)
        if subscription.assigned_member_id == member_id:
            raise TransitionConflictError(
                "Subscription is already assigned to this member.",
                context={"subscription_id": str(subscription_id), "member_id": str(member_id)},
            )

        self.subscriptions.add_event(
            SubscriptionEvent(
                subscription_id=subscription.id,
                kind=SubscriptionEventKind.REASSIGNED,
                member_id=member_id,
                prior_member_id=subscription.assigned_member_id,
                effective_at=self._effective(data),
                notes=data.notes,
                performed_by=self.performed_by,
            )
        )
        subscription.assigned_member_id = member_id
        subscription.updated_at = utcnow()
        self._commit("subscription", subscription.id, "reassign")
        self.db.refresh(subscription)
        return subscription
