"""Subscription active periods, billing cost and status transitions."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from opsledger.core.tenancy import TenantContext, get_tenant_context
from opsledger.db.dependencies import get_db_session
from opsledger.models.entities import Subscription
from opsledger.services.lifecycle_service import EntityKind, LifecycleService
from opsledger.services.transition_service import LifecycleTransitionService, TransitionData

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


class CancelPayload(BaseModel):
    effective_at: datetime | None = None
    notes: str | None = Field(default=None, max_length=2000)


class ReactivatePayload(BaseModel):
    effective_at: datetime | None = None
    renewal_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)


class ReassignPayload(BaseModel):
    member_id: UUID
    effective_at: datetime | None = None
    notes: str | None = Field(default=None, max_length=2000)


def _service(db: Session, context: TenantContext) -> LifecycleService:
    return LifecycleService(db, tenant_id=context.tenant_id, entity_kind=EntityKind.SUBSCRIPTION)


def _transitions(db: Session, context: TenantContext) -> LifecycleTransitionService:
    return LifecycleTransitionService(db, tenant_id=context.tenant_id, performed_by=context.actor)


def _serialize_subscription(subscription: Subscription) -> dict[str, object]:
    return {
        "id": str(subscription.id),
        "service_name": subscription.service_name,
        "status": subscription.status.value,
        "billing_cycle": subscription.billing_cycle.value,
        "renewal_date": subscription.renewal_date.isoformat() if subscription.renewal_date else None,
        "assigned_member_id": (
            str(subscription.assigned_member_id) if subscription.assigned_member_id else None
        ),
        "cancelled_at": subscription.cancelled_at.isoformat() if subscription.cancelled_at else None,
        "reactivated_at": subscription.reactivated_at.isoformat() if subscription.reactivated_at else None,
    }


@router.get("/{subscription_id}/active-periods")
def get_active_periods(
    subscription_id: UUID,
    member_id: UUID | None = None,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db, context)
    result = service.reconstruct(subscription_id)
    intervals = result.for_subject(member_id) if member_id is not None else result.intervals
    return {
        "subscription_id": str(subscription_id),
        "as_of": result.as_of.isoformat() if result.as_of else None,
        "items": [service.serialize_interval(interval) for interval in intervals],
        "issues": [service.serialize_issue(issue) for issue in result.issues],
    }


@router.get("/{subscription_id}/cost")
def get_subscription_cost(
    subscription_id: UUID,
    include_estimated: bool = True,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db, context)
    cost = service.compute_cycle_cost(subscription_id, include_estimated=include_estimated)
    return {"subscription_id": str(subscription_id), **service.serialize_cycle_cost(cost)}


@router.post("/{subscription_id}/cancel")
def cancel_subscription(
    subscription_id: UUID,
    payload: CancelPayload,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    subscription = _transitions(db, context).cancel_subscription(
        subscription_id,
        TransitionData(effective_at=payload.effective_at, notes=payload.notes),
    )
    return _serialize_subscription(subscription)


@router.post("/{subscription_id}/reactivate")
def reactivate_subscription(
    subscription_id: UUID,
    payload: ReactivatePayload,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    subscription = _transitions(db, context).reactivate_subscription(
        subscription_id,
        TransitionData(effective_at=payload.effective_at, notes=payload.notes),
        renewal_date=payload.renewal_date,
    )
    return _serialize_subscription(subscription)


@router.post("/{subscription_id}/reassign")
def reassign_subscription(
    subscription_id: UUID,
    payload: ReassignPayload,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    subscription = _transitions(db, context).reassign_subscription(
        subscription_id,
        payload.member_id,
        TransitionData(effective_at=payload.effective_at, notes=payload.notes),
    )
    return _serialize_subscription(subscription)
