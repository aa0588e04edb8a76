"""Asset assignment history, utilization and assignment transitions."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from opsledger.core.tenancy import TenantContext, get_tenant_context
from opsledger.db.dependencies import get_db_session
from opsledger.models.entities import Asset
from opsledger.services.lifecycle_service import EntityKind, LifecycleService
from opsledger.services.transition_service import LifecycleTransitionService, TransitionData

router = APIRouter(prefix="/assets", tags=["assets"])


class AssignPayload(BaseModel):
    member_id: UUID
    effective_at: datetime | None = None
    notes: str | None = Field(default=None, max_length=2000)


class UnassignPayload(BaseModel):
    effective_at: datetime | None = None
    notes: str | None = Field(default=None, max_length=2000)


def _service(db: Session, context: TenantContext) -> LifecycleService:
    return LifecycleService(db, tenant_id=context.tenant_id, entity_kind=EntityKind.ASSET)


def _serialize_asset(asset: Asset) -> dict[str, object]:
    return {
        "id": str(asset.id),
        "asset_tag": asset.asset_tag,
        "model": asset.model,
        "purchase_date": asset.purchase_date.isoformat() if asset.purchase_date else None,
        "assigned_member_id": str(asset.assigned_member_id) if asset.assigned_member_id else None,
    }


@router.get("/{asset_id}/assignment-periods")
def get_assignment_periods(
    asset_id: UUID,
    member_id: UUID | None = None,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db, context)
    result = service.reconstruct(asset_id)
    intervals = result.for_subject(member_id) if member_id is not None else result.intervals
    return {
        "asset_id": str(asset_id),
        "as_of": result.as_of.isoformat() if result.as_of else None,
        "items": [service.serialize_interval(interval) for interval in intervals],
        "issues": [service.serialize_issue(issue) for issue in result.issues],
    }


@router.get("/{asset_id}/utilization")
def get_asset_utilization(
    asset_id: UUID,
    include_estimated: bool = True,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db, context)
    utilization = service.compute_utilization(asset_id, include_estimated=include_estimated)
    return {"asset_id": str(asset_id), **service.serialize_utilization(utilization)}


@router.post("/{asset_id}/assign")
def assign_asset(
    asset_id: UUID,
    payload: AssignPayload,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = LifecycleTransitionService(db, tenant_id=context.tenant_id, performed_by=context.actor)
    asset = service.assign_asset(
        asset_id,
        payload.member_id,
        TransitionData(effective_at=payload.effective_at, notes=payload.notes),
    )
    return _serialize_asset(asset)


@router.post("/{asset_id}/unassign")
def unassign_asset(
    asset_id: UUID,
    payload: UnassignPayload,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = LifecycleTransitionService(db, tenant_id=context.tenant_id, performed_by=context.actor)
    asset = service.unassign_asset(
        asset_id,
        TransitionData(effective_at=payload.effective_at, notes=payload.notes),
    )
    return _serialize_asset(asset)
