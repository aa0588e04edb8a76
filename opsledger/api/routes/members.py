"""Member-centric asset and subscription history."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from opsledger.core.tenancy import TenantContext, get_tenant_context
from opsledger.db.dependencies import get_db_session
from opsledger.services.lifecycle_service import EntityKind, LifecycleService

router = APIRouter(prefix="/members", tags=["members"])


def _history(db: Session, context: TenantContext, kind: EntityKind, member_id: UUID) -> dict[str, object]:
    service = LifecycleService(db, tenant_id=context.tenant_id, entity_kind=kind)
    holdings = service.get_subject_history(member_id)
    return {
        "member_id": str(member_id),
        "items": [service.serialize_holding(holding) for holding in holdings],
    }


@router.get("/{member_id}/asset-history")
def get_member_asset_history(
    member_id: UUID,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _history(db, context, EntityKind.ASSET, member_id)


@router.get("/{member_id}/subscription-history")
def get_member_subscription_history(
    member_id: UUID,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _history(db, context, EntityKind.SUBSCRIPTION, member_id)
