"""Tenant context extraction for request handlers."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from opsledger.core.config import get_settings
from opsledger.core.exceptions import TenantNotFoundError
from opsledger.db.dependencies import get_db_session
from opsledger.models.entities import Tenant


@dataclass(frozen=True)
class TenantContext:
    """Tenant scope and acting principal resolved for the request."""

    tenant_id: UUID
    tenant_code: str
    actor: str | None = None


def _parse_tenant_header(value: str) -> UUID:
    try:
        return UUID(value.strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header must be a UUID.",
        ) from None


def _resolve_tenant(db: Session, x_tenant_id: str | None) -> Tenant:
    settings = get_settings()
    if x_tenant_id:
        tenant_id = _parse_tenant_header(x_tenant_id)
        tenant = db.scalar(select(Tenant).where(and_(Tenant.id == tenant_id, Tenant.active.is_(True))))
        if tenant is None:
            raise TenantNotFoundError(str(tenant_id))
        return tenant

    if settings.tenant_allow_dev_fallback:
        code = settings.tenant_dev_code.strip()
        tenant = db.scalar(select(Tenant).where(and_(Tenant.code == code, Tenant.active.is_(True))))
        if tenant is None:
            raise TenantNotFoundError(code)
        return tenant

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing tenant header. Expected X-Tenant-ID or enable development tenant fallback.",
    )


def get_tenant_context(
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-ID"),
    x_actor: str | None = Header(default=None, alias="X-Actor"),
    db: Session = Depends(get_db_session),
) -> TenantContext:
    """Resolve the tenant every lifecycle query is scoped to.

    Header strategy:
    - Current phase: trusted headers set by the gateway / test clients.
    - Tenant resolution middleware can replace this dependency wholesale.
    """

    tenant = _resolve_tenant(db, x_tenant_id)
    actor = x_actor.strip() if x_actor and x_actor.strip() else None
    return TenantContext(tenant_id=tenant.id, tenant_code=tenant.code, actor=actor)
