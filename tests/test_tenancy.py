from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from opsledger.core.config import get_settings
from opsledger.models.entities import Tenant


@pytest.fixture()
def settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_missing_tenant_header_is_rejected(client: TestClient, tenant: Tenant) -> None:
    response = client.get(f"/api/v1/members/{uuid.uuid4()}/asset-history")

    assert response.status_code == 401


def test_malformed_tenant_header_is_rejected(client: TestClient, tenant: Tenant) -> None:
    response = client.get(f"/api/v1/members/{uuid.uuid4()}/asset-history", headers={"X-Tenant-ID": "acme"})

    assert response.status_code == 400


def test_unknown_or_inactive_tenant_is_not_found(client: TestClient, db_session: Session) -> None:
    now = datetime(2024, 1, 1)
    dormant = Tenant(code="dormant", name="Dormant", active=False, created_at=now, updated_at=now)
    db_session.add(dormant)
    db_session.commit()

    for tenant_id in (uuid.uuid4(), dormant.id):
        response = client.get(
            f"/api/v1/members/{uuid.uuid4()}/asset-history",
            headers={"X-Tenant-ID": str(tenant_id)},
        )
        assert response.status_code == 404
        assert response.json()["error_code"] == "TENANT_NOT_FOUND"


def test_development_fallback_tenant(
    client: TestClient,
    tenant: Tenant,
    monkeypatch: pytest.MonkeyPatch,
    settings_cache: None,
) -> None:
    monkeypatch.setenv("OPSLEDGER_TENANT_ALLOW_DEV_FALLBACK", "true")
    monkeypatch.setenv("OPSLEDGER_TENANT_DEV_CODE", tenant.code)
    get_settings.cache_clear()

    response = client.get(f"/api/v1/members/{uuid.uuid4()}/asset-history")

    assert response.status_code == 200
    assert response.json()["items"] == []
