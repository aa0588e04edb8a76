from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from fastapi.testclient import TestClient
from freezegun import freeze_time
from sqlalchemy.orm import Session

from opsledger.models.entities import (
    Asset,
    AssetEvent,
    AssetEventKind,
    BillingCycle,
    Member,
    Subscription,
    SubscriptionStatus,
    Tenant,
)


def tenant_headers(tenant: Tenant, *, actor: str = "it.admin@acme.test") -> dict[str, str]:
    return {
        "X-Tenant-ID": str(tenant.id),
        "X-Actor": actor,
    }


def _member(db: Session, tenant: Tenant, email: str) -> Member:
    row = Member(tenant_id=tenant.id, email=email, display_name=email.split("@")[0], active=True)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _asset(db: Session, tenant: Tenant, tag: str) -> Asset:
    now = datetime(2024, 1, 1)
    row = Asset(
        tenant_id=tenant.id,
        asset_tag=tag,
        model="MacBook Pro 14",
        purchase_date=date(2024, 1, 1),
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _subscription(db: Session, tenant: Tenant, holder: Member) -> Subscription:
    now = datetime(2024, 1, 1)
    row = Subscription(
        tenant_id=tenant.id,
        service_name="Adobe CC",
        billing_cycle=BillingCycle.MONTHLY,
        cost_per_cycle=Decimal("100.00"),
        purchase_date=date(2024, 1, 1),
        status=SubscriptionStatus.ACTIVE,
        assigned_member_id=holder.id,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@freeze_time("2024-07-01", real_asyncio=True)
def test_asset_assignment_periods_and_utilization(client: TestClient, db_session: Session, tenant: Tenant) -> None:
    headers = tenant_headers(tenant)
    alice = _member(db_session, tenant, "alice@acme.test")
    bob = _member(db_session, tenant, "bob@acme.test")
    asset = _asset(db_session, tenant, "LAP-100")

    assign = client.post(
        f"/api/v1/assets/{asset.id}/assign",
        headers=headers,
        json={"member_id": str(alice.id), "effective_at": "2024-01-01T00:00:00", "notes": "onboarding"},
    )
    assert assign.status_code == 200
    assert assign.json()["assigned_member_id"] == str(alice.id)

    unassign = client.post(
        f"/api/v1/assets/{asset.id}/unassign",
        headers=headers,
        json={"effective_at": "2024-04-10T00:00:00"},
    )
    assert unassign.status_code == 200
    assert unassign.json()["assigned_member_id"] is None

    periods = client.get(f"/api/v1/assets/{asset.id}/assignment-periods", headers=headers)
    assert periods.status_code == 200
    body = periods.json()
    assert body["issues"] == []
    assert len(body["items"]) == 1
    period = body["items"][0]
    assert period["subject_id"] == str(alice.id)
    assert period["start"] == "2024-01-01T00:00:00"
    assert period["end"] == "2024-04-10T00:00:00"
    assert period["days"] == 100
    assert period["estimated"] is False
    assert period["notes"] == ["onboarding"]

    filtered = client.get(
        f"/api/v1/assets/{asset.id}/assignment-periods",
        headers=headers,
        params={"member_id": str(bob.id)},
    )
    assert filtered.status_code == 200
    assert filtered.json()["items"] == []

    utilization = client.get(f"/api/v1/assets/{asset.id}/utilization", headers=headers)
    assert utilization.status_code == 200
    assert utilization.json() == {
        "asset_id": str(asset.id),
        "owned_days": 182,
        "assigned_days": 100,
        "percentage": "54.95",
    }


@freeze_time("2024-07-01", real_asyncio=True)
def test_orphan_unassignment_is_reported_not_raised(client: TestClient, db_session: Session, tenant: Tenant) -> None:
    alice = _member(db_session, tenant, "alice@acme.test")
    asset = _asset(db_session, tenant, "LAP-200")
    db_session.add(
        AssetEvent(
            tenant_id=tenant.id,
            asset_id=asset.id,
            kind=AssetEventKind.UNASSIGNED,
            prior_member_id=alice.id,
            effective_at=datetime(2024, 2, 1),
        )
    )
    db_session.commit()

    response = client.get(f"/api/v1/assets/{asset.id}/assignment-periods", headers=tenant_headers(tenant))

    assert response.status_code == 200
    assert response.json()["items"] == []
    assert [issue["code"] for issue in response.json()["issues"]] == ["orphan_end"]


@freeze_time("2024-07-01", real_asyncio=True)
def test_duplicate_assignment_is_a_conflict(client: TestClient, db_session: Session, tenant: Tenant) -> None:
    headers = tenant_headers(tenant)
    alice = _member(db_session, tenant, "alice@acme.test")
    asset = _asset(db_session, tenant, "LAP-300")

    first = client.post(f"/api/v1/assets/{asset.id}/assign", headers=headers, json={"member_id": str(alice.id)})
    second = client.post(f"/api/v1/assets/{asset.id}/assign", headers=headers, json={"member_id": str(alice.id)})

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["error_code"] == "TRANSITION_CONFLICT"


def test_asset_of_other_tenant_is_not_found(client: TestClient, db_session: Session, tenant: Tenant) -> None:
    now = datetime(2024, 1, 1)
    other = Tenant(code="globex", name="Globex", active=True, created_at=now, updated_at=now)
    db_session.add(other)
    db_session.commit()
    foreign_asset = _asset(db_session, other, "GLX-1")

    response = client.get(f"/api/v1/assets/{foreign_asset.id}/assignment-periods", headers=tenant_headers(tenant))

    assert response.status_code == 404
    assert response.json()["error_code"] == "ENTITY_NOT_FOUND"
    assert response.json()["context"]["entity_kind"] == "asset"


@freeze_time("2024-06-15", real_asyncio=True)
def test_subscription_reactivation_cost(client: TestClient, db_session: Session, tenant: Tenant) -> None:
    headers = tenant_headers(tenant)
    alice = _member(db_session, tenant, "alice@acme.test")
    subscription = _subscription(db_session, tenant, alice)

    cancel = client.post(
        f"/api/v1/subscriptions/{subscription.id}/cancel",
        headers=headers,
        json={"effective_at": "2024-03-15T00:00:00"},
    )
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "CANCELLED"

    reactivate = client.post(
        f"/api/v1/subscriptions/{subscription.id}/reactivate",
        headers=headers,
        json={"effective_at": "2024-05-01T00:00:00"},
    )
    assert reactivate.status_code == 200
    assert reactivate.json()["status"] == "ACTIVE"

    periods = client.get(f"/api/v1/subscriptions/{subscription.id}/active-periods", headers=headers)
    assert periods.status_code == 200
    items = periods.json()["items"]
    assert [(item["start"], item["end"]) for item in items] == [
        ("2024-05-01T00:00:00", None),
        ("2024-01-01T00:00:00", "2024-03-15T00:00:00"),
    ]

    cost = client.get(f"/api/v1/subscriptions/{subscription.id}/cost", headers=headers)
    assert cost.status_code == 200
    payload = cost.json()
    assert payload["total_cost"] == "500.00"
    assert payload["cycle_count"] == 5
    assert payload["currency"] == "QAR"
    assert [item["cycles"] for item in payload["intervals"]] == [3, 2]

    logged_only = client.get(
        f"/api/v1/subscriptions/{subscription.id}/cost",
        headers=headers,
        params={"include_estimated": "false"},
    )
    assert logged_only.json()["total_cost"] == "500.00"


@freeze_time("2024-06-15", real_asyncio=True)
def test_subscription_reactivated_between_renewals(client: TestClient, db_session: Session, tenant: Tenant) -> None:
    headers = tenant_headers(tenant)
    alice = _member(db_session, tenant, "alice@acme.test")
    subscription = _subscription(db_session, tenant, alice)

    client.post(
        f"/api/v1/subscriptions/{subscription.id}/cancel",
        headers=headers,
        json={"effective_at": "2024-03-15T00:00:00"},
    )
    client.post(
        f"/api/v1/subscriptions/{subscription.id}/reactivate",
        headers=headers,
        json={"effective_at": "2024-05-10T00:00:00"},
    )

    cost = client.get(f"/api/v1/subscriptions/{subscription.id}/cost", headers=headers)
    assert cost.status_code == 200
    payload = cost.json()
    assert [item["cycles"] for item in payload["intervals"]] == [3, 2]
    assert payload["total_cost"] == "500.00"


@freeze_time("2024-06-15", real_asyncio=True)
def test_subscription_without_events_is_billed_from_purchase(
    client: TestClient, db_session: Session, tenant: Tenant
) -> None:
    headers = tenant_headers(tenant)
    alice = _member(db_session, tenant, "alice@acme.test")
    subscription = _subscription(db_session, tenant, alice)

    periods = client.get(f"/api/v1/subscriptions/{subscription.id}/active-periods", headers=headers)
    assert periods.status_code == 200
    [period] = periods.json()["items"]
    assert period["start"] == "2024-01-01T00:00:00"
    assert period["estimated"] is False
    assert period["source"] == "origin_date"
    assert periods.json()["issues"] == []

    cost = client.get(
        f"/api/v1/subscriptions/{subscription.id}/cost",
        headers=headers,
        params={"include_estimated": "false"},
    )
    assert cost.json()["total_cost"] == "600.00"


@freeze_time("2024-06-15", real_asyncio=True)
def test_reactivating_active_subscription_is_a_conflict(
    client: TestClient, db_session: Session, tenant: Tenant
) -> None:
    alice = _member(db_session, tenant, "alice@acme.test")
    subscription = _subscription(db_session, tenant, alice)

    response = client.post(
        f"/api/v1/subscriptions/{subscription.id}/reactivate",
        headers=tenant_headers(tenant),
        json={},
    )

    assert response.status_code == 409
    assert response.json()["context"]["status"] == "ACTIVE"


@freeze_time("2024-07-01", real_asyncio=True)
def test_member_histories(client: TestClient, db_session: Session, tenant: Tenant) -> None:
    headers = tenant_headers(tenant)
    alice = _member(db_session, tenant, "alice@acme.test")
    bob = _member(db_session, tenant, "bob@acme.test")
    returned = _asset(db_session, tenant, "LAP-1")
    current = _asset(db_session, tenant, "LAP-2")
    subscription = _subscription(db_session, tenant, alice)

    client.post(
        f"/api/v1/assets/{returned.id}/assign",
        headers=headers,
        json={"member_id": str(alice.id), "effective_at": "2024-01-01T00:00:00"},
    )
    client.post(
        f"/api/v1/assets/{returned.id}/assign",
        headers=headers,
        json={"member_id": str(bob.id), "effective_at": "2024-02-01T00:00:00"},
    )
    client.post(
        f"/api/v1/assets/{current.id}/assign",
        headers=headers,
        json={"member_id": str(alice.id), "effective_at": "2024-03-01T00:00:00"},
    )
    client.post(
        f"/api/v1/subscriptions/{subscription.id}/reassign",
        headers=headers,
        json={"member_id": str(bob.id), "effective_at": "2024-04-01T00:00:00"},
    )

    assets = client.get(f"/api/v1/members/{alice.id}/asset-history", headers=headers)
    assert assets.status_code == 200
    items = assets.json()["items"]
    assert [item["label"] for item in items] == ["LAP-2", "LAP-1"]
    assert items[0]["is_current"] is True
    assert items[0]["current_period"]["start"] == "2024-03-01T00:00:00"
    assert items[1]["is_current"] is False
    assert items[1]["total_days"] == 31
    assert "cost" not in items[1]

    subscriptions = client.get(f"/api/v1/members/{alice.id}/subscription-history", headers=headers)
    assert subscriptions.status_code == 200
    [holding] = subscriptions.json()["items"]
    assert holding["label"] == "Adobe CC"
    assert holding["is_current"] is False
    assert holding["current_subject_id"] == str(bob.id)
    assert holding["periods"][0]["end"] == "2024-04-01T00:00:00"
    assert holding["cost"]["total_cost"] == "400.00"


def test_unknown_member_history_is_empty(client: TestClient, tenant: Tenant) -> None:
    response = client.get(f"/api/v1/members/{uuid.uuid4()}/asset-history", headers=tenant_headers(tenant))

    assert response.status_code == 200
    assert response.json()["items"] == []
