from __future__ import annotations

from collections.abc import Generator
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opsledger.db.base import Base
from opsledger.db.dependencies import get_db_session
import opsledger.models.entities  # noqa: F401
from opsledger.main import create_app
from opsledger.models.entities import (
    Asset,
    AssetEvent,
    Member,
    Subscription,
    SubscriptionEvent,
    Tenant,
)

TEST_TABLES = [
    Tenant.__table__,
    Member.__table__,
    Asset.__table__,
    AssetEvent.__table__,
    Subscription.__table__,
    SubscriptionEvent.__table__,
]


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def tenant(db_session: Session) -> Tenant:
    now = datetime(2024, 1, 1)
    row = Tenant(code="acme", name="Acme", active=True, created_at=now, updated_at=now)
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row

