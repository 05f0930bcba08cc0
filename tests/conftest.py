import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, time
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from atelier import models
from atelier.database import Base, get_db
from atelier.main import app

FUTURE_DAY = date(2099, 1, 5)
TEN = time(10, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def api(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_client(db):
    def _make(name="Ana García", phone="11 5555-1234"):
        client = models.Client(name=name, phone=phone)
        db.add(client)
        db.commit()
        db.refresh(client)
        return client
    return _make


@pytest.fixture
def make_category(db):
    def _make(name="Ruedo de pantalón", estimated_hours=8, tolerance_days=1,
              requires_appointment=False, is_active=True):
        category = models.WorkCategory(
            name=name,
            estimated_hours=estimated_hours,
            tolerance_days=tolerance_days,
            requires_appointment=requires_appointment,
            is_active=is_active,
        )
        db.add(category)
        db.commit()
        db.refresh(category)
        return category
    return _make


@pytest.fixture
def make_work(db, make_client, make_category):
    def _make(client=None, category=None, status="pending", actual_delivery_date=None):
        client = client or make_client()
        category = category or make_category()
        work = models.Work(
            client_id=client.id,
            category_id=category.id,
            status=status,
            price=Decimal("1500.00"),
            deposit_amount=Decimal("500.00"),
            entry_date=date(2024, 6, 3),
            tentative_delivery_date=date(2024, 6, 5),
            actual_delivery_date=actual_delivery_date,
        )
        db.add(work)
        db.commit()
        db.refresh(work)
        return work
    return _make
