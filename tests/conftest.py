import os

# in-memory database and console logs during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from treeshop.db import Base, get_db, init_db
from treeshop.domain.enums import CareerTrack, EquipmentType, LeadSource, ServiceType
from treeshop.main import app
from treeshop.models import Customer, Employee, Equipment, Property
from treeshop.services import workflow

NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    # one shared connection so every session sees the same in-memory database
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def lead_fields(**overrides):
    fields = dict(
        customer_name="Dana Whitfield",
        customer_phone="555-0142",
        customer_email="dana@example.com",
        property_address="12 Live Oak Ln",
        property_city="Gainesville",
        property_state="FL",
        property_zip="32601",
        latitude=29.6516,
        longitude=-82.3248,
        service_types=[ServiceType.TREE_REMOVAL],
        lead_source=LeadSource.REFERRAL,
        project_description="Remove leaning oak near driveway",
    )
    fields.update(overrides)
    return fields


@pytest.fixture
def make_lead(db, now):
    def _make(**overrides):
        overrides.setdefault("now", now)
        return workflow.create_lead(db, **lead_fields(**overrides))

    return _make


@pytest.fixture
def customer_and_property(db, now):
    customer = Customer(customer_name="Dana Whitfield", phone_number="555-0142", now=now)
    db.add(customer)
    db.flush()
    prop = Property(
        property_address="12 Live Oak Ln",
        city="Gainesville",
        state="FL",
        zip_code="32601",
        latitude=29.6516,
        longitude=-82.3248,
        customer_id=customer.id,
        now=now,
    )
    db.add(prop)
    db.flush()
    customer.add_property(prop.id, now=now)
    db.commit()
    return customer, prop


@pytest.fixture
def climber(db, now):
    employee = Employee(
        first_name="Sam",
        last_name="Reyes",
        phone_number="555-0199",
        hire_date=datetime(2022, 5, 1, tzinfo=timezone.utc),
        primary_track=CareerTrack.TRS,
        base_hourly_rate=15.0,
        tier=1,
        now=now,
    )
    db.add(employee)
    db.commit()
    return employee


@pytest.fixture
def chipper(db, now):
    machine = Equipment(
        equipment_name="Bandit 250XP",
        equipment_type=EquipmentType.CHIPPER,
        purchase_price=115_000,
        purchase_date=datetime(2023, 1, 15, tzinfo=timezone.utc),
        annual_usage_hours=1200,
        fuel_consumption_gph=14,
        fuel_price_per_gallon=3.50,
        depreciation_years=5,
        annual_maintenance_pct=0.15,
        now=now,
    )
    db.add(machine)
    db.commit()
    return machine


@pytest.fixture
def lead_payload():
    """JSON body for POST /leads."""
    body = lead_fields()
    body["service_types"] = [str(s) for s in body["service_types"]]
    body["lead_source"] = str(body["lead_source"])
    return body
