"""Shared test fixtures for all test modules."""

import contextlib
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.encoders import jsonable_encoder
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import coupon_engine.models  # noqa: F401
from coupon_engine.core import database as db_module
from coupon_engine.core.database import Base, get_db
from coupon_engine.models.coupon import DiscountType
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.schemas.coupon import CouponCreate

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Fixed evaluation instant used across tests
NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


def coupon_payload(**overrides):
    """Valid CouponCreate keyword arguments: 10% off, valid around NOW."""
    data = {
        "code": "SUMMER10",
        "name": "Summer 10%",
        "discount_type": DiscountType.PERCENTAGE,
        "discount_value": Decimal("10"),
        "valid_from": NOW - timedelta(days=10),
        "valid_until": NOW + timedelta(days=10),
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_coupon(db_session):
    """Factory persisting a coupon through the repository.

    ``usage_count`` can be preset to build states the redemption path would produce.
    """

    def _make(usage_count: int = 0, **overrides):
        coupon = CouponRepository(db_session).create(CouponCreate(**coupon_payload(**overrides)))
        if usage_count:
            coupon.usage_count = usage_count
            db_session.commit()
            db_session.refresh(coupon)
        return coupon

    return _make


ADMIN_HEADERS = {"X-Actor-Role": "master", "X-Actor-Id": "admin"}
PARTNER_A_HEADERS = {"X-Actor-Role": "partner", "X-Actor-Id": "partner-a"}
PARTNER_B_HEADERS = {"X-Actor-Role": "partner", "X-Actor-Id": "partner-b"}
TRAVELER_HEADERS = {"X-Actor-Role": "traveler", "X-Actor-Id": "u1"}


def api_payload(**overrides):
    """JSON body for ``POST /v1/coupons/``, valid around the real current time."""
    now = datetime.now(UTC)
    data = {
        "code": "summer10",
        "name": "Summer 10%",
        "discount_type": "percentage",
        "discount_value": "10",
        "valid_from": now - timedelta(days=10),
        "valid_until": now + timedelta(days=10),
    }
    data.update(overrides)
    return jsonable_encoder(data)


def create_via_api(client, headers=PARTNER_A_HEADERS, **overrides):
    response = client.post("/v1/coupons/", json=api_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()
