"""
Shared fixtures: in-memory SQLite, patched email delivery and an admin token.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.pop("REDIS_URL", None)

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from taxibook import rate_limiter
from taxibook.auth import issue_admin_token
from taxibook.database import Base, SessionLocal, engine, get_db
from taxibook.main import app
from taxibook.models import Booking, EmailTemplate, User, VehiclePricingTier, VehicleType
from taxibook.security_utils import hash_password
from taxibook.services.booking_events import COMMITTED_KEY


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limiter.memory_cache.clear()
    yield
    rate_limiter.memory_cache.clear()


@pytest.fixture(autouse=True)
def sent_emails():
    """Every outgoing email lands on this mock instead of Resend"""
    with patch(
        "taxibook.services.notification_service.send_email",
        new=AsyncMock(return_value={"id": "msg_test"}),
    ) as mock_send:
        yield mock_send


@pytest_asyncio.fixture
async def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def admin_user(db_session):
    user = User(
        email="admin@example.com",
        name="Admin",
        hashed_password=hash_password("correct-horse"),
        is_admin=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {issue_admin_token(admin_user)}"}


@pytest.fixture
def vehicle_type(db_session):
    vt = VehicleType(
        display_name="Sedan",
        slug="sedan",
        max_passengers=3,
        max_luggage=2,
        base_fare=10.0,
        base_miles_included=2.0,
        per_minute_rate=0.5,
        minimum_fare=25.0,
        service_fee_multiplier=1.0,
        hourly_enabled=True,
        hourly_rate=60.0,
        minimum_hours=2,
        maximum_hours=8,
        pricing_tiers=[
            VehiclePricingTier(from_mile=0, to_mile=10, per_mile_rate=3.0),
            VehiclePricingTier(from_mile=10, to_mile=None, per_mile_rate=2.0),
        ],
    )
    db_session.add(vt)
    db_session.commit()
    db_session.refresh(vt)
    return vt


@pytest.fixture
def make_booking(db_session, vehicle_type):
    """Insert a booking directly, without firing its creation emails"""

    def _make(**overrides):
        data = {
            "vehicle_type_id": vehicle_type.id,
            "customer_first_name": "Ada",
            "customer_last_name": "Lovelace",
            "customer_email": "ada@example.com",
            "customer_phone": "+15555550100",
            "pickup_address": "1 Main St, Springfield",
            "dropoff_address": "Springfield Airport",
            "pickup_date": datetime.utcnow() + timedelta(days=2),
            "estimated_fare": 80.0,
            "final_fare": 80.0,
            "status": "confirmed",
            "payment_status": "pending",
        }
        data.update(overrides)
        booking = Booking(**data)
        db_session.add(booking)
        db_session.commit()
        db_session.refresh(booking)
        db_session.info.pop(COMMITTED_KEY, None)
        return booking

    return _make


@pytest.fixture
def make_template(db_session):
    def _make(slug, triggers=None, **overrides):
        data = {
            "slug": slug,
            "name": slug.replace("-", " ").title(),
            "subject": "Booking {{booking_number}}",
            "body": "<p>Hi {{customer_first_name}}</p>",
            "trigger_events": triggers or [],
        }
        data.update(overrides)
        template = EmailTemplate(**data)
        db_session.add(template)
        db_session.commit()
        db_session.refresh(template)
        return template

    return _make
