"""
Tests for business settings and the admin dashboard.
"""
from datetime import datetime

import pytest

from taxibook.models import Transaction


class TestSettings:
    @pytest.mark.asyncio
    async def test_public_settings_use_defaults(self, client):
        response = await client.get("/api/settings/public")

        assert response.status_code == 200
        data = response.json()
        assert data["payment_mode"] == "immediate"
        assert data["booking"]["minimum_hours"] == 2
        assert data["booking"]["maximum_days"] == 90

    @pytest.mark.asyncio
    async def test_admin_update_is_typed(self, client, admin_headers):
        response = await client.patch(
            "/admin/settings",
            json={"minimum_booking_hours": "4", "payment_mode": "post_service"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        booking_group = {s["key"]: s["value"] for s in response.json()["settings"]["booking"]}
        assert booking_group["minimum_booking_hours"] == 4

        mode = await client.get("/api/settings/payment-mode")
        assert mode.json()["payment_mode"] == "post_service"

    @pytest.mark.asyncio
    async def test_invalid_payment_mode(self, client, admin_headers):
        response = await client.put(
            "/admin/settings", json={"payment_mode": "whenever"}, headers=admin_headers
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_invalid_integer(self, client, admin_headers):
        response = await client.patch(
            "/admin/settings", json={"maximum_booking_days": "lots"}, headers=admin_headers
        )
        assert response.status_code == 422
        assert "maximum_booking_days" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_empty_update(self, client, admin_headers):
        response = await client.patch("/admin/settings", json={}, headers=admin_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_minimum_notice_applies_to_bookings(
        self, client, admin_headers, vehicle_type
    ):
        await client.patch(
            "/admin/settings", json={"minimum_booking_hours": 72}, headers=admin_headers
        )
        prices = await client.post(
            "/api/bookings/validate-route",
            json={
                "pickup_address": "1 Main St",
                "dropoff_address": "Airport",
                "pickup_date": datetime.utcnow().replace(microsecond=0).isoformat(),
            },
        )
        assert prices.status_code == 422
        assert "72 hours" in prices.json()["detail"]


class TestDashboard:
    @pytest.fixture
    def activity(self, db_session, make_booking):
        make_booking(status="pending")
        make_booking(pickup_date=datetime.utcnow())
        completed = make_booking(status="completed", payment_status="partially_refunded")
        db_session.add_all(
            [
                Transaction(booking_id=completed.id, type="payment", amount=100.0),
                Transaction(booking_id=completed.id, type="partial_refund", amount=30.0),
                Transaction(
                    booking_id=completed.id, type="payment", amount=50.0, status="failed"
                ),
            ]
        )
        db_session.commit()

    @pytest.mark.asyncio
    async def test_stats(self, client, admin_headers, activity):
        response = await client.get("/admin/dashboard/stats", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {
            "today_bookings": 1,
            "today_revenue": 70.0,
            "pending_bookings": 1,
            "upcoming_bookings": 1,
            "month_revenue": 70.0,
            "month_completed": 1,
        }

    @pytest.mark.asyncio
    async def test_revenue_series(self, client, admin_headers, activity):
        response = await client.get("/admin/dashboard/revenue?days=7", headers=admin_headers)

        points = response.json()
        assert len(points) == 7
        assert points[-1]["date"] == datetime.utcnow().date().isoformat()
        assert points[-1]["revenue"] == 70.0
        assert points[-1]["bookings"] == 3
        assert all(p["revenue"] == 0 for p in points[:-1])

    @pytest.mark.asyncio
    async def test_dashboard_is_admin_only(self, client):
        response = await client.get("/admin/dashboard/stats")
        assert response.status_code == 401
