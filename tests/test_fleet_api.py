"""
Tests for vehicle type, pricing tier and extra administration.
"""
import pytest

from taxibook.models import VehicleType

SUV = {
    "display_name": "Executive SUV",
    "max_passengers": 6,
    "max_luggage": 6,
    "base_fare": 20,
    "base_miles_included": 1,
    "per_minute_rate": 0.75,
    "minimum_fare": 60,
    "pricing_tiers": [
        {"from_mile": 10, "to_mile": None, "per_mile_rate": 3.5},
        {"from_mile": 0, "to_mile": 10, "per_mile_rate": 4.5},
    ],
}


class TestVehicleTypes:
    @pytest.mark.asyncio
    async def test_create_sorts_tiers_and_slugifies(self, client, admin_headers):
        response = await client.post("/admin/vehicle-types", json=SUV, headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["slug"] == "executive-suv"
        assert [t["from_mile"] for t in data["pricing_tiers"]] == [0, 10]

    @pytest.mark.asyncio
    async def test_duplicate_slug_conflicts(self, client, admin_headers, vehicle_type):
        response = await client.post(
            "/admin/vehicle-types",
            json={"display_name": "Sedan", "slug": "sedan"},
            headers=admin_headers,
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_overlapping_tiers_rejected(self, client, admin_headers):
        payload = dict(
            SUV,
            pricing_tiers=[
                {"from_mile": 0, "to_mile": 10, "per_mile_rate": 4},
                {"from_mile": 8, "to_mile": None, "per_mile_rate": 3},
            ],
        )
        response = await client.post("/admin/vehicle-types", json=payload, headers=admin_headers)
        assert response.status_code == 422
        assert "overlap" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_hour_limits_must_be_ordered(self, client, admin_headers, vehicle_type):
        response = await client.patch(
            f"/admin/vehicle-types/{vehicle_type.id}",
            json={"minimum_hours": 10},
            headers=admin_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_replace_pricing_tiers(self, client, admin_headers, vehicle_type):
        response = await client.put(
            f"/admin/vehicle-types/{vehicle_type.id}/pricing-tiers",
            json=[{"from_mile": 0, "to_mile": None, "per_mile_rate": 2.25}],
            headers=admin_headers,
        )

        assert response.status_code == 200
        tiers = response.json()["pricing_tiers"]
        assert len(tiers) == 1
        assert tiers[0]["per_mile_rate"] == 2.25

    @pytest.mark.asyncio
    async def test_public_list_hides_inactive(self, client, db_session, vehicle_type):
        db_session.add(VehicleType(display_name="Retired Limo", slug="retired-limo", is_active=False))
        db_session.commit()

        response = await client.get("/api/vehicle-types")

        assert response.status_code == 200
        assert [vt["slug"] for vt in response.json()] == ["sedan"]

    @pytest.mark.asyncio
    async def test_vehicle_with_bookings_cannot_be_deleted(
        self, client, admin_headers, vehicle_type, make_booking
    ):
        make_booking()
        response = await client.delete(
            f"/admin/vehicle-types/{vehicle_type.id}", headers=admin_headers
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_delete_unused_vehicle(self, client, admin_headers, vehicle_type):
        response = await client.delete(
            f"/admin/vehicle-types/{vehicle_type.id}", headers=admin_headers
        )
        assert response.status_code == 200

        missing = await client.get(
            f"/admin/vehicle-types/{vehicle_type.id}", headers=admin_headers
        )
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_admin_routes_need_token(self, client):
        response = await client.post("/admin/vehicle-types", json=SUV)
        assert response.status_code == 401


class TestExtras:
    @pytest.mark.asyncio
    async def test_extra_limited_to_vehicle(self, client, db_session, admin_headers, vehicle_type):
        other = VehicleType(display_name="Van", slug="van")
        db_session.add(other)
        db_session.commit()

        created = await client.post(
            "/admin/extras",
            json={
                "name": "Meet & Greet",
                "price": 25,
                "apply_to_all_vehicles": False,
                "vehicle_type_ids": [vehicle_type.id],
            },
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.json()["slug"] == "meet-greet"
        assert created.json()["vehicle_type_ids"] == [vehicle_type.id]

        for_sedan = await client.get(f"/api/bookings/extras?vehicle_type_id={vehicle_type.id}")
        for_van = await client.get(f"/api/bookings/extras?vehicle_type_id={other.id}")
        assert len(for_sedan.json()) == 1
        assert for_van.json() == []

    @pytest.mark.asyncio
    async def test_unknown_vehicle_ids(self, client, admin_headers):
        response = await client.post(
            "/admin/extras",
            json={"name": "Wifi", "vehicle_type_ids": [999]},
            headers=admin_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_and_delete_extra(self, client, admin_headers):
        created = await client.post(
            "/admin/extras", json={"name": "Child Seat", "price": 10}, headers=admin_headers
        )
        extra_id = created.json()["id"]

        updated = await client.patch(
            f"/admin/extras/{extra_id}",
            json={"price": 12.5, "max_quantity": 3},
            headers=admin_headers,
        )
        assert updated.status_code == 200
        assert updated.json()["price"] == 12.5
        assert updated.json()["max_quantity"] == 3

        deleted = await client.delete(f"/admin/extras/{extra_id}", headers=admin_headers)
        assert deleted.status_code == 200
        missing = await client.get(f"/admin/extras/{extra_id}", headers=admin_headers)
        assert missing.status_code == 404
