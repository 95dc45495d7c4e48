"""
Tests for custom booking form fields and their display conditions.
"""
import pytest

from taxibook.models import BookingFormField

FLIGHT_NUMBER = {
    "key": "flight_number",
    "label": "Flight number",
    "conditions": [{"field": "is_airport_pickup", "operator": "==", "value": True}],
}


def field_with(*conditions):
    return BookingFormField(key="f", label="F", conditions=list(conditions))


class TestShouldDisplay:
    def test_no_conditions(self):
        assert field_with().should_display({}) is True

    def test_equals_and_not_equals(self):
        field = field_with({"field": "trip", "operator": "==", "value": "airport"})
        assert field.should_display({"trip": "airport"})
        assert not field.should_display({"trip": "city"})

        field = field_with({"field": "trip", "operator": "!=", "value": "airport"})
        assert field.should_display({})

    def test_contains(self):
        field = field_with({"field": "notes", "operator": "contains", "value": "wheelchair"})
        assert field.should_display({"notes": "needs wheelchair access"})
        assert not field.should_display({"notes": None})

    def test_in(self):
        field = field_with({"field": "vehicle", "operator": "in", "value": ["suv", "van"]})
        assert field.should_display({"vehicle": "van"})
        assert not field.should_display({"vehicle": "sedan"})

    def test_every_condition_must_hold(self):
        field = field_with(
            {"field": "trip", "operator": "==", "value": "airport"},
            {"field": "passengers", "operator": "in", "value": [5, 6]},
        )
        assert not field.should_display({"trip": "airport", "passengers": 2})
        assert field.should_display({"trip": "airport", "passengers": 6})


class TestPublicFormFields:
    @pytest.fixture
    def fields(self, db_session):
        db_session.add_all(
            [
                BookingFormField(
                    key="flight_number",
                    label="Flight",
                    sort_order=2,
                    conditions=FLIGHT_NUMBER["conditions"],
                ),
                BookingFormField(key="occasion", label="Occasion", sort_order=1),
                BookingFormField(key="legacy", label="Legacy", is_active=False),
            ]
        )
        db_session.commit()

    @pytest.mark.asyncio
    async def test_list_active_in_order(self, client, fields):
        response = await client.get("/api/form-fields")
        assert [f["key"] for f in response.json()] == ["occasion", "flight_number"]

    @pytest.mark.asyncio
    async def test_visible_follows_conditions(self, client, fields):
        hidden = await client.post("/api/form-fields/visible", json={"values": {}})
        shown = await client.post(
            "/api/form-fields/visible", json={"values": {"is_airport_pickup": True}}
        )

        assert [f["key"] for f in hidden.json()] == ["occasion"]
        assert [f["key"] for f in shown.json()] == ["occasion", "flight_number"]


class TestAdminFormFields:
    @pytest.mark.asyncio
    async def test_create_and_duplicate_key(self, client, admin_headers):
        created = await client.post("/admin/form-fields", json=FLIGHT_NUMBER, headers=admin_headers)
        assert created.status_code == 201
        assert created.json()["type"] == "text"
        assert created.json()["conditions"][0]["operator"] == "=="

        again = await client.post("/admin/form-fields", json=FLIGHT_NUMBER, headers=admin_headers)
        assert again.status_code == 409

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            dict(FLIGHT_NUMBER, key="Flight Number"),
            dict(FLIGHT_NUMBER, type="signature"),
            dict(FLIGHT_NUMBER, conditions=[{"field": "x", "operator": ">", "value": 1}]),
        ],
    )
    async def test_invalid_fields_rejected(self, client, admin_headers, payload):
        response = await client.post("/admin/form-fields", json=payload, headers=admin_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_ignores_null_label(self, client, admin_headers):
        created = await client.post("/admin/form-fields", json=FLIGHT_NUMBER, headers=admin_headers)
        field_id = created.json()["id"]

        response = await client.patch(
            f"/admin/form-fields/{field_id}",
            json={"label": None, "required": True, "conditions": []},
            headers=admin_headers,
        )

        data = response.json()
        assert data["label"] == "Flight number"
        assert data["required"] is True
        assert data["conditions"] == []

    @pytest.mark.asyncio
    async def test_delete_and_missing(self, client, admin_headers):
        created = await client.post("/admin/form-fields", json=FLIGHT_NUMBER, headers=admin_headers)
        field_id = created.json()["id"]

        deleted = await client.delete(f"/admin/form-fields/{field_id}", headers=admin_headers)
        assert deleted.status_code == 200

        missing = await client.get(f"/admin/form-fields/{field_id}", headers=admin_headers)
        assert missing.status_code == 404
        assert missing.json()["detail"] == "Form field not found"
