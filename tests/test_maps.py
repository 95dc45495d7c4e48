"""
Tests for Directions API parsing and route lookup failures.
"""
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from taxibook.services.maps_service import get_route, parse_directions

DIRECTIONS = {
    "status": "OK",
    "routes": [
        {
            "overview_polyline": {"points": "abc123"},
            "legs": [
                {
                    "distance": {"value": 16093, "text": "10.0 mi"},
                    "duration": {"value": 1500, "text": "25 mins"},
                    "start_address": "1 Main St",
                    "end_address": "Airport",
                }
            ],
        }
    ],
}


class TestParseDirections:
    def test_miles_and_minutes(self):
        route = parse_directions(DIRECTIONS)
        assert route["distance"] == 10.0
        assert route["duration"] == 25.0
        assert route["polyline"] == "abc123"

    def test_prefers_traffic_duration(self):
        leg = DIRECTIONS["routes"][0]["legs"][0]
        payload = {
            "status": "OK",
            "routes": [
                {"legs": [dict(leg, duration_in_traffic={"value": 2100, "text": "35 mins"})]}
            ],
        }
        assert parse_directions(payload)["duration"] == 35.0

    def test_no_route(self):
        with pytest.raises(ValueError):
            parse_directions({"status": "ZERO_RESULTS", "routes": []})


class TestGetRoute:
    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with patch("taxibook.services.maps_service.GOOGLE_MAPS_API_KEY", ""):
            with pytest.raises(HTTPException) as exc_info:
                await get_route("1 Main St", "Airport")
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail == "Unable to calculate route"

    @pytest.mark.asyncio
    async def test_cached_route_skips_api(self):
        cached = {"distance": 3.0, "duration": 9.0, "polyline": None}
        with patch("taxibook.services.maps_service.cache") as mock_cache:
            mock_cache.get.return_value = cached
            assert await get_route("1 Main St", "Airport") == cached
