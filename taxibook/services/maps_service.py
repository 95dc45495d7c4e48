"""
Route distance and duration via the Google Directions API
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import HTTPException

from ..cache import cache
from ..config import GOOGLE_MAPS_API_KEY

logger = logging.getLogger(__name__)

DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
ROUTE_CACHE_TTL = 3600
METERS_PER_MILE = 1609.344


def _route_cache_key(pickup: str, dropoff: str) -> str:
    digest = hashlib.sha256(f"{pickup.lower().strip()}|{dropoff.lower().strip()}".encode()).hexdigest()
    return f"route:{digest[:32]}"


def parse_directions(payload: dict) -> dict:
    """Extract miles, minutes and polyline from a Directions API response"""
    if payload.get("status") != "OK" or not payload.get("routes"):
        raise ValueError(payload.get("error_message") or payload.get("status") or "No route found")

    route = payload["routes"][0]
    leg = route["legs"][0]
    # Prefer traffic-aware duration when Google returns it
    duration = leg.get("duration_in_traffic") or leg["duration"]
    return {
        "distance": round(leg["distance"]["value"] / METERS_PER_MILE, 2),
        "duration": round(duration["value"] / 60, 1),
        "distance_text": leg["distance"].get("text"),
        "duration_text": duration.get("text"),
        "polyline": route.get("overview_polyline", {}).get("points"),
        "start_address": leg.get("start_address"),
        "end_address": leg.get("end_address"),
    }


async def get_route(pickup: str, dropoff: str, departure_time: Optional[datetime] = None) -> dict:
    cache_key = _route_cache_key(pickup, dropoff)
    cached_route = cache.get(cache_key)
    if cached_route is not None:
        return cached_route

    if not GOOGLE_MAPS_API_KEY:
        logger.error("❌ GOOGLE_MAPS_API_KEY not configured")
        raise HTTPException(status_code=422, detail="Unable to calculate route")

    params = {
        "origin": pickup,
        "destination": dropoff,
        "units": "imperial",
        "key": GOOGLE_MAPS_API_KEY,
    }
    if departure_time and departure_time > datetime.utcnow():
        params["departure_time"] = int(departure_time.replace(tzinfo=timezone.utc).timestamp())

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(DIRECTIONS_URL, params=params)
            resp.raise_for_status()
            route = parse_directions(resp.json())
    except (httpx.HTTPError, ValueError, KeyError) as e:
        logger.warning(f"⚠️ Route lookup failed for '{pickup}' -> '{dropoff}': {e}")
        raise HTTPException(status_code=422, detail="Unable to calculate route") from e

    cache.set(cache_key, route, ROUTE_CACHE_TTL)
    logger.info(f"🗺️ Route {route['distance']} mi / {route['duration']} min")
    return route
