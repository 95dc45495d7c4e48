"""
Fare calculation for distance and hourly bookings
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import VehicleType

logger = logging.getLogger(__name__)

GRATUITY_PERCENTAGES = (0, 15, 20, 25)
SUGGESTED_TIP_PERCENTAGES = (15, 20, 25)


def tiered_mileage_charge(vehicle_type: VehicleType, distance_miles: float) -> float:
    """Charge the miles beyond base_miles_included against tiers laid out in trip miles.

    Miles left over after the last bounded tier are charged at that tier's rate.
    """
    tiers = sorted(vehicle_type.pricing_tiers, key=lambda t: t.from_mile)
    current_mile = vehicle_type.base_miles_included or 0.0
    if not tiers or distance_miles <= current_mile:
        return 0.0

    charge = 0.0
    for tier in tiers:
        if current_mile >= distance_miles:
            break
        tier_end = distance_miles if tier.to_mile is None else min(distance_miles, tier.to_mile)
        tier_start = max(tier.from_mile, current_mile)
        if tier_end > tier_start:
            charge += (tier_end - tier_start) * tier.per_mile_rate
            current_mile = tier_end

    last = tiers[-1]
    if last.to_mile is not None:
        overflow_start = max(current_mile, last.to_mile)
        if distance_miles > overflow_start:
            charge += (distance_miles - overflow_start) * last.per_mile_rate

    return charge


def fare_breakdown(vehicle_type: VehicleType, distance_miles: float, duration_minutes: float) -> dict:
    base_fare = vehicle_type.base_fare or 0.0
    billable_miles = max(0.0, distance_miles - (vehicle_type.base_miles_included or 0.0))
    mileage = tiered_mileage_charge(vehicle_type, distance_miles)
    time_charge = (duration_minutes or 0) * (vehicle_type.per_minute_rate or 0.0)

    subtotal = base_fare + mileage + time_charge
    multiplier = vehicle_type.service_fee_multiplier or 1.0
    with_fees = subtotal * multiplier
    tax = with_fees * (vehicle_type.tax_rate or 0.0) / 100 if vehicle_type.tax_enabled else 0.0
    total = with_fees + tax
    minimum = vehicle_type.minimum_fare or 0.0
    minimum_applied = total < minimum

    return {
        "base_fare": round(base_fare, 2),
        "billable_miles": round(billable_miles, 2),
        "mileage_charge": round(mileage, 2),
        "time_charge": round(time_charge, 2),
        "subtotal": round(subtotal, 2),
        "service_fee": round(with_fees - subtotal, 2),
        "tax": round(tax, 2),
        "minimum_fare_applied": minimum_applied,
        "total": round(max(minimum, total), 2),
    }


def calculate_fare(vehicle_type: VehicleType, distance_miles: float, duration_minutes: float) -> float:
    return fare_breakdown(vehicle_type, distance_miles, duration_minutes)["total"]


def calculate_hourly_fare(vehicle_type: VehicleType, hours: int) -> float:
    return round(hours * (vehicle_type.hourly_rate or 0.0), 2)


def gratuity_options(fare: float) -> list[dict]:
    return [
        {"percentage": pct, "amount": round(fare * pct / 100, 2)} for pct in GRATUITY_PERCENTAGES
    ]


def suggested_tips(fare: float) -> list[dict]:
    return [
        {"percentage": pct, "amount": round(fare * pct / 100, 2)} for pct in SUGGESTED_TIP_PERCENTAGES
    ]


class PricingService:
    def __init__(self, db: Session):
        self.db = db

    def active_vehicle_types(self) -> list[VehicleType]:
        return (
            self.db.query(VehicleType)
            .filter(VehicleType.is_active.is_(True))
            .order_by(VehicleType.sort_order, VehicleType.id)
            .all()
        )

    def quote(
        self,
        vehicle_type: VehicleType,
        distance_miles: float,
        duration_minutes: float,
        booking_type: str = "one_way",
        hours: Optional[int] = None,
    ) -> float:
        if booking_type == "hourly":
            return calculate_hourly_fare(vehicle_type, hours or 0)
        return calculate_fare(vehicle_type, distance_miles, duration_minutes)

    def calculate_prices(
        self,
        distance_miles: float,
        duration_minutes: float,
        booking_type: str = "one_way",
        hours: Optional[int] = None,
    ) -> list[dict]:
        results = []
        for vt in self.active_vehicle_types():
            if booking_type == "hourly" and not vt.allows_hours(hours or 0):
                continue
            fare = self.quote(vt, distance_miles, duration_minutes, booking_type, hours)
            entry = {
                "vehicle_type_id": vt.id,
                "display_name": vt.display_name,
                "slug": vt.slug,
                "description": vt.description,
                "max_passengers": vt.max_passengers,
                "max_luggage": vt.max_luggage,
                "image_url": vt.image_url,
                "features": vt.features or [],
                "fare": fare,
                "gratuity_options": gratuity_options(fare),
            }
            if booking_type == "hourly":
                entry["hourly_rate"] = vt.hourly_rate
                entry["miles_included"] = (hours or 0) * vt.miles_included_per_hour
            else:
                entry["breakdown"] = fare_breakdown(vt, distance_miles, duration_minutes)
            results.append(entry)

        logger.debug(f"Priced {len(results)} vehicle types for {distance_miles} mi / {booking_type}")
        return results
