"""
Tests for fare calculation and pricing tier validation.
"""
import pytest
from fastapi import HTTPException

from taxibook.domain.fleet.schemas import PricingTierInput
from taxibook.domain.fleet.service import validate_tiers
from taxibook.models import VehiclePricingTier, VehicleType
from taxibook.services.pricing_service import (
    calculate_fare,
    calculate_hourly_fare,
    fare_breakdown,
    suggested_tips,
    tiered_mileage_charge,
)


def build_vehicle(tiers, **overrides):
    data = {
        "display_name": "Sedan",
        "slug": "sedan",
        "base_fare": 10.0,
        "base_miles_included": 2.0,
        "per_minute_rate": 0.5,
        "minimum_fare": 25.0,
        "service_fee_multiplier": 1.0,
        "tax_enabled": False,
        "tax_rate": 0.0,
        "hourly_rate": 60.0,
    }
    data.update(overrides)
    vt = VehicleType(**data)
    vt.pricing_tiers = [
        VehiclePricingTier(from_mile=f, to_mile=t, per_mile_rate=r) for f, t, r in tiers
    ]
    return vt


STANDARD_TIERS = [(0, 10, 3.0), (10, None, 2.0)]


# =============================================================================
# Tiered mileage
# =============================================================================


class TestTieredMileage:
    def test_included_miles_are_free(self):
        vt = build_vehicle(STANDARD_TIERS)
        assert tiered_mileage_charge(vt, 2.0) == 0.0
        assert tiered_mileage_charge(vt, 1.0) == 0.0

    def test_charges_span_tiers_in_trip_miles(self):
        vt = build_vehicle(STANDARD_TIERS)
        # miles 2-10 at $3, miles 10-15 at $2
        assert tiered_mileage_charge(vt, 15.0) == pytest.approx(8 * 3.0 + 5 * 2.0)

    def test_tiers_given_out_of_order(self):
        vt = build_vehicle([(10, None, 2.0), (0, 10, 3.0)])
        assert tiered_mileage_charge(vt, 15.0) == pytest.approx(34.0)

    def test_miles_past_last_bounded_tier_use_its_rate(self):
        vt = build_vehicle([(0, 5, 3.0)], base_miles_included=0.0)
        assert tiered_mileage_charge(vt, 8.0) == pytest.approx(24.0)

    def test_no_tiers_means_no_mileage_charge(self):
        vt = build_vehicle([])
        assert tiered_mileage_charge(vt, 50.0) == 0.0

    def test_miles_in_a_gap_between_tiers_are_free(self):
        vt = build_vehicle([(0, 5, 1.0), (8, None, 2.0)], base_miles_included=0.0)
        # 0-5 at $1, 5-8 uncovered, 8-10 at $2
        assert tiered_mileage_charge(vt, 10.0) == pytest.approx(5 * 1.0 + 2 * 2.0)

    def test_included_miles_past_first_tier(self):
        vt = build_vehicle([(0, 5, 3.0), (5, 10, 2.0)], base_miles_included=7.0)
        # 7-10 at $2, 10-12 past the last bounded tier at $2
        assert tiered_mileage_charge(vt, 12.0) == pytest.approx(3 * 2.0 + 2 * 2.0)


# =============================================================================
# Full fare
# =============================================================================


class TestFare:
    def test_fare_adds_base_mileage_and_time(self):
        vt = build_vehicle(STANDARD_TIERS)
        assert calculate_fare(vt, 15.0, 20) == 54.0

    def test_minimum_fare_applies(self):
        vt = build_vehicle(STANDARD_TIERS)
        breakdown = fare_breakdown(vt, 1.0, 0)
        assert breakdown["total"] == 25.0
        assert breakdown["minimum_fare_applied"] is True

    def test_service_fee_then_tax(self):
        vt = build_vehicle(
            STANDARD_TIERS, service_fee_multiplier=1.2, tax_enabled=True, tax_rate=10.0
        )
        breakdown = fare_breakdown(vt, 5.0, 0)
        # (10 + 3 * 3) * 1.2 = 22.80, plus 10% tax
        assert breakdown["service_fee"] == 3.8
        assert breakdown["tax"] == 2.28
        assert breakdown["total"] == 25.08

    def test_tax_ignored_when_disabled(self):
        vt = build_vehicle(STANDARD_TIERS, tax_enabled=False, tax_rate=20.0)
        assert fare_breakdown(vt, 15.0, 20)["tax"] == 0.0

    def test_hourly_fare(self):
        vt = build_vehicle(STANDARD_TIERS)
        assert calculate_hourly_fare(vt, 3) == 180.0

    def test_suggested_tips(self):
        assert suggested_tips(100.0) == [
            {"percentage": 15, "amount": 15.0},
            {"percentage": 20, "amount": 20.0},
            {"percentage": 25, "amount": 25.0},
        ]


# =============================================================================
# Tier validation
# =============================================================================


class TestValidateTiers:
    def test_sorts_valid_tiers(self):
        tiers = [
            PricingTierInput(from_mile=10, to_mile=None, per_mile_rate=2),
            PricingTierInput(from_mile=0, to_mile=10, per_mile_rate=3),
        ]
        ordered = validate_tiers(tiers)
        assert [t.from_mile for t in ordered] == [0, 10]

    def test_rejects_overlap(self):
        tiers = [
            PricingTierInput(from_mile=0, to_mile=10, per_mile_rate=3),
            PricingTierInput(from_mile=5, to_mile=20, per_mile_rate=2),
        ]
        with pytest.raises(HTTPException) as exc_info:
            validate_tiers(tiers)
        assert exc_info.value.status_code == 422
        assert "overlap" in exc_info.value.detail

    def test_rejects_open_tier_before_last(self):
        tiers = [
            PricingTierInput(from_mile=0, to_mile=None, per_mile_rate=3),
            PricingTierInput(from_mile=10, to_mile=20, per_mile_rate=2),
        ]
        with pytest.raises(HTTPException) as exc_info:
            validate_tiers(tiers)
        assert exc_info.value.status_code == 422

    def test_rejects_inverted_tier(self):
        with pytest.raises(HTTPException):
            validate_tiers([PricingTierInput(from_mile=10, to_mile=5, per_mile_rate=1)])

    def test_adjacent_tiers_are_allowed(self):
        tiers = [
            PricingTierInput(from_mile=0, to_mile=10, per_mile_rate=3),
            PricingTierInput(from_mile=10, to_mile=20, per_mile_rate=2),
        ]
        assert len(validate_tiers(tiers)) == 2
