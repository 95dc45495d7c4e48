"""Fleet service - vehicle type, pricing tier and extra management"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Booking, Extra, VehiclePricingTier, VehicleType
from ...shared.validators import slugify
from .repository import FleetRepository
from .schemas import (
    ExtraCreate,
    ExtraUpdate,
    PricingTierInput,
    VehicleTypeCreate,
    VehicleTypeUpdate,
)

logger = logging.getLogger(__name__)


def validate_tiers(tiers: list[PricingTierInput]) -> list[PricingTierInput]:
    """
    Sort tiers by from_mile and reject overlaps.

    Only the last tier may be open ended (to_mile = None).

    Raises:
        HTTPException: 422 when tiers are inverted or overlap
    """
    ordered = sorted(tiers, key=lambda t: t.from_mile)
    for index, tier in enumerate(ordered):
        if tier.to_mile is not None and tier.to_mile <= tier.from_mile:
            raise HTTPException(
                status_code=422,
                detail=f"Tier starting at mile {tier.from_mile:g} must end after it starts",
            )
        if index == len(ordered) - 1:
            continue
        following = ordered[index + 1]
        if tier.to_mile is None:
            raise HTTPException(
                status_code=422, detail="Only the last pricing tier can be open ended"
            )
        if following.from_mile < tier.to_mile:
            raise HTTPException(
                status_code=422,
                detail=(
                    f"Pricing tiers overlap: {tier.from_mile:g}-{tier.to_mile:g} and "
                    f"{following.from_mile:g}-"
                    f"{'' if following.to_mile is None else f'{following.to_mile:g}'}"
                ),
            )
    return ordered


class FleetService:
    """Service layer for vehicle types and extras"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = FleetRepository()

    # ============================================================================
    # Vehicle types
    # ============================================================================

    def list_vehicle_types(self, active_only: bool = False) -> list[VehicleType]:
        return self.repo.list_vehicle_types(self.db, active_only)

    def get_vehicle_type(self, vehicle_type_id: int) -> VehicleType:
        vehicle_type = self.repo.get_vehicle_type(self.db, vehicle_type_id)
        if not vehicle_type:
            raise HTTPException(status_code=404, detail="Vehicle type not found")
        return vehicle_type

    def _check_hours(self, minimum_hours: int, maximum_hours: int):
        if minimum_hours > maximum_hours:
            raise HTTPException(
                status_code=422, detail="minimum_hours cannot be greater than maximum_hours"
            )

    def create_vehicle_type(self, data: VehicleTypeCreate) -> VehicleType:
        slug = data.slug or slugify(data.display_name)
        if self.repo.vehicle_slug_exists(self.db, slug):
            raise HTTPException(status_code=409, detail=f"A vehicle type with slug '{slug}' already exists")
        self._check_hours(data.minimum_hours, data.maximum_hours)

        tiers = validate_tiers(data.pricing_tiers)
        fields = data.model_dump(exclude={"slug", "pricing_tiers"})
        vehicle_type = VehicleType(slug=slug, **fields)
        vehicle_type.pricing_tiers = [VehiclePricingTier(**t.model_dump()) for t in tiers]

        vehicle_type = self.repo.save(self.db, vehicle_type)
        logger.info(f"🚘 Vehicle type created: {vehicle_type.display_name} ({slug})")
        return vehicle_type

    def update_vehicle_type(self, vehicle_type_id: int, data: VehicleTypeUpdate) -> VehicleType:
        vehicle_type = self.get_vehicle_type(vehicle_type_id)
        updates = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        if "slug" in updates and self.repo.vehicle_slug_exists(
            self.db, updates["slug"], exclude_id=vehicle_type.id
        ):
            raise HTTPException(
                status_code=409, detail=f"A vehicle type with slug '{updates['slug']}' already exists"
            )
        self._check_hours(
            updates.get("minimum_hours", vehicle_type.minimum_hours),
            updates.get("maximum_hours", vehicle_type.maximum_hours),
        )

        for key, value in updates.items():
            setattr(vehicle_type, key, value)
        vehicle_type = self.repo.save(self.db, vehicle_type)
        logger.info(f"🚘 Vehicle type {vehicle_type.id} updated: {sorted(updates)}")
        return vehicle_type

    def replace_pricing_tiers(
        self, vehicle_type_id: int, tiers: list[PricingTierInput]
    ) -> VehicleType:
        vehicle_type = self.get_vehicle_type(vehicle_type_id)
        ordered = validate_tiers(tiers)
        vehicle_type = self.repo.replace_tiers(
            self.db, vehicle_type, [VehiclePricingTier(**t.model_dump()) for t in ordered]
        )
        logger.info(f"🚘 {len(ordered)} pricing tiers saved for {vehicle_type.display_name}")
        return vehicle_type

    def delete_vehicle_type(self, vehicle_type_id: int) -> dict:
        vehicle_type = self.get_vehicle_type(vehicle_type_id)
        has_bookings = (
            self.db.query(Booking.id).filter(Booking.vehicle_type_id == vehicle_type.id).first()
        )
        if has_bookings:
            raise HTTPException(
                status_code=409,
                detail="This vehicle type has bookings. Deactivate it instead of deleting it.",
            )
        self.repo.delete(self.db, vehicle_type)
        logger.info(f"🗑️ Vehicle type {vehicle_type_id} deleted")
        return {"message": "Vehicle type deleted successfully"}

    # ============================================================================
    # Extras
    # ============================================================================

    def list_extras(self) -> list[Extra]:
        return self.repo.list_extras(self.db)

    def get_extra(self, extra_id: int) -> Extra:
        extra = self.repo.get_extra(self.db, extra_id)
        if not extra:
            raise HTTPException(status_code=404, detail="Extra not found")
        return extra

    def _vehicle_types(self, ids: list[int]) -> list[VehicleType]:
        vehicle_types = self.repo.get_vehicle_types_by_ids(self.db, ids)
        missing = set(ids) - {vt.id for vt in vehicle_types}
        if missing:
            raise HTTPException(
                status_code=422, detail=f"Unknown vehicle type ids: {sorted(missing)}"
            )
        return vehicle_types

    def create_extra(self, data: ExtraCreate) -> Extra:
        slug = data.slug or slugify(data.name)
        if self.repo.extra_slug_exists(self.db, slug):
            raise HTTPException(status_code=409, detail=f"An extra with slug '{slug}' already exists")

        extra = Extra(slug=slug, **data.model_dump(exclude={"slug", "vehicle_type_ids"}))
        extra.vehicle_types = self._vehicle_types(data.vehicle_type_ids)
        extra = self.repo.save(self.db, extra)
        logger.info(f"➕ Extra created: {extra.name}")
        return extra

    def update_extra(self, extra_id: int, data: ExtraUpdate) -> Extra:
        extra = self.get_extra(extra_id)
        updates = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        if "slug" in updates and self.repo.extra_slug_exists(
            self.db, updates["slug"], exclude_id=extra.id
        ):
            raise HTTPException(
                status_code=409, detail=f"An extra with slug '{updates['slug']}' already exists"
            )

        vehicle_type_ids = updates.pop("vehicle_type_ids", None)
        if vehicle_type_ids is not None:
            extra.vehicle_types = self._vehicle_types(vehicle_type_ids)
        for key, value in updates.items():
            setattr(extra, key, value)
        return self.repo.save(self.db, extra)

    def delete_extra(self, extra_id: int) -> dict:
        extra = self.get_extra(extra_id)
        # Booked extras keep their name and price snapshot
        self.repo.delete(self.db, extra)
        logger.info(f"🗑️ Extra {extra_id} deleted")
        return {"message": "Extra deleted successfully"}
