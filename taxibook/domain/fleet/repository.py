"""Fleet repository - Database operations for vehicle types and extras"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Extra, VehiclePricingTier, VehicleType


class FleetRepository:
    """Repository for vehicle type and extra database operations"""

    # ============================================================================
    # Vehicle types
    # ============================================================================

    @staticmethod
    def list_vehicle_types(db: Session, active_only: bool = False) -> list[VehicleType]:
        query = db.query(VehicleType)
        if active_only:
            query = query.filter(VehicleType.is_active.is_(True))
        return query.order_by(VehicleType.sort_order, VehicleType.id).all()

    @staticmethod
    def get_vehicle_type(db: Session, vehicle_type_id: int) -> Optional[VehicleType]:
        return db.query(VehicleType).filter(VehicleType.id == vehicle_type_id).first()

    @staticmethod
    def vehicle_slug_exists(db: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(VehicleType.id).filter(VehicleType.slug == slug)
        if exclude_id is not None:
            query = query.filter(VehicleType.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def get_vehicle_types_by_ids(db: Session, ids: list[int]) -> list[VehicleType]:
        if not ids:
            return []
        return db.query(VehicleType).filter(VehicleType.id.in_(ids)).all()

    @staticmethod
    def save(db: Session, instance):
        db.add(instance)
        db.commit()
        db.refresh(instance)
        return instance

    @staticmethod
    def replace_tiers(
        db: Session, vehicle_type: VehicleType, tiers: list[VehiclePricingTier]
    ) -> VehicleType:
        # delete-orphan cascade removes the old rows
        vehicle_type.pricing_tiers = tiers
        db.commit()
        db.refresh(vehicle_type)
        return vehicle_type

    @staticmethod
    def delete(db: Session, instance) -> None:
        db.delete(instance)
        db.commit()

    # ============================================================================
    # Extras
    # ============================================================================

    @staticmethod
    def list_extras(db: Session) -> list[Extra]:
        return db.query(Extra).order_by(Extra.sort_order, Extra.name).all()

    @staticmethod
    def get_extra(db: Session, extra_id: int) -> Optional[Extra]:
        return db.query(Extra).filter(Extra.id == extra_id).first()

    @staticmethod
    def extra_slug_exists(db: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(Extra.id).filter(Extra.slug == slug)
        if exclude_id is not None:
            query = query.filter(Extra.id != exclude_id)
        return query.first() is not None
