"""Fleet router - public vehicle listing and admin vehicle type / extra management"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import User
from .schemas import (
    ExtraCreate,
    ExtraResponse,
    ExtraUpdate,
    PricingTierInput,
    VehicleTypeCreate,
    VehicleTypeResponse,
    VehicleTypeUpdate,
)
from .service import FleetService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/vehicle-types", tags=["Vehicles"])
vehicle_admin_router = APIRouter(prefix="/admin/vehicle-types", tags=["Admin Fleet"])
extra_admin_router = APIRouter(prefix="/admin/extras", tags=["Admin Fleet"])


def get_fleet_service(db: Session = Depends(get_db)) -> FleetService:
    """Dependency injection for FleetService"""
    return FleetService(db)


@router.get("", response_model=list[VehicleTypeResponse])
async def list_active_vehicle_types(service: FleetService = Depends(get_fleet_service)):
    return service.list_vehicle_types(active_only=True)


# ============================================================================
# VEHICLE TYPES
# ============================================================================


@vehicle_admin_router.get("", response_model=list[VehicleTypeResponse])
async def admin_list_vehicle_types(
    active_only: bool = Query(False),
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.list_vehicle_types(active_only)


@vehicle_admin_router.post("", response_model=VehicleTypeResponse, status_code=201)
async def admin_create_vehicle_type(
    data: VehicleTypeCreate,
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.create_vehicle_type(data)


@vehicle_admin_router.get("/{vehicle_type_id}", response_model=VehicleTypeResponse)
async def admin_get_vehicle_type(
    vehicle_type_id: int,
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.get_vehicle_type(vehicle_type_id)


@vehicle_admin_router.patch("/{vehicle_type_id}", response_model=VehicleTypeResponse)
async def admin_update_vehicle_type(
    vehicle_type_id: int,
    data: VehicleTypeUpdate,
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.update_vehicle_type(vehicle_type_id, data)


@vehicle_admin_router.put("/{vehicle_type_id}/pricing-tiers", response_model=VehicleTypeResponse)
async def admin_replace_pricing_tiers(
    vehicle_type_id: int,
    tiers: list[PricingTierInput],
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    """Replace every mileage tier of a vehicle type"""
    return service.replace_pricing_tiers(vehicle_type_id, tiers)


@vehicle_admin_router.delete("/{vehicle_type_id}")
async def admin_delete_vehicle_type(
    vehicle_type_id: int,
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.delete_vehicle_type(vehicle_type_id)


# ============================================================================
# EXTRAS
# ============================================================================


@extra_admin_router.get("", response_model=list[ExtraResponse])
async def admin_list_extras(
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.list_extras()


@extra_admin_router.post("", response_model=ExtraResponse, status_code=201)
async def admin_create_extra(
    data: ExtraCreate,
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.create_extra(data)


@extra_admin_router.get("/{extra_id}", response_model=ExtraResponse)
async def admin_get_extra(
    extra_id: int,
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.get_extra(extra_id)


@extra_admin_router.patch("/{extra_id}", response_model=ExtraResponse)
async def admin_update_extra(
    extra_id: int,
    data: ExtraUpdate,
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.update_extra(extra_id, data)


@extra_admin_router.delete("/{extra_id}")
async def admin_delete_extra(
    extra_id: int,
    current_admin: User = Depends(get_current_admin),
    service: FleetService = Depends(get_fleet_service),
):
    return service.delete_extra(extra_id)
