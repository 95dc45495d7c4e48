"""Fleet domain schemas - vehicle types, pricing tiers and extras"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_slug


class PricingTierInput(BaseModel):
    from_mile: float = Field(..., ge=0)
    to_mile: Optional[float] = Field(None, gt=0)
    per_mile_rate: float = Field(..., ge=0)


class PricingTierResponse(PricingTierInput):
    id: int

    class Config:
        from_attributes = True


class VehicleTypeBase(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = None
    description: Optional[str] = None
    max_passengers: int = Field(4, ge=1)
    max_luggage: int = Field(2, ge=0)
    image_url: Optional[str] = None
    features: Optional[list[str]] = []

    base_fare: float = Field(0, ge=0)
    base_miles_included: float = Field(0, ge=0)
    per_minute_rate: float = Field(0, ge=0)
    minimum_fare: float = Field(0, ge=0)
    service_fee_multiplier: float = Field(1.0, gt=0)
    tax_enabled: bool = False
    tax_rate: float = Field(0, ge=0, le=100)

    hourly_enabled: bool = False
    hourly_rate: Optional[float] = Field(None, ge=0)
    minimum_hours: int = Field(2, ge=1, le=24)
    maximum_hours: int = Field(12, ge=1, le=24)
    miles_included_per_hour: int = Field(20, ge=0)
    excess_mile_rate: Optional[float] = Field(None, ge=0)

    is_active: bool = True
    sort_order: int = 0

    @field_validator("slug")
    @classmethod
    def validate_slug_format(cls, v):
        if v:
            return validate_slug(v)
        return v


class VehicleTypeCreate(VehicleTypeBase):
    pricing_tiers: list[PricingTierInput] = []


class VehicleTypeUpdate(BaseModel):
    """Partial update; tiers are replaced through their own endpoint"""

    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = None
    description: Optional[str] = None
    max_passengers: Optional[int] = Field(None, ge=1)
    max_luggage: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    features: Optional[list[str]] = None
    base_fare: Optional[float] = Field(None, ge=0)
    base_miles_included: Optional[float] = Field(None, ge=0)
    per_minute_rate: Optional[float] = Field(None, ge=0)
    minimum_fare: Optional[float] = Field(None, ge=0)
    service_fee_multiplier: Optional[float] = Field(None, gt=0)
    tax_enabled: Optional[bool] = None
    tax_rate: Optional[float] = Field(None, ge=0, le=100)
    hourly_enabled: Optional[bool] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    minimum_hours: Optional[int] = Field(None, ge=1, le=24)
    maximum_hours: Optional[int] = Field(None, ge=1, le=24)
    miles_included_per_hour: Optional[int] = Field(None, ge=0)
    excess_mile_rate: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None

    @field_validator("slug")
    @classmethod
    def validate_slug_format(cls, v):
        if v:
            return validate_slug(v)
        return v


class VehicleTypeResponse(VehicleTypeBase):
    id: int
    slug: str
    pricing_tiers: list[PricingTierResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExtraBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = None
    description: Optional[str] = None
    price: float = Field(0, ge=0)
    max_quantity: int = Field(1, ge=1)
    is_active: bool = True
    sort_order: int = 0
    apply_to_all_vehicles: bool = True

    @field_validator("slug")
    @classmethod
    def validate_slug_format(cls, v):
        if v:
            return validate_slug(v)
        return v


class ExtraCreate(ExtraBase):
    vehicle_type_ids: list[int] = []


class ExtraUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    max_quantity: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
    apply_to_all_vehicles: Optional[bool] = None
    vehicle_type_ids: Optional[list[int]] = None

    @field_validator("slug")
    @classmethod
    def validate_slug_format(cls, v):
        if v:
            return validate_slug(v)
        return v


class ExtraResponse(ExtraBase):
    id: int
    slug: str
    vehicle_type_ids: list[int] = []

    class Config:
        from_attributes = True
