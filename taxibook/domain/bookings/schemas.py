"""Booking domain schemas - Pydantic models for the booking wizard and admin API"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ...models import BOOKING_STATUSES, PAYMENT_STATUSES
from ...shared.validators import to_naive_utc, validate_email, validate_phone

# ============================================================================
# BOOKING WIZARD
# ============================================================================


class RouteRequest(BaseModel):
    pickup_address: str = Field(..., min_length=3, max_length=500)
    dropoff_address: str = Field(..., min_length=3, max_length=500)
    pickup_date: Optional[datetime] = None

    @field_validator("pickup_date")
    @classmethod
    def normalize_pickup_date(cls, v):
        return to_naive_utc(v)


class PriceRequest(BaseModel):
    booking_type: str = "one_way"
    pickup_address: str = Field(..., min_length=3, max_length=500)
    dropoff_address: Optional[str] = Field(None, max_length=500)
    pickup_date: Optional[datetime] = None
    duration_hours: Optional[int] = Field(None, ge=1, le=24)

    @field_validator("booking_type")
    @classmethod
    def validate_booking_type(cls, v):
        if v not in ("one_way", "hourly"):
            raise ValueError("booking_type must be one_way or hourly")
        return v


class BookingExtraItem(BaseModel):
    extra_id: int
    quantity: int = Field(1, ge=1)


class BookingCreate(BaseModel):
    """Schema for creating a booking from the wizard"""

    booking_type: str = "one_way"
    vehicle_type_id: int
    customer_first_name: str = Field(..., min_length=1, max_length=255)
    customer_last_name: str = Field(..., min_length=1, max_length=255)
    customer_email: str = Field(..., max_length=255)
    customer_phone: str = Field(..., max_length=20)
    pickup_address: str = Field(..., min_length=3, max_length=500)
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    dropoff_address: Optional[str] = Field(None, max_length=500)
    dropoff_lat: Optional[float] = Field(None, ge=-90, le=90)
    dropoff_lng: Optional[float] = Field(None, ge=-180, le=180)
    pickup_date: datetime
    duration_hours: Optional[int] = Field(None, ge=1, le=24)
    special_instructions: Optional[str] = Field(None, max_length=500)
    flight_number: Optional[str] = Field(None, max_length=50)
    is_airport_pickup: bool = False
    is_airport_dropoff: bool = False
    additional_fields: Optional[dict[str, Any]] = None
    payment_method_id: Optional[str] = None
    gratuity_amount: float = Field(0, ge=0)
    save_payment_method: bool = False
    extras: list[BookingExtraItem] = []

    @field_validator("booking_type")
    @classmethod
    def validate_booking_type(cls, v):
        if v not in ("one_way", "hourly"):
            raise ValueError("booking_type must be one_way or hourly")
        return v

    @field_validator("customer_email")
    @classmethod
    def validate_customer_email(cls, v):
        return validate_email(v)

    @field_validator("customer_phone")
    @classmethod
    def validate_customer_phone(cls, v):
        return validate_phone(v)

    @field_validator("pickup_date")
    @classmethod
    def normalize_pickup_date(cls, v):
        return to_naive_utc(v)


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str


class ProcessPaymentRequest(BaseModel):
    payment_method_id: str
    gratuity_amount: Optional[float] = Field(None, ge=0)
    save_payment_method: bool = False


class CompleteSetupRequest(BaseModel):
    setup_intent_id: str
    gratuity_amount: Optional[float] = Field(None, ge=0)


# ============================================================================
# RESPONSES
# ============================================================================


class VehicleTypeSummary(BaseModel):
    id: int
    display_name: str
    slug: str
    max_passengers: int
    max_luggage: int
    image_url: Optional[str] = None

    class Config:
        from_attributes = True


class BookingExtraResponse(BaseModel):
    id: int
    extra_id: Optional[int]
    name: str
    unit_price: float
    quantity: int
    total_price: float

    class Config:
        from_attributes = True


class TransactionResponse(BaseModel):
    id: int
    type: str
    amount: float
    status: str
    stripe_transaction_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExpenseResponse(BaseModel):
    id: int
    description: str
    amount: float
    category: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    """Booking as returned to the wizard"""

    id: int
    booking_number: str
    booking_type: str
    status: str
    payment_status: str
    customer_first_name: str
    customer_last_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    pickup_address: str
    dropoff_address: Optional[str] = None
    pickup_date: datetime
    duration_hours: Optional[int] = None
    estimated_distance: Optional[float] = None
    estimated_duration: Optional[float] = None
    estimated_fare: float
    extras_total: float
    final_fare: Optional[float] = None
    gratuity_amount: float
    total_amount: float
    flight_number: Optional[str] = None
    is_airport_pickup: bool
    is_airport_dropoff: bool
    special_instructions: Optional[str] = None
    additional_data: Optional[dict] = None
    vehicle_type: Optional[VehicleTypeSummary] = None
    extras: list[BookingExtraResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AdminBookingResponse(BookingResponse):
    """Booking with payment and audit fields for the admin API"""

    admin_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_refunded: float
    captured_amount: float
    refundable_amount: float
    stripe_payment_intent_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_payment_method_id: Optional[str] = None
    tip_link_token: Optional[str] = None
    tip_link_sent_at: Optional[datetime] = None
    gratuity_added_at: Optional[datetime] = None
    transactions: list[TransactionResponse] = []
    expenses: list[ExpenseResponse] = []
    updated_at: Optional[datetime] = None


class BookingCreatedResponse(BaseModel):
    booking: BookingResponse
    message: str
    payment_required: bool


class BookingListResponse(BaseModel):
    items: list[AdminBookingResponse]
    total: int
    page: int
    per_page: int
    pages: int


# ============================================================================
# ADMIN
# ============================================================================


class BookingUpdate(BaseModel):
    """Schema for admin edits; only provided fields change"""

    status: Optional[str] = None
    payment_status: Optional[str] = None
    customer_first_name: Optional[str] = Field(None, max_length=255)
    customer_last_name: Optional[str] = Field(None, max_length=255)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=20)
    pickup_address: Optional[str] = Field(None, max_length=500)
    dropoff_address: Optional[str] = Field(None, max_length=500)
    pickup_date: Optional[datetime] = None
    final_fare: Optional[float] = Field(None, ge=0)
    flight_number: Optional[str] = Field(None, max_length=50)
    special_instructions: Optional[str] = None
    admin_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in BOOKING_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(BOOKING_STATUSES)}")
        return v

    @field_validator("payment_status")
    @classmethod
    def validate_payment_status(cls, v):
        if v is not None and v not in PAYMENT_STATUSES:
            raise ValueError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")
        return v

    @field_validator("customer_email")
    @classmethod
    def validate_customer_email(cls, v):
        return validate_email(v)

    @field_validator("customer_phone")
    @classmethod
    def validate_customer_phone(cls, v):
        return validate_phone(v)

    @field_validator("pickup_date")
    @classmethod
    def normalize_pickup_date(cls, v):
        return to_naive_utc(v)


class CaptureRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)


class RefundRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ExpenseCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    amount: float = Field(..., gt=0)
    category: Optional[str] = None

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        if v is not None and v not in ("fuel", "tolls", "parking", "other"):
            raise ValueError("category must be fuel, tolls, parking or other")
        return v


class SendEmailRequest(BaseModel):
    template_slug: str
    recipient_email: Optional[str] = None

    @field_validator("recipient_email")
    @classmethod
    def validate_recipient(cls, v):
        return validate_email(v)
