import secrets
import string
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import column_property, relationship

from .database import Base

BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled", "failed")
PAYMENT_STATUSES = (
    "pending",
    "authorized",
    "captured",
    "partially_refunded",
    "refunded",
    "failed",
    "cancelled",
)
TRANSACTION_TYPES = ("authorization", "capture", "payment", "void", "refund", "partial_refund", "tip")
SEND_TIMING_TYPES = ("immediate", "before_pickup", "after_pickup", "after_booking", "after_completion")
SEND_TIMING_UNITS = {"minutes": 1, "hours": 60, "days": 1440}


def generate_booking_number() -> str:
    """TB + 8 uppercase alphanumerics, e.g. TB7K2M9QXA"""
    alphabet = string.ascii_uppercase + string.digits
    return "TB" + "".join(secrets.choice(alphabet) for _ in range(8))


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    hashed_password = Column(String(255), nullable=True)  # Admin accounts only
    is_admin = Column(Boolean, default=False, nullable=False)
    email_verified_at = Column(DateTime, nullable=True)
    # Booking wizard email verification
    verification_code = Column(String(10), nullable=True)
    verification_expires_at = Column(DateTime, nullable=True)
    verification_attempts = Column(Integer, default=0, nullable=False)
    verification_sent_at = Column(DateTime, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bookings = relationship("Booking", back_populates="user")


extra_vehicle_types = Table(
    "extra_vehicle_types",
    Base.metadata,
    Column("extra_id", Integer, ForeignKey("extras.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "vehicle_type_id",
        Integer,
        ForeignKey("vehicle_types.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class VehicleType(Base):
    __tablename__ = "vehicle_types"

    id = Column(Integer, primary_key=True, index=True)
    display_name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    max_passengers = Column(Integer, default=4, nullable=False)
    max_luggage = Column(Integer, default=2, nullable=False)
    image_url = Column(String(500), nullable=True)
    features = Column(JSON, default=list, nullable=True)

    # Distance pricing
    base_fare = Column(Float, default=0.0, nullable=False)
    base_miles_included = Column(Float, default=0.0, nullable=False)
    per_minute_rate = Column(Float, default=0.0, nullable=False)
    minimum_fare = Column(Float, default=0.0, nullable=False)
    service_fee_multiplier = Column(Float, default=1.0, nullable=False)
    tax_enabled = Column(Boolean, default=False, nullable=False)
    tax_rate = Column(Float, default=0.0, nullable=False)  # percent

    # Hourly pricing
    hourly_enabled = Column(Boolean, default=False, nullable=False)
    hourly_rate = Column(Float, nullable=True)
    minimum_hours = Column(Integer, default=2, nullable=False)
    maximum_hours = Column(Integer, default=12, nullable=False)
    miles_included_per_hour = Column(Integer, default=20, nullable=False)
    excess_mile_rate = Column(Float, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pricing_tiers = relationship(
        "VehiclePricingTier",
        back_populates="vehicle_type",
        cascade="all, delete-orphan",
        order_by="VehiclePricingTier.from_mile",
    )
    bookings = relationship("Booking", back_populates="vehicle_type")
    extras = relationship("Extra", secondary=extra_vehicle_types, back_populates="vehicle_types")

    def allows_hours(self, hours: int) -> bool:
        return bool(self.hourly_enabled) and self.minimum_hours <= hours <= self.maximum_hours


class VehiclePricingTier(Base):
    __tablename__ = "vehicle_pricing_tiers"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_type_id = Column(
        Integer, ForeignKey("vehicle_types.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_mile = Column(Float, nullable=False)
    to_mile = Column(Float, nullable=True)  # NULL = no upper bound
    per_mile_rate = Column(Float, nullable=False)

    vehicle_type = relationship("VehicleType", back_populates="pricing_tiers")


class Extra(Base):
    __tablename__ = "extras"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, default=0.0, nullable=False)
    max_quantity = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    apply_to_all_vehicles = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vehicle_types = relationship(
        "VehicleType", secondary=extra_vehicle_types, back_populates="extras"
    )

    @property
    def vehicle_type_ids(self) -> list[int]:
        return [vt.id for vt in self.vehicle_types]

    def is_available_for(self, vehicle_type_id: int) -> bool:
        if self.apply_to_all_vehicles:
            return True
        return any(vt.id == vehicle_type_id for vt in self.vehicle_types)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(
        String(20), unique=True, index=True, nullable=False, default=generate_booking_number
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    vehicle_type_id = Column(Integer, ForeignKey("vehicle_types.id"), nullable=False, index=True)

    booking_type = Column(String(20), default="one_way", nullable=False)  # one_way, hourly
    duration_hours = Column(Integer, nullable=True)

    # Watched columns load their previous value on change so lifecycle events can diff them
    pickup_address = column_property(Column(String(500), nullable=False), active_history=True)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    dropoff_address = column_property(Column(String(500), nullable=True), active_history=True)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)
    pickup_date = column_property(Column(DateTime, nullable=False, index=True), active_history=True)

    customer_first_name = Column(String(255), nullable=False)
    customer_last_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(50), nullable=True)

    estimated_distance = Column(Float, nullable=True)  # miles
    estimated_duration = Column(Float, nullable=True)  # minutes
    estimated_fare = Column(Float, default=0.0, nullable=False)
    route_polyline = Column(Text, nullable=True)
    extras_total = Column(Float, default=0.0, nullable=False)
    final_fare = Column(Float, nullable=True)
    gratuity_percentage = Column(Float, default=0.0, nullable=False)
    gratuity_amount = Column(Float, default=0.0, nullable=False)
    gratuity_added_at = Column(DateTime, nullable=True)
    total_refunded = Column(Float, default=0.0, nullable=False)

    flight_number = Column(String(50), nullable=True)
    is_airport_pickup = Column(Boolean, default=False, nullable=False)
    is_airport_dropoff = Column(Boolean, default=False, nullable=False)
    special_instructions = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    additional_data = Column(JSON, default=dict, nullable=True)  # Custom form field values

    status = column_property(
        Column(String(20), default="pending", nullable=False, index=True), active_history=True
    )
    payment_status = Column(String(30), default="pending", nullable=False, index=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_payment_method_id = Column(String(255), nullable=True)
    stripe_setup_intent_id = Column(String(255), nullable=True)
    save_payment_method = Column(Boolean, default=False, nullable=False)

    tip_link_token = Column(String(64), unique=True, nullable=True, index=True)
    tip_link_sent_at = Column(DateTime, nullable=True)
    qr_code_data = Column(Text, nullable=True)  # base64 PNG

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="bookings")
    vehicle_type = relationship("VehicleType", back_populates="bookings")
    extras = relationship("BookingExtra", back_populates="booking", cascade="all, delete-orphan")
    expenses = relationship(
        "BookingExpense", back_populates="booking", cascade="all, delete-orphan"
    )
    transactions = relationship(
        "Transaction",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="Transaction.created_at",
    )
    email_logs = relationship("EmailLog", back_populates="booking")

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}".strip()

    @property
    def total_amount(self) -> float:
        """Amount charged to the customer: fare + extras + gratuity"""
        fare = self.final_fare if self.final_fare is not None else self.estimated_fare
        return round((fare or 0) + (self.extras_total or 0) + (self.gratuity_amount or 0), 2)

    @property
    def captured_amount(self) -> float:
        return round(
            sum(t.amount for t in self.transactions if t.type in ("capture", "payment") and t.status == "succeeded"),
            2,
        )

    @property
    def refundable_amount(self) -> float:
        return round(max(0.0, self.captured_amount - (self.total_refunded or 0)), 2)

    def can_be_authorized(self, now: Optional[datetime] = None) -> bool:
        """Card authorizations expire after 7 days, so only authorize close to pickup"""
        now = now or datetime.utcnow()
        return (
            self.status in ("pending", "confirmed")
            and self.payment_status == "pending"
            and self.pickup_date <= now + timedelta(days=7)
        )

    def can_be_tipped(self) -> bool:
        return self.status == "completed" and not self.gratuity_added_at


class BookingExtra(Base):
    __tablename__ = "booking_extras"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    extra_id = Column(Integer, ForeignKey("extras.id", ondelete="SET NULL"), nullable=True)
    # Snapshot so later price edits don't rewrite history
    name = Column(String(255), nullable=False)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    total_price = Column(Float, nullable=False)

    booking = relationship("Booking", back_populates="extras")


class BookingExpense(Base):
    __tablename__ = "booking_expenses"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    description = Column(String(255), nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String(50), nullable=True)  # fuel, tolls, parking, other
    created_at = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="expenses")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(30), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(String(20), default="succeeded", nullable=False)  # succeeded, failed, pending
    stripe_transaction_id = Column(String(255), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="transactions")


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(50), default="customer", nullable=False)  # customer, admin, driver
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    cc_emails = Column(String(1000), nullable=True)  # comma separated
    bcc_emails = Column(String(1000), nullable=True)
    attach_receipt = Column(Boolean, default=False, nullable=False)
    attach_booking_details = Column(Boolean, default=False, nullable=False)
    delay_minutes = Column(Integer, default=0, nullable=False)
    trigger_events = Column(JSON, default=list, nullable=True)
    send_timing_type = Column(String(30), default="immediate", nullable=False)
    send_timing_value = Column(Integer, default=0, nullable=False)
    send_timing_unit = Column(String(10), default="hours", nullable=False)
    send_to_customer = Column(Boolean, default=True, nullable=False)
    send_to_admin = Column(Boolean, default=False, nullable=False)
    send_to_driver = Column(Boolean, default=False, nullable=False)
    priority = Column(Integer, default=5, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def timing_in_minutes(self) -> int:
        return (self.send_timing_value or 0) * SEND_TIMING_UNITS.get(self.send_timing_unit, 60)

    @property
    def is_immediate(self) -> bool:
        return self.send_timing_type == "immediate"

    def has_trigger(self, trigger: str) -> bool:
        return trigger in (self.trigger_events or [])

    @staticmethod
    def split_emails(value: Optional[str]) -> list[str]:
        if not value:
            return []
        return [e.strip() for e in value.split(",") if e.strip()]


class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True
    )
    template_slug = Column(String(255), nullable=True, index=True)
    recipient_email = Column(String(255), nullable=False)
    cc_emails = Column(String(1000), nullable=True)
    bcc_emails = Column(String(1000), nullable=True)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=True)
    attachments = Column(JSON, default=list, nullable=True)  # attachment file names
    status = Column(String(20), default="pending", nullable=False, index=True)
    message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    opened_at = Column(DateTime, nullable=True)
    open_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking", back_populates="email_logs")

    def mark_sent(self, message_id: Optional[str] = None):
        self.status = "sent"
        self.message_id = message_id
        self.sent_at = datetime.utcnow()
        self.error_message = None

    def mark_failed(self, error: str):
        self.status = "failed"
        self.error_message = error[:2000]


class Setting(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(255), unique=True, index=True, nullable=False)
    value = Column(Text, nullable=True)
    type = Column(String(20), default="string", nullable=False)  # string, integer, boolean, json
    group = Column(String(50), default="general", nullable=False)
    display_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BookingFormField(Base):
    __tablename__ = "booking_form_fields"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, index=True, nullable=False)
    label = Column(String(255), nullable=False)
    type = Column(String(30), default="text", nullable=False)
    placeholder = Column(String(255), nullable=True)
    help_text = Column(String(500), nullable=True)
    required = Column(Boolean, default=False, nullable=False)
    options = Column(JSON, default=list, nullable=True)
    validation_rules = Column(JSON, default=list, nullable=True)
    # [{"field": "is_airport_pickup", "operator": "==", "value": true}]
    conditions = Column(JSON, default=list, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def should_display(self, values: dict) -> bool:
        """All conditions must hold for the field to be shown"""
        for condition in self.conditions or []:
            actual = values.get(condition.get("field"))
            expected = condition.get("value")
            operator = condition.get("operator", "==")
            if operator == "==":
                ok = actual == expected
            elif operator == "!=":
                ok = actual != expected
            elif operator == "contains":
                ok = actual is not None and str(expected) in str(actual)
            elif operator == "in":
                ok = actual in (expected or [])
            else:
                ok = False
            if not ok:
                return False
        return True
