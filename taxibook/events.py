"""
Booking and payment events plus the trigger keys email templates subscribe to
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

BOOKING_CREATED = "booking.created"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_MODIFIED = "booking.modified"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_COMPLETED = "booking.completed"
TRIP_STARTED = "driver.trip_started"
PAYMENT_AUTHORIZED = "payment.authorized"
PAYMENT_CAPTURED = "payment.captured"
PAYMENT_REFUNDED = "payment.refunded"
PAYMENT_FAILED = "payment.failed"
REMINDER_24H = "booking.reminder.24h"
REMINDER_2H = "booking.reminder.2h"
REMINDER_30M = "booking.reminder.30m"
REVIEW_24H = "trip.review.24h"
DAILY_SUMMARY = "admin.daily_summary"
WEEKLY_SUMMARY = "admin.weekly_summary"

# Trigger key -> human label, shown in the template editor
TRIGGER_EVENTS = {
    BOOKING_CREATED: "Booking created",
    BOOKING_CONFIRMED: "Booking confirmed",
    BOOKING_MODIFIED: "Booking modified",
    BOOKING_CANCELLED: "Booking cancelled",
    BOOKING_COMPLETED: "Trip completed",
    TRIP_STARTED: "Trip started",
    PAYMENT_AUTHORIZED: "Payment authorized",
    PAYMENT_CAPTURED: "Payment captured",
    PAYMENT_REFUNDED: "Payment refunded",
    PAYMENT_FAILED: "Payment failed",
    REMINDER_24H: "24 hours before pickup",
    REMINDER_2H: "2 hours before pickup",
    REMINDER_30M: "30 minutes before pickup",
    REVIEW_24H: "24 hours after trip",
    DAILY_SUMMARY: "Daily admin summary",
    WEEKLY_SUMMARY: "Weekly admin summary",
}

# Minutes before pickup for each reminder trigger
REMINDER_OFFSETS = {
    REMINDER_24H: 1440,
    REMINDER_2H: 120,
    REMINDER_30M: 30,
}

FIELD_LABELS = {
    "pickup_date": "Pickup date",
    "pickup_address": "Pickup address",
    "dropoff_address": "Drop-off address",
}


@dataclass
class BookingEvent:
    """A booking lifecycle or payment event waiting to be turned into emails"""

    trigger: str
    booking_id: int
    changes: dict = field(default_factory=dict)
    cancellation_reason: Optional[str] = None
    transaction_id: Optional[str] = None
    amount: Optional[float] = None
    occurred_at: datetime = field(default_factory=datetime.utcnow)
    refund_reason: Optional[str] = None

    def template_variables(self) -> dict:
        variables = {}
        if self.trigger in (PAYMENT_AUTHORIZED, PAYMENT_CAPTURED, PAYMENT_FAILED):
            variables["transaction_id"] = self.transaction_id or ""
            variables["transaction_amount"] = format_money(self.amount or 0)
            variables["transaction_date"] = self.occurred_at.strftime("%B %d, %Y %I:%M %p")
        if self.trigger == PAYMENT_REFUNDED:
            variables["refund_amount"] = format_money(self.amount or 0)
            variables["refund_reason"] = self.refund_reason or "Requested by customer"
            variables["transaction_id"] = self.transaction_id or ""
        if self.trigger == BOOKING_CANCELLED:
            variables["cancellation_reason"] = self.cancellation_reason or "Not specified"
        if self.trigger == BOOKING_MODIFIED:
            variables["changes_summary"] = changes_summary(self.changes)
        return variables


def format_money(amount: float) -> str:
    return f"${amount:,.2f}"


def changes_summary(changes: dict) -> str:
    lines = []
    for field_name, value in changes.items():
        label = FIELD_LABELS.get(field_name, field_name.replace("_", " ").capitalize())
        if isinstance(value, datetime):
            value = value.strftime("%B %d, %Y %I:%M %p")
        lines.append(f"{label}: {value}")
    return "\n".join(lines)
