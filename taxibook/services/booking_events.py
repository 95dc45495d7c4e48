"""
Booking lifecycle observer
Diffs flushed bookings against their attribute history, collects the
matching BookingEvents on the session and hands them to the email trigger
engine once the transaction has committed.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from .. import events
from ..events import BookingEvent
from ..models import Booking

logger = logging.getLogger(__name__)

PENDING_KEY = "booking_events"
COMMITTED_KEY = "booking_events_committed"

STATUS_EVENTS = {
    "confirmed": events.BOOKING_CONFIRMED,
    "in_progress": events.TRIP_STARTED,
    "completed": events.BOOKING_COMPLETED,
    "cancelled": events.BOOKING_CANCELLED,
}
WATCHED_FIELDS = ("pickup_date", "pickup_address", "dropoff_address")


def _previous_value(booking: Booking, attr: str):
    """Return (changed, old_value) for a booking attribute in the current unit of work"""
    history = inspect(booking).attrs[attr].history
    if not history.has_changes():
        return False, None
    old = history.deleted[0] if history.deleted else None
    new = getattr(booking, attr)
    return old != new, old


def _bookings(session: Session, collection) -> list[Booking]:
    return [obj for obj in collection if isinstance(obj, Booking)]


@event.listens_for(Session, "before_flush")
def stamp_status_timestamps(session, _flush_context, _instances):
    for booking in _bookings(session, list(session.new) + list(session.dirty)):
        changed, old_status = _previous_value(booking, "status")
        if not changed:
            continue
        if booking.status == "cancelled":
            booking.cancelled_at = booking.cancelled_at or datetime.utcnow()
        elif old_status == "cancelled":
            booking.cancelled_at = None
        if booking.status == "completed" and not booking.completed_at:
            booking.completed_at = datetime.utcnow()


@event.listens_for(Session, "after_flush")
def collect_booking_events(session, _flush_context):
    pending = session.info.setdefault(PENDING_KEY, [])

    for booking in _bookings(session, session.new):
        if booking.status == "pending":
            pending.append(BookingEvent(trigger=events.BOOKING_CREATED, booking_id=booking.id))

    for booking in _bookings(session, session.dirty):
        if not session.is_modified(booking):
            continue
        status_changed, _ = _previous_value(booking, "status")
        if status_changed:
            trigger = STATUS_EVENTS.get(booking.status)
            if trigger:
                pending.append(
                    BookingEvent(
                        trigger=trigger,
                        booking_id=booking.id,
                        cancellation_reason=booking.cancellation_reason,
                    )
                )
            continue

        changes = {}
        for field_name in WATCHED_FIELDS:
            changed, _ = _previous_value(booking, field_name)
            if changed:
                changes[field_name] = getattr(booking, field_name)
        if changes:
            pending.append(
                BookingEvent(trigger=events.BOOKING_MODIFIED, booking_id=booking.id, changes=changes)
            )


@event.listens_for(Session, "after_commit")
def promote_booking_events(session):
    pending = session.info.pop(PENDING_KEY, [])
    if pending:
        session.info.setdefault(COMMITTED_KEY, []).extend(pending)


@event.listens_for(Session, "after_rollback")
def discard_booking_events(session):
    dropped = session.info.pop(PENDING_KEY, [])
    if dropped:
        logger.debug(f"Discarded {len(dropped)} booking events after rollback")


def queue_event(db: Session, booking_event: BookingEvent):
    """Queue an explicit event (payments) alongside the lifecycle ones"""
    db.info.setdefault(COMMITTED_KEY, []).append(booking_event)


async def dispatch_booking_events(db: Session, extra: Optional[list[BookingEvent]] = None) -> int:
    """
    Send emails for every committed event on this session.
    Returns the number of emails sent or queued.
    """
    from .email_triggers import EmailTriggerService

    pending = db.info.pop(COMMITTED_KEY, []) + list(extra or [])
    if not pending:
        return 0

    triggers = EmailTriggerService(db)
    sent = 0
    for booking_event in pending:
        sent += await triggers.handle_event(booking_event)
    return sent
