"""
Tests for the booking lifecycle observer and event-triggered emails.
"""
from datetime import datetime, timedelta

import pytest

from taxibook import events
from taxibook.email_service import EmailSendError
from taxibook.events import BookingEvent
from taxibook.models import Booking, EmailLog
from taxibook.services.booking_events import (
    COMMITTED_KEY,
    dispatch_booking_events,
    queue_event,
)
from taxibook.services.settings_service import SettingsService


def committed_triggers(db_session):
    return [e.trigger for e in db_session.info.get(COMMITTED_KEY, [])]


# =============================================================================
# Observer
# =============================================================================


class TestLifecycleEvents:
    def test_new_pending_booking_fires_created(self, db_session, make_booking):
        booking = make_booking(status="pending")
        # make_booking discards its own events; insert another the raw way
        other = Booking(
            vehicle_type_id=booking.vehicle_type_id,
            customer_first_name="Grace",
            customer_last_name="Hopper",
            customer_email="grace@example.com",
            pickup_address="2 Elm St",
            pickup_date=datetime.utcnow() + timedelta(days=3),
            status="pending",
            payment_status="pending",
        )
        db_session.add(other)
        db_session.commit()

        assert committed_triggers(db_session) == [events.BOOKING_CREATED]

    def test_status_change_fires_status_event(self, db_session, make_booking):
        booking = make_booking(status="pending")
        booking.status = "confirmed"
        db_session.commit()
        assert committed_triggers(db_session) == [events.BOOKING_CONFIRMED]

    def test_cancellation_carries_reason_and_stamps_time(self, db_session, make_booking):
        booking = make_booking()
        booking.status = "cancelled"
        booking.cancellation_reason = "Flight cancelled"
        db_session.commit()

        pending = db_session.info[COMMITTED_KEY]
        assert pending[0].trigger == events.BOOKING_CANCELLED
        assert pending[0].cancellation_reason == "Flight cancelled"
        assert booking.cancelled_at is not None

    def test_completion_stamps_completed_at(self, db_session, make_booking):
        booking = make_booking()
        booking.status = "completed"
        db_session.commit()
        assert committed_triggers(db_session) == [events.BOOKING_COMPLETED]
        assert booking.completed_at is not None

    def test_watched_field_change_fires_modified(self, db_session, make_booking):
        booking = make_booking()
        booking.pickup_address = "99 New Road"
        db_session.commit()

        pending = db_session.info[COMMITTED_KEY]
        assert [e.trigger for e in pending] == [events.BOOKING_MODIFIED]
        assert pending[0].changes == {"pickup_address": "99 New Road"}

    def test_unwatched_field_change_is_silent(self, db_session, make_booking):
        booking = make_booking()
        booking.admin_notes = "VIP"
        db_session.commit()
        assert committed_triggers(db_session) == []

    def test_rollback_discards_events(self, db_session, make_booking):
        booking = make_booking()
        booking.status = "cancelled"
        db_session.flush()
        db_session.rollback()
        assert committed_triggers(db_session) == []


# =============================================================================
# Triggered emails
# =============================================================================


class TestTriggeredEmails:
    @pytest.mark.asyncio
    async def test_confirmation_email_sent_and_logged(
        self, db_session, make_booking, make_template, sent_emails
    ):
        make_template("booking-confirmation", [events.BOOKING_CONFIRMED])
        booking = make_booking(status="pending")
        booking.status = "confirmed"
        db_session.commit()

        sent = await dispatch_booking_events(db_session)

        assert sent == 1
        sent_emails.assert_awaited_once()
        assert sent_emails.await_args.kwargs["to"] == "ada@example.com"
        assert sent_emails.await_args.kwargs["subject"] == f"Booking {booking.booking_number}"
        log = db_session.query(EmailLog).one()
        assert log.status == "sent"
        assert log.message_id == "msg_test"
        assert log.booking_id == booking.id

    @pytest.mark.asyncio
    async def test_inactive_and_unrelated_templates_ignored(
        self, db_session, make_booking, make_template, sent_emails
    ):
        make_template("confirmation-off", [events.BOOKING_CONFIRMED], is_active=False)
        make_template("cancelled-only", [events.BOOKING_CANCELLED])
        booking = make_booking()

        sent = await dispatch_booking_events(
            db_session, [BookingEvent(trigger=events.BOOKING_CONFIRMED, booking_id=booking.id)]
        )

        assert sent == 0
        sent_emails.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timed_templates_wait_for_scheduler(
        self, db_session, make_booking, make_template, sent_emails
    ):
        make_template(
            "confirmed-later",
            [events.BOOKING_CONFIRMED],
            send_timing_type="after_booking",
            send_timing_value=1,
        )
        booking = make_booking()

        sent = await dispatch_booking_events(
            db_session, [BookingEvent(trigger=events.BOOKING_CONFIRMED, booking_id=booking.id)]
        )
        assert sent == 0

    @pytest.mark.asyncio
    async def test_payment_event_variables_render(
        self, db_session, make_booking, make_template, sent_emails
    ):
        make_template(
            "payment-receipt",
            [events.PAYMENT_CAPTURED],
            subject="Receipt {{transaction_amount}}",
            body="<p>Ref {{transaction_id}}</p>",
        )
        booking = make_booking()
        queue_event(
            db_session,
            BookingEvent(
                trigger=events.PAYMENT_CAPTURED,
                booking_id=booking.id,
                transaction_id="pi_123",
                amount=1234.5,
            ),
        )

        assert await dispatch_booking_events(db_session) == 1
        log = db_session.query(EmailLog).one()
        assert log.subject == "Receipt $1,234.50"
        assert "pi_123" in log.body

    @pytest.mark.asyncio
    async def test_admin_templates_reach_admin_email(
        self, db_session, make_booking, make_template, sent_emails
    ):
        SettingsService(db_session).set("admin_email", "ops@example.com")
        make_template(
            "admin-new-booking",
            [events.BOOKING_CREATED],
            send_to_customer=False,
            send_to_admin=True,
        )
        booking = make_booking(status="pending")

        await dispatch_booking_events(
            db_session, [BookingEvent(trigger=events.BOOKING_CREATED, booking_id=booking.id)]
        )

        assert sent_emails.await_args.kwargs["to"] == "ops@example.com"

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged_not_raised(
        self, db_session, make_booking, make_template, sent_emails
    ):
        sent_emails.side_effect = EmailSendError("Resend is down")
        make_template("booking-confirmation", [events.BOOKING_CONFIRMED])
        booking = make_booking()

        sent = await dispatch_booking_events(
            db_session, [BookingEvent(trigger=events.BOOKING_CONFIRMED, booking_id=booking.id)]
        )

        assert sent == 0
        log = db_session.query(EmailLog).one()
        assert log.status == "failed"
        assert "Resend is down" in log.error_message

    @pytest.mark.asyncio
    async def test_delayed_template_sends_now_without_redis(
        self, db_session, make_booking, make_template, sent_emails
    ):
        make_template("booking-confirmation", [events.BOOKING_CONFIRMED], delay_minutes=30)
        booking = make_booking()

        sent = await dispatch_booking_events(
            db_session, [BookingEvent(trigger=events.BOOKING_CONFIRMED, booking_id=booking.id)]
        )

        assert sent == 1
        sent_emails.assert_awaited_once()
