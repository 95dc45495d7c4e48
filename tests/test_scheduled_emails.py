"""
Tests for the time-based email passes: reminders, reviews, summaries and
templates timed against pickup, booking creation or completion.
"""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from taxibook import events
from taxibook.email_service import EmailSendError
from taxibook.models import Booking, EmailLog
from taxibook.services.scheduled_emails import ScheduledEmailService
from taxibook.services.settings_service import SettingsService

# A Monday inside the 9am summary window
SUMMARY_MONDAY = datetime(2024, 1, 1, 9, 2)


@pytest.fixture
def now():
    return datetime.utcnow().replace(microsecond=0)


@pytest.fixture
def service(db_session):
    return ScheduledEmailService(db_session)


@pytest.fixture
def admin_email(db_session):
    SettingsService(db_session).set("admin_email", "ops@example.com")
    return "ops@example.com"


# =============================================================================
# Pickup reminders
# =============================================================================


class TestPickupReminders:
    async def test_reminder_sent_once_inside_window(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("reminder-24h", [events.REMINDER_24H])
        make_booking(pickup_date=now + timedelta(hours=24, minutes=2))

        first = await service.send_scheduled(now)
        second = await service.send_scheduled(now + timedelta(minutes=5))

        assert first["reminders"] == 1
        assert second["reminders"] == 0
        sent_emails.assert_awaited_once()

    async def test_each_offset_has_its_own_template(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("reminder-24h", [events.REMINDER_24H])
        make_template("reminder-2h", [events.REMINDER_2H])
        make_booking(pickup_date=now + timedelta(hours=2))

        stats = await service.send_scheduled(now)

        assert stats["reminders"] == 1
        assert sent_emails.await_args.kwargs["to"] == "ada@example.com"
        assert [log.template_slug for log in service.db.query(EmailLog).all()] == ["reminder-2h"]

    async def test_pickups_outside_window_are_ignored(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("reminder-24h", [events.REMINDER_24H])
        make_booking(pickup_date=now + timedelta(hours=24, minutes=20))

        stats = await service.send_scheduled(now)
        assert stats["reminders"] == 0
        sent_emails.assert_not_awaited()

    async def test_only_confirmed_bookings_get_reminders(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("reminder-30m", [events.REMINDER_30M])
        make_booking(pickup_date=now + timedelta(minutes=30), status="pending")
        make_booking(pickup_date=now + timedelta(minutes=30), status="cancelled")

        stats = await service.send_scheduled(now)
        assert stats["reminders"] == 0

    async def test_dry_run_counts_without_sending(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("reminder-24h", [events.REMINDER_24H])
        make_booking(pickup_date=now + timedelta(hours=24))

        stats = await service.send_scheduled(now, dry_run=True)

        assert stats["reminders"] == 1
        sent_emails.assert_not_awaited()
        assert service.db.query(EmailLog).count() == 0

    async def test_failed_send_can_be_retried(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("reminder-24h", [events.REMINDER_24H])
        make_booking(pickup_date=now + timedelta(hours=24))
        sent_emails.side_effect = EmailSendError("timeout")

        assert (await service.send_scheduled(now))["reminders"] == 0

        sent_emails.side_effect = None
        assert (await service.send_scheduled(now + timedelta(minutes=1)))["reminders"] == 1

    async def test_delayed_reminder_queued_once(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("reminder-24h", [events.REMINDER_24H], delay_minutes=10)
        make_booking(pickup_date=now + timedelta(hours=24, minutes=2))

        with patch.object(
            service.notifications, "queue_delayed", AsyncMock(return_value=True)
        ) as queue_delayed:
            first = await service.send_scheduled(now)
            second = await service.send_scheduled(now + timedelta(minutes=5))

        assert first["reminders"] == 1
        assert second["reminders"] == 0
        assert queue_delayed.await_count == 1
        logs = service.db.query(EmailLog).all()
        assert [(log.template_slug, log.status) for log in logs] == [("reminder-24h", "pending")]
        sent_emails.assert_not_awaited()

    async def test_reminder_template_with_send_timing_still_fires(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template(
            "reminder-24h",
            [events.REMINDER_24H],
            send_timing_type="before_pickup",
            send_timing_value=24,
            send_timing_unit="hours",
        )
        make_booking(pickup_date=now + timedelta(hours=24))

        stats = await service.send_scheduled(now)
        assert stats["reminders"] == 1

    async def test_deleted_bookings_are_skipped(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("reminder-24h", [events.REMINDER_24H])
        make_template("driver-details", send_timing_type="before_pickup", send_timing_value=2)
        make_booking(pickup_date=now + timedelta(hours=24), deleted_at=now)
        make_booking(pickup_date=now + timedelta(hours=2), deleted_at=now)

        triggered = await service.send_scheduled(now)
        timed = await service.process_scheduled(now)

        assert triggered["reminders"] == 0
        assert timed == {"processed": 0, "skipped": 0, "failed": 0}
        sent_emails.assert_not_awaited()


# =============================================================================
# Review requests
# =============================================================================


class TestReviewRequests:
    async def test_review_request_a_day_after_completion(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("review-request", [events.REVIEW_24H])
        make_booking(
            status="completed",
            pickup_date=now - timedelta(hours=26),
            completed_at=now - timedelta(hours=24, minutes=10),
        )

        stats = await service.send_scheduled(now)
        assert stats["reviews"] == 1

    async def test_recently_completed_trip_waits(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("review-request", [events.REVIEW_24H])
        make_booking(
            status="completed",
            pickup_date=now - timedelta(hours=3),
            completed_at=now - timedelta(hours=2),
        )

        stats = await service.send_scheduled(now)
        assert stats["reviews"] == 0


# =============================================================================
# Admin summaries
# =============================================================================


class TestSummaries:
    async def test_no_summary_outside_window(self, service, admin_email, make_template, sent_emails):
        make_template(
            "daily-summary", [events.DAILY_SUMMARY], send_to_customer=False, send_to_admin=True
        )

        stats = await service.send_scheduled(SUMMARY_MONDAY.replace(hour=10))
        assert stats["daily_summary"] == 0
        sent_emails.assert_not_awaited()

    async def test_daily_summary_sent_once_per_day(
        self, service, admin_email, make_template, sent_emails
    ):
        make_template(
            "daily-summary",
            [events.DAILY_SUMMARY],
            send_to_customer=False,
            send_to_admin=True,
            subject="Summary for {{report_date}}",
        )

        first = await service.send_scheduled(SUMMARY_MONDAY)
        second = await service.send_scheduled(SUMMARY_MONDAY + timedelta(minutes=1))

        assert first["daily_summary"] == 1
        assert second["daily_summary"] == 0
        assert sent_emails.await_args.kwargs["to"] == admin_email
        assert sent_emails.await_args.kwargs["subject"] == "Summary for December 31, 2023"

    async def test_weekly_summary_only_on_monday(
        self, service, admin_email, make_template, sent_emails
    ):
        make_template(
            "weekly-summary", [events.WEEKLY_SUMMARY], send_to_customer=False, send_to_admin=True
        )

        tuesday = await service.send_scheduled(SUMMARY_MONDAY + timedelta(days=1))
        monday = await service.send_scheduled(SUMMARY_MONDAY)

        assert tuesday["weekly_summary"] == 0
        assert monday["weekly_summary"] == 1

    def test_summary_stats_use_completion_and_cancellation_times(
        self, service, now, make_booking
    ):
        today = now.replace(hour=0, minute=0, second=0)
        yesterday = today - timedelta(days=1)
        make_booking(
            status="completed",
            final_fare=120.0,
            created_at=now - timedelta(days=7),
            completed_at=yesterday + timedelta(hours=10),
        )
        make_booking(
            status="completed",
            final_fare=60.0,
            created_at=yesterday + timedelta(hours=1),
            completed_at=yesterday + timedelta(hours=20),
        )
        make_booking(
            status="completed",
            final_fare=500.0,
            created_at=yesterday + timedelta(hours=2),
            completed_at=today + timedelta(hours=1),
        )
        make_booking(
            status="cancelled",
            created_at=now - timedelta(days=5),
            cancelled_at=yesterday + timedelta(hours=8),
        )

        stats = service.summary_stats(yesterday, today)

        assert stats == {
            "total_bookings": 2,
            "completed_trips": 2,
            "total_revenue": 180.0,
            "cancelled_bookings": 1,
            "average_fare": 90.0,
        }

    async def test_daily_summary_reports_trips_booked_earlier(
        self, service, admin_email, make_booking, make_template, sent_emails
    ):
        make_template(
            "daily-summary",
            [events.DAILY_SUMMARY],
            send_to_customer=False,
            send_to_admin=True,
            body="<p>{{completed_trips}} trips, {{total_revenue}}</p>",
        )
        make_booking(
            status="completed",
            final_fare=120.0,
            created_at=datetime(2023, 12, 20, 14, 0),
            completed_at=datetime(2023, 12, 31, 15, 0),
        )

        assert await service.send_daily_summary(SUMMARY_MONDAY) == 1
        assert "1 trips, $120.00" in sent_emails.await_args.kwargs["mjml_content"]


# =============================================================================
# Timed templates
# =============================================================================


class TestTimedTemplates:
    async def test_before_pickup_template(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template(
            "driver-details",
            send_timing_type="before_pickup",
            send_timing_value=2,
            send_timing_unit="hours",
        )
        make_booking(pickup_date=now + timedelta(hours=2, minutes=5))

        first = await service.process_scheduled(now)
        second = await service.process_scheduled(now + timedelta(minutes=15))

        assert first == {"processed": 1, "skipped": 0, "failed": 0}
        assert second["processed"] == 0
        assert second["skipped"] == 1

    async def test_after_booking_template(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template(
            "thanks-for-booking",
            send_timing_type="after_booking",
            send_timing_value=30,
            send_timing_unit="minutes",
        )
        make_booking(created_at=now - timedelta(minutes=30))
        make_booking(created_at=now - timedelta(hours=5))

        stats = await service.process_scheduled(now)
        assert stats["processed"] == 1

    async def test_after_pickup_template(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template(
            "hope-you-arrived",
            send_timing_type="after_pickup",
            send_timing_value=1,
            send_timing_unit="hours",
        )
        on_time = make_booking(pickup_date=now - timedelta(minutes=55))
        make_booking(pickup_date=now - timedelta(hours=3))

        stats = await service.process_scheduled(now)

        assert stats["processed"] == 1
        assert [log.booking_id for log in service.db.query(EmailLog).all()] == [on_time.id]

    async def test_after_completion_template(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template(
            "thanks-for-riding",
            send_timing_type="after_completion",
            send_timing_value=2,
            send_timing_unit="hours",
        )
        make_booking(status="completed", completed_at=now - timedelta(hours=2, minutes=5))
        make_booking(status="completed", completed_at=now - timedelta(hours=6))
        make_booking(pickup_date=now - timedelta(hours=2))

        stats = await service.process_scheduled(now)
        assert stats["processed"] == 1

    async def test_after_completion_falls_back_to_updated_at(
        self, service, db_session, now, make_booking, make_template, sent_emails
    ):
        make_template(
            "thanks-for-riding",
            send_timing_type="after_completion",
            send_timing_value=2,
            send_timing_unit="hours",
        )
        booking = make_booking(status="completed")
        db_session.query(Booking).filter(Booking.id == booking.id).update(
            {"completed_at": None, "updated_at": now - timedelta(hours=2)},
            synchronize_session=False,
        )
        db_session.commit()

        stats = await service.process_scheduled(now)
        assert stats["processed"] == 1

    async def test_immediate_and_inactive_templates_not_scheduled(
        self, service, now, make_booking, make_template, sent_emails
    ):
        make_template("booking-confirmation", [events.BOOKING_CONFIRMED])
        make_template(
            "disabled-reminder",
            send_timing_type="before_pickup",
            send_timing_value=2,
            is_active=False,
        )
        make_booking(pickup_date=now + timedelta(hours=2))

        stats = await service.process_scheduled(now)
        assert stats == {"processed": 0, "skipped": 0, "failed": 0}

    async def test_failed_delivery_counted(
        self, service, now, make_booking, make_template, sent_emails
    ):
        sent_emails.side_effect = EmailSendError("bounced")
        make_template("driver-details", send_timing_type="before_pickup", send_timing_value=2)
        make_booking(pickup_date=now + timedelta(hours=2))

        stats = await service.process_scheduled(now)
        assert stats["failed"] == 1
