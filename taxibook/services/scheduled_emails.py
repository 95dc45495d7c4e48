"""
Time-based email rules

Two passes, both driven by the worker cron:

* process_scheduled (every 15 min): templates with a send timing relative to
  pickup, booking creation or completion.
* send_scheduled (every 5 min): pickup reminders, review requests and the
  daily/weekly admin summaries.

Every pass checks the email log first so a booking never receives the same
template twice inside the dedupe window.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import events
from ..config import REMINDER_WINDOW_MINUTES, SCHEDULED_WINDOW_MINUTES, SUMMARY_HOUR
from ..events import format_money
from ..models import Booking, EmailLog, EmailTemplate
from .email_triggers import templates_for_trigger
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

TIMED_DEDUPE_HOURS = 24
TRIGGER_DEDUPE_HOURS = 25
REVIEW_DELAY_HOURS = 24
REVIEW_WINDOW_MINUTES = 30
SUMMARY_WINDOW_MINUTES = 5


class ScheduledEmailService:
    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    # ============================================
    # Dedupe checks
    # ============================================

    def should_send_email(self, booking_id: int, template_slug: str, now: datetime) -> bool:
        """False when any log exists for this booking + template within 24h"""
        exists = (
            self.db.query(EmailLog.id)
            .filter(
                EmailLog.booking_id == booking_id,
                EmailLog.template_slug == template_slug,
                EmailLog.created_at >= now - timedelta(hours=TIMED_DEDUPE_HOURS),
            )
            .first()
        )
        return exists is None

    def was_sent(self, booking_id: int, template_slug: str, now: datetime) -> bool:
        """True when a sent or still-queued log exists for this booking + template within 25h"""
        return (
            self.db.query(EmailLog.id)
            .filter(
                EmailLog.booking_id == booking_id,
                EmailLog.template_slug == template_slug,
                EmailLog.status.in_(("sent", "pending")),
                EmailLog.created_at >= now - timedelta(hours=TRIGGER_DEDUPE_HOURS),
            )
            .first()
            is not None
        )

    # ============================================
    # Timed templates
    # ============================================

    def bookings_for_template(self, template: EmailTemplate, now: datetime) -> list[Booking]:
        offset = timedelta(minutes=template.timing_in_minutes)
        window = timedelta(minutes=SCHEDULED_WINDOW_MINUTES)
        query = self.db.query(Booking).filter(Booking.deleted_at.is_(None))

        timing = template.send_timing_type
        if timing == "before_pickup":
            target = now + offset
            query = query.filter(
                Booking.status == "confirmed",
                Booking.pickup_date.between(target - window, target + window),
            )
        elif timing == "after_pickup":
            target = now - offset
            query = query.filter(
                Booking.status == "confirmed",
                Booking.pickup_date.between(target - window, target + window),
            )
        elif timing == "after_booking":
            target = now - offset
            query = query.filter(
                Booking.status == "confirmed",
                Booking.created_at.between(target - window, target + window),
            )
        elif timing == "after_completion":
            target = now - offset
            finished_at = func.coalesce(Booking.completed_at, Booking.updated_at)
            query = query.filter(
                Booking.status == "completed",
                finished_at.between(target - window, target + window),
            )
        else:
            logger.warning(f"⚠️ Unknown send timing '{timing}' on template {template.slug}")
            return []

        return query.order_by(Booking.pickup_date).all()

    async def process_scheduled(self, now: Optional[datetime] = None, dry_run: bool = False) -> dict:
        now = now or datetime.utcnow()
        stats = {"processed": 0, "skipped": 0, "failed": 0}

        templates = (
            self.db.query(EmailTemplate)
            .filter(
                EmailTemplate.is_active.is_(True),
                EmailTemplate.send_timing_type != "immediate",
            )
            .order_by(EmailTemplate.priority.desc())
            .all()
        )
        logger.info(f"⏰ Processing {len(templates)} timed email template(s)")

        for template in templates:
            for booking in self.bookings_for_template(template, now):
                if not self.should_send_email(booking.id, template.slug, now):
                    stats["skipped"] += 1
                    continue
                if dry_run:
                    logger.info(f"[dry-run] {template.slug} -> {booking.booking_number}")
                    stats["processed"] += 1
                    continue
                if await self._send(template.slug, booking):
                    stats["processed"] += 1
                else:
                    stats["failed"] += 1

        logger.info(
            f"📊 Timed emails: {stats['processed']} sent, {stats['skipped']} skipped, "
            f"{stats['failed']} failed"
        )
        return stats

    # ============================================
    # Reminders, reviews and summaries
    # ============================================

    async def send_scheduled(self, now: Optional[datetime] = None, dry_run: bool = False) -> dict:
        now = now or datetime.utcnow()
        stats = {"reminders": 0, "reviews": 0, "daily_summary": 0, "weekly_summary": 0}

        for trigger, minutes_before in events.REMINDER_OFFSETS.items():
            stats["reminders"] += await self.send_pickup_reminders(trigger, minutes_before, now, dry_run)
        stats["reviews"] = await self.send_review_requests(now, dry_run)

        if self.in_summary_window(now):
            stats["daily_summary"] = await self.send_daily_summary(now, dry_run)
            if now.weekday() == 0:
                stats["weekly_summary"] = await self.send_weekly_summary(now, dry_run)

        logger.info(f"📊 Scheduled emails: {stats}")
        return stats

    async def send_pickup_reminders(
        self, trigger: str, minutes_before: int, now: datetime, dry_run: bool = False
    ) -> int:
        templates = templates_for_trigger(self.db, trigger)
        if not templates:
            return 0

        target = now + timedelta(minutes=minutes_before)
        window = timedelta(minutes=REMINDER_WINDOW_MINUTES)
        bookings = (
            self.db.query(Booking)
            .filter(
                Booking.deleted_at.is_(None),
                Booking.status == "confirmed",
                Booking.pickup_date.between(target - window, target + window),
            )
            .all()
        )
        return await self._send_for_bookings(templates, bookings, now, dry_run)

    async def send_review_requests(self, now: datetime, dry_run: bool = False) -> int:
        templates = templates_for_trigger(self.db, events.REVIEW_24H)
        if not templates:
            return 0

        target = now - timedelta(hours=REVIEW_DELAY_HOURS)
        window = timedelta(minutes=REVIEW_WINDOW_MINUTES)
        bookings = (
            self.db.query(Booking)
            .filter(
                Booking.deleted_at.is_(None),
                Booking.status == "completed",
                Booking.completed_at.between(target - window, target + window),
            )
            .all()
        )
        return await self._send_for_bookings(templates, bookings, now, dry_run)

    async def _send_for_bookings(
        self, templates: list[EmailTemplate], bookings: list[Booking], now: datetime, dry_run: bool
    ) -> int:
        sent = 0
        for booking in bookings:
            for template in templates:
                if self.was_sent(booking.id, template.slug, now):
                    continue
                if dry_run:
                    logger.info(f"[dry-run] {template.slug} -> {booking.booking_number}")
                    sent += 1
                elif await self._send(template.slug, booking):
                    sent += 1
        return sent

    @staticmethod
    def in_summary_window(now: datetime) -> bool:
        return now.hour == SUMMARY_HOUR and now.minute < SUMMARY_WINDOW_MINUTES

    def summary_stats(self, start: datetime, end: datetime) -> dict:
        """Bookings made, trips completed and bookings cancelled within [start, end)"""
        active = self.db.query(Booking).filter(Booking.deleted_at.is_(None))
        created = active.filter(Booking.created_at >= start, Booking.created_at < end)
        completed = active.filter(
            Booking.status == "completed",
            Booking.completed_at >= start,
            Booking.completed_at < end,
        )
        cancelled = active.filter(
            Booking.status == "cancelled",
            Booking.cancelled_at >= start,
            Booking.cancelled_at < end,
        )

        total_revenue = float(
            completed.with_entities(func.coalesce(func.sum(Booking.final_fare), 0.0)).scalar() or 0
        )
        completed_count = completed.count()
        return {
            "total_bookings": created.count(),
            "completed_trips": completed_count,
            "total_revenue": total_revenue,
            "cancelled_bookings": cancelled.count(),
            "average_fare": round(total_revenue / completed_count, 2) if completed_count else 0.0,
        }

    def summary_already_sent(self, template_slug: str, now: datetime) -> bool:
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return (
            self.db.query(EmailLog.id)
            .filter(EmailLog.template_slug == template_slug, EmailLog.created_at >= day_start)
            .first()
            is not None
        )

    async def send_daily_summary(self, now: datetime, dry_run: bool = False) -> int:
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start = today - timedelta(days=1)
        stats = self.summary_stats(start, today)
        variables = {
            "report_date": f"{start:%B} {start.day}, {start.year}",
            "period_start": start.strftime("%Y-%m-%d"),
            "period_end": start.strftime("%Y-%m-%d"),
            "total_bookings": stats["total_bookings"],
            "completed_trips": stats["completed_trips"],
            "total_revenue": format_money(stats["total_revenue"]),
            "cancelled_bookings": stats["cancelled_bookings"],
        }
        return await self._send_summary(events.DAILY_SUMMARY, variables, now, dry_run)

    async def send_weekly_summary(self, now: datetime, dry_run: bool = False) -> int:
        this_monday = (now - timedelta(days=now.weekday())).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        start = this_monday - timedelta(days=7)
        stats = self.summary_stats(start, this_monday)
        variables = {
            "report_date": f"{now:%B} {now.day}, {now.year}",
            "period_start": start.strftime("%Y-%m-%d"),
            "period_end": (this_monday - timedelta(days=1)).strftime("%Y-%m-%d"),
            "total_bookings": stats["total_bookings"],
            "completed_trips": stats["completed_trips"],
            "total_revenue": format_money(stats["total_revenue"]),
            "cancelled_bookings": stats["cancelled_bookings"],
            "average_fare": format_money(stats["average_fare"]),
        }
        return await self._send_summary(events.WEEKLY_SUMMARY, variables, now, dry_run)

    async def _send_summary(self, trigger: str, variables: dict, now: datetime, dry_run: bool) -> int:
        sent = 0
        for template in templates_for_trigger(self.db, trigger):
            if self.summary_already_sent(template.slug, now):
                continue
            if dry_run:
                logger.info(f"[dry-run] {template.slug} summary")
                sent += 1
                continue
            try:
                if await self.notifications.send_email_notification(template.slug, None, variables):
                    sent += 1
            except Exception as e:
                logger.error(f"❌ Failed to send {template.slug}: {e}")
                self.db.rollback()
        return sent

    async def _send(self, template_slug: str, booking: Booking) -> bool:
        try:
            return await self.notifications.send_email_notification(template_slug, booking)
        except Exception as e:
            logger.error(f"❌ Failed to send {template_slug} for booking {booking.booking_number}: {e}")
            self.db.rollback()
            return False
