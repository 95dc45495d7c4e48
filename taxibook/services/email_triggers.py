"""
Event-triggered emails
Maps booking/payment events to the active templates subscribed to them.
"""

import logging

from sqlalchemy.orm import Session

from ..events import BookingEvent
from ..models import Booking, EmailTemplate
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


def templates_for_trigger(db: Session, trigger: str) -> list[EmailTemplate]:
    """Active templates listing the trigger key, highest priority first"""
    templates = (
        db.query(EmailTemplate)
        .filter(EmailTemplate.is_active.is_(True))
        .order_by(EmailTemplate.priority.desc(), EmailTemplate.id)
        .all()
    )
    # trigger_events is a JSON list, so match in Python to stay database agnostic
    return [t for t in templates if t.has_trigger(trigger)]


class EmailTriggerService:
    def __init__(self, db: Session):
        self.db = db
        self.notifications = NotificationService(db)

    async def handle_event(self, event: BookingEvent) -> int:
        booking = self.db.get(Booking, event.booking_id)
        if booking is None:
            logger.warning(f"⚠️ Booking {event.booking_id} not found for {event.trigger}")
            return 0

        templates = templates_for_trigger(self.db, event.trigger)
        if not templates:
            logger.debug(f"No templates subscribed to {event.trigger}")
            return 0

        variables = event.template_variables()
        sent = 0
        for template in templates:
            if not template.is_immediate:
                # Timed templates are picked up by the scheduled pass
                continue
            try:
                if await self.notifications.send_email_notification(template.slug, booking, variables):
                    sent += 1
            except Exception as e:
                logger.error(
                    f"❌ Failed to send {template.slug} for {event.trigger} "
                    f"(booking {booking.booking_number}): {e}"
                )
                self.db.rollback()

        logger.info(f"📧 {event.trigger} for {booking.booking_number}: {sent} email(s) queued")
        return sent
