"""
Template-driven email notifications
Looks up an admin-managed template, renders it for a booking, records an
EmailLog and delivers it now or after the template's delay.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

import redis
from arq import create_pool
from sqlalchemy.orm import Session

from ..config import (
    ADMIN_EMAILS,
    API_BASE_URL,
    COMPANY_ADDRESS,
    COMPANY_EMAIL,
    COMPANY_NAME,
    COMPANY_PHONE,
    COMPANY_WEBSITE,
    FRONTEND_URL,
    REDIS_URL,
)
from ..email_service import EmailSendError, send_email
from ..email_templates import wrap_html_body
from ..events import format_money
from ..models import Booking, EmailLog, EmailTemplate
from ..worker import get_redis_settings
from .receipt_service import booking_details_attachment, receipt_attachment
from .settings_service import SettingsService

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")
RECEIPT_PAYMENT_STATUSES = ("authorized", "captured", "partially_refunded")


def render_template(text: str, variables: dict) -> str:
    """Replace {{key}} placeholders; unknown keys are left untouched"""

    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables or variables[key] is None:
            return match.group(0)
        return str(variables[key])

    return PLACEHOLDER_PATTERN.sub(replace, text or "")


def format_pickup_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def format_pickup_time(value: datetime) -> str:
    return f"{value.hour % 12 or 12}:{value:%M} {value:%p}"


def booking_variables(booking: Booking) -> dict:
    fare = booking.final_fare if booking.final_fare is not None else booking.estimated_fare
    return {
        "booking_number": booking.booking_number,
        "customer_name": booking.customer_name,
        "customer_first_name": booking.customer_first_name,
        "customer_last_name": booking.customer_last_name,
        "customer_email": booking.customer_email,
        "customer_phone": booking.customer_phone or "",
        "pickup_address": booking.pickup_address,
        "dropoff_address": booking.dropoff_address or "As directed",
        "pickup_date": format_pickup_date(booking.pickup_date),
        "pickup_time": format_pickup_time(booking.pickup_date),
        "booking_type": "Hourly" if booking.booking_type == "hourly" else "One way",
        "duration_hours": booking.duration_hours or "",
        "vehicle_type": booking.vehicle_type.display_name if booking.vehicle_type else "",
        "estimated_fare": format_money(booking.estimated_fare or 0),
        "final_fare": format_money(fare or 0),
        "extras_total": format_money(booking.extras_total or 0),
        "gratuity_amount": format_money(booking.gratuity_amount or 0),
        "total_amount": format_money(booking.total_amount),
        "booking_status": booking.status.replace("_", " ").title(),
        "payment_status": booking.payment_status.replace("_", " ").title(),
        "special_instructions": booking.special_instructions or "",
        "flight_number": booking.flight_number or "",
        "booking_url": f"{FRONTEND_URL}/booking/{booking.booking_number}",
        "receipt_url": f"{API_BASE_URL}/api/bookings/{booking.booking_number}/receipt",
    }


class NotificationService:
    def __init__(self, db: Session):
        self.db = db
        self.settings = SettingsService(db)

    # ============================================
    # Variables & recipients
    # ============================================

    def company_variables(self) -> dict:
        return {
            "company_name": self.settings.get("business_name") or COMPANY_NAME,
            "company_phone": self.settings.get("support_phone") or COMPANY_PHONE,
            "company_email": self.settings.get("business_email") or COMPANY_EMAIL,
            "company_address": COMPANY_ADDRESS,
            "website_url": COMPANY_WEBSITE,
            "current_year": datetime.utcnow().year,
        }

    def prepare_variables(self, booking: Optional[Booking], extra: Optional[dict] = None) -> dict:
        variables = self.company_variables()
        if booking is not None:
            variables.update(booking_variables(booking))
        variables.update(extra or {})
        return variables

    def admin_recipients(self) -> list[str]:
        admin_email = self.settings.admin_email()
        if admin_email:
            return [admin_email]
        return list(ADMIN_EMAILS)

    def resolve_recipients(
        self, template: EmailTemplate, booking: Optional[Booking], variables: dict
    ) -> tuple[Optional[str], list[str], list[str]]:
        """Return (to, cc, bcc) for a template send"""
        to = None
        cc: list[str] = []

        if template.send_to_customer and booking is not None:
            to = booking.customer_email

        if template.send_to_admin:
            admins = self.admin_recipients()
            if admins:
                if not to:
                    to, admins = admins[0], admins[1:]
                cc.extend(admins)

        if template.send_to_driver:
            # No driver accounts yet, so driver templates only reach explicit recipients
            logger.debug(f"Template {template.slug} targets drivers; skipping driver recipient")

        if variables.get("recipient_email"):
            to = variables["recipient_email"]

        cc.extend(EmailTemplate.split_emails(template.cc_emails))
        bcc = EmailTemplate.split_emails(template.bcc_emails)
        cc = [e for e in dict.fromkeys(cc) if e != to]
        return to, cc, bcc

    def template_attachments(self, template: EmailTemplate, booking: Optional[Booking]) -> list[dict]:
        if booking is None:
            return []
        attachments = []
        if template.attach_receipt and booking.payment_status in RECEIPT_PAYMENT_STATUSES:
            attachments.append(receipt_attachment(booking))
        if template.attach_booking_details:
            attachments.append(booking_details_attachment(booking))
        return attachments

    # ============================================
    # Sending
    # ============================================

    def get_active_template(self, slug: str) -> Optional[EmailTemplate]:
        return (
            self.db.query(EmailTemplate)
            .filter(EmailTemplate.slug == slug, EmailTemplate.is_active.is_(True))
            .first()
        )

    async def send_email_notification(
        self,
        template_slug: str,
        booking: Optional[Booking] = None,
        variables: Optional[dict] = None,
        attachments: Optional[list[dict]] = None,
    ) -> bool:
        """
        Render and send an email template.

        Returns True when the email was sent or queued for later delivery.
        Failures are logged and recorded on the EmailLog, never raised.
        """
        template = self.get_active_template(template_slug)
        if template is None:
            logger.warning(f"⚠️ Email template not found or inactive: {template_slug}")
            return False

        all_variables = self.prepare_variables(booking, variables)
        to, cc, bcc = self.resolve_recipients(template, booking, all_variables)
        if not to:
            logger.warning(f"⚠️ No recipient for template {template_slug}, skipping")
            return False

        files = self.template_attachments(template, booking) + list(attachments or [])

        log = EmailLog(
            booking_id=booking.id if booking is not None else None,
            template_slug=template.slug,
            recipient_email=to,
            cc_emails=", ".join(cc) or None,
            bcc_emails=", ".join(bcc) or None,
            subject=render_template(template.subject, all_variables),
            body=render_template(template.body, all_variables),
            attachments=[f["filename"] for f in files],
            status="pending",
        )
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)

        if template.delay_minutes and template.delay_minutes > 0:
            if await self.queue_delayed(log, template.delay_minutes):
                return True
            logger.warning(f"⚠️ Could not queue delayed email {log.id}, sending now")

        return await self.deliver(log, files)

    async def deliver(self, log: EmailLog, attachments: Optional[list[dict]] = None) -> bool:
        try:
            response = await send_email(
                to=log.recipient_email,
                subject=log.subject,
                mjml_content=wrap_html_body(log.subject, log.body),
                cc=EmailTemplate.split_emails(log.cc_emails),
                bcc=EmailTemplate.split_emails(log.bcc_emails),
                attachments=attachments,
            )
        except EmailSendError as e:
            log.mark_failed(str(e))
            self.db.commit()
            logger.error(f"❌ Failed to send {log.template_slug} to {log.recipient_email}: {e}")
            return False

        message_id = response.get("id") if isinstance(response, dict) else None
        log.mark_sent(message_id)
        self.db.commit()
        logger.info(f"📧 Sent {log.template_slug} to {log.recipient_email}")
        return True

    async def queue_delayed(self, log: EmailLog, delay_minutes: int) -> bool:
        if not REDIS_URL:
            return False
        try:
            pool = await create_pool(get_redis_settings())
            await pool.enqueue_job(
                "send_logged_email_task", log.id, _defer_by=timedelta(minutes=delay_minutes)
            )
            await pool.aclose()
        except (OSError, redis.RedisError) as e:
            logger.error(f"❌ Failed to queue delayed email {log.id}: {e}")
            return False
        logger.info(f"⏳ Email {log.id} ({log.template_slug}) queued for +{delay_minutes} min")
        return True

    async def send_logged_email(self, log_id: int) -> bool:
        """Deliver a previously queued EmailLog"""
        log = self.db.query(EmailLog).filter(EmailLog.id == log_id).first()
        if log is None or log.status != "pending":
            logger.info(f"Email log {log_id} is no longer pending, skipping")
            return False

        attachments = []
        template = self.db.query(EmailTemplate).filter(EmailTemplate.slug == log.template_slug).first()
        if template is not None and log.booking is not None:
            attachments = self.template_attachments(template, log.booking)
        return await self.deliver(log, attachments)

    async def resend(self, log: EmailLog) -> bool:
        """Send a copy of a logged email as a new log entry"""
        copy = EmailLog(
            booking_id=log.booking_id,
            template_slug=log.template_slug,
            recipient_email=log.recipient_email,
            cc_emails=log.cc_emails,
            bcc_emails=log.bcc_emails,
            subject=log.subject,
            body=log.body,
            attachments=[],
            status="pending",
        )
        self.db.add(copy)
        self.db.commit()
        self.db.refresh(copy)
        return await self.deliver(copy)

    # ============================================
    # Convenience wrappers
    # ============================================

    async def send_booking_confirmation(self, booking: Booking) -> bool:
        return await self.send_email_notification("booking-confirmation", booking)

    async def send_booking_reminder(self, booking: Booking, slug: str = "reminder-24h") -> bool:
        return await self.send_email_notification(slug, booking)

    async def send_cancellation(self, booking: Booking, reason: Optional[str] = None) -> bool:
        return await self.send_email_notification(
            "booking-cancelled",
            booking,
            {"cancellation_reason": reason or booking.cancellation_reason or "Not specified"},
        )

    async def send_payment_receipt(self, booking: Booking, transaction_id: str, amount: float) -> bool:
        return await self.send_email_notification(
            "payment-receipt",
            booking,
            {
                "transaction_id": transaction_id,
                "transaction_amount": format_money(amount),
                "transaction_date": format_pickup_date(datetime.utcnow()),
            },
        )

    async def send_refund_confirmation(self, booking: Booking, amount: float, reason: str) -> bool:
        return await self.send_email_notification(
            "payment-refunded",
            booking,
            {"refund_amount": format_money(amount), "refund_reason": reason},
        )

    async def send_admin_new_booking(self, booking: Booking) -> bool:
        return await self.send_email_notification("admin-new-booking", booking)

    async def send_modification(self, booking: Booking, changes_summary: str) -> bool:
        return await self.send_email_notification(
            "booking-modified", booking, {"changes_summary": changes_summary}
        )

    async def send_tip_request(self, booking: Booking, tip_url: str) -> bool:
        return await self.send_email_notification("tip-request", booking, {"tip_url": tip_url})
