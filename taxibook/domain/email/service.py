"""Email service - template authoring, previews, test sends and log management"""

import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import EmailSendError, compile_mjml_to_html
from ...email_templates import SAMPLE_VARIABLES, TEMPLATE_VARIABLES, wrap_html_body
from ...events import TRIGGER_EVENTS
from ...models import SEND_TIMING_TYPES, SEND_TIMING_UNITS, Booking, EmailLog, EmailTemplate
from ...security_utils import sanitize_html
from ...services.notification_service import NotificationService, render_template
from ...services.scheduled_emails import ScheduledEmailService
from ...shared.validators import slugify
from .repository import EmailRepository
from .schemas import EmailTemplateCreate, EmailTemplateUpdate

logger = logging.getLogger(__name__)


class EmailTemplateService:
    """Service layer for admin-managed email templates"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = EmailRepository()
        self.notifications = NotificationService(db)

    def list_templates(self, category: Optional[str] = None, is_active: Optional[bool] = None):
        return self.repo.list_templates(self.db, category, is_active)

    def get_template(self, template_id: int) -> EmailTemplate:
        template = self.repo.get_template(self.db, template_id)
        if not template:
            raise HTTPException(status_code=404, detail="Email template not found")
        return template

    def create_template(self, data: EmailTemplateCreate) -> EmailTemplate:
        slug = data.slug or slugify(data.name)
        if self.repo.slug_exists(self.db, slug):
            raise HTTPException(status_code=409, detail=f"A template with slug '{slug}' already exists")

        fields = data.model_dump(exclude={"slug"})
        fields["body"] = sanitize_html(fields["body"])
        template = self.repo.save(self.db, EmailTemplate(slug=slug, **fields))
        logger.info(f"📧 Email template created: {slug}")
        return template

    def update_template(self, template_id: int, data: EmailTemplateUpdate) -> EmailTemplate:
        template = self.get_template(template_id)
        updates = data.model_dump(exclude_unset=True)

        if updates.get("slug") and self.repo.slug_exists(
            self.db, updates["slug"], exclude_id=template.id
        ):
            raise HTTPException(
                status_code=409, detail=f"A template with slug '{updates['slug']}' already exists"
            )
        if updates.get("body"):
            updates["body"] = sanitize_html(updates["body"])

        # cc/bcc may be cleared; everything else ignores explicit nulls
        for key, value in updates.items():
            if value is None and key not in ("cc_emails", "bcc_emails", "description"):
                continue
            setattr(template, key, value)

        template = self.repo.save(self.db, template)
        logger.info(f"📧 Email template {template.slug} updated: {sorted(updates)}")
        return template

    def delete_template(self, template_id: int) -> dict:
        template = self.get_template(template_id)
        self.repo.delete(self.db, template)
        logger.info(f"🗑️ Email template {template.slug} deleted")
        return {"message": "Email template deleted successfully"}

    def duplicate_template(self, template_id: int) -> EmailTemplate:
        """Copy a template; the copy starts inactive so it doesn't double-send"""
        source = self.get_template(template_id)

        slug = f"{source.slug}-copy"
        counter = 2
        while self.repo.slug_exists(self.db, slug):
            slug = f"{source.slug}-copy-{counter}"
            counter += 1

        copy = EmailTemplate(
            slug=slug,
            name=f"{source.name} (Copy)",
            category=source.category,
            subject=source.subject,
            body=source.body,
            description=source.description,
            cc_emails=source.cc_emails,
            bcc_emails=source.bcc_emails,
            attach_receipt=source.attach_receipt,
            attach_booking_details=source.attach_booking_details,
            delay_minutes=source.delay_minutes,
            trigger_events=list(source.trigger_events or []),
            send_timing_type=source.send_timing_type,
            send_timing_value=source.send_timing_value,
            send_timing_unit=source.send_timing_unit,
            send_to_customer=source.send_to_customer,
            send_to_admin=source.send_to_admin,
            send_to_driver=source.send_to_driver,
            priority=source.priority,
            is_active=False,
        )
        copy = self.repo.save(self.db, copy)
        logger.info(f"📧 Email template {source.slug} duplicated as {slug}")
        return copy

    def _variables(self, booking_id: Optional[int], overrides: Optional[dict] = None) -> dict:
        variables = self.notifications.company_variables()
        variables.update(SAMPLE_VARIABLES)
        if booking_id is not None:
            booking = (
                self.db.query(Booking)
                .filter(Booking.id == booking_id, Booking.deleted_at.is_(None))
                .first()
            )
            if not booking:
                raise HTTPException(status_code=404, detail="Booking not found")
            variables.update(self.notifications.prepare_variables(booking))
        variables.update(overrides or {})
        return variables

    def preview(
        self, template_id: int, booking_id: Optional[int] = None, overrides: Optional[dict] = None
    ) -> dict:
        template = self.get_template(template_id)
        variables = self._variables(booking_id, overrides)
        subject = render_template(template.subject, variables)
        body = render_template(template.body, variables)
        try:
            html = compile_mjml_to_html(wrap_html_body(subject, body))
        except EmailSendError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        return {"subject": subject, "body": body, "html": html}

    async def send_test(
        self, template_id: int, recipient_email: str, booking_id: Optional[int] = None
    ) -> dict:
        template = self.get_template(template_id)
        variables = self._variables(booking_id)

        log = EmailLog(
            booking_id=booking_id,
            template_slug=template.slug,
            recipient_email=recipient_email,
            subject=f"[TEST] {render_template(template.subject, variables)}",
            body=render_template(template.body, variables),
            attachments=[],
            status="pending",
        )
        self.repo.save(self.db, log)

        sent = await self.notifications.deliver(log)
        if not sent:
            raise HTTPException(
                status_code=502, detail=f"Test email failed: {log.error_message or 'unknown error'}"
            )
        return {"message": f"Test email sent to {recipient_email}", "log_id": log.id}

    @staticmethod
    def available_variables() -> dict:
        return {
            "variables": TEMPLATE_VARIABLES,
            "trigger_events": TRIGGER_EVENTS,
            "send_timing_types": list(SEND_TIMING_TYPES),
            "send_timing_units": list(SEND_TIMING_UNITS),
        }


class EmailLogService:
    """Service layer for the email delivery log"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = EmailRepository()

    def list_logs(
        self,
        status: Optional[str] = None,
        template_slug: Optional[str] = None,
        booking_id: Optional[int] = None,
        recipient: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> dict:
        items, total = self.repo.list_logs(
            self.db, status, template_slug, booking_id, recipient, page, per_page
        )
        return {
            "items": items,
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": math.ceil(total / per_page) if per_page else 0,
        }

    def get_log(self, log_id: int) -> EmailLog:
        log = self.repo.get_log(self.db, log_id)
        if not log:
            raise HTTPException(status_code=404, detail="Email log not found")
        return log

    async def resend(self, log_id: int) -> dict:
        log = self.get_log(log_id)
        sent = await NotificationService(self.db).resend(log)
        if not sent:
            raise HTTPException(status_code=502, detail="Email could not be resent")
        logger.info(f"📧 Email log {log_id} resent to {log.recipient_email}")
        return {"message": "Email resent successfully"}

    async def run_scheduled(self, now: Optional[datetime] = None, dry_run: bool = False) -> dict:
        """Run both scheduled email passes immediately"""
        scheduler = ScheduledEmailService(self.db)
        timed = await scheduler.process_scheduled(now=now, dry_run=dry_run)
        triggered = await scheduler.send_scheduled(now=now, dry_run=dry_run)
        return {"scheduled_templates": timed, "scheduled_triggers": triggered}
