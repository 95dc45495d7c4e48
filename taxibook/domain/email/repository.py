"""Email repository - Database operations for email templates and logs"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import EmailLog, EmailTemplate


class EmailRepository:
    """Repository for email template and log database operations"""

    @staticmethod
    def list_templates(
        db: Session,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> list[EmailTemplate]:
        query = db.query(EmailTemplate)
        if category:
            query = query.filter(EmailTemplate.category == category)
        if is_active is not None:
            query = query.filter(EmailTemplate.is_active.is_(is_active))
        return query.order_by(EmailTemplate.category, EmailTemplate.name).all()

    @staticmethod
    def get_template(db: Session, template_id: int) -> Optional[EmailTemplate]:
        return db.query(EmailTemplate).filter(EmailTemplate.id == template_id).first()

    @staticmethod
    def slug_exists(db: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = db.query(EmailTemplate.id).filter(EmailTemplate.slug == slug)
        if exclude_id is not None:
            query = query.filter(EmailTemplate.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def save(db: Session, instance):
        db.add(instance)
        db.commit()
        db.refresh(instance)
        return instance

    @staticmethod
    def delete(db: Session, instance) -> None:
        db.delete(instance)
        db.commit()

    @staticmethod
    def list_logs(
        db: Session,
        status: Optional[str] = None,
        template_slug: Optional[str] = None,
        booking_id: Optional[int] = None,
        recipient: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[EmailLog], int]:
        query = db.query(EmailLog)
        if status:
            query = query.filter(EmailLog.status == status)
        if template_slug:
            query = query.filter(EmailLog.template_slug == template_slug)
        if booking_id:
            query = query.filter(EmailLog.booking_id == booking_id)
        if recipient:
            query = query.filter(EmailLog.recipient_email.ilike(f"%{recipient.strip()}%"))

        total = query.count()
        items = (
            query.order_by(EmailLog.created_at.desc(), EmailLog.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    @staticmethod
    def get_log(db: Session, log_id: int) -> Optional[EmailLog]:
        return db.query(EmailLog).filter(EmailLog.id == log_id).first()
