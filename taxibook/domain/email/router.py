"""Email router - admin endpoints for templates, logs and scheduled sends"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import User
from .schemas import (
    EmailLogDetailResponse,
    EmailLogListResponse,
    EmailTemplateCreate,
    EmailTemplateResponse,
    EmailTemplateUpdate,
    PreviewRequest,
    TestSendRequest,
)
from .service import EmailLogService, EmailTemplateService

logger = logging.getLogger(__name__)

template_router = APIRouter(prefix="/admin/email-templates", tags=["Admin Email"])
log_router = APIRouter(prefix="/admin/email-logs", tags=["Admin Email"])
router = APIRouter(prefix="/admin/emails", tags=["Admin Email"])


def get_template_service(db: Session = Depends(get_db)) -> EmailTemplateService:
    """Dependency injection for EmailTemplateService"""
    return EmailTemplateService(db)


def get_log_service(db: Session = Depends(get_db)) -> EmailLogService:
    """Dependency injection for EmailLogService"""
    return EmailLogService(db)


# ============================================================================
# TEMPLATES
# ============================================================================


@template_router.get("", response_model=list[EmailTemplateResponse])
async def list_templates(
    category: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    current_admin: User = Depends(get_current_admin),
    service: EmailTemplateService = Depends(get_template_service),
):
    return service.list_templates(category, is_active)


@template_router.get("/variables")
async def list_template_variables(current_admin: User = Depends(get_current_admin)):
    """Placeholders and trigger keys available to template authors"""
    return EmailTemplateService.available_variables()


@template_router.post("", response_model=EmailTemplateResponse, status_code=201)
async def create_template(
    data: EmailTemplateCreate,
    current_admin: User = Depends(get_current_admin),
    service: EmailTemplateService = Depends(get_template_service),
):
    return service.create_template(data)


@template_router.get("/{template_id}", response_model=EmailTemplateResponse)
async def get_template(
    template_id: int,
    current_admin: User = Depends(get_current_admin),
    service: EmailTemplateService = Depends(get_template_service),
):
    return service.get_template(template_id)


@template_router.patch("/{template_id}", response_model=EmailTemplateResponse)
async def update_template(
    template_id: int,
    data: EmailTemplateUpdate,
    current_admin: User = Depends(get_current_admin),
    service: EmailTemplateService = Depends(get_template_service),
):
    return service.update_template(template_id, data)


@template_router.delete("/{template_id}")
async def delete_template(
    template_id: int,
    current_admin: User = Depends(get_current_admin),
    service: EmailTemplateService = Depends(get_template_service),
):
    return service.delete_template(template_id)


@template_router.post("/{template_id}/preview")
async def preview_template(
    template_id: int,
    data: Optional[PreviewRequest] = None,
    current_admin: User = Depends(get_current_admin),
    service: EmailTemplateService = Depends(get_template_service),
):
    """Render with sample data, or with a real booking when booking_id is given"""
    data = data or PreviewRequest()
    return service.preview(template_id, data.booking_id, data.variables)


@template_router.post(
    "/{template_id}/duplicate", response_model=EmailTemplateResponse, status_code=201
)
async def duplicate_template(
    template_id: int,
    current_admin: User = Depends(get_current_admin),
    service: EmailTemplateService = Depends(get_template_service),
):
    return service.duplicate_template(template_id)


@template_router.post("/{template_id}/test")
async def send_test_email(
    template_id: int,
    data: TestSendRequest,
    current_admin: User = Depends(get_current_admin),
    service: EmailTemplateService = Depends(get_template_service),
):
    return await service.send_test(template_id, data.recipient_email, data.booking_id)


# ============================================================================
# LOGS
# ============================================================================


@log_router.get("", response_model=EmailLogListResponse)
async def list_email_logs(
    status: Optional[str] = Query(None),
    template_slug: Optional[str] = Query(None),
    booking_id: Optional[int] = Query(None),
    recipient: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    current_admin: User = Depends(get_current_admin),
    service: EmailLogService = Depends(get_log_service),
):
    return service.list_logs(status, template_slug, booking_id, recipient, page, per_page)


@log_router.get("/{log_id}", response_model=EmailLogDetailResponse)
async def get_email_log(
    log_id: int,
    current_admin: User = Depends(get_current_admin),
    service: EmailLogService = Depends(get_log_service),
):
    return service.get_log(log_id)


@log_router.post("/{log_id}/resend")
async def resend_email(
    log_id: int,
    current_admin: User = Depends(get_current_admin),
    service: EmailLogService = Depends(get_log_service),
):
    return await service.resend(log_id)


# ============================================================================
# SCHEDULED SENDS
# ============================================================================


@router.post("/run-scheduled")
async def run_scheduled_emails(
    dry_run: bool = Query(False),
    current_admin: User = Depends(get_current_admin),
    service: EmailLogService = Depends(get_log_service),
):
    logger.info(f"⏰ Scheduled emails run requested by {current_admin.email}")
    return await service.run_scheduled(dry_run=dry_run)
