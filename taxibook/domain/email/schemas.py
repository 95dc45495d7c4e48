"""Email domain schemas - templates, previews and delivery logs"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ...events import TRIGGER_EVENTS
from ...models import SEND_TIMING_TYPES, SEND_TIMING_UNITS
from ...shared.validators import validate_email, validate_email_list, validate_slug

TEMPLATE_CATEGORIES = ("customer", "admin", "driver")


def _check_triggers(v):
    if v is None:
        return v
    unknown = [t for t in v if t not in TRIGGER_EVENTS]
    if unknown:
        raise ValueError(f"Unknown trigger events: {', '.join(unknown)}")
    return list(dict.fromkeys(v))


class EmailTemplateFields(BaseModel):
    """Validators shared by create and update"""

    @field_validator("slug", check_fields=False)
    @classmethod
    def validate_slug_format(cls, v):
        if v:
            return validate_slug(v)
        return v

    @field_validator("category", check_fields=False)
    @classmethod
    def validate_category(cls, v):
        if v is not None and v not in TEMPLATE_CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(TEMPLATE_CATEGORIES)}")
        return v

    @field_validator("cc_emails", "bcc_emails", check_fields=False)
    @classmethod
    def validate_copy_lists(cls, v):
        return validate_email_list(v)

    @field_validator("trigger_events", check_fields=False)
    @classmethod
    def validate_trigger_events(cls, v):
        return _check_triggers(v)

    @field_validator("send_timing_type", check_fields=False)
    @classmethod
    def validate_timing_type(cls, v):
        if v is not None and v not in SEND_TIMING_TYPES:
            raise ValueError(f"send_timing_type must be one of: {', '.join(SEND_TIMING_TYPES)}")
        return v

    @field_validator("send_timing_unit", check_fields=False)
    @classmethod
    def validate_timing_unit(cls, v):
        if v is not None and v not in SEND_TIMING_UNITS:
            raise ValueError(f"send_timing_unit must be one of: {', '.join(SEND_TIMING_UNITS)}")
        return v


class EmailTemplateCreate(EmailTemplateFields):
    slug: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    category: str = "customer"
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    description: Optional[str] = None
    cc_emails: Optional[str] = None
    bcc_emails: Optional[str] = None
    attach_receipt: bool = False
    attach_booking_details: bool = False
    delay_minutes: int = Field(0, ge=0, le=10080)
    trigger_events: list[str] = []
    send_timing_type: str = "immediate"
    send_timing_value: int = Field(0, ge=0)
    send_timing_unit: str = "hours"
    send_to_customer: bool = True
    send_to_admin: bool = False
    send_to_driver: bool = False
    priority: int = Field(5, ge=1, le=10)
    is_active: bool = True


class EmailTemplateUpdate(EmailTemplateFields):
    slug: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = None
    subject: Optional[str] = Field(None, min_length=1, max_length=500)
    body: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    cc_emails: Optional[str] = None
    bcc_emails: Optional[str] = None
    attach_receipt: Optional[bool] = None
    attach_booking_details: Optional[bool] = None
    delay_minutes: Optional[int] = Field(None, ge=0, le=10080)
    trigger_events: Optional[list[str]] = None
    send_timing_type: Optional[str] = None
    send_timing_value: Optional[int] = Field(None, ge=0)
    send_timing_unit: Optional[str] = None
    send_to_customer: Optional[bool] = None
    send_to_admin: Optional[bool] = None
    send_to_driver: Optional[bool] = None
    priority: Optional[int] = Field(None, ge=1, le=10)
    is_active: Optional[bool] = None


class EmailTemplateResponse(BaseModel):
    id: int
    slug: str
    name: str
    category: str
    subject: str
    body: str
    description: Optional[str] = None
    cc_emails: Optional[str] = None
    bcc_emails: Optional[str] = None
    attach_receipt: bool
    attach_booking_details: bool
    delay_minutes: int
    trigger_events: Optional[list[str]] = None
    send_timing_type: str
    send_timing_value: int
    send_timing_unit: str
    send_to_customer: bool
    send_to_admin: bool
    send_to_driver: bool
    priority: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PreviewRequest(BaseModel):
    booking_id: Optional[int] = None
    variables: dict[str, Any] = {}


class TestSendRequest(BaseModel):
    recipient_email: str
    booking_id: Optional[int] = None

    @field_validator("recipient_email")
    @classmethod
    def validate_recipient(cls, v):
        return validate_email(v)


class EmailLogResponse(BaseModel):
    id: int
    booking_id: Optional[int] = None
    template_slug: Optional[str] = None
    recipient_email: str
    cc_emails: Optional[str] = None
    bcc_emails: Optional[str] = None
    subject: str
    status: str
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    attachments: Optional[list[str]] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EmailLogDetailResponse(EmailLogResponse):
    body: Optional[str] = None


class EmailLogListResponse(BaseModel):
    items: list[EmailLogResponse]
    total: int
    page: int
    per_page: int
    pages: int
